"""
Session Cache - Redis-backed cross-request memory.

Keeps a short ring buffer of a session's recent queries so the planner
can see what the user asked for moments ago. Sessions are stored as a
JSON string with a TTL refreshed on every write.

Key pattern: nova:ctx:{session_id}
TTL: 1 hour (configurable)

Usage:
    from services.session_cache import SessionCache

    cache = SessionCache(ttl_seconds=3600, redis=await get_redis())
    ctx = await cache.load(session_id)
    await cache.record_query(session_id, "List the pages", "single")
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

# Key prefix for session context
SESSION_PREFIX = "nova:ctx:"

DEFAULT_HISTORY_SIZE = 10


@dataclass
class QueryHistoryItem:
    """One remembered request."""

    query: str
    intent_type: str
    timestamp: int  # epoch milliseconds

    def to_dict(self) -> Dict[str, Any]:
        return {"query": self.query, "intentType": self.intent_type, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueryHistoryItem":
        return cls(
            query=str(data.get("query", "")),
            intent_type=str(data.get("intentType", "")),
            timestamp=int(data.get("timestamp", 0)),
        )


@dataclass
class SessionContext:
    """Persisted per-session memory, oldest query first."""

    previous_queries: List[QueryHistoryItem] = field(default_factory=list)

    def add_query(self, item: QueryHistoryItem, limit: int = DEFAULT_HISTORY_SIZE) -> None:
        """Append and drop the oldest entries beyond limit."""
        self.previous_queries.append(item)
        if len(self.previous_queries) > limit:
            self.previous_queries = self.previous_queries[-limit:]

    def to_dict(self) -> Dict[str, Any]:
        return {"previousQueries": [q.to_dict() for q in self.previous_queries]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionContext":
        queries = data.get("previousQueries") or []
        return cls(previous_queries=[QueryHistoryItem.from_dict(q) for q in queries if isinstance(q, dict)])


class SessionCache:
    """
    Redis-backed session context persistence.

    Store failures never reach the caller: load() degrades to an empty
    context and writes report False.
    """

    def __init__(self, ttl_seconds: int = 3600, history_size: int = DEFAULT_HISTORY_SIZE, redis=None):
        """
        Initialize session cache.

        Args:
            ttl_seconds: Session TTL in seconds (default 1 hour)
            history_size: Number of queries kept per session
            redis: Optional RedisManager (resolved lazily when omitted)
        """
        self.ttl_seconds = ttl_seconds
        self.history_size = history_size
        self._redis = redis

    async def _get_redis(self):
        """Lazy load Redis manager."""
        if self._redis is None:
            from .redis_client import get_redis
            self._redis = await get_redis()
        return self._redis

    def _make_key(self, session_id: str) -> str:
        return f"{SESSION_PREFIX}{session_id}"

    async def load(self, session_id: str) -> SessionContext:
        """
        Load session context.

        Returns:
            Stored SessionContext, or an empty one when missing or unreadable
        """
        try:
            redis = await self._get_redis()
            raw = await redis.get(self._make_key(session_id))
            if not raw:
                return SessionContext()
            return SessionContext.from_dict(json.loads(raw))
        except Exception as e:
            logger.warning(f"Failed to load session context {session_id}: {e}")
            return SessionContext()

    async def save(self, session_id: str, context: SessionContext) -> bool:
        """Persist context and refresh its TTL."""
        try:
            redis = await self._get_redis()
            await redis.set(self._make_key(session_id), json.dumps(context.to_dict()), ttl=self.ttl_seconds)
            logger.debug(f"Session context saved: {session_id} ({len(context.previous_queries)} queries)")
            return True
        except Exception as e:
            logger.error(f"Failed to save session context {session_id}: {e}")
            return False

    async def record_query(
        self,
        session_id: str,
        query: str,
        intent_type: str,
        timestamp: Optional[int] = None,
    ) -> bool:
        """
        Append a query to the session's ring buffer.

        Args:
            session_id: Session to update
            query: Request text
            intent_type: Classified mode ("single" or "multi")
            timestamp: Epoch milliseconds (defaults to now)
        """
        context = await self.load(session_id)
        context.add_query(
            QueryHistoryItem(
                query=query,
                intent_type=intent_type,
                timestamp=timestamp if timestamp is not None else int(time.time() * 1000),
            ),
            limit=self.history_size,
        )
        return await self.save(session_id, context)

    async def delete(self, session_id: str) -> bool:
        try:
            redis = await self._get_redis()
            await redis.delete(self._make_key(session_id))
            return True
        except Exception as e:
            logger.error(f"Failed to delete session context {session_id}: {e}")
            return False
