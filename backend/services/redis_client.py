"""
Redis Connection Manager - Session store infrastructure.

Provides:
- Async connection with health checks
- Graceful fallback to an in-memory TTL/LRU cache when Redis is
  disabled or unreachable
- Singleton accessor

Usage:
    from services.redis_client import get_redis

    redis = await get_redis()
    await redis.set("key", "value", ttl=3600)
"""

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import redis.asyncio as redis_async

logger = logging.getLogger(__name__)


@dataclass
class RedisManager:
    """
    Redis connection manager with fallback support.

    Maintains connection state and provides graceful degradation
    when Redis is unavailable.
    """

    url: str = "redis://localhost:6379/0"
    enabled: bool = True

    # Fallback cache limits
    fallback_max_entries: int = 1000

    # Connection state
    _client: Any = field(default=None, repr=False)
    _fallback_mode: bool = field(default=False, repr=False)
    _local_cache: "OrderedDict[str, str]" = field(default_factory=OrderedDict, repr=False)
    _local_cache_ttl: Dict[str, float] = field(default_factory=dict, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def available(self) -> bool:
        """Check if Redis is available."""
        return self._client is not None and not self._fallback_mode

    @property
    def fallback_mode(self) -> bool:
        """Check if operating in fallback mode."""
        return self._fallback_mode

    async def connect(self) -> bool:
        """
        Establish Redis connection.

        Returns:
            True if connected, False if fallback mode activated
        """
        if not self.enabled:
            logger.info("Redis disabled by config, using in-memory fallback")
            self._fallback_mode = True
            return False

        async with self._lock:
            if self.available:
                return True
            try:
                self._client = redis_async.from_url(
                    self.url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=5.0,
                    socket_timeout=5.0,
                )
                await self._client.ping()
                self._fallback_mode = False
                logger.info(f"Redis connected: {self.url}")
                return True
            except Exception as e:
                logger.warning(f"Redis connection failed: {e}, using in-memory fallback")
                self._client = None
                self._fallback_mode = True
                return False

    async def disconnect(self) -> None:
        """Close Redis connection."""
        async with self._lock:
            if self._client:
                try:
                    await self._client.aclose()
                except Exception as e:
                    logger.warning(f"Error closing Redis: {e}")
                finally:
                    self._client = None

    async def health_check(self) -> Dict[str, Any]:
        """
        Check Redis health status.

        Returns:
            Dict with status, mode, and latency info
        """
        if self._fallback_mode:
            return {"status": "fallback", "mode": "in-memory", "cache_size": len(self._local_cache)}
        if not self._client:
            return {"status": "disconnected", "mode": "none"}

        try:
            start = time.monotonic()
            await self._client.ping()
            latency_ms = (time.monotonic() - start) * 1000
            return {"status": "connected", "mode": "redis", "latency_ms": round(latency_ms, 2)}
        except Exception as e:
            self._enter_fallback()
            logger.warning(f"Redis health check failed: {e}, switching to fallback")
            return {"status": "error", "mode": "fallback", "error": str(e)}

    # === Key-Value Operations ===

    async def get(self, key: str) -> Optional[str]:
        """Get a value by key."""
        if self._fallback_mode:
            return self._fallback_get(key)

        try:
            return await self._client.get(key)
        except Exception as e:
            logger.warning(f"Redis GET failed for {key}: {e}")
            self._enter_fallback()
            return self._fallback_get(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Set a value with optional TTL in seconds."""
        if self._fallback_mode:
            self._fallback_set(key, value, ttl)
            return True

        try:
            if ttl:
                await self._client.setex(key, ttl, value)
            else:
                await self._client.set(key, value)
            return True
        except Exception as e:
            logger.warning(f"Redis SET failed for {key}: {e}")
            self._enter_fallback()
            self._fallback_set(key, value, ttl)
            return True

    async def delete(self, key: str) -> bool:
        """Delete a key."""
        if self._fallback_mode:
            self._local_cache.pop(key, None)
            self._local_cache_ttl.pop(key, None)
            return True

        try:
            await self._client.delete(key)
            return True
        except Exception as e:
            logger.warning(f"Redis DELETE failed for {key}: {e}")
            self._enter_fallback()
            self._local_cache.pop(key, None)
            return True

    # === In-memory fallback ===

    def _fallback_set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        """Set a value in the fallback cache with optional TTL and LRU eviction."""
        if len(self._local_cache) >= self.fallback_max_entries and key not in self._local_cache:
            self._sweep_expired()
            while len(self._local_cache) >= self.fallback_max_entries:
                evicted_key, _ = self._local_cache.popitem(last=False)
                self._local_cache_ttl.pop(evicted_key, None)

        self._local_cache[key] = value
        self._local_cache.move_to_end(key)
        if ttl is not None:
            self._local_cache_ttl[key] = time.time() + ttl
        else:
            self._local_cache_ttl.pop(key, None)

    def _fallback_get(self, key: str) -> Optional[str]:
        """Get a value from the fallback cache, respecting TTL."""
        expiry = self._local_cache_ttl.get(key)
        if expiry is not None and time.time() > expiry:
            self._local_cache.pop(key, None)
            self._local_cache_ttl.pop(key, None)
            return None
        value = self._local_cache.get(key)
        if value is not None:
            self._local_cache.move_to_end(key)
        return value

    def _sweep_expired(self) -> None:
        now = time.time()
        expired = [k for k, exp in self._local_cache_ttl.items() if now > exp]
        for k in expired:
            self._local_cache.pop(k, None)
            self._local_cache_ttl.pop(k, None)

    def _enter_fallback(self) -> None:
        """Switch to fallback mode."""
        if not self._fallback_mode:
            logger.warning("Redis unavailable, switching to in-memory fallback")
            self._fallback_mode = True


# Singleton instance
_redis_manager: Optional[RedisManager] = None
_init_lock = asyncio.Lock()


async def get_redis() -> RedisManager:
    """
    Get the Redis manager singleton.

    Lazily initializes connection on first call.
    """
    global _redis_manager

    if _redis_manager is None:
        async with _init_lock:
            if _redis_manager is None:
                from config import runtime_config

                _redis_manager = RedisManager(
                    url=runtime_config.redis_url,
                    enabled=runtime_config.redis_enabled,
                )
                await _redis_manager.connect()

    return _redis_manager


async def close_redis() -> None:
    """Close the Redis connection (call on shutdown)."""
    global _redis_manager
    if _redis_manager:
        await _redis_manager.disconnect()
        _redis_manager = None
