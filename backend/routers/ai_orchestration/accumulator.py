"""
Nova AI Orchestration - User context accumulation

After each completed request, updates three user_context rows from the
prompt and the tool calls made: tool_frequency, expertise_level and
active_paths. Pattern matching only, no model calls. Failures are logged
and never reach the response.
"""

import asyncio
import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

EXPERTISE_LEVELS = ["beginner", "intermediate", "advanced"]

ADVANCED_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"delivery mode", r"generative", r"config", r"telemetry",
        r"value score", r"cwv", r"lcp", r"conversion", r"semantic",
        r"brand profile", r"block library", r"section-metadata",
    )
]
INTERMEDIATE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"template", r"copy.*to", r"move.*to", r"rename",
        r"search", r"accordion", r"tabs", r"carousel",
    )
]

PATH_INPUT_KEYS = ("path", "source", "destination")
MAX_ACTIVE_PATHS = 20

_UPSERT = (
    "INSERT INTO user_context (user_id, project_id, context_type, data, updated_at) "
    "VALUES ($1, $2, $3, $4, NOW()) "
    "ON CONFLICT (user_id, project_id, context_type) DO UPDATE SET "
    "data = EXCLUDED.data, updated_at = NOW()"
)
_SELECT = "SELECT data FROM user_context WHERE user_id = $1 AND project_id = $2 AND context_type = $3"


def estimate_expertise(prompt: str) -> str:
    advanced = sum(1 for p in ADVANCED_PATTERNS if p.search(prompt))
    intermediate = sum(1 for p in INTERMEDIATE_PATTERNS if p.search(prompt))
    if advanced >= 2:
        return "advanced"
    if advanced >= 1 or intermediate >= 2:
        return "intermediate"
    return "beginner"


def merge_tool_frequency(existing: Dict[str, int], tool_calls: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    freq = dict(existing)
    for call in tool_calls:
        freq[call["name"]] = freq.get(call["name"], 0) + 1
    return freq


def merge_active_paths(existing: List[str], tool_calls: Iterable[Dict[str, Any]]) -> List[str]:
    """Newest first, deduplicated, capped at MAX_ACTIVE_PATHS."""
    paths = list(existing)
    for call in tool_calls:
        tool_input = call.get("input") or {}
        for key in PATH_INPUT_KEYS:
            value = tool_input.get(key)
            if not value:
                continue
            if value in paths:
                paths.remove(value)
            paths.insert(0, value)
    return paths[:MAX_ACTIVE_PATHS]


class ContextAccumulator:
    def __init__(self, db):
        self.db = db

    async def accumulate(
        self, user_id: str, project_id: str, prompt: str, tool_calls: List[Dict[str, Any]]
    ) -> None:
        """Update all three rows; never raises."""
        if self.db is None:
            return
        outcomes = await asyncio.gather(
            self._update_tool_frequency(user_id, project_id, tool_calls),
            self._update_expertise(user_id, project_id, prompt),
            self._update_active_paths(user_id, project_id, tool_calls),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                logger.warning(f"Context accumulation failed (non-fatal): {type(outcome).__name__}: {outcome}")

    async def _load(self, user_id: str, project_id: str, context_type: str) -> Optional[str]:
        row = await self.db.fetchrow(_SELECT, user_id, project_id, context_type)
        return row["data"] if row else None

    async def _update_tool_frequency(self, user_id: str, project_id: str, tool_calls: List[Dict[str, Any]]) -> None:
        if not tool_calls:
            return
        raw = await self._load(user_id, project_id, "tool_frequency")
        freq = merge_tool_frequency(json.loads(raw) if raw else {}, tool_calls)
        await self.db.execute(_UPSERT, user_id, project_id, "tool_frequency", json.dumps(freq))

    async def _update_expertise(self, user_id: str, project_id: str, prompt: str) -> None:
        level = estimate_expertise(prompt)
        current = await self._load(user_id, project_id, "expertise_level")
        current_idx = EXPERTISE_LEVELS.index(current) if current in EXPERTISE_LEVELS else -1
        # Only upgrade
        if EXPERTISE_LEVELS.index(level) <= current_idx:
            return
        await self.db.execute(_UPSERT, user_id, project_id, "expertise_level", level)

    async def _update_active_paths(self, user_id: str, project_id: str, tool_calls: List[Dict[str, Any]]) -> None:
        existing_raw = None
        paths_in_calls = any((c.get("input") or {}).get(k) for c in tool_calls for k in PATH_INPUT_KEYS)
        if not paths_in_calls:
            return
        existing_raw = await self._load(user_id, project_id, "active_paths")
        paths = merge_active_paths(json.loads(existing_raw) if existing_raw else [], tool_calls)
        await self.db.execute(_UPSERT, user_id, project_id, "active_paths", json.dumps(paths))
