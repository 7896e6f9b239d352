"""
Nova AI Orchestration - Context Assembler

Builds the RAGContext handed to the planner and the single-step loop.
The five lookups run concurrently and degrade independently: a lookup
that fails (or, for semantic search, times out) contributes "" and never
aborts assembly. A lookup that succeeds with nothing to say contributes
its placeholder text instead.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from errors import degrade_on_error
from .models import RAGContext

logger = logging.getLogger(__name__)

NO_RECENT_ACTIONS = "No recent actions."
NO_USER_CONTEXT = "No accumulated user context."
UNKNOWN_PROJECT = "Unknown project"

SEMANTIC_HEADER = "Relevant content from this site:"
TOP_CONTENT_HEADER = "Top performing content:"
LOW_CONTENT_HEADER = "Underperforming content:"

SNIPPET_CHARS = 200


def format_semantic_matches(matches: List[Any]) -> str:
    """Render ranked matches as '{rank}. title (path, relevance): snippet' lines."""
    if not matches:
        return ""
    lines = [SEMANTIC_HEADER]
    for rank, match in enumerate(matches, 1):
        meta = match.metadata or {}
        path = str(meta.get("path") or "")
        title = str(meta.get("title") or path or "Untitled")
        snippet = str(meta.get("snippet") or meta.get("content") or "").strip().replace("\n", " ")
        if len(snippet) > SNIPPET_CHARS:
            snippet = snippet[:SNIPPET_CHARS].rstrip() + "..."
        lines.append(f"{rank}. {title} ({path}, {match.score:.2f}): {snippet}")
    return "\n".join(lines)


def format_value_insights(top: List[Dict[str, Any]], bottom: List[Dict[str, Any]]) -> str:
    """Render the top and bottom content lists; "" when both are empty."""
    sections = []
    for header, rows in ((TOP_CONTENT_HEADER, top), (LOW_CONTENT_HEADER, bottom)):
        if not rows:
            continue
        lines = [header]
        for row in rows:
            lines.append(f"- {row['path']} (score {float(row['composite_score']):.2f})")
        sections.append("\n".join(lines))
    return "\n\n".join(sections)


class ContextAssembler:
    """
    Gathers bounded contextual text for one request.

    Args:
        db: DatabaseManager-like object (fetch/fetchrow); None disables
            the persistence-backed lookups
        embedder: Optional embedding client (embed(text) -> vector)
        vector_index: Optional vector index (query(vector, project_id, limit))
        top_k: Semantic matches to render
        semantic_timeout: Hard bound on embed + query, in seconds
    """

    def __init__(
        self,
        db=None,
        embedder=None,
        vector_index=None,
        top_k: int = 5,
        semantic_timeout: float = 3.0,
    ):
        self.db = db
        self.embedder = embedder
        self.vector_index = vector_index
        self.top_k = top_k
        self.semantic_timeout = semantic_timeout

    async def assemble(self, user_id: str, project_id: str, query: Optional[str] = None) -> RAGContext:
        recent, user_ctx, project, semantic, insights = await asyncio.gather(
            self.recent_actions(user_id, project_id),
            self.user_context(user_id, project_id),
            self.project_info(project_id),
            self.semantic_context(project_id, query),
            self.value_insights(project_id),
        )
        context = RAGContext(
            recent_actions=recent,
            user_context=user_ctx,
            project_info=project,
            semantic_context=semantic,
            value_insights=insights,
        )
        empty = [name for name, value in context.to_dict().items() if not value]
        if empty:
            logger.info(f"Context assembled with empty sections: {', '.join(empty)}")
        return context

    @degrade_on_error("recent_actions", logger=logger)
    async def recent_actions(self, user_id: str, project_id: str) -> str:
        if self.db is None:
            return ""
        rows = await self.db.fetch(
            "SELECT action_type, description, created_at FROM action_history "
            "WHERE user_id = $1 AND project_id = $2 ORDER BY created_at DESC LIMIT 5",
            user_id,
            project_id,
        )
        if not rows:
            return NO_RECENT_ACTIONS
        return "\n".join(f"- {r['action_type']}: {r['description']} ({r['created_at']})" for r in rows)

    @degrade_on_error("user_context", logger=logger)
    async def user_context(self, user_id: str, project_id: str) -> str:
        if self.db is None:
            return ""
        rows = await self.db.fetch(
            "SELECT context_type, data FROM user_context WHERE user_id = $1 AND project_id = $2",
            user_id,
            project_id,
        )
        if not rows:
            return NO_USER_CONTEXT
        return "\n".join(f"{r['context_type']}: {r['data']}" for r in rows)

    @degrade_on_error("project_info", logger=logger)
    async def project_info(self, project_id: str) -> str:
        if self.db is None:
            return ""
        row = await self.db.fetchrow(
            "SELECT name, slug, da_org, da_repo FROM projects WHERE id = $1",
            project_id,
        )
        if not row:
            return UNKNOWN_PROJECT
        return f"Project: {row['name']} ({row['slug']}), DA: {row['da_org']}/{row['da_repo']}"

    @degrade_on_error("semantic_context", logger=logger)
    async def semantic_context(self, project_id: str, query: Optional[str]) -> str:
        if not query or not query.strip() or self.embedder is None or self.vector_index is None:
            return ""
        try:
            matches = await asyncio.wait_for(self._search(project_id, query), timeout=self.semantic_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Semantic search exceeded {self.semantic_timeout:.1f}s, continuing without it")
            return ""
        return format_semantic_matches(matches[: self.top_k])

    async def _search(self, project_id: str, query: str) -> List[Any]:
        vector = await self.embedder.embed(query)
        return await self.vector_index.query(vector, project_id, limit=self.top_k)

    @degrade_on_error("value_insights", logger=logger)
    async def value_insights(self, project_id: str) -> str:
        if self.db is None:
            return ""
        top = await self.db.fetch(
            "SELECT path, composite_score FROM value_scores WHERE project_id = $1 "
            "ORDER BY composite_score DESC LIMIT 5",
            project_id,
        )
        bottom = await self.db.fetch(
            "SELECT path, composite_score FROM value_scores WHERE project_id = $1 "
            "ORDER BY composite_score ASC LIMIT 3",
            project_id,
        )
        return format_value_insights(top, bottom)
