"""
Project insight tools - read-only lookups over the engine's own stores.

Loaded through NOVA_TOOL_MODULES like any other tool module; content
authoring tools live with the content backend integration.
"""

import json
import logging
from typing import Dict

from errors import ToolInputError
from tools.registry import ToolContext, ToolRegistry, ToolSpec

logger = logging.getLogger(__name__)


def _int_input(tool_name: str, raw: str, default: int, upper: int) -> int:
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ToolInputError(tool_name, f"Expected an integer, got {raw!r}") from None
    return max(1, min(value, upper))


async def get_action_history(tool_input: Dict[str, str], context: ToolContext) -> str:
    limit = _int_input("get_action_history", tool_input.get("limit", ""), 10, 100)
    rows = await context.db.fetch(
        "SELECT action_type, description, created_at FROM action_history "
        "WHERE user_id = $1 AND project_id = $2 ORDER BY created_at DESC LIMIT $3",
        context.user_id,
        context.project_id,
        limit,
    )
    return json.dumps(rows, indent=2, default=str)


async def get_value_scores(tool_input: Dict[str, str], context: ToolContext) -> str:
    query = (
        "SELECT path, engagement_score, conversion_score, cwv_score, seo_score, composite_score, sample_size "
        "FROM value_scores WHERE project_id = $1"
    )
    args = [context.project_id]
    if tool_input.get("path"):
        query += " AND path = $2"
        args.append(tool_input["path"])
    query += " ORDER BY composite_score DESC LIMIT 50"
    rows = await context.db.fetch(query, *args)
    return json.dumps(rows, indent=2, default=str)


async def semantic_search(tool_input: Dict[str, str], context: ToolContext) -> str:
    if context.embedder is None or context.vector_index is None:
        return json.dumps({"message": "Semantic search is not configured for this deployment."})

    limit = _int_input("semantic_search", tool_input.get("limit", ""), 5, 20)
    vector = await context.embedder.embed(tool_input["query"])
    matches = await context.vector_index.query(vector, context.project_id, limit=limit)
    return json.dumps(
        [
            {
                "score": round(m.score, 4),
                "path": m.metadata.get("path", ""),
                "title": m.metadata.get("title", ""),
                "snippet": m.metadata.get("snippet") or m.metadata.get("content", ""),
            }
            for m in matches
        ],
        indent=2,
    )


def register_tools(registry: ToolRegistry) -> None:
    registry.register(
        ToolSpec(
            name="get_action_history",
            description="Get recent user actions. Useful for understanding context of what the user has been doing.",
            input_schema={
                "type": "object",
                "properties": {
                    "limit": {"type": "string", "description": "Number of recent actions to return (default 10)"},
                },
                "required": [],
            },
        ),
        get_action_history,
    )
    registry.register(
        ToolSpec(
            name="get_value_scores",
            description=(
                "Get content value scores for pages.\n"
                "Scores include engagement, conversion, CWV, SEO, and composite."
            ),
            input_schema={
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Optional page path to filter by. Omit for all pages."},
                },
                "required": [],
            },
        ),
        get_value_scores,
    )
    registry.register(
        ToolSpec(
            name="semantic_search",
            description="Search site content by semantic similarity.\nReturns ranked pages with snippets.",
            input_schema={
                "type": "object",
                "properties": {
                    "query": {"type": "string", "description": "Natural language search query"},
                    "limit": {"type": "string", "description": "Number of results (default 5)"},
                },
                "required": ["query"],
            },
        ),
        semantic_search,
    )
