"""
Shared pytest fixtures and fakes for orchestration tests.

Async code is driven with asyncio.run() inside plain tests; collaborators
are replaced by the small fakes below.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from errors import LLMError
from routers.ai_orchestration.events import CollectingSink
from routers.ai_orchestration.models import RAGContext
from services.llm_client import ReasoningResponse
from tools.registry import ToolContext, ToolRegistry, ToolSpec


def text_reply(text: str) -> ReasoningResponse:
    """A reply with only a text block."""
    return ReasoningResponse(content=[{"type": "text", "text": text}], stop_reason="end_turn")


def tool_reply(name: str, tool_input: Dict[str, Any], tool_id: str = "toolu_1", text: str = "") -> ReasoningResponse:
    """A reply invoking one tool."""
    content = []
    if text:
        content.append({"type": "text", "text": text})
    content.append({"type": "tool_use", "id": tool_id, "name": name, "input": tool_input})
    return ReasoningResponse(content=content, stop_reason="tool_use")


class FakeLLM:
    """Scripted reasoning client.

    Each call pops the next scripted reply; an exception instance in the
    script is raised instead. When the script runs out the last entry
    repeats.
    """

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls: List[Dict[str, Any]] = []

    async def create_message(self, system_prompt, messages, tools=None, forced_tool=None, max_tokens=None):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                # Snapshot; the loop keeps appending to the same list
                "messages": list(messages),
                "tools": tools,
                "forced_tool": forced_tool,
                "max_tokens": max_tokens,
            }
        )
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def aclose(self):
        pass


class FakeDB:
    """asyncpg-free stand-in for DatabaseManager.

    Queries are matched by substring; unmatched fetches return [] and
    unmatched fetchrows return None. Every execute is recorded.
    """

    def __init__(self, fetch: Optional[Dict[str, Any]] = None, fetchrow: Optional[Dict[str, Any]] = None):
        self.fetch_results = fetch or {}
        self.fetchrow_results = fetchrow or {}
        self.executed: List[tuple] = []
        self.queries: List[tuple] = []

    def _match(self, table: Dict[str, Any], query: str, default):
        for fragment, result in table.items():
            if fragment in query:
                if isinstance(result, Exception):
                    raise result
                if callable(result):
                    return result(query)
                return result
        return default

    async def fetch(self, query, *args):
        self.queries.append((query, args))
        return self._match(self.fetch_results, query, [])

    async def fetchrow(self, query, *args):
        self.queries.append((query, args))
        return self._match(self.fetchrow_results, query, None)

    async def execute(self, query, *args):
        self.executed.append((query, args))
        return "INSERT 0 1"


class FakeDispatch:
    """Tool dispatch recording call order; results or exceptions per tool."""

    def __init__(self, results: Optional[Dict[str, Any]] = None, delays: Optional[Dict[str, float]] = None):
        self.results = results or {}
        self.delays = delays or {}
        self.calls: List[str] = []
        self.inputs: List[Dict[str, Any]] = []

    async def execute(self, name, tool_input, context):
        self.calls.append(name)
        self.inputs.append(tool_input)
        if name in self.delays:
            await asyncio.sleep(self.delays[name])
        result = self.results.get(name, f"{name} ok")
        if isinstance(result, Exception):
            raise result
        return result


class FakeClassifierClient:
    def __init__(self, reply="single", error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[str] = []

    async def classify(self, system_prompt, text):
        self.calls.append(text)
        if self.error:
            raise self.error
        return self.reply


def make_registry() -> ToolRegistry:
    """Registry with two simple tools: echo(text) and fail()."""
    registry = ToolRegistry()

    async def echo(tool_input, context):
        return f"echo: {tool_input['text']}"

    def fail(tool_input, context):
        raise RuntimeError("boom")

    registry.register(
        ToolSpec(
            name="echo",
            description="Echo the text back.\nSecond line is not part of the summary.",
            input_schema={
                "type": "object",
                "properties": {"text": {"type": "string"}},
                "required": ["text"],
            },
        ),
        echo,
    )
    registry.register(
        ToolSpec(name="fail", description="Always fails.", input_schema={"type": "object", "properties": {}}),
        fail,
    )
    return registry


@pytest.fixture
def sink():
    return CollectingSink()


@pytest.fixture
def registry():
    return make_registry()


@pytest.fixture
def tool_context():
    return ToolContext(user_id="user-1", project_id="proj-1")


@pytest.fixture
def rag_context():
    return RAGContext(
        recent_actions="- create_page: Created /about (2026-01-01)",
        user_context="expertise_level: beginner",
        project_info="Project: Acme (acme), DA: acme-org/acme-site",
        semantic_context="",
        value_insights="",
    )


@pytest.fixture
def upstream_error():
    return LLMError("Model request failed: 500", status_code=500, body_text="overloaded")
