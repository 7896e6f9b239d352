"""
Tests for the tool registry and the built-in insight tools.
"""

import asyncio
import json

import pytest

from conftest import FakeDB
from errors import ConfigurationError, ErrorCode, ToolExecutionError, ToolInputError
from services.vector_index import VectorMatch
from tools import insights
from tools.registry import ToolContext, ToolRegistry, ToolSpec, coerce_input_value, load_tool_modules


def run(coro):
    return asyncio.run(coro)


class TestCoercion:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, ""),
            (True, "true"),
            (False, "false"),
            (3, "3"),
            ({"a": 1}, '{"a": 1}'),
            (["x"], '["x"]'),
            ("plain", "plain"),
        ],
    )
    def test_values(self, value, expected):
        assert coerce_input_value(value) == expected

    def test_required_key_missing(self, registry):
        with pytest.raises(ToolInputError) as exc:
            registry.coerce_input("echo", {"other": "x"})
        assert exc.value.code == ErrorCode.TOOL_INVALID_INPUT
        assert exc.value.context["missing"] == ["text"]

    def test_empty_required_value_counts_as_missing(self, registry):
        with pytest.raises(ToolInputError):
            registry.coerce_input("echo", {"text": ""})

    def test_non_object_input(self, registry):
        with pytest.raises(ToolInputError):
            registry.coerce_input("echo", ["text"])


class TestCatalog:
    def test_schema_and_summary(self, registry):
        schema = registry.get_tools_schema()
        assert schema[0]["name"] == "echo"
        assert schema[0]["input_schema"]["required"] == ["text"]
        assert registry.catalog_summary() == "- echo: Echo the text back.\n- fail: Always fails."
        assert len(registry) == 2
        assert "echo" in registry
        assert "nope" not in registry

    def test_validate_passes(self, registry):
        registry.validate()

    def test_validate_lists_unhandled_tools(self):
        registry = ToolRegistry()
        registry.advertise(ToolSpec(name="zeta", description="Z"))
        registry.advertise(ToolSpec(name="alpha", description="A"))
        with pytest.raises(ConfigurationError) as exc:
            registry.validate()
        assert exc.value.code == ErrorCode.CONFIG_TOOL_UNHANDLED
        assert exc.value.context["tools"] == ["alpha", "zeta"]

    def test_orphan_handler_is_not_fatal(self):
        registry = ToolRegistry()
        registry.register_handler("hidden", lambda tool_input, context: "x")
        registry.validate()


class TestExecute:
    def test_async_handler(self, registry, tool_context):
        assert run(registry.execute("echo", {"text": 42}, tool_context)) == "echo: 42"

    def test_sync_handler_and_json_result(self, tool_context):
        registry = ToolRegistry()
        registry.register(ToolSpec(name="count", description="Count"), lambda tool_input, context: {"n": 2})
        assert json.loads(run(registry.execute("count", {}, tool_context))) == {"n": 2}

    def test_none_result_is_empty(self, tool_context):
        registry = ToolRegistry()
        registry.register(ToolSpec(name="noop", description="Nothing"), lambda tool_input, context: None)
        assert run(registry.execute("noop", None, tool_context)) == ""

    def test_unknown_tool(self, registry, tool_context):
        with pytest.raises(ToolExecutionError) as exc:
            run(registry.execute("missing", {}, tool_context))
        assert exc.value.code == ErrorCode.TOOL_NOT_FOUND

    def test_handler_failure_wrapped(self, registry, tool_context):
        with pytest.raises(ToolExecutionError) as exc:
            run(registry.execute("fail", {}, tool_context))
        assert exc.value.tool_name == "fail"
        assert exc.value.message == "boom"

    def test_handler_sees_coerced_strings(self, tool_context):
        seen = {}

        def handler(tool_input, context):
            seen.update(tool_input)
            return "ok"

        registry = ToolRegistry()
        registry.register(ToolSpec(name="t", description="T"), handler)
        run(registry.execute("t", {"flag": True, "n": 5}, tool_context))
        assert seen == {"flag": "true", "n": "5"}


class TestLoadToolModules:
    def test_bad_module_skipped(self):
        registry = ToolRegistry()
        loaded = load_tool_modules(registry, ["tools.does_not_exist", "tools.insights"])
        assert loaded == 1
        assert [t.name for t in registry.list_tools()] == ["get_action_history", "get_value_scores", "semantic_search"]
        registry.validate()


class TestInsightTools:
    def test_action_history_limit_clamped(self):
        db = FakeDB(fetch={"FROM action_history": [{"action_type": "publish", "description": "x"}]})
        context = ToolContext(user_id="u", project_id="p", db=db)
        text = run(insights.get_action_history({"limit": "500"}, context))

        assert json.loads(text)[0]["action_type"] == "publish"
        assert db.queries[0][1] == ("u", "p", 100)

    def test_action_history_bad_limit(self):
        context = ToolContext(user_id="u", project_id="p", db=FakeDB())
        with pytest.raises(ToolInputError):
            run(insights.get_action_history({"limit": "lots"}, context))

    def test_value_scores_path_filter(self):
        db = FakeDB()
        context = ToolContext(user_id="u", project_id="p", db=db)
        run(insights.get_value_scores({"path": "/home"}, context))
        query, args = db.queries[0]
        assert "AND path = $2" in query
        assert args == ("p", "/home")

    def test_semantic_search_unconfigured(self):
        context = ToolContext(user_id="u", project_id="p")
        assert "not configured" in run(insights.semantic_search({"query": "x"}, context))

    def test_semantic_search(self):
        class Embedder:
            async def embed(self, text):
                return [0.5]

        class Index:
            async def query(self, vector, project_id, limit=5):
                return [VectorMatch(score=0.912345, metadata={"path": "/a", "title": "A", "content": "body"})]

        context = ToolContext(user_id="u", project_id="p", embedder=Embedder(), vector_index=Index())
        hits = json.loads(run(insights.semantic_search({"query": "x"}, context)))
        assert hits == [{"score": 0.9123, "path": "/a", "title": "A", "snippet": "body"}]
