"""
Tests for the orchestration state machine.
"""

import asyncio
import json

from conftest import FakeDB, FakeLLM, make_registry, text_reply, tool_reply
from routers.ai_orchestration.accumulator import ContextAccumulator
from routers.ai_orchestration.context import ContextAssembler
from routers.ai_orchestration.events import CollectingSink, EventChannel
from routers.ai_orchestration.executor import Executor
from routers.ai_orchestration.mode_classifier import ModeClassifier
from routers.ai_orchestration.models import (
    Mode,
    OrchestrationRequest,
    OrchestratorState,
    StepResult,
    StepStatus,
    ValidationResult,
)
from routers.ai_orchestration.orchestrator import (
    MAX_ITERATIONS_MESSAGE,
    AIOrchestrator,
    build_plan_response,
)
from routers.ai_orchestration.planner import PLAN_TOOL_NAME, Planner
from routers.ai_orchestration.validator import VALIDATION_TOOL_NAME, Validator
from services.redis_client import RedisManager
from services.session_cache import SessionCache
from tools.registry import ToolContext

SINGLE_PROMPT = "List the pages in this project"
MULTI_PROMPT = "Create a landing page and then set up a translation workflow"


def plan_reply(steps, requires_validation="false"):
    return tool_reply(
        PLAN_TOOL_NAME,
        {"intent": "Landing page", "steps": json.dumps(steps), "requiresValidation": requires_validation},
    )


def build(llm=None, planner_llm=None, validator_llm=None, assembler=None, session_cache=None, accumulator=None,
          max_iterations=10):
    registry = make_registry()
    return AIOrchestrator(
        llm=llm or FakeLLM(text_reply("Done.")),
        registry=registry,
        classifier=ModeClassifier(),
        context_assembler=assembler or ContextAssembler(),
        planner=Planner(planner_llm or FakeLLM(text_reply("no plan"))),
        executor=Executor(registry),
        validator=Validator(validator_llm or FakeLLM(text_reply("{}"))),
        session_cache=session_cache,
        accumulator=accumulator,
        max_iterations=max_iterations,
        flush_delay=0,
    )


def run(orchestrator, sink, prompt=SINGLE_PROMPT, session_id=None):
    request = OrchestrationRequest(prompt=prompt, user_id="user-1", project_id="proj-1", session_id=session_id)
    return asyncio.run(orchestrator.run(request, sink, ToolContext(user_id="user-1", project_id="proj-1")))


def fallback_session_cache():
    redis = RedisManager(enabled=False)
    asyncio.run(redis.connect())
    return SessionCache(ttl_seconds=60, redis=redis)


class TestSingleLoop:
    def test_text_only_reply(self, sink):
        result = run(build(llm=FakeLLM(text_reply("There are 3 pages."))), sink)

        assert result.state == OrchestratorState.DONE
        assert result.mode == Mode.SINGLE
        assert result.response == "There are 3 pages."
        assert sink.names() == ["mode", "done"]
        assert sink.of("mode") == [{"mode": "single"}]
        assert sink.of("done")[0]["response"] == "There are 3 pages."
        assert sink.close_count == 1

    def test_tool_round_trip(self, sink):
        llm = FakeLLM(tool_reply("echo", {"text": "hi"}, tool_id="toolu_9"), text_reply("Echoed."))
        result = run(build(llm=llm), sink)

        assert result.response == "Echoed."
        assert result.tool_calls == [{"name": "echo", "input": {"text": "hi"}, "result": "echo: hi"}]
        assert sink.names() == ["mode", "tool_call", "tool_result", "done"]

        second = llm.calls[1]["messages"]
        assert second[1]["role"] == "assistant"
        assert second[2] == {
            "role": "user",
            "content": [{"type": "tool_result", "tool_use_id": "toolu_9", "content": "echo: hi", "is_error": False}],
        }
        assert [t["name"] for t in llm.calls[0]["tools"]] == ["echo", "fail"]

    def test_tool_error_fed_back(self, sink):
        """A failing tool is reported to the model and the loop continues."""
        llm = FakeLLM(tool_reply("fail", {}), text_reply("The tool failed, sorry."))
        result = run(build(llm=llm), sink)

        assert result.state == OrchestratorState.DONE
        tool_result = llm.calls[1]["messages"][2]["content"][0]
        assert tool_result["is_error"] is True
        assert tool_result["content"].startswith("Error in fail: boom")
        assert sink.of("tool_result")[0]["status"] == "error"

    def test_iteration_bound(self, sink):
        """A model that always asks for a tool stops at exactly the bound."""
        llm = FakeLLM(tool_reply("echo", {"text": "again"}))
        result = run(build(llm=llm), sink)

        assert len(llm.calls) == 10
        assert result.state == OrchestratorState.DONE
        assert result.response == MAX_ITERATIONS_MESSAGE
        assert len(result.tool_calls) == 10
        assert sink.names()[-1] == "done"

    def test_reasoning_failure_is_fatal(self, sink, upstream_error):
        result = run(build(llm=FakeLLM(upstream_error)), sink)

        assert result.state == OrchestratorState.FAILED
        assert sink.of("error") == [{"message": "Model request failed: 500", "code": "LLM_HTTP_ERROR",
                                     "state": "SINGLE_LOOP"}]
        assert sink.close_count == 1


class TestMultiStep:
    def test_plan_without_validation(self, sink):
        """requiresValidation=false never calls the validator."""
        validator_llm = FakeLLM(text_reply("{}"))
        planner_llm = FakeLLM(
            plan_reply(
                [
                    {"id": "a", "description": "Echo", "toolName": "echo", "toolInput": {"text": "landing"}},
                    {"id": "b", "description": "Wrap up", "dependsOn": ["a"]},
                ]
            )
        )
        result = run(build(planner_llm=planner_llm, validator_llm=validator_llm), sink, prompt=MULTI_PROMPT)

        assert result.state == OrchestratorState.DONE
        assert result.mode == Mode.MULTI
        assert validator_llm.calls == []
        assert result.validation is None
        assert sink.names() == ["mode", "plan", "step", "step", "done"]
        assert sink.of("plan")[0]["steps"][0]["id"] == "a"
        assert result.response == "echo: landing\n\nWrap up"
        assert "Suggestions" not in result.response

    def test_failed_step_reported_and_validated(self, sink):
        planner_llm = FakeLLM(
            plan_reply(
                [
                    {"id": "a", "description": "Break", "toolName": "fail"},
                    {"id": "b", "description": "Echo", "toolName": "echo", "toolInput": {"text": "x"},
                     "dependsOn": ["a"]},
                    {"id": "c", "description": "Summary", "dependsOn": ["b"]},
                ],
                requires_validation="true",
            )
        )
        validator_llm = FakeLLM(
            tool_reply(VALIDATION_TOOL_NAME, {"passed": False, "issues": ["Step a failed"],
                                              "suggestions": ["Retry step a"]})
        )
        result = run(build(planner_llm=planner_llm, validator_llm=validator_llm), sink, prompt=MULTI_PROMPT)

        assert [r.status for r in result.step_results] == [StepStatus.ERROR, StepStatus.SUCCESS, StepStatus.SUCCESS]
        assert sink.names() == ["mode", "plan", "step", "step", "step", "validation_start",
                                "validation_complete", "done"]
        assert "Errors:\n- Step a (fail): boom" in result.response
        assert "Validation issues:\n- Step a failed" in result.response
        assert "Suggestions:\n- Retry step a" in result.response

    def test_planner_failure(self, sink, upstream_error):
        result = run(build(planner_llm=FakeLLM(upstream_error)), sink, prompt=MULTI_PROMPT)

        assert result.state == OrchestratorState.FAILED
        assert sink.names() == ["mode", "error"]
        error = sink.of("error")[0]
        assert error["code"] == "PLAN_UPSTREAM_FAILED"
        assert error["state"] == "PLAN"
        assert error["message"] == "Planning failed: 500 - overloaded"
        assert sink.close_count == 1

    def test_missing_plan_block(self, sink):
        result = run(build(planner_llm=FakeLLM(text_reply("I would..."))), sink, prompt=MULTI_PROMPT)
        assert result.error["code"] == "PLAN_MISSING_TOOL_CALL"


class TestChannelLifecycle:
    def test_unexpected_exception_closes_channel_once(self):
        class BrokenAssembler:
            async def assemble(self, user_id, project_id, query=None):
                raise RuntimeError("kaboom")

        channel = EventChannel()

        async def scenario():
            request = OrchestrationRequest(prompt=SINGLE_PROMPT, user_id="u", project_id="p")
            result = await build(assembler=BrokenAssembler()).run(request, channel, None)
            events = [e async for e in channel]
            return result, events

        result, events = asyncio.run(scenario())
        assert result.state == OrchestratorState.FAILED
        assert [e.event for e in events] == ["error"]
        assert events[0].data == {"message": "kaboom", "code": "INTERNAL_UNEXPECTED", "state": "MODE_CLASSIFY"}
        assert channel.closed
        assert channel.dropped == 0

    def test_detached_consumer_does_not_stop_run(self):
        """Results are still computed when nobody is listening."""
        channel = EventChannel()
        channel.detach()
        request = OrchestrationRequest(prompt=SINGLE_PROMPT, user_id="u", project_id="p")
        result = asyncio.run(build(llm=FakeLLM(text_reply("ok"))).run(request, channel, None))
        assert result.state == OrchestratorState.DONE
        assert channel.dropped == 2


class TestMemory:
    def test_session_history_recorded_and_fed_to_planner(self, sink):
        cache = fallback_session_cache()
        run(build(session_cache=cache), sink, session_id="s1")

        planner_llm = FakeLLM(plan_reply([{"id": "1", "description": "Think"}]))
        run(build(session_cache=cache, planner_llm=planner_llm), CollectingSink(), prompt=MULTI_PROMPT,
            session_id="s1")

        assert f"[single] {SINGLE_PROMPT}" in planner_llm.calls[0]["system_prompt"]
        stored = asyncio.run(cache.load("s1"))
        assert [q.intent_type for q in stored.previous_queries] == ["single", "multi"]

    def test_accumulator_runs_after_done(self, sink):
        db = FakeDB()
        llm = FakeLLM(tool_reply("echo", {"text": "hi"}), text_reply("ok"))
        run(build(llm=llm, accumulator=ContextAccumulator(db)), sink)

        upserts = {args[2]: args[3] for _, args in db.executed}
        assert json.loads(upserts["tool_frequency"]) == {"echo": 1}

    def test_no_memory_on_failure(self, sink, upstream_error):
        cache = fallback_session_cache()
        run(build(llm=FakeLLM(upstream_error), session_cache=cache), sink, session_id="s2")
        assert asyncio.run(cache.load("s2")).previous_queries == []


class TestBuildPlanResponse:
    def test_success_only(self):
        results = [StepResult("1", StepStatus.SUCCESS, "A"), StepResult("2", StepStatus.SUCCESS, "B")]
        assert build_plan_response(results) == "A\n\nB"

    def test_skipped_steps_omitted(self):
        results = [StepResult("1", StepStatus.SUCCESS, "A"), StepResult("2", StepStatus.SKIPPED, "Skipped: cycle")]
        assert build_plan_response(results) == "A"

    def test_passed_validation_shows_only_suggestions(self):
        validation = ValidationResult(passed=True, issues=["minor"], suggestions=["Add alt text"])
        text = build_plan_response([StepResult("1", StepStatus.SUCCESS, "A")], validation)
        assert text == "A\n\nSuggestions:\n- Add alt text"
