"""
Tests for result validation.
"""

import asyncio

from conftest import FakeLLM, text_reply, tool_reply
from routers.ai_orchestration.models import ExecutionPlan, PlanStep, StepResult, StepStatus
from routers.ai_orchestration.validator import (
    VALIDATION_TOOL_NAME,
    Validator,
    parse_text_verdict,
    summarize_for_validation,
)

PLAN = ExecutionPlan(
    intent="Create and publish a landing page",
    steps=[
        PlanStep("1", "Create page", tool_name="create_page"),
        PlanStep("2", "Publish", tool_name="publish", depends_on=["1"]),
        PlanStep("3", "Report"),
    ],
    requires_validation=True,
)
RESULTS = [
    StepResult("1", StepStatus.SUCCESS, "Created /landing", "create_page"),
    StepResult("2", StepStatus.ERROR, "Publish failed: 403", "publish"),
    StepResult("3", StepStatus.SUCCESS, "Report"),
]


class TestSummary:
    def test_summary_lists_plan_and_outcomes(self):
        text = summarize_for_validation(PLAN, RESULTS, excerpt_chars=10)
        assert "Intent: Create and publish a landing page" in text
        assert "Step 2 (publish): error - Publish fa" in text
        assert "Step 3 (reasoning): success - Report" in text


class TestParseTextVerdict:
    def test_json_in_prose(self):
        verdict = parse_text_verdict('Sure. {"passed": true, "issues": [], "suggestions": ["Add alt text"]} Done.')
        assert verdict.passed is True
        assert verdict.suggestions == ["Add alt text"]

    def test_no_json(self):
        assert parse_text_verdict("Looks fine to me") is None

    def test_json_without_verdict(self):
        assert parse_text_verdict('{"issues": ["x"]}') is None


class TestValidate:
    def test_forced_tool_verdict(self):
        llm = FakeLLM(tool_reply(VALIDATION_TOOL_NAME, {"passed": False, "issues": ["Not published"], "suggestions": []}))
        result = asyncio.run(Validator(llm).validate(PLAN, RESULTS))

        assert result.passed is False
        assert result.issues == ["Not published"]
        assert llm.calls[0]["forced_tool"] == VALIDATION_TOOL_NAME

    def test_text_fallback(self):
        llm = FakeLLM(text_reply('{"passed": true, "issues": [], "suggestions": []}'))
        assert asyncio.run(Validator(llm).validate(PLAN, RESULTS)).passed is True

    def test_call_failure_is_visible_failed_validation(self, upstream_error):
        """A broken validator never reports a pass."""
        result = asyncio.run(Validator(FakeLLM(upstream_error)).validate(PLAN, RESULTS))
        assert result.passed is False
        assert result.issues[0].startswith("Validation could not be completed")
        assert result.suggestions == []

    def test_unparseable_reply(self):
        result = asyncio.run(Validator(FakeLLM(text_reply("All good!"))).validate(PLAN, RESULTS))
        assert result.passed is False
        assert "could not be parsed" in result.issues[0]

    def test_tool_block_without_verdict(self):
        llm = FakeLLM(tool_reply(VALIDATION_TOOL_NAME, {"issues": []}))
        result = asyncio.run(Validator(llm).validate(PLAN, RESULTS))
        assert result.passed is False

    def test_non_list_issues_dropped(self):
        """A malformed issues field still yields a verdict instead of failing the request."""
        llm = FakeLLM(tool_reply(VALIDATION_TOOL_NAME, {"passed": True, "issues": 5, "suggestions": []}))
        result = asyncio.run(Validator(llm).validate(PLAN, RESULTS))
        assert result.passed is True
        assert result.issues == []

    def test_string_issues_kept_whole(self):
        llm = FakeLLM(
            tool_reply(VALIDATION_TOOL_NAME, {"passed": False, "issues": "Hero missing", "suggestions": "Add a hero"})
        )
        result = asyncio.run(Validator(llm).validate(PLAN, RESULTS))
        assert result.issues == ["Hero missing"]
        assert result.suggestions == ["Add a hero"]
