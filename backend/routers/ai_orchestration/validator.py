"""
Nova AI Orchestration - Validator

Checks executed results against the plan's intent with one reasoning-model
call forced into the submit_validation tool. A reply without the tool
block is searched for a JSON object instead.

Any failure (upstream error, no verdict, unparseable reply) yields
passed=False with a generic issue: a broken validator shows up as a failed
validation, never as a pass.
"""

import json
import logging
import re
from typing import List, Optional

from .models import ExecutionPlan, StepResult, ValidationResult

logger = logging.getLogger(__name__)

VALIDATION_TOOL_NAME = "submit_validation"

VALIDATOR_SYSTEM_PROMPT = (
    "You validate AI execution results. Compare each step outcome against the plan's intent and "
    "submit your judgment with the submit_validation tool: passed (boolean), issues (problems found), "
    "suggestions (improvements). Be concise."
)

VALIDATION_TOOL = {
    "name": VALIDATION_TOOL_NAME,
    "description": "Submit the validation judgment for the executed plan.",
    "input_schema": {
        "type": "object",
        "properties": {
            "passed": {"type": "boolean", "description": "True if the results satisfy the intent"},
            "issues": {"type": "array", "items": {"type": "string"}, "description": "Problems found"},
            "suggestions": {"type": "array", "items": {"type": "string"}, "description": "Improvements"},
        },
        "required": ["passed", "issues", "suggestions"],
    },
}

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def summarize_for_validation(plan: ExecutionPlan, results: List[StepResult], excerpt_chars: int = 300) -> str:
    plan_lines = "\n".join(f"{s.id}: {s.description}" for s in plan.steps)
    result_lines = "\n".join(
        f"Step {r.step_id} ({r.tool_name or 'reasoning'}): {r.status.value} - {r.result[:excerpt_chars]}"
        for r in results
    )
    return (
        f"Plan:\nIntent: {plan.intent}\nSteps:\n{plan_lines}\n\n"
        f"Results:\n{result_lines}\n\n"
        "Check for: errors, incomplete actions, inconsistencies."
    )


def validation_failure(reason: str) -> ValidationResult:
    return ValidationResult(passed=False, issues=[f"Validation could not be completed: {reason}"], suggestions=[])


def parse_text_verdict(text: str) -> Optional[ValidationResult]:
    match = _JSON_OBJECT.search(text or "")
    if not match:
        return None
    try:
        return ValidationResult.from_dict(json.loads(match.group(0)))
    except (TypeError, ValueError):
        return None


class Validator:
    def __init__(self, llm, excerpt_chars: int = 300, max_tokens: int = 1024):
        self.llm = llm
        self.excerpt_chars = excerpt_chars
        self.max_tokens = max_tokens

    async def validate(self, plan: ExecutionPlan, results: List[StepResult]) -> ValidationResult:
        try:
            response = await self.llm.create_message(
                system_prompt=VALIDATOR_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": summarize_for_validation(plan, results, self.excerpt_chars)}],
                tools=[VALIDATION_TOOL],
                forced_tool=VALIDATION_TOOL_NAME,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            logger.warning(f"Validation call failed: {type(e).__name__}: {e}")
            return validation_failure(f"validator call failed ({type(e).__name__})")

        block = response.find_tool_use(VALIDATION_TOOL_NAME)
        if block is not None:
            try:
                return ValidationResult.from_dict(block.get("input") or {})
            except (TypeError, ValueError) as e:
                logger.warning(f"Validation tool input unusable: {e}")
                return validation_failure("validator reply had no verdict")

        verdict = parse_text_verdict(response.text)
        if verdict is None:
            logger.warning("Validation reply had neither a tool call nor a JSON verdict")
            return validation_failure("validator reply could not be parsed")
        return verdict
