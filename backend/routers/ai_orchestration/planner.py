"""
Nova AI Orchestration - Planner

Turns a multi-step request into an ExecutionPlan with one reasoning-model
call forced into the create_plan tool. Planning either fully succeeds or
raises PlanSynthesisError; there is no fallback plan.
"""

import logging
from typing import List, Sequence

from errors import LLMError, PlanSynthesisError
from services.session_cache import QueryHistoryItem
from tools.registry import ToolSpec, format_tool_catalog
from .models import ExecutionPlan, RAGContext

logger = logging.getLogger(__name__)

PLAN_TOOL_NAME = "create_plan"

PLAN_TOOL = {
    "name": PLAN_TOOL_NAME,
    "description": "Create an execution plan for the user request.",
    "input_schema": {
        "type": "object",
        "properties": {
            "intent": {"type": "string", "description": "Brief description of what the plan accomplishes"},
            "steps": {
                "type": "string",
                "description": (
                    "JSON array of steps. Each step: { id: string, description: string, toolName?: string, "
                    "toolInput?: object with string values, dependsOn?: string[], validation?: string }"
                ),
            },
            "requiresValidation": {
                "type": "string",
                "description": '"true" or "false": whether results should be validated after execution',
            },
        },
        "required": ["intent", "steps", "requiresValidation"],
    },
}


def build_plan_prompt(
    context: RAGContext,
    tools: Sequence[ToolSpec],
    recent_queries: Sequence[QueryHistoryItem] = (),
) -> str:
    sections = [
        "You are a planning assistant for an AI CMS. Break down user requests into concrete steps.",
        f"Available tools:\n{format_tool_catalog(tools) or '- (no tools available)'}",
        "Context:\n"
        f"- {context.project_info or 'Project details unavailable'}\n"
        f"- Recent actions:\n{context.recent_actions or 'Unavailable.'}\n"
        f"- User context:\n{context.user_context or 'Unavailable.'}",
    ]
    if context.semantic_context:
        sections.append(f"Related content:\n{context.semantic_context}")
    if context.value_insights:
        sections.append(f"Value insights:\n{context.value_insights}")
    if recent_queries:
        lines = "\n".join(f"- [{q.intent_type}] {q.query}" for q in recent_queries[-5:])
        sections.append(f"Earlier requests this session:\n{lines}")
    sections.append(
        "Create a plan using the create_plan tool. Each step should use one of the available tools "
        "or be a reasoning step (no toolName). Give every step a unique id and list the ids it needs in "
        "dependsOn. Keep plans concise: prefer fewer steps. Set requiresValidation to true only for plans "
        "with 3+ steps that create or modify content."
    )
    return "\n\n".join(sections)


class Planner:
    """Synthesizes an ExecutionPlan through a forced create_plan call."""

    def __init__(self, llm):
        """
        Args:
            llm: Reasoning client (create_message(...) -> ReasoningResponse)
        """
        self.llm = llm

    async def create_plan(
        self,
        text: str,
        context: RAGContext,
        tools: List[ToolSpec],
        recent_queries: Sequence[QueryHistoryItem] = (),
    ) -> ExecutionPlan:
        """
        Raises:
            PlanSynthesisError: Upstream failure, no create_plan block, or invalid steps
        """
        system_prompt = build_plan_prompt(context, tools, recent_queries)
        try:
            response = await self.llm.create_message(
                system_prompt=system_prompt,
                messages=[{"role": "user", "content": text}],
                tools=[PLAN_TOOL],
                forced_tool=PLAN_TOOL_NAME,
            )
        except LLMError as e:
            status = e.status_code if e.status_code is not None else "error"
            raise PlanSynthesisError(
                f"Planning failed: {status} - {e.body_text or e.message}",
                status_code=e.status_code,
            ) from e

        block = response.find_tool_use(PLAN_TOOL_NAME)
        if not block or not isinstance(block.get("input"), dict):
            raise PlanSynthesisError("Planning did not return a plan", reason="missing_tool_call")

        plan = ExecutionPlan.from_tool_input(block["input"])
        logger.info(
            f"Plan ready: {len(plan.steps)} steps, validation={plan.requires_validation}, intent={plan.intent[:80]!r}"
        )
        return plan
