"""
Nova AI Orchestrator - Request state machine

Drives one request through:

    MODE_CLASSIFY -> SINGLE_LOOP -> DONE
    MODE_CLASSIFY -> PLAN -> EXECUTE -> [VALIDATE] -> DONE

FAILED is reached from any phase on a planner failure, a reasoning-model
failure in the single-step loop, or an unexpected exception. Whatever the
outcome, the progress sink is closed exactly once, after a short flush
delay, and a FAILED run emits an "error" event before the close.

Event names: mode, plan, step, tool_call, tool_result, validation_start,
validation_complete, done, error.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from errors import ErrorCode, NovaError, format_error_for_llm, log_error
from logging_config import log_message_in, log_message_out, log_phase, log_tool
from services.session_cache import SessionContext
from .executor import excerpt
from .models import (
    Mode,
    OrchestrationRequest,
    OrchestrationResult,
    OrchestratorState,
    RAGContext,
    StepResult,
    StepStatus,
    ValidationResult,
)

logger = logging.getLogger(__name__)

MAX_ITERATIONS_MESSAGE = "Reached maximum tool-use iterations."
ERRORS_HEADER = "Errors:"
ISSUES_HEADER = "Validation issues:"
SUGGESTIONS_HEADER = "Suggestions:"


def build_system_prompt(context: RAGContext) -> str:
    """System prompt for the single-step tool-use loop."""
    sections = [
        "You are Nova, an AI assistant for content management on AEM Edge Delivery Services.\n"
        "You help users manage website content through the Document Authoring (DA) API.",
        "Current context:\n"
        f"- {context.project_info or 'Project details unavailable'}\n"
        f"- Recent actions:\n{context.recent_actions or 'Unavailable.'}\n"
        f"- User context:\n{context.user_context or 'Unavailable.'}",
    ]
    if context.semantic_context:
        sections.append(context.semantic_context)
    if context.value_insights:
        sections.append(context.value_insights)
    sections.append(
        "Use the available tools to fulfill the user's request. When creating pages, use clean HTML "
        "with EDS block markup. Always confirm what you did after completing an action."
    )
    return "\n\n".join(sections)


def build_plan_response(
    results: List[StepResult],
    validation: Optional[ValidationResult] = None,
    excerpt_chars: int = 500,
) -> str:
    """
    Final multi-step text: successful excerpts, then an Errors section for
    failed steps, then validator output when validation ran.
    """
    parts = [excerpt(r.result, excerpt_chars) for r in results if r.status == StepStatus.SUCCESS and r.result]

    failed = [r for r in results if r.status == StepStatus.ERROR]
    if failed:
        lines = [ERRORS_HEADER]
        lines.extend(f"- Step {r.step_id} ({r.tool_name or 'reasoning'}): {r.result}" for r in failed)
        parts.append("\n".join(lines))

    if validation is not None:
        if not validation.passed and validation.issues:
            parts.append("\n".join([ISSUES_HEADER] + [f"- {i}" for i in validation.issues]))
        if validation.suggestions:
            parts.append("\n".join([SUGGESTIONS_HEADER] + [f"- {s}" for s in validation.suggestions]))

    return "\n\n".join(parts)


class AIOrchestrator:
    """
    Composes the pipeline components for one request at a time.

    All collaborators are injected; the orchestrator holds no per-request
    state, so one instance serves every request.

    Args:
        llm: Reasoning client for the single-step loop
        registry: Tool dispatch surface (list_tools, get_tools_schema, execute)
        classifier: ModeClassifier
        context_assembler: ContextAssembler
        planner: Planner
        executor: Executor
        validator: Validator
        session_cache: Optional SessionCache for cross-request memory
        accumulator: Optional ContextAccumulator run after completed requests
        max_iterations: Round-trip bound for the single-step loop
        flush_delay: Seconds to wait before closing the sink
    """

    def __init__(
        self,
        llm,
        registry,
        classifier,
        context_assembler,
        planner,
        executor,
        validator,
        session_cache=None,
        accumulator=None,
        max_iterations: int = 10,
        flush_delay: float = 0.1,
    ):
        self.llm = llm
        self.registry = registry
        self.classifier = classifier
        self.context_assembler = context_assembler
        self.planner = planner
        self.executor = executor
        self.validator = validator
        self.session_cache = session_cache
        self.accumulator = accumulator
        self.max_iterations = max_iterations
        self.flush_delay = flush_delay

    async def run(self, request: OrchestrationRequest, sink, tool_context) -> OrchestrationResult:
        """
        Run one request to a terminal state.

        Never raises: failures are reported through the returned result and
        an "error" event.
        """
        result = OrchestrationResult(state=OrchestratorState.MODE_CLASSIFY)
        log_message_in(logger, request.prompt, project=request.project_id, session=request.session_id or "-")

        try:
            session = await self._load_session(request.session_id)
            context = await self.context_assembler.assemble(
                request.user_id, request.project_id, query=request.prompt
            )

            log_phase(logger, result.state.value)
            result.mode = await self.classifier.classify(request.prompt)
            await sink.write("mode", {"mode": result.mode.value})

            if result.mode == Mode.SINGLE:
                self._enter(result, OrchestratorState.SINGLE_LOOP)
                result.response, result.tool_calls = await self._single_loop(request, context, sink, tool_context)
            else:
                await self._run_plan(request, context, session, sink, tool_context, result)

            self._enter(result, OrchestratorState.DONE)
            await self._remember(request, result)
            await sink.write(
                "done",
                {
                    "response": result.response,
                    "mode": result.mode.value,
                    "toolsUsed": result.tools_used,
                    "validation": result.validation.to_dict() if result.validation else None,
                },
            )
            log_message_out(
                logger,
                mode=result.mode.value,
                tools_used=result.tools_used,
                failed_steps=sum(1 for r in result.step_results if r.status == StepStatus.ERROR),
            )
        except Exception as e:
            await self._fail(result, e, sink)
        finally:
            await asyncio.sleep(self.flush_delay)
            await sink.close()

        return result

    def _enter(self, result: OrchestrationResult, state: OrchestratorState, **context: Any) -> None:
        result.state = state
        log_phase(logger, state.value, **context)

    async def _run_plan(self, request, context, session, sink, tool_context, result: OrchestrationResult) -> None:
        self._enter(result, OrchestratorState.PLAN)
        plan = await self.planner.create_plan(
            request.prompt, context, self.registry.list_tools(), session.previous_queries
        )
        result.plan = plan
        await sink.write("plan", plan.summary())

        self._enter(result, OrchestratorState.EXECUTE, steps=len(plan.steps))
        result.step_results = await self.executor.execute(plan, tool_context, sink)

        if plan.requires_validation:
            self._enter(result, OrchestratorState.VALIDATE)
            await sink.write("validation_start", {"steps": len(result.step_results)})
            result.validation = await self.validator.validate(plan, result.step_results)
            await sink.write("validation_complete", result.validation.to_dict())

        result.response = build_plan_response(result.step_results, result.validation)

    async def _single_loop(
        self, request: OrchestrationRequest, context: RAGContext, sink, tool_context
    ) -> Tuple[str, List[Dict[str, Any]]]:
        """Bounded tool-use loop. Returns (response text, executed tool calls)."""
        system_prompt = build_system_prompt(context)
        tools = self.registry.get_tools_schema()
        messages: List[Dict[str, Any]] = [{"role": "user", "content": request.prompt}]
        tool_calls: List[Dict[str, Any]] = []

        for iteration in range(1, self.max_iterations + 1):
            response = await self.llm.create_message(
                system_prompt=system_prompt,
                messages=messages,
                tools=tools or None,
            )
            uses = response.tool_uses
            if response.stop_reason == "end_turn" or not uses:
                return response.text, tool_calls

            logger.debug(f"Single loop iteration {iteration}: {len(uses)} tool call(s)")
            messages.append({"role": "assistant", "content": response.content})

            tool_results = []
            for block in uses:
                name = block.get("name", "")
                tool_input = block.get("input") or {}
                await sink.write("tool_call", {"name": name, "input": tool_input})

                output, is_error = await self._dispatch(name, tool_input, tool_context)
                tool_calls.append({"name": name, "input": tool_input, "result": output})
                await sink.write(
                    "tool_result",
                    {"name": name, "status": "error" if is_error else "success", "resultExcerpt": excerpt(output, 500)},
                )
                tool_results.append(
                    {"type": "tool_result", "tool_use_id": block.get("id"), "content": output, "is_error": is_error}
                )

            messages.append({"role": "user", "content": tool_results})

        logger.warning(f"Single loop hit the {self.max_iterations}-iteration bound")
        return MAX_ITERATIONS_MESSAGE, tool_calls

    async def _dispatch(self, name: str, tool_input: Dict[str, Any], tool_context) -> Tuple[str, bool]:
        """Run one model-requested tool; failures become model-readable error text."""
        log_tool(logger, name, "start")
        try:
            output = await self.registry.execute(name, tool_input, tool_context)
            log_tool(logger, name, "end", status="success")
            return output, False
        except Exception as e:
            logger.warning(f"Tool {name} failed in single loop: {type(e).__name__}: {e}")
            log_tool(logger, name, "end", status="error")
            return format_error_for_llm(e, tool=name), True

    async def _load_session(self, session_id: Optional[str]) -> SessionContext:
        if not session_id or self.session_cache is None:
            return SessionContext()
        return await self.session_cache.load(session_id)

    async def _remember(self, request: OrchestrationRequest, result: OrchestrationResult) -> None:
        """Session history and user-context accumulation; both absorb their own failures."""
        if request.session_id and self.session_cache is not None:
            await self.session_cache.record_query(request.session_id, request.prompt, result.mode.value)
        if self.accumulator is not None:
            calls = list(result.tool_calls)
            if result.plan is not None:
                ran = {r.step_id for r in result.step_results if r.status != StepStatus.SKIPPED}
                calls.extend(
                    {"name": s.tool_name, "input": s.tool_input}
                    for s in result.plan.steps
                    if s.tool_name and s.id in ran
                )
            await self.accumulator.accumulate(request.user_id, request.project_id, request.prompt, calls)

    async def _fail(self, result: OrchestrationResult, error: Exception, sink) -> None:
        failed_in = result.state
        is_known = isinstance(error, NovaError)
        log_error(logger, error, context=failed_in.value, include_traceback=not is_known)
        if is_known:
            code = error.code.value
            message = error.message
        else:
            code = ErrorCode.INTERNAL_UNEXPECTED.value
            message = str(error) or type(error).__name__

        result.error = {"message": message, "code": code, "state": failed_in.value}
        self._enter(result, OrchestratorState.FAILED, failed_in=failed_in.value)
        await sink.write("error", result.error)
