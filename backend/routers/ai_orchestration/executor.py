"""
Nova AI Orchestration - Executor

Runs an ExecutionPlan against the tool dispatch surface in dependency
order and returns one StepResult per step, in declared plan order.

Graph rules:
- Steps in a dependsOn cycle (including self-dependency), steps naming an
  unknown step id, and every step downstream of those are unreachable and
  resolve to skipped without running.
- The remaining DAG runs generation by generation (networkx topological
  generations); steps within a generation run concurrently when parallel
  execution is on.
- A failed tool step is recorded as status=error. Under
  FailurePolicy.CONTINUE its dependents still run; under
  FailurePolicy.SKIP_DEPENDENTS they resolve to skipped.

One "step" progress event is emitted as each step resolves, so event
order follows completion order.
"""

import asyncio
import logging
from typing import Dict, List, Set

import networkx as nx

from errors import ToolExecutionError
from logging_config import log_tool
from .models import ExecutionPlan, FailurePolicy, PlanStep, StepResult, StepStatus

logger = logging.getLogger(__name__)


def excerpt(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def build_dependency_graph(plan: ExecutionPlan) -> nx.DiGraph:
    """Edge dep -> step for every dependsOn entry naming a known step."""
    graph = nx.DiGraph()
    ids = {s.id for s in plan.steps}
    for step in plan.steps:
        graph.add_node(step.id)
    for step in plan.steps:
        for dep in step.depends_on:
            if dep in ids:
                graph.add_edge(dep, step.id)
    return graph


def find_unreachable(plan: ExecutionPlan, graph: nx.DiGraph) -> Dict[str, str]:
    """Map each unreachable step id to the reason it can never run."""
    ids = {s.id for s in plan.steps}
    reasons: Dict[str, str] = {}

    for step in plan.steps:
        unknown = [d for d in step.depends_on if d not in ids]
        if unknown:
            reasons[step.id] = f"depends on unknown step(s): {', '.join(unknown)}"

    for component in nx.strongly_connected_components(graph):
        if len(component) > 1:
            for node in component:
                reasons[node] = f"dependency cycle among: {', '.join(sorted(component))}"
    for node in nx.nodes_with_selfloops(graph):
        reasons[node] = "step depends on itself"

    for root in list(reasons):
        for node in nx.descendants(graph, root):
            reasons.setdefault(node, f"depends on unreachable step {root}")

    return reasons


class Executor:
    """
    Dependency-ordered plan runner.

    Args:
        dispatch: Tool dispatch surface (execute(name, input, context) -> str)
        parallel: Run independent steps of a generation concurrently
        failure_policy: Treatment of dependents of failed steps
        excerpt_chars: Length of resultExcerpt in step events
    """

    def __init__(
        self,
        dispatch,
        parallel: bool = True,
        failure_policy: FailurePolicy = FailurePolicy.CONTINUE,
        excerpt_chars: int = 500,
    ):
        self.dispatch = dispatch
        self.parallel = parallel
        self.failure_policy = FailurePolicy(failure_policy)
        self.excerpt_chars = excerpt_chars

    async def execute(self, plan: ExecutionPlan, tool_context, sink) -> List[StepResult]:
        """
        Args:
            plan: Plan to run
            tool_context: Opaque ToolContext passed to every tool
            sink: Progress sink receiving one "step" event per step

        Returns:
            StepResults in the plan's declared order
        """
        steps = {s.id: s for s in plan.steps}
        order = {s.id: i for i, s in enumerate(plan.steps)}
        results: Dict[str, StepResult] = {}

        graph = build_dependency_graph(plan)
        unreachable = find_unreachable(plan, graph)

        for step in plan.steps:
            if step.id in unreachable:
                logger.warning(f"Step {step.id} skipped: {unreachable[step.id]}")
                await self._resolve(
                    results,
                    StepResult(step.id, StepStatus.SKIPPED, f"Skipped: {unreachable[step.id]}", step.tool_name),
                    sink,
                )

        runnable = graph.subgraph([n for n in graph.nodes if n not in unreachable])
        failed: Set[str] = set()

        for generation in nx.topological_generations(runnable):
            batch = sorted(generation, key=order.__getitem__)
            to_run: List[PlanStep] = []
            for step_id in batch:
                step = steps[step_id]
                blocked = [d for d in step.depends_on if d in failed]
                if blocked and self.failure_policy == FailurePolicy.SKIP_DEPENDENTS:
                    failed.add(step_id)
                    await self._resolve(
                        results,
                        StepResult(
                            step_id,
                            StepStatus.SKIPPED,
                            f"Skipped: dependency {', '.join(blocked)} did not succeed",
                            step.tool_name,
                        ),
                        sink,
                    )
                    continue
                to_run.append(step)

            if self.parallel and len(to_run) > 1:
                outcomes = await asyncio.gather(
                    *(self._run_and_resolve(s, tool_context, results, sink) for s in to_run)
                )
            else:
                outcomes = [await self._run_and_resolve(s, tool_context, results, sink) for s in to_run]

            failed.update(r.step_id for r in outcomes if r.status != StepStatus.SUCCESS)

        return [results[s.id] for s in plan.steps]

    async def _run_and_resolve(
        self, step: PlanStep, tool_context, results: Dict[str, StepResult], sink
    ) -> StepResult:
        result = await self._run_step(step, tool_context)
        await self._resolve(results, result, sink)
        return result

    async def _resolve(self, results: Dict[str, StepResult], result: StepResult, sink) -> None:
        results[result.step_id] = result
        await sink.write(
            "step",
            {
                "stepId": result.step_id,
                "toolName": result.tool_name,
                "status": result.status.value,
                "resultExcerpt": excerpt(result.result, self.excerpt_chars),
            },
        )

    async def _run_step(self, step: PlanStep, tool_context) -> StepResult:
        if not step.tool_name:
            return StepResult(step.id, StepStatus.SUCCESS, step.description)

        log_tool(logger, step.tool_name, "start", step=step.id)
        try:
            output = await self.dispatch.execute(step.tool_name, step.tool_input, tool_context)
            result = StepResult(step.id, StepStatus.SUCCESS, output, step.tool_name)
        except ToolExecutionError as e:
            logger.warning(f"Step {step.id} tool {step.tool_name} failed: {e.message}")
            result = StepResult(step.id, StepStatus.ERROR, e.message, step.tool_name)
        except Exception as e:
            logger.error(f"Step {step.id} tool {step.tool_name} raised {type(e).__name__}: {e}", exc_info=True)
            result = StepResult(step.id, StepStatus.ERROR, str(e) or type(e).__name__, step.tool_name)
        log_tool(logger, step.tool_name, "end", step=step.id, status=result.status.value)
        return result
