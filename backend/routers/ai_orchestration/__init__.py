"""
Nova AI Orchestration - Request pipeline components

Turns one natural-language request into tool calls and a final answer.

Components:
- ContextAssembler: Bounded RAG context from persistence and vector search
- ModeClassifier: single vs multi, fast model first, regex heuristic fallback
- Planner: Forced create_plan call -> ExecutionPlan
- Executor: Dependency-ordered plan runner (networkx DAG)
- Validator: Forced submit_validation call -> ValidationResult
- AIOrchestrator: State machine composing all of the above
- ContextAccumulator: Post-request user_context updates

Progress flows through an explicit sink (EventChannel for SSE,
CollectingSink for the JSON endpoint); no component holds a global writer.
"""

from .models import (
    Mode,
    StepStatus,
    FailurePolicy,
    OrchestratorState,
    RAGContext,
    PlanStep,
    ExecutionPlan,
    StepResult,
    ValidationResult,
    OrchestrationRequest,
    OrchestrationResult,
)
from .events import ProgressEvent, ProgressSink, EventChannel, CollectingSink
from .context import ContextAssembler
from .mode_classifier import ModeClassifier, heuristic_classify
from .planner import Planner
from .executor import Executor
from .validator import Validator
from .accumulator import ContextAccumulator
from .orchestrator import AIOrchestrator, build_plan_response

__all__ = [
    "Mode",
    "StepStatus",
    "FailurePolicy",
    "OrchestratorState",
    "RAGContext",
    "PlanStep",
    "ExecutionPlan",
    "StepResult",
    "ValidationResult",
    "OrchestrationRequest",
    "OrchestrationResult",
    "ProgressEvent",
    "ProgressSink",
    "EventChannel",
    "CollectingSink",
    "ContextAssembler",
    "ModeClassifier",
    "heuristic_classify",
    "Planner",
    "Executor",
    "Validator",
    "ContextAccumulator",
    "AIOrchestrator",
    "build_plan_response",
]
