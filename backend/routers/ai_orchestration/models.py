"""
Nova AI Orchestration - Request-scoped data model

Everything here lives for one request only. Wire dicts use the camelCase
keys the models and the UI exchange; optional keys are omitted when unset.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from errors import PlanSynthesisError


class Mode(str, Enum):
    SINGLE = "single"
    MULTI = "multi"


class StepStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


class FailurePolicy(str, Enum):
    """What happens to dependents of a failed step."""

    CONTINUE = "continue"  # dependents still run
    SKIP_DEPENDENTS = "skip_dependents"


class OrchestratorState(str, Enum):
    MODE_CLASSIFY = "MODE_CLASSIFY"
    SINGLE_LOOP = "SINGLE_LOOP"
    PLAN = "PLAN"
    EXECUTE = "EXECUTE"
    VALIDATE = "VALIDATE"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class RAGContext:
    """Five independent context blocks; any of them may be empty."""

    recent_actions: str = ""
    user_context: str = ""
    project_info: str = ""
    semantic_context: str = ""
    value_insights: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "recentActions": self.recent_actions,
            "userContext": self.user_context,
            "projectInfo": self.project_info,
            "semanticContext": self.semantic_context,
            "valueInsights": self.value_insights,
        }


@dataclass
class PlanStep:
    id: str
    description: str
    tool_name: Optional[str] = None
    tool_input: Dict[str, Any] = field(default_factory=dict)
    depends_on: List[str] = field(default_factory=list)
    validation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "description": self.description}
        if self.tool_name:
            data["toolName"] = self.tool_name
        if self.tool_input:
            data["toolInput"] = dict(self.tool_input)
        if self.depends_on:
            data["dependsOn"] = list(self.depends_on)
        if self.validation:
            data["validation"] = self.validation
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "PlanStep":
        """
        Parse one model-emitted step.

        Raises:
            PlanSynthesisError: Step is malformed
        """
        if not isinstance(data, dict):
            raise PlanSynthesisError("Plan step must be an object", reason="invalid_steps", received=repr(data)[:100])

        step_id = str(data.get("id") or "").strip()
        description = str(data.get("description") or "").strip()
        if not step_id:
            raise PlanSynthesisError("Plan step is missing an id", reason="invalid_steps")
        if not description:
            raise PlanSynthesisError(f"Plan step {step_id} is missing a description", reason="invalid_steps")

        tool_input = data.get("toolInput") or {}
        if not isinstance(tool_input, dict):
            raise PlanSynthesisError(f"Plan step {step_id} has non-object toolInput", reason="invalid_steps")

        depends_on = data.get("dependsOn") or []
        if isinstance(depends_on, str):
            depends_on = [depends_on]
        if not isinstance(depends_on, list):
            raise PlanSynthesisError(f"Plan step {step_id} has non-list dependsOn", reason="invalid_steps")

        tool_name = data.get("toolName")
        validation = data.get("validation")
        return cls(
            id=step_id,
            description=description,
            tool_name=(str(tool_name).strip() or None) if tool_name else None,
            # Values stay as emitted; coercion happens at the dispatch boundary
            tool_input={str(k): v for k, v in tool_input.items()},
            depends_on=[str(d) for d in depends_on],
            validation=str(validation) if validation else None,
        )


@dataclass
class ExecutionPlan:
    intent: str
    steps: List[PlanStep]
    requires_validation: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "intent": self.intent,
            "steps": [s.to_dict() for s in self.steps],
            "requiresValidation": self.requires_validation,
        }

    def summary(self) -> Dict[str, Any]:
        """Compact form for the plan progress event."""
        return {
            "intent": self.intent,
            "requiresValidation": self.requires_validation,
            "steps": [
                {"id": s.id, "description": s.description, "toolName": s.tool_name, "dependsOn": list(s.depends_on)}
                for s in self.steps
            ],
        }

    @classmethod
    def from_tool_input(cls, data: Dict[str, Any]) -> "ExecutionPlan":
        """
        Build a plan from create_plan tool input.

        ``steps`` may be a JSON string or an already-decoded list;
        ``requiresValidation`` may be "true"/"false" or a bool.

        Raises:
            PlanSynthesisError: Steps are unparseable, empty, or have duplicate ids
        """
        raw_steps = data.get("steps")
        if isinstance(raw_steps, str):
            try:
                raw_steps = json.loads(raw_steps)
            except (TypeError, ValueError) as e:
                raise PlanSynthesisError(
                    "Planning returned invalid steps JSON", details=str(e), reason="invalid_steps"
                ) from None
        if not isinstance(raw_steps, list):
            raise PlanSynthesisError("Planning returned invalid steps JSON", reason="invalid_steps")
        if not raw_steps:
            raise PlanSynthesisError("Planning returned an empty plan", reason="invalid_steps")

        steps = [PlanStep.from_dict(s) for s in raw_steps]

        seen = set()
        for step in steps:
            if step.id in seen:
                raise PlanSynthesisError(f"Duplicate plan step id: {step.id}", reason="invalid_steps")
            seen.add(step.id)

        requires_validation = data.get("requiresValidation", False)
        if isinstance(requires_validation, str):
            requires_validation = requires_validation.strip().lower() == "true"

        return cls(
            intent=str(data.get("intent") or "").strip(),
            steps=steps,
            requires_validation=bool(requires_validation),
        )


@dataclass
class StepResult:
    step_id: str
    status: StepStatus
    result: str
    tool_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"stepId": self.step_id, "status": self.status.value, "result": self.result}
        if self.tool_name:
            data["toolName"] = self.tool_name
        return data


@dataclass
class ValidationResult:
    passed: bool
    issues: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"passed": self.passed, "issues": list(self.issues), "suggestions": list(self.suggestions)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidationResult":
        """Lenient parse of a model judgment; raises ValueError on a missing verdict."""
        if not isinstance(data, dict) or "passed" not in data:
            raise ValueError("validation reply has no 'passed' field")
        passed = data["passed"]
        if isinstance(passed, str):
            passed = passed.strip().lower() == "true"
        return cls(
            passed=bool(passed),
            issues=_text_list(data.get("issues")),
            suggestions=_text_list(data.get("suggestions")),
        )


def _text_list(value: Any) -> List[str]:
    """A single string becomes one item; any other non-list is dropped."""
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(v) for v in value]
    return []


@dataclass
class OrchestrationRequest:
    """One user request plus the identity it runs under."""

    prompt: str
    user_id: str
    project_id: str
    session_id: Optional[str] = None


@dataclass
class OrchestrationResult:
    state: OrchestratorState
    response: str = ""
    mode: Optional[Mode] = None
    plan: Optional[ExecutionPlan] = None
    step_results: List[StepResult] = field(default_factory=list)
    validation: Optional[ValidationResult] = None
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[Dict[str, Any]] = None

    @property
    def tools_used(self) -> List[str]:
        names = [c["name"] for c in self.tool_calls]
        names.extend(r.tool_name for r in self.step_results if r.tool_name and r.status != StepStatus.SKIPPED)
        return names

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "response": self.response,
            "mode": self.mode.value if self.mode else None,
            "plan": self.plan.to_dict() if self.plan else None,
            "steps": [r.to_dict() for r in self.step_results],
            "validation": self.validation.to_dict() if self.validation else None,
            "toolCalls": list(self.tool_calls),
            "error": self.error,
        }
