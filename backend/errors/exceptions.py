"""
Custom exception hierarchy for Nova.

All exceptions inherit from NovaError and include:
- code: ErrorCode for categorization
- message: Human-readable error message
- details: Optional additional context
- recoverable: Whether the caller can retry/fix the issue
- context: Additional key-value pairs for debugging
"""

from typing import Any, Iterable, Optional
from .codes import ErrorCode


class NovaError(Exception):
    """Base exception for all Nova errors.

    Attributes:
        code: The ErrorCode categorizing this error
        message: Human-readable error message
        details: Optional additional context for the user
        recoverable: Whether the error can be resolved by user action
        context: Additional debugging information
    """

    code: ErrorCode = ErrorCode.INTERNAL_UNEXPECTED
    recoverable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        recoverable: Optional[bool] = None,
        **context: Any,
    ):
        self.message = message
        self.details = details
        self.context = context if context else None

        # Allow overriding class defaults
        if code is not None:
            self.code = code
        if recoverable is not None:
            self.recoverable = recoverable

        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message

    def to_dict(self) -> dict:
        """Convert exception to dictionary for JSON serialization."""
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
            "context": self.context,
        }


class LLMError(NovaError):
    """Error from the reasoning model collaborator.

    Carries the upstream HTTP status and response body when the call
    reached the server.
    """

    code = ErrorCode.LLM_UNAVAILABLE
    recoverable = False

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        model: Optional[str] = None,
        status_code: Optional[int] = None,
        body_text: Optional[str] = None,
        error_type: Optional[str] = None,
        **context: Any,
    ):
        if error_type == "timeout":
            code = ErrorCode.LLM_TIMEOUT
        elif error_type == "invalid":
            code = ErrorCode.LLM_RESPONSE_INVALID
        elif status_code in (429, 529):
            code = ErrorCode.LLM_RATE_LIMITED
        elif status_code is not None:
            code = ErrorCode.LLM_HTTP_ERROR
        else:
            code = ErrorCode.LLM_UNAVAILABLE

        self.status_code = status_code
        self.body_text = body_text or ""

        ctx = {**context}
        if model:
            ctx["model"] = model
        if status_code is not None:
            ctx["status_code"] = status_code
        super().__init__(message, details, code=code, **ctx)


class PlanSynthesisError(NovaError):
    """Planner failure. Fatal to the request; there is no fallback plan."""

    code = ErrorCode.PLAN_UPSTREAM_FAILED
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        reason: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        if reason == "missing_tool_call":
            code = ErrorCode.PLAN_MISSING_TOOL_CALL
        elif reason == "invalid_steps":
            code = ErrorCode.PLAN_INVALID_STEPS
        else:
            code = ErrorCode.PLAN_UPSTREAM_FAILED

        self.status_code = status_code

        ctx = {**context}
        if status_code is not None:
            ctx["status_code"] = status_code
        super().__init__(message, details, code=code, **ctx)


class ToolExecutionError(NovaError):
    """A tool failed. Carries {tool_name, message}; recorded, not fatal."""

    code = ErrorCode.TOOL_EXECUTION_FAILED
    recoverable = True

    def __init__(
        self,
        tool_name: str,
        message: str,
        details: Optional[str] = None,
        code: Optional[ErrorCode] = None,
        **context: Any,
    ):
        self.tool_name = tool_name
        super().__init__(message, details, code=code, tool_name=tool_name, **context)


class ToolInputError(ToolExecutionError):
    """Tool input failed validation at the dispatch boundary."""

    code = ErrorCode.TOOL_INVALID_INPUT

    def __init__(self, tool_name: str, message: str, missing: Optional[Iterable[str]] = None, **context: Any):
        ctx = {**context}
        if missing:
            ctx["missing"] = list(missing)
        super().__init__(tool_name, message, **ctx)


class ExternalServiceError(NovaError):
    """Error with external services (embeddings, vector index, PostgreSQL)."""

    code = ErrorCode.EXTERNAL_NETWORK_ERROR
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        service: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        if service == "embedding":
            code = ErrorCode.EXTERNAL_EMBEDDING_FAILED
        elif service == "vector_index":
            code = ErrorCode.EXTERNAL_VECTOR_INDEX_FAILED
        elif service == "database":
            code = ErrorCode.EXTERNAL_DATABASE_FAILED
        else:
            code = ErrorCode.EXTERNAL_NETWORK_ERROR

        ctx = {**context}
        if service:
            ctx["service"] = service
        if status_code:
            ctx["status_code"] = status_code
        super().__init__(message, details, code=code, **ctx)


class ValidationError(NovaError):
    """Error during request input validation."""

    code = ErrorCode.VALIDATION_MISSING_PARAM
    recoverable = True

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        parameter: Optional[str] = None,
        received: Optional[str] = None,
        **context: Any,
    ):
        ctx = {**context}
        if parameter:
            ctx["parameter"] = parameter
        if received:
            ctx["received"] = received
        super().__init__(message, details, **ctx)


class ConfigurationError(NovaError):
    """Startup configuration error, e.g. an advertised tool with no handler."""

    code = ErrorCode.CONFIG_INVALID
    recoverable = False
