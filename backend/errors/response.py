"""
Standard error response builders for Nova.

Provides consistent response formats for HTTP bodies, stream error events
and tool errors fed back to the reasoning model.
"""

from typing import Any, Optional
from .codes import ErrorCode
from .exceptions import NovaError, ToolExecutionError


def error_response(error: NovaError | Exception, tool: Optional[str] = None, include_context: bool = True) -> dict:
    """Build a standard error response dictionary.

    Args:
        error: The exception to convert to a response
        tool: Optional tool name for context
        include_context: Whether to include the context dict (disable for privacy)

    Returns:
        Standard error response dict with success=False

    Example:
        >>> err = PlanSynthesisError("Planning did not return a plan", reason="missing_tool_call")
        >>> error_response(err)
        {
            "success": False,
            "error": {
                "code": "PLAN_MISSING_TOOL_CALL",
                "message": "Planning did not return a plan",
                "details": None,
                "tool": None,
                "recoverable": True,
                "context": None
            }
        }
    """
    if isinstance(error, NovaError):
        if tool is None and isinstance(error, ToolExecutionError):
            tool = error.tool_name
        return {
            "success": False,
            "error": {
                "code": error.code.value,
                "message": error.message,
                "details": error.details,
                "tool": tool,
                "recoverable": error.recoverable,
                "context": error.context if include_context else None,
            },
        }

    # Fallback for non-Nova exceptions
    return {
        "success": False,
        "error": {
            "code": ErrorCode.INTERNAL_UNEXPECTED.value,
            "message": str(error),
            "details": None,
            "tool": tool,
            "recoverable": False,
            "context": None,
        },
    }


def success_response(data: Optional[dict] = None, **kwargs: Any) -> dict:
    """Build a standard success response dictionary.

    Example:
        >>> success_response(response="Done", mode="single")
        {"success": True, "response": "Done", "mode": "single"}
    """
    response = {"success": True}

    if data:
        response.update(data)
    if kwargs:
        response.update(kwargs)

    return response


def format_error_for_llm(error: NovaError | Exception, tool: Optional[str] = None) -> str:
    """Format an error for inclusion in model context.

    Used as the content of an is_error tool result so the model can
    explain or work around the failure.
    """
    if isinstance(error, NovaError):
        prefix = f"Error in {tool}: " if tool else "Error: "
        parts = [f"{prefix}{error.message}"]
        if error.details:
            parts.append(f"Details: {error.details}")
        if error.recoverable:
            parts.append("This error may be recoverable with different input.")
        return " ".join(parts)

    return f"Error: {str(error)}"
