"""
Nova Error Handling Module

Provides standardized error codes, exceptions, and response builders
for consistent error handling across the service.

Usage:
    from errors import (
        # Error codes
        ErrorCode,

        # Exceptions
        NovaError,
        LLMError,
        PlanSynthesisError,
        ToolExecutionError,
        ToolInputError,
        ExternalServiceError,
        ValidationError,
        ConfigurationError,

        # Response builders
        error_response,
        success_response,
        format_error_for_llm,

        # Helpers
        degrade_on_error,
        log_error,
    )

Example:
    from errors import ToolInputError

    async def read_page(tool_input, context):
        path = tool_input.get("path", "")
        if not path.startswith("/"):
            raise ToolInputError("read_page", "path must be absolute")
        ...
"""

from .codes import ErrorCode
from .exceptions import (
    NovaError,
    LLMError,
    PlanSynthesisError,
    ToolExecutionError,
    ToolInputError,
    ExternalServiceError,
    ValidationError,
    ConfigurationError,
)
from .response import (
    error_response,
    success_response,
    format_error_for_llm,
)
from .handlers import (
    degrade_on_error,
    log_error,
)

__all__ = [
    # Error codes
    "ErrorCode",
    # Exceptions
    "NovaError",
    "LLMError",
    "PlanSynthesisError",
    "ToolExecutionError",
    "ToolInputError",
    "ExternalServiceError",
    "ValidationError",
    "ConfigurationError",
    # Response builders
    "error_response",
    "success_response",
    "format_error_for_llm",
    # Helpers
    "degrade_on_error",
    "log_error",
]
