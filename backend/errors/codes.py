"""
Error codes for Nova.

Provides a standardized taxonomy of error codes organized by category.
Use these codes consistently across all error responses and error events.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Standardized error codes for Nova.

    Categories:
    - LLM_*: Reasoning model errors
    - PLAN_*: Plan synthesis errors (fatal to a request)
    - TOOL_*: Tool dispatch errors (recorded per step)
    - EXTERNAL_*: Embedding, vector index, persistence and session store errors
    - VALIDATION_*: Request input errors
    - CONFIG_*: Startup and configuration errors
    - INTERNAL_*: Internal/unexpected errors
    """

    # Reasoning model
    LLM_UNAVAILABLE = "LLM_UNAVAILABLE"
    LLM_TIMEOUT = "LLM_TIMEOUT"
    LLM_HTTP_ERROR = "LLM_HTTP_ERROR"
    LLM_RATE_LIMITED = "LLM_RATE_LIMITED"
    LLM_RESPONSE_INVALID = "LLM_RESPONSE_INVALID"

    # Planning
    PLAN_UPSTREAM_FAILED = "PLAN_UPSTREAM_FAILED"
    PLAN_MISSING_TOOL_CALL = "PLAN_MISSING_TOOL_CALL"
    PLAN_INVALID_STEPS = "PLAN_INVALID_STEPS"

    # Tool dispatch
    TOOL_NOT_FOUND = "TOOL_NOT_FOUND"
    TOOL_INVALID_INPUT = "TOOL_INVALID_INPUT"
    TOOL_EXECUTION_FAILED = "TOOL_EXECUTION_FAILED"

    # External services
    EXTERNAL_EMBEDDING_FAILED = "EXTERNAL_EMBEDDING_FAILED"
    EXTERNAL_VECTOR_INDEX_FAILED = "EXTERNAL_VECTOR_INDEX_FAILED"
    EXTERNAL_DATABASE_FAILED = "EXTERNAL_DATABASE_FAILED"
    EXTERNAL_NETWORK_ERROR = "EXTERNAL_NETWORK_ERROR"

    # Request validation
    VALIDATION_MISSING_PARAM = "VALIDATION_MISSING_PARAM"
    VALIDATION_INVALID_FORMAT = "VALIDATION_INVALID_FORMAT"

    # Configuration
    CONFIG_TOOL_UNHANDLED = "CONFIG_TOOL_UNHANDLED"
    CONFIG_INVALID = "CONFIG_INVALID"

    # Internal errors (unexpected failures)
    INTERNAL_UNEXPECTED = "INTERNAL_UNEXPECTED"
    INTERNAL_STATE_ERROR = "INTERNAL_STATE_ERROR"
