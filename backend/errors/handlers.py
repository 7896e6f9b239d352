"""
Error handling decorators and utilities for Nova.

Provides a decorator for lookups whose failures must be absorbed locally
and a helper for consistent error logging.
"""

import logging
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from .exceptions import NovaError

# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., Any])


def degrade_on_error(label: str, default: Any = "", logger: Optional[logging.Logger] = None):
    """Decorator for async lookups that must never raise.

    Any exception is logged as a warning and replaced by ``default``.

    Args:
        label: Name used in the log line
        default: Value returned on failure
        logger: Optional logger instance (defaults to a label-specific logger)

    Example:
        >>> @degrade_on_error("recent_actions")
        ... async def recent_actions(db, user_id, project_id):
        ...     rows = await db.fetch(...)
        ...     return format_rows(rows)
    """

    def decorator(func: F) -> F:
        log = logger or logging.getLogger(f"nova.{label}")

        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await func(*args, **kwargs)
            except NovaError as e:
                log.warning(f"[{label}] {e.code.value}: {e.message}")
                return default
            except Exception as e:
                log.warning(f"[{label}] degraded: {type(e).__name__}: {e}")
                return default

        return wrapper  # type: ignore

    return decorator


def log_error(
    logger: logging.Logger, error: Exception, context: Optional[str] = None, include_traceback: bool = True
) -> None:
    """Log an error with consistent formatting.

    Example:
        >>> log_error(logger, err, context="PLAN")
        # Logs: "[PLAN] PLAN_INVALID_STEPS: Planning returned invalid steps JSON"
    """
    if isinstance(error, NovaError):
        message = f"{error.code.value}: {error.message}"
    else:
        message = f"{type(error).__name__}: {error}"

    if context:
        message = f"[{context}] {message}"

    logger.error(message, exc_info=include_traceback)
