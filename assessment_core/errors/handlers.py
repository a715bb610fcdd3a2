# =============================================================================
# assessment_core/errors/handlers.py
# Error Handling Utilities for the sync core
# =============================================================================

from __future__ import annotations
import asyncio
import functools
import inspect
import traceback
from typing import Optional, Callable, TypeVar, Any

from assessment_core.logging import get_logger
from .exceptions import AssessmentSyncError

logger = get_logger(__name__)

T = TypeVar("T")


def handle_error(
    error: Exception,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> dict:
    """
    Centralized error handling function.

    Args:
        error: The exception to handle
        log_error: Whether to log the error
        user_message: Custom message (uses error message if None)

    Returns:
        Serializable summary of the error for the presentation layer
    """
    if isinstance(error, AssessmentSyncError):
        message = user_message or error.message
        code = error.code
        details = error.details
        recoverable = error.recoverable
    else:
        message = user_message or str(error)
        code = "UNKNOWN"
        details = {"traceback": traceback.format_exc()}
        recoverable = True

    if log_error:
        logger.error(
            f"[{code}] {message}",
            extra={"details": details},
            exc_info=error,
        )

    return {
        "code": code,
        "message": message,
        "details": details,
        "recoverable": recoverable,
    }


def safe_execute(
    func: Callable[..., T],
    *args,
    default: Optional[T] = None,
    error_message: Optional[str] = None,
    reraise: bool = False,
    **kwargs,
) -> Optional[T]:
    """
    Execute a function with automatic error handling.

    Args:
        func: Function to execute
        *args: Positional arguments to pass to func
        default: Default value to return on error
        error_message: Custom error message to log
        reraise: Whether to reraise the exception after handling
        **kwargs: Keyword arguments to pass to func

    Returns:
        Function result or default value on error

    Usage:
        safe_execute(on_change, error_message="Error in change callback")
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        handle_error(e, user_message=error_message)
        if reraise:
            raise
        return default


class ErrorContext:
    """
    Context manager for error handling with automatic logging.

    Usage:
        with ErrorContext("Refresh after remote change"):
            ...

        # On error, logs "Error during: Refresh after remote change" and,
        # when recoverable, suppresses the exception.
    """

    def __init__(self, operation: str, recoverable: bool = True):
        self.operation = operation
        self.recoverable = recoverable
        self.error: Optional[BaseException] = None

    def __enter__(self) -> ErrorContext:
        logger.debug(f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            logger.debug(f"Completed: {self.operation}")
            return False

        # Cancellation is not an error
        if issubclass(exc_type, asyncio.CancelledError):
            return False

        self.error = exc_val
        if isinstance(exc_val, AssessmentSyncError):
            handle_error(exc_val)
        else:
            handle_error(exc_val, user_message=f"Error during: {self.operation}")

        return self.recoverable


def error_boundary(
    default_return: Any = None,
    error_message: Optional[str] = None,
    log: bool = True,
):
    """
    Decorator to wrap functions with error handling.

    Coroutine functions stay coroutine functions; the wrapper awaits them.

    Usage:
        @error_boundary(default_return=False, error_message="Upsert failed")
        async def save(row: dict) -> bool:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        def _report(e: Exception) -> None:
            if log:
                prefix = error_message or f"Error in {func.__name__}"
                logger.error(f"{prefix}: {e}", exc_info=True)

        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    _report(e)
                    return default_return

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                _report(e)
                return default_return

        return wrapper

    return decorator
