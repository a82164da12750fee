"""
Decorators shared by the pipeline stages.

``handle_errors`` turns a failure of an optional stage (index export, cache
refresh) into a logged warning and a fallback value. ``track_performance``
logs how long a catalog operation took.
"""

import functools
import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar, cast

F = TypeVar('F', bound=Callable[..., Any])


def _logger_for(func: Callable, args: tuple) -> logging.Logger:
    # Instance logger when decorating a method, module logger otherwise
    if args and isinstance(getattr(args[0], 'logger', None), logging.Logger):
        return args[0].logger
    return logging.getLogger(func.__module__)


def _describe_call(func: Callable, args: tuple) -> str:
    owner = type(args[0]).__name__ + "." if args and hasattr(args[0], func.__name__) else ""
    paths = [str(arg) for arg in args[1:] if isinstance(arg, Path)]
    where = f" ({paths[0]})" if paths else ""
    return f"{owner}{func.__name__}{where}"


def handle_errors(log_level: str = "error", return_on_error: Optional[Any] = None) -> Callable[[F], F]:
    """
    Log any exception raised by the wrapped function and return a fallback.

    Args:
        log_level: Logger method used for the message (warning, error, ...)
        return_on_error: Value returned instead of raising

    Example:
        @handle_errors(log_level="warning", return_on_error=None)
        def export(self) -> Optional[Dict[str, int]]:
            ...
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                log = getattr(_logger_for(func, args), log_level)
                log(f"{_describe_call(func, args)} failed: {e}", exc_info=True)
                return return_on_error

        return cast(F, wrapper)

    return decorator


def track_performance(threshold_ms: Optional[float] = None) -> Callable[[F], F]:
    """Log the duration of each call; a warning when it exceeds ``threshold_ms``"""
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            start = time.perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                elapsed_ms = (time.perf_counter() - start) * 1000
                logger = _logger_for(func, args)
                if threshold_ms is not None and elapsed_ms > threshold_ms:
                    logger.warning(f"{func.__name__} took {elapsed_ms:.0f}ms (threshold {threshold_ms:.0f}ms)")
                else:
                    logger.debug(f"{func.__name__} took {elapsed_ms:.2f}ms")

        return cast(F, wrapper)

    return decorator
