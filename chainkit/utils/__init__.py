"""Utility functions for common operations"""
import asyncio
import functools
import time
from typing import Callable


def log_execution_time(
    log_level: str = "INFO",
    include_args: bool = False,
    include_result: bool = False,
):
    """
    Decorator to log function execution time.

    Supports both synchronous and asynchronous functions.

    Args:
        log_level: Log level to use ('DEBUG', 'INFO', 'WARNING', 'ERROR')
        include_args: Whether to include function arguments in log (default: False)
        include_result: Whether to include function result in log (default: False)

    Returns:
        Decorator function

    Examples:
        >>> @log_execution_time(log_level='DEBUG', include_args=True)
        ... async def my_async_function(x):
        ...     await asyncio.sleep(0.1)
        ...     return x * 2
        >>> await my_async_function(5)
        # Logs: "Function 'my_async_function' executed in 0.101s (args: (5,))"
    """
    def decorator(func: Callable) -> Callable:
        # Import logger here to avoid circular import
        from chainkit.logger import logger

        func_name = f"{func.__module__}.{func.__qualname__}" if hasattr(func, '__qualname__') else func.__name__

        def _log_success(elapsed: float, args, kwargs, result) -> None:
            log_msg = f"Function '{func_name}' executed in {elapsed:.4f}s"
            if include_args:
                log_msg += f" (args: {args}, kwargs: {kwargs})"
            if include_result:
                result_preview = str(result)[:100] if result is not None else "None"
                log_msg += f" (result: {result_preview})"
            getattr(logger, log_level.lower())(log_msg)

        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                start_time = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    elapsed = time.perf_counter() - start_time
                    logger.error(
                        f"Function '{func_name}' failed after {elapsed:.4f}s: {e}"
                    )
                    raise
                _log_success(time.perf_counter() - start_time, args, kwargs, result)
                return result
            return async_wrapper
        else:
            @functools.wraps(func)
            def sync_wrapper(*args, **kwargs):
                start_time = time.perf_counter()
                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    elapsed = time.perf_counter() - start_time
                    logger.error(
                        f"Function '{func_name}' failed after {elapsed:.4f}s: {e}"
                    )
                    raise
                _log_success(time.perf_counter() - start_time, args, kwargs, result)
                return result
            return sync_wrapper

    return decorator


__all__ = [
    'log_execution_time',
]
