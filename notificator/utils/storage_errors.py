"""
Decorator for consistent Redis error translation.

Wraps async store methods that perform Redis round trips so that
Redis-related exceptions are logged uniformly, counted, and re-raised as
``StorageError``. Nothing is retried here; the caller decides.

Usage::

    class MyStore:
        @raises_storage_error(operation_name="fetch_item")
        async def fetch(self, key: str) -> dict | None:
            raw = await self.redis.get(key)
            return json.loads(raw) if raw else None
"""

import functools
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from redis.exceptions import RedisError

from notificator.exceptions import StorageError
from notificator.logging import logger
from notificator.utils.metrics import storage_errors_total

F = TypeVar("F", bound=Callable[..., Coroutine[Any, Any, Any]])

_REDIS_ERRORS = (
    RedisError,
    ConnectionError,
    TimeoutError,
    OSError,
)


def raises_storage_error(
    *, operation_name: str | None = None
) -> Callable[[F], F]:
    """
    Decorator that turns Redis failures into ``StorageError``.

    Args:
        operation_name: Label used in log messages and the
            ``notificator_storage_errors_total`` metric. Defaults to the
            decorated function's name.

    Returns:
        Decorator that wraps an async function with Redis error handling.
    """

    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return await func(*args, **kwargs)
            except _REDIS_ERRORS as exc:
                logger.error(f"Redis error in {op_name}: {exc}")
                storage_errors_total.labels(operation=op_name).inc()
                raise StorageError(
                    f"Connection store unavailable during {op_name}",
                    operation=op_name,
                ) from exc

        return wrapper  # type: ignore[return-value]

    return decorator
