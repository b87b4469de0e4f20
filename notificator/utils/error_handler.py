"""
Error handler decorator for control-plane endpoints.

Converts AppException instances raised by the push service or request
parsing into HTTPException responses, so endpoints need no try/except.
"""

from functools import wraps
from typing import Any, Callable

from fastapi import HTTPException

from notificator.exceptions import AppException
from notificator.logging import logger


def handle_http_errors(func: Callable) -> Callable:
    """
    Decorator for HTTP endpoints to convert AppException to HTTPException.

    Args:
        func: The HTTP endpoint function to wrap.

    Returns:
        Wrapped function that handles exceptions.

    Example:
        ```python
        @router.post("/api/{user_id}/push")
        @handle_http_errors
        async def push(user_id: str, service: PushServiceDep) -> Response:
            await service.push_message(user_id, message)  # No try/except needed!
        ```
    """

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)
        except AppException as ex:
            log = logger.error if ex.http_status >= 500 else logger.warning
            log(
                f"{type(ex).__name__} in {func.__name__}: {ex.message}",
                extra={"exception_type": type(ex).__name__},
            )
            raise HTTPException(status_code=ex.http_status, detail=ex.message)

    return wrapper
