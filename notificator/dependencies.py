"""
Dependency injection configuration for FastAPI.

The push service is owned by the application (``app.state.push_service``)
and resolved per request, so tests can hand a prepared service to
``application()`` instead of patching globals.

Example:
    ```python
    @router.post("/api/{user_id}/push", dependencies=[AuthDep])
    async def push(user_id: str, service: PushServiceDep) -> Response:
        ...
    ```
"""

import hmac
from json import JSONDecodeError
from typing import Annotated, Any

from fastapi import Depends, Header, HTTPException, Request, status

from notificator.constants import AUTH_HEADER
from notificator.exceptions import ValidationError
from notificator.logging import logger
from notificator.managers.push_service import PushService
from notificator.settings import app_settings


def get_push_service(request: Request) -> PushService:
    """Return the push service owned by the running application."""
    return request.app.state.push_service


PushServiceDep = Annotated[PushService, Depends(get_push_service)]


def verify_auth_token(
    x_auth_token: Annotated[str | None, Header(alias=AUTH_HEADER)] = None,
) -> None:
    """
    Check the shared-secret header, byte for byte.

    Raises:
        HTTPException: 401 when the header is missing or does not match.
    """
    expected = app_settings.AUTH_TOKEN.get_secret_value().encode()
    provided = (x_auth_token or "").encode()

    if x_auth_token is None or not hmac.compare_digest(provided, expected):
        logger.warning("Rejected control request with invalid auth token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


AuthDep = Depends(verify_auth_token)


async def read_body(request: Request) -> dict[str, Any]:
    """
    Parse a JSON or url-encoded form request body into a dict.

    An empty body yields an empty dict.

    Raises:
        ValidationError: The body is not a JSON object or a form.
    """
    content_type = request.headers.get("content-type", "")

    if content_type.startswith(
        ("application/x-www-form-urlencoded", "multipart/form-data")
    ):
        form = await request.form()
        return dict(form)

    raw = await request.body()
    if not raw:
        return {}

    try:
        body = await request.json()
    except (JSONDecodeError, UnicodeDecodeError) as ex:
        raise ValidationError(f"Malformed request body: {ex}") from ex

    if not isinstance(body, dict):
        raise ValidationError("Request body must be an object")
    return body
