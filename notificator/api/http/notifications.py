"""Control-plane endpoints: slot registration, push and socket binding."""

from typing import Annotated, Any

from fastapi import APIRouter, Query, Request, Response
from pydantic import ValidationError as PydanticValidationError

from notificator.dependencies import AuthDep, PushServiceDep, read_body
from notificator.exceptions import SlotConflictError, ValidationError
from notificator.logging import set_log_context
from notificator.schemas import (
    ConnectionSlot,
    PurgeResponse,
    PushRequest,
    SocketBindRequest,
)
from notificator.settings import app_settings
from notificator.utils.error_handler import handle_http_errors

router = APIRouter(dependencies=[AuthDep], tags=["notifications"])

ConnectionIdQuery = Annotated[str | None, Query(alias="connectionId")]


def _require(value: str | None, name: str) -> str:
    if not value:
        raise ValidationError(f"Missing {name}")
    return value


def _is_blank(message: Any) -> bool:
    """Null, false, zero and the empty string do not count as a message."""
    if message is None:
        return True
    return isinstance(message, (str, int, float)) and not message


@router.put("/api/{user_id}/register", summary="Register a pending connection")
@handle_http_errors
async def register(
    user_id: str,
    service: PushServiceDep,
    connection_id: ConnectionIdQuery = None,
) -> Response:
    """
    Register a pending connection slot for a user.

    The client must call this before presenting the same ``connectionId``
    over the WebSocket ``register`` event.
    """
    set_log_context(user_id=user_id)
    slot_id = _require(connection_id, "connectionId")

    await service.register_user(_require(user_id, "userId"), slot_id)
    return Response()


@router.delete(
    "/api/{user_id}/register", summary="Remove a connection slot"
)
@handle_http_errors
async def unregister(
    user_id: str,
    service: PushServiceDep,
    connection_id: ConnectionIdQuery = None,
) -> Response:
    set_log_context(user_id=user_id)
    await service.remove_slot(user_id, _require(connection_id, "connectionId"))
    return Response()


@router.get(
    "/api/{user_id}/connections",
    response_model=list[ConnectionSlot],
    response_model_by_alias=False,
    summary="List connection slots of a user",
)
@handle_http_errors
async def list_connections(
    user_id: str, service: PushServiceDep
) -> list[ConnectionSlot]:
    return await service.list_slots(user_id)


@router.delete(
    "/api/{user_id}/pending",
    response_model=PurgeResponse,
    summary="Remove never-bound connection slots",
)
@handle_http_errors
async def purge_pending(
    user_id: str,
    service: PushServiceDep,
    older_than: Annotated[str | None, Query(alias="olderThan")] = None,
) -> PurgeResponse:
    """
    Remove pending slots older than ``olderThan`` seconds.

    Defaults to ``PENDING_SLOT_MAX_AGE_SECONDS``. Bound slots are kept.
    """
    set_log_context(user_id=user_id)
    max_age = app_settings.PENDING_SLOT_MAX_AGE_SECONDS
    if older_than is not None:
        try:
            max_age = int(older_than)
        except ValueError as ex:
            raise ValidationError("olderThan must be an integer") from ex
    if max_age < 0:
        raise ValidationError("olderThan must not be negative")

    removed = await service.purge_pending(user_id, max_age)
    return PurgeResponse(removed=removed)


@router.post("/api/{user_id}/push", summary="Push a message to a user")
@handle_http_errors
async def push(
    user_id: str, request: Request, service: PushServiceDep
) -> Response:
    """
    Deliver ``message`` to every live connection of the user.

    Succeeds even when the user has no live connection.
    """
    set_log_context(user_id=user_id)
    body = PushRequest.model_validate(await read_body(request))
    if _is_blank(body.message):
        raise ValidationError("Missing message")

    await service.push_message(user_id, body.message)
    return Response()


@router.post("/users/{user_id}/sockets", summary="Bind a connected socket")
@handle_http_errors
async def attach_socket(
    user_id: str, request: Request, service: PushServiceDep
) -> Response:
    """
    Associate an already connected WebSocket with a user.

    ``socket_id`` is the connection id announced to the client in the
    ``connected`` event.
    """
    set_log_context(user_id=user_id)
    try:
        body = SocketBindRequest.model_validate(await read_body(request))
    except PydanticValidationError as ex:
        raise ValidationError("socket_id must be a string") from ex

    socket_id = _require(body.socket_id, "socket_id")
    if not await service.attach_socket(user_id, socket_id):
        raise SlotConflictError(f"Socket {socket_id} is already bound")
    return Response()
