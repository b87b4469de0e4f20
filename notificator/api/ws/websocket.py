import json
import uuid
from typing import Any

from pydantic import ValidationError
from starlette.endpoints import WebSocketEndpoint
from starlette.websockets import WebSocket

from notificator.constants import (
    WS_EVENT_CONNECTED,
    WS_EVENT_ERROR,
    WS_EVENT_MESSAGE,
    WS_EVENT_REGISTER,
    WS_EVENT_REGISTERED,
    WS_UNSUPPORTED_DATA_CODE,
)
from notificator.exceptions import StorageError
from notificator.logging import logger
from notificator.managers.push_service import PushService
from notificator.schemas import ClientEvent, RegisterEventData
from notificator.utils.metrics import (
    ws_connections_active,
    ws_connections_total,
    ws_events_received_total,
)


class WebSocketHandle:
    """
    Transport handle wrapping one accepted WebSocket connection.

    Every frame sent to the client is an event envelope
    ``{"event": ..., "data": ...}``.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.connection_id = str(uuid.uuid4())

    async def emit(self, event: str, data: Any) -> None:
        await self.websocket.send_text(json.dumps({"event": event, "data": data}))

    async def send(self, message: Any) -> None:
        """Deliver a pushed notification."""
        await self.emit(WS_EVENT_MESSAGE, message)

    def __repr__(self) -> str:
        return f"WebSocketHandle({self.connection_id})"


class NotificationWebSocketEndpoint(WebSocketEndpoint):  # type: ignore[misc]
    """
    WebSocket endpoint feeding transport events into the push service.

    - connect: the socket is accepted, wrapped in a ``WebSocketHandle`` and
      announced to the client together with its connection id
    - ``register`` event: completes the handshake for ``(userId, connectionId)``
    - disconnect: the handle and its slot are removed
    """

    encoding = "text"

    async def on_connect(self, websocket: WebSocket) -> None:  # type: ignore[override]
        """
        Accepts the connection and registers its handle.

        The client learns its connection id from the ``connected`` event. If
        the upgrade request carries ``userId`` and ``connectionId`` query
        parameters the handshake is completed right away.
        """
        await websocket.accept()

        self.service: PushService = websocket.app.state.push_service
        self.handle = WebSocketHandle(websocket)
        await self.service.handle_connected(self.handle)

        ws_connections_total.labels(status="accepted").inc()
        ws_connections_active.inc()

        await self.handle.emit(
            WS_EVENT_CONNECTED, {"connection_id": self.handle.connection_id}
        )

        query_params = websocket.query_params
        if query_params.get("userId") and query_params.get("connectionId"):
            await self.register(
                {
                    "userId": query_params["userId"],
                    "connectionId": query_params["connectionId"],
                }
            )

    async def on_receive(self, websocket: WebSocket, data: str) -> None:  # type: ignore[override]
        """
        Dispatches a client event.

        Frames that are not JSON close the connection with 1003. Unknown
        events are ignored.
        """
        try:
            event = ClientEvent.model_validate(json.loads(data))
        except (ValueError, ValidationError):
            logger.debug(
                f"Received invalid data from connection {self.handle.connection_id}"
            )
            await websocket.close(code=WS_UNSUPPORTED_DATA_CODE)
            return

        ws_events_received_total.labels(event=event.event).inc()

        if event.event == WS_EVENT_REGISTER:
            await self.register(event.data)
        else:
            logger.debug(
                f"Ignoring unknown event '{event.event}' from connection "
                f"{self.handle.connection_id}"
            )

    async def register(self, data: dict[str, Any]) -> None:
        """Client ``register`` event: bind this handle to a pending slot."""
        try:
            payload = RegisterEventData.model_validate(data)
        except ValidationError:
            await self.handle.emit(
                WS_EVENT_ERROR, {"detail": "userId and connectionId are required"}
            )
            return

        try:
            success = await self.service.bind_connection(
                payload.user_id, payload.connection_id, self.handle
            )
        except StorageError as ex:
            await self.handle.emit(WS_EVENT_ERROR, {"detail": ex.message})
            return

        await self.handle.emit(WS_EVENT_REGISTERED, {"success": success})

    async def on_disconnect(self, websocket: WebSocket, close_code: int) -> None:  # type: ignore[override]
        """Removes the handle and its slot from the registry."""
        handle = getattr(self, "handle", None)
        if handle is None:
            return

        ws_connections_active.dec()
        ws_connections_total.labels(status="disconnected").inc()

        try:
            await self.service.remove_connection(handle)
        except StorageError as ex:
            logger.error(
                f"Failed to remove connection {handle.connection_id}: {ex.message}"
            )

        logger.debug(
            f"Connection {handle.connection_id} disconnected with code {close_code}"
        )
