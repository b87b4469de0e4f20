from fastapi import APIRouter

from notificator.api.ws.websocket import NotificationWebSocketEndpoint
from notificator.constants import WS_PATH

router = APIRouter()


@router.websocket_route(WS_PATH)
class Notifications(NotificationWebSocketEndpoint):
    """
    Real-time notification socket.

    Clients connect here, read their connection id from the ``connected``
    event, and complete registration with a ``register`` event carrying the
    ``userId`` / ``connectionId`` pair registered over HTTP.
    """
