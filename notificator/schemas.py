from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field


class SlotState(StrEnum):
    """
    Lifecycle state of a connection slot.

    A slot is created ``PENDING`` by a registration call and becomes
    ``BOUND`` once, when a transport connection presenting the same slot id
    is attached to it. Removal deletes the slot outright.
    """

    PENDING = "pending"
    BOUND = "bound"


class ConnectionSlot(BaseModel):
    """
    Snapshot of a registration record.

    Field aliases follow the durable record layout
    (``{id, body, registeredDate, savedDate}``) so a stored entry can be
    validated directly; ``body`` holds the connection id of the bound
    transport handle, or null while the slot is pending.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    slot_id: str = Field(alias="id")
    connection_id: str | None = Field(default=None, alias="body")
    created_at: datetime = Field(alias="registeredDate")
    bound_at: datetime | None = Field(default=None, alias="savedDate")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def state(self) -> SlotState:
        if self.connection_id is None:
            return SlotState.PENDING
        return SlotState.BOUND


class PushRequest(BaseModel):
    message: Any = None


class SocketBindRequest(BaseModel):
    socket_id: str | None = None


class PurgeResponse(BaseModel):
    removed: int


class InfoResponse(BaseModel):
    name: str
    version: str


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    storage: str


class ClientEvent(BaseModel):
    """Envelope of every event a client sends over the WebSocket."""

    event: str
    data: dict[str, Any] = Field(default_factory=dict)


class RegisterEventData(BaseModel):
    """Payload of the client ``register`` event completing the handshake."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    connection_id: str = Field(alias="connectionId", min_length=1)
