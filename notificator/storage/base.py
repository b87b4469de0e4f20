"""
Protocol classes for the connection store and transport handles.

Protocols define interfaces without requiring explicit inheritance. Business
logic only ever talks to a ``ConnectionStore``; it never checks which backend
is behind it.
"""

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from notificator.schemas import ConnectionSlot


@runtime_checkable
class TransportHandle(Protocol):
    """
    A live transport connection capable of receiving messages.

    Handles are owned by the transport layer. The registry only keeps
    references to them between a successful bind and the disconnect event.
    """

    connection_id: str

    async def send(self, message: Any) -> None:
        """
        Deliver one message over this connection.

        Args:
            message: JSON-serializable notification payload.
        """
        ...


@runtime_checkable
class ConnectionStore(Protocol):
    """
    Per-user storage of connection slots.

    Every mutating operation is atomic for a given user: implementations
    serialize mutations of one user's slot set either with a per-user lock
    (in-process backend) or with the store's own atomic primitives (durable
    backend). A slot id is unique within a user's slot set.
    """

    async def create_pending_slot(self, user_id: str, slot_id: str) -> bool:
        """
        Insert a pending slot.

        Args:
            user_id: Owner of the slot.
            slot_id: Correlation token of the registration.

        Returns:
            True if the slot was created, False if a slot with this id
            already exists for the user (nothing is changed in that case).
        """
        ...

    async def try_bind(
        self, user_id: str, slot_id: str, handle: TransportHandle
    ) -> bool:
        """
        Atomically transition a pending slot to bound.

        Returns:
            True on success. False, without any mutation, if the slot is
            missing or already bound.
        """
        ...

    async def remove_slot(self, user_id: str, slot_id: str) -> None:
        """Delete a slot regardless of its state. Removing twice is a no-op."""
        ...

    async def list_bound_handles(self, user_id: str) -> list[TransportHandle]:
        """Return every bound handle of the user in slot insertion order."""
        ...

    async def list_slots(self, user_id: str) -> list[ConnectionSlot]:
        """Return a snapshot of all slots of the user in insertion order."""
        ...

    async def remove_stale_pending(
        self, user_id: str, older_than: datetime
    ) -> int:
        """
        Delete pending slots created before ``older_than``.

        Bound slots are never touched.

        Returns:
            Number of slots removed.
        """
        ...

    async def ping(self) -> bool:
        """Check that the backend is reachable."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...
