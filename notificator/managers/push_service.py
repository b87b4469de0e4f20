import asyncio
import time
from datetime import UTC, datetime, timedelta
from typing import Any

from notificator.exceptions import SlotConflictError, UnknownConnectionError
from notificator.logging import logger, mask_slot_id
from notificator.registry import ConnectionRegistry
from notificator.schemas import ConnectionSlot
from notificator.storage.base import TransportHandle
from notificator.utils.metrics import (
    bind_attempts_total,
    push_deliveries_total,
    push_fanout_duration_seconds,
    push_requests_total,
    slots_registered_total,
)


class PushService:
    """
    Entry point for both the control plane and the transport adapter.

    Wraps a ``ConnectionRegistry`` with the register / bind / unbind / push
    operations and performs the per-user fanout. One instance is created per
    application and handed to the HTTP routes and WebSocket endpoint.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry

    async def register_user(self, user_id: str, slot_id: str) -> None:
        """
        Register a pending connection slot for a user.

        Must run before the transport connection binds the same slot id.

        Args:
            user_id: Id of the user.
            slot_id: Id of the connection slot.

        Raises:
            SlotConflictError: The slot id is already registered for the user.
        """
        logger.info(
            f"Register user: userId '{user_id}' connectionId '{mask_slot_id(slot_id)}'"
        )

        if not await self.registry.register_intent(user_id, slot_id):
            slots_registered_total.labels(result="duplicate").inc()
            raise SlotConflictError(
                f"Connection {mask_slot_id(slot_id)} is already registered "
                f"for user {user_id}"
            )

        slots_registered_total.labels(result="created").inc()
        logger.info(
            f"Registered connection {mask_slot_id(slot_id)} for user {user_id}"
        )

    async def bind_connection(
        self, user_id: str, slot_id: str, handle: TransportHandle
    ) -> bool:
        """
        Bind a live transport handle to a previously registered slot.

        Returns:
            True if the handle was bound. False means no matching pending
            slot exists and the client has to register again.
        """
        bound = await self.registry.bind_transport(user_id, slot_id, handle)
        bind_attempts_total.labels(result="bound" if bound else "rejected").inc()

        if bound:
            logger.info(
                f"Registered socket {handle.connection_id} for connection "
                f"{mask_slot_id(slot_id)} and user {user_id}"
            )
        else:
            logger.info(
                f"No pending connection {mask_slot_id(slot_id)} for user {user_id}"
            )
        return bound

    async def handle_connected(self, handle: TransportHandle) -> None:
        """Transport ``connect`` event."""
        self.registry.track_connection(handle)
        logger.debug(f"New connection: socket '{handle.connection_id}'")

    async def attach_socket(self, user_id: str, socket_id: str) -> bool:
        """
        Register and bind in one step for an already connected socket.

        The socket id doubles as the slot id.

        Raises:
            UnknownConnectionError: No live connection with this id exists
                on this instance.
            SlotConflictError: A slot with this id is already registered.
        """
        handle = self.registry.get_connection(socket_id)
        if handle is None:
            raise UnknownConnectionError(f"Unknown socket {socket_id}")
        if self.registry.get_binding(handle) is not None:
            bind_attempts_total.labels(result="rejected").inc()
            logger.info(f"Socket {socket_id} is already bound")
            return False

        with self.registry.operation(handle):
            await self.register_user(user_id, socket_id)
            try:
                bound = await self.bind_connection(user_id, socket_id, handle)
            finally:
                # A failed bind leaves nothing behind
                if self.registry.get_binding(handle) != (user_id, socket_id):
                    await self.registry.remove_slot(user_id, socket_id)
        return bound

    async def remove_connection(self, handle: TransportHandle) -> None:
        """Transport ``disconnect`` event. Unknown handles are ignored."""
        binding = self.registry.get_binding(handle)
        if await self.registry.unbind_by_handle(handle):
            user_id, slot_id = binding
            logger.info(
                f"Removed socket for user {user_id} and connection "
                f"{mask_slot_id(slot_id)}"
            )
        else:
            logger.debug(
                f"Removed unbound socket '{handle.connection_id}'"
            )

    async def push_message(self, user_id: str, message: Any) -> int:
        """
        Send a message to every live connection of a user.

        Each send is independent: a failing connection is logged and
        skipped, and never stops delivery to the others. A user without
        live connections is a silent no-op.

        Args:
            user_id: Id of the user.
            message: Notification payload.

        Returns:
            Number of connections the message was delivered to.
        """
        push_requests_total.inc()
        handles = await self.registry.list_live_handles(user_id)
        logger.info(
            f"Push message: userId '{user_id}' to {len(handles)} connection(s)"
        )
        if not handles:
            return 0

        async def safe_send(handle: TransportHandle) -> bool:
            try:
                await handle.send(message)
            except Exception as e:
                logger.warning(
                    f"Failed to send to connection {handle.connection_id} "
                    f"of user {user_id}: {e}"
                )
                push_deliveries_total.labels(status="error").inc()
                return False
            push_deliveries_total.labels(status="success").inc()
            return True

        start_time = time.perf_counter()
        results = await asyncio.gather(
            *[safe_send(handle) for handle in handles]
        )
        push_fanout_duration_seconds.observe(time.perf_counter() - start_time)

        return sum(results)

    async def list_slots(self, user_id: str) -> list[ConnectionSlot]:
        return await self.registry.list_slots(user_id)

    async def remove_slot(self, user_id: str, slot_id: str) -> None:
        await self.registry.remove_slot(user_id, slot_id)
        logger.info(
            f"Removed connection {mask_slot_id(slot_id)} of user {user_id}"
        )

    async def purge_pending(self, user_id: str, older_than_seconds: int) -> int:
        """
        Remove pending slots of a user that never got bound.

        Args:
            user_id: Id of the user.
            older_than_seconds: Minimum age of a pending slot to be removed.

        Returns:
            Number of removed slots.
        """
        cutoff = datetime.now(UTC) - timedelta(seconds=older_than_seconds)
        removed = await self.registry.remove_stale_pending(user_id, cutoff)
        if removed:
            logger.info(
                f"Purged {removed} pending connection(s) of user {user_id}"
            )
        return removed

    async def ping(self) -> bool:
        return await self.registry.store.ping()

    async def close(self) -> None:
        await self.registry.store.close()
