"""
Connection registry implementing the two-phase registration handshake.

A client first announces its identity over the control plane
(``register_intent``), which creates a pending slot. The transport connection
then presents the same slot id (``bind_transport``) and the live handle is
attached to that slot. Disconnects remove the slot through a reverse lookup
from the handle.
"""

from collections import Counter, defaultdict
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime

from notificator.exceptions import StorageError
from notificator.logging import logger, mask_slot_id
from notificator.schemas import ConnectionSlot
from notificator.storage.base import ConnectionStore, TransportHandle


class ConnectionRegistry:
    """
    Owns the slot lifecycle ``Pending -> Bound -> Removed`` on top of a
    ``ConnectionStore``.

    Besides the store, the registry keeps in-process indexes keyed by
    connection id: every transport handle currently connected to this
    instance, and the ``(user_id, slot_id)`` each bound handle belongs to.
    A handle binds at most one slot.

    A disconnect can arrive while a bind of the same handle is still waiting
    on the store. Such handles are marked closed, and the bind undoes itself
    once the store answers, so no reference to the handle outlives the
    disconnect.
    """

    def __init__(self, store: ConnectionStore) -> None:
        self.store = store
        self._connections: dict[str, TransportHandle] = {}
        self._bindings: dict[str, tuple[str, str]] = {}
        self._in_flight: Counter[str] = Counter()
        self._closed: set[str] = set()
        # Bound slots whose removal failed on disconnect, retried later
        self._orphaned: defaultdict[str, set[str]] = defaultdict(set)

    def track_connection(self, handle: TransportHandle) -> None:
        """Index a freshly connected handle by its connection id."""
        self._connections[handle.connection_id] = handle

    def get_connection(self, connection_id: str) -> TransportHandle | None:
        return self._connections.get(connection_id)

    def get_binding(self, handle: TransportHandle) -> tuple[str, str] | None:
        """Return the ``(user_id, slot_id)`` a handle is bound to, if any."""
        return self._bindings.get(handle.connection_id)

    def is_closed(self, handle: TransportHandle) -> bool:
        """True if the handle disconnected while an operation on it ran."""
        return handle.connection_id in self._closed

    @contextmanager
    def operation(self, handle: TransportHandle) -> Iterator[None]:
        """
        Mark a multi-step operation on ``handle`` as in flight.

        A disconnect of the handle during the block is remembered until the
        last in-flight operation on it ends.
        """
        connection_id = handle.connection_id
        self._in_flight[connection_id] += 1
        try:
            yield
        finally:
            self._in_flight[connection_id] -= 1
            if self._in_flight[connection_id] <= 0:
                del self._in_flight[connection_id]
                self._closed.discard(connection_id)

    async def register_intent(self, user_id: str, slot_id: str) -> bool:
        """
        Create the pending slot a later bind will complete.

        Returns:
            False if the slot id is already registered for the user.
        """
        await self.retry_orphaned(user_id)
        return await self.store.create_pending_slot(user_id, slot_id)

    async def bind_transport(
        self, user_id: str, slot_id: str, handle: TransportHandle
    ) -> bool:
        """
        Attach a live handle to a pending slot.

        Returns:
            False when there is no matching pending slot, when the handle
            is already bound elsewhere, or when the handle disconnected
            before the store confirmed the bind. The caller decides whether
            to retry the handshake or give up.
        """
        connection_id = handle.connection_id
        if connection_id in self._bindings or self.is_closed(handle):
            logger.debug(f"Handle {connection_id} is already bound or closed")
            return False

        with self.operation(handle):
            # Reserve before awaiting so a concurrent bind of the same handle fails
            self._bindings[connection_id] = (user_id, slot_id)
            try:
                bound = await self.store.try_bind(user_id, slot_id, handle)
            except Exception:
                self._bindings.pop(connection_id, None)
                raise

            if not bound:
                self._bindings.pop(connection_id, None)
                return False

            if self.is_closed(handle):
                self._bindings.pop(connection_id, None)
                try:
                    await self.store.remove_slot(user_id, slot_id)
                except StorageError:
                    self._orphaned[user_id].add(slot_id)
                    raise
                logger.debug(
                    f"Handle {connection_id} disconnected during bind of slot "
                    f"'{mask_slot_id(slot_id)}'"
                )
                return False

        self._connections.setdefault(connection_id, handle)
        return True

    async def unbind_by_handle(self, handle: TransportHandle) -> bool:
        """
        Forget a handle and remove the slot it was bound to.

        If the store fails, the handle is still forgotten and the slot is
        kept for a later removal attempt.

        Returns:
            True if a slot was removed. Unknown or never-bound handles are
            ignored.
        """
        connection_id = handle.connection_id
        self._connections.pop(connection_id, None)
        if connection_id in self._in_flight:
            self._closed.add(connection_id)

        binding = self._bindings.pop(connection_id, None)
        if binding is None:
            return False

        user_id, slot_id = binding
        try:
            await self.store.remove_slot(user_id, slot_id)
        except StorageError:
            self._orphaned[user_id].add(slot_id)
            raise

        logger.debug(
            f"Unbound handle {connection_id} from slot "
            f"'{mask_slot_id(slot_id)}' of user {user_id}"
        )
        return True

    async def retry_orphaned(self, user_id: str) -> None:
        """Remove slots of the user left behind by a failed unbind."""
        slot_ids = self._orphaned.pop(user_id, None)
        if not slot_ids:
            return

        for slot_id in list(slot_ids):
            try:
                await self.store.remove_slot(user_id, slot_id)
            except StorageError:
                self._orphaned[user_id].update(slot_ids)
                raise
            slot_ids.discard(slot_id)
            logger.info(
                f"Removed orphaned slot '{mask_slot_id(slot_id)}' of user {user_id}"
            )

    async def list_live_handles(self, user_id: str) -> list[TransportHandle]:
        return await self.store.list_bound_handles(user_id)

    async def list_slots(self, user_id: str) -> list[ConnectionSlot]:
        return await self.store.list_slots(user_id)

    async def remove_slot(self, user_id: str, slot_id: str) -> None:
        """Administrative removal of one slot, whatever its state."""
        for connection_id, binding in list(self._bindings.items()):
            if binding == (user_id, slot_id):
                del self._bindings[connection_id]
        await self.store.remove_slot(user_id, slot_id)

        orphaned = self._orphaned.get(user_id)
        if orphaned is not None:
            orphaned.discard(slot_id)
            if not orphaned:
                del self._orphaned[user_id]

    async def remove_stale_pending(
        self, user_id: str, older_than: datetime
    ) -> int:
        await self.retry_orphaned(user_id)
        return await self.store.remove_stale_pending(user_id, older_than)
