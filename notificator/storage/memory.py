"""In-process connection store."""

import asyncio
import weakref
from dataclasses import dataclass
from datetime import UTC, datetime

from notificator.logging import logger, mask_slot_id
from notificator.schemas import ConnectionSlot
from notificator.storage.base import TransportHandle


@dataclass
class _SlotRecord:
    slot_id: str
    created_at: datetime
    handle: TransportHandle | None = None
    bound_at: datetime | None = None

    def snapshot(self) -> ConnectionSlot:
        return ConnectionSlot(
            slot_id=self.slot_id,
            connection_id=self.handle.connection_id if self.handle else None,
            created_at=self.created_at,
            bound_at=self.bound_at,
        )


class MemoryConnectionStore:
    """
    Volatile connection store kept in process memory.

    Slots live in one ordered bucket per user. Each bucket is guarded by its
    own ``asyncio.Lock`` so register, bind and disconnect events racing on
    the same user are serialized while different users never contend.
    Nothing here performs I/O; the lock is the only suspension point.
    """

    def __init__(self) -> None:
        self._buckets: dict[str, dict[str, _SlotRecord]] = {}
        # Locks live only while some operation on the user holds a reference
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        logger.info("Using in-memory storage")

    def _lock(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    async def create_pending_slot(self, user_id: str, slot_id: str) -> bool:
        async with self._lock(user_id):
            bucket = self._buckets.setdefault(user_id, {})
            if slot_id in bucket:
                logger.debug(
                    f"[Memory] Slot '{mask_slot_id(slot_id)}' already exists "
                    f"for user {user_id}"
                )
                return False

            bucket[slot_id] = _SlotRecord(
                slot_id=slot_id, created_at=datetime.now(UTC)
            )
            logger.debug(
                f"[Memory] Slot '{mask_slot_id(slot_id)}' added to user {user_id}"
            )
            return True

    async def try_bind(
        self, user_id: str, slot_id: str, handle: TransportHandle
    ) -> bool:
        async with self._lock(user_id):
            record = self._buckets.get(user_id, {}).get(slot_id)
            if record is None or record.handle is not None:
                return False

            record.handle = handle
            record.bound_at = datetime.now(UTC)
            logger.debug(
                f"[Memory] Handle {handle.connection_id} bound to slot "
                f"'{mask_slot_id(slot_id)}' of user {user_id}"
            )
            return True

    async def remove_slot(self, user_id: str, slot_id: str) -> None:
        async with self._lock(user_id):
            bucket = self._buckets.get(user_id)
            if not bucket or bucket.pop(slot_id, None) is None:
                return

            if not bucket:
                del self._buckets[user_id]
            logger.debug(
                f"[Memory] Slot '{mask_slot_id(slot_id)}' removed from user {user_id}"
            )

    async def list_bound_handles(self, user_id: str) -> list[TransportHandle]:
        async with self._lock(user_id):
            return [
                record.handle
                for record in self._buckets.get(user_id, {}).values()
                if record.handle is not None
            ]

    async def list_slots(self, user_id: str) -> list[ConnectionSlot]:
        async with self._lock(user_id):
            return [
                record.snapshot()
                for record in self._buckets.get(user_id, {}).values()
            ]

    async def remove_stale_pending(
        self, user_id: str, older_than: datetime
    ) -> int:
        async with self._lock(user_id):
            bucket = self._buckets.get(user_id)
            if not bucket:
                return 0

            stale = [
                slot_id
                for slot_id, record in bucket.items()
                if record.handle is None and record.created_at <= older_than
            ]
            for slot_id in stale:
                del bucket[slot_id]

            if not bucket:
                del self._buckets[user_id]
            return len(stale)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._buckets.clear()
