"""
Tests for ConnectionRegistry.

Covers the two-phase handshake (register intent, bind transport), reverse
lookup on unbind, and races between concurrent bind attempts.
"""

import asyncio
from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from notificator.exceptions import StorageError
from notificator.registry import ConnectionRegistry


class TestHandshake:
    """Tests for register_intent / bind_transport."""

    @pytest.mark.asyncio
    async def test_register_then_bind(self, registry, make_handle):
        """Test a registered slot binds and its handle becomes live."""
        handle = make_handle()

        assert await registry.register_intent("alice", "slot-1") is True
        assert await registry.bind_transport("alice", "slot-1", handle) is True

        assert await registry.list_live_handles("alice") == [handle]
        assert registry.get_binding(handle) == ("alice", "slot-1")

    @pytest.mark.asyncio
    async def test_bind_without_registration(self, registry, make_handle):
        """Test binding an unregistered slot fails without side effects."""
        handle = make_handle()

        assert await registry.bind_transport("alice", "slot-1", handle) is False

        assert await registry.list_live_handles("alice") == []
        assert registry.get_binding(handle) is None

    @pytest.mark.asyncio
    async def test_bind_twice_same_slot(self, registry, make_handle):
        """Test the second bind on a slot fails and keeps the first handle."""
        first = make_handle()
        second = make_handle()
        await registry.register_intent("alice", "slot-1")

        assert await registry.bind_transport("alice", "slot-1", first) is True
        assert await registry.bind_transport("alice", "slot-1", second) is False

        assert await registry.list_live_handles("alice") == [first]
        assert registry.get_binding(second) is None

    @pytest.mark.asyncio
    async def test_handle_binds_one_slot_only(self, registry, make_handle):
        """Test an already bound handle cannot bind a second slot."""
        handle = make_handle()
        await registry.register_intent("alice", "slot-1")
        await registry.register_intent("alice", "slot-2")
        await registry.bind_transport("alice", "slot-1", handle)

        assert await registry.bind_transport("alice", "slot-2", handle) is False

        slots = await registry.list_slots("alice")
        assert [slot.state for slot in slots] == ["bound", "pending"]

    @pytest.mark.asyncio
    async def test_duplicate_registration(self, registry):
        """Test registering the same slot id twice is rejected."""
        assert await registry.register_intent("alice", "slot-1") is True
        assert await registry.register_intent("alice", "slot-1") is False

    @pytest.mark.asyncio
    async def test_multi_device(self, registry, make_handle):
        """Test two slots of one user are both live."""
        phone = make_handle()
        laptop = make_handle()
        await registry.register_intent("alice", "phone")
        await registry.register_intent("alice", "laptop")
        await registry.bind_transport("alice", "phone", phone)
        await registry.bind_transport("alice", "laptop", laptop)

        assert await registry.list_live_handles("alice") == [phone, laptop]


class TestUnbind:
    """Tests for unbind_by_handle."""

    @pytest.mark.asyncio
    async def test_unbind_removes_slot(self, registry, make_handle):
        """Test unbinding removes the handle and its slot."""
        handle = make_handle()
        await registry.register_intent("alice", "slot-1")
        await registry.bind_transport("alice", "slot-1", handle)

        assert await registry.unbind_by_handle(handle) is True

        assert await registry.list_live_handles("alice") == []
        assert await registry.list_slots("alice") == []

    @pytest.mark.asyncio
    async def test_unbind_twice_is_noop(self, registry, make_handle):
        """Test the second unbind of a handle does nothing."""
        handle = make_handle()
        await registry.register_intent("alice", "slot-1")
        await registry.bind_transport("alice", "slot-1", handle)

        await registry.unbind_by_handle(handle)
        assert await registry.unbind_by_handle(handle) is False

    @pytest.mark.asyncio
    async def test_unbind_unknown_handle(self, registry, make_handle):
        """Test unbinding a handle that was never bound is ignored."""
        handle = make_handle()
        registry.track_connection(handle)

        assert await registry.unbind_by_handle(handle) is False
        assert registry.get_connection(handle.connection_id) is None

    @pytest.mark.asyncio
    async def test_unbind_keeps_other_devices(self, registry, make_handle):
        """Test unbinding one device keeps the other one live."""
        phone = make_handle()
        laptop = make_handle()
        for slot_id, handle in (("phone", phone), ("laptop", laptop)):
            await registry.register_intent("alice", slot_id)
            await registry.bind_transport("alice", slot_id, handle)

        await registry.unbind_by_handle(phone)

        assert await registry.list_live_handles("alice") == [laptop]


class TestConnectionIndex:
    """Tests for the connected-handle index."""

    def test_track_and_get_connection(self, registry, make_handle):
        """Test connected handles are found by connection id."""
        handle = make_handle("conn-1")
        registry.track_connection(handle)

        assert registry.get_connection("conn-1") is handle
        assert registry.get_connection("conn-2") is None

    @pytest.mark.asyncio
    async def test_admin_remove_slot_forgets_binding(
        self, registry, make_handle
    ):
        """Test administrative removal also drops the reverse lookup."""
        handle = make_handle()
        await registry.register_intent("alice", "slot-1")
        await registry.bind_transport("alice", "slot-1", handle)

        await registry.remove_slot("alice", "slot-1")

        assert registry.get_binding(handle) is None
        assert await registry.list_live_handles("alice") == []


class TestConcurrency:
    """Tests for racing handshake operations."""

    @pytest.mark.asyncio
    async def test_concurrent_binds_single_winner(self, registry, make_handle):
        """Test racing binds on one pending slot: exactly one succeeds."""
        await registry.register_intent("alice", "slot-1")
        handles = [make_handle() for _ in range(5)]

        results = await asyncio.gather(
            *[
                registry.bind_transport("alice", "slot-1", handle)
                for handle in handles
            ]
        )

        assert results.count(True) == 1
        assert results.count(False) == 4
        winner = handles[results.index(True)]
        assert await registry.list_live_handles("alice") == [winner]
        assert [
            registry.get_binding(handle) for handle in handles
        ].count(None) == 4

    @pytest.mark.asyncio
    async def test_concurrent_bind_same_handle(self, registry, make_handle):
        """Test one handle racing to bind two slots binds only one."""
        handle = make_handle()
        await registry.register_intent("alice", "slot-1")
        await registry.register_intent("alice", "slot-2")

        results = await asyncio.gather(
            registry.bind_transport("alice", "slot-1", handle),
            registry.bind_transport("alice", "slot-2", handle),
        )

        assert sorted(results) == [False, True]
        assert await registry.list_live_handles("alice") == [handle]

    @pytest.mark.asyncio
    async def test_bind_storage_error_releases_reservation(self, make_handle):
        """Test a failed store round trip leaves the handle unbound."""
        store = AsyncMock()
        store.try_bind.side_effect = StorageError("down", operation="try_bind")
        registry = ConnectionRegistry(store)
        handle = make_handle()

        with pytest.raises(StorageError):
            await registry.bind_transport("alice", "slot-1", handle)

        assert registry.get_binding(handle) is None


class TestDisconnectDuringBind:
    """Tests for a disconnect arriving while a bind waits on the store."""

    @pytest.mark.asyncio
    async def test_bind_confirmed_after_disconnect_is_undone(
        self, registry, memory_store, make_handle
    ):
        """Test a handle that disconnected mid-bind never becomes live."""
        handle = make_handle("conn-1")
        registry.track_connection(handle)
        await registry.register_intent("alice", "slot-1")

        lock = memory_store._lock("alice")
        await lock.acquire()
        bind = asyncio.create_task(
            registry.bind_transport("alice", "slot-1", handle)
        )
        await asyncio.sleep(0)
        unbind = asyncio.create_task(registry.unbind_by_handle(handle))
        await asyncio.sleep(0)
        lock.release()

        assert await bind is False
        await unbind

        assert await registry.list_live_handles("alice") == []
        assert await registry.list_slots("alice") == []
        assert registry.get_binding(handle) is None
        assert registry.get_connection("conn-1") is None
        assert not registry.is_closed(handle)

    @pytest.mark.asyncio
    async def test_unbind_wins_the_store(self, make_handle):
        """Test a bind rejected after its reservation was dropped returns False."""
        handle = make_handle("conn-1")
        store = AsyncMock()
        registry = ConnectionRegistry(store)

        async def try_bind(user_id, slot_id, bound_handle):
            await registry.unbind_by_handle(bound_handle)
            return False

        store.try_bind.side_effect = try_bind

        assert await registry.bind_transport("alice", "slot-1", handle) is False
        assert registry.get_binding(handle) is None

    @pytest.mark.asyncio
    async def test_closed_handle_cannot_bind_within_operation(
        self, registry, make_handle
    ):
        """Test no bind starts for a handle that disconnected in an operation."""
        handle = make_handle("conn-1")
        await registry.register_intent("alice", "slot-1")

        with registry.operation(handle):
            await registry.unbind_by_handle(handle)
            assert await registry.bind_transport("alice", "slot-1", handle) is False

        slots = await registry.list_slots("alice")
        assert [slot.state for slot in slots] == ["pending"]


class TestOrphanedSlots:
    """Tests for disconnect cleanup when the store fails."""

    @pytest.mark.asyncio
    async def test_failed_unbind_forgets_handle_and_retries(self, make_handle):
        """Test the handle is dropped and the slot removal retried later."""
        handle = make_handle("conn-1")
        store = AsyncMock()
        store.try_bind.return_value = True
        store.create_pending_slot.return_value = True
        store.remove_slot.side_effect = [
            StorageError("down", operation="remove_slot"),
            None,
        ]
        registry = ConnectionRegistry(store)
        registry.track_connection(handle)
        await registry.bind_transport("alice", "slot-1", handle)

        with pytest.raises(StorageError):
            await registry.unbind_by_handle(handle)

        assert registry.get_binding(handle) is None
        assert registry.get_connection("conn-1") is None

        assert await registry.register_intent("alice", "slot-1") is True
        assert store.remove_slot.await_args_list[-1].args == ("alice", "slot-1")
        assert store.remove_slot.await_count == 2

    @pytest.mark.asyncio
    async def test_retry_failure_keeps_orphan(self, make_handle):
        """Test an orphan stays queued while the store is still down."""
        handle = make_handle("conn-1")
        store = AsyncMock()
        store.try_bind.return_value = True
        store.remove_slot.side_effect = StorageError("down", operation="remove_slot")
        registry = ConnectionRegistry(store)
        await registry.bind_transport("alice", "slot-1", handle)

        with pytest.raises(StorageError):
            await registry.unbind_by_handle(handle)
        with pytest.raises(StorageError):
            await registry.register_intent("alice", "slot-2")

        store.create_pending_slot.assert_not_awaited()

        store.remove_slot.side_effect = None
        await registry.remove_stale_pending("alice", datetime.now(UTC))

        assert store.remove_slot.await_count == 3
        store.remove_stale_pending.assert_awaited_once()
