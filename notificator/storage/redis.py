"""
Redis-backed connection store.

Each user is one Redis key holding a JSON array of slot records::

    [{"id": "...", "body": null, "registeredDate": 1700000000000}, ...]

``body`` is the connection id of the bound transport handle (null while
pending); dates are epoch milliseconds. Every mutation is a single Lua script
call, so Redis executes the read-modify-write atomically. That keeps the
Pending -> Bound transition safe when several relay instances share the same
Redis without any client-side locking.
"""

import json
import time
from datetime import datetime

from redis.asyncio import ConnectionPool, Redis

from notificator.logging import logger, mask_slot_id
from notificator.schemas import ConnectionSlot
from notificator.settings import Settings, app_settings
from notificator.storage.base import TransportHandle
from notificator.utils.storage_errors import raises_storage_error

# KEYS[1] = user key, ARGV[1] = slot id, ARGV[2] = registered date (ms)
CREATE_SLOT_SCRIPT = """
local raw = redis.call('GET', KEYS[1])
local slots = {}
if raw then
    slots = cjson.decode(raw)
end
for _, slot in ipairs(slots) do
    if slot['id'] == ARGV[1] then
        return 0
    end
end
table.insert(slots, {id = ARGV[1], body = cjson.null, registeredDate = tonumber(ARGV[2])})
redis.call('SET', KEYS[1], cjson.encode(slots))
return 1
"""

# KEYS[1] = user key, ARGV[1] = slot id, ARGV[2] = connection id,
# ARGV[3] = saved date (ms)
TRY_BIND_SCRIPT = """
local raw = redis.call('GET', KEYS[1])
if not raw then
    return 0
end
local slots = cjson.decode(raw)
for _, slot in ipairs(slots) do
    if slot['id'] == ARGV[1] then
        if slot['body'] ~= cjson.null then
            return 0
        end
        slot['body'] = ARGV[2]
        slot['savedDate'] = tonumber(ARGV[3])
        redis.call('SET', KEYS[1], cjson.encode(slots))
        return 1
    end
end
return 0
"""

# KEYS[1] = user key, ARGV[1] = slot id
# Returns the removed slot's body ('' when it was pending) or nil.
REMOVE_SLOT_SCRIPT = """
local raw = redis.call('GET', KEYS[1])
if not raw then
    return false
end
local slots = cjson.decode(raw)
local kept = {}
local removed = false
local body = ''
for _, slot in ipairs(slots) do
    if slot['id'] == ARGV[1] then
        removed = true
        if slot['body'] ~= cjson.null then
            body = slot['body']
        end
    else
        table.insert(kept, slot)
    end
end
if not removed then
    return false
end
if #kept == 0 then
    redis.call('DEL', KEYS[1])
else
    redis.call('SET', KEYS[1], cjson.encode(kept))
end
return body
"""

# KEYS[1] = user key, ARGV[1] = cutoff (ms)
REMOVE_STALE_PENDING_SCRIPT = """
local raw = redis.call('GET', KEYS[1])
if not raw then
    return 0
end
local slots = cjson.decode(raw)
local kept = {}
local removed = 0
local cutoff = tonumber(ARGV[1])
for _, slot in ipairs(slots) do
    if slot['body'] == cjson.null and slot['registeredDate'] <= cutoff then
        removed = removed + 1
    else
        table.insert(kept, slot)
    end
end
if removed > 0 then
    if #kept == 0 then
        redis.call('DEL', KEYS[1])
    else
        redis.call('SET', KEYS[1], cjson.encode(kept))
    end
end
return removed
"""


def _epoch_ms(moment: datetime | None = None) -> int:
    if moment is None:
        return int(time.time() * 1000)
    return int(moment.timestamp() * 1000)


def create_redis_client(settings: Settings = app_settings) -> Redis:
    """
    Create a Redis client backed by its own connection pool.

    Socket timeouts bound every round trip and ``retry_on_timeout`` is off:
    a slow or unreachable store surfaces as an error to the caller instead
    of being retried behind its back.

    Args:
        settings: Settings to read the Redis address and pool limits from.

    Returns:
        Redis: Client that closes its pool when closed.
    """
    pool = ConnectionPool.from_url(
        settings.REDIS_URL,
        db=settings.REDIS_DB,
        encoding="utf-8",
        decode_responses=True,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
        socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT,
        health_check_interval=settings.REDIS_HEALTH_CHECK_INTERVAL,
        retry_on_timeout=False,
    )
    logger.info(
        f"Created Redis pool for {settings.REDIS_IP}:{settings.REDIS_PORT}"
        f"/{settings.REDIS_DB}"
    )
    return Redis.from_pool(pool)


class RedisConnectionStore:
    """
    Durable connection store shared by every relay instance.

    Live handles cannot be written to Redis, so the record keeps the
    handle's connection id and this instance keeps a local index from
    connection id to handle for the handles it bound itself. Bound slots
    owned by other instances are skipped when listing handles.
    """

    def __init__(
        self, redis: Redis, key_prefix: str = app_settings.SLOT_KEY_PREFIX
    ) -> None:
        self.redis = redis
        self.key_prefix = key_prefix
        self._handles: dict[str, TransportHandle] = {}
        self._bound_slots: dict[tuple[str, str], str] = {}

        self._create_script = redis.register_script(CREATE_SLOT_SCRIPT)
        self._try_bind_script = redis.register_script(TRY_BIND_SCRIPT)
        self._remove_script = redis.register_script(REMOVE_SLOT_SCRIPT)
        self._purge_script = redis.register_script(
            REMOVE_STALE_PENDING_SCRIPT
        )
        logger.info("Using redis storage")

    def _key(self, user_id: str) -> str:
        return f"{self.key_prefix}{user_id}"

    async def _load(self, user_id: str) -> list[dict]:
        raw = await self.redis.get(self._key(user_id))
        if not raw:
            return []
        return json.loads(raw)

    @raises_storage_error(operation_name="create_pending_slot")
    async def create_pending_slot(self, user_id: str, slot_id: str) -> bool:
        created = await self._create_script(
            keys=[self._key(user_id)], args=[slot_id, _epoch_ms()]
        )
        if created:
            logger.debug(
                f"[Redis] Slot '{mask_slot_id(slot_id)}' added to user {user_id}"
            )
        return bool(created)

    @raises_storage_error(operation_name="try_bind")
    async def try_bind(
        self, user_id: str, slot_id: str, handle: TransportHandle
    ) -> bool:
        bound = await self._try_bind_script(
            keys=[self._key(user_id)],
            args=[slot_id, handle.connection_id, _epoch_ms()],
        )
        if not bound:
            return False

        self._handles[handle.connection_id] = handle
        self._bound_slots[(user_id, slot_id)] = handle.connection_id
        logger.debug(
            f"[Redis] Handle {handle.connection_id} bound to slot "
            f"'{mask_slot_id(slot_id)}' of user {user_id}"
        )
        return True

    @raises_storage_error(operation_name="remove_slot")
    async def remove_slot(self, user_id: str, slot_id: str) -> None:
        """
        Delete a slot and forget its local handle.

        The handle is forgotten even when the round trip fails, so a dead
        connection is never listed again by this instance.
        """
        connection_id = self._bound_slots.pop((user_id, slot_id), None)
        try:
            body = await self._remove_script(
                keys=[self._key(user_id)], args=[slot_id]
            )
        finally:
            if connection_id is not None:
                self._handles.pop(connection_id, None)
        if body is None:
            return

        if body:
            self._handles.pop(body, None)
        logger.debug(
            f"[Redis] Slot '{mask_slot_id(slot_id)}' removed from user {user_id}"
        )

    @raises_storage_error(operation_name="list_bound_handles")
    async def list_bound_handles(self, user_id: str) -> list[TransportHandle]:
        handles = []
        for entry in await self._load(user_id):
            connection_id = entry.get("body")
            if connection_id in self._handles:
                handles.append(self._handles[connection_id])
        return handles

    @raises_storage_error(operation_name="list_slots")
    async def list_slots(self, user_id: str) -> list[ConnectionSlot]:
        return [
            ConnectionSlot.model_validate(entry)
            for entry in await self._load(user_id)
        ]

    @raises_storage_error(operation_name="remove_stale_pending")
    async def remove_stale_pending(
        self, user_id: str, older_than: datetime
    ) -> int:
        removed = await self._purge_script(
            keys=[self._key(user_id)], args=[_epoch_ms(older_than)]
        )
        return int(removed or 0)

    @raises_storage_error(operation_name="ping")
    async def ping(self) -> bool:
        return bool(await self.redis.ping())

    async def close(self) -> None:
        self._handles.clear()
        self._bound_slots.clear()
        await self.redis.aclose()
        logger.info("Closed Redis connection pool")
