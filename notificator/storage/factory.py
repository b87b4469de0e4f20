"""Factory for the configured connection store backend."""

from notificator.settings import Settings, app_settings
from notificator.storage.base import ConnectionStore
from notificator.storage.memory import MemoryConnectionStore
from notificator.storage.redis import RedisConnectionStore, create_redis_client


def create_connection_store(settings: Settings = app_settings) -> ConnectionStore:
    """
    Build the connection store selected by ``NOTIFICATOR_STORAGE``.

    Args:
        settings: Application settings.

    Returns:
        ConnectionStore: ``MemoryConnectionStore`` for ``memory``,
        ``RedisConnectionStore`` for ``redis``.
    """
    if settings.NOTIFICATOR_STORAGE == "redis":
        return RedisConnectionStore(
            create_redis_client(settings), key_prefix=settings.SLOT_KEY_PREFIX
        )
    return MemoryConnectionStore()
