"""
Fixtures running the durable connection store against a real Redis.

A Redis container is started once per session with testcontainers. When
Docker or testcontainers is unavailable the integration tests are skipped.
"""

import pytest
import pytest_asyncio
from redis.asyncio import Redis

from notificator.storage.redis import RedisConnectionStore

try:
    from docker.errors import DockerException
except ModuleNotFoundError:
    DockerException = Exception

REDIS_IMAGE = "redis:7-alpine"


@pytest.fixture(scope="session")
def redis_container():
    """
    Provides a running Redis container.

    Yields:
        dict: Connection details with ``host`` and ``port``
    """
    redis_module = pytest.importorskip(
        "testcontainers.redis",
        reason="testcontainers is required for Redis integration tests",
    )

    try:
        container = redis_module.RedisContainer(REDIS_IMAGE)
        container.start()
    except DockerException as exc:
        pytest.skip(f"Docker daemon is required for Redis integration tests: {exc}")

    try:
        yield {
            "host": container.get_container_host_ip(),
            "port": int(container.get_exposed_port(6379)),
        }
    finally:
        container.stop()


@pytest_asyncio.fixture
async def redis_client(redis_container):
    """
    Provides an async Redis client on an emptied database.

    Args:
        redis_container: Connection details of the Redis container
    """
    client = Redis(
        host=redis_container["host"],
        port=redis_container["port"],
        decode_responses=True,
    )
    await client.flushdb()
    try:
        yield client
    finally:
        await client.aclose()


@pytest.fixture
def redis_store(redis_client):
    """
    Provides a RedisConnectionStore on the real Redis.

    Args:
        redis_client: Async Redis client fixture
    """
    return RedisConnectionStore(redis_client, key_prefix="it:user:")
