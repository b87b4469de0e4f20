"""
Pytest configuration and fixtures for testing.

This module provides shared fixtures for the connection store, registry,
push service, fake transport handles and the HTTP application.
"""

import os

import pytest

# Set required environment variables for testing before importing app modules
os.environ.setdefault("AUTH_TOKEN", "test-token")
os.environ.setdefault("NOTIFICATOR_STORAGE", "memory")

from tests.mocks.handle_mocks import create_mock_handle  # noqa: E402


@pytest.fixture
def memory_store():
    """
    Provides an empty in-memory connection store.

    Returns:
        MemoryConnectionStore: Fresh store instance
    """
    from notificator.storage.memory import MemoryConnectionStore

    return MemoryConnectionStore()


@pytest.fixture
def registry(memory_store):
    """
    Provides a ConnectionRegistry backed by the in-memory store.

    Args:
        memory_store: Fixture providing the store
    """
    from notificator.registry import ConnectionRegistry

    return ConnectionRegistry(memory_store)


@pytest.fixture
def push_service(registry):
    """
    Provides a PushService on top of the registry fixture.

    Args:
        registry: Fixture providing the registry
    """
    from notificator.managers.push_service import PushService

    return PushService(registry)


@pytest.fixture
def make_handle():
    """
    Provides a factory of fake transport handles.

    Returns:
        Callable: ``make_handle(connection_id=None)`` -> mocked handle
    """
    return create_mock_handle


@pytest.fixture
def auth_headers():
    """
    Provides HTTP headers carrying the shared secret.

    Returns:
        dict: Headers dictionary with X-AUTH-TOKEN header
    """
    return {"X-AUTH-TOKEN": os.environ["AUTH_TOKEN"]}


@pytest.fixture
def test_app(push_service):
    """
    Provides an application owning the push_service fixture.

    Args:
        push_service: Fixture providing the push service
    """
    from notificator import application

    return application(push_service=push_service)
