"""Pytest configuration and fixtures for unit tests."""

import pytest

from bestbefore.domain.user import AuthUser, Session
from bestbefore.services import sync_queue
from bestbefore.services.category_reminder_service import CategoryReminderService
from bestbefore.services.sync_queue import MutationQueue
from tests.unit.mocks import FakeRemoteStore, InMemoryKeyValueStore, RecordingDelivery


TEST_USER_ID = "user-1"


@pytest.fixture(autouse=True)
def reset_queue_locks():
    """Queue locks are module-level; each test gets fresh ones on its own event loop."""
    sync_queue._replay_locks.clear()
    sync_queue._storage_locks.clear()
    yield
    sync_queue._replay_locks.clear()
    sync_queue._storage_locks.clear()


@pytest.fixture
def kv_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def remote() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def delivery() -> RecordingDelivery:
    return RecordingDelivery()


@pytest.fixture
def session() -> Session:
    return Session(AuthUser(id=TEST_USER_ID, email="cook@example.com"))


@pytest.fixture
def signed_out() -> Session:
    return Session()


@pytest.fixture
def queue(kv_store: InMemoryKeyValueStore, remote: FakeRemoteStore, session: Session) -> MutationQueue:
    return MutationQueue(storage=kv_store, remote=remote, session=session, dead_letter_permanent=True)


@pytest.fixture
def categories(remote: FakeRemoteStore, session: Session) -> CategoryReminderService:
    return CategoryReminderService(remote=remote, session=session, default_days=3)
