"""Shared fixtures: a controllable clock and a fresh SQLite store per test."""

from collections.abc import AsyncIterator, Iterator

import pytest

from core.config import AppConfig, StorageConfig
from core.services.health_tracker import HealthTrackerService
from core.services.record_store import RecordStore
from core.services.storage import SQLiteBackend
from tests.support import FrozenClock


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def storage_config(tmp_path) -> StorageConfig:
    return StorageConfig(path=str(tmp_path / "tracker.db"))


@pytest.fixture
def backend(storage_config: StorageConfig) -> Iterator[SQLiteBackend]:
    backend = SQLiteBackend(storage_config)
    backend.open()
    yield backend
    backend.close()


@pytest.fixture
def store(backend: SQLiteBackend, clock: FrozenClock) -> RecordStore:
    return RecordStore(backend, clock=clock)


@pytest.fixture
async def tracker(
    storage_config: StorageConfig, clock: FrozenClock
) -> AsyncIterator[HealthTrackerService]:
    service = HealthTrackerService(AppConfig(storage=storage_config), clock=clock)
    async with service.session():
        yield service
