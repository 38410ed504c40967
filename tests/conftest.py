from __future__ import annotations

import pytest

from helpers import FrozenClock, ScriptedGenerator

from key_directory.config import LifecycleConfig
from key_directory.services.key_lifecycle import KeyLifecycle
from key_directory.services.key_manager import KeyMinter
from key_directory.storage import KeyRecordStore, MemoryObjectStore


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def lifecycle_config() -> LifecycleConfig:
    return LifecycleConfig(
        minimum_freshest_keys=2,
        key_not_before_delay_ms=0,
        key_lifespan_ms=14 * 24 * 3600 * 1000,
        max_mint_attempts=8,
    )


@pytest.fixture
def objects(clock: FrozenClock) -> MemoryObjectStore:
    return MemoryObjectStore(clock=clock)


@pytest.fixture
def records(objects: MemoryObjectStore) -> KeyRecordStore:
    return KeyRecordStore(objects)


@pytest.fixture
def generator() -> ScriptedGenerator:
    return ScriptedGenerator()


@pytest.fixture
def minter(records, lifecycle_config, generator, clock) -> KeyMinter:
    return KeyMinter(records, lifecycle_config, generator=generator, clock=clock)


@pytest.fixture
def lifecycle(records, lifecycle_config, clock) -> KeyLifecycle:
    return KeyLifecycle(records, lifecycle_config, clock=clock)
