"""Lifecycle services and their wiring from an :class:`AppConfig`."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..config import AppConfig, StorageBackend
from ..storage import (
    FileStepJournal,
    FilesystemObjectStore,
    KeyRecordStore,
    MemoryObjectStore,
    MemoryStepJournal,
    ObjectStore,
    StepJournal,
)
from .key_lifecycle import KeyLifecycle
from .key_manager import KeyMinter
from .rotation import RotationScheduler, RotationWorkflow


@dataclass(slots=True)
class KeyServices:
    config: AppConfig
    objects: ObjectStore
    records: KeyRecordStore
    minter: KeyMinter
    lifecycle: KeyLifecycle
    workflow: RotationWorkflow


def build_object_store(config: AppConfig) -> ObjectStore:
    if config.storage.backend is StorageBackend.MEMORY:
        return MemoryObjectStore()
    return FilesystemObjectStore(config.storage.root)


def build_journal(config: AppConfig) -> StepJournal:
    if config.storage.backend is StorageBackend.MEMORY or config.rotation.journal_path is None:
        return MemoryStepJournal()
    return FileStepJournal(config.rotation.journal_path)


def build_services(
    config: AppConfig,
    *,
    objects: Optional[ObjectStore] = None,
    journal: Optional[StepJournal] = None,
) -> KeyServices:
    if objects is None:
        objects = build_object_store(config)
    if journal is None:
        journal = build_journal(config)
    records = KeyRecordStore(objects)
    minter = KeyMinter(records, config.lifecycle)
    lifecycle = KeyLifecycle(records, config.lifecycle)
    workflow = RotationWorkflow(
        minter,
        lifecycle,
        journal,
        config.rotation.steps,
    )
    return KeyServices(
        config=config,
        objects=objects,
        records=records,
        minter=minter,
        lifecycle=lifecycle,
        workflow=workflow,
    )


__all__ = [
    "KeyServices",
    "KeyLifecycle",
    "KeyMinter",
    "RotationScheduler",
    "RotationWorkflow",
    "build_journal",
    "build_object_store",
    "build_services",
]
