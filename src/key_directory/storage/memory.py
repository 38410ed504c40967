from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Dict, Iterable, List, Optional, Tuple

import structlog

from ..exceptions import AlreadyExists
from .objects import Clock, ObjectStore, StoredObject, utcnow

logger = structlog.get_logger(__name__)


class MemoryObjectStore(ObjectStore):
    """Process-local store used for tests and single-process deployments.

    The clock is injectable so callers can control upload timestamps.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or utcnow
        self._objects: Dict[str, Tuple[StoredObject, bytes]] = {}
        self._lock = asyncio.Lock()

    async def list(self, prefix: str = "", include_metadata: bool = True) -> List[StoredObject]:
        async with self._lock:
            entries = [entry for entry, _ in self._objects.values() if entry.key.startswith(prefix)]
        if include_metadata:
            return [replace(entry, custom_metadata=dict(entry.custom_metadata)) for entry in entries]
        return [replace(entry, custom_metadata={}) for entry in entries]

    async def head(self, key: str) -> Optional[StoredObject]:
        async with self._lock:
            found = self._objects.get(key)
        if found is None:
            return None
        return replace(found[0], custom_metadata=dict(found[0].custom_metadata))

    async def get(self, key: str) -> Optional[bytes]:
        async with self._lock:
            found = self._objects.get(key)
        return found[1] if found else None

    async def put(self, key: str, data: bytes, custom_metadata: Dict[str, str]) -> StoredObject:
        async with self._lock:
            if key in self._objects:
                raise AlreadyExists(key)
            entry = StoredObject(
                key=key,
                uploaded=self._clock(),
                size=len(data),
                custom_metadata=dict(custom_metadata),
            )
            self._objects[key] = (entry, bytes(data))
        logger.debug("store.put", key=key, size=len(data))
        return replace(entry, custom_metadata=dict(entry.custom_metadata))

    async def delete(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        async with self._lock:
            for key in keys:
                self._objects.pop(key, None)
        logger.debug("store.delete", keys=keys)

    def __len__(self) -> int:
        return len(self._objects)


__all__ = ["MemoryObjectStore"]
