from __future__ import annotations

import abc
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class StoredObject:
    """Listing entry returned by an :class:`ObjectStore`."""

    key: str
    uploaded: datetime
    size: int = 0
    custom_metadata: Dict[str, str] = field(default_factory=dict)


class ObjectStore(abc.ABC):
    """Minimal blob store interface the key lifecycle is written against.

    Implementations must make ``put`` create-only: writing a key that is already
    present raises :class:`~key_directory.exceptions.AlreadyExists`, atomically
    with respect to concurrent writers. Identifier uniqueness relies on it.
    """

    @abc.abstractmethod
    async def list(self, prefix: str = "", include_metadata: bool = True) -> List[StoredObject]:
        """Return every object whose key starts with ``prefix``."""

    @abc.abstractmethod
    async def head(self, key: str) -> Optional[StoredObject]:
        """Return the object's listing entry, or ``None`` if absent."""

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Return the object's body, or ``None`` if absent."""

    @abc.abstractmethod
    async def put(self, key: str, data: bytes, custom_metadata: Dict[str, str]) -> StoredObject:
        """Create ``key``; raise ``AlreadyExists`` if it is present."""

    @abc.abstractmethod
    async def delete(self, keys: Iterable[str]) -> None:
        """Remove ``keys`` in one batch; absent keys are ignored."""

    async def close(self) -> None:
        return None


__all__ = ["Clock", "ObjectStore", "StoredObject", "utcnow"]
