"""Key record persistence on top of an :class:`ObjectStore`.

Records are write-once. Private key bytes are the object body; the public key,
token key ID and ``notBefore`` travel as custom metadata so directory readers
never touch private material.
"""
from __future__ import annotations

from typing import Iterable, List, Optional

import structlog

from ..exceptions import DirectoryUninitialized
from ..models import KeyPurpose, KeyRecord
from .objects import ObjectStore

logger = structlog.get_logger(__name__)


class KeyRecordStore:
    def __init__(self, objects: ObjectStore) -> None:
        self.objects = objects

    async def exists(self, purpose: KeyPurpose, identifier: int) -> bool:
        return await self.objects.head(purpose.storage_key(identifier)) is not None

    async def put(self, record: KeyRecord) -> KeyRecord:
        """Write ``record``; raises ``AlreadyExists`` if its identifier is taken."""
        if record.private_key is None:
            raise ValueError("a new key record must carry its private key")
        entry = await self.objects.put(record.storage_key, record.private_key, record.to_metadata())
        logger.info(
            "record.stored",
            purpose=record.purpose.value,
            token_key_id=record.identifier,
            not_before=record.not_before,
        )
        return KeyRecord(
            purpose=record.purpose,
            identifier=record.identifier,
            public_key=record.public_key,
            not_before=record.not_before,
            uploaded_at=entry.uploaded,
            object_key=entry.key,
        )

    async def list(self, purpose: KeyPurpose) -> List[KeyRecord]:
        """Readable records of ``purpose``; unusable objects are logged and left out."""
        entries = await self.objects.list(prefix=purpose.prefix, include_metadata=True)
        records: List[KeyRecord] = []
        for entry in entries:
            try:
                records.append(KeyRecord.from_metadata(purpose, entry.key, entry.custom_metadata, entry.uploaded))
            except ValueError as exc:
                logger.warning("record.skipped", purpose=purpose.value, key=entry.key, error=str(exc))
        return records

    async def list_required(self, purpose: KeyPurpose) -> List[KeyRecord]:
        records = await self.list(purpose)
        if not records:
            raise DirectoryUninitialized(purpose.value)
        return records

    async def private_key(self, purpose: KeyPurpose, identifier: int) -> Optional[bytes]:
        return await self.objects.get(purpose.storage_key(identifier))

    async def delete(self, purpose: KeyPurpose, identifiers: Iterable[int]) -> None:
        keys = sorted({purpose.storage_key(identifier) for identifier in identifiers})
        if not keys:
            return
        await self.objects.delete(keys)
        logger.info("record.deleted", purpose=purpose.value, keys=keys)

    async def delete_records(self, records: Iterable[KeyRecord]) -> None:
        """Delete listed records by the object key they were read from, in one batch."""
        keys = sorted({record.storage_key for record in records})
        if not keys:
            return
        await self.objects.delete(keys)
        logger.info("record.deleted", keys=keys)


__all__ = ["KeyRecordStore"]
