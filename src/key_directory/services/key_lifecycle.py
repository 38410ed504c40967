"""Freshness selection and retention sweeping.

Both operate on the upload-time ordering of a purpose's records, newest
first, ties broken by token key ID ascending so results are deterministic.
The first ``minimum_freshest_keys`` records of that ordering are what
directories publish, and they are exempt from the sweep whatever their age.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

import structlog

from ..config import LifecycleConfig
from ..metrics import KEYS_SWEPT
from ..models import KeyPurpose, KeyRecord
from ..storage.objects import Clock, utcnow
from ..storage.records import KeyRecordStore

logger = structlog.get_logger(__name__)


def order_by_recency(records: Iterable[KeyRecord]) -> List[KeyRecord]:
    by_id = sorted(records, key=lambda r: r.identifier)
    return sorted(by_id, key=lambda r: r.uploaded_at, reverse=True)


def freshest(records: Iterable[KeyRecord], k: int) -> List[KeyRecord]:
    if k < 0:
        raise ValueError("k must be non-negative")
    return order_by_recency(records)[:k]


def plan_sweep(records: Iterable[KeyRecord], k: int, lifespan_ms: int, now: datetime) -> List[KeyRecord]:
    """Records that are outside the freshest ``k`` and past their lifespan.

    The floor is applied before expiry is looked at, so the ``k`` newest
    records survive even when every one of them has expired.
    """
    if k < 0:
        raise ValueError("k must be non-negative")
    candidates = order_by_recency(records)[k:]
    return [record for record in candidates if now > record.expires_at(lifespan_ms)]


class KeyLifecycle:
    def __init__(self, records: KeyRecordStore, config: LifecycleConfig, *, clock: Clock | None = None) -> None:
        self.records = records
        self.config = config
        self._clock = clock or utcnow

    async def select(self, purpose: KeyPurpose, k: Optional[int] = None) -> List[KeyRecord]:
        """Publishable keys for ``purpose``, newest first, at most ``k`` of them.

        Raises ``DirectoryUninitialized`` when the purpose has no key at all.
        """
        k = self.config.minimum_freshest_keys if k is None else k
        records = await self.records.list_required(KeyPurpose(purpose))
        return freshest(records, k)

    async def sweep(self, purpose: KeyPurpose, now: Optional[datetime] = None) -> List[int]:
        """Delete expired keys outside the freshest window; return their IDs."""
        purpose = KeyPurpose(purpose)
        records = await self.records.list(purpose)
        if not records:
            logger.info("sweep.empty", purpose=purpose.value)
            return []

        expired = plan_sweep(
            records,
            self.config.minimum_freshest_keys,
            self.config.key_lifespan_ms,
            now or self._clock(),
        )
        identifiers = sorted(record.identifier for record in expired)
        if not identifiers:
            logger.info("sweep.nothing_to_clear", purpose=purpose.value, live=len(records))
            return []

        legacy = [record.identifier for record in expired if record.not_before is None]
        if legacy:
            logger.info("sweep.legacy_records", purpose=purpose.value, token_key_ids=legacy)

        await self.records.delete_records(expired)
        KEYS_SWEPT.labels(purpose.value).inc(len(identifiers))
        logger.info(
            "sweep.deleted",
            purpose=purpose.value,
            token_key_ids=identifiers,
            remaining=len(records) - len(identifiers),
        )
        return identifiers


__all__ = ["KeyLifecycle", "order_by_recency", "freshest", "plan_sweep"]
