# Mint key pairs with unique token key IDs and persist them.
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Callable, Tuple

import structlog

from ..config import LifecycleConfig
from ..crypto import generate_key_pair, token_key_id
from ..exceptions import AlreadyExists, KeyGenerationFailed
from ..logging import bound_context
from ..metrics import KEYS_MINTED, MINT_COLLISIONS
from ..models import MAX_IDENTIFIERS, KeyPurpose, KeyRecord
from ..storage.objects import Clock, utcnow
from ..storage.records import KeyRecordStore

logger = structlog.get_logger(__name__)

KeyGenerator = Callable[[KeyPurpose], Tuple[bytes, bytes]]

# Live-key count past which every mint logs a capacity warning.
CAPACITY_WARNING = 192


class KeyMinter:
    """Generate, identify and store key pairs.

    :meth:`mint_unique` is the only place that writes new records, so the
    "identifier implies a unique live key" rule is enforced at one call site.
    """

    def __init__(
        self,
        records: KeyRecordStore,
        config: LifecycleConfig,
        *,
        generator: KeyGenerator = generate_key_pair,
        clock: Clock | None = None,
    ) -> None:
        self.records = records
        self.config = config
        self._generator = generator
        self._clock = clock or utcnow

    def _not_before(self, now: datetime) -> int:
        return round((now + self.config.not_before_delay).timestamp())

    async def _check_capacity(self, purpose: KeyPurpose) -> None:
        live = len(await self.records.list(purpose))
        # Only a warning: a full ID space surfaces as collision exhaustion below.
        if live >= CAPACITY_WARNING:
            logger.warning("mint.capacity", live=live, limit=MAX_IDENTIFIERS)

    async def mint_unique(self, purpose: KeyPurpose) -> KeyRecord:
        """Mint one key for ``purpose`` whose token key ID is not in use.

        A collision (pre-check hit, or losing the create-only ``put`` race)
        discards the whole key pair and starts over. After
        ``max_mint_attempts`` collisions :class:`KeyGenerationFailed` is raised,
        as it is for any failure of the key generator itself.
        """
        purpose = KeyPurpose(purpose)
        with bound_context(purpose=purpose.value):
            return await self._mint(purpose)

    async def _mint(self, purpose: KeyPurpose) -> KeyRecord:
        await self._check_capacity(purpose)
        for attempt in range(1, self.config.max_mint_attempts + 1):
            try:
                public_key, private_key = await asyncio.to_thread(self._generator, purpose)
            except KeyGenerationFailed:
                raise
            except Exception as exc:
                logger.error("mint.generator_failed", attempt=attempt, error=str(exc))
                raise KeyGenerationFailed(f"{purpose.value} key generation failed: {exc}") from exc
            identifier = token_key_id(public_key)

            if await self.records.exists(purpose, identifier):
                MINT_COLLISIONS.labels(purpose.value).inc()
                logger.info("mint.collision", token_key_id=identifier, attempt=attempt, stage="precheck")
                continue

            record = KeyRecord(
                purpose=purpose,
                identifier=identifier,
                public_key=public_key,
                not_before=self._not_before(self._clock()),
                private_key=private_key,
            )
            try:
                # Once a pair exists the write must finish, even if the caller is cancelled.
                stored = await asyncio.shield(self.records.put(record))
            except AlreadyExists:
                MINT_COLLISIONS.labels(purpose.value).inc()
                logger.info("mint.collision", token_key_id=identifier, attempt=attempt, stage="put")
                continue

            KEYS_MINTED.labels(purpose.value).inc()
            logger.info("mint.completed", token_key_id=identifier, attempts=attempt, not_before=stored.not_before)
            return stored

        logger.error("mint.exhausted", attempts=self.config.max_mint_attempts)
        raise KeyGenerationFailed(
            f"no free {purpose.value} token key ID after {self.config.max_mint_attempts} attempts"
        )


__all__ = ["KeyMinter", "KeyGenerator", "CAPACITY_WARNING"]
