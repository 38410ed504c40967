"""Domain models shared across the key lifecycle."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Dict, Mapping, Optional

from .utils import b64d, b64e

MAX_IDENTIFIERS = 256

META_NOT_BEFORE = "notBefore"
META_PUBLIC_KEY = "publicKey"
META_TOKEN_KEY_ID = "tokenKeyID"


class KeyPurpose(str, Enum):
    ENCRYPTION = "encryption"
    SIGNATURE = "signature"

    @property
    def prefix(self) -> str:
        """Storage-key prefix under which records of this purpose live."""
        return f"{self.value}/"

    def storage_key(self, identifier: int) -> str:
        return f"{self.prefix}{identifier}"


@dataclass(slots=True, frozen=True)
class KeyRecord:
    """A persisted key pair plus its activation metadata.

    ``private_key`` is only populated on the write path; records read back for
    publication carry metadata alone.
    """

    purpose: KeyPurpose
    identifier: int
    public_key: bytes
    not_before: Optional[int]
    uploaded_at: Optional[datetime] = None
    private_key: Optional[bytes] = field(default=None, repr=False, compare=False)
    object_key: Optional[str] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        if not 0 <= self.identifier < MAX_IDENTIFIERS:
            raise ValueError(f"identifier out of range: {self.identifier}")

    @property
    def storage_key(self) -> str:
        """Key of the stored object; the listed name wins over the derived one."""
        return self.object_key or self.purpose.storage_key(self.identifier)

    @property
    def public_key_b64(self) -> str:
        return b64e(self.public_key)

    def activation_base(self) -> datetime:
        """Instant the lifespan is counted from.

        Records written without ``notBefore`` (legacy uploads) fall back to
        their upload time.
        """
        if self.not_before is not None:
            return datetime.fromtimestamp(self.not_before, tz=timezone.utc)
        if self.uploaded_at is None:
            raise ValueError(f"record {self.storage_key} has neither notBefore nor upload time")
        return self.uploaded_at

    def expires_at(self, lifespan_ms: int) -> datetime:
        return self.activation_base() + timedelta(milliseconds=lifespan_ms)

    def not_before_or_uploaded(self) -> int:
        """``notBefore`` in epoch seconds, defaulting to the upload time."""
        return int(self.activation_base().timestamp())

    def to_metadata(self) -> Dict[str, str]:
        metadata = {
            META_PUBLIC_KEY: self.public_key_b64,
            META_TOKEN_KEY_ID: str(self.identifier),
        }
        if self.not_before is not None:
            metadata[META_NOT_BEFORE] = str(self.not_before)
        return metadata

    @classmethod
    def from_metadata(
        cls,
        purpose: KeyPurpose,
        key: str,
        metadata: Mapping[str, str],
        uploaded_at: datetime,
    ) -> "KeyRecord":
        """Rebuild a listed record; raises ``ValueError`` when it is unusable.

        An object with no public key (for instance a body whose metadata was
        never written) or with a non-numeric name cannot be published.
        """
        encoded = metadata.get(META_PUBLIC_KEY)
        if not encoded:
            raise ValueError(f"{key} has no {META_PUBLIC_KEY} metadata")
        public_key = b64d(encoded)
        if not public_key:
            raise ValueError(f"{key} has an empty public key")
        raw_id = metadata.get(META_TOKEN_KEY_ID) or key[len(purpose.prefix):]
        not_before = metadata.get(META_NOT_BEFORE)
        return cls(
            purpose=purpose,
            identifier=int(raw_id),
            public_key=public_key,
            not_before=int(not_before) if not_before else None,
            uploaded_at=uploaded_at,
            object_key=key,
        )


__all__ = [
    "KeyPurpose",
    "KeyRecord",
    "MAX_IDENTIFIERS",
    "META_NOT_BEFORE",
    "META_PUBLIC_KEY",
    "META_TOKEN_KEY_ID",
]
