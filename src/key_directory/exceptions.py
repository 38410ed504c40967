from __future__ import annotations

"""Central exception hierarchy"""


class KeyDirectoryError(Exception):
    """Base exception for all failures"""


class DirectoryUninitialized(KeyDirectoryError):
    """Raised when a reader needs at least one key and the purpose has none"""

    def __init__(self, purpose: str) -> None:
        super().__init__(f"directory not initialised: no {purpose} keys stored")
        self.purpose = purpose


class KeyGenerationFailed(KeyDirectoryError):
    """Raised when the crypto provider fails or collisions persist"""


class AlreadyExists(KeyDirectoryError):
    """Raised when a create-only write hits an occupied storage key"""

    def __init__(self, key: str) -> None:
        super().__init__(f"object already exists: {key}")
        self.key = key


class StoreError(KeyDirectoryError):
    """Raised for transient object store failures (I/O, network)"""


class InvalidKeyEncoding(KeyDirectoryError):
    """Raised when a public key blob cannot be parsed"""


class StepFailed(KeyDirectoryError):
    """Raised when a rotation step exhausts its retry budget or times out"""

    def __init__(self, step: str, attempts: int, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause else ""
        super().__init__(f"step '{step}' failed after {attempts} attempt(s){detail}")
        self.step = step
        self.attempts = attempts
        self.cause = cause


__all__ = [
    "KeyDirectoryError",
    "DirectoryUninitialized",
    "KeyGenerationFailed",
    "AlreadyExists",
    "StoreError",
    "InvalidKeyEncoding",
    "StepFailed",
]
