"""Key Directory

Issue, rotate, publish and retire token signing and encryption keys.
"""

from .version import __version__
from .models import KeyPurpose, KeyRecord
from .exceptions import (
    AlreadyExists,
    DirectoryUninitialized,
    KeyDirectoryError,
    KeyGenerationFailed,
    StepFailed,
    StoreError,
)

__all__ = [
    "__version__",
    "KeyPurpose",
    "KeyRecord",
    "AlreadyExists",
    "DirectoryUninitialized",
    "KeyDirectoryError",
    "KeyGenerationFailed",
    "StepFailed",
    "StoreError",
]
