"""Configuration loading utilities.

Every component receives its section explicitly; nothing reads process-wide
state after :func:`load_config` returns.
"""
from __future__ import annotations

from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .paths import default_journal_path, default_store_dir, runtime_config_dir


class Backoff(str, Enum):
    CONSTANT = "constant"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class RetryPolicy(BaseModel):
    """Per-step retry budget: ``limit`` retries after the first attempt."""

    limit: int = Field(default=5, ge=0)
    delay_seconds: float = Field(default=5.0, ge=0)
    backoff: Backoff = Backoff.EXPONENTIAL
    max_delay_seconds: float = Field(default=300.0, ge=0)
    timeout_seconds: Optional[float] = Field(default=900.0, gt=0)

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        if self.backoff is Backoff.CONSTANT:
            delay = self.delay_seconds
        elif self.backoff is Backoff.LINEAR:
            delay = self.delay_seconds * attempt
        else:
            delay = self.delay_seconds * (2 ** (attempt - 1))
        return min(delay, self.max_delay_seconds)


class LifecycleConfig(BaseModel):
    minimum_freshest_keys: int = Field(default=2, ge=0, description="Keys published and never swept")
    key_not_before_delay_ms: int = Field(default=0, ge=0, description="Activation delay for new keys")
    key_lifespan_ms: int = Field(default=48 * 3600 * 1000, ge=0, description="Lifespan counted from notBefore")
    max_mint_attempts: int = Field(default=64, ge=1, description="Identifier collisions tolerated per mint")

    @property
    def not_before_delay(self) -> timedelta:
        return timedelta(milliseconds=self.key_not_before_delay_ms)

    @property
    def lifespan(self) -> timedelta:
        return timedelta(milliseconds=self.key_lifespan_ms)


class StorageBackend(str, Enum):
    FILESYSTEM = "filesystem"
    MEMORY = "memory"


class StorageConfig(BaseModel):
    backend: StorageBackend = StorageBackend.FILESYSTEM
    root: Path = Field(default_factory=default_store_dir)


class RotationSteps(BaseModel):
    mint_encryption_key: RetryPolicy = Field(default_factory=RetryPolicy)
    mint_signature_key: RetryPolicy = Field(default_factory=RetryPolicy)
    sweep: RetryPolicy = Field(default_factory=lambda: RetryPolicy(limit=3, timeout_seconds=300.0))


class RotationConfig(BaseModel):
    interval_seconds: int = Field(default=300, ge=0, description="0 disables the periodic trigger")
    journal_path: Optional[Path] = Field(default_factory=default_journal_path)
    steps: RotationSteps = Field(default_factory=RotationSteps)


class DirectoryConfig(BaseModel):
    cache_max_age_seconds: int = Field(default=300, ge=0)
    issuer_request_uri: str = Field(default="/token-request")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Logging verbosity level")

    def normalized_level(self) -> str:
        return self.level.upper()


class AppConfig(BaseModel):
    lifecycle: LifecycleConfig = Field(default_factory=LifecycleConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    rotation: RotationConfig = Field(default_factory=RotationConfig)
    directory: DirectoryConfig = Field(default_factory=DirectoryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


DEFAULT_CONFIG = AppConfig()


def config_search_paths(explicit: Optional[Path] = None) -> Iterable[Path]:
    if explicit:
        yield explicit
    yield Path.cwd() / ".keydir" / "config.yaml"
    yield runtime_config_dir() / "config.yaml"


def load_config(path: Optional[Path] = None) -> AppConfig:
    if path is not None and not path.is_file():
        raise ValueError(f"Configuration file not found: {path}")
    for candidate in config_search_paths(path):
        if candidate.is_file():
            with candidate.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
            try:
                return AppConfig.model_validate(data)
            except ValidationError as exc:
                raise ValueError(f"Invalid configuration in {candidate}: {exc}") from exc
    return DEFAULT_CONFIG.model_copy(deep=True)


def dump_default_config(target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(DEFAULT_CONFIG.model_dump(mode="json"), handle, sort_keys=False)


__all__ = [
    "AppConfig",
    "Backoff",
    "DirectoryConfig",
    "LifecycleConfig",
    "LoggingConfig",
    "RetryPolicy",
    "RotationConfig",
    "RotationSteps",
    "StorageBackend",
    "StorageConfig",
    "DEFAULT_CONFIG",
    "config_search_paths",
    "load_config",
    "dump_default_config",
]
