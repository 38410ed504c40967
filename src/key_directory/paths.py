"""Shared filesystem path helpers."""
from __future__ import annotations

from pathlib import Path

from platformdirs import PlatformDirs

_APP_NAME = "key-directory"


def _dirs() -> PlatformDirs:
    return PlatformDirs(appname=_APP_NAME, appauthor=None, roaming=False)


def runtime_config_dir() -> Path:
    """Return the per-user configuration directory."""
    return Path(_dirs().user_config_path)


def default_store_dir() -> Path:
    """Return the default object store root."""
    return Path(_dirs().user_data_path) / "store"


def default_journal_path() -> Path:
    return Path(_dirs().user_data_path) / "rotation-journal.jsonl"
