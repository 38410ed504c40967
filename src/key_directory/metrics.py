"""Prometheus counters shared by the lifecycle services and the API."""
from __future__ import annotations

from prometheus_client import Counter

KEYS_MINTED = Counter("keydir_keys_minted_total", "Key records written", ["purpose"])
MINT_COLLISIONS = Counter(
    "keydir_mint_collisions_total", "Candidate key pairs discarded on token key ID collision", ["purpose"]
)
KEYS_SWEPT = Counter("keydir_keys_swept_total", "Key records deleted by the retention sweep", ["purpose"])
STEP_RETRIES = Counter("keydir_rotation_step_retries_total", "Rotation step retries", ["step"])
STEP_FAILURES = Counter("keydir_rotation_step_failures_total", "Rotation steps that exhausted retries", ["step"])
DIRECTORY_REQUESTS = Counter("keydir_directory_requests_total", "Directory requests served", ["directory", "status"])

__all__ = [
    "KEYS_MINTED",
    "MINT_COLLISIONS",
    "KEYS_SWEPT",
    "STEP_RETRIES",
    "STEP_FAILURES",
    "DIRECTORY_REQUESTS",
]
