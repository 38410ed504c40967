from __future__ import annotations

import hashlib
import itertools
import threading
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Tuple

from key_directory.models import KeyPurpose

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


_counter = itertools.count()
_counter_lock = threading.Lock()


def public_key_with_id(target: int) -> bytes:
    """Fake public key bytes whose SHA-256 ends in ``target``; unique per call."""
    while True:
        with _counter_lock:
            n = next(_counter)
        candidate = f"fake-public-key-{n}".encode()
        if hashlib.sha256(candidate).digest()[-1] == target:
            return candidate


class ScriptedGenerator:
    """Key generator returning keys whose token key IDs follow ``script``.

    Once the script runs out, IDs continue from ``fallback`` upwards. Called
    from worker threads, hence the lock.
    """

    def __init__(self, script: Iterable[int] = (), fallback: int = 100) -> None:
        self._script: List[int] = list(script)
        self._fallback = itertools.count(fallback)
        self._lock = threading.Lock()
        self.calls: List[Tuple[KeyPurpose, int]] = []

    def __call__(self, purpose: KeyPurpose) -> Tuple[bytes, bytes]:
        with self._lock:
            target = self._script.pop(0) if self._script else next(self._fallback) % 256
            self.calls.append((purpose, target))
        public = public_key_with_id(target)
        return public, b"private:" + public


class FlakyGenerator(ScriptedGenerator):
    """Fails the first ``failures`` calls, then behaves like ScriptedGenerator."""

    def __init__(self, failures: int, **kwargs) -> None:
        super().__init__(**kwargs)
        self.failures = failures

    def __call__(self, purpose: KeyPurpose) -> Tuple[bytes, bytes]:
        with self._lock:
            if self.failures > 0:
                self.failures -= 1
                raise RuntimeError("entropy source unavailable")
        return super().__call__(purpose)


async def no_sleep(_delay: float) -> None:
    return None


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
