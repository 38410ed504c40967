"""Persisted step-completion log for rotation runs.

Each row is ``{run_id, step, status, timestamp}``. A run that crashed between
steps is resumed by skipping every step that already has a ``completed`` row.
"""
from __future__ import annotations

import abc
import asyncio
import json
from dataclasses import asdict, dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Set

from ..exceptions import StoreError
from .objects import Clock, utcnow


class StepStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(slots=True)
class StepEntry:
    run_id: str
    step: str
    status: StepStatus
    timestamp: str
    detail: Optional[str] = None

    def to_json(self) -> str:
        payload = asdict(self)
        payload["status"] = self.status.value
        return json.dumps(payload, separators=(",", ":"))

    @classmethod
    def from_json(cls, line: str) -> "StepEntry":
        raw = json.loads(line)
        return cls(
            run_id=raw["run_id"],
            step=raw["step"],
            status=StepStatus(raw["status"]),
            timestamp=raw["timestamp"],
            detail=raw.get("detail"),
        )


class StepJournal(abc.ABC):
    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or utcnow

    async def record(self, run_id: str, step: str, status: StepStatus, detail: str | None = None) -> StepEntry:
        entry = StepEntry(
            run_id=run_id,
            step=step,
            status=status,
            timestamp=self._clock().isoformat(),
            detail=detail,
        )
        await self._append(entry)
        return entry

    async def completed_steps(self, run_id: str) -> Set[str]:
        return {e.step for e in await self.entries(run_id) if e.status == StepStatus.COMPLETED}

    @abc.abstractmethod
    async def entries(self, run_id: str | None = None) -> List[StepEntry]:
        """Rows in append order, optionally for a single run."""

    @abc.abstractmethod
    async def _append(self, entry: StepEntry) -> None:
        ...


class MemoryStepJournal(StepJournal):
    def __init__(self, clock: Clock | None = None) -> None:
        super().__init__(clock)
        self._rows: List[StepEntry] = []

    async def entries(self, run_id: str | None = None) -> List[StepEntry]:
        return [row for row in self._rows if run_id is None or row.run_id == run_id]

    async def _append(self, entry: StepEntry) -> None:
        self._rows.append(entry)


class FileStepJournal(StepJournal):
    """JSON-lines journal; one ``write`` per row so rows are never interleaved."""

    def __init__(self, path: Path | str, clock: Clock | None = None) -> None:
        super().__init__(clock)
        self.path = Path(path).expanduser()
        self._lock = asyncio.Lock()

    def _append_sync(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")

    def _read_sync(self) -> List[StepEntry]:
        if not self.path.exists():
            return []
        rows = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            if line.strip():
                rows.append(StepEntry.from_json(line))
        return rows

    async def entries(self, run_id: str | None = None) -> List[StepEntry]:
        try:
            rows = await asyncio.to_thread(self._read_sync)
        except (OSError, ValueError, KeyError) as exc:
            raise StoreError(f"cannot read journal {self.path}: {exc}") from exc
        return [row for row in rows if run_id is None or row.run_id == run_id]

    async def _append(self, entry: StepEntry) -> None:
        async with self._lock:
            try:
                await asyncio.to_thread(self._append_sync, entry.to_json())
            except OSError as exc:
                raise StoreError(f"cannot append to journal {self.path}: {exc}") from exc


__all__ = [
    "StepStatus",
    "StepEntry",
    "StepJournal",
    "MemoryStepJournal",
    "FileStepJournal",
]
