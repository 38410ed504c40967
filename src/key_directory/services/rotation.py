"""Rotation workflow: mint an encryption key, mint a signature key, sweep.

Steps run strictly in order, each under its own retry policy, and every
transition is written to a :class:`~key_directory.storage.journal.StepJournal`.
Re-running a ``run_id`` skips the steps the journal already marks completed,
so a process that died between steps picks up where it stopped.
"""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Set

import structlog

from ..config import RetryPolicy, RotationSteps
from ..exceptions import StepFailed
from ..logging import bound_context
from ..models import KeyPurpose
from ..storage.journal import StepJournal, StepStatus
from .key_lifecycle import KeyLifecycle
from .key_manager import KeyMinter
from .retry import Sleep, with_retry

logger = structlog.get_logger(__name__)

STEP_MINT_ENCRYPTION = "mint-encryption-key"
STEP_MINT_SIGNATURE = "mint-signature-key"
STEP_SWEEP = "sweep"
STEPS = (STEP_MINT_ENCRYPTION, STEP_MINT_SIGNATURE, STEP_SWEEP)


@dataclass(slots=True)
class RotationResult:
    run_id: str
    minted: Dict[str, int] = field(default_factory=dict)
    deleted: Dict[str, List[int]] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)


class RotationWorkflow:
    def __init__(
        self,
        minter: KeyMinter,
        lifecycle: KeyLifecycle,
        journal: StepJournal,
        policies: RotationSteps,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.minter = minter
        self.lifecycle = lifecycle
        self.journal = journal
        self.policies = policies
        self._sleep = sleep
        self._tasks: Set[asyncio.Task] = set()

    def _policy(self, step: str) -> RetryPolicy:
        return {
            STEP_MINT_ENCRYPTION: self.policies.mint_encryption_key,
            STEP_MINT_SIGNATURE: self.policies.mint_signature_key,
            STEP_SWEEP: self.policies.sweep,
        }[step]

    async def _mint(self, purpose: KeyPurpose, result: RotationResult) -> None:
        record = await self.minter.mint_unique(purpose)
        result.minted[purpose.value] = record.identifier

    async def _sweep(self, result: RotationResult) -> None:
        for purpose in KeyPurpose:
            result.deleted[purpose.value] = await self.lifecycle.sweep(purpose)

    def _action(self, step: str, result: RotationResult) -> Callable[[], Awaitable[None]]:
        if step == STEP_MINT_ENCRYPTION:
            return lambda: self._mint(KeyPurpose.ENCRYPTION, result)
        if step == STEP_MINT_SIGNATURE:
            return lambda: self._mint(KeyPurpose.SIGNATURE, result)
        return lambda: self._sweep(result)

    async def run(self, run_id: Optional[str] = None) -> RotationResult:
        """Execute (or resume) one rotation run.

        A step that exhausts its retries is journaled as failed and
        :class:`StepFailed` is raised; later steps of the run are not attempted
        and the next scheduled run starts afresh.
        """
        run_id = run_id or uuid.uuid4().hex
        with bound_context(run_id=run_id):
            return await self._run_steps(run_id)

    async def _run_steps(self, run_id: str) -> RotationResult:
        result = RotationResult(run_id=run_id)
        done = await self.journal.completed_steps(run_id)

        for step in STEPS:
            if step in done:
                result.skipped.append(step)
                logger.info("rotation.step.skipped", step=step)
                continue
            await self.journal.record(run_id, step, StepStatus.STARTED)
            logger.info("rotation.step.started", step=step)
            try:
                await with_retry(self._action(step, result), self._policy(step), step=step, sleep=self._sleep)
            except StepFailed as exc:
                await self.journal.record(run_id, step, StepStatus.FAILED, detail=str(exc.cause or exc))
                logger.error("rotation.step.failed", step=step, attempts=exc.attempts, error=str(exc.cause or exc))
                raise
            await self.journal.record(run_id, step, StepStatus.COMPLETED)
            logger.info("rotation.step.completed", step=step)

        logger.info("rotation.completed", minted=result.minted, deleted=result.deleted, skipped=result.skipped)
        return result

    def start(self, run_id: Optional[str] = None) -> str:
        """Schedule a run in the background and return its ID immediately."""
        run_id = run_id or uuid.uuid4().hex
        task = asyncio.get_running_loop().create_task(self.run(run_id), name=f"rotation-{run_id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.info("rotation.started", run_id=run_id)
        return run_id

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("rotation.cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error("rotation.run.failed", task=task.get_name(), error=str(exc))

    async def incomplete_runs(self) -> List[str]:
        """Runs with no failed step that did not complete every step."""
        rows = await self.journal.entries()
        order: List[str] = []
        completed: Dict[str, Set[str]] = {}
        failed: Set[str] = set()
        for row in rows:
            if row.run_id not in completed:
                order.append(row.run_id)
                completed[row.run_id] = set()
            if row.status == StepStatus.COMPLETED:
                completed[row.run_id].add(row.step)
            elif row.status == StepStatus.FAILED:
                failed.add(row.run_id)
        return [run_id for run_id in order if run_id not in failed and completed[run_id] != set(STEPS)]

    async def resume_incomplete(self) -> List[RotationResult]:
        results = []
        for run_id in await self.incomplete_runs():
            logger.info("rotation.resuming", run_id=run_id)
            try:
                results.append(await self.run(run_id))
            except StepFailed:
                continue
        return results

    async def drain(self) -> None:
        """Wait for background runs started with :meth:`start`."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class RotationScheduler:
    """Periodic trigger: start one rotation run every ``interval_seconds``."""

    def __init__(self, workflow: RotationWorkflow, interval_seconds: float) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.workflow = workflow
        self.interval_seconds = interval_seconds
        self._stopped = asyncio.Event()

    async def run_forever(self) -> None:
        await self.workflow.resume_incomplete()
        logger.info("scheduler.start", interval_seconds=self.interval_seconds)
        while not self._stopped.is_set():
            self.workflow.start()
            try:
                await asyncio.wait_for(self._stopped.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue
        await self.workflow.drain()
        logger.info("scheduler.stop")

    def stop(self) -> None:
        self._stopped.set()


__all__ = [
    "RotationResult",
    "RotationWorkflow",
    "RotationScheduler",
    "STEPS",
    "STEP_MINT_ENCRYPTION",
    "STEP_MINT_SIGNATURE",
    "STEP_SWEEP",
]
