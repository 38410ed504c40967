from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Tuple, Type, TypeVar

import structlog

from ..config import RetryPolicy
from ..exceptions import StepFailed
from ..metrics import STEP_FAILURES, STEP_RETRIES

logger = structlog.get_logger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    step: str,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``fn`` until it succeeds or ``policy`` is exhausted.

    Each attempt is bounded by ``policy.timeout_seconds``; a timed-out attempt
    counts as a failure. Exhaustion raises :class:`StepFailed` chained to the
    last error. Exceptions outside ``retry_on`` propagate immediately.
    """
    attempts = policy.limit + 1
    for attempt in range(1, attempts + 1):
        try:
            if policy.timeout_seconds is None:
                return await fn()
            return await asyncio.wait_for(fn(), timeout=policy.timeout_seconds)
        except asyncio.TimeoutError as exc:
            error: BaseException = exc
            reason = f"timed out after {policy.timeout_seconds}s"
        except retry_on as exc:
            error = exc
            reason = str(exc) or type(exc).__name__

        if attempt == attempts:
            STEP_FAILURES.labels(step).inc()
            logger.error("retry.exhausted", step=step, attempts=attempt, error=reason)
            raise StepFailed(step, attempt, error) from error

        delay = policy.delay_for(attempt)
        STEP_RETRIES.labels(step).inc()
        logger.warning("retry.scheduled", step=step, attempt=attempt, delay=delay, error=reason)
        await sleep(delay)

    raise AssertionError("unreachable")  # pragma: no cover


__all__ = ["with_retry"]
