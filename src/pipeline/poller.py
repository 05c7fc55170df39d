"""
Job Poller

Drives one submitted job to a terminal state:

    PENDING -> PROCESSING -> SUCCEEDED | FAILED | TIMEOUT | CANCELLED

Each attempt is one status query. Between attempts the poller suspends for a
fixed interval through an injected sleep function, so tests can run the state
machine without real timers. No sleep happens after the final attempt, which
bounds total suspension to (max_attempts - 1) * poll_interval.
"""

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional

from src.core.logging import get_logger
from src.core.metrics import record_poll_attempts
from src.pipeline.models import (
    JobHandle,
    JobStatus,
    StatusReport,
    Artifact,
    StageError,
    StageErrorKind,
    StageResult,
    normalize_status,
)
from src.pipeline.provider import ProviderClient

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class PollState(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    TIMEOUT = "TIMEOUT"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self not in (PollState.PENDING, PollState.PROCESSING)


def next_state(report: StatusReport) -> PollState:
    """Transition taken after a status query."""
    status = report.status
    if status == JobStatus.SUCCEEDED:
        return PollState.SUCCEEDED
    if status == JobStatus.FAILED:
        return PollState.FAILED
    if status == JobStatus.PENDING:
        return PollState.PENDING
    return PollState.PROCESSING


def initial_state(handle: JobHandle) -> PollState:
    if normalize_status(handle.initial_status) == JobStatus.PENDING:
        return PollState.PENDING
    return PollState.PROCESSING


class JobPoller:
    """Polls a job handle until terminal or the attempt budget runs out."""

    def __init__(self, client: ProviderClient, sleep: Sleep = asyncio.sleep):
        self.client = client
        self._sleep = sleep

    async def _suspend(self, seconds: float, cancel_event: Optional[asyncio.Event]) -> bool:
        """Sleep for the poll interval. Returns True if cancelled meanwhile."""
        if cancel_event is None:
            await self._sleep(seconds)
            return False

        if cancel_event.is_set():
            return True

        sleeper = asyncio.ensure_future(self._sleep(seconds))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
        return cancel_event.is_set()

    async def poll_to_terminal(
        self,
        handle: JobHandle,
        poll_interval: float,
        max_attempts: int,
        stage: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> StageResult:
        """
        Poll until the job succeeds with an output, fails, or the budget is spent.

        Args:
            handle: Job returned by ProviderClient.submit
            poll_interval: Seconds to wait between queries
            max_attempts: Maximum number of status queries
            stage: Stage name attached to the result
            cancel_event: Optional signal that stops further polling

        Returns:
            Artifact on success, StageError(PROVIDER_FAILURE | TIMEOUT | CANCELLED) otherwise

        Raises:
            StatusQueryError: a status query itself failed (not retried)
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        state = initial_state(handle)
        last_status = handle.initial_status
        attempts = 0

        try:
            while attempts < max_attempts:
                if cancel_event is not None and cancel_event.is_set():
                    state = PollState.CANCELLED
                    break

                report = await self.client.get_status(handle)
                attempts += 1
                last_status = report.raw_status
                state = next_state(report)

                logger.debug(
                    "poll_attempt",
                    attempt=attempts,
                    max_attempts=max_attempts,
                    provider_status=report.raw_status,
                    state=state.value
                )

                if state == PollState.SUCCEEDED:
                    return Artifact(value=report.output, stage=stage)

                if state == PollState.FAILED:
                    logger.warning(
                        "job_failed",
                        attempt=attempts,
                        provider_status=report.raw_status,
                        detail=report.detail
                    )
                    return StageError(
                        kind=StageErrorKind.PROVIDER_FAILURE,
                        stage=stage,
                        detail=report.detail or report.raw_status
                    )

                if attempts < max_attempts:
                    if await self._suspend(poll_interval, cancel_event):
                        state = PollState.CANCELLED
                        break
            else:
                state = PollState.TIMEOUT
        finally:
            record_poll_attempts(stage or "unknown", attempts)

        if state == PollState.CANCELLED:
            logger.info("polling_cancelled", attempts=attempts)
            return StageError(
                kind=StageErrorKind.CANCELLED,
                stage=stage,
                detail=f"cancelled after {attempts} polls (last status: {last_status})"
            )

        logger.warning(
            "job_timed_out",
            attempts=attempts,
            last_status=last_status
        )
        return StageError(kind=StageErrorKind.TIMEOUT, stage=stage, detail=last_status)
