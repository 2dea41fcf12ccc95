"""Concurrent per-job status polling with backoff and an admission cap."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from video_jobs.orchestrator.failure_classifier import PollFailureClass, classify_poll_failure
from video_jobs.orchestrator.models import ApiResult, Job, JobStatus, PollPhase
from video_jobs.orchestrator.repository import JobRepository

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 5.0
DEFAULT_MAX_BACKOFF_MULTIPLIER = 8.0
DEFAULT_MAX_CONCURRENT = 10


class StatusSource(Protocol):
    async def get_status(self, job_id: str) -> ApiResult[Job]: ...


@dataclass(slots=True)
class PollState:
    """Tracking bookkeeping for one job."""

    job_id: str
    phase: PollPhase = PollPhase.IDLE
    backoff_multiplier: float = 1.0
    requests: int = 0
    task: asyncio.Task[None] | None = None


class JobPoller:
    """Polls each tracked job until it is terminal, removed, or cancelled.

    At most ``max_concurrent`` jobs poll at once; the rest wait in FIFO order
    of their ``start_tracking`` call and are admitted as slots free up.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        client: StatusSource,
        repository: JobRepository,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
        max_backoff_multiplier: float = DEFAULT_MAX_BACKOFF_MULTIPLIER,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        on_completed: Callable[[str], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self.client = client
        self.repository = repository
        self.interval_seconds = interval_seconds
        self.max_backoff_multiplier = max_backoff_multiplier
        self.max_concurrent = max_concurrent
        self.on_completed = on_completed
        self._sleep = sleep
        self._states: dict[str, PollState] = {}
        self._pending: deque[str] = deque()
        self._active: dict[str, PollState] = {}
        self._idle = asyncio.Event()
        self._idle.set()

    def phase(self, job_id: str) -> PollPhase:
        state = self._states.get(job_id)
        return state.phase if state is not None else PollPhase.IDLE

    def state(self, job_id: str) -> PollState | None:
        return self._states.get(job_id)

    @property
    def active_job_ids(self) -> set[str]:
        return set(self._active)

    @property
    def pending_job_ids(self) -> list[str]:
        return list(self._pending)

    def start_tracking(self, job_id: str) -> bool:
        """Begin polling a job; returns False when it is already tracked or terminal."""

        state = self._states.get(job_id)
        if state is not None and state.phase in (
            PollPhase.PENDING,
            PollPhase.POLLING,
            PollPhase.TERMINAL,
        ):
            logger.debug("Video %s already %s; start ignored", job_id, state.phase.value)
            return False

        job = self.repository.get(job_id)
        if job is not None and job.status.is_terminal:
            self._states[job_id] = PollState(job_id=job_id, phase=PollPhase.TERMINAL)
            logger.debug("Video %s already %s; not polling", job_id, job.status.value)
            return False

        state = PollState(job_id=job_id)
        self._states[job_id] = state
        self._idle.clear()
        if len(self._active) < self.max_concurrent:
            self._launch(state)
        else:
            state.phase = PollPhase.PENDING
            self._pending.append(job_id)
            logger.info(
                "Video %s waiting for a polling slot (%d active, %d waiting)",
                job_id,
                len(self._active),
                len(self._pending),
            )
        return True

    async def stop_tracking(self, job_id: str) -> bool:
        """Cancel polling for one job and wait until its task has finished."""

        state = self._states.get(job_id)
        if state is None:
            return False

        if state.phase is PollPhase.PENDING:
            self._pending.remove(job_id)
            state.phase = PollPhase.CANCELLED
            logger.info("Stopped waiting to poll video: %s", job_id)
            self._refresh_idle()
            return True

        task = state.task
        if task is None:
            return False

        stopping = state.phase is PollPhase.POLLING
        if stopping:
            logger.info("Stopping polling for video: %s", job_id)
            state.phase = PollPhase.CANCELLED
            task.cancel()
        # A concurrent stop may have cancelled the task already; it still has to exit.
        await asyncio.wait({task})
        return stopping

    async def stop_all(self) -> None:
        """Cancel every queued and running poll and wait for all of them to exit."""

        while self._pending:
            job_id = self._pending.popleft()
            state = self._states.get(job_id)
            if state is not None:
                state.phase = PollPhase.CANCELLED

        tasks = []
        for state in list(self._active.values()):
            if state.task is None:
                continue
            state.phase = PollPhase.CANCELLED
            state.task.cancel()
            tasks.append(state.task)

        if tasks:
            logger.info("Stopping all polling tasks (%d active)", len(tasks))
            await asyncio.wait(tasks)
        self._refresh_idle()

    def forget(self, job_id: str) -> None:
        """Drop bookkeeping for a job that is no longer polled."""

        state = self._states.get(job_id)
        if state is not None and state.phase not in (PollPhase.PENDING, PollPhase.POLLING):
            del self._states[job_id]

    async def wait_until_idle(self) -> None:
        """Block until no job is polling or waiting for a slot."""

        await self._idle.wait()

    def _launch(self, state: PollState) -> None:
        state.phase = PollPhase.POLLING
        state.backoff_multiplier = 1.0
        self._active[state.job_id] = state
        task = asyncio.create_task(self._poll(state), name=f"poll-{state.job_id}")
        # A task cancelled before its first step never enters _poll, so cleanup
        # runs from a done callback rather than a finally block.
        task.add_done_callback(lambda done: self._release(state, done))
        state.task = task

    async def _poll(self, state: PollState) -> None:
        job_id = state.job_id
        logger.info("Starting polling for video: %s", job_id)
        try:
            while True:
                state.requests += 1
                result = await self.client.get_status(job_id)
                delay = self._apply(state, result)
                if delay is None:
                    return
                await self._sleep(delay)
        except asyncio.CancelledError:
            state.phase = PollPhase.CANCELLED
            logger.debug("Polling cancelled for video: %s", job_id)
            raise

    def _apply(self, state: PollState, result: ApiResult[Job]) -> float | None:
        """Apply one poll outcome; returns the next delay or None when polling ends."""

        job_id = state.job_id
        if result.ok:
            job = result.value
            self.repository.upsert(job)
            state.backoff_multiplier = 1.0
            if job.status.is_terminal:
                state.phase = PollPhase.TERMINAL
                logger.info("Video %s reached terminal state: %s", job_id, job.status.value)
                if job.status is JobStatus.COMPLETED and self.on_completed is not None:
                    self.on_completed(job_id)
                return None
            return self.interval_seconds

        error = result.error
        classification = classify_poll_failure(error)
        if classification.failure_class is PollFailureClass.NOT_FOUND:
            state.phase = PollPhase.TERMINAL
            logger.warning("Video %s not found (404) - removing from library", job_id)
            self.repository.remove(job_id)
            return None

        if classification.failure_class is PollFailureClass.NON_RETRYABLE:
            state.phase = PollPhase.TERMINAL
            logger.error(
                "Giving up polling video %s (%s): %s",
                job_id,
                classification.reason_code,
                error.message,
            )
            self.repository.publish_error(job_id, error)
            return None

        state.backoff_multiplier = min(
            state.backoff_multiplier * 2,
            self.max_backoff_multiplier,
        )
        delay = self.interval_seconds * state.backoff_multiplier
        logger.warning(
            "Transient error polling video %s (%s): %s - retrying in %.1fs",
            job_id,
            classification.reason_code,
            error.message,
            delay,
        )
        return delay

    def _release(self, state: PollState, task: asyncio.Task[None]) -> None:
        if not task.cancelled() and task.exception() is not None:
            state.phase = PollPhase.TERMINAL
            logger.error(
                "Polling task for video %s crashed",
                state.job_id,
                exc_info=task.exception(),
            )
        if self._active.get(state.job_id) is state:
            del self._active[state.job_id]
        state.task = None
        logger.debug("Polling task cleaned up for video: %s", state.job_id)
        self._admit_pending()
        self._refresh_idle()

    def _admit_pending(self) -> None:
        while self._pending and len(self._active) < self.max_concurrent:
            job_id = self._pending.popleft()
            state = self._states.get(job_id)
            if state is None or state.phase is not PollPhase.PENDING:
                continue
            job = self.repository.get(job_id)
            if job is not None and job.status.is_terminal:
                state.phase = PollPhase.TERMINAL
                continue
            self._launch(state)

    def _refresh_idle(self) -> None:
        if not self._active and not self._pending:
            self._idle.set()
        else:
            self._idle.clear()
