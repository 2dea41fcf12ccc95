"""In-memory job cache observed by the presentation layer."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import replace
from typing import Protocol

from video_jobs.orchestrator.models import ApiError, ArtifactHandle, Job, JobStatus

logger = logging.getLogger(__name__)


class JobObserver(Protocol):
    """Presentation sink notified about job changes."""

    def job_updated(self, job: Job) -> None: ...

    def job_removed(self, job_id: str) -> None: ...

    def job_error(self, job_id: str, error: ApiError) -> None: ...


class JobRepository:
    """Single authoritative map from job id to last-known Job.

    Writers are serialized by an internal lock; observers are notified after
    the lock is released, in the order the writes were applied.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()
        self._observers: list[JobObserver] = []

    def subscribe(self, observer: JobObserver) -> None:
        self._observers.append(observer)

    def unsubscribe(self, observer: JobObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def upsert(self, job: Job) -> bool:
        """Replace the record for job.id; returns True when anything changed."""

        with self._lock:
            current = self._jobs.get(job.id)
            if (
                current is not None
                and current.local_artifact_handle is not None
                and job.local_artifact_handle is None
                and job.status is JobStatus.COMPLETED
            ):
                # The handle is client-only; server snapshots never carry it.
                job = replace(job, local_artifact_handle=current.local_artifact_handle)
            if current == job:
                logger.debug("Video %s unchanged: %s", job.id, job.status.value)
                return False
            self._jobs[job.id] = job

        if current is None:
            logger.info("Video %s added with status %s", job.id, job.status.value)
        elif current.status is not job.status:
            logger.info(
                "Video %s status updated: %s -> %s",
                job.id,
                current.status.value,
                job.status.value,
            )
        self._notify(lambda observer: observer.job_updated(job))
        return True

    def remove(self, job_id: str) -> bool:
        with self._lock:
            removed = self._jobs.pop(job_id, None)
        if removed is None:
            return False
        logger.info("Video %s removed from library", job_id)
        self._notify(lambda observer: observer.job_removed(job_id))
        return True

    def get(self, job_id: str) -> Job | None:
        with self._lock:
            return self._jobs.get(job_id)

    def list(self) -> list[Job]:
        """All jobs, most recently created first."""

        with self._lock:
            jobs = list(self._jobs.values())
        return sorted(jobs, key=lambda job: (job.created_at, job.id), reverse=True)

    def set_artifact_handle(self, job_id: str, handle: ArtifactHandle) -> bool:
        """Attach a downloaded artifact; ignored unless the job is Completed."""

        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                logger.warning("Cannot attach artifact to unknown video %s", job_id)
                return False
            if current.status is not JobStatus.COMPLETED:
                logger.warning(
                    "Cannot attach artifact to video %s in status %s",
                    job_id,
                    current.status.value,
                )
                return False
            updated = replace(current, local_artifact_handle=handle)
            if updated == current:
                return False
            self._jobs[job_id] = updated
        self._notify(lambda observer: observer.job_updated(updated))
        return True

    def publish_error(self, job_id: str, error: ApiError) -> None:
        """Surface a per-job error to observers without touching the record."""

        self._notify(lambda observer: observer.job_error(job_id, error))

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        with self._lock:
            return job_id in self._jobs

    def _notify(self, callback: Callable[[JobObserver], None]) -> None:
        for observer in list(self._observers):
            try:
                callback(observer)
            except Exception:
                logger.exception("Job observer %r failed", observer)
