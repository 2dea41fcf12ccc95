"""Use-case façade over the API client, job cache, poller and artifact fetcher."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from collections.abc import Awaitable, Callable
from typing import Protocol

from video_jobs.config import Settings
from video_jobs.http.client import ArtifactStream
from video_jobs.orchestrator.artifacts import ArtifactFetcher
from video_jobs.orchestrator.models import (
    ApiError,
    ApiResult,
    ArtifactHandle,
    Job,
    JobPage,
    JobStatus,
)
from video_jobs.orchestrator.poller import JobPoller
from video_jobs.orchestrator.repository import JobRepository

logger = logging.getLogger(__name__)

HTTP_NOT_FOUND = 404


class VideoApi(Protocol):
    """Transport operations the orchestrator depends on."""

    async def create_job(
        self,
        *,
        prompt: str,
        model: str,
        duration_seconds: int | None = None,
        resolution: str | None = None,
    ) -> ApiResult[Job]: ...

    async def get_status(self, job_id: str) -> ApiResult[Job]: ...

    async def list_jobs(self, *, limit: int, cursor: str | None = None) -> ApiResult[JobPage]: ...

    async def delete_job(self, job_id: str) -> ApiResult[None]: ...

    async def download_artifact(self, job_id: str) -> ApiResult[ArtifactStream]: ...


class JobOrchestrator:
    """Only entry point for callers: submit, track, download and delete jobs.

    Construct one instance per consumer and call ``shutdown`` when the
    consumer goes away; no polling or download task outlives it.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        client: VideoApi,
        fetcher: ArtifactFetcher,
        repository: JobRepository | None = None,
        default_model: str = "sora-2",
        poll_interval_seconds: float = 5.0,
        max_backoff_multiplier: float = 8.0,
        max_concurrent_polls: int = 10,
        list_page_size: int = 100,
        max_list_pages: int = 20,
        stale_queue_warning_seconds: int = 300,
        auto_download: bool = True,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.client = client
        self.fetcher = fetcher
        self.repository = repository if repository is not None else JobRepository()
        self.default_model = default_model
        self.list_page_size = list_page_size
        self.max_list_pages = max_list_pages
        self.stale_queue_warning_seconds = stale_queue_warning_seconds
        self.auto_download = auto_download
        self._clock = clock
        self.poller = JobPoller(
            client=client,
            repository=self.repository,
            interval_seconds=poll_interval_seconds,
            max_backoff_multiplier=max_backoff_multiplier,
            max_concurrent=max_concurrent_polls,
            on_completed=self._on_job_completed,
            sleep=sleep,
        )
        self._downloads: dict[str, asyncio.Task[ApiResult[ArtifactHandle]]] = {}
        self._background: set[asyncio.Task[None]] = set()
        self._closed = False

    @classmethod
    def from_settings(cls, settings: Settings, *, client: VideoApi) -> JobOrchestrator:
        return cls(
            client=client,
            fetcher=ArtifactFetcher(
                client=client,
                download_dir=settings.artifacts.download_dir,
                chunk_size_bytes=settings.artifacts.chunk_size_bytes,
            ),
            default_model=settings.api.default_model,
            poll_interval_seconds=settings.polling.interval_seconds,
            max_backoff_multiplier=settings.polling.max_backoff_multiplier,
            max_concurrent_polls=settings.polling.max_concurrent_polls,
            list_page_size=settings.api.list_page_size,
            max_list_pages=settings.api.max_list_pages,
            stale_queue_warning_seconds=settings.polling.stale_queue_warning_seconds,
            auto_download=settings.artifacts.auto_download,
        )

    def jobs(self) -> list[Job]:
        return self.repository.list()

    def get_job(self, job_id: str) -> Job | None:
        return self.repository.get(job_id)

    async def submit(
        self,
        prompt: str,
        *,
        model: str | None = None,
        duration_seconds: int | None = None,
        resolution: str | None = None,
    ) -> ApiResult[Job]:
        """Create a job and start tracking it; the prompt is validated locally first."""

        if self._closed:
            return ApiResult.failure(ApiError.validation("Orchestrator has been shut down"))
        if not prompt or not prompt.strip():
            return ApiResult.failure(ApiError.validation("Prompt must not be empty"))
        if duration_seconds is not None and duration_seconds <= 0:
            return ApiResult.failure(ApiError.validation("Duration must be a positive number"))

        result = await self.client.create_job(
            prompt=prompt,
            model=model or self.default_model,
            duration_seconds=duration_seconds,
            resolution=resolution,
        )
        if not result.ok:
            logger.error("Failed to create video job: %s", result.error.message)
            return result

        job = result.value
        self.repository.upsert(job)
        self.poller.start_tracking(job.id)
        return result

    async def refresh_all(self) -> ApiResult[None]:
        """Reconcile the cache with the server listing, then track live jobs.

        Local jobs missing from the listing are kept; only explicit deletes and
        404s during polling remove records.
        """

        if self._closed:
            return ApiResult.failure(ApiError.validation("Orchestrator has been shut down"))

        fetched: list[Job] = []
        cursor: str | None = None
        for _ in range(self.max_list_pages):
            result = await self.client.list_jobs(limit=self.list_page_size, cursor=cursor)
            if not result.ok:
                logger.error("Failed to load videos: %s", result.error.message)
                return ApiResult.failure(result.error)
            page = result.value
            for job in page.jobs:
                self.repository.upsert(job)
            fetched.extend(page.jobs)
            if not page.has_more or not page.next_cursor:
                break
            cursor = page.next_cursor
        else:
            logger.warning("Stopped listing videos after %d pages", self.max_list_pages)

        self._log_library_summary(fetched)
        for job in self.repository.list():
            if not job.status.is_terminal:
                self.poller.start_tracking(job.id)
        return ApiResult.success(None)

    async def fetch_status(self, job_id: str) -> ApiResult[Job]:
        """One-shot status refresh for a single job."""

        result = await self.client.get_status(job_id)
        if result.ok:
            self.repository.upsert(result.value)
        elif result.error.status_code == HTTP_NOT_FOUND:
            self.repository.remove(job_id)
        return result

    async def delete_job(self, job_id: str) -> ApiResult[None]:
        """Stop polling, delete remotely, then drop the local record."""

        stopped = await self.poller.stop_tracking(job_id)
        result = await self.client.delete_job(job_id)
        if not result.ok:
            logger.error("Failed to delete video %s: %s", job_id, result.error.message)
            if stopped and not self._closed:
                self.poller.start_tracking(job_id)
            return result
        self.repository.remove(job_id)
        self.poller.forget(job_id)
        return result

    async def retrieve_artifact(self, job_id: str) -> ApiResult[ArtifactHandle]:
        """Return the local artifact, downloading it at most once per job at a time."""

        job = self.repository.get(job_id)
        if job is None:
            return ApiResult.failure(ApiError.validation(f"Unknown video: {job_id}"))
        if job.status is not JobStatus.COMPLETED:
            return ApiResult.failure(
                ApiError.validation(
                    f"Video {job_id} is {job.status.value}; only completed videos have content",
                ),
            )
        if job.local_artifact_handle is not None:
            return ApiResult.success(job.local_artifact_handle)

        download = self._downloads.get(job_id)
        if download is None:
            if self._closed:
                return ApiResult.failure(ApiError.validation("Orchestrator has been shut down"))
            download = asyncio.create_task(self._download(job_id), name=f"download-{job_id}")
            self._downloads[job_id] = download
            download.add_done_callback(lambda done: self._forget_download(job_id, done))
        else:
            logger.debug("Joining in-flight download for video %s", job_id)
        # Shielded so one caller giving up does not abort the shared download.
        return await asyncio.shield(download)

    async def wait_until_settled(self) -> None:
        """Wait until nothing is polling, queued for polling, or downloading."""

        while True:
            await self.poller.wait_until_idle()
            pending = [*self._background, *self._downloads.values()]
            if not pending:
                return
            await asyncio.wait(pending)

    async def shutdown(self) -> None:
        """Stop all polling and downloads and wait for them to exit."""

        self._closed = True
        await self.poller.stop_all()
        pending = [*self._background, *self._downloads.values()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)
        logger.info("Orchestrator shut down")

    async def _download(self, job_id: str) -> ApiResult[ArtifactHandle]:
        result = await self.fetcher.fetch(job_id)
        if result.ok:
            self.repository.set_artifact_handle(job_id, result.value)
        else:
            logger.error("Failed to download video %s: %s", job_id, result.error.message)
        return result

    def _forget_download(self, job_id: str, task: asyncio.Task[ApiResult[ArtifactHandle]]) -> None:
        if self._downloads.get(job_id) is task:
            del self._downloads[job_id]

    def _on_job_completed(self, job_id: str) -> None:
        if self._closed or not self.auto_download:
            return
        task = asyncio.create_task(self._auto_download(job_id), name=f"auto-download-{job_id}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _auto_download(self, job_id: str) -> None:
        result = await self.retrieve_artifact(job_id)
        if not result.ok:
            self.repository.publish_error(job_id, result.error)

    def _log_library_summary(self, jobs: list[Job]) -> None:
        counts = Counter(job.status for job in jobs)
        logger.info(
            "Video status summary: queued=%d, in_progress=%d, completed=%d, failed=%d",
            counts[JobStatus.QUEUED],
            counts[JobStatus.IN_PROGRESS],
            counts[JobStatus.COMPLETED],
            counts[JobStatus.FAILED],
        )
        now = int(self._clock())
        for job in jobs:
            if job.status is JobStatus.FAILED:
                logger.warning(
                    "Failed video %s: code=%s message=%s",
                    job.id,
                    job.error.code if job.error else "none",
                    job.error.message if job.error else "none",
                )
            elif job.status is JobStatus.QUEUED:
                if job.error is not None:
                    logger.warning(
                        "Queued video %s has error field: code=%s message=%s",
                        job.id,
                        job.error.code,
                        job.error.message,
                    )
                queued_for = now - job.created_at
                if queued_for > self.stale_queue_warning_seconds:
                    logger.warning(
                        "Video %s queued for %d seconds - possible API-side guardrail block",
                        job.id,
                        queued_for,
                    )
