"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque

import httpx
import pytest

from video_jobs.http.client import ArtifactStream
from video_jobs.orchestrator.models import (
    ApiError,
    ApiResult,
    Job,
    JobPage,
    JobStatus,
)


@pytest.fixture()
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Keep developer VIDEO_JOBS_* settings and keys out of tests."""
    for name in (
        "VIDEO_JOBS_API_KEY",
        "OPENAI_API_KEY",
        "VIDEO_JOBS_API_BASE_URL",
        "VIDEO_JOBS_DOWNLOAD_DIR",
        "VIDEO_JOBS_AUTO_DOWNLOAD",
        "VIDEO_JOBS_TEMPLATES_DB_PATH",
        "VIDEO_JOBS_POLL_INTERVAL_SECONDS",
    ):
        monkeypatch.delenv(name, raising=False)


def make_job(
    job_id: str = "video_123",
    status: JobStatus = JobStatus.QUEUED,
    *,
    created_at: int = 1712697600,
    progress: int | None = None,
    model: str = "sora-2",
) -> Job:
    return Job(
        id=job_id,
        status=status,
        created_at=created_at,
        model=model,
        progress=progress,
    )


class FakeVideoApi:
    """Scriptable stand-in for VideoApiClient.

    Status results are consumed in order per job; the last one repeats.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.created: list[dict[str, object]] = []
        self.create_result: ApiResult[Job] = ApiResult.success(make_job())
        self.statuses: dict[str, deque[ApiResult[Job]]] = defaultdict(deque)
        self.pages: deque[ApiResult[JobPage]] = deque()
        self.list_cursors: list[str | None] = []
        self.delete_result: ApiResult[None] = ApiResult.success(None)
        self.artifact_body = b"fake-mp4-bytes"
        self.artifact_content_type = "video/mp4"
        self.download_gate: asyncio.Event | None = None
        self.status_gate: asyncio.Event | None = None
        self.in_flight = 0
        self.max_in_flight = 0

    def script_status(self, job_id: str, *results: ApiResult[Job] | Job) -> None:
        for result in results:
            if isinstance(result, Job):
                result = ApiResult.success(result)
            self.statuses[job_id].append(result)

    def calls_for(self, name: str) -> list[str]:
        return [job_id for call, job_id in self.calls if call == name]

    async def create_job(
        self,
        *,
        prompt: str,
        model: str,
        duration_seconds: int | None = None,
        resolution: str | None = None,
    ) -> ApiResult[Job]:
        self.calls.append(("create_job", prompt))
        self.created.append(
            {
                "prompt": prompt,
                "model": model,
                "duration_seconds": duration_seconds,
                "resolution": resolution,
            },
        )
        return self.create_result

    async def get_status(self, job_id: str) -> ApiResult[Job]:
        self.calls.append(("get_status", job_id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.status_gate is not None:
                await self.status_gate.wait()
            else:
                await asyncio.sleep(0)
        finally:
            self.in_flight -= 1
        queue = self.statuses[job_id]
        if not queue:
            return ApiResult.failure(ApiError.http(404, '{"error": {"message": "not found"}}'))
        if len(queue) > 1:
            return queue.popleft()
        return queue[0]

    async def list_jobs(self, *, limit: int, cursor: str | None = None) -> ApiResult[JobPage]:
        self.calls.append(("list_jobs", cursor or ""))
        self.list_cursors.append(cursor)
        if len(self.pages) > 1:
            return self.pages.popleft()
        return self.pages[0]

    async def delete_job(self, job_id: str) -> ApiResult[None]:
        self.calls.append(("delete_job", job_id))
        return self.delete_result

    async def download_artifact(self, job_id: str) -> ApiResult[ArtifactStream]:
        self.calls.append(("download_artifact", job_id))
        if self.download_gate is not None:
            await self.download_gate.wait()
        response = httpx.Response(
            200,
            headers={"content-type": self.artifact_content_type},
            content=self.artifact_body,
        )
        return ApiResult.success(ArtifactStream(response))


@pytest.fixture()
def fake_api() -> FakeVideoApi:
    return FakeVideoApi()
