"""Async HTTP client for the remote video generation API."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from typing import Any, TypeVar

import httpx

from video_jobs import __version__
from video_jobs.credentials import CredentialProvider
from video_jobs.orchestrator.contracts import build_create_payload, parse_job, parse_job_page
from video_jobs.orchestrator.models import ApiError, ApiResult, Job, JobPage, JobStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 10.0
DEFAULT_USER_AGENT = f"video-jobs/{__version__}"
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class ArtifactStreamError(Exception):
    """Raised when an artifact body stops arriving mid-transfer."""


class ArtifactStream:
    """Open streaming response for an artifact body; must be closed by the reader."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response

    @property
    def content_type(self) -> str:
        raw = self._response.headers.get("content-type", "")
        return raw.split(";", 1)[0].strip().lower() or DEFAULT_CONTENT_TYPE

    @property
    def content_length(self) -> int | None:
        raw = self._response.headers.get("content-length")
        if raw is None or not raw.isdigit():
            return None
        return int(raw)

    async def chunks(self, chunk_size: int) -> AsyncIterator[bytes]:
        """Yield body chunks without buffering the whole payload."""

        try:
            async for chunk in self._response.aiter_bytes(chunk_size):
                yield chunk
        except httpx.HTTPError as error:
            raise ArtifactStreamError(str(error) or type(error).__name__) from error

    async def aclose(self) -> None:
        await self._response.aclose()

    async def __aenter__(self) -> ArtifactStream:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()


class VideoApiClient:
    """One authenticated HTTP call per operation; never retries, never raises httpx errors."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        credentials: CredentialProvider,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout_seconds: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._credentials = credentials
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(timeout_seconds, connect=connect_timeout_seconds),
            headers={"User-Agent": user_agent},
            transport=transport,
            follow_redirects=True,
        )

    async def create_job(
        self,
        *,
        prompt: str,
        model: str,
        duration_seconds: int | None = None,
        resolution: str | None = None,
    ) -> ApiResult[Job]:
        """POST /videos."""

        logger.info(
            "Creating video job with model=%s size=%s prompt=%r",
            model,
            resolution or "default",
            prompt[:50],
        )
        payload = build_create_payload(
            prompt=prompt,
            model=model,
            duration_seconds=duration_seconds,
            resolution=resolution,
        )
        outcome = await self._request("POST", "/videos", json=payload)
        if not outcome.ok:
            return ApiResult.failure(outcome.error)
        result = _decode(outcome.value, parse_job, context="POST /videos")
        if result.ok:
            logger.info("Video job created: %s", result.value.id)
        return result

    async def get_status(self, job_id: str) -> ApiResult[Job]:
        """GET /videos/{id}."""

        context = f"GET /videos/{job_id}"
        outcome = await self._request("GET", f"/videos/{job_id}")
        if not outcome.ok:
            return ApiResult.failure(outcome.error)
        result = _decode(outcome.value, parse_job, context=context)
        if result.ok:
            _log_snapshot(result.value, raw_body=outcome.value.text)
        return result

    async def list_jobs(self, *, limit: int, cursor: str | None = None) -> ApiResult[JobPage]:
        """GET /videos with optional pagination cursor."""

        params: dict[str, Any] = {"limit": limit}
        if cursor:
            params["after"] = cursor
        outcome = await self._request("GET", "/videos", params=params)
        if not outcome.ok:
            return ApiResult.failure(outcome.error)
        result = _decode(outcome.value, parse_job_page, context="GET /videos")
        if result.ok:
            logger.info(
                "Retrieved %d videos (has_more=%s)",
                len(result.value.jobs),
                result.value.has_more,
            )
        return result

    async def delete_job(self, job_id: str) -> ApiResult[None]:
        """DELETE /videos/{id}; the response body is ignored."""

        logger.info("Deleting video: %s", job_id)
        outcome = await self._request("DELETE", f"/videos/{job_id}")
        if not outcome.ok:
            return ApiResult.failure(outcome.error)
        logger.info("Video deleted: %s", job_id)
        return ApiResult.success(None)

    async def download_artifact(self, job_id: str) -> ApiResult[ArtifactStream]:
        """GET /videos/{id}/content as an open stream."""

        credential = self._credentials.get_credential()
        if credential is None:
            logger.error("No API credential available for download of %s", job_id)
            return ApiResult.failure(ApiError.auth())

        request = self._client.build_request(
            "GET",
            f"/videos/{job_id}/content",
            headers=_auth_headers(credential),
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.TimeoutException:
            logger.warning("Timeout opening artifact stream for %s", job_id)
            return ApiResult.failure(ApiError.network("timeout"))
        except httpx.HTTPError as error:
            logger.warning("HTTP error opening artifact stream for %s: %s", job_id, error)
            return ApiResult.failure(ApiError.network(str(error) or type(error).__name__))

        if not response.is_success:
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            except httpx.HTTPError:
                body = ""
            finally:
                await response.aclose()
            logger.error("HTTP error %s downloading %s: %s", response.status_code, job_id, body)
            return ApiResult.failure(ApiError.http(response.status_code, body))

        logger.info(
            "Opened artifact stream for %s (%s)",
            job_id,
            response.headers.get("content-type"),
        )
        return ApiResult.success(ArtifactStream(response))

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> VideoApiClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> ApiResult[httpx.Response]:
        credential = self._credentials.get_credential()
        if credential is None:
            logger.error("No API credential available for %s %s", method, path)
            return ApiResult.failure(ApiError.auth())

        try:
            response = await self._client.request(
                method,
                path,
                params=params,
                json=json,
                headers=_auth_headers(credential),
            )
        except httpx.TimeoutException:
            logger.warning("Timeout on %s %s", method, path)
            return ApiResult.failure(ApiError.network("timeout"))
        except httpx.HTTPError as error:
            logger.warning("HTTP error on %s %s: %s", method, path, error)
            return ApiResult.failure(ApiError.network(str(error) or type(error).__name__))

        logger.debug("HTTP %s response received for %s %s", response.status_code, method, path)
        if not response.is_success:
            logger.error(
                "HTTP error %s on %s %s: %s",
                response.status_code,
                method,
                path,
                response.text,
            )
            return ApiResult.failure(ApiError.http(response.status_code, response.text))
        return ApiResult.success(response)


def _auth_headers(credential: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {credential}"}


def _decode(
    response: httpx.Response,
    parser: Callable[[Any], T],
    *,
    context: str,
) -> ApiResult[T]:
    try:
        return ApiResult.success(parser(response.json()))
    except (TypeError, ValueError) as error:
        logger.error(
            "Decoding error for %s: %s\nRaw response:\n%s",
            context,
            error,
            response.text,
        )
        return ApiResult.failure(ApiError.decode(str(error), body=response.text))


def _log_snapshot(job: Job, *, raw_body: str) -> None:
    if job.status is JobStatus.FAILED:
        logger.error(
            "Video %s failed: code=%s message=%s raw=%s",
            job.id,
            job.error.code if job.error else "none",
            job.error.message if job.error else "none",
            raw_body,
        )
    elif job.status is JobStatus.QUEUED:
        if job.error is not None:
            logger.warning(
                "Queued video %s carries an error field: code=%s message=%s",
                job.id,
                job.error.code,
                job.error.message,
            )
        logger.debug(
            "Video %s queued (model=%s seconds=%s)",
            job.id,
            job.model,
            job.duration_seconds,
        )
    elif job.status is JobStatus.IN_PROGRESS:
        logger.debug("Video %s in progress: %s%%", job.id, job.progress or 0)
    else:
        logger.debug("Video %s completed", job.id)
