"""Streaming download of completed job artifacts to local storage."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
from pathlib import Path
from typing import BinaryIO, Protocol

from video_jobs.http.client import ArtifactStream, ArtifactStreamError
from video_jobs.orchestrator.models import ApiError, ApiResult, ArtifactHandle

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE_BYTES = 1_048_576
FALLBACK_EXTENSION = ".bin"
PARTIAL_SUFFIX = ".part"


class ArtifactSource(Protocol):
    async def download_artifact(self, job_id: str) -> ApiResult[ArtifactStream]: ...


class ArtifactFetcher:
    """Writes artifact streams chunk by chunk into a per-job file."""

    def __init__(
        self,
        *,
        client: ArtifactSource,
        download_dir: Path,
        chunk_size_bytes: int = DEFAULT_CHUNK_SIZE_BYTES,
    ) -> None:
        self.client = client
        self.download_dir = download_dir
        self.chunk_size_bytes = chunk_size_bytes

    def partial_path(self, job_id: str) -> Path:
        return self.download_dir / f"{_checked_name(job_id)}{PARTIAL_SUFFIX}"

    def target_path(self, job_id: str, content_type: str) -> Path:
        return self.download_dir / f"{_checked_name(job_id)}{extension_for(content_type)}"

    async def fetch(self, job_id: str) -> ApiResult[ArtifactHandle]:
        """Download one artifact; the handle is returned only after a full, flushed write."""

        try:
            _checked_name(job_id)
        except ValueError as error:
            return ApiResult.failure(ApiError.validation(str(error)))

        opened = await self.client.download_artifact(job_id)
        if not opened.ok:
            return ApiResult.failure(opened.error)

        stream = opened.value
        self.download_dir.mkdir(parents=True, exist_ok=True)
        partial = self.partial_path(job_id)
        target = self.target_path(job_id, stream.content_type)
        size_bytes = 0
        try:
            async with stream:
                # "wb" truncates any stale partial left by an earlier attempt.
                with partial.open("wb") as output:
                    async for chunk in stream.chunks(self.chunk_size_bytes):
                        await asyncio.to_thread(output.write, chunk)
                        size_bytes += len(chunk)
                        logger.debug("Video %s: %d bytes written", job_id, size_bytes)
                    await asyncio.to_thread(_flush_to_disk, output)
            partial.replace(target)
            self._remove_stale_copies(job_id, keep=target)
        except ArtifactStreamError as error:
            partial.unlink(missing_ok=True)
            logger.error("Download of video %s interrupted: %s", job_id, error)
            return ApiResult.failure(ApiError.network(f"download interrupted: {error}"))
        except BaseException:
            partial.unlink(missing_ok=True)
            raise

        logger.info("Video %s saved to %s (%d bytes)", job_id, target, size_bytes)
        return ApiResult.success(
            ArtifactHandle(path=target, content_type=stream.content_type, size_bytes=size_bytes),
        )

    def _remove_stale_copies(self, job_id: str, *, keep: Path) -> None:
        """Delete earlier downloads of the same job saved under another extension."""

        for path in self.download_dir.iterdir():
            if path == keep or path.stem != job_id or path.suffix == PARTIAL_SUFFIX:
                continue
            logger.info("Removing stale artifact for video %s: %s", job_id, path)
            path.unlink(missing_ok=True)


def extension_for(content_type: str) -> str:
    """File extension for a media type, ``.bin`` when unknown."""

    extension = mimetypes.guess_extension(content_type.split(";", 1)[0].strip())
    return extension or FALLBACK_EXTENSION


def _checked_name(job_id: str) -> str:
    if job_id in {"", ".", ".."} or any(sep in job_id for sep in ("/", "\\", "\0")):
        raise ValueError(f"Video id cannot be used as a file name: {job_id!r}")
    return job_id


def _flush_to_disk(output: BinaryIO) -> None:
    output.flush()
    os.fsync(output.fileno())
