"""JSON contracts between the remote video API and local job records."""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path
from typing import Any

from video_jobs.orchestrator.models import ArtifactHandle, Job, JobError, JobPage, JobStatus

_STATUS_ALIASES = {
    "queued": JobStatus.QUEUED,
    "in_progress": JobStatus.IN_PROGRESS,
    "processing": JobStatus.IN_PROGRESS,
    "completed": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
}

_KNOWN_FIELDS = frozenset(
    {
        "id",
        "object",
        "model",
        "status",
        "progress",
        "created_at",
        "completed_at",
        "expires_at",
        "error",
        "seconds",
        "size",
        "quality",
        "remixed_from_video_id",
    },
)


def parse_job(raw: Any) -> Job:
    """Validate a server job object and map it to a Job record."""

    if not isinstance(raw, dict):
        raise TypeError("job payload must be an object")

    job_id = raw.get("id")
    if not isinstance(job_id, str) or not job_id.strip():
        raise ValueError("job.id must be a non-empty string")

    status_raw = raw.get("status")
    if not isinstance(status_raw, str) or status_raw not in _STATUS_ALIASES:
        raise ValueError(f"job.status has unsupported value: {status_raw!r}")

    created_at = _optional_int(raw, "created_at")
    if created_at is None:
        raise ValueError("job.created_at must be an integer")

    model = raw.get("model", "")
    if not isinstance(model, str):
        raise TypeError("job.model must be a string")

    object_type = raw.get("object", "video")
    if not isinstance(object_type, str):
        raise TypeError("job.object must be a string")

    progress = _optional_int(raw, "progress")
    if progress is not None and not 0 <= progress <= 100:  # noqa: PLR2004
        raise ValueError(f"job.progress out of range: {progress}")

    return Job(
        id=job_id,
        status=_STATUS_ALIASES[status_raw],
        created_at=created_at,
        model=model,
        object=object_type,
        progress=progress,
        completed_at=_optional_int(raw, "completed_at"),
        expires_at=_optional_int(raw, "expires_at"),
        error=_parse_error(raw.get("error")),
        duration_seconds=_parse_seconds(raw.get("seconds")),
        seconds_as_text=not isinstance(raw.get("seconds"), int),
        resolution=_optional_str(raw, "size"),
        quality=_optional_str(raw, "quality"),
        remixed_from=_optional_str(raw, "remixed_from_video_id"),
        extras={key: value for key, value in raw.items() if key not in _KNOWN_FIELDS},
    )


def parse_job_page(raw: Any) -> JobPage:
    """Decode a list response; a legacy shape without pagination means one page."""

    if isinstance(raw, list):
        return JobPage(jobs=[parse_job(item) for item in raw])
    if not isinstance(raw, dict):
        raise TypeError("list payload must be an object")

    items = raw.get("data")
    if not isinstance(items, list):
        raise TypeError("list.data must be an array")

    has_more = raw.get("has_more", False)
    if has_more is None:
        has_more = False
    if not isinstance(has_more, bool):
        raise TypeError("list.has_more must be a boolean")

    next_cursor = raw.get("next_cursor")
    if next_cursor is None and has_more:
        next_cursor = raw.get("last_id")
    if next_cursor is not None and not isinstance(next_cursor, str):
        raise TypeError("list.next_cursor must be a string when provided")

    jobs = [parse_job(item) for item in items]
    if has_more and next_cursor is None and jobs:
        next_cursor = jobs[-1].id
    return JobPage(jobs=jobs, has_more=has_more, next_cursor=next_cursor)


def job_to_payload(job: Job) -> dict[str, Any]:
    """Serialize a Job back into the server JSON shape (no client-only fields)."""

    payload: dict[str, Any] = dict(job.extras)
    payload.update(
        {
            "id": job.id,
            "object": job.object,
            "model": job.model,
            "status": job.status.value,
            "progress": job.progress,
            "created_at": job.created_at,
            "completed_at": job.completed_at,
            "expires_at": job.expires_at,
            "error": (
                {"code": job.error.code, "message": job.error.message}
                if job.error is not None
                else None
            ),
            "seconds": _seconds_to_wire(job),
            "size": job.resolution,
            "quality": job.quality,
        },
    )
    if job.remixed_from is not None:
        payload["remixed_from_video_id"] = job.remixed_from
    return payload


def job_to_cache_payload(job: Job) -> dict[str, Any]:
    """Serialize a Job for local cache inspection, including the artifact handle."""

    payload = job_to_payload(job)
    handle = job.local_artifact_handle
    payload["local_artifact_handle"] = (
        {
            "path": str(handle.path),
            "content_type": handle.content_type,
            "size_bytes": handle.size_bytes,
        }
        if handle is not None
        else None
    )
    return payload


def job_from_cache_payload(raw: dict[str, Any]) -> Job:
    """Inverse of job_to_cache_payload."""

    server_fields = {key: value for key, value in raw.items() if key != "local_artifact_handle"}
    job = parse_job(server_fields)
    handle_raw = raw.get("local_artifact_handle")
    if handle_raw is None:
        return job
    if not isinstance(handle_raw, dict):
        raise TypeError("local_artifact_handle must be an object")
    return replace(
        job,
        local_artifact_handle=ArtifactHandle(
            path=Path(str(handle_raw["path"])),
            content_type=str(handle_raw.get("content_type", "")),
            size_bytes=int(handle_raw.get("size_bytes", 0)),
        ),
    )


def dump_job(job: Job) -> str:
    """Render a Job as deterministic JSON text."""

    return json.dumps(job_to_cache_payload(job), ensure_ascii=False, indent=2, sort_keys=True)


def build_create_payload(
    *,
    prompt: str,
    model: str,
    duration_seconds: int | None,
    resolution: str | None,
) -> dict[str, Any]:
    """Request body for job creation; the API expects seconds as a string."""

    payload: dict[str, Any] = {"model": model, "prompt": prompt}
    if duration_seconds is not None:
        payload["seconds"] = str(duration_seconds)
    if resolution:
        payload["size"] = resolution
    return payload


def _parse_error(raw: Any) -> JobError | None:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        raise TypeError("job.error must be an object when provided")
    code = raw.get("code")
    message = raw.get("message")
    if not isinstance(code, str | None) or not isinstance(message, str | None):
        raise TypeError("job.error.code and job.error.message must be strings when provided")
    return JobError(code=code, message=message)


def _parse_seconds(raw: Any) -> int | None:
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise TypeError("job.seconds must be a number or numeric string")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    raise ValueError(f"job.seconds has unsupported value: {raw!r}")


def _seconds_to_wire(job: Job) -> str | int | None:
    if job.duration_seconds is None:
        return None
    return str(job.duration_seconds) if job.seconds_as_text else job.duration_seconds


def _optional_int(raw: dict[str, Any], key: str) -> int | None:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"job.{key} must be an integer when provided")
    return value


def _optional_str(raw: dict[str, Any], key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise TypeError(f"job.{key} must be a string when provided")
    return value
