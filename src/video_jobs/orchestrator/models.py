"""Domain models for video generation jobs and API outcomes."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class JobStatus(str, Enum):
    """Server-reported job lifecycle states."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class PollPhase(str, Enum):
    """Per-job tracking states owned by the poller."""

    IDLE = "idle"
    PENDING = "pending"
    POLLING = "polling"
    TERMINAL = "terminal"
    CANCELLED = "cancelled"


class ApiErrorKind(str, Enum):
    """Failure taxonomy shared by transport and orchestrator."""

    NETWORK = "network"
    DECODE = "decode"
    HTTP = "http"
    AUTH = "auth"
    VALIDATION = "validation"


@dataclass(slots=True, frozen=True)
class JobError:
    """Error details reported by the server for a failed generation."""

    code: str | None = None
    message: str | None = None


@dataclass(slots=True, frozen=True)
class ArtifactHandle:
    """Location of a downloaded artifact on local storage."""

    path: Path
    content_type: str
    size_bytes: int

    @property
    def uri(self) -> str:
        return self.path.resolve().as_uri()


@dataclass(slots=True, frozen=True)
class Job:
    """Last-known snapshot of one remote generation request."""

    id: str
    status: JobStatus
    created_at: int
    model: str
    object: str = "video"
    progress: int | None = None
    completed_at: int | None = None
    expires_at: int | None = None
    error: JobError | None = None
    duration_seconds: int | None = None
    # Wire form of ``seconds``; the API sends a string, older payloads an integer.
    seconds_as_text: bool = True
    resolution: str | None = None
    quality: str | None = None
    remixed_from: str | None = None
    extras: dict[str, Any] = field(default_factory=dict)
    local_artifact_handle: ArtifactHandle | None = None


@dataclass(slots=True, frozen=True)
class JobPage:
    """One page of the job listing."""

    jobs: list[Job]
    has_more: bool = False
    next_cursor: str | None = None


@dataclass(slots=True, frozen=True)
class ApiError:
    """Typed failure returned instead of raising transport exceptions."""

    kind: ApiErrorKind
    status_code: int | None = None
    body: str | None = None
    details: str | None = None

    @classmethod
    def network(cls, details: str) -> ApiError:
        return cls(kind=ApiErrorKind.NETWORK, details=details)

    @classmethod
    def decode(cls, details: str, *, body: str | None = None) -> ApiError:
        return cls(kind=ApiErrorKind.DECODE, details=details, body=body)

    @classmethod
    def http(cls, status_code: int, body: str) -> ApiError:
        return cls(kind=ApiErrorKind.HTTP, status_code=status_code, body=body)

    @classmethod
    def auth(cls) -> ApiError:
        return cls(kind=ApiErrorKind.AUTH, details="No API credential configured")

    @classmethod
    def validation(cls, details: str) -> ApiError:
        return cls(kind=ApiErrorKind.VALIDATION, details=details)

    @property
    def message(self) -> str:
        """Human readable one-line description."""

        if self.kind is ApiErrorKind.HTTP:
            return f"HTTP {self.status_code}: {_server_error_message(self.body)}"
        if self.kind is ApiErrorKind.NETWORK:
            return f"Network error: {self.details or 'connection failed'}"
        if self.kind is ApiErrorKind.DECODE:
            return f"Failed to decode response: {self.details or 'unexpected payload'}"
        return self.details or self.kind.value


@dataclass(slots=True)
class ApiResult(Generic[T]):
    """Outcome of one logical API operation."""

    value: T | None = None
    error: ApiError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> ApiResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: ApiError) -> ApiResult[T]:
        return cls(error=error)


@dataclass(slots=True)
class Template:
    """Reusable prompt text authored by the user."""

    id: str
    title: str
    text: str
    created_at: datetime
    modified_at: datetime


def _server_error_message(body: str | None) -> str:
    if not body:
        return "Unknown error"
    try:
        payload = json.loads(body)
    except ValueError:
        return body.strip() or "Unknown error"
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
    return body.strip()
