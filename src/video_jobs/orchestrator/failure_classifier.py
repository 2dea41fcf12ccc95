"""Deterministic API failure classification for the poll retry policy."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from video_jobs.orchestrator.models import ApiError, ApiErrorKind

HTTP_NOT_FOUND = 404
HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR_MIN = 500


class PollFailureClass(str, Enum):
    """What the poller does after a failed status request."""

    TRANSIENT = "transient"
    NOT_FOUND = "not_found"
    NON_RETRYABLE = "non_retryable"


@dataclass(slots=True, frozen=True)
class PollFailureClassification:
    """Normalized failure classification result."""

    failure_class: PollFailureClass
    reason_code: str

    @property
    def is_retryable(self) -> bool:
        return self.failure_class is PollFailureClass.TRANSIENT


def classify_poll_failure(error: ApiError) -> PollFailureClassification:
    """Map a status request failure onto retry, removal, or give-up."""

    if error.kind is ApiErrorKind.NETWORK:
        return PollFailureClassification(PollFailureClass.TRANSIENT, "network")

    if error.kind is ApiErrorKind.HTTP and error.status_code is not None:
        if error.status_code == HTTP_NOT_FOUND:
            return PollFailureClassification(PollFailureClass.NOT_FOUND, "http_404")
        if error.status_code == HTTP_TOO_MANY_REQUESTS:
            return PollFailureClassification(PollFailureClass.TRANSIENT, "rate_limited")
        if error.status_code >= HTTP_SERVER_ERROR_MIN:
            return PollFailureClassification(
                PollFailureClass.TRANSIENT,
                f"server_error_{error.status_code}",
            )
        return PollFailureClassification(
            PollFailureClass.NON_RETRYABLE,
            f"http_{error.status_code}",
        )

    return PollFailureClassification(PollFailureClass.NON_RETRYABLE, error.kind.value)
