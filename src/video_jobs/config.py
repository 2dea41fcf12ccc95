"""Runtime configuration for the video job client."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

MAX_LIST_PAGE_SIZE = 100


@dataclass(slots=True)
class ApiSettings:
    """Remote API connection settings."""

    base_url: str = "https://api.openai.com/v1"
    request_timeout_seconds: float = 30.0
    connect_timeout_seconds: float = 10.0
    default_model: str = "sora-2"
    list_page_size: int = 100
    max_list_pages: int = 20


@dataclass(slots=True)
class PollingSettings:
    """Status polling cadence and limits."""

    interval_seconds: float = 5.0
    max_backoff_multiplier: float = 8.0
    max_concurrent_polls: int = 10
    stale_queue_warning_seconds: int = 300


@dataclass(slots=True)
class ArtifactSettings:
    """Artifact download settings."""

    download_dir: Path = Path(".video_jobs/artifacts")
    chunk_size_bytes: int = 1_048_576
    auto_download: bool = True


@dataclass(slots=True)
class TemplateSettings:
    """Prompt template storage settings."""

    db_path: Path = Path(".video_jobs/templates.db")


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    api: ApiSettings = field(default_factory=ApiSettings)
    polling: PollingSettings = field(default_factory=PollingSettings)
    artifacts: ArtifactSettings = field(default_factory=ArtifactSettings)
    templates: TemplateSettings = field(default_factory=TemplateSettings)

    @classmethod
    def from_env(cls, download_dir: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            api=ApiSettings(
                base_url=os.getenv("VIDEO_JOBS_API_BASE_URL", "https://api.openai.com/v1"),
                request_timeout_seconds=float(
                    os.getenv("VIDEO_JOBS_REQUEST_TIMEOUT_SECONDS", "30.0"),
                ),
                connect_timeout_seconds=float(
                    os.getenv("VIDEO_JOBS_CONNECT_TIMEOUT_SECONDS", "10.0"),
                ),
                default_model=os.getenv("VIDEO_JOBS_DEFAULT_MODEL", "sora-2"),
                list_page_size=int(os.getenv("VIDEO_JOBS_LIST_PAGE_SIZE", "100")),
                max_list_pages=int(os.getenv("VIDEO_JOBS_MAX_LIST_PAGES", "20")),
            ),
            polling=PollingSettings(
                interval_seconds=float(os.getenv("VIDEO_JOBS_POLL_INTERVAL_SECONDS", "5.0")),
                max_backoff_multiplier=float(
                    os.getenv("VIDEO_JOBS_POLL_MAX_BACKOFF_MULTIPLIER", "8.0"),
                ),
                max_concurrent_polls=int(os.getenv("VIDEO_JOBS_MAX_CONCURRENT_POLLS", "10")),
                stale_queue_warning_seconds=int(
                    os.getenv("VIDEO_JOBS_STALE_QUEUE_WARNING_SECONDS", "300"),
                ),
            ),
            artifacts=ArtifactSettings(
                download_dir=download_dir
                or Path(os.getenv("VIDEO_JOBS_DOWNLOAD_DIR", ".video_jobs/artifacts")),
                chunk_size_bytes=int(os.getenv("VIDEO_JOBS_DOWNLOAD_CHUNK_BYTES", "1048576")),
                auto_download=_env_bool("VIDEO_JOBS_AUTO_DOWNLOAD", default=True),
            ),
            templates=TemplateSettings(
                db_path=Path(os.getenv("VIDEO_JOBS_TEMPLATES_DB_PATH", ".video_jobs/templates.db")),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if any value is out of range."""

        _validate_base_url(self.api.base_url)
        if self.api.request_timeout_seconds <= 0:
            raise ValueError("VIDEO_JOBS_REQUEST_TIMEOUT_SECONDS must be > 0.")
        if self.api.connect_timeout_seconds <= 0:
            raise ValueError("VIDEO_JOBS_CONNECT_TIMEOUT_SECONDS must be > 0.")
        if not 1 <= self.api.list_page_size <= MAX_LIST_PAGE_SIZE:
            raise ValueError(
                f"VIDEO_JOBS_LIST_PAGE_SIZE must be between 1 and {MAX_LIST_PAGE_SIZE}.",
            )
        if self.api.max_list_pages < 1:
            raise ValueError("VIDEO_JOBS_MAX_LIST_PAGES must be >= 1.")
        if self.polling.interval_seconds <= 0:
            raise ValueError("VIDEO_JOBS_POLL_INTERVAL_SECONDS must be > 0.")
        if self.polling.max_backoff_multiplier < 1:
            raise ValueError("VIDEO_JOBS_POLL_MAX_BACKOFF_MULTIPLIER must be >= 1.")
        if self.polling.max_concurrent_polls < 1:
            raise ValueError("VIDEO_JOBS_MAX_CONCURRENT_POLLS must be >= 1.")
        if self.polling.stale_queue_warning_seconds < 0:
            raise ValueError("VIDEO_JOBS_STALE_QUEUE_WARNING_SECONDS must be >= 0.")
        if self.artifacts.chunk_size_bytes < 1:
            raise ValueError("VIDEO_JOBS_DOWNLOAD_CHUNK_BYTES must be >= 1.")


def _validate_base_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            "Invalid VIDEO_JOBS_API_BASE_URL: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
