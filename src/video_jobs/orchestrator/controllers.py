"""Controllers for video job CLI commands."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from video_jobs.config import Settings
from video_jobs.credentials import CredentialProvider, EnvCredentialProvider
from video_jobs.http.client import VideoApiClient
from video_jobs.orchestrator.models import ApiError, Job, Template
from video_jobs.orchestrator.services import JobOrchestrator
from video_jobs.templates import SqliteTemplateStore, TemplateLibrary


@dataclass(slots=True)
class SubmitCommand:
    """CLI inputs for submit command."""

    prompt: str
    model: str | None
    duration_seconds: int | None
    resolution: str | None
    wait: bool
    download_dir: Path | None = None


@dataclass(slots=True)
class ListJobsCommand:
    """CLI inputs for list and watch commands."""

    download_dir: Path | None = None


@dataclass(slots=True)
class JobCommand:
    """CLI inputs for commands addressing one job."""

    job_id: str
    download_dir: Path | None = None


@dataclass(slots=True)
class TemplateAddCommand:
    """CLI inputs for template creation."""

    title: str
    text: str
    db_path: Path | None = None


@dataclass(slots=True)
class TemplateDeleteCommand:
    """CLI inputs for template removal."""

    template_id: str
    db_path: Path | None = None


@dataclass(slots=True)
class CommandResult:
    """Printable outcome of one command."""

    lines: list[str] = field(default_factory=list)
    success: bool = True
    error: str | None = None


class JobEventPrinter:
    """Observer rendering repository events as text lines."""

    def __init__(self, emit: Callable[[str], None]) -> None:
        self._emit = emit

    def job_updated(self, job: Job) -> None:
        self._emit(format_job_line(job))

    def job_removed(self, job_id: str) -> None:
        self._emit(f"{job_id} removed")

    def job_error(self, job_id: str, error: ApiError) -> None:
        self._emit(f"{job_id} error: {error.message}")


class JobsCliController:
    """Coordinates job command execution; one orchestrator per command."""

    def __init__(
        self,
        *,
        credentials: CredentialProvider | None = None,
        client_factory: Callable[[Settings, CredentialProvider], VideoApiClient] | None = None,
    ) -> None:
        self.credentials = credentials
        self.client_factory = client_factory or _build_client

    def submit(self, command: SubmitCommand, emit: Callable[[str], None]) -> CommandResult:
        async def run(orchestrator: JobOrchestrator) -> CommandResult:
            result = await orchestrator.submit(
                command.prompt,
                model=command.model,
                duration_seconds=command.duration_seconds,
                resolution=command.resolution,
            )
            if not result.ok:
                return _failure(result.error)
            if command.wait:
                orchestrator.repository.subscribe(JobEventPrinter(emit))
                await orchestrator.wait_until_settled()
            job = orchestrator.get_job(result.value.id) or result.value
            return CommandResult(lines=[f"Submitted: {format_job_line(job)}"])

        return self._run(run, download_dir=command.download_dir)

    def list_jobs(self, command: ListJobsCommand) -> CommandResult:
        async def run(orchestrator: JobOrchestrator) -> CommandResult:
            # Snapshot only: polls started by the refresh are cancelled on shutdown.
            orchestrator.auto_download = False
            result = await orchestrator.refresh_all()
            if not result.ok:
                return _failure(result.error)
            jobs = orchestrator.jobs()
            lines = [f"Videos: {len(jobs)}"]
            lines.extend(format_job_line(job) for job in jobs)
            return CommandResult(lines=lines)

        return self._run(run, download_dir=command.download_dir)

    def status(self, command: JobCommand) -> CommandResult:
        async def run(orchestrator: JobOrchestrator) -> CommandResult:
            result = await orchestrator.fetch_status(command.job_id)
            if not result.ok:
                return _failure(result.error)
            job = result.value
            lines = [format_job_line(job)]
            if job.error is not None:
                lines.append(f"  error: code={job.error.code} message={job.error.message}")
            if job.remixed_from:
                lines.append(f"  remixed_from: {job.remixed_from}")
            return CommandResult(lines=lines)

        return self._run(run, download_dir=command.download_dir)

    def watch(self, command: ListJobsCommand, emit: Callable[[str], None]) -> CommandResult:
        async def run(orchestrator: JobOrchestrator) -> CommandResult:
            orchestrator.repository.subscribe(JobEventPrinter(emit))
            result = await orchestrator.refresh_all()
            if not result.ok:
                return _failure(result.error)
            await orchestrator.wait_until_settled()
            jobs = orchestrator.jobs()
            settled = sum(1 for job in jobs if job.status.is_terminal)
            return CommandResult(lines=[f"Settled: {settled}/{len(jobs)} videos terminal"])

        return self._run(run, download_dir=command.download_dir)

    def download(self, command: JobCommand) -> CommandResult:
        async def run(orchestrator: JobOrchestrator) -> CommandResult:
            orchestrator.auto_download = False
            status = await orchestrator.fetch_status(command.job_id)
            if not status.ok:
                return _failure(status.error)
            result = await orchestrator.retrieve_artifact(command.job_id)
            if not result.ok:
                return _failure(result.error)
            handle = result.value
            return CommandResult(
                lines=[
                    f"Saved {command.job_id}: {handle.path} "
                    f"({handle.size_bytes} bytes, {handle.content_type})",
                ],
            )

        return self._run(run, download_dir=command.download_dir)

    def delete(self, command: JobCommand) -> CommandResult:
        async def run(orchestrator: JobOrchestrator) -> CommandResult:
            result = await orchestrator.delete_job(command.job_id)
            if not result.ok:
                return _failure(result.error)
            return CommandResult(lines=[f"Deleted: {command.job_id}"])

        return self._run(run, download_dir=command.download_dir)

    def _run(
        self,
        operation: Callable[[JobOrchestrator], Awaitable[CommandResult]],
        *,
        download_dir: Path | None,
    ) -> CommandResult:
        settings = Settings.from_env(download_dir=download_dir)
        settings.validate()
        credentials = self.credentials or EnvCredentialProvider()

        async def execute() -> CommandResult:
            async with self.client_factory(settings, credentials) as client:
                orchestrator = JobOrchestrator.from_settings(settings, client=client)
                try:
                    return await operation(orchestrator)
                finally:
                    await orchestrator.shutdown()

        return asyncio.run(execute())


class TemplatesCliController:
    """Coordinates prompt template commands."""

    def list_templates(self, db_path: Path | None = None) -> CommandResult:
        with _library(db_path) as library:
            templates = library.list()
        lines = [f"Templates: {len(templates)}"]
        lines.extend(format_template_line(template) for template in templates)
        return CommandResult(lines=lines)

    def add(self, command: TemplateAddCommand) -> CommandResult:
        with _library(command.db_path) as library:
            template = library.add(title=command.title, text=command.text)
        return CommandResult(lines=[f"Added: {format_template_line(template)}"])

    def delete(self, command: TemplateDeleteCommand) -> CommandResult:
        with _library(command.db_path) as library:
            deleted = library.delete(command.template_id)
        if not deleted:
            return CommandResult(
                success=False,
                error=f"Template not found: {command.template_id}",
            )
        return CommandResult(lines=[f"Deleted template: {command.template_id}"])


def format_job_line(job: Job) -> str:
    progress = "-" if job.progress is None else f"{job.progress}%"
    created = datetime.fromtimestamp(job.created_at, tz=UTC).strftime("%Y-%m-%d %H:%M:%S")
    line = (
        f"{job.id} status={job.status.value} model={job.model or '-'} "
        f"progress={progress} created={created}"
    )
    if job.local_artifact_handle is not None:
        line += f" file={job.local_artifact_handle.path}"
    return line


def format_template_line(template: Template) -> str:
    modified = template.modified_at.strftime("%Y-%m-%d %H:%M")
    return f"{template.id} [{modified}] {template.title}"


def _build_client(settings: Settings, credentials: CredentialProvider) -> VideoApiClient:
    return VideoApiClient(
        credentials=credentials,
        base_url=settings.api.base_url,
        timeout_seconds=settings.api.request_timeout_seconds,
        connect_timeout_seconds=settings.api.connect_timeout_seconds,
    )


def _failure(error: ApiError) -> CommandResult:
    return CommandResult(success=False, error=error.message)


@contextmanager
def _library(db_path: Path | None) -> Iterator[TemplateLibrary]:
    settings = Settings.from_env()
    store = SqliteTemplateStore(db_path or settings.templates.db_path)
    try:
        store.init_schema()
        yield TemplateLibrary(store)
    finally:
        store.close()
