"""CLI entrypoint for video-jobs."""

import logging
from collections.abc import Callable
from pathlib import Path

import rich_click as click

from video_jobs import __version__
from video_jobs.orchestrator.controllers import (
    CommandResult,
    JobCommand,
    JobsCliController,
    ListJobsCommand,
    SubmitCommand,
    TemplateAddCommand,
    TemplateDeleteCommand,
    TemplatesCliController,
)

click.rich_click.USE_MARKDOWN = True
JOBS_CONTROLLER = JobsCliController()
TEMPLATES_CONTROLLER = TemplatesCliController()

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]

download_dir_option = click.option(
    "--download-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Directory for downloaded videos. Defaults to VIDEO_JOBS_DOWNLOAD_DIR.",
)


@click.group()
@click.version_option(version=__version__, prog_name="video-jobs")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def video_jobs(log_level: str) -> None:
    """Video generation job CLI."""

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@video_jobs.command("submit")
@click.argument("prompt")
@click.option("--model", default=None, help="Model id. Defaults to VIDEO_JOBS_DEFAULT_MODEL.")
@click.option(
    "--seconds",
    "duration_seconds",
    type=click.IntRange(min=1),
    default=None,
    help="Requested clip duration in seconds.",
)
@click.option("--size", "resolution", default=None, help="Resolution such as 1280x720.")
@click.option(
    "--wait/--no-wait",
    default=False,
    show_default=True,
    help="Track the job until it settles and download the result.",
)
@download_dir_option
def submit(  # noqa: PLR0913
    prompt: str,
    model: str | None,
    duration_seconds: int | None,
    resolution: str | None,
    wait: bool,
    download_dir: Path | None,
) -> None:
    """Submit a new video generation job."""

    _emit_result(
        lambda: JOBS_CONTROLLER.submit(
            SubmitCommand(
                prompt=prompt,
                model=model,
                duration_seconds=duration_seconds,
                resolution=resolution,
                wait=wait,
                download_dir=download_dir,
            ),
            emit=click.echo,
        ),
    )


@video_jobs.command("list")
def list_jobs() -> None:
    """Refresh from the server and print one line per video."""

    _emit_result(lambda: JOBS_CONTROLLER.list_jobs(ListJobsCommand()))


@video_jobs.command("status")
@click.argument("job_id")
def status(job_id: str) -> None:
    """Show the current status of one video."""

    _emit_result(lambda: JOBS_CONTROLLER.status(JobCommand(job_id=job_id)))


@video_jobs.command("watch")
@download_dir_option
def watch(download_dir: Path | None) -> None:
    """Refresh, then track every live video until all of them settle."""

    _emit_result(
        lambda: JOBS_CONTROLLER.watch(
            ListJobsCommand(download_dir=download_dir),
            emit=click.echo,
        ),
    )


@video_jobs.command("download")
@click.argument("job_id")
@download_dir_option
def download(job_id: str, download_dir: Path | None) -> None:
    """Download the content of a completed video."""

    _emit_result(
        lambda: JOBS_CONTROLLER.download(JobCommand(job_id=job_id, download_dir=download_dir)),
    )


@video_jobs.command("delete")
@click.argument("job_id")
def delete(job_id: str) -> None:
    """Delete a video on the server and forget it locally."""

    _emit_result(lambda: JOBS_CONTROLLER.delete(JobCommand(job_id=job_id)))


@video_jobs.group()
def templates() -> None:
    """Prompt template commands."""


@templates.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def templates_list(db_path: Path | None) -> None:
    """List saved prompt templates, newest first."""

    _emit_result(lambda: TEMPLATES_CONTROLLER.list_templates(db_path))


@templates.command("add")
@click.option("--title", default="Untitled Prompt", show_default=True, help="Template title.")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("text")
def templates_add(title: str, db_path: Path | None, text: str) -> None:
    """Save a prompt template."""

    _emit_result(
        lambda: TEMPLATES_CONTROLLER.add(
            TemplateAddCommand(title=title, text=text, db_path=db_path),
        ),
    )


@templates.command("delete")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("template_id")
def templates_delete(db_path: Path | None, template_id: str) -> None:
    """Delete a prompt template."""

    _emit_result(
        lambda: TEMPLATES_CONTROLLER.delete(
            TemplateDeleteCommand(template_id=template_id, db_path=db_path),
        ),
    )


def _emit_result(run: Callable[[], CommandResult]) -> None:
    try:
        result = run()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException(result.error or "Command failed.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    video_jobs()
