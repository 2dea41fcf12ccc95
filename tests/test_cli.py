from __future__ import annotations

import re

import allure
import httpx
import pytest
from click.testing import CliRunner

from video_jobs import __version__
from video_jobs import main as cli
from video_jobs.credentials import StaticCredentialProvider
from video_jobs.http.client import VideoApiClient
from video_jobs.main import video_jobs
from video_jobs.orchestrator.controllers import JobsCliController

pytestmark = [
    allure.epic("Video Jobs"),
    allure.feature("CLI"),
]


def _videos_api(request: httpx.Request) -> httpx.Response:
    if request.method == "GET" and request.url.path == "/v1/videos/video_123":
        return httpx.Response(
            200,
            json={
                "id": "video_123",
                "status": "failed",
                "model": "sora-2",
                "created_at": 1712697600,
                "error": {"code": "moderation_blocked", "message": "Prompt rejected"},
            },
        )
    if request.method == "GET" and request.url.path == "/v1/videos":
        return httpx.Response(
            200,
            json={
                "data": [
                    {"id": "video_2", "status": "completed", "created_at": 1712697700},
                    {"id": "video_1", "status": "failed", "created_at": 1712697600},
                ],
                "has_more": False,
            },
        )
    if request.method == "DELETE":
        return httpx.Response(200, json={"deleted": True})
    return httpx.Response(404, json={"error": {"message": "Video not found"}})


@pytest.fixture()
def mocked_jobs(monkeypatch, tmp_path):
    monkeypatch.setenv("VIDEO_JOBS_DOWNLOAD_DIR", str(tmp_path / "artifacts"))

    def client_factory(settings, credentials):
        return VideoApiClient(
            credentials=credentials,
            base_url=settings.api.base_url,
            transport=httpx.MockTransport(_videos_api),
        )

    controller = JobsCliController(
        credentials=StaticCredentialProvider("sk-test"),
        client_factory=client_factory,
    )
    monkeypatch.setattr(cli, "JOBS_CONTROLLER", controller)
    return controller


def test_version():
    assert __version__


def test_version_option():
    runner = CliRunner()
    result = runner.invoke(video_jobs, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_status_prints_job_and_error(mocked_jobs) -> None:
    result = CliRunner().invoke(video_jobs, ["status", "video_123"])

    assert result.exit_code == 0, result.output
    assert "video_123 status=failed model=sora-2" in result.output
    assert "code=moderation_blocked message=Prompt rejected" in result.output


def test_status_of_missing_job_fails(mocked_jobs) -> None:
    result = CliRunner().invoke(video_jobs, ["status", "video_gone"])

    assert result.exit_code == 1
    assert "Video not found" in result.output


def test_list_prints_one_line_per_job(mocked_jobs) -> None:
    result = CliRunner().invoke(video_jobs, ["list"])

    assert result.exit_code == 0, result.output
    output = result.output
    assert "Videos: 2" in output
    assert output.index("video_2 status=completed") < output.index("video_1 status=failed")


def test_delete_reports_success(mocked_jobs) -> None:
    result = CliRunner().invoke(video_jobs, ["delete", "video_1"])

    assert result.exit_code == 0, result.output
    assert "Deleted: video_1" in result.output


def test_submit_rejects_blank_prompt(mocked_jobs) -> None:
    result = CliRunner().invoke(video_jobs, ["submit", "   "])

    assert result.exit_code == 1
    assert "Prompt must not be empty" in result.output


def test_missing_api_key_is_reported(monkeypatch) -> None:
    monkeypatch.setattr(cli, "JOBS_CONTROLLER", JobsCliController())

    result = CliRunner().invoke(video_jobs, ["status", "video_123"])

    assert result.exit_code == 1
    assert "No API credential configured" in result.output


def test_invalid_configuration_is_reported(monkeypatch) -> None:
    monkeypatch.setenv("VIDEO_JOBS_API_BASE_URL", "ftp://example.com")

    result = CliRunner().invoke(video_jobs, ["list"])

    assert result.exit_code == 1
    assert "VIDEO_JOBS_API_BASE_URL" in result.output


def test_templates_add_list_delete(tmp_path) -> None:
    db_path = str(tmp_path / "templates.db")
    runner = CliRunner()

    added = runner.invoke(
        video_jobs,
        ["templates", "add", "--title", "Piano cat", "--db-path", db_path, "A cat on a piano"],
    )
    assert added.exit_code == 0, added.output
    template_id = re.search(r"Added: (\S+)", added.output).group(1)

    listed = runner.invoke(video_jobs, ["templates", "list", "--db-path", db_path])
    assert "Templates: 1" in listed.output
    assert "Piano cat" in listed.output

    deleted = runner.invoke(video_jobs, ["templates", "delete", "--db-path", db_path, template_id])
    assert deleted.exit_code == 0, deleted.output

    missing = runner.invoke(video_jobs, ["templates", "delete", "--db-path", db_path, template_id])
    assert missing.exit_code == 1
    assert "Template not found" in missing.output
