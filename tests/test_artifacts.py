from __future__ import annotations

import allure
import httpx
import pytest

from video_jobs.credentials import StaticCredentialProvider
from video_jobs.http.client import VideoApiClient
from video_jobs.orchestrator.artifacts import ArtifactFetcher, extension_for
from video_jobs.orchestrator.models import ApiErrorKind

pytestmark = [
    allure.epic("Video Jobs"),
    allure.feature("Artifact Fetcher"),
]


class DroppedStream(httpx.AsyncByteStream):
    async def __aiter__(self):
        yield b"x" * 64
        raise httpx.RemoteProtocolError("peer closed connection")


def _fetcher(
    handler,
    download_dir,
    *,
    chunk_size: int = 16,
) -> tuple[ArtifactFetcher, VideoApiClient]:
    client = VideoApiClient(
        credentials=StaticCredentialProvider("sk-test"),
        base_url="https://api.example.test/v1",
        transport=httpx.MockTransport(handler),
    )
    fetcher = ArtifactFetcher(client=client, download_dir=download_dir, chunk_size_bytes=chunk_size)
    return fetcher, client


@pytest.mark.anyio
async def test_fetch_writes_complete_file_and_returns_handle(tmp_path) -> None:
    body = bytes(range(256)) * 4

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "video/mp4"}, content=body)

    fetcher, client = _fetcher(handler, tmp_path / "artifacts")
    async with client:
        result = await fetcher.fetch("video_1")

    assert result.ok
    handle = result.value
    assert handle.path == tmp_path / "artifacts" / "video_1.mp4"
    assert handle.path.read_bytes() == body
    assert handle.size_bytes == len(body)
    assert handle.content_type == "video/mp4"
    assert handle.uri.startswith("file://")
    assert not fetcher.partial_path("video_1").exists()


@pytest.mark.anyio
async def test_interrupted_download_leaves_no_file(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "video/mp4"}, stream=DroppedStream())

    fetcher, client = _fetcher(handler, tmp_path)
    async with client:
        result = await fetcher.fetch("video_1")

    assert result.error.kind is ApiErrorKind.NETWORK
    assert "download interrupted" in result.error.message
    assert list(tmp_path.iterdir()) == []


@pytest.mark.anyio
async def test_http_error_does_not_create_files(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"error": {"message": "Video not found"}})

    fetcher, client = _fetcher(handler, tmp_path / "artifacts")
    async with client:
        result = await fetcher.fetch("video_gone")

    assert result.error.status_code == 404
    assert not (tmp_path / "artifacts").exists()


@pytest.mark.anyio
async def test_stale_partial_file_is_overwritten(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "video/mp4"}, content=b"fresh")

    fetcher, client = _fetcher(handler, tmp_path)
    fetcher.partial_path("video_1").write_bytes(b"stale-bytes-from-a-crash")
    async with client:
        result = await fetcher.fetch("video_1")

    assert result.value.path.read_bytes() == b"fresh"
    assert result.value.path.suffix == ".mp4"
    assert not fetcher.partial_path("video_1").exists()


@pytest.mark.anyio
async def test_redownload_with_new_type_replaces_old_file(tmp_path) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"content-type": "video/mp4"}, content=b"fresh")

    fetcher, client = _fetcher(handler, tmp_path)
    (tmp_path / "video_1.bin").write_bytes(b"old")
    (tmp_path / "video_10.bin").write_bytes(b"other video")
    async with client:
        result = await fetcher.fetch("video_1")

    assert sorted(path.name for path in tmp_path.iterdir()) == ["video_1.mp4", "video_10.bin"]
    assert result.value.path.read_bytes() == b"fresh"


@pytest.mark.anyio
@pytest.mark.parametrize("job_id", ["../escape", "nested/video_1", "..", ""])
async def test_unsafe_job_id_is_rejected_before_download(tmp_path, job_id) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, headers={"content-type": "video/mp4"}, content=b"x")

    fetcher, client = _fetcher(handler, tmp_path / "artifacts")
    async with client:
        result = await fetcher.fetch(job_id)

    assert result.error.kind is ApiErrorKind.VALIDATION
    assert requests == []
    assert not (tmp_path / "artifacts").exists()
    with pytest.raises(ValueError):
        fetcher.partial_path(job_id)


def test_extension_for_known_and_unknown_types() -> None:
    assert extension_for("video/mp4") == ".mp4"
    assert extension_for("video/mp4; codecs=avc1") == ".mp4"
    assert extension_for("application/x-unheard-of") == ".bin"
