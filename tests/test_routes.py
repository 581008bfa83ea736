from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from clipper.config import settings
from clipper.main import app
from clipper.models.media import ChainResult, Failure, Success, VideoMetadata
from clipper.services import ffmpeg, metadata
from clipper.services.providers import get_provider_chain
from clipper.utils.exceptions import SubprocessExitError


YOUTUBE_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
SOURCE_URL = "https://cdn.test/source.mp4"


class StubChain:
    def __init__(self, result, provider="yt-dlp"):
        self.result = result
        self.provider = provider
        self.calls = 0

    @property
    def names(self):
        return [self.provider]

    async def acquire(self, ref):
        self.calls += 1
        if isinstance(self.result, Failure):
            return ChainResult(result=self.result)
        return ChainResult(result=self.result, provider=self.provider)


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def use_chain():
    def _use(chain):
        app.dependency_overrides[get_provider_chain] = lambda: chain
        return chain
    return _use


@pytest.fixture
def meta(monkeypatch):
    state = {"value": VideoMetadata(title="Never Gonna Give You Up", author="Rick Astley", found=True), "calls": 0}

    async def _fetch(ref):
        state["calls"] += 1
        return state["value"]

    monkeypatch.setattr(metadata, "fetch_metadata", _fetch)
    return state


@pytest.fixture
def ffmpeg_calls(monkeypatch):
    """Record ffmpeg invocations and write a fake output file."""
    calls = []

    async def _run(args, timeout, label):
        srt_files = list(Path(settings.TEMP_DIR).rglob("*.srt"))
        calls.append({"args": args, "label": label,
                      "srt": srt_files[0].read_text(encoding="utf-8") if srt_files else None})
        Path(args[-1]).write_bytes(f"{label}-output".encode())

    monkeypatch.setattr(ffmpeg, "run_ffmpeg", _run)
    return calls


# =============================================================================
# DOWNLOAD
# =============================================================================

def test_invalid_youtube_url_is_400_without_network(client, use_chain, meta):
    chain = use_chain(StubChain(Success(combined_url="https://cdn.test/av.mp4")))

    response = client.post("/api/download-youtube", json={"url": "https://vimeo.com/1234"})

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid YouTube URL"
    assert chain.calls == 0
    assert meta["calls"] == 0


def test_missing_url_is_400(client):
    response = client.post("/api/download-youtube", json={})

    assert response.status_code == 400
    assert "url" in response.json()["error"]


def test_download_success_returns_public_url(client, use_chain, meta, fake_fetch, uploads, staging_dir):
    fake_fetch.content["https://cdn.test/av.mp4"] = b"combined"
    use_chain(StubChain(Success(combined_url="https://cdn.test/av.mp4", quality="360p", duration_seconds=212)))

    response = client.post("/api/download-youtube", json={"url": "https://youtu.be/dQw4w9WgXcQ"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["videoUrl"] == f"https://storage.test/{uploads[0]['storage_path']}"
    assert body["youtubeUrl"] == YOUTUBE_URL
    assert body["videoId"] == "dQw4w9WgXcQ"
    assert body["title"] == "Never Gonna Give You Up"
    assert body["author"] == "Rick Astley"
    assert body["duration"] == 212
    assert body["quality"] == "360p"
    assert body["source"] == "yt-dlp"
    assert body["audioMissing"] is False
    assert list(staging_dir.iterdir()) == []


def test_exhausted_chain_is_degraded_200(client, use_chain, meta, uploads):
    use_chain(StubChain(Failure("allProvidersExhausted")))

    response = client.post("/api/download-youtube", json={"url": YOUTUBE_URL})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert body["videoUrl"] == YOUTUBE_URL
    assert body["source"] == "youtube-direct"
    assert body["title"] == "Never Gonna Give You Up"
    assert body["error"]
    assert uploads == []


def test_exhausted_chain_for_unknown_video_is_400(client, use_chain, meta):
    meta["value"] = VideoMetadata()
    use_chain(StubChain(Failure("allProvidersExhausted")))

    response = client.post("/api/download-youtube", json={"url": YOUTUBE_URL})

    assert response.status_code == 400
    assert response.json()["error"] == "Video not found or is private"


def test_stream_failure_for_unknown_video_is_500(client, use_chain, meta, fake_fetch, uploads, staging_dir):
    meta["value"] = VideoMetadata()
    use_chain(StubChain(Success(combined_url="https://cdn.test/expired.mp4")))

    response = client.post("/api/download-youtube", json={"url": YOUTUBE_URL})

    assert response.status_code == 500
    assert "HTTP 404" in response.json()["error"]
    assert uploads == []
    assert list(staging_dir.iterdir()) == []


def test_upload_failure_is_500_and_cleans_up(client, use_chain, meta, fake_fetch, monkeypatch, staging_dir):
    from clipper.services import storage

    async def failing_upload(local_file_path, file_name):
        return {"success": False, "error": "Bucket not found"}

    monkeypatch.setattr(storage, "upload_to_storage", failing_upload)
    fake_fetch.content["https://cdn.test/av.mp4"] = b"combined"
    use_chain(StubChain(Success(combined_url="https://cdn.test/av.mp4", duration_seconds=5)))

    response = client.post("/api/download-youtube", json={"url": YOUTUBE_URL})

    assert response.status_code == 500
    assert response.json()["details"] == "Bucket not found"
    assert list(staging_dir.iterdir()) == []


def test_get_is_method_not_allowed(client):
    response = client.get("/api/download-youtube")

    assert response.status_code == 405
    assert response.json() == {"error": "Method not allowed"}


@pytest.mark.parametrize("path", ["/api/download-youtube", "/api/clip-video", "/api/burn-subtitle"])
def test_options_preflight_is_200(client, path):
    assert client.options(path).status_code == 200

    response = client.options(path, headers={
        "Origin": "https://app.example.com",
        "Access-Control-Request-Method": "POST",
    })
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


# =============================================================================
# CLIP
# =============================================================================

def test_clip_publishes_output(client, fake_fetch, uploads, ffmpeg_calls, staging_dir):
    fake_fetch.content[SOURCE_URL] = b"source"

    response = client.post("/api/clip-video", json={
        "videoUrl": SOURCE_URL, "startTime": 5, "duration": 3, "outputFileName": "clips/intro.mp4",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["clippedVideoPath"] == uploads[0]["storage_path"]
    assert body["clippedVideoPath"].startswith("clips/intro-")
    assert body["clippedVideoUrl"] == f"https://storage.test/{uploads[0]['storage_path']}"
    assert body["startTime"] == 5
    assert body["duration"] == 3
    assert uploads[0]["data"] == b"clip-output"

    args = ffmpeg_calls[0]["args"]
    assert args[args.index("-ss") + 1] == "5.0"
    assert args[args.index("-t") + 1] == "3.0"
    assert list(staging_dir.iterdir()) == []


def test_clip_default_output_name(client, fake_fetch, uploads, ffmpeg_calls):
    fake_fetch.content[SOURCE_URL] = b"source"

    response = client.post("/api/clip-video", json={"videoUrl": SOURCE_URL, "startTime": 0, "duration": 1})

    assert response.status_code == 200
    assert uploads[0]["file_name"].startswith("clip_")
    assert uploads[0]["file_name"].endswith(".mp4")


@pytest.mark.parametrize("payload", [
    {"startTime": 5, "duration": 3},
    {"videoUrl": SOURCE_URL, "duration": 3},
    {"videoUrl": SOURCE_URL, "startTime": 5},
    {"videoUrl": SOURCE_URL, "startTime": -1, "duration": 3},
    {"videoUrl": SOURCE_URL, "startTime": 5, "duration": 0},
])
def test_clip_missing_or_invalid_fields_are_400(client, fake_fetch, payload):
    response = client.post("/api/clip-video", json=payload)

    assert response.status_code == 400
    assert response.json()["error"].startswith("Missing or invalid fields")
    assert fake_fetch.fetched == []


def test_clip_rejects_non_http_video_url(client, fake_fetch):
    response = client.post("/api/clip-video", json={"videoUrl": "file:///etc/passwd", "startTime": 0, "duration": 1})

    assert response.status_code == 400
    assert fake_fetch.fetched == []


def test_clip_ffmpeg_failure_is_500_with_stderr(client, fake_fetch, uploads, monkeypatch, staging_dir):
    fake_fetch.content[SOURCE_URL] = b"source"

    async def broken(args, timeout, label):
        raise SubprocessExitError("FFmpeg exited with code 1", details="moov atom not found")

    monkeypatch.setattr(ffmpeg, "run_ffmpeg", broken)

    response = client.post("/api/clip-video", json={"videoUrl": SOURCE_URL, "startTime": 0, "duration": 1})

    assert response.status_code == 500
    assert response.json()["details"] == "moov atom not found"
    assert uploads == []
    assert list(staging_dir.iterdir()) == []


def test_clip_source_download_failure_is_500(client, fake_fetch, uploads):
    response = client.post("/api/clip-video", json={
        "videoUrl": "https://cdn.test/missing.mp4", "startTime": 0, "duration": 1,
    })

    assert response.status_code == 500
    assert "404" in response.json()["error"]


# =============================================================================
# BURN
# =============================================================================

SRT = "1\n00:00:00,000 --> 00:00:02,000\nHello world\n"


def test_burn_writes_srt_and_publishes(client, fake_fetch, uploads, ffmpeg_calls, staging_dir):
    fake_fetch.content[SOURCE_URL] = b"source"

    response = client.post("/api/burn-subtitle", json={
        "videoUrl": SOURCE_URL, "srtContent": SRT, "outputFileName": "final.mp4",
    })

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["finalVideoUrl"] == f"https://storage.test/{uploads[0]['storage_path']}"
    assert uploads[0]["data"] == b"burn-output"

    call = ffmpeg_calls[0]
    assert call["label"] == "burn"
    assert call["srt"] == SRT
    assert call["args"][call["args"].index("-vf") + 1].startswith("subtitles=")
    assert list(staging_dir.iterdir()) == []


@pytest.mark.parametrize("payload", [
    {"srtContent": SRT},
    {"videoUrl": SOURCE_URL},
    {"videoUrl": SOURCE_URL, "srtContent": ""},
])
def test_burn_missing_fields_are_400(client, fake_fetch, payload):
    response = client.post("/api/burn-subtitle", json=payload)

    assert response.status_code == 400
    assert fake_fetch.fetched == []


def test_burn_ffmpeg_failure_is_500(client, fake_fetch, uploads, monkeypatch):
    fake_fetch.content[SOURCE_URL] = b"source"

    async def broken(args, timeout, label):
        raise SubprocessExitError("FFmpeg exited with code 1", details="Unable to open subtitles")

    monkeypatch.setattr(ffmpeg, "run_ffmpeg", broken)

    response = client.post("/api/burn-subtitle", json={"videoUrl": SOURCE_URL, "srtContent": SRT})

    assert response.status_code == 500
    assert response.json()["error"] == "FFmpeg exited with code 1"
    assert response.json()["details"] == "Unable to open subtitles"


# =============================================================================
# HEALTH
# =============================================================================

def test_health_reports_checks(client, monkeypatch):
    from clipper.routes import health

    monkeypatch.setattr(health, "ffmpeg_available", lambda: True)
    monkeypatch.setattr(health, "test_supabase_connection", lambda: False)

    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "degraded"
    assert body["checks"]["ffmpeg"] == "available"
    assert body["checks"]["supabase"] == "disconnected"
    assert body["checks"]["providers"][0] == "yt-dlp"
