import os
import shutil
import subprocess
import sys
import tempfile
from pathlib import Path

import pytest
from aiohttp.test_utils import TestServer


# Ensure tests can import project packages regardless of how pytest is invoked.
ROOT = Path(__file__).resolve().parents[1]
ROOT_STR = str(ROOT)
if ROOT_STR not in sys.path:
    sys.path.insert(0, ROOT_STR)

os.environ.setdefault("LOG_DIR", str(Path(tempfile.gettempdir()) / "video-clipper-test-logs"))

from clipper.config import settings  # noqa: E402
from clipper.models.media import StagedFile  # noqa: E402
from clipper.services import storage  # noqa: E402


HAS_FFMPEG = shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None
requires_ffmpeg = pytest.mark.skipif(not HAS_FFMPEG, reason="ffmpeg/ffprobe not installed")


@pytest.fixture(autouse=True)
def staging_dir(tmp_path, monkeypatch):
    """Point TEMP_DIR at an empty per-test directory."""
    path = tmp_path / "staging"
    path.mkdir()
    monkeypatch.setattr(settings, "TEMP_DIR", str(path))
    return path


@pytest.fixture
def uploads(monkeypatch):
    """Capture published files instead of talking to Supabase."""
    published = []

    async def fake_upload(local_file_path, file_name):
        data = Path(local_file_path).read_bytes()
        storage_path = storage.storage_path_for(file_name)
        published.append({"file_name": file_name, "storage_path": storage_path, "data": data})
        return {
            "success": True,
            "storage_path": storage_path,
            "public_url": f"https://storage.test/{storage_path}",
            "filesize_bytes": len(data),
        }

    monkeypatch.setattr(storage, "upload_to_storage", fake_upload)
    return published


@pytest.fixture
def fake_fetch(monkeypatch):
    """Replace network staging with canned bytes per URL; records fetched URLs."""
    from clipper.services import staging
    from clipper.utils.exceptions import DownloadFailedError

    content = {}
    fetched = []

    async def _fetch(url, dest, kind, timeout=None):
        fetched.append(url)
        if url not in content:
            raise DownloadFailedError(f"Failed to fetch {kind.value}: HTTP 404")
        dest.write_bytes(content[url])
        return StagedFile(path=dest, byte_length=len(content[url]), kind=kind)

    monkeypatch.setattr(staging, "fetch_to_file", _fetch)
    _fetch.content = content
    _fetch.fetched = fetched
    return _fetch


@pytest.fixture
async def serve():
    """Start real local aiohttp servers for the duration of a test."""
    servers = []

    async def _serve(app):
        server = TestServer(app)
        await server.start_server()
        servers.append(server)
        return f"http://{server.host}:{server.port}"

    yield _serve

    for server in servers:
        await server.close()


def make_media(path: Path, seconds: float, video: bool = True, audio: bool = True) -> Path:
    """Generate a small test clip with ffmpeg's lavfi sources."""
    cmd = ["ffmpeg", "-y", "-v", "error"]
    if video:
        cmd += ["-f", "lavfi", "-i", f"testsrc=size=160x120:rate=10:duration={seconds}"]
    if audio:
        cmd += ["-f", "lavfi", "-i", f"sine=frequency=440:duration={seconds}"]
    if video:
        cmd += ["-c:v", "libx264", "-pix_fmt", "yuv420p"]
    if audio:
        cmd += ["-c:a", "aac"]
    cmd.append(str(path))
    subprocess.run(cmd, check=True, capture_output=True, timeout=60)
    return path
