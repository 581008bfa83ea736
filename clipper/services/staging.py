"""Transient local storage for remote media.

Each request stages its files inside one workspace directory under TEMP_DIR.
The workspace is removed when the `async with` block exits, on success, on
error and on cancellation alike, so nothing a request creates outlives it.
"""

import asyncio
import shutil
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles
import aiohttp

from clipper.config import settings
from clipper.models.media import StagedFile, StagedKind
from clipper.services import logger
from clipper.utils.exceptions import DownloadFailedError

CHUNK_SIZE = 1024 * 256

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)


class Workspace:
    """A per-request temp directory handing out collision-free paths."""

    def __init__(self, root: Path):
        self.root = root

    def path(self, stem: str, ext: str = "mp4") -> Path:
        return self.root / f"{stem}_{uuid.uuid4().hex[:8]}.{ext.lstrip('.')}"


@asynccontextmanager
async def workspace(prefix: str = "job") -> AsyncIterator[Workspace]:
    """Create a unique workspace and guarantee its removal."""
    root = Path(settings.TEMP_DIR) / f"{prefix}-{uuid.uuid4().hex}"
    root.mkdir(parents=True, exist_ok=False)
    logger.debug(f"Workspace created: {root.name}", "download")
    try:
        yield Workspace(root)
    finally:
        shutil.rmtree(root, ignore_errors=True)
        logger.debug(f"Workspace removed: {root.name}", "download")


async def fetch_to_file(
    url: str,
    dest: Path,
    kind: StagedKind,
    timeout: Optional[float] = None,
) -> StagedFile:
    """
    Stream a remote resource to disk without holding it in memory.

    Args:
        url: Remote media URL
        dest: Target path inside a workspace
        kind: What the file will be used as
        timeout: Total seconds allowed (defaults to STREAM_DOWNLOAD_TIMEOUT_SECONDS)

    Returns:
        StagedFile with the exact byte length written

    Raises:
        DownloadFailedError: On non-2xx status, transport error, timeout or size cap
    """
    timeout = timeout or settings.STREAM_DOWNLOAD_TIMEOUT_SECONDS
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    start_time = time.time()
    written = 0

    logger.info(
        f"Downloading {kind.value} stream",
        "download",
        {"host": url.split("/")[2] if url.count("/") >= 2 else "unknown", "dest": dest.name}
    )

    try:
        async with aiohttp.ClientSession(timeout=client_timeout, headers={"User-Agent": USER_AGENT}) as session:
            async with session.get(url) as response:
                if not 200 <= response.status < 300:
                    raise DownloadFailedError(f"Failed to fetch {kind.value}: HTTP {response.status}")

                async with aiofiles.open(dest, "wb") as f:
                    async for chunk in response.content.iter_chunked(CHUNK_SIZE):
                        written += len(chunk)
                        if written > settings.MAX_DOWNLOAD_BYTES:
                            raise DownloadFailedError(
                                f"Failed to fetch {kind.value}: larger than "
                                f"{settings.MAX_DOWNLOAD_BYTES // (1024 * 1024)} MB"
                            )
                        await f.write(chunk)

    except asyncio.TimeoutError:
        raise DownloadFailedError(f"Failed to fetch {kind.value}: timed out after {timeout:.0f}s")
    except aiohttp.ClientError as e:
        raise DownloadFailedError(f"Failed to fetch {kind.value}: {str(e)[:200] or type(e).__name__}")

    download_time = time.time() - start_time
    logger.success(
        f"{kind.value.capitalize()} downloaded: {written / (1024 * 1024):.2f} MB in {download_time:.1f}s",
        "download",
        {"dest": dest.name, "byte_length": written, "download_time_seconds": round(download_time, 2)}
    )
    return StagedFile(path=dest, byte_length=written, kind=kind)


async def write_text(dest: Path, content: str, kind: StagedKind) -> StagedFile:
    """Stage text content (e.g. an SRT file) as UTF-8."""
    data = content.encode("utf-8")
    async with aiofiles.open(dest, "wb") as f:
        await f.write(data)
    return StagedFile(path=dest, byte_length=len(data), kind=kind)


def cleanup_old_workspaces(max_age_hours: int = 1) -> int:
    """Remove workspaces left behind by a crashed process."""
    temp_base = Path(settings.TEMP_DIR)
    if not temp_base.exists():
        return 0

    cleaned = 0
    current_time = time.time()
    max_age_seconds = max_age_hours * 3600

    for item in temp_base.iterdir():
        if item.is_dir():
            age = current_time - item.stat().st_mtime
            if age > max_age_seconds:
                shutil.rmtree(item, ignore_errors=True)
                cleaned += 1

    if cleaned > 0:
        logger.info(f"Cleaned up {cleaned} old temp workspaces", "download")

    return cleaned
