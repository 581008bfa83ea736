"""Supabase storage operations for published videos."""

import asyncio
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path, PurePosixPath
from typing import Optional

import aiofiles
from supabase import create_client, Client

from clipper.config import settings
from clipper.services import logger
from clipper.utils.exceptions import UploadError

# Object extension -> Content-Type
CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mov": "video/quicktime",
    ".mkv": "video/x-matroska",
    ".m4a": "audio/mp4",
}

_client: Optional[Client] = None

# Thread pool for uploads (the Supabase SDK is blocking)
_upload_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="upload")


def get_client() -> Client:
    """Get or create the Supabase client."""
    global _client
    if _client is None:
        _client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)
        logger.info("Supabase storage client initialized", "storage")
    return _client


def storage_path_for(file_name: str) -> str:
    """Add a random suffix so repeated names never overwrite each other."""
    name = PurePosixPath(file_name.strip().lstrip("/")) if file_name.strip() else PurePosixPath("video.mp4")
    suffix = name.suffix or ".mp4"
    stem = name.name[: -len(name.suffix)] if name.suffix else name.name
    parent = "" if str(name.parent) == "." else f"{name.parent}/"
    return f"{parent}{stem}-{uuid.uuid4().hex[:12]}{suffix}"


async def upload_to_storage(local_file_path: str, file_name: str) -> dict:
    """
    Upload a local file and return its public URL.

    Args:
        local_file_path: Path to the local file
        file_name: Requested object name (a random suffix is added)

    Returns:
        dict: {success, storage_path, public_url, filesize_bytes} or {success: False, error}
    """
    storage_path = storage_path_for(file_name)
    content_type = CONTENT_TYPES.get(Path(storage_path).suffix.lower(), "video/mp4")

    logger.info(
        f"Starting upload to Supabase: {storage_path}",
        "storage",
        {"local_path": local_file_path, "bucket": settings.STORAGE_BUCKET, "content_type": content_type}
    )

    try:
        async with aiofiles.open(local_file_path, "rb") as f:
            file_content = await f.read()
        file_size = len(file_content)

        def _blocking_upload() -> str:
            """Run the blocking Supabase upload in a thread."""
            bucket = get_client().storage.from_(settings.STORAGE_BUCKET)
            bucket.upload(
                path=storage_path,
                file=file_content,
                file_options={"content-type": content_type, "upsert": "false"},
            )
            return bucket.get_public_url(storage_path)

        upload_start = time.time()
        try:
            loop = asyncio.get_running_loop()
            public_url = await asyncio.wait_for(
                loop.run_in_executor(_upload_executor, _blocking_upload),
                timeout=settings.UPLOAD_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Upload timed out after {settings.UPLOAD_TIMEOUT_SECONDS:.0f}s",
                "storage",
                {"storage_path": storage_path, "filesize_mb": file_size / (1024 * 1024)}
            )
            return {
                "success": False,
                "error": f"Upload timed out after {settings.UPLOAD_TIMEOUT_SECONDS:.0f}s",
            }
        upload_time = time.time() - upload_start

        logger.success(
            f"Upload complete: {storage_path} ({file_size / (1024 * 1024):.2f} MB in {upload_time:.2f}s)",
            "storage",
            {"storage_path": storage_path, "filesize_bytes": file_size, "public_url": public_url}
        )

        return {
            "success": True,
            "storage_path": storage_path,
            "public_url": public_url,
            "filesize_bytes": file_size,
        }

    except Exception as e:
        error_msg = str(e)
        logger.error(
            f"Upload failed: {error_msg}",
            "storage",
            {"storage_path": storage_path, "error": error_msg, "error_type": type(e).__name__}
        )
        return {
            "success": False,
            "error": error_msg,
        }


def test_supabase_connection() -> bool:
    """
    Test if Supabase connection is working.

    Returns:
        bool: True if connected
    """
    try:
        get_client().storage.list_buckets()
        return True
    except Exception:
        return False


async def publish(local_file_path: str, file_name: str) -> dict:
    """Upload and raise UploadError instead of returning a failure dict."""
    result = await upload_to_storage(local_file_path, file_name)
    if not result.get("success"):
        raise UploadError(
            "Upload to storage failed",
            details=result.get("error", "Upload failed"),
        )
    return result
