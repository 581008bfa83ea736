"""Best-effort video metadata via the keyless YouTube oEmbed endpoint."""

import asyncio
import time

import aiohttp

from clipper.config import settings
from clipper.models.media import ContentRef, VideoMetadata
from clipper.services import logger


async def fetch_metadata(ref: ContentRef) -> VideoMetadata:
    """
    Look up title, author and thumbnail for a video.

    Single attempt, no retries. Metadata is cosmetic: any failure (network,
    non-2xx, malformed body) returns the "Unknown" placeholder instead of
    raising.

    Args:
        ref: Identified video

    Returns:
        VideoMetadata with found=True on success, else the placeholder
    """
    params = {"url": ref.canonical_url, "format": "json"}
    timeout = aiohttp.ClientTimeout(total=settings.METADATA_TIMEOUT_SECONDS)
    start_time = time.time()

    try:
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(settings.OEMBED_URL, params=params) as response:
                if response.status != 200:
                    logger.warn(
                        f"oEmbed lookup returned HTTP {response.status}",
                        "metadata",
                        {"video_id": ref.id, "status": response.status}
                    )
                    return VideoMetadata()
                data = await response.json(content_type=None)

    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        logger.warn(
            f"oEmbed lookup failed: {str(e)[:100] or type(e).__name__}",
            "metadata",
            {"video_id": ref.id, "error_type": type(e).__name__}
        )
        return VideoMetadata()

    if not isinstance(data, dict) or not data.get("title"):
        logger.warn("oEmbed lookup returned a malformed body", "metadata", {"video_id": ref.id})
        return VideoMetadata()

    logger.info(
        f"Video: {data['title'][:60]}",
        "metadata",
        {"video_id": ref.id, "lookup_time_seconds": round(time.time() - start_time, 2)}
    )

    return VideoMetadata(
        title=data["title"],
        author=data.get("author_name") or "Unknown",
        thumbnail=data.get("thumbnail_url"),
        found=True,
    )
