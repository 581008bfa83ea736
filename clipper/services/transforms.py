"""One-shot ffmpeg transforms: clip a time window, burn in subtitles.

Both download the source, invoke ffmpeg once, upload the output and clean
up. Neither has a fallback: any failure is fatal for the request.
"""

import time
from typing import Optional

from clipper.models.media import StagedKind
from clipper.services import ffmpeg, logger, source, staging, storage


def _default_name(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}.mp4"


async def clip_from_url(
    video_url: str,
    start_time: float,
    duration: float,
    output_file_name: Optional[str] = None,
) -> dict:
    """
    Clip [start_time, start_time + duration) out of a remote video.

    Returns:
        dict with public_url and storage_path of the published clip
    """
    video_url = source.validate_media_url(video_url)
    logger.info(f"Clipping video from {start_time}s for {duration}s", "download")

    async with staging.workspace("clip") as ws:
        staged = await staging.fetch_to_file(video_url, ws.path("input"), StagedKind.SOURCE)
        output = await ffmpeg.clip_video(staged.path, ws.path("output"), start_time, duration)
        return await storage.publish(str(output), output_file_name or _default_name("clip"))


async def burn_subtitles_from_url(
    video_url: str,
    srt_content: str,
    output_file_name: Optional[str] = None,
) -> dict:
    """
    Burn SRT subtitle text into a remote video.

    Returns:
        dict with public_url and storage_path of the published video
    """
    video_url = source.validate_media_url(video_url)
    logger.info("Burning subtitles to video", "download", {"srt_bytes": len(srt_content)})

    async with staging.workspace("burn") as ws:
        staged = await staging.fetch_to_file(video_url, ws.path("input"), StagedKind.SOURCE)
        subtitles = await staging.write_text(ws.path("subtitle", "srt"), srt_content, StagedKind.SUBTITLE)
        output = await ffmpeg.burn_subtitles(staged.path, subtitles.path, ws.path("output"))
        return await storage.publish(str(output), output_file_name or _default_name("subtitled"))
