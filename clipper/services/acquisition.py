"""YouTube acquisition pipeline.

identify -> (metadata || provider chain) -> stage -> merge if split -> publish

Degrades to "direct link only" when no provider yields media, as long as the
metadata lookup confirmed the video exists.
"""

import asyncio
import time
from typing import Optional

from clipper.models.media import (
    AcquisitionOutcome,
    ContentRef,
    DegradedOutcome,
    DownloadOutcome,
    Failure,
    StagedFile,
    StagedKind,
    Success,
    SuccessSplit,
    VideoMetadata,
)
from clipper.services import ffmpeg, logger, metadata, source, staging, storage
from clipper.services.providers import ProviderChain
from clipper.services.staging import Workspace
from clipper.utils.exceptions import (
    DownloadFailedError,
    MergeFailedError,
    VideoNotFoundError,
)

DIRECT_SOURCE = "youtube-direct"
MERGED_QUALITY = "merged"


def no_audio_label(quality: Optional[str]) -> str:
    return f"{quality or 'video'} (no audio)"


async def _stage_combined(ref: ContentRef, result: Success, ws: Workspace) -> tuple[StagedFile, str, bool]:
    staged = await staging.fetch_to_file(
        result.combined_url,
        ws.path(ref.id, result.container),
        StagedKind.VIDEO,
    )
    return staged, result.quality or "unknown", False


async def _stage_split(ref: ContentRef, result: SuccessSplit, ws: Workspace) -> tuple[StagedFile, str, bool]:
    """Fetch both streams and merge; fall back to video-only when the audio side fails."""
    video_label = result.video.quality_label
    video_path = ws.path(f"{ref.id}_video", result.video.container)

    if result.audio is None:
        logger.warn(
            f"No audio stream offered for {ref.id}, publishing video-only",
            "download",
            {"video_id": ref.id, "quality": video_label}
        )
        video = await staging.fetch_to_file(result.video.url, video_path, StagedKind.VIDEO)
        return video, no_audio_label(video_label), True

    audio_path = ws.path(f"{ref.id}_audio", result.audio.container)
    video_task = asyncio.ensure_future(staging.fetch_to_file(result.video.url, video_path, StagedKind.VIDEO))
    audio_task = asyncio.ensure_future(staging.fetch_to_file(result.audio.url, audio_path, StagedKind.AUDIO))
    try:
        video = await video_task
    except BaseException:
        audio_task.cancel()
        await asyncio.gather(audio_task, return_exceptions=True)
        raise

    try:
        audio = await audio_task
    except DownloadFailedError as e:
        logger.warn(
            f"Audio download failed for {ref.id}, publishing video-only stream: {e.message}",
            "download",
            {"video_id": ref.id, "quality": video_label}
        )
        return video, no_audio_label(video_label), True

    merged_path = ws.path(f"{ref.id}_merged", "mp4")
    try:
        await ffmpeg.merge_streams(video.path, audio.path, merged_path)
    except MergeFailedError as e:
        # A muted video beats no video at all
        logger.warn(
            f"Merge failed for {ref.id}, publishing video-only stream: {e.message}",
            "download",
            {"video_id": ref.id, "quality": video_label, "details": (e.details or "")[-300:]}
        )
        return video, no_audio_label(video_label), True

    merged = StagedFile(path=merged_path, byte_length=merged_path.stat().st_size, kind=StagedKind.MERGED)
    logger.success(
        f"Merged video + audio for {ref.id}",
        "download",
        {"video_id": ref.id, "byte_length": merged.byte_length}
    )
    return merged, MERGED_QUALITY, False


def _degrade(ref: ContentRef, meta: VideoMetadata, reason: str) -> DegradedOutcome:
    """Return the original link, or fail if nothing could see the video."""
    if not meta.found:
        raise VideoNotFoundError(details=reason)

    logger.warn(
        f"Degrading to direct link for {ref.id}: {reason}",
        "download",
        {"video_id": ref.id, "reason": reason}
    )
    return DegradedOutcome(
        youtube_url=ref.canonical_url,
        video_id=ref.id,
        title=meta.title,
        author=meta.author,
        thumbnail=meta.thumbnail,
        reason=reason,
    )


async def download_youtube(url: str, chain: ProviderChain) -> DownloadOutcome:
    """
    Acquire a YouTube video through the provider chain and publish it.

    Args:
        url: User-supplied YouTube URL
        chain: Ordered providers to try

    Returns:
        AcquisitionOutcome on success, DegradedOutcome if every provider failed

    Raises:
        InvalidInputError: If the URL is not a YouTube URL (before any network call)
        VideoNotFoundError: If providers and metadata lookup both failed
        DownloadFailedError: If staging failed and metadata lookup failed too
        UploadError: If publishing fails
    """
    ref = source.parse_youtube_url(url)
    start_time = time.time()

    logger.info(
        f"Processing YouTube video: {ref.id}",
        "download",
        {"video_id": ref.id, "providers": chain.names}
    )

    meta, chain_result = await asyncio.gather(
        metadata.fetch_metadata(ref),
        chain.acquire(ref),
    )
    result = chain_result.result

    if isinstance(result, Failure):
        return _degrade(ref, meta, "All providers failed to produce a downloadable stream")

    try:
        async with staging.workspace(f"yt-{ref.id}") as ws:
            if isinstance(result, Success):
                staged, quality, audio_missing = await _stage_combined(ref, result, ws)
            elif isinstance(result, SuccessSplit):
                staged, quality, audio_missing = await _stage_split(ref, result, ws)
            else:
                raise TypeError(f"Unhandled provider result: {type(result).__name__}")

            duration = result.duration_seconds
            if duration is None:
                probed = await ffmpeg.probe_duration(staged.path)
                duration = round(probed) if probed else None

            upload = await storage.publish(
                str(staged.path),
                f"youtube_{ref.id}{staged.path.suffix}",
            )

    except DownloadFailedError as e:
        if not meta.found:
            # Nothing confirmed the video exists, so there is no link to fall back to
            raise
        return _degrade(ref, meta, f"{chain_result.provider}: {e.message}")

    title = meta.title if meta.found else (result.title or meta.title)

    logger.success(
        f"YouTube video published: {title[:50]}",
        "download",
        {
            "video_id": ref.id,
            "provider": chain_result.provider,
            "quality": quality,
            "audio_missing": audio_missing,
            "total_time_seconds": round(time.time() - start_time, 2),
        }
    )

    return AcquisitionOutcome(
        final_url=upload["public_url"],
        youtube_url=ref.canonical_url,
        video_id=ref.id,
        title=title,
        author=meta.author,
        source_provider=chain_result.provider,
        quality=quality,
        duration_seconds=duration,
        thumbnail=meta.thumbnail,
        audio_missing=audio_missing,
    )
