"""Download endpoint for YouTube videos."""

import time
from fastapi import APIRouter, HTTPException, Depends

from clipper.config import settings
from clipper.models.media import AcquisitionOutcome, DegradedOutcome
from clipper.models.schemas import DownloadRequest, DownloadResponse, ErrorResponse
from clipper.services import acquisition, logger
from clipper.services.providers import ProviderChain, get_provider_chain
from clipper.utils.budget import with_budget
from clipper.utils.exceptions import ClipperError, get_error_response


router = APIRouter(tags=["download"])


def _to_response(outcome) -> DownloadResponse:
    if isinstance(outcome, AcquisitionOutcome):
        return DownloadResponse(
            success=True,
            video_url=outcome.final_url,
            youtube_url=outcome.youtube_url,
            video_id=outcome.video_id,
            title=outcome.title,
            author=outcome.author,
            thumbnail=outcome.thumbnail,
            duration=outcome.duration_seconds,
            quality=outcome.quality,
            source=outcome.source_provider,
            audio_missing=outcome.audio_missing,
        )
    if isinstance(outcome, DegradedOutcome):
        return DownloadResponse(
            success=False,
            video_url=outcome.youtube_url,
            youtube_url=outcome.youtube_url,
            video_id=outcome.video_id,
            title=outcome.title,
            author=outcome.author,
            thumbnail=outcome.thumbnail,
            source=acquisition.DIRECT_SOURCE,
            error=outcome.reason,
        )
    raise TypeError(f"Unhandled download outcome: {type(outcome).__name__}")


@router.post(
    "/api/download-youtube",
    response_model=DownloadResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid YouTube URL, or video not found"},
        405: {"model": ErrorResponse, "description": "Method not allowed"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
)
async def download_youtube_endpoint(
    request: DownloadRequest,
    chain: ProviderChain = Depends(get_provider_chain),
) -> DownloadResponse:
    """
    Acquire a YouTube video and publish it to storage.

    This endpoint:
    1. Extracts the video ID (400 on an unrecognised URL, no network calls)
    2. Looks up oEmbed metadata while the provider chain runs
    3. Downloads the chosen stream(s), merging split video + audio
    4. Uploads the result and returns its public URL

    If every provider fails but the video exists, responds 200 with
    success=false and the original YouTube URL as videoUrl.
    """
    start_time = time.time()

    try:
        outcome = await with_budget(
            acquisition.download_youtube(request.url, chain),
            settings.DOWNLOAD_BUDGET_SECONDS,
        )
        return _to_response(outcome)

    except ClipperError as e:
        logger.error(
            f"Download request failed: {e.message}",
            "download",
            {"error_code": e.error_code, "time_seconds": round(time.time() - start_time, 2)}
        )
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

    except Exception as e:
        logger.error(
            f"Unexpected download error: {e}",
            "download",
            {"error_type": type(e).__name__}
        )
        raise HTTPException(
            status_code=500,
            detail=get_error_response(e, "Failed to process YouTube URL"),
        )
