"""Clip and subtitle-burn endpoints."""

from fastapi import APIRouter, HTTPException

from clipper.config import settings
from clipper.models.schemas import (
    BurnSubtitleRequest,
    BurnSubtitleResponse,
    ClipRequest,
    ClipResponse,
    ErrorResponse,
)
from clipper.services import logger, transforms
from clipper.utils.budget import with_budget
from clipper.utils.exceptions import ClipperError, get_error_response


router = APIRouter(tags=["transform"])

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing or invalid fields"},
    405: {"model": ErrorResponse, "description": "Method not allowed"},
    500: {"model": ErrorResponse, "description": "Download, ffmpeg or upload failed"},
}


def _fail(error: Exception, details: str) -> HTTPException:
    """Map any failure to an HTTPException carrying `{error, details}`."""
    if isinstance(error, ClipperError):
        logger.error(f"{details}: {error.message}", "ffmpeg", {"error_code": error.error_code})
        return HTTPException(status_code=error.status_code, detail=get_error_response(error, details))

    logger.error(f"{details}: {error}", "ffmpeg", {"error_type": type(error).__name__})
    return HTTPException(status_code=500, detail=get_error_response(error, details))


@router.post("/api/clip-video", response_model=ClipResponse, responses=ERROR_RESPONSES)
async def clip_video_endpoint(request: ClipRequest) -> ClipResponse:
    """Cut `duration` seconds starting at `startTime` and publish the clip."""
    try:
        upload = await with_budget(
            transforms.clip_from_url(
                request.video_url,
                request.start_time,
                request.duration,
                request.output_file_name,
            ),
            settings.CLIP_BUDGET_SECONDS,
        )
    except Exception as e:
        raise _fail(e, "Failed to clip video")

    return ClipResponse(
        clipped_video_url=upload["public_url"],
        clipped_video_path=upload["storage_path"],
        start_time=request.start_time,
        duration=request.duration,
    )


@router.post("/api/burn-subtitle", response_model=BurnSubtitleResponse, responses=ERROR_RESPONSES)
async def burn_subtitle_endpoint(request: BurnSubtitleRequest) -> BurnSubtitleResponse:
    """Render SRT subtitles into the video and publish it."""
    try:
        upload = await with_budget(
            transforms.burn_subtitles_from_url(
                request.video_url,
                request.srt_content,
                request.output_file_name,
            ),
            settings.BURN_BUDGET_SECONDS,
        )
    except Exception as e:
        raise _fail(e, "Failed to burn subtitle to video")

    return BurnSubtitleResponse(final_video_url=upload["public_url"])
