from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class _CamelModel(BaseModel):
    """Accepts and emits the camelCase field names used by the web client."""

    model_config = ConfigDict(populate_by_name=True)


class DownloadRequest(_CamelModel):
    """Request model for YouTube acquisition."""

    url: str = Field(
        ...,
        min_length=1,
        description="YouTube URL (watch, youtu.be, embed or shorts form)",
        examples=["https://www.youtube.com/watch?v=dQw4w9WgXcQ"],
    )


class DownloadResponse(_CamelModel):
    """Response model for acquisition, including degraded success."""

    success: bool
    video_url: str = Field(..., alias="videoUrl")
    youtube_url: str = Field(..., alias="youtubeUrl")
    video_id: str = Field(..., alias="videoId")
    title: str
    author: str
    thumbnail: Optional[str] = None
    duration: Optional[int] = None
    quality: Optional[str] = None
    source: str
    audio_missing: bool = Field(False, alias="audioMissing")
    error: Optional[str] = None


class ClipRequest(_CamelModel):
    """Request model for clipping a time window out of a video."""

    video_url: str = Field(..., alias="videoUrl", min_length=1)
    start_time: float = Field(..., alias="startTime", ge=0)
    duration: float = Field(..., gt=0)
    output_file_name: Optional[str] = Field(None, alias="outputFileName")


class ClipResponse(_CamelModel):
    """Response model for a published clip."""

    success: bool = True
    clipped_video_url: str = Field(..., alias="clippedVideoUrl")
    clipped_video_path: str = Field(..., alias="clippedVideoPath")
    start_time: float = Field(..., alias="startTime")
    duration: float


class BurnSubtitleRequest(_CamelModel):
    """Request model for burning SRT subtitles into a video."""

    video_url: str = Field(..., alias="videoUrl", min_length=1)
    srt_content: str = Field(..., alias="srtContent", min_length=1)
    output_file_name: Optional[str] = Field(None, alias="outputFileName")


class BurnSubtitleResponse(_CamelModel):
    """Response model for a published subtitled video."""

    success: bool = True
    final_video_url: str = Field(..., alias="finalVideoUrl")


class ErrorResponse(BaseModel):
    """Response model for errors."""

    error: str
    details: Optional[str] = None


class HealthCheck(BaseModel):
    """Response model for health check."""

    status: str
    timestamp: str
    checks: dict
