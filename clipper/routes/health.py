"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter

from clipper.models.schemas import HealthCheck
from clipper.services.ffmpeg import ffmpeg_available
from clipper.services.providers import get_provider_chain
from clipper.services.storage import test_supabase_connection


router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthCheck)
async def health_check() -> HealthCheck:
    """
    Health check endpoint.

    Returns system health status including:
    - yt-dlp availability
    - ffmpeg availability
    - Supabase connection
    - Configured provider chain
    """
    ytdlp_available = True
    try:
        import yt_dlp
        _ = yt_dlp.YoutubeDL
    except ImportError:
        ytdlp_available = False

    has_ffmpeg = ffmpeg_available()
    supabase_connected = test_supabase_connection()

    return HealthCheck(
        status="ok" if all([ytdlp_available, has_ffmpeg, supabase_connected]) else "degraded",
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        checks={
            "ytdlp": "available" if ytdlp_available else "unavailable",
            "ffmpeg": "available" if has_ffmpeg else "unavailable",
            "supabase": "connected" if supabase_connected else "disconnected",
            "providers": get_provider_chain().names,
        }
    )
