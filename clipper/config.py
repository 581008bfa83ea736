from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Server
    PORT: int = 3000
    ENVIRONMENT: str = "production"

    # Supabase storage (result publisher)
    SUPABASE_URL: str = ""
    SUPABASE_SERVICE_KEY: str = ""
    STORAGE_BUCKET: str = "videos"

    # Temp storage for staged media, one workspace per request
    TEMP_DIR: str = "/tmp/video-clipper/staging"
    LOG_DIR: str = "/tmp/video-clipper/logs"
    LOG_LEVEL: str = "INFO"

    # External media binaries
    FFMPEG_BINARY: str = "ffmpeg"
    FFPROBE_BINARY: str = "ffprobe"

    # Metadata lookup (keyless oEmbed)
    OEMBED_URL: str = "https://www.youtube.com/oembed"

    # Provider chain, tried in this order: yt-dlp, cobalt, piped, rapidapi
    ENABLE_YTDLP: bool = True
    COBALT_INSTANCES: list[str] = ["https://api.cobalt.tools"]
    COBALT_API_KEY: str = ""
    PIPED_INSTANCES: list[str] = ["https://pipedapi.kavin.rocks"]

    # Keyed provider - skipped when no key is configured
    RAPIDAPI_KEY: str = ""
    RAPIDAPI_HOST: str = "ytstream-download-youtube-videos.p.rapidapi.com"
    RAPIDAPI_URL: str = "https://ytstream-download-youtube-videos.p.rapidapi.com/dl"

    # Stream selection, smaller first for turnaround time
    PREFERRED_QUALITIES: list[str] = ["360p", "480p", "720p"]

    # Timeouts (seconds)
    METADATA_TIMEOUT_SECONDS: float = 10
    PROVIDER_TIMEOUT_SECONDS: float = 25
    STREAM_DOWNLOAD_TIMEOUT_SECONDS: float = 150
    MERGE_TIMEOUT_SECONDS: float = 50
    TRANSFORM_TIMEOUT_SECONDS: float = 240
    UPLOAD_TIMEOUT_SECONDS: float = 45

    # Whole-request wall clock budgets (seconds)
    DOWNLOAD_BUDGET_SECONDS: float = 300
    CLIP_BUDGET_SECONDS: float = 300
    BURN_BUDGET_SECONDS: float = 300

    # Cap for a single staged file
    MAX_DOWNLOAD_BYTES: int = 500 * 1024 * 1024

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
