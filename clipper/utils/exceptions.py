"""Clipper exceptions with HTTP-friendly metadata."""

from typing import Optional


class ClipperError(Exception):
    """Base exception for clipper errors with response metadata."""

    def __init__(
        self,
        message: str,
        error_code: str = "UNKNOWN_ERROR",
        status_code: int = 500,
        details: Optional[str] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert exception to the `{error, details}` response body."""
        body = {"error": self.message, "error_code": self.error_code}
        if self.details:
            body["details"] = self.details
        return body


# =============================================================================
# CLIENT ERRORS - terminal, never retried
# =============================================================================

class InvalidInputError(ClipperError):
    """Raised for a malformed URL or a missing/invalid request field."""

    def __init__(self, message: str = "Invalid input"):
        super().__init__(
            message=message,
            error_code="INVALID_INPUT",
            status_code=400,
        )


class VideoNotFoundError(ClipperError):
    """Raised when no provider and no metadata lookup can see the video."""

    def __init__(self, message: str = "Video not found or is private", details: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="VIDEO_NOT_FOUND",
            status_code=400,
            details=details,
        )


# =============================================================================
# ACQUISITION ERRORS - recovered locally by the download pipeline
# =============================================================================

class UpstreamUnavailableError(ClipperError):
    """Raised when a single provider or lookup call fails."""

    def __init__(self, message: str = "Upstream service unavailable"):
        super().__init__(
            message=message,
            error_code="UPSTREAM_UNAVAILABLE",
            status_code=502,
        )


class NoFormatAvailableError(ClipperError):
    """Raised when a provider offers no video-capable stream."""

    def __init__(self, message: str = "No video format available"):
        super().__init__(
            message=message,
            error_code="NO_FORMAT_AVAILABLE",
            status_code=502,
        )


class DownloadFailedError(ClipperError):
    """Raised when staging a remote stream fails."""

    def __init__(self, message: str = "Download failed", details: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="DOWNLOAD_FAILED",
            status_code=500,
            details=details,
        )


class MergeFailedError(ClipperError):
    """Raised when ffmpeg cannot merge split streams."""

    def __init__(self, message: str = "Merge failed", details: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="MERGE_FAILED",
            status_code=500,
            details=details,
        )


# =============================================================================
# FATAL ERRORS - surfaced as 500
# =============================================================================

class SubprocessTimeoutError(ClipperError):
    """Raised when the media binary runs past its timeout."""

    def __init__(self, message: str = "Media processing timed out", details: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="SUBPROCESS_TIMEOUT",
            status_code=500,
            details=details,
        )


class SubprocessExitError(ClipperError):
    """Raised when the media binary exits non-zero or cannot be started."""

    def __init__(self, message: str = "Media processing failed", details: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="SUBPROCESS_FAILED",
            status_code=500,
            details=details,
        )


class UploadError(ClipperError):
    """Raised when upload to storage fails."""

    def __init__(self, message: str = "Upload to storage failed", details: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="UPLOAD_ERROR",
            status_code=500,
            details=details,
        )


class BudgetExceededError(ClipperError):
    """Raised when a request runs past its wall-clock budget."""

    def __init__(self, budget_seconds: float):
        super().__init__(
            message=f"Request exceeded its {budget_seconds:.0f}s time budget",
            error_code="BUDGET_EXCEEDED",
            status_code=500,
        )


def get_error_response(error: Exception, details: Optional[str] = None) -> dict:
    """Get a standardized `{error, details}` dict from any exception."""
    if isinstance(error, ClipperError):
        body = error.to_dict()
        if details and "details" not in body:
            body["details"] = details
        return body

    return {
        "error": str(error) or type(error).__name__,
        "error_code": "INTERNAL_ERROR",
        "details": details or "An unexpected error occurred",
    }
