"""Source identification for user-supplied URLs. Pure, no network."""

import re
from urllib.parse import urlparse

from clipper.models.media import ContentRef
from clipper.utils.exceptions import InvalidInputError


# watch?v=, youtu.be/, embed/ and shorts/ forms, with or without scheme/www/m.
YOUTUBE_ID_PATTERN = re.compile(
    r"(?:youtube\.com/watch\?(?:[^#\s]*&)?v=|youtu\.be/|youtube\.com/embed/|youtube\.com/shorts/)"
    r"([A-Za-z0-9_-]{11})(?![A-Za-z0-9_-])"
)

CANONICAL_URL_TEMPLATE = "https://www.youtube.com/watch?v={video_id}"


def parse_youtube_url(url: str) -> ContentRef:
    """
    Extract the 11-character video ID from a YouTube URL.

    Args:
        url: Raw URL as typed by the user

    Returns:
        ContentRef with the ID and canonical watch URL

    Raises:
        InvalidInputError: If no known URL shape matches
    """
    match = YOUTUBE_ID_PATTERN.search((url or "").strip())
    if not match:
        raise InvalidInputError("Invalid YouTube URL")

    video_id = match.group(1)
    return ContentRef(id=video_id, canonical_url=CANONICAL_URL_TEMPLATE.format(video_id=video_id))


def validate_media_url(url: str) -> str:
    """Accept only absolute http(s) URLs for the clip and burn endpoints."""
    candidate = (url or "").strip()
    parsed = urlparse(candidate)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise InvalidInputError("videoUrl must be an absolute http(s) URL")
    return candidate
