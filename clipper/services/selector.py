"""Stream selection within a provider's format list.

Policy, first match wins:
1. a combined (audio + video) stream at a preferred tier, in preference order
2. any combined stream, smallest known quality first
3. split mode: the best video-only stream by the same policy, plus the first
   audio-only stream (audio is not ranked)
"""

from typing import Iterable, Optional, Sequence

from clipper.config import settings
from clipper.models.media import MediaFormat, Quality, StreamSelection, quality_rank
from clipper.utils.exceptions import NoFormatAvailableError


def _container_rank(fmt: MediaFormat) -> int:
    # mp4 merges and plays everywhere; keep it ahead within a tier
    return 0 if fmt.container == "mp4" else 1


def _pick_video(
    candidates: Sequence[MediaFormat],
    preferred: Sequence[str],
) -> Optional[MediaFormat]:
    """Pick by preferred tier order, then smallest known quality."""
    if not candidates:
        return None

    for label in preferred:
        tier = Quality.from_label(label)
        at_tier = [f for f in candidates if tier and Quality.from_label(f.quality_label) == tier]
        if at_tier:
            return sorted(at_tier, key=_container_rank)[0]

    return sorted(candidates, key=lambda f: (quality_rank(f.quality_label), _container_rank(f)))[0]


def select_streams(
    formats: Iterable[MediaFormat],
    preferred: Optional[Sequence[str]] = None,
) -> StreamSelection:
    """
    Choose a combined stream or a video + audio pair.

    Args:
        formats: Formats reported by a provider
        preferred: Quality labels in preference order (defaults to settings)

    Returns:
        StreamSelection, combined when possible

    Raises:
        NoFormatAvailableError: If there is no video-capable format at all
    """
    formats = [f for f in formats if f.url]
    preferred = list(preferred if preferred is not None else settings.PREFERRED_QUALITIES)

    if not formats:
        raise NoFormatAvailableError("Provider returned no formats")

    combined = [f for f in formats if f.is_combined]
    chosen = _pick_video(combined, preferred)
    if chosen:
        return StreamSelection(video=chosen)

    video_only = [f for f in formats if f.has_video and not f.has_audio]
    video = _pick_video(video_only, preferred)
    if not video:
        raise NoFormatAvailableError("Provider returned no video-capable format")

    audio = next((f for f in formats if f.has_audio and not f.has_video), None)
    return StreamSelection(video=video, audio=audio)
