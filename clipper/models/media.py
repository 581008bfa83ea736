"""Domain types for the video acquisition pipeline."""

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union


class Quality(Enum):
    """Video quality tiers, declared smallest first."""
    P144 = "144p"
    P240 = "240p"
    P360 = "360p"
    P480 = "480p"
    P720 = "720p"
    P1080 = "1080p"
    P1440 = "1440p"
    P2160 = "2160p"

    @property
    def height(self) -> int:
        return int(self.value[:-1])

    @classmethod
    def from_label(cls, label: Optional[str]) -> Optional["Quality"]:
        """Parse labels such as "720p", "720p60" or "hd720" into a tier."""
        if not label:
            return None
        match = re.search(r"(\d{3,4})p", label) or re.search(r"hd(\d{3,4})", label)
        if not match:
            return None
        return cls.from_height(int(match.group(1)))

    @classmethod
    def from_height(cls, height: Optional[int]) -> Optional["Quality"]:
        if not height:
            return None
        for tier in cls:
            if tier.height == height:
                return tier
        return None


def quality_rank(label: Optional[str]) -> int:
    """Sort key: known tiers by height, unknown labels last."""
    tier = Quality.from_label(label)
    return tier.height if tier else 100000


@dataclass(frozen=True)
class ContentRef:
    """A YouTube video identified from user input."""
    id: str
    canonical_url: str


@dataclass(frozen=True)
class MediaFormat:
    """One remote stream offered by a provider."""
    url: str
    quality_label: Optional[str] = None
    has_audio: bool = False
    has_video: bool = False
    container: str = "mp4"

    @property
    def is_combined(self) -> bool:
        return self.has_audio and self.has_video


@dataclass(frozen=True)
class StreamSelection:
    """Stream Selector output: a combined stream, or a video + audio pair.

    ``audio`` is None for combined selections and for split selections where
    the provider offered no audio-only stream at all.
    """
    video: MediaFormat
    audio: Optional[MediaFormat] = None

    @property
    def is_combined(self) -> bool:
        return self.video.is_combined


# === PROVIDER RESULTS ===

@dataclass(frozen=True)
class Success:
    """Provider resolved a single stream carrying both video and audio."""
    combined_url: str
    quality: Optional[str] = None
    container: str = "mp4"
    title: Optional[str] = None
    duration_seconds: Optional[int] = None


@dataclass(frozen=True)
class SuccessSplit:
    """Provider resolved separate video-only and audio-only streams."""
    video: MediaFormat
    audio: Optional[MediaFormat] = None
    title: Optional[str] = None
    duration_seconds: Optional[int] = None


@dataclass(frozen=True)
class Failure:
    """Provider could not resolve the content."""
    reason: str


ProviderResult = Union[Success, SuccessSplit, Failure]

ALL_PROVIDERS_EXHAUSTED = "allProvidersExhausted"


def result_from_selection(
    selection: StreamSelection,
    title: Optional[str] = None,
    duration_seconds: Optional[int] = None,
) -> ProviderResult:
    """Turn a Stream Selector choice into the matching provider result."""
    if selection.is_combined:
        return Success(
            combined_url=selection.video.url,
            quality=selection.video.quality_label,
            container=selection.video.container,
            title=title,
            duration_seconds=duration_seconds,
        )
    return SuccessSplit(
        video=selection.video,
        audio=selection.audio,
        title=title,
        duration_seconds=duration_seconds,
    )


@dataclass(frozen=True)
class ChainResult:
    """The one provider result consumed for a request, and who produced it."""
    result: ProviderResult
    provider: Optional[str] = None


# === STAGING ===

class StagedKind(Enum):
    VIDEO = "video"
    AUDIO = "audio"
    MERGED = "merged"
    SOURCE = "source"
    SUBTITLE = "subtitle"
    OUTPUT = "output"


@dataclass(frozen=True)
class StagedFile:
    """A file in a request's temp workspace."""
    path: Path
    byte_length: int
    kind: StagedKind


# === OUTCOMES ===

@dataclass(frozen=True)
class VideoMetadata:
    """Cosmetic metadata from the oEmbed lookup."""
    title: str = "Unknown"
    author: str = "Unknown"
    thumbnail: Optional[str] = None
    found: bool = False


@dataclass(frozen=True)
class AcquisitionOutcome:
    """A video acquired, processed and published."""
    final_url: str
    youtube_url: str
    video_id: str
    title: str
    author: str
    source_provider: str
    quality: str
    duration_seconds: Optional[int] = None
    thumbnail: Optional[str] = None
    audio_missing: bool = False


@dataclass(frozen=True)
class DegradedOutcome:
    """No provider produced media; the caller gets the original link."""
    youtube_url: str
    video_id: str
    title: str
    author: str
    reason: str
    thumbnail: Optional[str] = None


DownloadOutcome = Union[AcquisitionOutcome, DegradedOutcome]
