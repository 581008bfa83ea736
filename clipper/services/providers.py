"""Acquisition providers and the ordered provider chain.

PROVIDER CHAIN
==============
Every provider resolves a ContentRef to downloadable stream URL(s) and
reports one ProviderResult:

    Success       - one combined (video + audio) URL
    SuccessSplit  - separate video-only and audio-only formats
    Failure       - anything else; the chain moves on

Default order, most capable first:

    yt-dlp    - extractor library, full format list, no network hop of ours
    cobalt    - relay service, fixed JSON request body, returns one tunnel URL
    piped     - public proxy API, proxied video/audio stream lists
    rapidapi  - keyed third-party API, only when RAPIDAPI_KEY is configured

No single service is trustworthy (rate limits, region blocks, outages), so
resilience comes from diversity and ordering. Each provider gets exactly one
attempt: exceptions, timeouts and non-success statuses all count as Failure.
To add a provider, append it in build_provider_chain().
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache
from typing import Any, Iterable, Optional, Protocol, Sequence
from urllib.parse import urlparse

import aiohttp
import yt_dlp

from clipper.config import Settings, settings
from clipper.models.media import (
    ALL_PROVIDERS_EXHAUSTED,
    ChainResult,
    ContentRef,
    Failure,
    MediaFormat,
    ProviderResult,
    Success,
    SuccessSplit,
    result_from_selection,
)
from clipper.services import logger
from clipper.services.selector import select_streams
from clipper.utils.exceptions import NoFormatAvailableError, UpstreamUnavailableError

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)

# yt-dlp protocols that are a single fetchable file
DIRECT_PROTOCOLS = ("https", "http")

# Thread pool for blocking yt-dlp extraction
_extract_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="ytdlp")


class Provider(Protocol):
    """Anything with a name that can resolve a ContentRef."""

    name: str

    async def acquire(self, ref: ContentRef) -> ProviderResult:
        ...


def _container_from_mime(mime_type: Optional[str], default: str = "mp4") -> str:
    """'video/mp4; codecs="avc1"' -> 'mp4', 'audio/mp4' -> 'm4a', 'audio/webm' -> 'webm'."""
    if not mime_type:
        return default
    kind, _, rest = mime_type.split(";")[0].strip().partition("/")
    if kind == "audio" and rest == "mp4":
        return "m4a"
    return rest or default


def _host(url: str) -> str:
    return urlparse(url).netloc or url


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(float(value)) if value is not None else None
    except (TypeError, ValueError):
        return None


async def _request_json(
    method: str,
    url: str,
    timeout: float,
    **kwargs,
) -> tuple[int, Any]:
    """Single HTTP attempt returning (status, parsed JSON or None)."""
    headers = {"User-Agent": USER_AGENT, "Accept": "application/json", **kwargs.pop("headers", {})}
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    try:
        async with aiohttp.ClientSession(timeout=client_timeout, headers=headers) as session:
            async with session.request(method, url, **kwargs) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = None
                return response.status, data
    except aiohttp.ClientError as e:
        raise UpstreamUnavailableError(f"{_host(url)} unreachable: {str(e)[:200] or type(e).__name__}")


def _select(
    formats: Sequence[MediaFormat],
    preferred: Optional[Sequence[str]],
    title: Optional[str],
    duration_seconds: Optional[int],
) -> ProviderResult:
    try:
        selection = select_streams(formats, preferred)
    except NoFormatAvailableError as e:
        return Failure(e.message)
    return result_from_selection(selection, title=title, duration_seconds=duration_seconds)


# =============================================================================
# YT-DLP (DIRECT EXTRACTION)
# =============================================================================

def formats_from_ytdlp(info: dict) -> list[MediaFormat]:
    """Map yt-dlp's format dicts to MediaFormat, skipping manifests and storyboards."""
    formats = []
    for f in info.get("formats") or []:
        if not f.get("url") or f.get("protocol", "https") not in DIRECT_PROTOCOLS:
            continue
        has_video = f.get("vcodec") not in (None, "none")
        has_audio = f.get("acodec") not in (None, "none")
        if not (has_video or has_audio):
            continue
        height = f.get("height")
        formats.append(MediaFormat(
            url=f["url"],
            quality_label=f"{height}p" if height else f.get("format_note"),
            has_audio=has_audio,
            has_video=has_video,
            container=f.get("ext") or "mp4",
        ))
    return formats


class YtdlpProvider:
    """Resolve streams with yt-dlp's YouTube extractor, without downloading."""

    name = "yt-dlp"

    def __init__(self, preferred: Optional[Sequence[str]] = None, socket_timeout: float = 15):
        self.preferred = preferred
        self.socket_timeout = socket_timeout

    def _extract_info(self, ref: ContentRef) -> dict:
        """Run blocking metadata extraction."""
        ydl_opts = {
            "quiet": True,
            "no_warnings": True,
            "logger": logger.YtdlpLogger(ref.id),
            "skip_download": True,
            "noplaylist": True,
            "socket_timeout": self.socket_timeout,
        }
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            return ydl.extract_info(ref.canonical_url, download=False)

    async def acquire(self, ref: ContentRef) -> ProviderResult:
        loop = asyncio.get_running_loop()
        try:
            info = await loop.run_in_executor(_extract_executor, self._extract_info, ref)
        except yt_dlp.utils.DownloadError as e:
            return Failure(f"yt-dlp extraction failed: {str(e)[:200]}")

        if not info:
            return Failure("yt-dlp returned no info")

        return _select(
            formats_from_ytdlp(info),
            self.preferred,
            title=info.get("title"),
            duration_seconds=_to_int(info.get("duration")),
        )


# =============================================================================
# COBALT (RELAY SERVICE)
# =============================================================================

class CobaltProvider:
    """Ask a cobalt instance to tunnel a combined stream."""

    def __init__(
        self,
        instance: str,
        api_key: str = "",
        video_quality: str = "360",
        timeout: Optional[float] = None,
        name: str = "cobalt",
    ):
        self.instance = instance.rstrip("/") + "/"
        self.api_key = api_key
        self.video_quality = video_quality
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self.name = name

    def _request_body(self, ref: ContentRef) -> dict:
        return {
            "url": ref.canonical_url,
            "videoQuality": self.video_quality,
            "downloadMode": "auto",
            "youtubeVideoCodec": "h264",
        }

    async def acquire(self, ref: ContentRef) -> ProviderResult:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Api-Key {self.api_key}"

        status_code, data = await _request_json(
            "POST", self.instance, self.timeout, json=self._request_body(ref), headers=headers,
        )
        if not isinstance(data, dict):
            return Failure(f"cobalt returned HTTP {status_code} without JSON")

        status = data.get("status")
        quality = f"{self.video_quality}p"

        if status in ("tunnel", "redirect", "stream") and data.get("url"):
            return Success(combined_url=data["url"], quality=quality)

        if status == "picker":
            for item in data.get("picker") or []:
                if item.get("type", "video") == "video" and item.get("url"):
                    return Success(combined_url=item["url"], quality=quality)
            return Failure("cobalt picker had no video item")

        error = data.get("error")
        code = error.get("code") if isinstance(error, dict) else (error or data.get("text"))
        return Failure(f"cobalt status {status} (HTTP {status_code}): {code}")


# =============================================================================
# PIPED (PUBLIC PROXY API)
# =============================================================================

def formats_from_piped(data: dict) -> list[MediaFormat]:
    """Map Piped /streams videoStreams and audioStreams to MediaFormat."""
    formats = []
    for stream in data.get("videoStreams") or []:
        if not stream.get("url"):
            continue
        formats.append(MediaFormat(
            url=stream["url"],
            quality_label=stream.get("quality"),
            has_video=True,
            has_audio=not stream.get("videoOnly", False),
            container=_container_from_mime(stream.get("mimeType")),
        ))
    for stream in data.get("audioStreams") or []:
        if not stream.get("url"):
            continue
        formats.append(MediaFormat(
            url=stream["url"],
            quality_label=stream.get("quality"),
            has_video=False,
            has_audio=True,
            container=_container_from_mime(stream.get("mimeType"), default="m4a"),
        ))
    return formats


class PipedProvider:
    """Resolve proxied streams from a Piped API instance."""

    def __init__(
        self,
        instance: str,
        preferred: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
        name: str = "piped",
    ):
        self.instance = instance.rstrip("/")
        self.preferred = preferred
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self.name = name

    async def acquire(self, ref: ContentRef) -> ProviderResult:
        status_code, data = await _request_json(
            "GET", f"{self.instance}/streams/{ref.id}", self.timeout,
        )
        if status_code != 200 or not isinstance(data, dict):
            return Failure(f"piped returned HTTP {status_code}")
        if data.get("error"):
            return Failure(f"piped error: {str(data['error'])[:200]}")

        return _select(
            formats_from_piped(data),
            self.preferred,
            title=data.get("title"),
            duration_seconds=_to_int(data.get("duration")),
        )


# =============================================================================
# RAPIDAPI (KEYED THIRD-PARTY API)
# =============================================================================

def formats_from_rapidapi(data: dict) -> list[MediaFormat]:
    """Map ytstream `formats` (combined) and `adaptiveFormats` (split) to MediaFormat."""
    formats = []
    for f in data.get("formats") or []:
        if not f.get("url"):
            continue
        formats.append(MediaFormat(
            url=f["url"],
            quality_label=f.get("qualityLabel") or f.get("quality"),
            has_video=True,
            has_audio=True,
            container=_container_from_mime(f.get("mimeType")),
        ))
    for f in data.get("adaptiveFormats") or []:
        mime_type = f.get("mimeType") or ""
        if not f.get("url") or not mime_type.startswith(("video/", "audio/")):
            continue
        is_video = mime_type.startswith("video/")
        formats.append(MediaFormat(
            url=f["url"],
            quality_label=f.get("qualityLabel") if is_video else f.get("audioQuality"),
            has_video=is_video,
            has_audio=not is_video,
            container=_container_from_mime(mime_type),
        ))
    return formats


class RapidApiProvider:
    """Resolve streams through a keyed RapidAPI YouTube downloader."""

    name = "rapidapi"

    def __init__(
        self,
        api_key: str,
        host: str,
        url: str,
        preferred: Optional[Sequence[str]] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key
        self.host = host
        self.url = url
        self.preferred = preferred
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS

    async def acquire(self, ref: ContentRef) -> ProviderResult:
        headers = {"X-RapidAPI-Key": self.api_key, "X-RapidAPI-Host": self.host}
        status_code, data = await _request_json(
            "GET", self.url, self.timeout, params={"id": ref.id}, headers=headers,
        )
        if status_code != 200 or not isinstance(data, dict):
            return Failure(f"rapidapi returned HTTP {status_code}")
        if str(data.get("status", "")).upper() != "OK":
            return Failure(f"rapidapi status {data.get('status')}: {str(data.get('msg', ''))[:200]}")

        return _select(
            formats_from_rapidapi(data),
            self.preferred,
            title=data.get("title"),
            duration_seconds=_to_int(data.get("lengthSeconds")),
        )


# =============================================================================
# CHAIN
# =============================================================================

class ProviderChain:
    """Try providers strictly in order until one succeeds."""

    def __init__(self, providers: Iterable[Provider], timeout: Optional[float] = None):
        self.providers = list(providers)
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS

    @property
    def names(self) -> list[str]:
        return [p.name for p in self.providers]

    async def acquire(self, ref: ContentRef) -> ChainResult:
        """
        Resolve a video through the first provider that succeeds.

        Later providers are never invoked once one returns Success or
        SuccessSplit. Exceptions and timeouts count as Failure.

        Args:
            ref: Identified video

        Returns:
            ChainResult naming the provider, or Failure(allProvidersExhausted)
        """
        failures = []

        for position, provider in enumerate(self.providers, start=1):
            start_time = time.time()
            try:
                result = await asyncio.wait_for(provider.acquire(ref), timeout=self.timeout)
            except asyncio.TimeoutError:
                result = Failure(f"timed out after {self.timeout:.0f}s")
            except UpstreamUnavailableError as e:
                result = Failure(e.message)
            except Exception as e:
                result = Failure(f"{type(e).__name__}: {str(e)[:200]}")

            elapsed = round(time.time() - start_time, 2)

            if isinstance(result, (Success, SuccessSplit)):
                logger.success(
                    f"[{provider.name}] resolved {ref.id} ({type(result).__name__})",
                    "provider",
                    {"video_id": ref.id, "provider": provider.name, "position": position, "time_seconds": elapsed}
                )
                return ChainResult(result=result, provider=provider.name)

            failures.append(f"{provider.name}: {result.reason}")
            logger.warn(
                f"[{provider.name}] failed for {ref.id}: {result.reason[:150]}",
                "provider",
                {"video_id": ref.id, "provider": provider.name, "position": position, "time_seconds": elapsed}
            )

        logger.error(
            f"All {len(self.providers)} providers failed for {ref.id}",
            "provider",
            {"video_id": ref.id, "failures": failures}
        )
        return ChainResult(result=Failure(ALL_PROVIDERS_EXHAUSTED))


def build_provider_chain(config: Settings) -> ProviderChain:
    """Build the default chain from settings, most capable provider first."""
    preferred = config.PREFERRED_QUALITIES
    providers: list[Provider] = []

    if config.ENABLE_YTDLP:
        providers.append(YtdlpProvider(preferred=preferred))

    cobalt_quality = (preferred[0] if preferred else "360p").rstrip("p")
    for instance in config.COBALT_INSTANCES:
        providers.append(CobaltProvider(
            instance,
            api_key=config.COBALT_API_KEY,
            video_quality=cobalt_quality,
            name=f"cobalt:{_host(instance)}" if len(config.COBALT_INSTANCES) > 1 else "cobalt",
        ))

    for instance in config.PIPED_INSTANCES:
        providers.append(PipedProvider(
            instance,
            preferred=preferred,
            name=f"piped:{_host(instance)}" if len(config.PIPED_INSTANCES) > 1 else "piped",
        ))

    if config.RAPIDAPI_KEY:
        providers.append(RapidApiProvider(
            config.RAPIDAPI_KEY,
            host=config.RAPIDAPI_HOST,
            url=config.RAPIDAPI_URL,
            preferred=preferred,
        ))
    else:
        logger.info("RAPIDAPI_KEY not set - rapidapi provider disabled", "provider")

    return ProviderChain(providers, timeout=config.PROVIDER_TIMEOUT_SECONDS)


@lru_cache()
def get_provider_chain() -> ProviderChain:
    """Process-wide chain, resolved once from settings (FastAPI dependency)."""
    chain = build_provider_chain(settings)
    logger.info(f"Provider chain: {' -> '.join(chain.names) or '(empty)'}", "provider")
    return chain
