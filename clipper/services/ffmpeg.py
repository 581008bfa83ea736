"""ffmpeg invocations: stream merge, clip and subtitle burn.

Binaries run as asyncio child processes. A child never outlives the
coroutine awaiting it: timeouts and cancellation (request budgets) kill it
before the error propagates.
"""

import asyncio
import subprocess
import time
from pathlib import Path
from typing import Optional

from clipper.config import settings
from clipper.services import logger
from clipper.utils.exceptions import (
    MergeFailedError,
    SubprocessExitError,
    SubprocessTimeoutError,
)

# Fixed encode preset shared by clip and burn
X264_ARGS = ["-c:v", "libx264", "-preset", "fast", "-crf", "23"]

SUBTITLE_STYLE = (
    "FontName=Arial,FontSize=24,PrimaryColour=&Hffffff,OutlineColour=&H000000,"
    "Outline=2,Shadow=1,MarginV=30"
)

STDERR_TAIL_CHARS = 2000


def _check_binary_available(binary: str) -> bool:
    """Check if a media binary can be executed."""
    try:
        result = subprocess.run([binary, "-version"], capture_output=True, timeout=5)
        return result.returncode == 0
    except (OSError, subprocess.SubprocessError):
        return False


def ffmpeg_available() -> bool:
    return _check_binary_available(settings.FFMPEG_BINARY)


def _stderr_tail(stderr: Optional[str]) -> str:
    return (stderr or "")[-STDERR_TAIL_CHARS:]


async def _communicate(cmd: list[str], timeout: float) -> tuple[int, str, str]:
    """
    Run a command to completion and return (returncode, stdout, stderr).

    Raises:
        asyncio.TimeoutError: If the command runs past the timeout
        OSError: If the binary cannot be started
    """
    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    finally:
        # Timed out or cancelled: the child must not keep writing into a removed workspace
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

    return (
        process.returncode,
        stdout.decode(errors="replace"),
        stderr.decode(errors="replace"),
    )


async def run_ffmpeg(args: list[str], timeout: float, label: str) -> subprocess.CompletedProcess:
    """
    Run ffmpeg once with an argument list.

    Args:
        args: Arguments after the binary name
        timeout: Seconds before the process is killed
        label: Short operation name for logs (merge, clip, burn)

    Returns:
        The completed process (returncode 0)

    Raises:
        SubprocessTimeoutError: If ffmpeg runs past the timeout
        SubprocessExitError: If ffmpeg exits non-zero or cannot be started
    """
    cmd = [settings.FFMPEG_BINARY, *args]
    logger.debug(f"[{label}] Executing ffmpeg", "ffmpeg", {"args": args})

    start_time = time.time()
    try:
        returncode, stdout, stderr = await _communicate(cmd, timeout)
    except asyncio.TimeoutError:
        logger.error(f"[{label}] ffmpeg killed after {timeout:.0f}s", "ffmpeg")
        raise SubprocessTimeoutError(f"FFmpeg timed out after {timeout:.0f}s")
    except OSError as e:
        logger.error(f"[{label}] ffmpeg could not be started: {e}", "ffmpeg")
        raise SubprocessExitError(f"FFmpeg could not be started: {e}")

    elapsed = time.time() - start_time
    if returncode != 0:
        logger.warn(
            f"[{label}] ffmpeg exited with code {returncode}",
            "ffmpeg",
            {"stderr": _stderr_tail(stderr)[-500:], "time_seconds": round(elapsed, 2)}
        )
        raise SubprocessExitError(
            f"FFmpeg exited with code {returncode}",
            details=_stderr_tail(stderr),
        )

    logger.info(f"[{label}] ffmpeg finished in {elapsed:.1f}s", "ffmpeg")
    return subprocess.CompletedProcess(cmd, returncode, stdout, stderr)


async def probe_duration(path: Path, timeout: float = 15) -> Optional[float]:
    """Container duration in seconds via ffprobe, or None if unknown."""
    cmd = [
        settings.FFPROBE_BINARY,
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "default=noprint_wrappers=1:nokey=1",
        str(path),
    ]

    try:
        returncode, stdout, _ = await _communicate(cmd, timeout)
    except (OSError, asyncio.TimeoutError) as e:
        logger.debug(f"ffprobe failed for {path.name}: {e or type(e).__name__}", "ffmpeg")
        return None

    if returncode != 0:
        return None
    try:
        return float(stdout.strip())
    except ValueError:
        return None


def merge_args(video: Path, audio: Path, output: Path, max_duration: Optional[float] = None) -> list[str]:
    """Video copied, audio encoded to AAC, output cut at the shorter input."""
    args = [
        "-y",
        "-i", str(video),
        "-i", str(audio),
        "-map", "0:v:0",
        "-map", "1:a:0",
        "-c:v", "copy",
        "-c:a", "aac",
        "-b:a", "128k",
        "-shortest",
    ]
    if max_duration:
        args += ["-t", f"{max_duration:.3f}"]
    args += ["-movflags", "+faststart", str(output)]
    return args


async def merge_streams(
    video: Path,
    audio: Path,
    output: Path,
    timeout: Optional[float] = None,
) -> Path:
    """
    Mux a video-only and an audio-only file into one mp4.

    A length mismatch is resolved by truncating to the shorter input, never
    by padding or stretching.

    Raises:
        MergeFailedError: On non-zero exit, timeout or missing binary
    """
    timeout = timeout or settings.MERGE_TIMEOUT_SECONDS

    video_duration, audio_duration = await asyncio.gather(probe_duration(video), probe_duration(audio))
    known = [d for d in (video_duration, audio_duration) if d]
    shorter = min(known) if len(known) == 2 else None

    logger.info(
        "Merging video and audio streams",
        "ffmpeg",
        {"video_duration": video_duration, "audio_duration": audio_duration, "output_duration": shorter}
    )

    try:
        await run_ffmpeg(merge_args(video, audio, output, shorter), timeout, "merge")
    except (SubprocessExitError, SubprocessTimeoutError) as e:
        raise MergeFailedError(f"Merge failed: {e.message}", details=e.details)

    if not output.exists():
        raise MergeFailedError("Merge failed: ffmpeg produced no output")
    return output


def clip_args(source: Path, output: Path, start_time: float, duration: float) -> list[str]:
    return [
        "-y",
        "-ss", str(start_time),
        "-i", str(source),
        "-t", str(duration),
        *X264_ARGS,
        "-c:a", "aac",
        "-movflags", "+faststart",
        str(output),
    ]


def _escape_filter_path(path: Path) -> str:
    """Escape a path for use inside an ffmpeg filter argument."""
    return str(path).replace("\\", "\\\\").replace(":", "\\:").replace("'", "\\'")


def burn_args(source: Path, subtitles: Path, output: Path) -> list[str]:
    return [
        "-y",
        "-i", str(source),
        "-vf", f"subtitles={_escape_filter_path(subtitles)}:force_style='{SUBTITLE_STYLE}'",
        *X264_ARGS,
        "-c:a", "copy",
        str(output),
    ]


async def clip_video(source: Path, output: Path, start_time: float, duration: float) -> Path:
    """Cut [start_time, start_time + duration) and re-encode. Fatal on failure."""
    await run_ffmpeg(
        clip_args(source, output, start_time, duration),
        settings.TRANSFORM_TIMEOUT_SECONDS,
        "clip",
    )
    return output


async def burn_subtitles(source: Path, subtitles: Path, output: Path) -> Path:
    """Render SRT subtitles into the picture. Fatal on failure."""
    await run_ffmpeg(
        burn_args(source, subtitles, output),
        settings.TRANSFORM_TIMEOUT_SECONDS,
        "burn",
    )
    return output
