"""Structured service log: JSONL file and stdout echo.

Every entry is a JSON line `{seq, timestamp, level, category, message, details?}`.
All entries go to the file; stdout only echoes entries at or above LOG_LEVEL.
"""

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from clipper.config import settings

LEVELS = ("DEBUG", "INFO", "SUCCESS", "WARN", "ERROR")

MAX_DETAIL_CHARS = 1000

_lock = threading.Lock()
_sequence = 0
_file: Optional[Path] = None


def _log_file() -> Path:
    global _file
    if _file is None:
        directory = Path(settings.LOG_DIR)
        directory.mkdir(parents=True, exist_ok=True)
        _file = directory / "service.jsonl"
    return _file


def _clip(details: dict) -> dict:
    """Cap long string values (ffmpeg stderr, provider bodies)."""
    return {
        key: value[-MAX_DETAIL_CHARS:] if isinstance(value, str) and len(value) > MAX_DETAIL_CHARS else value
        for key, value in details.items()
    }


def _should_echo(level: str) -> bool:
    threshold = settings.LOG_LEVEL.upper()
    if threshold not in LEVELS:
        return True
    return LEVELS.index(level) >= LEVELS.index(threshold)


def log(level: str, message: str, category: str = "general", details: Optional[dict] = None):
    """
    Record one entry.

    Args:
        level: One of LEVELS
        message: Human-readable summary
        category: general, download, provider, ytdlp, ffmpeg, storage or metadata
        details: Extra structured fields (video_id, provider, timings...)
    """
    global _sequence

    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "level": level,
        "category": category,
        "message": message,
    }
    if details:
        entry["details"] = _clip(details)

    with _lock:
        _sequence += 1
        entry = {"seq": _sequence, **entry}
        try:
            with open(_log_file(), "a") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except OSError:
            # An unwritable log directory never fails a request
            pass

    if _should_echo(level):
        print(f"[{entry['timestamp']}] [{level}] [{category}] {message}", flush=True)


def info(message: str, category: str = "general", details: Optional[dict] = None):
    log("INFO", message, category, details)

def warn(message: str, category: str = "general", details: Optional[dict] = None):
    log("WARN", message, category, details)

def error(message: str, category: str = "general", details: Optional[dict] = None):
    log("ERROR", message, category, details)

def debug(message: str, category: str = "general", details: Optional[dict] = None):
    log("DEBUG", message, category, details)

def success(message: str, category: str = "general", details: Optional[dict] = None):
    log("SUCCESS", message, category, details)


class YtdlpLogger:
    """Route yt-dlp's logger calls into the service log, tagged with the video ID."""

    def __init__(self, video_id: str):
        self.details = {"video_id": video_id}

    def debug(self, msg):
        # yt-dlp sends regular progress lines through debug() too
        log("DEBUG" if msg.startswith("[debug]") else "INFO", msg, "ytdlp", self.details)

    def info(self, msg):
        log("INFO", msg, "ytdlp", self.details)

    def warning(self, msg):
        log("WARN", msg, "ytdlp", self.details)

    def error(self, msg):
        log("ERROR", msg, "ytdlp", self.details)
