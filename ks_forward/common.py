"""Shared helpers used across the KS Forward pipeline."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from urllib.parse import parse_qs, urlparse

from .errors import InvalidVideoLink

VIDEO_ID_RE = re.compile(r"^[A-Za-z0-9_-]{11}$")
# Ids taken from a watch or short link are trusted at any length.
LINK_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
WATCH_URL = "https://www.youtube.com/watch?v={video_id}"
NOISY_LOGGERS = ("urllib3", "urllib3.connectionpool", "requests.packages.urllib3")


def configure_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Configure process-wide logging."""
    if verbose and quiet:
        raise ValueError("Cannot use --verbose and --quiet together.")

    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def format_discord_timestamp(value: datetime) -> str:
    """Render an ISO-8601 timestamp with millisecond precision, e.g. 2024-01-14T12:00:00.123+07:00."""
    if value.tzinfo is None:
        value = value.astimezone()
    return value.isoformat(timespec="milliseconds")


def extract_video_id(value: str) -> str:
    """Extract the video ID from a bare 11-char ID or a YouTube URL."""
    candidate = value.strip()
    if VIDEO_ID_RE.fullmatch(candidate):
        return candidate

    parsed = urlparse(candidate)
    host = parsed.netloc.lower()
    path = parsed.path.strip("/")

    if host.endswith("youtu.be") and path:
        part = path.split("/")[0]
        if LINK_ID_RE.fullmatch(part):
            return part

    if "youtube.com" in host:
        if path in {"watch", "watch/"}:
            query = parse_qs(parsed.query)
            part = (query.get("v") or [None])[0]
            if part and LINK_ID_RE.fullmatch(part):
                return part

        segments = [segment for segment in path.split("/") if segment]
        if len(segments) >= 2 and segments[0] in {"shorts", "embed", "live", "v"}:
            part = segments[1]
            if LINK_ID_RE.fullmatch(part):
                return part

    raise InvalidVideoLink(value)


def watch_url(video_id: str) -> str:
    return WATCH_URL.format(video_id=video_id)


def mask_secret(value: str | None) -> str:
    """Mask an API key for logging, keeping the first and last four characters."""
    if not value or len(value) <= 8:
        return "***"
    return f"{value[:4]}...{value[-4:]}"


def mask_webhook_url(url: str) -> str:
    """Hide the token part of a webhook URL."""
    if "/" not in url:
        return "***"
    return f"{url.rsplit('/', 1)[0]}/***"


def preview(text: str, limit: int = 100) -> str:
    """Return at most `limit` characters of text for log lines."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
