"""Transcript retrieval: disk cache, network sources and canned mock data."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

import requests
from youtube_transcript_api import (
    NoTranscriptFound,
    TranscriptsDisabled,
    VideoUnavailable,
    YouTubeRequestFailed,
    YouTubeTranscriptApi,
)

from .common import extract_video_id
from .config import Config
from .errors import ApiError, CacheError, ConfigError, NetworkError, ParseError, TranscriptNotFound
from .http_client import ResilientHttpClient, RetryPolicy, retry_call
from .models import TranscriptDocument


class TranscriptSource(Protocol):
    def fetch(self, link: str, video_id: str) -> TranscriptDocument: ...


class TranscriptCache:
    """One JSON file per video id holding the provider's raw transcript payload."""

    def __init__(self, directory: str, logger: logging.Logger | None = None):
        self.directory = Path(directory)
        self.logger = logger or logging.getLogger("ks_forward.cache")

    def path_for(self, video_id: str) -> Path:
        return self.directory / f"{video_id}.json"

    def get(self, video_id: str) -> TranscriptDocument | None:
        path = self.path_for(video_id)
        if not path.is_file():
            self.logger.debug("Cache miss for %s", video_id)
            return None
        try:
            with open(path, "r", encoding="utf-8") as handle:
                payload = json.load(handle)
            document = TranscriptDocument.from_payload(payload)
        except (OSError, ValueError, ParseError) as exc:
            self.logger.warning("Ignoring unreadable cache file %s: %s", path, exc)
            return None
        self.logger.info("Cache hit for %s (%s segments)", video_id, len(document))
        return document

    def put(self, video_id: str, document: TranscriptDocument) -> bool:
        """Write the document; failures are logged and reported as False."""
        path = self.path_for(video_id)
        tmp_name = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{video_id}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document.to_payload(), handle, ensure_ascii=False)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as exc:
            self.logger.warning("Failed to cache transcript for %s: %s", video_id, exc)
            if tmp_name and os.path.exists(tmp_name):
                try:
                    os.remove(tmp_name)
                except OSError as cleanup_exc:
                    self.logger.debug("Could not remove temp file %s: %s", tmp_name, cleanup_exc)
            return False
        self.logger.info("Cached transcript for %s at %s", video_id, path)
        return True

    def clear(self) -> int:
        """Delete every cached transcript. Returns the number of files removed."""
        if not self.directory.is_dir():
            return 0
        removed = 0
        for path in self.directory.glob("*.json"):
            try:
                path.unlink()
            except OSError as exc:
                raise CacheError(f"Cannot remove {path}: {exc}") from exc
            removed += 1
        self.logger.info("Removed %s cached transcript(s) from %s", removed, self.directory)
        return removed


class SupadataTranscriptClient:
    """Fetch transcripts from the Supadata transcript API."""

    def __init__(self, config: Config, http: ResilientHttpClient, logger: logging.Logger | None = None):
        self.url = config.transcript_api_url
        self.api_key = config.transcript_api_key or ""
        self.timeout = config.timeout_seconds
        self.http = http
        self.logger = logger or logging.getLogger("ks_forward.transcripts")

    def fetch(self, link: str, video_id: str) -> TranscriptDocument:
        self.logger.info("Fetching transcript for %s", link)
        try:
            response = self.http.get(
                self.url,
                params={"url": link},
                headers={"x-api-key": self.api_key, "accept": "application/json"},
                timeout=self.timeout,
                action_name=f"transcript fetch {video_id}",
            )
        except ApiError as exc:
            if exc.status == 404:
                raise TranscriptNotFound(video_id, "provider returned 404") from exc
            raise

        try:
            payload = response.json()
        except ValueError as exc:
            raise ParseError(
                "Transcript response is not JSON",
                url=response.url,
                status=response.status,
                body_preview=response.text[:500],
                cause=exc,
            ) from exc
        document = TranscriptDocument.from_payload(payload)
        self.logger.info("Transcript for %s has %s segments (lang=%s)", video_id, len(document), document.language_hint)
        return document


def _is_transient(exc: Exception) -> bool:
    return isinstance(exc, (requests.RequestException, YouTubeRequestFailed))


class CaptionTranscriptClient:
    """Fetch captions straight from YouTube with youtube-transcript-api."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        languages: tuple[str, ...] = ("en", "th"),
        api: YouTubeTranscriptApi | None = None,
        logger: logging.Logger | None = None,
    ):
        self.policy = policy or RetryPolicy()
        self.languages = languages
        self.api = api or YouTubeTranscriptApi()
        self.logger = logger or logging.getLogger("ks_forward.transcripts")

    def fetch(self, link: str, video_id: str) -> TranscriptDocument:
        try:
            transcript = retry_call(
                lambda: self.api.fetch(video_id, languages=self.languages),
                policy=self.policy,
                retryable=_is_transient,
                action_name=f"caption fetch {video_id}",
                logger=self.logger,
            )
        except (TranscriptsDisabled, NoTranscriptFound, VideoUnavailable) as exc:
            raise TranscriptNotFound(video_id, type(exc).__name__) from exc
        except (requests.RequestException, YouTubeRequestFailed) as exc:
            raise NetworkError(link, exc) from exc

        language = getattr(transcript, "language_code", None)
        payload = {
            "lang": language,
            "availableLangs": [language] if language else [],
            "content": [
                {"text": snippet.text, "offset": snippet.start, "duration": snippet.duration, "lang": language}
                for snippet in transcript
            ],
        }
        return TranscriptDocument.from_payload(payload)


def load_mock_transcript(path: str) -> TranscriptDocument:
    """Read a canned transcript used in diagnostic mode."""
    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except OSError as exc:
        raise ConfigError(f"Cannot read mock transcript {path}: {exc}") from exc
    except ValueError as exc:
        raise ParseError(f"Mock transcript {path} is not valid JSON", cause=exc) from exc
    return TranscriptDocument.from_payload(payload)


class TranscriptService:
    """Cache-or-network transcript lookup keyed by video id."""

    def __init__(
        self,
        source: TranscriptSource,
        cache: TranscriptCache,
        mock_path: str | None = None,
        logger: logging.Logger | None = None,
    ):
        self.source = source
        self.cache = cache
        self.mock_path = mock_path
        self.logger = logger or logging.getLogger("ks_forward.transcripts")

    @classmethod
    def from_config(cls, config: Config, http: ResilientHttpClient) -> "TranscriptService":
        if config.transcript_provider == "youtube":
            source: TranscriptSource = CaptionTranscriptClient(policy=http.policy)
        else:
            source = SupadataTranscriptClient(config, http)
        return cls(
            source=source,
            cache=TranscriptCache(config.cache_dir),
            mock_path=config.mock_transcript_path if config.use_mock_data else None,
        )

    def fetch(self, link: str) -> TranscriptDocument:
        video_id = extract_video_id(link)

        if self.mock_path:
            self.logger.info("Using mock transcript from %s", self.mock_path)
            return load_mock_transcript(self.mock_path)

        cached = self.cache.get(video_id)
        if cached is not None:
            return cached

        document = self.source.fetch(link, video_id)
        self.cache.put(video_id, document)
        return document

    def fetch_text(self, link: str) -> str:
        """Fetch and flatten a transcript into plain text."""
        return self.fetch(link).flatten()
