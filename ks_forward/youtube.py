"""Locate videos on a channel via the YouTube Data API or the channel RSS feed."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

import feedparser

from .common import extract_video_id
from .config import Config
from .errors import ParseError, VideoNotFound
from .http_client import ResilientHttpClient
from .models import VideoCandidate

SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
VIDEOS_URL = "https://www.googleapis.com/youtube/v3/videos"
RSS_URL = "https://www.youtube.com/feeds/videos.xml?channel_id={}"
DEFAULT_MAX_RESULTS = 5


class VideoSearch(Protocol):
    def search_channel(self, channel_id: str, max_results: int = DEFAULT_MAX_RESULTS) -> list[VideoCandidate]: ...


def _item_video_id(item: dict) -> str | None:
    # `search` returns {"kind": ..., "videoId": ...}; `videos` returns a plain string.
    raw_id = item.get("id")
    if isinstance(raw_id, str):
        return raw_id or None
    if isinstance(raw_id, dict):
        return raw_id.get("videoId") or None
    return None


def parse_search_items(data: dict) -> list[VideoCandidate]:
    """Convert a Data API response into candidates, keeping provider order."""
    if not isinstance(data, dict) or not isinstance(data.get("items", []), list):
        raise ParseError("YouTube response has no 'items' list")

    candidates: list[VideoCandidate] = []
    for item in data.get("items", []):
        if not isinstance(item, dict):
            continue
        video_id = _item_video_id(item)
        if not video_id:
            continue
        snippet = item.get("snippet") or {}
        candidates.append(
            VideoCandidate(
                id=video_id,
                title=snippet.get("title") or "",
                published_at=snippet.get("publishTime") or snippet.get("publishedAt") or "",
            )
        )
    return candidates


def filter_by_prefix(candidates: Iterable[VideoCandidate], prefix: str) -> list[VideoCandidate]:
    return [candidate for candidate in candidates if candidate.title.startswith(prefix)]


def select_latest(candidates: Iterable[VideoCandidate], prefix: str) -> VideoCandidate | None:
    """Pick the first prefix match; search results are already newest first."""
    matches = filter_by_prefix(candidates, prefix)
    return matches[0] if matches else None


class YouTubeSearchClient:
    """Search a channel with the YouTube Data API v3."""

    def __init__(self, api_key: str, http: ResilientHttpClient, timeout: float = 30.0,
                 completed_only: bool = True, logger: logging.Logger | None = None):
        self.api_key = api_key
        self.completed_only = completed_only
        self.http = http
        self.timeout = timeout
        self.logger = logger or logging.getLogger("ks_forward.youtube")

    def _get(self, url: str, params: dict, action_name: str) -> dict:
        response = self.http.get(
            url,
            params={**params, "key": self.api_key},
            timeout=self.timeout,
            action_name=action_name,
        )
        try:
            return response.json()
        except ValueError as exc:
            raise ParseError(
                "YouTube response is not JSON",
                url=url,
                status=response.status,
                body_preview=response.text[:500],
                cause=exc,
            ) from exc

    def search_channel(self, channel_id: str, max_results: int = DEFAULT_MAX_RESULTS) -> list[VideoCandidate]:
        self.logger.info("Searching channel %s for recent videos", channel_id)
        params = {
            "part": "snippet",
            "channelId": channel_id,
            "maxResults": str(max_results),
            "order": "date",
            "type": "video",
        }
        if self.completed_only:
            # Upcoming and live broadcasts have no transcript yet.
            params["eventType"] = "completed"
        data = self._get(
            SEARCH_URL,
            params,
            action_name=f"youtube search {channel_id}",
        )
        candidates = parse_search_items(data)
        self.logger.info("YouTube search returned %s videos", len(candidates))
        return candidates

    def get_video_by_link(self, link: str) -> VideoCandidate:
        video_id = extract_video_id(link)
        data = self._get(
            VIDEOS_URL,
            {"part": "snippet", "id": video_id},
            action_name=f"youtube video {video_id}",
        )
        candidates = parse_search_items(data)
        if not candidates:
            raise VideoNotFound(link)
        return candidates[0]


class FeedSearchClient:
    """Read the channel's public RSS feed (no API key needed)."""

    def __init__(self, http: ResilientHttpClient, timeout: float = 30.0,
                 logger: logging.Logger | None = None):
        self.http = http
        self.timeout = timeout
        self.logger = logger or logging.getLogger("ks_forward.youtube")

    def search_channel(self, channel_id: str, max_results: int = DEFAULT_MAX_RESULTS) -> list[VideoCandidate]:
        url = RSS_URL.format(channel_id)
        response = self.http.get(url, timeout=self.timeout, action_name=f"feed request {channel_id}")
        feed = feedparser.parse(response.text)
        if feed.bozo and not feed.entries:
            raise ParseError("Channel feed could not be parsed", url=url, cause=feed.get("bozo_exception"))

        candidates: list[VideoCandidate] = []
        for entry in feed.entries[:max_results]:
            video_id = getattr(entry, "yt_videoid", None)
            if not video_id:
                continue
            candidates.append(
                VideoCandidate(
                    id=video_id,
                    title=getattr(entry, "title", ""),
                    published_at=getattr(entry, "published", ""),
                )
            )
        self.logger.info("Channel feed returned %s videos", len(candidates))
        return candidates


def build_search(config: Config, http: ResilientHttpClient) -> VideoSearch:
    if config.youtube_api_key:
        return YouTubeSearchClient(
            config.youtube_api_key,
            http,
            timeout=config.timeout_seconds,
            completed_only=config.completed_broadcasts_only,
        )
    return FeedSearchClient(http, timeout=config.timeout_seconds)
