"""Data models shared by the pipeline stages."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from .common import watch_url
from .errors import ParseError

logger = logging.getLogger("ks_forward.models")


@dataclass(frozen=True)
class VideoCandidate:
    """A video returned by a channel search."""

    id: str
    title: str
    published_at: str = ""

    @property
    def link(self) -> str:
        return watch_url(self.id)

    def to_dict(self) -> dict:
        return {"id": self.id, "title": self.title, "published_at": self.published_at, "link": self.link}


@dataclass(frozen=True)
class TranscriptSegment:
    text: str
    offset: float
    duration: float
    lang: str | None = None


@dataclass(frozen=True)
class TranscriptDocument:
    """A fetched transcript. Iterable over segments in provider order."""

    segments: tuple[TranscriptSegment, ...]
    language_hint: str | None = None
    available_langs: tuple[str, ...] = ()
    raw: dict = field(default_factory=dict, compare=False, repr=False)

    def __iter__(self):
        return iter(self.segments)

    def __len__(self) -> int:
        return len(self.segments)

    @classmethod
    def from_payload(cls, payload: Any) -> "TranscriptDocument":
        """Build a document from the provider's JSON response."""
        if not isinstance(payload, dict):
            raise ParseError(f"Transcript payload must be an object, got {type(payload).__name__}")

        items = payload.get("content", payload.get("segments"))
        if items is None:
            raise ParseError(f"Transcript payload has no content (keys: {sorted(payload)})")
        if isinstance(items, str):
            # Some providers return the flattened text directly.
            items = [{"text": items, "offset": 0, "duration": 0}]
        if not isinstance(items, list):
            raise ParseError("Transcript 'content' must be a list of segments")

        segments = []
        for index, item in enumerate(items):
            if not isinstance(item, dict) or "text" not in item:
                raise ParseError(f"Transcript segment {index} has no text")
            try:
                segments.append(
                    TranscriptSegment(
                        text=str(item["text"]),
                        offset=float(item.get("offset", item.get("start", 0.0)) or 0.0),
                        duration=float(item.get("duration", 0.0) or 0.0),
                        lang=item.get("lang"),
                    )
                )
            except (TypeError, ValueError) as exc:
                raise ParseError(f"Transcript segment {index} is malformed", cause=exc) from exc

        return cls(
            segments=tuple(segments),
            language_hint=payload.get("lang"),
            available_langs=tuple(payload.get("availableLangs") or ()),
            raw=payload,
        )

    def to_payload(self) -> dict:
        if self.raw:
            return self.raw
        payload: dict = {
            "lang": self.language_hint,
            "availableLangs": list(self.available_langs),
            "content": [asdict(segment) for segment in self.segments],
        }
        return payload

    def flatten(self) -> str:
        """Join segment texts with single spaces, in the order received."""
        offsets = [segment.offset for segment in self.segments]
        if any(later < earlier for earlier, later in zip(offsets, offsets[1:])):
            logger.warning("Transcript offsets are not monotonic; keeping provider order")
        return " ".join(segment.text for segment in self.segments)


@dataclass(frozen=True)
class TraceStep:
    step: int | None = None
    agent: str = ""
    action: str = ""
    thought: str = ""
    tool: Any = None
    target_agent: Any = None

    @classmethod
    def from_dict(cls, data: dict) -> "TraceStep":
        step = data.get("step")
        return cls(
            step=step if isinstance(step, int) else None,
            agent=str(data.get("agent") or ""),
            action=str(data.get("action") or ""),
            thought=str(data.get("thought") or ""),
            tool=data.get("tool"),
            target_agent=data.get("target_agent"),
        )


@dataclass(frozen=True)
class AIReply:
    answer_text: str
    session_id: str = "unknown"
    context_used: bool = False
    trace: tuple[TraceStep, ...] = ()


@dataclass(frozen=True)
class Embed:
    """One Discord embed: a delivery unit."""

    title: str
    description: str
    color: int
    timestamp: str
    footer: str | None = None

    def to_payload(self) -> dict:
        payload: dict = {
            "title": self.title,
            "description": self.description,
            "color": self.color,
            "timestamp": self.timestamp,
        }
        if self.footer:
            payload["footer"] = {"text": self.footer}
        return payload


class PipelineStage(str, Enum):
    LOCATE = "locate"
    FETCH_TRANSCRIPT = "fetch_transcript"
    SUMMARIZE = "summarize"
    DELIVER = "deliver"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineOutcome:
    """Result of one pipeline run."""

    status: str
    stage: PipelineStage = PipelineStage.DONE
    video: VideoCandidate | None = None
    message: str = ""
    batches_sent: int = 0

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "stage": self.stage.value,
            "video": self.video.to_dict() if self.video else None,
            "message": self.message,
            "batches_sent": self.batches_sent,
        }
