"""Tolerant parsing of AI backend responses.

The backend does not always honour its JSON contract: some replies are plain
text, and some carry stray characters after a valid JSON object. Each parse
strategy below either returns an ``AIReply`` or declines with ``None``;
``normalize_reply`` tries them in order.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from typing import Any

from .errors import ParseError
from .models import AIReply, TraceStep

PREVIEW_CHARS = 500
UNKNOWN_SESSION = "unknown"

logger = logging.getLogger("ks_forward.responses")

ParseStrategy = Callable[[str], AIReply | None]


class _DeclinedJson(Exception):
    """A strategy decoded JSON but could not use it."""

    def __init__(self, error: Exception):
        self.error = error
        super().__init__(str(error))


def _extract_text(value: Any) -> str | None:
    """Accept the answer as a string, a list of text blocks, or a {text: ...} object."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        text = value.get("text")
        return text if isinstance(text, str) else None
    if isinstance(value, list):
        parts = [_extract_text(item) for item in value]
        texts = [part for part in parts if part is not None]
        if not texts:
            return None
        return "".join(texts)
    return None


def reply_from_data(data: Any) -> AIReply:
    """Map decoded JSON onto an AIReply, accepting both envelope shapes."""
    if isinstance(data, list) and len(data) == 1:
        data = data[0]
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")

    answer = _extract_text(data.get("answer", data.get("content")))
    if answer is None:
        raise ValueError(f"no usable 'answer' field (keys: {sorted(data)})")

    session_id = data.get("session_id", data.get("sessionId"))
    context_used = data.get("context_used", data.get("contextUsed", False))
    steps = data.get("events", data.get("trace")) or []

    return AIReply(
        answer_text=answer,
        session_id=str(session_id) if session_id else UNKNOWN_SESSION,
        context_used=bool(context_used),
        trace=tuple(TraceStep.from_dict(step) for step in steps if isinstance(step, dict)),
    )


def _decode(candidate: str) -> AIReply:
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise _DeclinedJson(exc) from exc
    try:
        return reply_from_data(data)
    except ValueError as exc:
        raise _DeclinedJson(exc) from exc


def plain_text_strategy(body: str) -> AIReply | None:
    """Bodies that are not JSON at all are the answer itself."""
    if body.strip().startswith(("{", "[")):
        return None
    return AIReply(answer_text=body, session_id=UNKNOWN_SESSION, context_used=False)


def strict_json_strategy(body: str) -> AIReply | None:
    try:
        return _decode(body)
    except _DeclinedJson:
        return None


def salvage_json_strategy(body: str) -> AIReply | None:
    """Decode only the span from the first '{' to the last '}'."""
    start = body.find("{")
    end = body.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        reply = _decode(body[start:end + 1])
    except _DeclinedJson:
        return None
    logger.warning("Recovered AI reply from malformed JSON (%s extra chars)", len(body) - (end + 1 - start))
    return reply


DEFAULT_STRATEGIES: tuple[ParseStrategy, ...] = (
    plain_text_strategy,
    strict_json_strategy,
    salvage_json_strategy,
)


def normalize_reply(
    body: str,
    *,
    status: int | None = None,
    url: str | None = None,
    strategies: Sequence[ParseStrategy] = DEFAULT_STRATEGIES,
) -> AIReply:
    """Turn a raw AI backend body into an AIReply, or raise ParseError."""
    for strategy in strategies:
        reply = strategy(body)
        if reply is not None:
            logger.debug("AI reply parsed by %s", strategy.__name__)
            return reply

    original_error: Exception | None = None
    try:
        _decode(body)
    except _DeclinedJson as exc:
        original_error = exc.error
    raise ParseError(
        "Could not parse AI response",
        url=url,
        status=status,
        body_preview=body[:PREVIEW_CHARS],
        cause=original_error,
    )


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ``` fence (with optional language tag)."""
    trimmed = text.strip()
    if not trimmed.startswith("```"):
        return trimmed
    first_newline = trimmed.find("\n")
    last_fence = trimmed.rfind("\n```")
    if first_newline == -1 or last_fence <= first_newline:
        return trimmed
    return trimmed[first_newline + 1:last_fence]


def clean_answer_text(text: str) -> str:
    """Unwrap answer text that itself holds a fenced or bare JSON envelope.

    Plain answers are returned unchanged.
    """
    candidate = strip_code_fence(text)
    if candidate.startswith("{"):
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, dict) and isinstance(data.get("answer"), str):
            logger.info("Unwrapped nested 'answer' field (%s chars)", len(data["answer"]))
            return data["answer"]
    if text.strip().startswith("```"):
        return candidate
    return text
