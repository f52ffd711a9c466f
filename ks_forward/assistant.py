"""Client for the conversational AI backend that writes the summaries."""

from __future__ import annotations

import logging
from collections.abc import Callable

from .config import Config
from .errors import AIServiceError
from .http_client import ResilientHttpClient
from .models import AIReply
from .responses import normalize_reply

MAX_CONTENT_CHARS = 100_000


def truncate_content(text: str, limit: int = MAX_CONTENT_CHARS) -> str:
    """Cut content down to `limit` characters; a lossy summary beats a rejected request."""
    if len(text) <= limit:
        return text
    return text[:limit]


def build_chat_body(persona: str, content: str, content_format: str = "text") -> dict:
    """Build the request body in either the flat-string or the content-block shape."""
    if content_format == "blocks":
        message_content: object = [{"type": "text", "text": content}]
    else:
        message_content = content
    return {
        "persona": persona,
        "user_id": persona,
        "messages": [{"role": "user", "content": message_content}],
    }


class AssistantClient:
    """Send transcripts to the AI backend and return its normalised reply."""

    def __init__(
        self,
        url: str,
        http: ResilientHttpClient,
        *,
        api_key: str | None = None,
        persona: str = "ks-discord",
        content_format: str = "text",
        timeout: float = 30.0,
        normalizer: Callable[..., AIReply] = normalize_reply,
        logger: logging.Logger | None = None,
    ):
        self.url = url
        self.http = http
        self.api_key = api_key
        self.persona = persona
        self.content_format = content_format
        self.timeout = timeout
        self.normalizer = normalizer
        self.logger = logger or logging.getLogger("ks_forward.assistant")

    @classmethod
    def from_config(cls, config: Config, http: ResilientHttpClient) -> "AssistantClient":
        return cls(
            config.ai_api_url,
            http,
            api_key=config.ai_api_key,
            persona=config.ai_persona,
            content_format=config.ai_content_format,
            timeout=config.timeout_seconds,
        )

    def chat(self, content: str) -> AIReply:
        if len(content) > MAX_CONTENT_CHARS:
            self.logger.warning(
                "Content is %s chars; truncating to %s before sending", len(content), MAX_CONTENT_CHARS
            )
        body = build_chat_body(self.persona, truncate_content(content), self.content_format)
        headers = {"accept": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key

        response = self.http.post_json(
            self.url,
            body,
            headers=headers,
            timeout=self.timeout,
            action_name=f"AI chat ({self.persona})",
        )
        reply = self.normalizer(response.text, status=response.status, url=response.url)
        if not reply.answer_text.strip():
            raise AIServiceError(f"AI backend returned an empty answer (session {reply.session_id})")

        self.logger.info(
            "AI answer received: %s chars, session=%s, context_used=%s, %s trace steps",
            len(reply.answer_text),
            reply.session_id,
            reply.context_used,
            len(reply.trace),
        )
        return reply
