"""Deliver summaries to Discord as embeds, split to fit Discord's limits."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from .common import format_discord_timestamp, mask_webhook_url, preview
from .errors import DeliveryError, MessageTooLong, PipelineError
from .http_client import ResilientHttpClient
from .models import Embed
from .responses import clean_answer_text

# Discord allows 4096 characters per embed description; stay below it.
MAX_DESCRIPTION_CHARS = 4000
DISCORD_EMBED_HARD_LIMIT = 4096
MAX_EMBEDS_PER_MESSAGE = 10
DISCORD_TITLE_LIMIT = 256
# Combined title/description/footer characters across all embeds of one message.
DISCORD_MESSAGE_CHAR_LIMIT = 6000
EMBED_COLOR = 0x5865F2
FOOTER_TEXT = "KS Forward"
EMPTY_TITLE = "Daily Summary"


def chunk_text(text: str, budget: int = MAX_DESCRIPTION_CHARS) -> list[str]:
    """Split text into consecutive pieces of at most `budget` characters.

    Joining the pieces gives back the original text. Empty text yields one
    empty piece so the destination always gets a message.
    """
    if budget <= 0:
        raise ValueError("budget must be positive")
    if not text:
        return [""]
    return [text[start:start + budget] for start in range(0, len(text), budget)]


def _fit_title(title: str, suffix: str = "") -> str:
    room = DISCORD_TITLE_LIMIT - len(suffix)
    if len(title) > room:
        title = title[:max(room - 3, 0)] + "..."
    return title + suffix


def build_embeds(
    title: str,
    text: str,
    now: datetime | None = None,
    budget: int = MAX_DESCRIPTION_CHARS,
    color: int = EMBED_COLOR,
    footer: str | None = FOOTER_TEXT,
) -> list[Embed]:
    """Turn a summary into one embed per chunk, numbering titles when split."""
    timestamp = format_discord_timestamp(now or datetime.now().astimezone())
    chunks = chunk_text(text, budget)

    if chunks == [""]:
        return [Embed(title=_fit_title(EMPTY_TITLE), description="", color=color, timestamp=timestamp, footer=footer)]

    total = len(chunks)
    embeds = []
    for index, chunk in enumerate(chunks, start=1):
        suffix = f" ({index}/{total})" if total > 1 else ""
        embeds.append(
            Embed(
                title=_fit_title(title, suffix),
                description=chunk,
                color=color,
                timestamp=timestamp,
                footer=footer,
            )
        )
    return embeds


def _embed_chars(embed: Embed) -> int:
    return len(embed.title) + len(embed.description) + len(embed.footer or "")


def batch_embeds(
    embeds: Sequence[Embed],
    size: int = MAX_EMBEDS_PER_MESSAGE,
    max_chars: int | None = None,
) -> list[list[Embed]]:
    """Group embeds into ordered batches of at most `size` (and `max_chars`, if given)."""
    if size <= 0:
        raise ValueError("size must be positive")

    batches: list[list[Embed]] = []
    current: list[Embed] = []
    current_chars = 0
    for embed in embeds:
        chars = _embed_chars(embed)
        full = len(current) >= size
        too_big = max_chars is not None and current and current_chars + chars > max_chars
        if full or too_big:
            batches.append(current)
            current, current_chars = [], 0
        current.append(embed)
        current_chars += chars
    if current:
        batches.append(current)
    return batches


class DiscordNotifier:
    """Send summaries to a Discord channel via its webhook."""

    def __init__(
        self,
        webhook_url: str,
        http: ResilientHttpClient,
        timeout: float = 30.0,
        logger: logging.Logger | None = None,
    ):
        self.webhook_url = webhook_url
        self.http = http
        self.timeout = timeout
        self.logger = logger or logging.getLogger("ks_forward.discord")

    def send_summary(self, title: str, text: str, now: datetime | None = None) -> int:
        """Deliver the summary batch by batch. Returns the number of batches sent.

        Batches go out sequentially; a failed batch raises DeliveryError and
        earlier batches stay delivered.
        """
        message = clean_answer_text(text)
        self.logger.info("Preparing Discord message '%s' (%s chars)", title, len(message))
        self.logger.debug("Message preview: %s", preview(message))

        embeds = build_embeds(title, message, now=now)
        for embed in embeds:
            if len(embed.description) > DISCORD_EMBED_HARD_LIMIT:
                raise MessageTooLong(len(embed.description), DISCORD_EMBED_HARD_LIMIT)

        batches = batch_embeds(embeds, MAX_EMBEDS_PER_MESSAGE, max_chars=DISCORD_MESSAGE_CHAR_LIMIT)
        total = len(batches)
        self.logger.info("Sending %s embed(s) to Discord in %s batch(es)", len(embeds), total)

        for index, batch in enumerate(batches):
            payload = {"embeds": [embed.to_payload() for embed in batch]}
            try:
                self.http.post_json(
                    self.webhook_url,
                    payload,
                    timeout=self.timeout,
                    action_name=f"discord batch {index + 1}/{total}",
                )
            except PipelineError as exc:
                error = DeliveryError(index, total, exc)
                self.logger.error("Discord webhook %s: %s", mask_webhook_url(self.webhook_url), error)
                raise error from exc
            self.logger.info("Discord accepted batch %s/%s", index + 1, total)

        return total
