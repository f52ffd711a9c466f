from __future__ import annotations

from datetime import datetime, timezone

import pytest

from ks_forward.errors import DeliveryError
from ks_forward.models import Embed
from ks_forward.notify import (
    DISCORD_MESSAGE_CHAR_LIMIT,
    EMPTY_TITLE,
    DiscordNotifier,
    batch_embeds,
    build_embeds,
    chunk_text,
)

NOW = datetime(2024, 1, 14, 12, 0, tzinfo=timezone.utc)
WEBHOOK = "https://discord.com/api/webhooks/123/secret-token"


def _embed(description: str = "x") -> Embed:
    return Embed(title="t", description=description, color=0, timestamp="")


@pytest.mark.parametrize("length,budget,expected", [(1, 10, 1), (10, 10, 1), (11, 10, 2), (9001, 4000, 3)])
def test_chunk_text_counts_and_reassembles(length, budget, expected) -> None:
    text = "".join(chr(97 + i % 26) for i in range(length))

    chunks = chunk_text(text, budget)

    assert len(chunks) == expected
    assert "".join(chunks) == text
    assert all(len(chunk) <= budget for chunk in chunks)


def test_chunk_text_empty_gives_one_empty_chunk() -> None:
    assert chunk_text("", 10) == [""]


def test_chunk_text_rejects_non_positive_budget() -> None:
    with pytest.raises(ValueError):
        chunk_text("abc", 0)


@pytest.mark.parametrize("count,expected", [(1, [1]), (10, [10]), (11, [10, 1]), (25, [10, 10, 5])])
def test_batch_embeds_sizes(count, expected) -> None:
    embeds = [_embed(str(i)) for i in range(count)]

    batches = batch_embeds(embeds)

    assert [len(batch) for batch in batches] == expected
    assert [embed for batch in batches for embed in batch] == embeds


def test_batch_embeds_respects_character_limit() -> None:
    embeds = [_embed("x" * 4000) for _ in range(3)]

    batches = batch_embeds(embeds, max_chars=DISCORD_MESSAGE_CHAR_LIMIT)

    assert [len(batch) for batch in batches] == [1, 1, 1]


def test_build_embeds_numbers_titles_when_split() -> None:
    embeds = build_embeds("KS Forward Ep1", "a" * 9000, now=NOW)

    assert [embed.title for embed in embeds] == [
        "KS Forward Ep1 (1/3)",
        "KS Forward Ep1 (2/3)",
        "KS Forward Ep1 (3/3)",
    ]
    assert all(embed.timestamp == "2024-01-14T12:00:00.000+00:00" for embed in embeds)
    assert embeds[0].to_payload()["footer"] == {"text": "KS Forward"}


def test_build_embeds_single_chunk_keeps_title() -> None:
    embeds = build_embeds("KS Forward Ep1", "short", now=NOW)

    assert len(embeds) == 1
    assert embeds[0].title == "KS Forward Ep1"


def test_build_embeds_empty_text_uses_placeholder_title() -> None:
    embeds = build_embeds("KS Forward Ep1", "", now=NOW)

    assert len(embeds) == 1
    assert embeds[0].title == EMPTY_TITLE
    assert embeds[0].description == ""


def test_send_summary_groups_small_chunks_into_one_message(make_client) -> None:
    client, session = make_client([(204, ""), (204, "")])
    notifier = DiscordNotifier(WEBHOOK, client)

    sent = notifier.send_summary("KS Forward Ep1", "b" * 5000, now=NOW)

    assert sent == 1
    assert [len(call["json"]["embeds"]) for call in session.calls] == [2]
    assert all(call["url"] == WEBHOOK for call in session.calls)


def test_send_summary_stops_at_failed_batch(make_client) -> None:
    client, session = make_client([(204, ""), (400, "bad embed"), (204, "")])
    notifier = DiscordNotifier(WEBHOOK, client)

    with pytest.raises(DeliveryError) as excinfo:
        notifier.send_summary("KS Forward Ep1", "c" * 16000, now=NOW)

    error = excinfo.value
    assert (error.batch_index, error.total_batches) == (1, 4)
    assert error.retryable is False
    assert "secret-token" not in str(error)
    assert len(session.calls) == 2


def test_send_summary_unwraps_nested_answer(make_client) -> None:
    client, session = make_client([(204, "")])
    notifier = DiscordNotifier(WEBHOOK, client)

    notifier.send_summary("Ep", '```json\n{"answer": "Clean text"}\n```', now=NOW)

    assert session.calls[0]["json"]["embeds"][0]["description"] == "Clean text"


def test_send_summary_splits_batches_over_message_limit(make_client) -> None:
    client, session = make_client([(204, "")] * 3)
    notifier = DiscordNotifier(WEBHOOK, client)

    sent = notifier.send_summary("KS Forward Ep1", "d" * 12000, now=NOW)

    assert sent == 3
    assert [len(call["json"]["embeds"]) for call in session.calls] == [1, 1, 1]
