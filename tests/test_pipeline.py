from __future__ import annotations

import dataclasses

import pytest

from ks_forward.errors import ConfigError, DeliveryError, InternalError, TranscriptNotFound
from ks_forward.models import AIReply, PipelineStage, VideoCandidate
from ks_forward.pipeline import KSForwardPipeline
from ks_forward.youtube import YouTubeSearchClient

EPISODE = VideoCandidate("AAAAAAAAAAA", "KS Forward Ep1", "2024-01-13T10:00:00Z")


class FakeSearch:
    def __init__(self, candidates):
        self.candidates = candidates

    def search_channel(self, channel_id, max_results=5):
        return list(self.candidates)


class FakeTranscripts:
    def __init__(self, text="hello world", error=None):
        self.text = text
        self.error = error
        self.links = []

    def fetch_text(self, link):
        self.links.append(link)
        if self.error:
            raise self.error
        return self.text


class FakeAssistant:
    def __init__(self, answer="Summary text"):
        self.answer = answer
        self.contents = []

    def chat(self, content):
        self.contents.append(content)
        return AIReply(answer_text=self.answer, session_id="s1")


class FakeNotifier:
    def __init__(self, error=None):
        self.error = error
        self.sent = []

    def send_summary(self, title, text, now=None):
        if self.error:
            raise self.error
        self.sent.append((title, text))
        return 1


def _pipeline(config, search=None, transcripts=None, assistant=None, notifier=None):
    return KSForwardPipeline(
        config=config,
        search=search or FakeSearch([VideoCandidate("BBBBBBBBBBB", "Other Show"), EPISODE]),
        transcripts=transcripts or FakeTranscripts(),
        assistant=assistant or FakeAssistant(),
        notifier=notifier or FakeNotifier(),
    )


def test_run_delivers_summary_of_latest_episode(config) -> None:
    transcripts, assistant, notifier = FakeTranscripts(), FakeAssistant(), FakeNotifier()
    pipeline = _pipeline(config, transcripts=transcripts, assistant=assistant, notifier=notifier)

    outcome = pipeline.run()

    assert outcome.status == "delivered"
    assert outcome.video == EPISODE
    assert outcome.batches_sent == 1
    assert transcripts.links == [EPISODE.link]
    assert assistant.contents == ["hello world"]
    assert notifier.sent == [("KS Forward Ep1", "Summary text")]
    assert pipeline.stage is PipelineStage.DONE


def test_run_without_matching_video_sends_nothing(config) -> None:
    notifier = FakeNotifier()
    pipeline = _pipeline(config, search=FakeSearch([VideoCandidate("BBBBBBBBBBB", "Other Show")]), notifier=notifier)

    outcome = pipeline.run()

    assert outcome.status == "no_video"
    assert outcome.to_dict()["video"] is None
    assert notifier.sent == []


def test_run_with_empty_transcript_skips_summary(config) -> None:
    assistant = FakeAssistant()
    pipeline = _pipeline(config, transcripts=FakeTranscripts(text="   "), assistant=assistant)

    outcome = pipeline.run()

    assert outcome.status == "empty_transcript"
    assert assistant.contents == []


def test_stage_failure_propagates_and_marks_failed(config, caplog) -> None:
    pipeline = _pipeline(config, transcripts=FakeTranscripts(error=TranscriptNotFound("AAAAAAAAAAA")))

    with pytest.raises(TranscriptNotFound):
        pipeline.run()

    assert pipeline.stage is PipelineStage.FAILED
    assert "fetch_transcript" in caplog.text


def test_delivery_failure_is_reported(config) -> None:
    cause = TranscriptNotFound("x")
    pipeline = _pipeline(config, notifier=FakeNotifier(error=DeliveryError(0, 2, cause)))

    with pytest.raises(DeliveryError):
        pipeline.run()


def test_unexpected_exception_becomes_internal_error(config) -> None:
    pipeline = _pipeline(config, transcripts=FakeTranscripts(error=RuntimeError("boom")))

    with pytest.raises(InternalError) as excinfo:
        pipeline.run()

    assert "fetch_transcript" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_from_config_end_to_end_with_mock_transcript(config, monkeypatch) -> None:
    calls = []

    def fake_request(self, method, url, **kwargs):
        calls.append((method, url, kwargs))
        if "feeds/videos.xml" in url:
            body = (
                '<feed xmlns:yt="http://www.youtube.com/xml/schemas/2015" xmlns="http://www.w3.org/2005/Atom">'
                "<entry><yt:videoId>AAAAAAAAAAA</yt:videoId><title>KS Forward Ep1</title></entry></feed>"
            )
            return _Raw(200, body)
        if url == config.ai_api_url:
            return _Raw(200, '{"answer": "Mocked summary", "session_id": "s9"}')
        return _Raw(204, "")

    monkeypatch.setattr("requests.Session.request", fake_request)
    mock_config = dataclasses.replace(config, use_mock_data=True)

    outcome = KSForwardPipeline.from_config(mock_config).run()

    assert outcome.status == "delivered"
    discord_calls = [call for call in calls if call[1] == config.discord_webhook_url]
    assert discord_calls[0][2]["json"]["embeds"][0]["description"] == "Mocked summary"


class _Raw:
    def __init__(self, status_code, text):
        self.status_code = status_code
        self.text = text


def test_summarize_link_needs_data_api(config) -> None:
    with pytest.raises(ConfigError):
        _pipeline(config).summarize_link("https://youtu.be/AAAAAAAAAAA")


def test_summarize_link_posts_under_video_title(config, make_client) -> None:
    body = {"items": [{"id": "AAAAAAAAAAA", "snippet": {"title": "KS Forward Ep1"}}]}
    client, _ = make_client([(200, body)])
    notifier = FakeNotifier()
    pipeline = _pipeline(config, search=YouTubeSearchClient("yt-key-1234567", client), notifier=notifier)

    assert pipeline.summarize_link("https://youtu.be/AAAAAAAAAAA") == "Summary text"
    assert notifier.sent == [("KS Forward Ep1", "Summary text")]
