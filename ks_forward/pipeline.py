"""Locate the latest KS Forward video, summarise its transcript and post it to Discord."""

from __future__ import annotations

import logging

from .assistant import AssistantClient
from .config import Config
from .errors import ConfigError, InternalError, PipelineError
from .http_client import ResilientHttpClient, RetryPolicy
from .models import PipelineOutcome, PipelineStage, VideoCandidate
from .notify import DiscordNotifier
from .transcripts import TranscriptService
from .youtube import VideoSearch, YouTubeSearchClient, build_search, select_latest

STATUS_DELIVERED = "delivered"
STATUS_NO_VIDEO = "no_video"
STATUS_EMPTY_TRANSCRIPT = "empty_transcript"


class KSForwardPipeline:
    """One-shot pipeline: Locate -> FetchTranscript -> Summarize -> Deliver -> Done."""

    def __init__(
        self,
        config: Config,
        search: VideoSearch,
        transcripts: TranscriptService,
        assistant: AssistantClient,
        notifier: DiscordNotifier,
        logger: logging.Logger | None = None,
    ):
        self.config = config
        self.search = search
        self.transcripts = transcripts
        self.assistant = assistant
        self.notifier = notifier
        self.logger = logger or logging.getLogger("ks_forward.pipeline")
        self.stage = PipelineStage.LOCATE

    @classmethod
    def from_config(cls, config: Config, logger: logging.Logger | None = None) -> "KSForwardPipeline":
        """Wire the real collaborators around one shared HTTP client."""
        http = ResilientHttpClient(
            RetryPolicy(max_attempts=config.max_attempts, base_delay=config.base_delay_seconds)
        )
        return cls(
            config=config,
            search=build_search(config, http),
            transcripts=TranscriptService.from_config(config, http),
            assistant=AssistantClient.from_config(config, http),
            notifier=DiscordNotifier(config.discord_webhook_url, http, timeout=config.timeout_seconds),
            logger=logger,
        )

    def _enter(self, stage: PipelineStage) -> None:
        self.logger.debug("Stage %s -> %s", self.stage.value, stage.value)
        self.stage = stage

    def locate(self) -> VideoCandidate | None:
        self._enter(PipelineStage.LOCATE)
        candidates = self.search.search_channel(self.config.channel_id)
        video = select_latest(candidates, self.config.title_prefix)
        if video is None:
            self.logger.info(
                "No '%s' video among %s recent uploads", self.config.title_prefix, len(candidates)
            )
        else:
            self.logger.info("Found video: %s (%s)", video.title, video.link)
        return video

    def fetch_transcript(self, link: str) -> str:
        self._enter(PipelineStage.FETCH_TRANSCRIPT)
        text = self.transcripts.fetch_text(link)
        self.logger.info("Transcript length: %s chars", len(text))
        return text

    def summarize(self, transcript: str) -> str:
        self._enter(PipelineStage.SUMMARIZE)
        return self.assistant.chat(transcript).answer_text

    def deliver(self, title: str, answer: str) -> int:
        self._enter(PipelineStage.DELIVER)
        return self.notifier.send_summary(title, answer)

    def run(self) -> PipelineOutcome:
        """Process the latest matching video once."""
        self.logger.info("Processing latest '%s' video on channel %s", self.config.title_prefix, self.config.channel_id)
        try:
            video = self.locate()
            if video is None:
                self._enter(PipelineStage.DONE)
                return PipelineOutcome(status=STATUS_NO_VIDEO, message="No matching video found")

            transcript = self.fetch_transcript(video.link)
            if not transcript.strip():
                self.logger.info("Transcript is empty; nothing to summarize")
                self._enter(PipelineStage.DONE)
                return PipelineOutcome(status=STATUS_EMPTY_TRANSCRIPT, video=video, message="Transcript is empty")

            answer = self.summarize(transcript)
            batches = self.deliver(video.title, answer)
        except PipelineError as exc:
            self._fail(exc)
            raise
        except Exception as exc:
            stage = self._fail(exc)
            raise InternalError(f"Unexpected failure during {stage.value}: {exc}") from exc

        self._enter(PipelineStage.DONE)
        self.logger.info("Delivered summary of '%s' in %s batch(es)", video.title, batches)
        return PipelineOutcome(status=STATUS_DELIVERED, video=video, batches_sent=batches)

    def summarize_link(self, link: str) -> str:
        """On-demand: summarise one video by link and post it under its title."""
        if not isinstance(self.search, YouTubeSearchClient):
            raise ConfigError("Summarizing a single link requires YOUTUBE_API_KEY")
        try:
            self._enter(PipelineStage.LOCATE)
            video = self.search.get_video_by_link(link)
            self.logger.info("Video title: %s", video.title)

            transcript = self.fetch_transcript(link)
            answer = self.summarize(transcript)
            self.deliver(video.title, answer)
        except PipelineError as exc:
            self._fail(exc)
            raise
        except Exception as exc:
            stage = self._fail(exc)
            raise InternalError(f"Unexpected failure during {stage.value}: {exc}") from exc

        self._enter(PipelineStage.DONE)
        return answer

    def _fail(self, exc: BaseException) -> PipelineStage:
        failed_stage = self.stage
        self.stage = PipelineStage.FAILED
        self.logger.error("Pipeline failed during %s: %s", failed_stage.value, exc)
        return failed_stage
