"""Exception hierarchy for the KS Forward pipeline."""

from __future__ import annotations


class PipelineError(Exception):
    """Base exception for pipeline errors."""

    category = "internal"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return False


class ConfigError(PipelineError):
    category = "config"


class NetworkError(PipelineError):
    category = "network"

    def __init__(self, url: str, cause: BaseException):
        self.url = url
        self.cause = cause
        super().__init__(f"Network error calling {url}: {cause}")

    @property
    def retryable(self) -> bool:
        return True


class ApiError(PipelineError):
    category = "api"

    def __init__(self, url: str, status: int, body: str = ""):
        self.url = url
        self.status = status
        self.body = body
        super().__init__(f"API request to {url} failed with status {status}")

    @property
    def retryable(self) -> bool:
        return status_is_retryable(self.status)


class RetriesExhausted(PipelineError):
    """Raised once the attempt budget of a retried call is used up."""

    def __init__(
        self,
        url: str,
        attempts: int,
        last_status: int | None = None,
        last_error: BaseException | None = None,
        body: str = "",
    ):
        self.url = url
        self.attempts = attempts
        self.last_status = last_status
        self.last_error = last_error
        self.body = body
        if last_status is not None:
            detail = f"last response status {last_status}"
        else:
            detail = f"last transport error: {last_error}"
        super().__init__(f"Gave up on {url} after {attempts} attempts ({detail})")

    @property
    def category(self) -> str:  # type: ignore[override]
        return "api" if self.last_status is not None else "network"

    @property
    def retryable(self) -> bool:
        return True


class ParseError(PipelineError):
    category = "parse"

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status: int | None = None,
        body_preview: str = "",
        cause: BaseException | None = None,
    ):
        self.url = url
        self.status = status
        self.body_preview = body_preview
        self.cause = cause
        details = [message]
        if cause is not None:
            details.append(f"cause: {cause}")
        if status is not None or url:
            details.append(f"status={status} url={url}")
        if body_preview:
            details.append(f"body preview: {body_preview!r}")
        super().__init__("; ".join(details))


class InvalidVideoLink(PipelineError):
    category = "youtube"

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Unable to parse YouTube video id from '{value}'")


class VideoNotFound(PipelineError):
    category = "youtube"

    def __init__(self, link: str):
        self.link = link
        super().__init__(f"No video details found for {link}")


class TranscriptNotFound(PipelineError):
    category = "youtube"

    def __init__(self, video_id: str, reason: str = ""):
        self.video_id = video_id
        message = f"Transcript not found for video: {video_id}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class AIServiceError(PipelineError):
    category = "ai_service"


class DeliveryError(PipelineError):
    category = "discord"

    def __init__(self, batch_index: int, total_batches: int, cause: PipelineError):
        self.batch_index = batch_index
        self.total_batches = total_batches
        self.cause = cause
        # Cause messages contain the webhook token; report type and status only.
        status = getattr(cause, "status", None) or getattr(cause, "last_status", None)
        detail = type(cause).__name__ + (f", status {status}" if status else "")
        super().__init__(
            f"Discord delivery failed for batch {batch_index + 1}/{total_batches} ({detail})"
        )

    @property
    def retryable(self) -> bool:
        return self.cause.retryable


class MessageTooLong(PipelineError):
    category = "discord"

    def __init__(self, length: int, limit: int):
        self.length = length
        self.limit = limit
        super().__init__(f"Discord message too long: {length} chars (max: {limit})")


class CacheError(PipelineError):
    category = "cache"


class InternalError(PipelineError):
    category = "internal"


def status_is_retryable(status: int) -> bool:
    """Server errors and rate limiting are worth another attempt."""
    return status == 429 or 500 <= status <= 599


def exit_code_for(error: BaseException) -> int:
    """Map a failure to the process exit status (2 = try again later)."""
    if isinstance(error, PipelineError) and error.retryable:
        return 2
    return 1
