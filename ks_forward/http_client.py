"""Outbound HTTP with a shared retry/backoff policy."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import requests

from .common import preview
from .errors import ApiError, ConfigError, RetriesExhausted, status_is_retryable

DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_ATTEMPTS = 3
T = TypeVar("T")
# Raised before anything is sent; another attempt cannot succeed.
MALFORMED_URL_ERRORS = (
    requests.exceptions.MissingSchema,
    requests.exceptions.InvalidSchema,
    requests.exceptions.InvalidURL,
)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try a call and how long to wait in between.

    The delay grows linearly with the attempt number (``base_delay * attempt``)
    so consecutive waits are strictly increasing.
    """

    max_attempts: int = DEFAULT_ATTEMPTS
    base_delay: float = 1.0
    retry_on: Callable[[int], bool] = status_is_retryable

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay cannot be negative")

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * attempt


@dataclass(frozen=True)
class HttpRequest:
    method: str
    url: str
    headers: dict = field(default_factory=dict)
    params: dict | None = None
    json_body: Any = None
    timeout: float = DEFAULT_TIMEOUT_SECONDS


@dataclass(frozen=True)
class HttpResponse:
    status: int
    text: str
    url: str

    def json(self) -> Any:
        return json.loads(self.text)


def retry_call(
    operation: Callable[[], T],
    *,
    policy: RetryPolicy | None = None,
    retryable: Callable[[Exception], bool] = lambda _exc: True,
    action_name: str = "operation",
    logger: logging.Logger | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run an operation, retrying exceptions that `retryable` accepts."""
    policy = policy or RetryPolicy()

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return operation()
        except Exception as exc:
            if attempt >= policy.max_attempts or not retryable(exc):
                raise
            delay_seconds = policy.delay_for(attempt)
            if logger:
                logger.warning(
                    "Retrying %s after error (%s/%s) in %.1fs: %s",
                    action_name,
                    attempt,
                    policy.max_attempts,
                    delay_seconds,
                    exc,
                )
            sleep(delay_seconds)

    raise RuntimeError(f"Unreachable retry loop while running {action_name}")


class ResilientHttpClient:
    """Send HTTP requests, retrying transport errors, 5xx and 429 responses."""

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        logger: logging.Logger | None = None,
    ):
        self.policy = policy or RetryPolicy()
        self.session = session or requests.Session()
        self.sleep = sleep
        self.logger = logger or logging.getLogger("ks_forward.http")

    def send(self, request: HttpRequest, action_name: str | None = None) -> HttpResponse:
        """Perform the request and return the first 2xx response.

        Raises ApiError for non-retryable statuses and RetriesExhausted when the
        attempt budget runs out.
        """
        action_name = action_name or f"{request.method} {request.url}"
        max_attempts = self.policy.max_attempts
        last_status: int | None = None
        last_body = ""
        last_error: Exception | None = None

        for attempt in range(1, max_attempts + 1):
            self.logger.debug("%s: attempt %s/%s", action_name, attempt, max_attempts)
            try:
                raw = self.session.request(
                    request.method,
                    request.url,
                    headers=request.headers,
                    params=request.params,
                    json=request.json_body,
                    timeout=request.timeout,
                )
            except MALFORMED_URL_ERRORS as exc:
                self.logger.error("%s: malformed URL (%s), not retrying", action_name, type(exc).__name__)
                raise ConfigError(f"Invalid URL for {action_name}: {type(exc).__name__}") from exc
            except requests.RequestException as exc:
                last_status, last_body, last_error = None, "", exc
                self.logger.warning(
                    "%s: transport error (%s/%s): %s", action_name, attempt, max_attempts, exc
                )
            else:
                response = HttpResponse(status=raw.status_code, text=raw.text, url=request.url)
                if 200 <= response.status < 300:
                    self.logger.debug("%s: status %s", action_name, response.status)
                    return response
                if not self.policy.retry_on(response.status):
                    self.logger.error(
                        "%s: status %s, not retrying. Body: %s",
                        action_name,
                        response.status,
                        preview(response.text, 300),
                    )
                    raise ApiError(request.url, response.status, response.text)
                last_status, last_body, last_error = response.status, response.text, None
                self.logger.warning(
                    "%s: status %s (%s/%s)", action_name, response.status, attempt, max_attempts
                )

            if attempt < max_attempts:
                delay_seconds = self.policy.delay_for(attempt)
                self.logger.info("%s: retrying in %.1fs", action_name, delay_seconds)
                self.sleep(delay_seconds)

        self.logger.error("%s: giving up after %s attempts", action_name, max_attempts)
        raise RetriesExhausted(
            request.url,
            max_attempts,
            last_status=last_status,
            last_error=last_error,
            body=last_body,
        )

    def get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        action_name: str | None = None,
    ) -> HttpResponse:
        request = HttpRequest("GET", url, headers=headers or {}, params=params, timeout=timeout)
        return self.send(request, action_name=action_name)

    def post_json(
        self,
        url: str,
        payload: Any,
        *,
        headers: dict | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        action_name: str | None = None,
    ) -> HttpResponse:
        """POST a JSON payload with retries and return the response."""
        merged = {"Content-Type": "application/json"}
        merged.update(headers or {})
        request = HttpRequest("POST", url, headers=merged, json_body=payload, timeout=timeout)
        return self.send(request, action_name=action_name)
