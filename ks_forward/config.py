"""Configuration loading and validation for the KS Forward pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from dotenv import dotenv_values

from .common import mask_secret, mask_webhook_url
from .errors import ConfigError

PACKAGE_DIR = Path(__file__).parent
DEFAULT_MOCK_TRANSCRIPT = str(PACKAGE_DIR / "mock_data" / "example_transcript.json")
DEFAULT_TRANSCRIPT_API_URL = "https://api.supadata.ai/v1/transcript"
TRANSCRIPT_PROVIDERS = ("supadata", "youtube")
CONTENT_FORMATS = ("text", "blocks")


def _get_required(env: Mapping[str, str], name: str, errors: list[str], *legacy: str) -> str:
    value = (_get_any(env, name, *legacy) or "").strip()
    if not value:
        errors.append(f"{name} must be set")
    return value


def _get_any(env: Mapping[str, str], name: str, *legacy: str) -> str | None:
    """Read `name`, falling back to the older variable names of the first release."""
    for key in (name, *legacy):
        if env.get(key):
            return env[key]
    return None


def _get_number(env: Mapping[str, str], name: str, default: str, kind, errors: list[str]):
    raw = env.get(name) or default
    try:
        return kind(raw)
    except ValueError:
        errors.append(f"{name} must be a number, got '{raw}'")
        return kind(default)


def _get_flag(env: Mapping[str, str], name: str, default: str = "false") -> bool:
    return (env.get(name) or default).strip().lower() == "true"


@dataclass(frozen=True)
class Config:
    """Settings for one pipeline run. Built once at startup and passed explicitly."""

    channel_id: str
    ai_api_url: str
    discord_webhook_url: str
    youtube_api_key: str | None = None
    transcript_api_url: str = DEFAULT_TRANSCRIPT_API_URL
    transcript_api_key: str | None = None
    transcript_provider: str = "supadata"
    ai_api_key: str | None = None
    ai_persona: str = "ks-discord"
    ai_content_format: str = "text"
    title_prefix: str = "KS Forward"
    completed_broadcasts_only: bool = True
    cache_dir: str = "transcript_cache"
    use_mock_data: bool = False
    mock_transcript_path: str = DEFAULT_MOCK_TRANSCRIPT
    timeout_seconds: float = 30.0
    max_attempts: int = 3
    base_delay_seconds: float = 1.0

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        dotenv_path: str | None = None,
    ) -> "Config":
        """Load configuration from environment variables (and an optional .env file)."""
        env: dict[str, str] = {}
        if dotenv_path is not None or environ is None:
            env.update({k: v for k, v in dotenv_values(dotenv_path or ".env").items() if v is not None})
        env.update(os.environ if environ is None else environ)

        errors: list[str] = []
        config = cls(
            channel_id=_get_required(env, "KSFORWARD_CHANNEL_ID", errors, "KSFORWORD_CHANNEL_ID"),
            ai_api_url=_get_required(env, "MY_AI_API_URL", errors),
            discord_webhook_url=_get_required(env, "DISCORD_WEBHOOK_URL", errors, "DISCORD_KS_BOT_TOKEN"),
            youtube_api_key=env.get("YOUTUBE_API_KEY") or None,
            transcript_api_url=env.get("TRANSCRIPT_API_URL") or DEFAULT_TRANSCRIPT_API_URL,
            transcript_api_key=_get_any(env, "SUPADATA_API_KEY", "SUPABASE_API_KEY"),
            transcript_provider=(env.get("TRANSCRIPT_PROVIDER") or "supadata").strip().lower(),
            ai_api_key=env.get("MY_AI_API_KEY") or None,
            ai_persona=env.get("MY_AI_PERSONA") or "ks-discord",
            ai_content_format=(env.get("MY_AI_CONTENT_FORMAT") or "text").strip().lower(),
            title_prefix=env.get("TITLE_PREFIX") or "KS Forward",
            completed_broadcasts_only=_get_flag(env, "COMPLETED_BROADCASTS_ONLY", "true"),
            cache_dir=env.get("TRANSCRIPT_CACHE_DIR") or "transcript_cache",
            use_mock_data=_get_flag(env, "USE_MOCK_DATA"),
            mock_transcript_path=env.get("MOCK_TRANSCRIPT_PATH") or DEFAULT_MOCK_TRANSCRIPT,
            timeout_seconds=_get_number(env, "HTTP_TIMEOUT_SECONDS", "30", float, errors),
            max_attempts=_get_number(env, "HTTP_MAX_ATTEMPTS", "3", int, errors),
            base_delay_seconds=_get_number(env, "HTTP_BASE_DELAY_SECONDS", "1.0", float, errors),
        )
        if errors:
            raise ConfigError("; ".join(errors))
        return config

    def validate_errors(self) -> list[str]:
        """Return a list of configuration problems (empty when valid)."""
        errors: list[str] = []

        for name, url in (
            ("MY_AI_API_URL", self.ai_api_url),
            ("DISCORD_WEBHOOK_URL", self.discord_webhook_url),
            ("TRANSCRIPT_API_URL", self.transcript_api_url),
        ):
            if not url:
                errors.append(f"{name} cannot be empty")
            elif not url.startswith(("http://", "https://")):
                errors.append(f"{name} must be a valid URL (starting with http:// or https://)")

        if len(self.channel_id) < 10:
            errors.append("KSFORWARD_CHANNEL_ID appears to be invalid (too short)")
        if self.youtube_api_key is not None and len(self.youtube_api_key) < 10:
            errors.append("YOUTUBE_API_KEY appears to be invalid (too short)")

        if self.transcript_provider not in TRANSCRIPT_PROVIDERS:
            errors.append(f"TRANSCRIPT_PROVIDER must be one of {', '.join(TRANSCRIPT_PROVIDERS)}")
        elif self.transcript_provider == "supadata" and not self.use_mock_data and not self.transcript_api_key:
            errors.append("SUPADATA_API_KEY is required for the supadata transcript provider")

        if self.ai_content_format not in CONTENT_FORMATS:
            errors.append(f"MY_AI_CONTENT_FORMAT must be one of {', '.join(CONTENT_FORMATS)}")
        if not self.title_prefix.strip():
            errors.append("TITLE_PREFIX cannot be empty")

        if self.timeout_seconds <= 0:
            errors.append("HTTP_TIMEOUT_SECONDS must be positive")
        if self.max_attempts < 1:
            errors.append("HTTP_MAX_ATTEMPTS must be >= 1")
        if self.base_delay_seconds < 0:
            errors.append("HTTP_BASE_DELAY_SECONDS cannot be negative")

        return errors

    def validate(self) -> None:
        errors = self.validate_errors()
        if errors:
            raise ConfigError("Configuration validation failed: " + "; ".join(errors))

    def to_safe_string(self) -> str:
        """Format configuration for logging with secrets redacted."""
        return (
            "Config("
            f"channel_id={self.channel_id}, "
            f"youtube_api_key={mask_secret(self.youtube_api_key) if self.youtube_api_key else None}, "
            f"transcript_provider={self.transcript_provider}, "
            f"transcript_api_key={mask_secret(self.transcript_api_key) if self.transcript_api_key else None}, "
            f"ai_api_url={self.ai_api_url}, "
            f"ai_api_key={mask_secret(self.ai_api_key) if self.ai_api_key else None}, "
            f"discord_webhook={mask_webhook_url(self.discord_webhook_url)}, "
            f"cache_dir={self.cache_dir}, "
            f"use_mock_data={self.use_mock_data})"
        )
