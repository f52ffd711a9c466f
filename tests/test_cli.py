from __future__ import annotations

import json

import pytest

from ks_forward import cli
from ks_forward.errors import RetriesExhausted, TranscriptNotFound
from ks_forward.models import PipelineOutcome, VideoCandidate

ENV = {
    "KSFORWARD_CHANNEL_ID": "UCabcdefghij123456",
    "MY_AI_API_URL": "https://ai.example.com/chat",
    "DISCORD_WEBHOOK_URL": "https://discord.com/api/webhooks/123/secret-token",
    "SUPADATA_API_KEY": "supadata-key-123",
}


@pytest.fixture
def env_file(tmp_path, monkeypatch):
    for key in ENV:
        monkeypatch.delenv(key, raising=False)
    path = tmp_path / ".env"
    lines = [f"{key}={value}" for key, value in ENV.items()]
    lines.append(f"TRANSCRIPT_CACHE_DIR={tmp_path / 'cache'}")
    path.write_text("\n".join(lines), encoding="utf-8")
    return str(path)


class StubPipeline:
    result: object = None

    @classmethod
    def from_config(cls, config):
        return cls()

    def run(self):
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def test_run_success_exits_zero(env_file, monkeypatch, capsys) -> None:
    StubPipeline.result = PipelineOutcome(
        status="delivered", video=VideoCandidate("AAAAAAAAAAA", "KS Forward Ep1"), batches_sent=1
    )
    monkeypatch.setattr(cli, "KSForwardPipeline", StubPipeline)

    assert cli.main(["--env-file", env_file, "--json", "run"]) == 0
    assert json.loads(capsys.readouterr().out)["status"] == "delivered"


def test_default_command_is_run(env_file, monkeypatch) -> None:
    StubPipeline.result = PipelineOutcome(status="no_video", message="No matching video found")
    monkeypatch.setattr(cli, "KSForwardPipeline", StubPipeline)

    assert cli.main(["--env-file", env_file]) == 0


def test_retryable_failure_exits_two(env_file, monkeypatch) -> None:
    StubPipeline.result = RetriesExhausted("https://ai.example.com/chat", 3, last_status=503)
    monkeypatch.setattr(cli, "KSForwardPipeline", StubPipeline)

    assert cli.main(["--env-file", env_file, "run"]) == 2


def test_permanent_failure_exits_one(env_file, monkeypatch) -> None:
    StubPipeline.result = TranscriptNotFound("AAAAAAAAAAA")
    monkeypatch.setattr(cli, "KSForwardPipeline", StubPipeline)

    assert cli.main(["--env-file", env_file, "run"]) == 1


def test_missing_configuration_exits_one(tmp_path, monkeypatch) -> None:
    for key in ENV:
        monkeypatch.delenv(key, raising=False)
    empty = tmp_path / ".env"
    empty.write_text("", encoding="utf-8")

    assert cli.main(["--env-file", str(empty), "health"]) == 1


def test_health_masks_secrets(env_file, capsys) -> None:
    assert cli.main(["--env-file", env_file, "health"]) == 0

    out = capsys.readouterr().out
    assert "Configuration OK" in out
    assert "secret-token" not in out


def test_clear_cache_reports_count(env_file, tmp_path, capsys) -> None:
    cache_dir = tmp_path / "cache"
    cache_dir.mkdir()
    (cache_dir / "AAAAAAAAAAA.json").write_text("{}", encoding="utf-8")

    assert cli.main(["--env-file", env_file, "--json", "clear-cache"]) == 0
    assert json.loads(capsys.readouterr().out) == {"status": "ok", "removed": 1}


def test_verbose_and_quiet_conflict() -> None:
    with pytest.raises(SystemExit):
        cli.main(["--verbose", "--quiet"])
