"""Command-line entry point: ks-forward [run|summarize|health|clear-cache]."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from .common import configure_logging
from .config import Config
from .errors import PipelineError, exit_code_for
from .pipeline import KSForwardPipeline
from .transcripts import TranscriptCache

logger = logging.getLogger("ks_forward")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ks-forward",
        description="KS Forward: latest video -> transcript -> AI summary -> Discord",
    )
    parser.add_argument("--env-file", help="Load settings from this .env file (default: ./.env)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--quiet", action="store_true", help="Only show errors")
    parser.add_argument("--json", action="store_true", help="Print the run result as JSON")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Process the latest matching video (default)")
    summarize = subparsers.add_parser("summarize", help="Summarize one video and post it")
    summarize.add_argument("link", help="YouTube URL or 11-character video id")
    subparsers.add_parser("health", help="Validate configuration and exit")
    subparsers.add_parser("clear-cache", help="Delete cached transcripts")
    return parser


def _emit(args: argparse.Namespace, payload: dict, text: str) -> None:
    if args.json:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        print(text)


def _run(args: argparse.Namespace, config: Config) -> None:
    outcome = KSForwardPipeline.from_config(config).run()
    if outcome.video:
        text = f"{outcome.status}: {outcome.video.title} ({outcome.video.link}), {outcome.batches_sent} batch(es)"
    else:
        text = f"{outcome.status}: {outcome.message}"
    _emit(args, outcome.to_dict(), text)


def _summarize(args: argparse.Namespace, config: Config) -> None:
    answer = KSForwardPipeline.from_config(config).summarize_link(args.link)
    _emit(args, {"status": "delivered", "link": args.link, "summary": answer}, answer)


def _health(args: argparse.Namespace, config: Config) -> None:
    _emit(args, {"status": "ok"}, f"Configuration OK: {config.to_safe_string()}")


def _clear_cache(args: argparse.Namespace, config: Config) -> None:
    removed = TranscriptCache(config.cache_dir).clear()
    _emit(args, {"status": "ok", "removed": removed}, f"Removed {removed} cached transcript(s)")


COMMANDS = {
    "run": _run,
    "summarize": _summarize,
    "health": _health,
    "clear-cache": _clear_cache,
}


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        configure_logging(verbose=args.verbose, quiet=args.quiet)
    except ValueError as exc:
        parser.error(str(exc))

    command = args.command or "run"
    try:
        config = Config.from_env(dotenv_path=args.env_file)
        config.validate()
        logger.debug("Loaded %s", config.to_safe_string())
        COMMANDS[command](args, config)
    except PipelineError as exc:
        logger.error("%s failed [%s, retryable=%s]: %s", command, exc.category, exc.retryable, exc)
        return exit_code_for(exc)
    return 0


if __name__ == "__main__":
    sys.exit(main())
