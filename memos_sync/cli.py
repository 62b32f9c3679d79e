"""
CLI entry point for Memos Sync.

Usage:
  python -m memos_sync sync                 # One pass: fetch and write new memos
  python -m memos_sync run                  # sync or watch, following MEMOS_SYNC_MODE
  python -m memos_sync watch                # Sync every MEMOS_SYNC_INTERVAL minutes
  python -m memos_sync watch --interval 10  # ... or every 10 minutes
  python -m memos_sync digest               # Write the AI weekly digest only
"""

import argparse
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from memos_sync import config
from memos_sync.errors import ConfigurationError, MemosSyncError
from memos_sync.orchestrator import MemosSync


def _setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, os.getenv("LOG_LEVEL", config.LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(os.getenv("LOG_FILE", config.LOG_FILE)),
        ],
    )


def print_notifier(message: str, is_error: bool = False) -> None:
    print(message, file=sys.stderr if is_error else sys.stdout)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="memos-sync",
        description="Memos Sync — pull memos into a Markdown vault, optionally AI-enhanced.",
    )
    parser.add_argument(
        "--dir",
        type=Path,
        default=None,
        help="Sync root folder (overrides MEMOS_SYNC_DIR).",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Maximum number of memos to fetch (overrides MEMOS_SYNC_LIMIT).",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load settings from this .env file before reading the environment.",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("sync", help="Run one sync pass.")
    sub.add_parser("run", help="Sync once, or keep syncing when MEMOS_SYNC_MODE=auto.")
    watch = sub.add_parser("watch", help="Sync periodically until interrupted.")
    watch.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Minutes between passes (overrides MEMOS_SYNC_INTERVAL).",
    )
    sub.add_parser("digest", help="Compose and write the AI weekly digest.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.env_file:
        if not args.env_file.exists():
            print(f"Error: env file not found — {args.env_file}", file=sys.stderr)
            return 2
        load_dotenv(args.env_file, override=True)

    _setup_logging()

    try:
        settings = config.load_settings(sync_dir=args.dir, sync_limit=args.limit)
        agent = MemosSync(settings, notifier=print_notifier)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    if args.command == "run":
        args.command = "watch" if settings.sync_mode == "auto" else "sync"
        args.interval = None

    if args.command == "sync":
        report = agent.sync()
        return 0 if report is not None and report.ok else 1

    if args.command == "watch":
        print("Watching Memos (Ctrl+C to stop)…")
        try:
            agent.watch(interval_minutes=args.interval)
        except KeyboardInterrupt:
            print("\nStopped.")
        return 0

    if args.command == "digest":
        if not agent.digest_enabled:
            print("Weekly digest needs AI_ENABLED and AI_WEEKLY_DIGEST set to true.", file=sys.stderr)
            return 1
        try:
            path = agent.write_weekly_digest()
        except MemosSyncError as e:
            print(f"Digest failed: {e}", file=sys.stderr)
            return 1
        if path:
            print(f"Weekly digest written → {path}")
        else:
            print("No weekly digest written.")
        return 0

    return 1


if __name__ == "__main__":
    sys.exit(main())
