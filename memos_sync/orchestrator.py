"""
Orchestrator — ties the services together into sync passes.

Pipelines:
  1. sync    — fetch memos → skip known → augment → write to vault
  2. digest  — group fetched memos by ISO week → AI digest → write to vault
  3. watch   — run ``sync`` every N minutes until stopped
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import tzinfo
from pathlib import Path
from typing import Callable

from memos_sync.config import Settings
from memos_sync.errors import ConfigurationError, MemosSyncError
from memos_sync.models import Memo
from memos_sync.services.ai_provider import AIProvider, NullProvider, create_provider
from memos_sync.services.content_processor import NO_CONTENT_PLACEHOLDER, ContentProcessor
from memos_sync.services.memos_client import MemosClient
from memos_sync.services.vault_writer import VaultWriter

logger = logging.getLogger(__name__)

Notifier = Callable[..., None]


def log_notifier(message: str, is_error: bool = False) -> None:
    if is_error:
        logger.error(message)
    else:
        logger.info(message)


@dataclass
class SyncReport:
    """Outcome of one sync pass."""
    fetched: int = 0
    saved: int = 0
    skipped: int = 0
    failed: int = 0
    errors: list[tuple[str, str]] = field(default_factory=list)
    digest_path: Path | None = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error and not self.failed


class MemosSync:
    """Top-level object that coordinates one Memos server and one vault."""

    def __init__(
        self,
        settings: Settings,
        client: MemosClient | None = None,
        provider: AIProvider | None = None,
        processor: ContentProcessor | None = None,
        writer: VaultWriter | None = None,
        notifier: Notifier | None = None,
        tz: tzinfo | None = None,
    ):
        self.settings = settings
        self.notify = notifier or log_notifier
        self.client = client or MemosClient(
            settings.api_url, settings.access_token, timeout=settings.request_timeout
        )
        self.provider = provider or self._build_provider()
        self.processor = processor or ContentProcessor(
            self.provider,
            ai_enabled=settings.ai_enabled,
            enable_summary=settings.intelligent_summary,
            enable_tags=settings.auto_tags,
            summary_language=settings.summary_language,
            tz=tz,
        )
        self.writer = writer or VaultWriter(settings.sync_dir, self.client, tz=tz)
        self._running = threading.Lock()

    def _build_provider(self) -> AIProvider:
        try:
            return create_provider(self.settings)
        except ConfigurationError as e:
            self.notify(f"AI features disabled: {e}", is_error=True)
            return NullProvider()

    @property
    def digest_enabled(self) -> bool:
        return (
            self.settings.ai_enabled
            and self.settings.weekly_digest
            and not isinstance(self.provider, NullProvider)
        )

    # ── Pipeline 1: Sync ──────────────────────────────────────────────

    def sync(self) -> SyncReport | None:
        """
        Run one full pass.  Returns None when another pass is already in
        flight, otherwise a report of what happened.
        """
        if not self._running.acquire(blocking=False):
            logger.warning("Sync already in progress; skipping this run.")
            return None
        try:
            return self._sync()
        finally:
            self._running.release()

    def _sync(self) -> SyncReport:
        report = SyncReport()
        try:
            self.notify("Sync started")
            memos = self.client.fetch_all_memos(self.settings.sync_limit)
            report.fetched = len(memos)
            self.notify(f"Found {len(memos)} memos")

            self.writer.build_index()
            for memo in memos:
                self._sync_memo(memo, report)

            if self.digest_enabled and report.saved:
                report.digest_path = self._write_digest(memos)
        except Exception as e:
            logger.exception("Sync failed")
            report.error = str(e) or e.__class__.__name__
            self.notify(f"Sync failed: {report.error}", is_error=True)
            return report

        summary = f"Successfully synced {report.saved} memos ({report.skipped} already present)"
        if report.failed:
            summary += f", {report.failed} failed"
        self.notify(summary, is_error=bool(report.failed))
        return report

    def _sync_memo(self, memo: Memo, report: SyncReport) -> None:
        if self.writer.exists(memo.id):
            logger.debug("Memo %s already exists, skipping", memo.id)
            report.skipped += 1
            return
        try:
            body = self.processor.process_memo(memo)
            self.writer.save_memo(memo, body)
        except (MemosSyncError, OSError) as e:
            logger.error("Failed to save memo %s: %s", memo.id, e)
            report.failed += 1
            report.errors.append((memo.id, str(e)))
            return
        report.saved += 1

    # ── Pipeline 2: Weekly digest ─────────────────────────────────────

    def write_weekly_digest(self, memos: list[Memo] | None = None) -> Path | None:
        """Compose and write the weekly digest; fetches memos when none given."""
        if not self.digest_enabled:
            self.notify("Weekly digest needs AI and the weekly digest option enabled", is_error=True)
            return None
        if memos is None:
            memos = self.client.fetch_all_memos(self.settings.sync_limit)
        return self._write_digest(memos)

    def _write_digest(self, memos: list[Memo]) -> Path | None:
        digest = self.processor.compose_weekly_digest(memos)
        if digest == NO_CONTENT_PLACEHOLDER:
            logger.info(digest)
            return None
        return self.writer.write_digest(digest)

    # ── Pipeline 3: Periodic sync ─────────────────────────────────────

    def watch(
        self,
        interval_minutes: int | None = None,
        stop_event: threading.Event | None = None,
    ) -> None:
        """Run a pass every *interval_minutes* until *stop_event* is set or interrupted."""
        interval = (interval_minutes or self.settings.sync_interval) * 60
        stop_event = stop_event or threading.Event()
        logger.info("Starting periodic sync every %d minutes", interval // 60)
        while not stop_event.is_set():
            try:
                self.sync()
            except Exception:
                logger.exception("Error during periodic sync")
            if stop_event.wait(interval):
                break
