"""
Content Processor — decides which memos are worth sending to the AI and
folds the AI output back into the memo body.

  - ``is_eligible`` filters out memos that are only links, images or code
  - ``process_memo`` appends summary / tag callouts after the memo text
  - ``compose_weekly_digest`` groups memos by ISO week and asks the AI for
    one digest per week
"""

import logging
import re
from collections import defaultdict
from datetime import date, datetime, timedelta, tzinfo

from memos_sync.errors import AIProviderError
from memos_sync.models import Memo
from memos_sync.services.ai_provider import AIProvider

logger = logging.getLogger(__name__)

MIN_ELIGIBLE_LENGTH = 10

NO_CONTENT_PLACEHOLDER = "No memos with enough content to summarize this period."

_CODE_BLOCK = re.compile(r"```.*?```", re.DOTALL)
_IMAGE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_LINK = re.compile(r"\[[^\]]*\]\([^)]*\)")
_TITLE_LINE = re.compile(r"^(#\s+[^\n]+)\n+")


def is_eligible(text: str) -> bool:
    """True when *text* still has at least ten characters once code, images and links are gone."""
    if not text:
        return False
    stripped = _CODE_BLOCK.sub("", text)
    stripped = _IMAGE.sub("", stripped)
    stripped = _LINK.sub("", stripped)
    return len(stripped.strip()) >= MIN_ELIGIBLE_LENGTH


def _callout(kind: str, title: str, body: str) -> str:
    lines = [f"> [!{kind}]- {title}"]
    lines.extend(f"> {line}" if line.strip() else ">" for line in body.strip().splitlines())
    return "\n".join(lines)


def week_key(moment: datetime, tz: tzinfo | None = None) -> tuple[int, int]:
    """ISO (year, week) of *moment* in timezone *tz* (local time when None)."""
    iso = moment.astimezone(tz).isocalendar()
    return iso[0], iso[1]


def week_range(year: int, week: int) -> tuple[date, date]:
    """Monday and Sunday of ISO week *week* of *year*."""
    monday = date.fromisocalendar(year, week, 1)
    return monday, monday + timedelta(days=6)


class ContentProcessor:
    """Applies optional AI augmentation to memos."""

    def __init__(
        self,
        provider: AIProvider,
        ai_enabled: bool = False,
        enable_summary: bool = True,
        enable_tags: bool = True,
        summary_language: str = "en",
        tz: tzinfo | None = None,
    ):
        self.provider = provider
        self.ai_enabled = ai_enabled
        self.enable_summary = enable_summary
        self.enable_tags = enable_tags
        self.summary_language = summary_language
        self.tz = tz

    # ── Single memo ───────────────────────────────────────────────────

    def process_memo(self, memo: Memo) -> str:
        """Return the memo body, followed by AI callouts when enabled."""
        content = memo.content or ""
        if not self.ai_enabled or not is_eligible(content):
            return content

        title = ""
        body = content
        match = _TITLE_LINE.match(content)
        if match:
            title = match.group(1).strip()
            body = content[match.end():]

        blocks = []
        if self.enable_summary:
            try:
                summary = self.provider.summarize(content, self.summary_language)
            except AIProviderError as e:
                logger.warning("Summary for %s skipped: %s", memo.id, e)
                summary = ""
            if summary:
                blocks.append(_callout("abstract", "AI Summary", summary))

        if self.enable_tags:
            try:
                tags = self.provider.extract_tags(content)
            except AIProviderError as e:
                logger.warning("Tags for %s skipped: %s", memo.id, e)
                tags = []
            if tags:
                blocks.append(_callout("tip", "AI Tags", " ".join(f"#{t}" for t in tags)))

        parts = [title] if title else []
        parts.append(body.rstrip())
        parts.extend(blocks)
        return "\n\n".join(part for part in parts if part)

    # ── Weekly digest ─────────────────────────────────────────────────

    def group_by_week(self, memos: list[Memo]) -> dict[tuple[int, int], list[Memo]]:
        groups: dict[tuple[int, int], list[Memo]] = defaultdict(list)
        for memo in memos:
            groups[week_key(memo.create_time, self.tz)].append(memo)
        return dict(groups)

    def compose_weekly_digest(self, memos: list[Memo]) -> str:
        """
        One section per ISO week containing eligible memos.

        Weeks where the AI returned nothing (or failed) are left out; when
        nothing at all is left the placeholder text is returned instead.
        """
        eligible = [m for m in memos if is_eligible(m.content)]
        if not eligible:
            return NO_CONTENT_PLACEHOLDER

        sections = []
        for (year, week), group in sorted(self.group_by_week(eligible).items()):
            group.sort(key=lambda m: m.create_time)
            try:
                digest = self.provider.compose_digest([m.content for m in group])
            except AIProviderError as e:
                logger.warning("Digest for %d-W%02d skipped: %s", year, week, e)
                continue
            if not digest.strip():
                continue

            monday, sunday = week_range(year, week)
            sections.append(
                "\n".join(
                    [
                        f"## {year}-W{week:02d} ({monday.isoformat()} ~ {sunday.isoformat()})",
                        "",
                        digest.strip(),
                        "",
                        f"> {len(group)} memo{'s' if len(group) != 1 else ''} this week",
                    ]
                )
            )

        if not sections:
            return NO_CONTENT_PLACEHOLDER

        lines = ["# Weekly Digest", ""]
        lines.append("\n\n".join(sections))
        lines.extend(["", "---", "*Generated from synced memos. Review and edit as needed.*", ""])
        return "\n".join(lines)
