"""
Vault Writer — owns the on-disk memo tree:

  - Indexing existing memo documents by the ID marker they carry
  - Naming files from a content preview and the memo's creation time
  - Downloading attachments next to the memo and linking them relatively
  - Writing each document (and every attachment) atomically
"""

import logging
import os
import re
import stat
import tempfile
from datetime import date, datetime, tzinfo
from pathlib import Path

from memos_sync.errors import AttachmentError, PersistError
from memos_sync.models import Attachment, Memo
from memos_sync.services.memos_client import MemosClient

logger = logging.getLogger(__name__)

MARKER_PREFIX = "> - ID: "
PREVIEW_LENGTH = 50
RESOURCES_FOLDER = "resources"
DIGEST_FOLDER = "digests"

_MARKER = re.compile(r"^> - ID: (.+?)\s*$", re.MULTILINE)
_INLINE_TAG_PAIR = re.compile(r"#([^#\s]+)#")
_INLINE_TAG = re.compile(r"(?:^|(?<=\s))#([^#\s]+)")


# ── Naming helpers ────────────────────────────────────────────────────

def format_datetime(moment: datetime, for_filename: bool = False) -> str:
    if for_filename:
        return moment.strftime("%Y-%m-%d %H-%M")
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def sanitize_filename(name: str) -> str:
    """Drop characters that are illegal on common filesystems (and ``#``)."""
    sanitized = re.sub(r'^[\\/:*?"<>|#\s]+', "", name)
    sanitized = re.sub(r"\s+", " ", sanitized)
    sanitized = re.sub(r'[\\/:*?"<>|#]', "", sanitized).strip()
    return sanitized or "untitled"


def content_preview(content: str) -> str:
    """First fifty readable characters of a memo, used as its file title."""
    preview = re.sub(r"^>\s*\[!.*?\].*$", "", content, flags=re.MULTILINE)
    preview = re.sub(r"^>\s.*$", "", preview, flags=re.MULTILINE)
    preview = re.sub(r"^\s*#+\s+", "", preview, flags=re.MULTILINE)
    preview = re.sub(r"!\[([^\]]*)\]\([^)]*\)", "", preview)
    preview = re.sub(r"\[([^\]]*)\]\([^)]*\)", r"\1", preview)
    preview = re.sub(r"[_*~`]", "", preview)
    preview = re.sub(r"\s*\n+\s*", " ", preview).strip()

    if not preview:
        return "Untitled"
    if len(preview) > PREVIEW_LENGTH:
        preview = f"{preview[:PREVIEW_LENGTH]}..."
    return preview


def relative_path(from_path: str, to_path: str) -> str:
    """
    Link target for *to_path* as seen from the file *from_path*.

    Both are ``/``-separated paths relative to the same root.
    """
    from_parts = from_path.split("/")[:-1]
    to_parts = to_path.split("/")

    common = 0
    while (
        common < len(from_parts)
        and common < len(to_parts)
        and from_parts[common] == to_parts[common]
    ):
        common += 1

    return "/".join([".."] * (len(from_parts) - common) + to_parts[common:])


def normalize_inline_tags(content: str) -> str:
    """Memos-style ``#tag#`` becomes Obsidian-style ``#tag``."""
    return _INLINE_TAG_PAIR.sub(r"#\1", content)


def extract_tags(content: str) -> list[str]:
    tags: list[str] = []
    for match in _INLINE_TAG.finditer(content):
        tag = match.group(1).rstrip("#,.;:!?")
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def _target_mode(path: Path) -> int:
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


# ── Writer ────────────────────────────────────────────────────────────

class VaultWriter:
    """Reads, writes, and indexes the synced memo tree."""

    def __init__(self, sync_dir: Path, client: MemosClient, tz: tzinfo | None = None):
        self.sync_dir = Path(sync_dir)
        self.client = client
        self.tz = tz
        self._index: dict[str, Path] | None = None

    # ── Index ─────────────────────────────────────────────────────────

    def build_index(self) -> dict[str, Path]:
        """Scan every .md file under the sync root for memo ID markers."""
        index: dict[str, Path] = {}
        if self.sync_dir.is_dir():
            for md_file in self.sync_dir.rglob("*.md"):
                try:
                    content = md_file.read_text(encoding="utf-8", errors="replace")
                except OSError:
                    logger.warning("Cannot read %s while indexing", md_file)
                    continue
                for match in _MARKER.finditer(content):
                    index[match.group(1)] = md_file
        self._index = index
        logger.info("Vault index built: %d memos.", len(index))
        return index

    @property
    def index(self) -> dict[str, Path]:
        if self._index is None:
            self.build_index()
        return self._index

    def exists(self, memo_id: str) -> bool:
        return memo_id in self.index

    # ── Writing memos ─────────────────────────────────────────────────

    def local_time(self, moment: datetime) -> datetime:
        return moment.astimezone(self.tz)

    def note_path(self, memo: Memo) -> Path:
        created = self.local_time(memo.create_time)
        month_dir = self.sync_dir / f"{created.year}" / f"{created.month:02d}"

        if memo.content.strip():
            preview = content_preview(memo.content)
        else:
            preview = sanitize_filename(memo.id.replace("memos/", ""))
        filename = sanitize_filename(f"{preview} ({format_datetime(created, for_filename=True)}).md")
        return month_dir / filename

    def save_memo(self, memo: Memo, body: str) -> Path:
        """
        Render *memo* with the (possibly augmented) *body* and write it.

        Returns the path of the written document.
        """
        dest = self._claim_path(self.note_path(memo), memo)
        self._ensure_dir(dest.parent)

        content = normalize_inline_tags(body or "")
        document = content

        images = [a for a in memo.resources if a.is_image]
        others = [a for a in memo.resources if not a.is_image]

        if images:
            lines = []
            for image in images:
                link = self._store_attachment(image, dest)
                if link:
                    lines.append(f"![{image.filename}]({link})")
            if lines:
                document += "\n\n" + "\n".join(lines) + "\n"

        if others:
            lines = []
            for attachment in others:
                link = self._store_attachment(attachment, dest)
                if link:
                    lines.append(f"- [{attachment.filename}]({link})")
            if lines:
                document += "\n\n### Attachments\n" + "\n".join(lines) + "\n"

        document += self._properties_block(memo, extract_tags(content))

        if dest.exists():
            logger.info("Overwriting existing file %s", dest)
        self._atomic_write(dest, document.encode("utf-8"))
        self.index[memo.id] = dest
        logger.info("Memo %s written → %s", memo.id, dest)
        return dest

    def _claim_path(self, dest: Path, memo: Memo) -> Path:
        """
        Return *dest*, or a variant suffixed with the memo's id when *dest*
        already holds a different memo.
        """
        if not dest.exists():
            return dest
        try:
            owners = _MARKER.findall(dest.read_text(encoding="utf-8", errors="replace"))
        except OSError as e:
            raise PersistError(f"Cannot read existing file {dest}: {e}", path=dest) from e
        if not owners or memo.id in owners:
            return dest

        tail = sanitize_filename(memo.id.rstrip("/").split("/")[-1])
        alternative = dest.with_name(f"{dest.stem} {tail}{dest.suffix}")
        logger.info("%s belongs to %s; writing %s to %s", dest.name, owners[0], memo.id, alternative.name)
        return alternative

    def _properties_block(self, memo: Memo, tags: list[str]) -> str:
        lines = [
            "",
            "",
            "---",
            "> [!note]- Memo Properties",
            f"> - Created: {format_datetime(self.local_time(memo.create_time))}",
            f"> - Updated: {format_datetime(self.local_time(memo.update_time))}",
            "> - Type: memo",
        ]
        if tags:
            lines.append(f"> - Tags: [{', '.join(tags)}]")
        lines.append(f"{MARKER_PREFIX}{memo.id}")
        lines.append(f"> - Visibility: {memo.visibility.value.lower()}")
        return "\n".join(lines) + "\n"

    def _store_attachment(self, attachment: Attachment, note_path: Path) -> str | None:
        """Download and write one attachment; returns its relative link or None."""
        try:
            data = self.client.download_resource(attachment)
            if data is None:
                raise AttachmentError(f"download of {attachment.filename} failed")

            resource_dir = note_path.parent / RESOURCES_FOLDER
            self._ensure_dir(resource_dir)
            local = resource_dir / f"{attachment.id}_{sanitize_filename(attachment.filename)}"
            try:
                self._atomic_write(local, data)
            except PersistError as e:
                raise AttachmentError(str(e)) from e
        except (AttachmentError, PersistError) as e:
            logger.error("Skipping attachment %s of %s: %s", attachment.name, note_path.name, e)
            return None

        return relative_path(
            note_path.relative_to(self.sync_dir).as_posix(),
            local.relative_to(self.sync_dir).as_posix(),
        )

    # ── Reports ───────────────────────────────────────────────────────

    def write_digest(self, content: str, day: date | None = None) -> Path:
        """Write a weekly digest note into the digests folder."""
        day = day or datetime.now(self.tz).date()
        folder = self.sync_dir / DIGEST_FOLDER
        self._ensure_dir(folder)
        dest = folder / f"Weekly Digest {day.isoformat()}.md"
        self._atomic_write(dest, content.encode("utf-8"))
        logger.info("Weekly digest written → %s", dest)
        return dest

    # ── Filesystem ────────────────────────────────────────────────────

    @staticmethod
    def _ensure_dir(path: Path) -> None:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistError(f"Cannot create folder {path}: {e}", path=path) from e

    @staticmethod
    def _atomic_write(path: Path, data: bytes) -> None:
        """
        Write to a temp file beside *path*, then rename it into place.

        The result keeps the mode of the file it replaces; new files get the
        usual ``0o666`` minus the process umask.
        """
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem[:40]}.", suffix=".tmp")
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.chmod(tmp_path, _target_mode(path))
            os.replace(tmp_path, path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise PersistError(f"Failed to write {path}: {e}", path=path) from e
