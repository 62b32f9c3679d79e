"""Data types for memos fetched from the Memos API."""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from memos_sync.errors import SchemaError

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp")

_FRACTION = re.compile(r"\.(\d+)")


class Visibility(str, Enum):
    PUBLIC = "PUBLIC"
    PROTECTED = "PROTECTED"
    PRIVATE = "PRIVATE"

    @classmethod
    def parse(cls, value) -> "Visibility":
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.PRIVATE


def parse_timestamp(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp such as ``2024-03-14T10:00:00.123456789Z``.

    Fractions longer than microseconds are truncated; naive values are
    treated as UTC.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"not a timestamp: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Attachment:
    """A binary resource attached to a memo."""
    name: str
    filename: str
    type: str = ""
    size: int = 0

    @property
    def id(self) -> str:
        return self.name.rstrip("/").split("/")[-1] or self.name

    @property
    def is_image(self) -> bool:
        return self.filename.lower().endswith(IMAGE_EXTENSIONS)

    @classmethod
    def from_api(cls, payload: dict) -> "Attachment":
        name = payload.get("name") or payload.get("uid") or str(payload.get("id", ""))
        if not name:
            raise SchemaError("Attachment without a name", body=str(payload))
        try:
            size = int(payload.get("size") or 0)
        except (TypeError, ValueError):
            size = 0
        return cls(
            name=name,
            filename=payload.get("filename") or name.split("/")[-1],
            type=payload.get("type", ""),
            size=size,
        )


@dataclass(frozen=True)
class Memo:
    """One memo as returned by the Memos API."""
    name: str
    content: str
    visibility: Visibility
    create_time: datetime
    update_time: datetime
    resources: tuple[Attachment, ...] = field(default_factory=tuple)
    pinned: bool = False

    @property
    def id(self) -> str:
        return self.name

    @classmethod
    def from_api(cls, payload: dict) -> "Memo":
        if not isinstance(payload, dict):
            raise SchemaError("Memo entry is not an object", body=str(payload))

        name = payload.get("name") or payload.get("id")
        if not name:
            raise SchemaError("Memo without a name", body=str(payload))
        name = str(name)

        try:
            created = parse_timestamp(payload.get("createTime") or payload.get("displayTime"))
        except ValueError as e:
            raise SchemaError(f"Memo {name} has an invalid createTime: {e}", body=str(payload)) from e
        try:
            updated = parse_timestamp(payload["updateTime"]) if payload.get("updateTime") else created
        except ValueError:
            updated = created

        raw_resources = payload.get("resources") or payload.get("attachments") or []
        return cls(
            name=name,
            content=payload.get("content") or "",
            visibility=Visibility.parse(payload.get("visibility", "PRIVATE")),
            create_time=created,
            update_time=updated,
            resources=tuple(Attachment.from_api(r) for r in raw_resources),
            pinned=bool(payload.get("pinned", False)),
        )
