"""
Error types raised across the sync pipeline.

  - ConfigurationError  — bad or missing settings, raised before any request
  - TransportError      — non-2xx responses or an unreachable server
  - SchemaError         — response bodies that cannot be parsed or lack fields
  - AttachmentError     — a single attachment could not be stored
  - AIProviderError     — an AI backend call failed after all retries
  - PersistError        — a vault file could not be written
"""


class MemosSyncError(Exception):
    """Base class for every error raised by memos_sync."""


class ConfigurationError(MemosSyncError):
    """Settings are missing or malformed."""


class TransportError(MemosSyncError):
    """HTTP failure talking to the Memos server."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class SchemaError(MemosSyncError):
    """Response body could not be parsed or is missing expected fields."""

    def __init__(self, message: str, body: str = ""):
        super().__init__(message)
        self.body = body


class AttachmentError(MemosSyncError):
    """A single attachment failed to download or persist."""


class AIProviderError(MemosSyncError):
    """An AI backend call failed."""


class RateLimitError(AIProviderError):
    """The AI backend answered with HTTP 429."""

    def __init__(self, message: str, retry_after: float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class PersistError(MemosSyncError):
    """Writing a file into the vault failed."""

    def __init__(self, message: str, path=None):
        super().__init__(message)
        self.path = path
