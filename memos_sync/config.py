"""
Central configuration for Memos Sync.

Server details, vault location, AI options and logging knobs live here.
Values are read from environment variables (or a .env file) with sensible
defaults.  Services never read these globals directly: the CLI builds a
``Settings`` value with ``load_settings()`` and passes it down.
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path

from dotenv import load_dotenv

from memos_sync.errors import ConfigurationError

load_dotenv()

# ── Memos server ──────────────────────────────────────────────────────
# e.g. https://demo.usememos.com/api/v1
MEMOS_API_URL = os.getenv("MEMOS_API_URL", "")
MEMOS_ACCESS_TOKEN = os.getenv("MEMOS_ACCESS_TOKEN", "")
MEMOS_REQUEST_TIMEOUT = os.getenv("MEMOS_REQUEST_TIMEOUT", "30")

# ── Vault ─────────────────────────────────────────────────────────────
# Root folder for synced memos; year/month sub-folders are created below it
MEMOS_SYNC_DIR = os.getenv("MEMOS_SYNC_DIR", "memos")
# Maximum number of memos fetched per pass
MEMOS_SYNC_LIMIT = os.getenv("MEMOS_SYNC_LIMIT", "1000")
# manual | auto
MEMOS_SYNC_MODE = os.getenv("MEMOS_SYNC_MODE", "manual")
# Minutes between passes in auto mode
MEMOS_SYNC_INTERVAL = os.getenv("MEMOS_SYNC_INTERVAL", "30")

# ── AI ────────────────────────────────────────────────────────────────
AI_ENABLED = os.getenv("AI_ENABLED", "false")
# openai | gemini | claude | ollama
AI_MODEL_TYPE = os.getenv("AI_MODEL_TYPE", "claude")
AI_API_KEY = os.getenv("AI_API_KEY", "")
AI_MODEL_NAME = os.getenv("AI_MODEL_NAME", "")
# Only used by Ollama
AI_BASE_URL = os.getenv("AI_BASE_URL", "http://localhost:11434")
AI_WEEKLY_DIGEST = os.getenv("AI_WEEKLY_DIGEST", "false")
AI_AUTO_TAGS = os.getenv("AI_AUTO_TAGS", "true")
AI_INTELLIGENT_SUMMARY = os.getenv("AI_INTELLIGENT_SUMMARY", "true")
# zh | en | ja | ko
AI_SUMMARY_LANGUAGE = os.getenv("AI_SUMMARY_LANGUAGE", "en")
# Seconds; doubled after every failed attempt
AI_RETRY_BASE_DELAY = os.getenv("AI_RETRY_BASE_DELAY", "1.0")

# ── Logging ───────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "memos_sync.log")

SYNC_MODES = ("manual", "auto")
MODEL_TYPES = ("openai", "gemini", "claude", "ollama")
SUMMARY_LANGUAGES = ("zh", "en", "ja", "ko")

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "gemini": "gemini-1.5-flash",
    "claude": "claude-sonnet-4-5-20250929",
    "ollama": "llama3",
}


@dataclass(frozen=True)
class Settings:
    """Immutable snapshot of everything a sync pass needs."""
    api_url: str = ""
    access_token: str = ""
    request_timeout: float = 30.0
    sync_dir: Path = Path("memos")
    sync_limit: int = 1000
    sync_mode: str = "manual"
    sync_interval: int = 30
    ai_enabled: bool = False
    ai_model_type: str = "claude"
    ai_api_key: str = ""
    ai_model_name: str = ""
    ai_base_url: str = "http://localhost:11434"
    weekly_digest: bool = False
    auto_tags: bool = True
    intelligent_summary: bool = True
    summary_language: str = "en"
    retry_base_delay: float = 1.0

    @property
    def model_name(self) -> str:
        return self.ai_model_name or DEFAULT_MODELS.get(self.ai_model_type, "")

    def with_overrides(self, **overrides) -> "Settings":
        """Return a copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")
        changes = {k: v for k, v in overrides.items() if v is not None}
        if "sync_dir" in changes:
            changes["sync_dir"] = Path(changes["sync_dir"])
        return _validated(replace(self, **changes))


def _as_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off", ""):
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def _as_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from None


def _as_float(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None


def _validated(settings: Settings) -> Settings:
    if settings.sync_mode not in SYNC_MODES:
        raise ConfigurationError(
            f"MEMOS_SYNC_MODE must be one of {', '.join(SYNC_MODES)}, got {settings.sync_mode!r}"
        )
    if settings.ai_model_type not in MODEL_TYPES:
        raise ConfigurationError(
            f"AI_MODEL_TYPE must be one of {', '.join(MODEL_TYPES)}, got {settings.ai_model_type!r}"
        )
    if settings.summary_language not in SUMMARY_LANGUAGES:
        raise ConfigurationError(
            f"AI_SUMMARY_LANGUAGE must be one of {', '.join(SUMMARY_LANGUAGES)}, "
            f"got {settings.summary_language!r}"
        )
    if settings.sync_limit < 1:
        raise ConfigurationError("MEMOS_SYNC_LIMIT must be a positive integer")
    if settings.sync_interval < 1:
        raise ConfigurationError("MEMOS_SYNC_INTERVAL must be at least one minute")
    return settings


def load_settings(env: dict | None = None, **overrides) -> Settings:
    """
    Build a ``Settings`` from the environment.

    ``env`` defaults to ``os.environ`` (already populated from .env);
    keyword overrides that are not None win over environment values.
    """
    env = os.environ if env is None else env

    def get(name: str, default: str) -> str:
        return env.get(name, default)

    settings = Settings(
        api_url=get("MEMOS_API_URL", MEMOS_API_URL).strip().rstrip("/"),
        access_token=get("MEMOS_ACCESS_TOKEN", MEMOS_ACCESS_TOKEN).strip(),
        request_timeout=_as_float(
            "MEMOS_REQUEST_TIMEOUT", get("MEMOS_REQUEST_TIMEOUT", MEMOS_REQUEST_TIMEOUT)
        ),
        sync_dir=Path(get("MEMOS_SYNC_DIR", MEMOS_SYNC_DIR)),
        sync_limit=_as_int("MEMOS_SYNC_LIMIT", get("MEMOS_SYNC_LIMIT", MEMOS_SYNC_LIMIT)),
        sync_mode=get("MEMOS_SYNC_MODE", MEMOS_SYNC_MODE).strip().lower(),
        sync_interval=_as_int(
            "MEMOS_SYNC_INTERVAL", get("MEMOS_SYNC_INTERVAL", MEMOS_SYNC_INTERVAL)
        ),
        ai_enabled=_as_bool("AI_ENABLED", get("AI_ENABLED", AI_ENABLED)),
        ai_model_type=get("AI_MODEL_TYPE", AI_MODEL_TYPE).strip().lower(),
        ai_api_key=get("AI_API_KEY", AI_API_KEY).strip(),
        ai_model_name=get("AI_MODEL_NAME", AI_MODEL_NAME).strip(),
        ai_base_url=get("AI_BASE_URL", AI_BASE_URL).strip().rstrip("/"),
        weekly_digest=_as_bool("AI_WEEKLY_DIGEST", get("AI_WEEKLY_DIGEST", AI_WEEKLY_DIGEST)),
        auto_tags=_as_bool("AI_AUTO_TAGS", get("AI_AUTO_TAGS", AI_AUTO_TAGS)),
        intelligent_summary=_as_bool(
            "AI_INTELLIGENT_SUMMARY", get("AI_INTELLIGENT_SUMMARY", AI_INTELLIGENT_SUMMARY)
        ),
        summary_language=get("AI_SUMMARY_LANGUAGE", AI_SUMMARY_LANGUAGE).strip().lower(),
        retry_base_delay=_as_float(
            "AI_RETRY_BASE_DELAY", get("AI_RETRY_BASE_DELAY", AI_RETRY_BASE_DELAY)
        ),
    )
    return settings.with_overrides(**overrides)
