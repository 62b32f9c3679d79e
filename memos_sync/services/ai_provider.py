"""
AI providers — one interface over several text-generation backends.

Every provider offers the same three operations:

  1. ``summarize``       — a short summary of one memo in a chosen language
  2. ``extract_tags``    — a handful of bare topic tags for one memo
  3. ``compose_digest``  — a multi-paragraph digest over many memos

Concrete backends only differ in how they send a prompt (``_complete``).
All calls go through ``with_retry``: three attempts, exponential backoff,
rate limits (HTTP 429) included.  ``create_provider`` picks the backend
from ``Settings`` once, at configuration time.
"""

import json
import logging
import re
import time
from typing import Callable

import anthropic
import openai
import requests

from memos_sync.config import Settings
from memos_sync.errors import AIProviderError, ConfigurationError, RateLimitError

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
MAX_TAGS = 5

LANGUAGE_NAMES = {
    "zh": "Chinese",
    "en": "English",
    "ja": "Japanese",
    "ko": "Korean",
}

SUMMARY_PROMPT = """\
You summarise personal notes.  Write a concise summary (one to three
sentences) of the note below in {language}.  Return only the summary text,
with no heading, quotes or preamble.

--- NOTE ---
{text}
--- END ---
"""

TAGS_PROMPT = """\
You tag personal notes for an Obsidian vault.  Suggest up to {max_tags}
short topic tags for the note below.  Use lowercase, hyphenate multi-word
tags, and do not include the # character.

Respond with ONLY a JSON array of strings (no markdown fences), e.g.
["productivity", "reading-list"].

--- NOTE ---
{text}
--- END ---
"""

DIGEST_PROMPT = """\
You write weekly reviews of personal notes.  Below are all notes written
during one week, separated by lines of dashes.  Write a digest in Markdown
with three short paragraphs:

  - the main themes of the week
  - notable ideas, decisions or progress
  - open questions or suggested next steps

Return only the digest, without a title.

{notes}
"""


def _retry_after(headers) -> float | None:
    """Seconds from a ``Retry-After`` header, when present and numeric."""
    value = (headers or {}).get("Retry-After")
    try:
        return float(value) if value else None
    except (TypeError, ValueError):
        return None


def _is_rate_limited(exc: Exception) -> bool:
    if isinstance(exc, RateLimitError):
        return True
    status = getattr(exc, "status_code", None)
    return status == 429


def with_retry(
    call: Callable[[], str],
    what: str,
    base_delay: float = 1.0,
    max_attempts: int = MAX_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """
    Run *call* up to *max_attempts* times.

    After failed attempt ``i`` (0-based) waits ``base_delay * 2**i`` seconds,
    or longer when a rate-limited backend sent a ``Retry-After``.
    The last error is re-raised as an ``AIProviderError``.
    """
    last_error: Exception | None = None
    for attempt in range(max_attempts):
        try:
            return call()
        except Exception as e:
            last_error = e
            if attempt == max_attempts - 1:
                break
            delay = base_delay * (2 ** attempt)
            if _is_rate_limited(e):
                delay = max(delay, getattr(e, "retry_after", None) or 0)
                logger.warning(
                    "%s rate limited (attempt %d/%d), retrying in %.1fs",
                    what, attempt + 1, max_attempts, delay,
                )
            else:
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                    what, attempt + 1, max_attempts, e, delay,
                )
            sleep(delay)

    logger.error("%s failed after %d attempts: %s", what, max_attempts, last_error)
    if isinstance(last_error, AIProviderError):
        raise last_error
    raise AIProviderError(f"{what} failed: {last_error}") from last_error


def _strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
    if text.endswith("```"):
        text = text.rsplit("```", 1)[0]
    return text.strip()


def parse_tags(text: str, max_tags: int = MAX_TAGS) -> list[str]:
    """Turn a model answer (JSON array or loose words) into bare tags."""
    text = _strip_fences(text)
    candidates: list = []
    try:
        data = json.loads(text)
        if isinstance(data, list):
            candidates = [str(item) for item in data]
        elif isinstance(data, dict):
            candidates = [str(item) for item in data.get("tags", [])]
    except json.JSONDecodeError:
        candidates = re.split(r"[,\s]+", text)

    tags: list[str] = []
    for candidate in candidates:
        tag = candidate.strip().strip("\"'").lstrip("#").strip()
        tag = re.sub(r"\s+", "-", tag)
        if tag and tag not in tags:
            tags.append(tag)
    return tags[:max_tags]


class AIProvider:
    """Base class; subclasses implement ``_complete``."""

    name = "base"

    def __init__(self, model: str = "", retry_base_delay: float = 1.0, sleep=time.sleep):
        self.model = model
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep

    def _complete(self, prompt: str) -> str:
        raise NotImplementedError

    def _generate(self, prompt: str, what: str) -> str:
        return with_retry(
            lambda: self._complete(prompt),
            what=f"{self.name} {what}",
            base_delay=self.retry_base_delay,
            sleep=self._sleep,
        )

    def summarize(self, text: str, language: str = "en") -> str:
        """Return a short summary, or "" when the backend produced nothing."""
        language_name = LANGUAGE_NAMES.get(language, language)
        result = self._generate(
            SUMMARY_PROMPT.format(language=language_name, text=text), "summary"
        )
        return (result or "").strip()

    def extract_tags(self, text: str) -> list[str]:
        result = self._generate(TAGS_PROMPT.format(max_tags=MAX_TAGS, text=text), "tags")
        return parse_tags(result or "")

    def compose_digest(self, texts: list[str]) -> str:
        if not texts:
            return ""
        notes = "\n\n----------\n\n".join(t.strip() for t in texts)
        result = self._generate(DIGEST_PROMPT.format(notes=notes), "weekly digest")
        return _strip_fences(result or "")


class NullProvider(AIProvider):
    """Used when AI is disabled; produces nothing."""

    name = "none"

    def summarize(self, text: str, language: str = "en") -> str:
        return ""

    def extract_tags(self, text: str) -> list[str]:
        return []

    def compose_digest(self, texts: list[str]) -> str:
        return ""


class AnthropicProvider(AIProvider):
    name = "claude"

    def __init__(self, api_key: str, model: str, **kwargs):
        if not api_key or not api_key.startswith("sk-ant-"):
            raise ConfigurationError("Claude API key is missing or malformed (expected sk-ant-...)")
        super().__init__(model=model, **kwargs)
        self.client = anthropic.Anthropic(api_key=api_key)

    def _complete(self, prompt: str) -> str:
        try:
            message = self.client.messages.create(
                model=self.model,
                max_tokens=2048,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.RateLimitError as e:
            raise RateLimitError(
                f"Claude rate limit: {e}", retry_after=_retry_after(e.response.headers)
            ) from e
        except anthropic.APIError as e:
            raise AIProviderError(f"Claude request failed: {e}") from e
        return "".join(
            block.text for block in message.content if getattr(block, "type", "") == "text"
        )


class OpenAIProvider(AIProvider):
    name = "openai"

    def __init__(self, api_key: str, model: str, **kwargs):
        if not api_key or not api_key.startswith("sk-"):
            raise ConfigurationError("OpenAI API key is missing or malformed (expected sk-...)")
        super().__init__(model=model, **kwargs)
        self.client = openai.OpenAI(api_key=api_key)

    def _complete(self, prompt: str) -> str:
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
            )
        except openai.RateLimitError as e:
            raise RateLimitError(
                f"OpenAI rate limit: {e}", retry_after=_retry_after(e.response.headers)
            ) from e
        except openai.OpenAIError as e:
            raise AIProviderError(f"OpenAI request failed: {e}") from e
        return response.choices[0].message.content or ""


class _RestProvider(AIProvider):
    """Shared HTTP handling for backends called through plain REST."""

    timeout = 120

    def __init__(self, model: str, session: requests.Session | None = None, **kwargs):
        super().__init__(model=model, **kwargs)
        self.session = session or requests.Session()

    def _post(self, url: str, payload: dict) -> dict:
        try:
            resp = self.session.post(url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise AIProviderError(f"{self.name} request failed: {e}") from e

        if resp.status_code == 429:
            raise RateLimitError(
                f"{self.name}: HTTP 429 rate limited", retry_after=_retry_after(resp.headers)
            )
        if not 200 <= resp.status_code < 300:
            raise AIProviderError(f"{self.name}: HTTP {resp.status_code}: {resp.text[:300]}")
        try:
            return resp.json()
        except ValueError as e:
            raise AIProviderError(f"{self.name}: response is not JSON") from e


class GeminiProvider(_RestProvider):
    name = "gemini"
    endpoint = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    def __init__(self, api_key: str, model: str, **kwargs):
        if not api_key or not api_key.startswith("AIza"):
            raise ConfigurationError("Gemini API key is missing or malformed (expected AIza...)")
        super().__init__(model=model, **kwargs)
        self.session.headers.update({"x-goog-api-key": api_key})

    def _complete(self, prompt: str) -> str:
        data = self._post(
            self.endpoint.format(model=self.model),
            {"contents": [{"parts": [{"text": prompt}]}]},
        )
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError) as e:
            raise AIProviderError("Gemini returned no candidates") from e
        return "".join(part.get("text", "") for part in parts)


class OllamaProvider(_RestProvider):
    name = "ollama"

    def __init__(self, api_key: str = "", model: str = "", base_url: str = "http://localhost:11434", **kwargs):
        if not base_url:
            raise ConfigurationError("Ollama base URL is not configured")
        super().__init__(model=model, **kwargs)
        self.base_url = base_url.rstrip("/")
        if api_key:
            self.session.headers.update({"Authorization": f"Bearer {api_key}"})

    def _complete(self, prompt: str) -> str:
        data = self._post(
            f"{self.base_url}/api/generate",
            {"model": self.model, "prompt": prompt, "stream": False},
        )
        return data.get("response", "")


PROVIDERS: dict[str, type[AIProvider]] = {
    "claude": AnthropicProvider,
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
    "ollama": OllamaProvider,
}


def create_provider(settings: Settings) -> AIProvider:
    """Build the provider selected by *settings*; NullProvider when AI is off."""
    if not settings.ai_enabled:
        return NullProvider()

    provider_cls = PROVIDERS.get(settings.ai_model_type)
    if provider_cls is None:
        raise ConfigurationError(f"Unsupported AI model type: {settings.ai_model_type}")

    kwargs = {
        "api_key": settings.ai_api_key,
        "model": settings.model_name,
        "retry_base_delay": settings.retry_base_delay,
    }
    if provider_cls is OllamaProvider:
        kwargs["base_url"] = settings.ai_base_url

    provider = provider_cls(**kwargs)
    logger.info("AI provider ready: %s (%s)", provider.name, provider.model)
    return provider
