"""
Memos API client — pulls memos page by page and downloads their attachments.

  - ``fetch_all_memos`` walks ``nextPageToken`` until the server runs out of
    data or the configured limit is reached, then sorts newest first.
  - ``download_resource`` fetches one attachment; failures are logged and
    reported as ``None`` so a broken file never aborts a whole sync.
"""

import logging
from urllib.parse import quote

import requests

from memos_sync.errors import ConfigurationError, SchemaError, TransportError
from memos_sync.models import Attachment, Memo

logger = logging.getLogger(__name__)

API_PATH = "/api/v1"
# Largest page the server is asked for
PAGE_SIZE = 100


class MemosClient:
    """Authenticated, stateless-per-call client for one Memos server."""

    def __init__(
        self,
        api_url: str,
        access_token: str,
        timeout: float = 30,
        session: requests.Session | None = None,
    ):
        api_url = (api_url or "").strip().rstrip("/")
        if not api_url:
            raise ConfigurationError("Memos API URL is not configured")
        if API_PATH not in api_url:
            raise ConfigurationError(
                f"Memos API URL must include {API_PATH}, e.g. https://demo.usememos.com{API_PATH}"
            )
        if not access_token:
            raise ConfigurationError("Memos access token is not configured")

        self.api_url = api_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            }
        )

    @property
    def file_base_url(self) -> str:
        return self.api_url.replace(API_PATH, "", 1)

    # ── Memo listing ──────────────────────────────────────────────────

    def fetch_all_memos(self, limit: int) -> list[Memo]:
        """
        Fetch up to *limit* memos, following page tokens.

        The result is always sorted by creation time, newest first, whatever
        order the server returned the pages in.
        """
        if limit < 1:
            raise ConfigurationError("Sync limit must be a positive integer")

        logger.info("Fetching up to %d memos from %s", limit, self.api_url)
        memos: list[Memo] = []
        page_token: str | None = None

        while True:
            remaining = limit - len(memos)
            page_size = min(PAGE_SIZE, remaining)
            params = {
                "rowStatus": "NORMAL",
                "limit": page_size,
                "pageSize": page_size,
            }
            if page_token:
                params["pageToken"] = page_token

            data = self._get_json(f"{self.api_url}/memos", params)
            raw_memos = data.get("memos") if isinstance(data, dict) else None
            if not isinstance(raw_memos, list):
                raise SchemaError(
                    "Invalid response: body does not contain a memos array",
                    body=str(data)[:2000],
                )

            page_token = data.get("nextPageToken") or None
            if not raw_memos:
                break

            page = [Memo.from_api(item) for item in raw_memos[:remaining]]
            memos.extend(page)
            logger.debug("Fetched %d memos this page, %d/%d total", len(page), len(memos), limit)

            if len(memos) >= limit or not page_token:
                break

        memos.sort(key=lambda m: m.create_time, reverse=True)
        logger.info("Fetched %d memos", len(memos))
        return memos

    def _get_json(self, url: str, params: dict):
        try:
            resp = self.session.get(url, params=params, timeout=self.timeout)
        except requests.ConnectionError as e:
            raise TransportError(
                f"Network error: unable to connect to {self.api_url}. "
                "Check that the URL is correct and reachable."
            ) from e
        except requests.RequestException as e:
            raise TransportError(f"Request to {url} failed: {e}") from e

        if not 200 <= resp.status_code < 300:
            body = resp.text
            raise TransportError(
                f"HTTP {resp.status_code}: {resp.reason}\nResponse: {body[:500]}",
                status_code=resp.status_code,
                body=body,
            )

        try:
            return resp.json()
        except ValueError as e:
            raise SchemaError(f"Response from {url} is not valid JSON", body=resp.text) from e

    # ── Attachments ───────────────────────────────────────────────────

    def resource_url(self, attachment: Attachment) -> str:
        return (
            f"{self.file_base_url}/file/resources/{attachment.id}/"
            f"{quote(attachment.filename, safe='')}"
        )

    def download_resource(self, attachment: Attachment) -> bytes | None:
        """Download one attachment; returns None when it cannot be fetched."""
        url = self.resource_url(attachment)
        logger.debug("Downloading resource %s", url)
        try:
            resp = self.session.get(url, headers={"Accept": "*/*"}, timeout=self.timeout)
        except requests.RequestException:
            logger.exception("Error downloading resource %s", attachment.filename)
            return None

        if not 200 <= resp.status_code < 300:
            logger.error(
                "Failed to download resource %s: HTTP %s %s",
                attachment.filename,
                resp.status_code,
                resp.reason,
            )
            return None
        return resp.content
