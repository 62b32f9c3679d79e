from datetime import timezone
from unittest.mock import MagicMock

import pytest

from memos_sync.models import Memo
from memos_sync.services.ai_provider import AIProvider


def memo_payload(
    number: int,
    content: str = "",
    create_time: str = "2024-03-14T10:00:00Z",
    resources: list | None = None,
    visibility: str = "PUBLIC",
) -> dict:
    return {
        "name": f"memos/{number}",
        "content": content or f"memo number {number} with enough text",
        "visibility": visibility,
        "createTime": create_time,
        "updateTime": create_time,
        "pinned": False,
        "resources": resources or [],
    }


def make_memo(number: int = 1, **kwargs) -> Memo:
    return Memo.from_api(memo_payload(number, **kwargs))


def http_response(status_code: int = 200, json_data=None, text: str = "", content: bytes = b""):
    resp = MagicMock()
    resp.status_code = status_code
    resp.reason = "OK" if status_code < 400 else "Error"
    resp.text = text
    resp.content = content
    resp.headers = {}
    if json_data is None:
        resp.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        resp.json.return_value = json_data
    return resp


class FakeClient:
    """Stands in for MemosClient: serves fixed memos and attachment bytes."""

    def __init__(self, memos=None, files=None):
        self.memos = list(memos or [])
        self.files = dict(files or {})
        self.downloads = []

    def fetch_all_memos(self, limit):
        return sorted(self.memos, key=lambda m: m.create_time, reverse=True)[:limit]

    def download_resource(self, attachment):
        self.downloads.append(attachment.id)
        return self.files.get(attachment.id)


class ScriptedProvider(AIProvider):
    """Provider whose backend answers are scripted per call."""

    name = "scripted"

    def __init__(self, answers=None, **kwargs):
        kwargs.setdefault("sleep", lambda seconds: None)
        super().__init__(model="test-model", **kwargs)
        self.answers = list(answers or [])
        self.prompts = []

    def _complete(self, prompt):
        self.prompts.append(prompt)
        answer = self.answers.pop(0) if self.answers else ""
        if isinstance(answer, Exception):
            raise answer
        return answer


@pytest.fixture
def utc():
    return timezone.utc


@pytest.fixture
def fake_client():
    return FakeClient()
