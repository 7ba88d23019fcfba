"""Deterministic fakes shared by the test modules."""
from __future__ import annotations

import json
import time
from datetime import datetime, timezone

import requests

from jobmail.errors import StoreUnavailable
from jobmail.models import RawMessage
from jobmail.stores import MemoryStore

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def make_message(message_id: str = "m-1", **overrides) -> RawMessage:
    fields = {
        "message_id": message_id,
        "sender": "",
        "subject": "",
        "body": "",
        "received_at": NOW,
        "source_link": f"https://mail.example/{message_id}",
    }
    fields.update(overrides)
    return RawMessage(**fields)


def classifier_reply(**payload) -> str:
    return "Here is my analysis:\n" + json.dumps(payload) + "\nLet me know if you need more."


class FakeClassifier:
    def __init__(self, response: str = "", exc: Exception | None = None) -> None:
        self.response = response
        self.exc = exc
        self.prompts: list[str] = []

    def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.exc is not None:
            raise self.exc
        return self.response


class RecordingStore(MemoryStore):
    """MemoryStore that counts calls and can fail chosen creates."""

    def __init__(self, fail_links: set[str] | None = None, fail_times: int = -1) -> None:
        super().__init__()
        self.fail_links = fail_links or set()
        self.fail_times = fail_times
        self.calls: list[str] = []

    def find_record(self, key):
        self.calls.append("find")
        return super().find_record(key)

    def create_record(self, fact):
        self.calls.append("create")
        if fact.source_link in self.fail_links and self.fail_times != 0:
            self.fail_times -= 1
            raise StoreUnavailable("store write timed out", TimeoutError("write timed out"))
        return super().create_record(fact)

    def update_record(self, record_id, fact):
        self.calls.append("update")
        return super().update_record(record_id, fact)


class FakeResponse:
    def __init__(self, data=None, status_code: int = 200) -> None:
        self.data = data if data is not None else {}
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)

    def json(self):
        return self.data


class FakeSession:
    """Replays canned responses in order and records every request."""

    def __init__(self, responses: list[FakeResponse]) -> None:
        self.responses = list(responses)
        self.requests: list[tuple[str, str, dict]] = []

    def _next(self, method: str, url: str, **kwargs) -> FakeResponse:
        self.requests.append((method, url, kwargs))
        return self.responses.pop(0)

    def request(self, method, url, **kwargs):
        return self._next(method, url, **kwargs)

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._next("POST", url, **kwargs)


class SlowLookupStore(MemoryStore):
    """MemoryStore whose lookups answer late with what they saw on entry.

    *delays* maps a source link to seconds; other lookups wait *default*.
    """

    def __init__(self, delays: dict[str, float] | None = None, default: float = 0.2) -> None:
        super().__init__()
        self.delays = delays or {}
        self.default = default

    def find_record(self, key):
        found = super().find_record(key)
        time.sleep(self.delays.get(key.source_link, self.default))
        return found
