"""Gmail REST API — candidate job emails for the signed-in user.

Docs: https://developers.google.com/gmail/api/reference/rest/v1/users.messages
"""
from __future__ import annotations

import base64
import html
import re
from datetime import datetime, timedelta, timezone
from typing import Any

import requests

from jobmail.log import get_logger
from jobmail.models import RawMessage, parse_timestamp
from jobmail.retry import retry
from jobmail.sources.base import MessageSource

log = get_logger(__name__)

API_URL = "https://gmail.googleapis.com/gmail/v1/users/me"
TOKEN_URL = "https://oauth2.googleapis.com/token"
MAX_BODY_CHARS = 2000

_QUERY_TERMS = [
    "(subject:application OR subject:job OR subject:position OR subject:role OR subject:career OR subject:opportunity)",
    "OR (subject:interview OR subject:screen OR subject:assessment OR subject:challenge)",
    'OR (subject:offer OR subject:congratulations OR subject:welcome OR subject:"thank you" OR subject:thanks)',
    "OR (subject:rejection OR subject:unfortunately)",
    "OR (from:careers OR from:jobs OR from:talent OR from:recruiting OR from:hr OR from:hiring)",
    "OR (from:linkedin OR from:indeed OR from:glassdoor OR from:naukri OR from:unstop OR from:wellfound)",
]


def build_query(days_back: int, today: datetime | None = None) -> str:
    since = (today or datetime.now(timezone.utc)) - timedelta(days=days_back)
    return " ".join([f"after:{since.strftime('%Y/%m/%d')}", *_QUERY_TERMS])


def message_link(message_id: str) -> str:
    return f"https://mail.google.com/mail/u/0/#inbox/{message_id}"


def clean_body(body: str) -> str:
    """Strip tags, decode entities, collapse whitespace, cap the length."""
    if not body:
        return ""
    cleaned = re.sub(r"<[^>]*>", " ", body)
    cleaned = html.unescape(cleaned).replace("\xa0", " ")
    cleaned = re.sub(r"\s+", " ", cleaned).strip()
    return cleaned[:MAX_BODY_CHARS]


def _decode(data: str) -> str:
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8", errors="replace")


def find_text_part(parts: list[dict[str, Any]]) -> dict[str, Any] | None:
    """Depth-first: first text/plain or text/html part."""
    for part in parts:
        if part.get("mimeType") in ("text/plain", "text/html"):
            return part
        if part.get("parts"):
            found = find_text_part(part["parts"])
            if found:
                return found
    return None


def parse_message(data: dict[str, Any]) -> RawMessage | None:
    """Gmail ``format=full`` resource → RawMessage; None when it cannot be read."""
    try:
        payload = data["payload"]
        headers = {h["name"].lower(): h["value"] for h in payload.get("headers", [])}
        message_id = data["id"]

        body = ""
        if payload.get("body", {}).get("data"):
            body = _decode(payload["body"]["data"])
        elif payload.get("parts"):
            part = find_text_part(payload["parts"])
            if part and part.get("body", {}).get("data"):
                body = _decode(part["body"]["data"])

        if headers.get("date"):
            received_at = parse_timestamp(headers["date"])
        else:
            received_at = datetime.fromtimestamp(int(data["internalDate"]) / 1000, tz=timezone.utc)

        return RawMessage(
            message_id=message_id,
            sender=headers.get("from", ""),
            subject=headers.get("subject", ""),
            body=clean_body(body),
            received_at=received_at,
            source_link=message_link(message_id),
        )
    except (KeyError, ValueError, TypeError) as exc:
        log.warning("Skipping unreadable Gmail message %s: %s", data.get("id"), exc)
        return None


class GmailSource(MessageSource):
    def __init__(self, env_getter, session: requests.Session | None = None) -> None:
        self.client_id: str = env_getter("GMAIL_CLIENT_ID")
        self.client_secret: str = env_getter("GMAIL_CLIENT_SECRET")
        self.refresh_token: str = env_getter("GMAIL_REFRESH_TOKEN")
        self.session = session or requests.Session()
        self._access_token: str | None = None

    @retry(max_attempts=2, base_delay=1.5, retryable=(requests.RequestException, OSError))
    def _refresh_access_token(self) -> str:
        r = self.session.post(
            TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
            timeout=15,
        )
        r.raise_for_status()
        return r.json()["access_token"]

    @retry(max_attempts=3, base_delay=2.0, retryable=(requests.RequestException, OSError))
    def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        if self._access_token is None:
            self._access_token = self._refresh_access_token()
        r = self.session.get(
            f"{API_URL}{path}",
            params=params,
            headers={"Authorization": f"Bearer {self._access_token}"},
            timeout=15,
        )
        if r.status_code == 401:
            # Expired token: drop it so the retried call refreshes first.
            self._access_token = None
        r.raise_for_status()
        return r.json()

    def fetch_candidate_messages(self, max_results: int = 50, days_back: int = 7) -> list[RawMessage]:
        query = build_query(days_back)
        log.debug("Searching Gmail with query: %s", query)
        listing = self._get("/messages", {"q": query, "maxResults": max_results})
        ids = [m["id"] for m in listing.get("messages", [])]
        if not ids:
            log.info("No job-related emails found")
            return []

        log.info("Found %d potential job emails", len(ids))
        messages: list[RawMessage] = []
        for message_id in ids:
            parsed = parse_message(self._get(f"/messages/{message_id}", {"format": "full"}))
            if parsed is not None:
                messages.append(parsed)
        return messages
