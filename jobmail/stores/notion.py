"""Notion database as the application record store.

Docs: https://developers.notion.com/reference/post-database-query
"""
from __future__ import annotations

from datetime import date
from typing import Any

import requests

from jobmail.errors import StoreUnavailable
from jobmail.log import get_logger
from jobmail.models import (
    DIRECT_PLATFORM,
    UNKNOWN_COMPANY,
    UNSPECIFIED_ROLE,
    FactRecord,
    IdentityKey,
    PersistedRecord,
    Status,
    parse_timestamp,
)
from jobmail.stores.base import RecordStore

log = get_logger(__name__)

API_URL = "https://api.notion.com/v1"
NOTION_VERSION = "2022-06-28"

_STATUS_COLORS: dict[Status, str] = {
    Status.APPLIED: "orange",
    Status.INTERVIEW: "blue",
    Status.OFFER: "green",
    Status.OFFER_REJECTED: "pink",
    Status.REJECTED: "red",
}


def _text(content: str) -> list[dict]:
    return [{"text": {"content": content[:2000]}}]


def _plain(prop: dict | None) -> str:
    if not prop:
        return ""
    items = prop.get("title") or prop.get("rich_text") or []
    return "".join(i.get("plain_text") or i.get("text", {}).get("content", "") for i in items).strip()


def build_properties(fact: FactRecord, is_update: bool = False) -> dict[str, Any]:
    props: dict[str, Any] = {
        "Company": {"title": _text(fact.company or UNKNOWN_COMPANY)},
        "Role": {"rich_text": _text(fact.role or UNSPECIFIED_ROLE)},
        "Status": {"select": {"name": fact.status.value}},
        "Platform": {"rich_text": _text(fact.platform or DIRECT_PLATFORM)},
        "Last Response Date": {
            "date": {"start": fact.last_response_date.isoformat()} if fact.last_response_date else None
        },
        "Gmail Link": {"url": fact.source_link or None},
    }
    if fact.confidence is not None:
        props["Confidence"] = {"number": round(fact.confidence, 4)}
    # Application Date is fixed at creation.
    if not is_update:
        props["Application Date"] = {
            "date": {"start": fact.application_date.isoformat()} if fact.application_date else None
        }
    return props


def parse_page(page: dict[str, Any]) -> PersistedRecord:
    props = page.get("properties", {})

    def _date(name: str) -> str | None:
        value = (props.get(name) or {}).get("date") or {}
        return value.get("start")

    app_date = _date("Application Date")
    last = _date("Last Response Date")
    status_name = ((props.get("Status") or {}).get("select") or {}).get("name")
    confidence = (props.get("Confidence") or {}).get("number")
    return PersistedRecord(
        record_id=page["id"],
        company=_plain(props.get("Company")) or UNKNOWN_COMPANY,
        role=_plain(props.get("Role")) or UNSPECIFIED_ROLE,
        status=Status.parse(status_name) or Status.APPLIED,
        platform=_plain(props.get("Platform")) or DIRECT_PLATFORM,
        application_date=date.fromisoformat(app_date[:10]) if app_date else None,
        last_response_date=parse_timestamp(last) if last else None,
        source_link=(props.get("Gmail Link") or {}).get("url") or "",
        confidence=float(confidence) if confidence is not None else None,
        created_at=parse_timestamp(page["created_time"]) if page.get("created_time") else None,
    )


class NotionStore(RecordStore):
    """Records as pages of one Notion database.

    Notion has no conditional create, so ``create_or_merge`` is the base
    re-check-then-create: two workers creating the same application in the
    same instant can still both create a page.
    """

    def __init__(self, api_key: str, database_id: str, session: requests.Session | None = None) -> None:
        self.database_id = database_id
        self.session = session or requests.Session()
        self.headers = {
            "Authorization": f"Bearer {api_key}",
            "Notion-Version": NOTION_VERSION,
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            r = self.session.request(method, f"{API_URL}{path}", json=payload, headers=self.headers, timeout=15)
            r.raise_for_status()
            return r.json()
        except requests.RequestException as exc:
            raise StoreUnavailable(f"Notion {method} {path} failed", exc) from exc
        except ValueError as exc:
            raise StoreUnavailable(f"Notion {method} {path} returned invalid JSON", exc) from exc

    def _query(self, flt: dict[str, Any]) -> list[dict[str, Any]]:
        data = self._request("POST", f"/databases/{self.database_id}/query", {"filter": flt, "page_size": 10})
        return data.get("results", [])

    def find_record(self, key: IdentityKey) -> PersistedRecord | None:
        if key.has_primary:
            results = self._query({
                "and": [
                    {"property": "Company", "title": {"contains": key.company.strip()}},
                    {"property": "Role", "rich_text": {"contains": key.role.strip()}},
                ]
            })
            if results:
                return parse_page(results[0])

        if not key.source_link:
            return None
        try:
            results = self._query({"property": "Gmail Link", "url": {"equals": key.source_link}})
        except StoreUnavailable as exc:
            response = getattr(exc.cause, "response", None)
            if response is not None and response.status_code == 400:
                log.warning("Gmail Link property not found in database, skipping link-based search")
                return None
            raise
        return parse_page(results[0]) if results else None

    def create_record(self, fact: FactRecord) -> PersistedRecord:
        page = self._request("POST", "/pages", {
            "parent": {"database_id": self.database_id},
            "properties": build_properties(fact),
        })
        log.info("Created Notion page %s: %s / %s", page.get("id"), fact.company, fact.role)
        return parse_page(page)

    def update_record(self, record_id: str, fact: FactRecord) -> PersistedRecord:
        page = self._request("PATCH", f"/pages/{record_id}", {
            "properties": build_properties(fact, is_update=True),
        })
        log.info("Updated Notion page %s → %s", record_id, fact.status.value)
        return parse_page(page)

    def create_database(self, parent_page_id: str, title: str = "Job Applications Tracker") -> str:
        """Create a database with the expected schema under *parent_page_id*; returns its id."""
        data = self._request("POST", "/databases", {
            "parent": {"type": "page_id", "page_id": parent_page_id},
            "title": [{"type": "text", "text": {"content": title}}],
            "properties": {
                "Company": {"title": {}},
                "Role": {"rich_text": {}},
                "Status": {"select": {"options": [
                    {"name": s.value, "color": _STATUS_COLORS[s]} for s in Status
                ]}},
                "Platform": {"rich_text": {}},
                "Application Date": {"date": {}},
                "Last Response Date": {"date": {}},
                "Gmail Link": {"url": {}},
                "Confidence": {"number": {"format": "percent"}},
            },
        })
        log.info("Notion database created: %s", data.get("id"))
        return data["id"]
