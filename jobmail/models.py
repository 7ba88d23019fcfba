"""Data models for messages, extracted facts and stored application records."""
from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any

from jobmail.errors import MalformedInput

UNKNOWN_COMPANY = "Unknown"
UNSPECIFIED_ROLE = "Not specified"
DIRECT_PLATFORM = "Direct"


class Status(str, Enum):
    APPLIED = "Applied"
    INTERVIEW = "Interview"
    OFFER = "Offer"
    OFFER_REJECTED = "Offer Rejected"
    REJECTED = "Rejected"

    @classmethod
    def parse(cls, text: Any) -> Status | None:
        """Map free text like ``"offer_rejected"`` or ``" interview "`` to a member."""
        if isinstance(text, cls):
            return text
        if not isinstance(text, str):
            return None
        key = re.sub(r"[\s_\-]+", "", text).lower()
        for member in cls:
            if member.value.replace(" ", "").lower() == key:
                return member
        return None


DEFAULT_STATUS = Status.APPLIED


class ItemState(str, Enum):
    PENDING = "Pending"
    EXTRACTING = "Extracting"
    RECONCILING = "Reconciling"
    COMMITTED = "Committed"
    SKIPPED = "Skipped"
    FAILED = "Failed"


def parse_timestamp(value: Any) -> datetime:
    """Accept a datetime, an ISO-8601 string or an RFC 2822 ``Date`` header."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            dt = parsedate_to_datetime(value)
    else:
        raise ValueError(f"not a timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class RawMessage:
    message_id: str
    sender: str
    subject: str
    body: str
    received_at: datetime
    source_link: str = ""

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> RawMessage:
        """Build a message from a queue payload (``id``/``from``/``date`` keys accepted)."""
        if not isinstance(payload, dict):
            raise MalformedInput(f"message payload must be a mapping, got {type(payload).__name__}")
        message_id = str(payload.get("message_id") or payload.get("id") or "").strip()
        if not message_id:
            raise MalformedInput("message payload has no id")
        raw_date = payload.get("received_at", payload.get("date"))
        try:
            received_at = parse_timestamp(raw_date)
        except (TypeError, ValueError) as exc:
            raise MalformedInput(f"message {message_id} has no usable timestamp: {raw_date!r}") from exc
        return cls(
            message_id=message_id,
            sender=str(payload.get("sender") or payload.get("from") or ""),
            subject=str(payload.get("subject") or ""),
            body=str(payload.get("body") or ""),
            received_at=received_at,
            source_link=str(payload.get("source_link") or payload.get("gmailLink") or ""),
        )

    def validate(self) -> None:
        if not isinstance(self.message_id, str) or not self.message_id.strip():
            raise MalformedInput("message has no id")
        if not isinstance(self.received_at, datetime):
            raise MalformedInput(f"message {self.message_id} has no received timestamp")


@dataclass
class FactRecord:
    company: str = UNKNOWN_COMPANY
    role: str = UNSPECIFIED_ROLE
    status: Status = DEFAULT_STATUS
    platform: str = DIRECT_PLATFORM
    application_date: date | None = None
    last_response_date: datetime | None = None
    source_link: str = ""
    confidence: float | None = None
    is_job_related: bool | None = None

    @property
    def corroborated(self) -> bool:
        """True when a classifier fragment passed the confidence gate for this fact."""
        return self.confidence is not None and self.is_job_related is True

    def identity_key(self) -> IdentityKey:
        return IdentityKey(company=self.company, role=self.role, source_link=self.source_link)

    def to_dict(self) -> dict[str, Any]:
        return {
            "company": self.company,
            "role": self.role,
            "status": self.status.value,
            "platform": self.platform,
            "application_date": self.application_date.isoformat() if self.application_date else None,
            "last_response_date": self.last_response_date.isoformat() if self.last_response_date else None,
            "source_link": self.source_link,
            "confidence": self.confidence,
            "is_job_related": self.is_job_related,
        }


@dataclass
class PersistedRecord:
    record_id: str
    company: str = UNKNOWN_COMPANY
    role: str = UNSPECIFIED_ROLE
    status: Status = DEFAULT_STATUS
    platform: str = DIRECT_PLATFORM
    application_date: date | None = None
    last_response_date: datetime | None = None
    source_link: str = ""
    confidence: float | None = None
    is_job_related: bool | None = None
    created_at: datetime | None = None

    @classmethod
    def from_fact(cls, record_id: str, fact: FactRecord, created_at: datetime) -> PersistedRecord:
        return cls(
            record_id=record_id,
            company=fact.company,
            role=fact.role,
            status=fact.status,
            platform=fact.platform,
            application_date=fact.application_date,
            last_response_date=fact.last_response_date,
            source_link=fact.source_link,
            confidence=fact.confidence,
            is_job_related=fact.is_job_related,
            created_at=created_at,
        )

    def with_fact(self, fact: FactRecord) -> PersistedRecord:
        """Copy with every fact field replaced; identity and creation time stay."""
        return replace(
            self,
            company=fact.company,
            role=fact.role,
            status=fact.status,
            platform=fact.platform,
            application_date=self.application_date or fact.application_date,
            last_response_date=fact.last_response_date,
            source_link=fact.source_link,
            confidence=fact.confidence,
            is_job_related=fact.is_job_related,
        )


@dataclass(frozen=True)
class IdentityKey:
    company: str
    role: str
    source_link: str = ""

    @property
    def has_primary(self) -> bool:
        company = (self.company or "").strip()
        role = (self.role or "").strip()
        return bool(company and role) and company != UNKNOWN_COMPANY and role != UNSPECIFIED_ROLE

    def matches_primary(self, record: PersistedRecord) -> bool:
        if not self.has_primary:
            return False
        return (
            self.company.strip().lower() in (record.company or "").lower()
            and self.role.strip().lower() in (record.role or "").lower()
        )

    def matches_link(self, record: PersistedRecord) -> bool:
        return bool(self.source_link) and record.source_link == self.source_link


@dataclass
class ProcessResult:
    message_id: str
    state: ItemState
    record: PersistedRecord | None = None
    created: bool | None = None
    reason: str | None = None
    attempts: int = 0


@dataclass
class BatchSummary:
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    created: int = 0
    updated: int = 0
    results: list[ProcessResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    def add(self, result: ProcessResult) -> None:
        self.results.append(result)
        if result.state is ItemState.COMMITTED:
            self.processed += 1
            if result.created:
                self.created += 1
            else:
                self.updated += 1
        elif result.state is ItemState.SKIPPED:
            self.skipped += 1
        elif result.state is ItemState.FAILED:
            self.failed += 1

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "processed": self.processed,
            "skipped": self.skipped,
            "failed": self.failed,
            "created": self.created,
            "updated": self.updated,
        }
