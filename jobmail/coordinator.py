"""Combine pattern output with classifier output into one canonical fact record."""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from jobmail.classifier import ClassifierAdapter, ClassifierFragment
from jobmail.extractor import extract_with_patterns
from jobmail.log import get_logger
from jobmail.models import (
    DEFAULT_STATUS,
    DIRECT_PLATFORM,
    UNKNOWN_COMPANY,
    UNSPECIFIED_ROLE,
    FactRecord,
    RawMessage,
    Status,
)

log = get_logger(__name__)


def _filled(value: str | None, default: str) -> str:
    value = (value or "").strip()
    return value or default


def merge_facts(message: RawMessage, base: FactRecord, fragment: ClassifierFragment | None) -> FactRecord:
    """Classifier fields win over pattern fields once they passed the gate.

    ``source_link`` and ``last_response_date`` always come from the message.
    """
    merged = replace(base, confidence=None, is_job_related=None)
    if fragment is not None:
        for name in ("company", "role", "status", "platform"):
            value = getattr(fragment, name)
            if value is not None:
                setattr(merged, name, value)
        merged.confidence = fragment.confidence
        merged.is_job_related = fragment.is_job_related

    merged.company = _filled(merged.company, UNKNOWN_COMPANY)
    merged.role = _filled(merged.role, UNSPECIFIED_ROLE)
    merged.platform = _filled(merged.platform, DIRECT_PLATFORM)
    merged.status = Status.parse(merged.status) or DEFAULT_STATUS
    merged.application_date = merged.application_date or message.received_at.date()
    merged.last_response_date = message.received_at
    merged.source_link = message.source_link
    return merged


class ExtractionCoordinator:
    def __init__(self, adapter: ClassifierAdapter | None = None, clock=None) -> None:
        self.adapter = adapter or ClassifierAdapter(None)
        self.clock = clock

    def extract(self, message: RawMessage) -> FactRecord:
        now: datetime | None = self.clock() if self.clock else None
        base = extract_with_patterns(message, now=now)
        fragment = self.adapter.classify_message(message, base)
        fact = merge_facts(message, base, fragment)
        log.debug(
            "Extracted %s: %s / %s [%s] job_related=%s confidence=%s",
            message.message_id, fact.company, fact.role, fact.status.value,
            fact.is_job_related, fact.confidence,
        )
        return fact
