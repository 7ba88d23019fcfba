"""Create-or-update of application records without regressing known fields."""
from __future__ import annotations

from dataclasses import dataclass, replace

from jobmail.log import get_logger
from jobmail.models import (
    DEFAULT_STATUS,
    UNKNOWN_COMPANY,
    UNSPECIFIED_ROLE,
    FactRecord,
    PersistedRecord,
)
from jobmail.stores.base import RecordStore

log = get_logger(__name__)

# Field name -> placeholder an uncorroborated fact may not write over a known value.
PROTECTED_DEFAULTS: dict[str, object] = {
    "company": UNKNOWN_COMPANY,
    "role": UNSPECIFIED_ROLE,
    "status": DEFAULT_STATUS,
}


@dataclass
class ReconcileOutcome:
    record: PersistedRecord
    created: bool

    @property
    def record_id(self) -> str:
        return self.record.record_id


def merge_into(existing: PersistedRecord, incoming: FactRecord) -> FactRecord:
    """Fields to write over *existing*.

    ``company``/``role``/``status`` keep a known value when the incoming one is the
    placeholder and no classifier corroborates it. ``platform``, ``source_link``
    and ``last_response_date`` always take the incoming value. ``application_date``
    never changes after creation.
    """
    merged = replace(incoming)
    for name, placeholder in PROTECTED_DEFAULTS.items():
        new = getattr(incoming, name)
        old = getattr(existing, name)
        if new == placeholder and old != placeholder and not incoming.corroborated:
            setattr(merged, name, old)

    merged.application_date = existing.application_date or incoming.application_date
    if incoming.confidence is None:
        merged.confidence = existing.confidence
    if incoming.is_job_related is None:
        merged.is_job_related = existing.is_job_related
    return merged


class Reconciler:
    """Upsert a canonical fact. Store errors propagate untouched; no retries here."""

    def __init__(self, store: RecordStore) -> None:
        self.store = store

    def reconcile(self, fact: FactRecord) -> ReconcileOutcome:
        existing = self.store.find_record(fact.identity_key())
        if existing is None:
            if fact.application_date is None and fact.last_response_date is not None:
                fact = replace(fact, application_date=fact.last_response_date.date())
            record, created = self.store.create_or_merge(fact, merge_into)
            if created:
                log.info(
                    "Created application %s: %s / %s [%s]",
                    record.record_id, record.company, record.role, record.status.value,
                )
            else:
                log.info(
                    "Merged into application %s created meanwhile: %s / %s [%s]",
                    record.record_id, record.company, record.role, record.status.value,
                )
            return ReconcileOutcome(record=record, created=created)

        merged = merge_into(existing, fact)
        record = self.store.update_record(existing.record_id, merged)
        log.info(
            "Updated application %s: %s / %s [%s → %s]",
            record.record_id, record.company, record.role, existing.status.value, record.status.value,
        )
        return ReconcileOutcome(record=record, created=False)
