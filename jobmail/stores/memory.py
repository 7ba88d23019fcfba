"""In-process record store for dry runs and tests."""
from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone

from jobmail.errors import StoreUnavailable
from jobmail.log import get_logger
from jobmail.models import FactRecord, IdentityKey, PersistedRecord
from jobmail.stores.base import MergeFn, RecordStore, match_record

log = get_logger(__name__)


class MemoryStore(RecordStore):
    def __init__(self) -> None:
        self.records: dict[str, PersistedRecord] = {}
        # Reentrant: create_or_merge calls create/update while holding it.
        self._lock = threading.RLock()

    def find_record(self, key: IdentityKey) -> PersistedRecord | None:
        with self._lock:
            rows = list(self.records.values())
        return match_record(key, rows)

    def create_record(self, fact: FactRecord) -> PersistedRecord:
        record = PersistedRecord.from_fact(uuid.uuid4().hex[:12], fact, datetime.now(timezone.utc))
        with self._lock:
            self.records[record.record_id] = record
        log.debug("Created %s: %s / %s", record.record_id, record.company, record.role)
        return record

    def update_record(self, record_id: str, fact: FactRecord) -> PersistedRecord:
        with self._lock:
            existing = self.records.get(record_id)
            if existing is None:
                raise StoreUnavailable(f"record {record_id} does not exist")
            updated = existing.with_fact(fact)
            self.records[record_id] = updated
        log.debug("Updated %s → %s", record_id, updated.status.value)
        return updated

    def create_or_merge(self, fact: FactRecord, merge: MergeFn) -> tuple[PersistedRecord, bool]:
        with self._lock:
            existing = match_record(fact.identity_key(), self.records.values())
            if existing is None:
                return self.create_record(fact), True
            return self.update_record(existing.record_id, merge(existing, fact)), False
