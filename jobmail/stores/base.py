from abc import ABC, abstractmethod
from typing import Callable, Iterable, Optional, Tuple

from jobmail.models import FactRecord, IdentityKey, PersistedRecord

MergeFn = Callable[[PersistedRecord, FactRecord], FactRecord]


def match_record(key: IdentityKey, records: Iterable[PersistedRecord]) -> Optional[PersistedRecord]:
    """Primary (company + role) match first, then the source link."""
    records = list(records)
    if key.has_primary:
        for r in records:
            if key.matches_primary(r):
                return r
    for r in records:
        if key.matches_link(r):
            return r
    return None


class RecordStore(ABC):
    """Key-value upsert API for application records.

    Implementations raise ``StoreUnavailable`` on transport failure and must make
    each create/update atomic per record.
    """

    @abstractmethod
    def find_record(self, key: IdentityKey) -> PersistedRecord | None:
        pass

    @abstractmethod
    def create_record(self, fact: FactRecord) -> PersistedRecord:
        pass

    @abstractmethod
    def update_record(self, record_id: str, fact: FactRecord) -> PersistedRecord:
        pass

    def create_or_merge(self, fact: FactRecord, merge: MergeFn) -> Tuple[PersistedRecord, bool]:
        """Create *fact* unless a record with its identity exists; then merge into that one.

        Returns ``(record, created)``. Stores that can lock override this so the
        identity check and the write happen as one step. This fallback only
        repeats the lookup right before creating.
        """
        existing = self.find_record(fact.identity_key())
        if existing is None:
            return self.create_record(fact), True
        return self.update_record(existing.record_id, merge(existing, fact)), False
