"""Track applications in a structured table (CSV) with file locking."""
from __future__ import annotations

import csv
import fcntl
import io
import uuid
from datetime import date, datetime, timezone
from pathlib import Path

from jobmail.errors import StoreUnavailable
from jobmail.log import get_logger
from jobmail.models import FactRecord, IdentityKey, PersistedRecord, Status, parse_timestamp
from jobmail.stores.base import MergeFn, RecordStore, match_record

log = get_logger(__name__)

HEADERS: list[str] = [
    "record_id", "company", "role", "status", "platform", "application_date",
    "last_response_date", "source_link", "confidence", "is_job_related", "created_at",
]


def _lock(f, exclusive: bool = True) -> None:
    """Advisory file lock (Unix fcntl)."""
    try:
        op = fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH
        fcntl.flock(f.fileno(), op)
    except (OSError, AttributeError):
        pass


def _unlock(f) -> None:
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except (OSError, AttributeError):
        pass


def _to_row(r: PersistedRecord) -> dict[str, str]:
    return {
        "record_id": r.record_id,
        "company": r.company,
        "role": r.role,
        "status": r.status.value,
        "platform": r.platform,
        "application_date": r.application_date.isoformat() if r.application_date else "",
        "last_response_date": r.last_response_date.isoformat() if r.last_response_date else "",
        "source_link": r.source_link,
        "confidence": f"{r.confidence:.2f}" if r.confidence is not None else "",
        "is_job_related": "" if r.is_job_related is None else str(r.is_job_related).lower(),
        "created_at": r.created_at.isoformat() if r.created_at else "",
    }


def _from_row(row: dict[str, str]) -> PersistedRecord:
    flag = (row.get("is_job_related") or "").lower()
    return PersistedRecord(
        record_id=row["record_id"],
        company=row.get("company", ""),
        role=row.get("role", ""),
        status=Status.parse(row.get("status")) or Status.APPLIED,
        platform=row.get("platform", ""),
        application_date=date.fromisoformat(row["application_date"]) if row.get("application_date") else None,
        last_response_date=parse_timestamp(row["last_response_date"]) if row.get("last_response_date") else None,
        source_link=row.get("source_link", ""),
        confidence=float(row["confidence"]) if row.get("confidence") else None,
        is_job_related={"true": True, "false": False}.get(flag),
        created_at=parse_timestamp(row["created_at"]) if row.get("created_at") else None,
    )


class CsvStore(RecordStore):
    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def ensure_file(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if not self.path.exists():
                with open(self.path, "w", newline="", encoding="utf-8") as f:
                    _lock(f)
                    csv.writer(f).writerow(HEADERS)
                    _unlock(f)
                log.info("Created application tracker → %s", self.path.name)
        except OSError as exc:
            raise StoreUnavailable(f"cannot create {self.path}", exc) from exc

    def all_records(self) -> list[PersistedRecord]:
        self.ensure_file()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                _lock(f, exclusive=False)
                rows = list(csv.DictReader(f))
                _unlock(f)
        except OSError as exc:
            raise StoreUnavailable(f"cannot read {self.path}", exc) from exc
        try:
            return [_from_row(r) for r in rows]
        except (KeyError, ValueError) as exc:
            raise StoreUnavailable(f"corrupt row in {self.path}", exc) from exc

    def find_record(self, key: IdentityKey) -> PersistedRecord | None:
        return match_record(key, self.all_records())

    def create_record(self, fact: FactRecord) -> PersistedRecord:
        self.ensure_file()
        record = _new_record(fact)
        try:
            with open(self.path, "a", newline="", encoding="utf-8") as f:
                _lock(f)
                csv.DictWriter(f, fieldnames=HEADERS).writerow(_to_row(record))
                _unlock(f)
        except OSError as exc:
            raise StoreUnavailable(f"cannot append to {self.path}", exc) from exc
        log.debug("Tracked: %s @ %s [%s]", record.role, record.company, record.status.value)
        return record

    def update_record(self, record_id: str, fact: FactRecord) -> PersistedRecord:
        """Rewrite the file under one exclusive lock so concurrent updates do not interleave."""
        self.ensure_file()
        try:
            with open(self.path, "r+", newline="", encoding="utf-8") as f:
                _lock(f)
                try:
                    rows = list(csv.DictReader(f))
                    updated: PersistedRecord | None = None
                    for i, row in enumerate(rows):
                        if row.get("record_id") == record_id:
                            updated = _from_row(row).with_fact(fact)
                            rows[i] = _to_row(updated)
                            break
                    if updated is None:
                        raise StoreUnavailable(f"record {record_id} not found in {self.path.name}")
                    _rewrite(f, rows)
                finally:
                    _unlock(f)
        except OSError as exc:
            raise StoreUnavailable(f"cannot update {self.path}", exc) from exc
        except (KeyError, ValueError) as exc:
            raise StoreUnavailable(f"corrupt row in {self.path}", exc) from exc
        log.debug("Updated %s → %s", record_id, updated.status.value)
        return updated

    def create_or_merge(self, fact: FactRecord, merge: MergeFn) -> tuple[PersistedRecord, bool]:
        """Match, then append or rewrite, all under one exclusive lock.

        A second process or thread creating the same application waits on the
        lock and then finds this record instead of appending a duplicate.
        """
        self.ensure_file()
        try:
            with open(self.path, "r+", newline="", encoding="utf-8") as f:
                _lock(f)
                try:
                    rows = list(csv.DictReader(f))
                    existing = match_record(fact.identity_key(), [_from_row(r) for r in rows])
                    if existing is None:
                        record = _new_record(fact)
                        f.seek(0, io.SEEK_END)
                        csv.DictWriter(f, fieldnames=HEADERS).writerow(_to_row(record))
                    else:
                        record = existing.with_fact(merge(existing, fact))
                        rows = [_to_row(record) if r.get("record_id") == record.record_id else r for r in rows]
                        _rewrite(f, rows)
                finally:
                    _unlock(f)
        except OSError as exc:
            raise StoreUnavailable(f"cannot write {self.path}", exc) from exc
        except (KeyError, ValueError) as exc:
            raise StoreUnavailable(f"corrupt row in {self.path}", exc) from exc
        log.debug("%s %s: %s / %s", "Tracked" if existing is None else "Merged into",
                  record.record_id, record.company, record.role)
        return record, existing is None


def _new_record(fact: FactRecord) -> PersistedRecord:
    return PersistedRecord.from_fact(uuid.uuid4().hex[:12], fact, datetime.now(timezone.utc))


def _rewrite(f, rows: list[dict[str, str]]) -> None:
    buf = io.StringIO()
    w = csv.DictWriter(buf, fieldnames=HEADERS)
    w.writeheader()
    w.writerows(rows)
    f.seek(0)
    f.write(buf.getvalue())
    f.truncate()
