import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime, timedelta, timezone

import pytest

from helpers import NOW, RecordingStore, SlowLookupStore

from jobmail.errors import StoreUnavailable
from jobmail.models import FactRecord, Status
from jobmail.reconciler import Reconciler, merge_into
from jobmail.stores import CsvStore, MemoryStore

LINK = "https://mail.example/m-1"


def _fact(**overrides) -> FactRecord:
    fields = dict(
        company="Acme Corp",
        role="Backend Developer",
        status=Status.APPLIED,
        platform="Direct",
        application_date=date(2024, 5, 1),
        last_response_date=NOW,
        source_link=LINK,
    )
    fields.update(overrides)
    return FactRecord(**fields)


@pytest.fixture
def store():
    return MemoryStore()


def test_same_fact_twice_creates_one_record(store):
    reconciler = Reconciler(store)
    first = reconciler.reconcile(_fact())
    second = reconciler.reconcile(_fact())

    assert first.created is True
    assert second.created is False
    assert second.record_id == first.record_id
    assert len(store.records) == 1


def test_status_does_not_regress_to_default_without_corroboration(store):
    reconciler = Reconciler(store)
    reconciler.reconcile(_fact(status=Status.INTERVIEW))
    outcome = reconciler.reconcile(_fact(status=Status.APPLIED))

    assert outcome.record.status is Status.INTERVIEW


def test_corroborated_fact_may_set_default_status(store):
    reconciler = Reconciler(store)
    reconciler.reconcile(_fact(status=Status.INTERVIEW))
    outcome = reconciler.reconcile(_fact(status=Status.APPLIED, confidence=0.9, is_job_related=True))

    assert outcome.record.status is Status.APPLIED
    assert outcome.record.confidence == 0.9


def test_specific_status_changes_apply(store):
    reconciler = Reconciler(store)
    reconciler.reconcile(_fact(status=Status.INTERVIEW))
    outcome = reconciler.reconcile(_fact(status=Status.REJECTED))

    assert outcome.record.status is Status.REJECTED


def test_link_match_keeps_known_company_and_role(store):
    reconciler = Reconciler(store)
    reconciler.reconcile(_fact())
    outcome = reconciler.reconcile(_fact(company="Unknown", role="Not specified", platform="LinkedIn"))

    assert outcome.created is False
    assert outcome.record.company == "Acme Corp"
    assert outcome.record.role == "Backend Developer"
    assert outcome.record.platform == "LinkedIn"


def test_primary_match_is_case_and_substring_insensitive(store):
    reconciler = Reconciler(store)
    reconciler.reconcile(_fact(company="Acme Corporation", role="Senior Backend Developer"))
    outcome = reconciler.reconcile(_fact(company="acme", role="backend developer", source_link="other-link"))

    assert outcome.created is False
    assert len(store.records) == 1


def test_different_application_is_created(store):
    reconciler = Reconciler(store)
    reconciler.reconcile(_fact())
    outcome = reconciler.reconcile(_fact(company="Globex", role="Data Scientist", source_link="other-link"))

    assert outcome.created is True
    assert len(store.records) == 2


def test_application_date_fixed_and_response_date_moves(store):
    reconciler = Reconciler(store)
    created = reconciler.reconcile(_fact())
    later = NOW + timedelta(days=3)
    outcome = reconciler.reconcile(_fact(application_date=date(2024, 5, 20), last_response_date=later))

    assert outcome.record.application_date == date(2024, 5, 1)
    assert outcome.record.last_response_date == later
    assert outcome.record.created_at == created.record.created_at


def test_application_date_defaults_to_received_date_on_create(store):
    outcome = Reconciler(store).reconcile(_fact(application_date=None))
    assert outcome.record.application_date == NOW.date()


def test_merge_keeps_confidence_when_incoming_has_none(store):
    existing = store.create_record(_fact(confidence=0.8, is_job_related=True))
    merged = merge_into(existing, _fact())

    assert merged.confidence == 0.8
    assert merged.is_job_related is True


def test_store_errors_propagate_without_retry():
    class BrokenStore(RecordingStore):
        def find_record(self, key):
            self.calls.append("find")
            raise StoreUnavailable("lookup failed", ConnectionError("reset"))

    store = BrokenStore()
    with pytest.raises(StoreUnavailable, match="lookup failed: reset"):
        Reconciler(store).reconcile(_fact())
    assert store.calls == ["find"]


def test_created_at_set_once(store):
    reconciler = Reconciler(store)
    before = datetime.now(timezone.utc)
    outcome = reconciler.reconcile(_fact())

    assert outcome.record.created_at >= before


class SlowCsvStore(CsvStore):
    def find_record(self, key):
        found = super().find_record(key)
        time.sleep(0.2)
        return found


@pytest.fixture(params=["memory", "csv"])
def slow_store(request, tmp_path):
    if request.param == "memory":
        return SlowLookupStore()
    store = SlowCsvStore(tmp_path / "apps.csv")
    store.ensure_file()
    return store


def _stored(store):
    return list(store.records.values()) if isinstance(store, MemoryStore) else store.all_records()


def test_parallel_creates_of_one_identity_merge(slow_store):
    reconciler = Reconciler(slow_store)
    facts = [_fact(source_link="link-a"), _fact(status=Status.INTERVIEW, source_link="link-b")]

    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = list(pool.map(reconciler.reconcile, facts))

    assert sorted(o.created for o in outcomes) == [False, True]
    assert outcomes[0].record_id == outcomes[1].record_id
    records = _stored(slow_store)
    assert len(records) == 1
    assert records[0].status is Status.INTERVIEW
