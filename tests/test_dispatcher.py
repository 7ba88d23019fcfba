import pytest

from helpers import NOW, FakeClassifier, RecordingStore, classifier_reply, make_message

from jobmail.classifier import ClassifierAdapter
from jobmail.coordinator import ExtractionCoordinator
from jobmail.dispatcher import Dispatcher
from jobmail.errors import MalformedInput, StoreUnavailable
from jobmail.models import ItemState
from jobmail.reconciler import Reconciler
from jobmail.retry import RetryPolicy

COMPANIES = ["Acme", "Globex", "Initech", "Umbrella", "Hooli"]


def _dispatcher(store, classify=None, sleeps=None, policy=None):
    return Dispatcher(
        ExtractionCoordinator(ClassifierAdapter(classify), clock=lambda: NOW),
        Reconciler(store),
        retry_policy=policy or RetryPolicy(),
        sleep=(sleeps.append if sleeps is not None else lambda _s: None),
    )


def _batch():
    return [
        make_message(f"m-{i}", sender=f"{name} <hr@{name.lower()}.com>", subject="Application received")
        for i, name in enumerate(COMPANIES, start=1)
    ]


def test_unknown_job_relation_proceeds_to_commit():
    store = RecordingStore()
    result = _dispatcher(store).process_one(make_message(sender="Acme <hr@acme.com>"))

    assert result.state is ItemState.COMMITTED
    assert result.created is True
    assert result.record.company == "Acme"
    assert result.attempts == 1


def test_veto_skips_without_touching_the_store():
    store = RecordingStore()
    fake = FakeClassifier(classifier_reply(isJobRelated=False, confidence=0.9))
    result = _dispatcher(store, fake).process_one(make_message(subject="Your weekly newsletter"))

    assert result.state is ItemState.SKIPPED
    assert result.reason == "not job-related"
    assert result.record is None
    assert store.calls == []


def test_classifier_outage_still_commits():
    store = RecordingStore()
    fake = FakeClassifier(exc=TimeoutError("classifier timed out"))
    result = _dispatcher(store, fake).process_one(make_message(sender="Acme <hr@acme.com>"))

    assert result.state is ItemState.COMMITTED
    assert result.record.is_job_related is None


def test_replayed_message_updates_instead_of_duplicating():
    store = RecordingStore()
    dispatcher = _dispatcher(store)
    message = make_message(sender="Acme <hr@acme.com>", subject="Interview for the QA Engineer role")

    first = dispatcher.process_one(message)
    second = dispatcher.process_one(message)

    assert first.created is True
    assert second.created is False
    assert len(store.records) == 1


def test_retryable_store_error_is_retried_with_backoff():
    store = RecordingStore(fail_links={"https://mail.example/m-1"}, fail_times=1)
    sleeps = []
    result = _dispatcher(store, sleeps=sleeps).process_one(make_message(sender="Acme <hr@acme.com>"))

    assert result.state is ItemState.COMMITTED
    assert result.attempts == 2
    assert sleeps == [2.0]


def test_single_item_failure_propagates_after_budget():
    store = RecordingStore(fail_links={"https://mail.example/m-1"})

    with pytest.raises(StoreUnavailable):
        _dispatcher(store).process_one(make_message(sender="Acme <hr@acme.com>"))
    assert store.calls.count("create") == 2


def test_failure_can_be_reported_instead_of_raised():
    store = RecordingStore(fail_links={"https://mail.example/m-1"})
    result = _dispatcher(store).process_one(make_message(), raise_on_failure=False)

    assert result.state is ItemState.FAILED
    assert result.reason.startswith("StoreUnavailable")
    assert result.attempts == 2


def test_batch_isolates_failing_item():
    store = RecordingStore(fail_links={"https://mail.example/m-3"})
    summary = _dispatcher(store, policy=RetryPolicy(max_attempts=2, base_delay=0)).process_batch(_batch())

    assert summary.processed == 4
    assert summary.failed == 1
    assert summary.created == 4
    assert summary.results[2].state is ItemState.FAILED
    assert summary.results[2].message_id == "m-3"
    assert [r.state for r in summary.results[3:]] == [ItemState.COMMITTED, ItemState.COMMITTED]
    assert len(store.records) == 4


def test_malformed_payload_fails_only_that_item():
    store = RecordingStore()
    payloads = [
        {"id": "a-1", "from": "Acme <hr@acme.com>", "subject": "Hi", "body": "", "date": "Mon, 03 Jun 2024 10:00:00 +0000"},
        {"subject": "no id at all", "date": "2024-06-03T10:00:00Z"},
        {"id": "a-3", "from": "Globex <hr@globex.com>", "subject": "Hi", "body": "", "date": "not a date"},
    ]
    summary = _dispatcher(store).process_batch(payloads)

    assert [r.state for r in summary.results] == [ItemState.COMMITTED, ItemState.FAILED, ItemState.FAILED]
    assert "MalformedInput" in summary.results[1].reason
    assert summary.results[1].attempts == 0


def test_malformed_single_item_raises():
    with pytest.raises(MalformedInput):
        _dispatcher(RecordingStore()).process_one({"subject": "missing id"})


def test_batch_counts_skips_separately():
    store = RecordingStore()
    fake = FakeClassifier(classifier_reply(isJobRelated=False, confidence=0.95))
    summary = _dispatcher(store, fake).process_batch(_batch()[:2])

    assert summary.skipped == 2
    assert summary.processed == 0
    assert summary.as_dict()["total"] == 2
