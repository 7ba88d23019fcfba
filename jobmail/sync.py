"""
Email → application tracker sync.

Runs: fetch candidate emails → enqueue → workers (patterns + classifier → reconcile) → summary.
"""
from __future__ import annotations

from typing import Any

from jobmail.classifier import ClassifierAdapter, ClassifyFn, get_classifier
from jobmail.config import Settings, ensure_dirs, get_env, load_settings
from jobmail.coordinator import ExtractionCoordinator
from jobmail.dispatcher import Dispatcher
from jobmail.log import get_logger
from jobmail.models import ItemState
from jobmail.reconciler import Reconciler
from jobmail.sources import MessageSource, get_source
from jobmail.stores import RecordStore, get_store
from jobmail.work_queue import WorkerPool, WorkQueue

log = get_logger(__name__)


def build_dispatcher(
    settings: Settings,
    store: RecordStore,
    classify: ClassifyFn | None,
) -> Dispatcher:
    adapter = ClassifierAdapter(
        classify,
        threshold=settings.confidence_threshold,
        excerpt_chars=settings.excerpt_chars,
        excerpt_lines=settings.excerpt_lines,
    )
    return Dispatcher(
        ExtractionCoordinator(adapter),
        Reconciler(store),
        retry_policy=settings.retry_policy(),
    )


def run_sync(
    *,
    settings: Settings | None = None,
    source: MessageSource | None = None,
    store: RecordStore | None = None,
    classify: ClassifyFn | None = None,
    dry_run: bool = False,
    max_results: int | None = None,
    days_back: int | None = None,
    pool_hook=None,
) -> dict[str, Any]:
    """One full sync. Collaborators default to what the environment configures.

    *pool_hook*, when given, receives the worker pool before it starts so the
    caller can wire shutdown signals to it.
    """
    settings = settings or load_settings()
    ensure_dirs()
    source = source or get_source(get_env)
    store = store or get_store(settings, get_env, dry_run=dry_run)
    if classify is None:
        classify = get_classifier(get_env)

    messages = source.fetch_candidate_messages(
        max_results=settings.max_results if max_results is None else max_results,
        days_back=settings.days_back if days_back is None else days_back,
    )
    log.info("Fetched %d candidate message(s)", len(messages))
    if not messages:
        return {"total_emails": 0, "processed": 0, "skipped": 0, "failed": 0, "created": 0, "updated": 0}

    queue = WorkQueue(default_delay=settings.enqueue_delay)
    queue.enqueue_bulk(messages)
    pool = WorkerPool(build_dispatcher(settings, store, classify), queue, concurrency=settings.concurrency)
    if pool_hook is not None:
        pool_hook(pool)
    summary = pool.run_until_empty()

    for r in summary.results:
        if r.state is ItemState.FAILED:
            log.warning("  %s failed: %s", r.message_id, r.reason)

    result = summary.as_dict()
    result["total_emails"] = len(messages)
    log.info(
        "Sync complete — emails=%d, processed=%d (created=%d, updated=%d), skipped=%d, failed=%d",
        len(messages), summary.processed, summary.created, summary.updated, summary.skipped, summary.failed,
    )
    return result
