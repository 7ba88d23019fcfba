"""Drive messages through extraction and reconciliation, one item at a time.

Each item moves ``Pending → Extracting → Reconciling`` and ends ``Committed``,
``Skipped`` (classifier veto) or ``Failed``. Retryable errors are re-attempted
under the injected :class:`RetryPolicy`; a failing item never aborts a batch.
"""
from __future__ import annotations

import time
from typing import Any, Callable, Iterable, Union

from jobmail.coordinator import ExtractionCoordinator
from jobmail.errors import NotJobRelated
from jobmail.log import get_logger
from jobmail.models import BatchSummary, ItemState, ProcessResult, RawMessage
from jobmail.reconciler import ReconcileOutcome, Reconciler
from jobmail.retry import RetryPolicy

log = get_logger(__name__)

MessageLike = Union[RawMessage, dict]


class Dispatcher:
    def __init__(
        self,
        coordinator: ExtractionCoordinator,
        reconciler: Reconciler,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.coordinator = coordinator
        self.reconciler = reconciler
        self.retry_policy = retry_policy or RetryPolicy()
        self.sleep = sleep

    def _attempt(self, message: RawMessage, result: ProcessResult) -> ReconcileOutcome:
        result.attempts += 1
        result.state = ItemState.EXTRACTING
        fact = self.coordinator.extract(message)
        if fact.is_job_related is False:
            raise NotJobRelated(f"classifier vetoed message (confidence {fact.confidence:.2f})")

        result.state = ItemState.RECONCILING
        log.debug("%s → Reconciling (%s / %s)", message.message_id, fact.company, fact.role)
        return self.reconciler.reconcile(fact)

    def process_one(self, message: MessageLike, raise_on_failure: bool = True) -> ProcessResult:
        """Run one message to a final state.

        With ``raise_on_failure`` the final error of a failed item is re-raised;
        otherwise it is recorded in ``reason`` and the result is returned.
        """
        result = ProcessResult(message_id=_message_id(message), state=ItemState.PENDING)
        try:
            if not isinstance(message, RawMessage):
                message = RawMessage.from_dict(message)
            message.validate()
            outcome = self.retry_policy.call(self._attempt, message, result, sleep=self.sleep)
        except NotJobRelated as exc:
            result.state = ItemState.SKIPPED
            result.reason = "not job-related"
            log.info("Skipping non-job-related message %s: %s", result.message_id, exc)
            return result
        except Exception as exc:
            return self._fail(result, exc, raise_on_failure)

        result.state = ItemState.COMMITTED
        result.record = outcome.record
        result.created = outcome.created
        log.info(
            "Committed %s → %s (%s) after %d attempt(s)",
            result.message_id, outcome.record_id, "created" if outcome.created else "updated", result.attempts,
        )
        return result

    def _fail(self, result: ProcessResult, exc: Exception, raise_on_failure: bool) -> ProcessResult:
        failed_in = result.state
        result.state = ItemState.FAILED
        result.reason = f"{type(exc).__name__}: {exc}"
        log.error("Message %s failed while %s: %s", result.message_id, failed_in.value, result.reason)
        if raise_on_failure:
            raise exc
        return result

    def process_batch(self, messages: Iterable[MessageLike]) -> BatchSummary:
        summary = BatchSummary()
        for message in messages:
            summary.add(self.process_one(message, raise_on_failure=False))
        log.info(
            "Batch complete — processed=%d, skipped=%d, failed=%d",
            summary.processed, summary.skipped, summary.failed,
        )
        return summary


def _message_id(message: Any) -> str:
    if isinstance(message, RawMessage):
        return message.message_id or "<missing id>"
    if isinstance(message, dict):
        return str(message.get("message_id") or message.get("id") or "<missing id>")
    return "<invalid>"
