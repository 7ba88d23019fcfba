"""Priority work queue with delayed dispatch, drained by a bounded worker pool."""
from __future__ import annotations

import heapq
import itertools
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from jobmail.dispatcher import Dispatcher, MessageLike
from jobmail.log import get_logger
from jobmail.models import BatchSummary, ItemState, ProcessResult

log = get_logger(__name__)


@dataclass
class Delivery:
    message: MessageLike
    priority: int
    seq: int


class WorkQueue:
    """Thread-safe queue; higher priority first, FIFO within a priority.

    An item enqueued with a delay is invisible to ``dequeue`` until the delay
    has elapsed.
    """

    def __init__(self, default_delay: float = 0.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.default_delay = default_delay
        self.clock = clock
        self._ready: list[tuple[int, int, Delivery]] = []
        self._delayed: list[tuple[float, int, Delivery]] = []
        self._seq = itertools.count()
        self._cond = threading.Condition()
        self._active = 0
        self._completed = 0
        self._failed = 0
        self._skipped = 0

    def enqueue(self, message: MessageLike, priority: int = 0, delay: float | None = None) -> Delivery:
        delay = self.default_delay if delay is None else delay
        now = self.clock()
        delivery = Delivery(message=message, priority=priority, seq=next(self._seq))
        with self._cond:
            if delay > 0:
                heapq.heappush(self._delayed, (now + delay, delivery.seq, delivery))
            else:
                heapq.heappush(self._ready, (-priority, delivery.seq, delivery))
            self._cond.notify()
        return delivery

    def enqueue_bulk(self, messages: Iterable[MessageLike], delay: float | None = None) -> list[Delivery]:
        """Earlier messages get higher priority (``10 - index``)."""
        deliveries = [self.enqueue(m, priority=10 - i, delay=delay) for i, m in enumerate(messages)]
        log.info("Added %d message(s) to queue", len(deliveries))
        return deliveries

    def _promote_due(self) -> None:
        now = self.clock()
        while self._delayed and self._delayed[0][0] <= now:
            _, seq, delivery = heapq.heappop(self._delayed)
            heapq.heappush(self._ready, (-delivery.priority, seq, delivery))

    def dequeue(self, timeout: float | None = None) -> Delivery | None:
        """Next ready delivery, or None once *timeout* seconds pass without one."""
        deadline = None if timeout is None else self.clock() + timeout
        with self._cond:
            while True:
                self._promote_due()
                if self._ready:
                    _, _, delivery = heapq.heappop(self._ready)
                    self._active += 1
                    return delivery
                now = self.clock()
                waits = []
                if deadline is not None:
                    if now >= deadline:
                        return None
                    waits.append(deadline - now)
                if self._delayed:
                    waits.append(max(self._delayed[0][0] - now, 0.0))
                self._cond.wait(min(waits) if waits else None)

    def ack(self, delivery: Delivery, state: ItemState) -> None:
        with self._cond:
            self._active -= 1
            if state is ItemState.FAILED:
                self._failed += 1
            elif state is ItemState.SKIPPED:
                self._skipped += 1
            else:
                self._completed += 1
            self._cond.notify_all()

    def is_drained(self) -> bool:
        with self._cond:
            return not self._ready and not self._delayed and self._active == 0

    def stats(self) -> dict[str, int]:
        with self._cond:
            self._promote_due()
            return {
                "waiting": len(self._ready),
                "delayed": len(self._delayed),
                "active": self._active,
                "completed": self._completed,
                "skipped": self._skipped,
                "failed": self._failed,
            }


class WorkerPool:
    """Workers take one message at a time and run it end to end.

    ``shutdown()`` lets every worker finish its current message and stop taking
    new ones; queued messages stay in the queue.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        queue: WorkQueue,
        concurrency: int = 2,
        poll_interval: float = 0.5,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        self.dispatcher = dispatcher
        self.queue = queue
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._summary = BatchSummary()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def shutdown(self) -> None:
        if not self._stop.is_set():
            log.info("Shutdown requested — finishing in-flight messages")
        self._stop.set()

    def _record(self, result: ProcessResult) -> None:
        with self._lock:
            self._summary.add(result)

    def _work(self, worker_no: int) -> None:
        log.debug("Worker %d started", worker_no)
        while not self._stop.is_set():
            delivery = self.queue.dequeue(timeout=self.poll_interval)
            if delivery is None:
                if self.queue.is_drained():
                    break
                continue
            result = self.dispatcher.process_one(delivery.message, raise_on_failure=False)
            self.queue.ack(delivery, result.state)
            self._record(result)
        log.debug("Worker %d stopped", worker_no)

    def run_until_empty(self) -> BatchSummary:
        """Drain the queue (or stop early on shutdown) and summarize what was processed."""
        self._summary = BatchSummary()
        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="jobmail-worker") as pool:
            futures = [pool.submit(self._work, n) for n in range(1, self.concurrency + 1)]
            for future in futures:
                future.result()
        s = self._summary
        log.info(
            "Queue run complete — processed=%d, skipped=%d, failed=%d, remaining=%s",
            s.processed, s.skipped, s.failed, self.queue.stats(),
        )
        return s

    def status(self) -> dict[str, Any]:
        return {
            "is_running": not self._stop.is_set(),
            "concurrency": self.concurrency,
            "queue": self.queue.stats(),
        }
