"""Retry policy with exponential backoff — stdlib only."""
from __future__ import annotations

import functools
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Callable, Tuple, Type

from jobmail.errors import StoreUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to attempt an operation and how long to wait in between.

    Attempt ``n`` (1-based) that fails waits
    ``base_delay * backoff_factor ** (n - 1)`` seconds, capped at ``max_delay``.
    """

    max_attempts: int = 2
    base_delay: float = 2.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter: bool = False
    retryable: Tuple[Type[BaseException], ...] = (StoreUnavailable,)

    def delay_for(self, attempt: int) -> float:
        delay = min(self.base_delay * (self.backoff_factor ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random()
        return delay

    def is_retryable(self, exc: BaseException) -> bool:
        return isinstance(exc, self.retryable)

    def call(
        self,
        fn: Callable[..., Any],
        *args: Any,
        sleep: Callable[[float], None] = time.sleep,
        on_retry: Callable[[int, BaseException, float], None] | None = None,
        **kwargs: Any,
    ) -> Any:
        """Run *fn* until it succeeds, raises a non-retryable error, or attempts run out."""
        name = getattr(fn, "__qualname__", repr(fn))
        for attempt in range(1, self.max_attempts + 1):
            try:
                return fn(*args, **kwargs)
            except self.retryable as exc:
                if attempt >= self.max_attempts:
                    logger.error("%s failed after %d attempts: %s", name, self.max_attempts, exc)
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s attempt %d/%d failed (%s), retrying in %.1fs",
                    name,
                    attempt,
                    self.max_attempts,
                    exc,
                    delay,
                )
                if on_retry is not None:
                    on_retry(attempt, exc, delay)
                sleep(delay)
        raise RuntimeError(f"{name}: retry policy allows no attempts")


def retry(
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    retryable: Tuple[Type[BaseException], ...] = (Exception,),
) -> Callable:
    """Decorator: retries the wrapped function with exponential backoff."""
    policy = RetryPolicy(
        max_attempts=max_attempts,
        base_delay=base_delay,
        max_delay=max_delay,
        backoff_factor=backoff_factor,
        jitter=jitter,
        retryable=retryable,
    )

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            return policy.call(fn, *args, **kwargs)

        return wrapper

    return decorator
