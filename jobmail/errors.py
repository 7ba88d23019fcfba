"""Error taxonomy for the extraction and reconciliation pipeline."""
from __future__ import annotations


class JobMailError(Exception):
    """Base class for pipeline errors."""


class ExtractionUnavailable(JobMailError):
    """Classifier transport or parse failure; absorbed by the classifier adapter."""


class NotJobRelated(JobMailError):
    """The classifier vetoed the message. Reported as a skip, never as a failure."""


class MalformedInput(JobMailError):
    """A raw message is missing mandatory identity fields. Fatal for that item only."""


class StoreUnavailable(JobMailError):
    """Lookup or write against the record store failed.

    Propagates unchanged through the reconciliation engine so the dispatcher's
    retry policy can act on it. ``cause`` keeps the transport exception.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause

    def __str__(self) -> str:
        base = super().__str__()
        if self.cause is not None:
            return f"{base}: {self.cause}"
        return base
