from abc import ABC, abstractmethod

from jobmail.models import RawMessage


class MessageSource(ABC):
    @abstractmethod
    def fetch_candidate_messages(self, max_results: int = 50, days_back: int = 7) -> list[RawMessage]:
        """Candidate job-related messages; empty when nothing matches, raises only on transport failure."""
