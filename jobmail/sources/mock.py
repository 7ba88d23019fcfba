"""Mock message source for dry runs and when no Gmail credentials are set."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jobmail.log import get_logger
from jobmail.models import RawMessage
from jobmail.sources.base import MessageSource

log = get_logger(__name__)


class MockSource(MessageSource):
    def __init__(self, now: datetime | None = None) -> None:
        self.now = now

    def fetch_candidate_messages(self, max_results: int = 50, days_back: int = 7) -> list[RawMessage]:
        now = self.now or datetime.now(timezone.utc)
        log.info("MockSource generating sample messages")
        samples = [
            RawMessage(
                message_id="mock-1",
                sender="Acme Corp <careers@acme.com>",
                subject="Application received: Backend Developer",
                body="Thank you for applying to the position of Backend Developer at Acme Corp. "
                     "We have received your application on 3 Mar 2024.",
                received_at=now - timedelta(days=3),
                source_link="https://example.com/mail/mock-1",
            ),
            RawMessage(
                message_id="mock-2",
                sender="LinkedIn <jobs-noreply@linkedin.com>",
                subject="Your application was sent to Globex",
                body="You applied for Data Scientist at Globex Solutions via linkedin.com.",
                received_at=now - timedelta(days=2),
                source_link="https://example.com/mail/mock-2",
            ),
            RawMessage(
                message_id="mock-3",
                sender="Acme Corp <careers@acme.com>",
                subject="Interview for the Backend Developer role",
                body="We would like to schedule a call for the technical round next week.",
                received_at=now - timedelta(days=1),
                source_link="https://example.com/mail/mock-3",
            ),
        ]
        return samples[:max_results]
