from .base import MessageSource
from .gmail import GmailSource
from .mock import MockSource

from jobmail.log import get_logger

log = get_logger(__name__)

__all__ = ["MessageSource", "GmailSource", "MockSource", "get_source"]


def get_source(env_getter) -> MessageSource:
    if env_getter("GMAIL_CLIENT_ID") and env_getter("GMAIL_CLIENT_SECRET") and env_getter("GMAIL_REFRESH_TOKEN"):
        log.info("Registered source: Gmail")
        return GmailSource(env_getter)

    log.info("No Gmail credentials found — using MockSource")
    return MockSource()
