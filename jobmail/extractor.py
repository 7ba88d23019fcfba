"""Rule-based field extraction from a raw message."""
from __future__ import annotations

from datetime import date, datetime, timezone

from jobmail.log import get_logger
from jobmail.models import (
    DEFAULT_STATUS,
    DIRECT_PLATFORM,
    UNKNOWN_COMPANY,
    UNSPECIFIED_ROLE,
    FactRecord,
    RawMessage,
    Status,
)
from jobmail.patterns import (
    COMMON_JOB_TITLES,
    COMPANY_PATTERNS,
    PLATFORM_PATTERNS,
    ROLE_PATTERNS,
    SENDER_DISPLAY_NAME_RE,
    SENDER_DOMAIN_RE,
    STATUS_KEYWORDS,
    format_company_name,
    is_generic_sender,
    parse_first_date,
)

log = get_logger(__name__)


def extract_company(sender: str, subject: str, body: str) -> str:
    m = SENDER_DISPLAY_NAME_RE.search(sender)
    if m:
        name = m.group(1).strip()
        if name and not is_generic_sender(name):
            return name

    text = f"{subject} {body}"
    for pattern in COMPANY_PATTERNS:
        m = pattern.search(text)
        if m and m.group(1) and not is_generic_sender(m.group(1)):
            return m.group(1).strip()

    m = SENDER_DOMAIN_RE.search(sender)
    if m:
        name = format_company_name(m.group(1))
        if name:
            return name

    return UNKNOWN_COMPANY


def extract_role(subject: str, body: str) -> str:
    text = f"{subject} {body}"
    for pattern in ROLE_PATTERNS:
        m = pattern.search(text)
        if m and m.group(1) and m.group(1).strip():
            return m.group(1).strip()

    low = text.lower()
    for title in COMMON_JOB_TITLES:
        if title.lower() in low:
            return title

    return UNSPECIFIED_ROLE


def extract_platform(sender: str, subject: str, body: str) -> str:
    text = f"{sender} {body} {subject}".lower()
    for name, pattern in PLATFORM_PATTERNS:
        if pattern.search(text):
            return name[:1].upper() + name[1:]
    return DIRECT_PLATFORM


def extract_status(subject: str, body: str) -> Status:
    text = f"{subject} {body}".lower()
    for category, phrases in STATUS_KEYWORDS:
        if any(p in text for p in phrases):
            return Status(category)
    return DEFAULT_STATUS


def extract_application_date(body: str, received_at: datetime, now: datetime | None = None) -> date:
    now = now or datetime.now(timezone.utc)
    found = parse_first_date(body, not_after=now)
    return found if found is not None else received_at.date()


def extract_with_patterns(message: RawMessage, now: datetime | None = None) -> FactRecord:
    """Deterministic extraction; never consults the classifier."""
    sender = message.sender or ""
    subject = message.subject or ""
    body = message.body or ""

    fact = FactRecord(
        company=extract_company(sender, subject, body),
        role=extract_role(subject, body),
        status=extract_status(subject, body),
        platform=extract_platform(sender, subject, body),
        application_date=extract_application_date(body, message.received_at, now=now),
        last_response_date=message.received_at,
        source_link=message.source_link,
        confidence=None,
        is_job_related=None,
    )
    log.debug(
        "Patterns for %s: company=%r role=%r status=%s platform=%s",
        message.message_id, fact.company, fact.role, fact.status.value, fact.platform,
    )
    return fact
