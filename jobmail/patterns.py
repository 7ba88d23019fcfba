"""Ordered pattern tables for rule-based extraction.

Every table is evaluated first-match-wins, so list order is the priority.
"""
from __future__ import annotations

import re
from datetime import date, datetime
from typing import Callable, Optional

_COMPANY_SUFFIX = r"(?:Inc|LLC|Corp|Company|Technologies|Tech|Solutions|Systems|Services|Group|Ltd|Limited)"
_NAME = r"[A-Z][a-zA-Z\s&.,'-]+"

# "Acme Corp <jobs@acme.com>" → "Acme Corp". Case-sensitive: the
# display name must start with a capital letter.
SENDER_DISPLAY_NAME_RE = re.compile(r"(" + _NAME + r")\s*<")
SENDER_DOMAIN_RE = re.compile(r"@([^.]+)")

GENERIC_SENDER_MARKERS: tuple[str, ...] = (
    "noreply", "no-reply", "donotreply", "admin", "support", "info",
    "notification", "alert", "system", "automated", "bot",
)

COMPANY_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"from:?\s*(" + _NAME + r"(?:\s" + _COMPANY_SUFFIX + r")?)(?:\s*<|@)", re.IGNORECASE),
    re.compile(r"on behalf of\s+(" + _NAME + r")", re.IGNORECASE),
    re.compile(r"at\s+(" + _NAME + r"(?:\s" + _COMPANY_SUFFIX + r"))", re.IGNORECASE),
    re.compile(r"from\s+(" + _NAME + r")\s+team", re.IGNORECASE),
)

_ROLE = r"[A-Z][a-zA-Z\s\-,()]+?"

ROLE_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"(?:position|role|job)\s+(?:of|for|as)?\s*:?\s*(" + _ROLE + r")(?:\s+at|\s+with|\s+\-|\s*$)", re.IGNORECASE),
    re.compile(r"apply(?:ing)?\s+(?:for|to)\s+(?:the\s+)?(?:position\s+of\s+)?(" + _ROLE + r")(?:\s+at|\s+with|\s+role|\s*$)", re.IGNORECASE),
    re.compile(r"subject:.*?(" + _ROLE + r")\s+(?:position|role|opportunity|job)", re.IGNORECASE),
    re.compile(r"interview\s+for\s+(?:the\s+)?(" + _ROLE + r")(?:\s+position|\s+role|\s+at)", re.IGNORECASE),
)

COMMON_JOB_TITLES: tuple[str, ...] = (
    "Software Engineer", "Developer", "Frontend Developer", "Backend Developer",
    "Full Stack Developer", "Data Scientist", "Product Manager", "Designer",
    "DevOps Engineer", "QA Engineer", "Business Analyst", "Marketing Manager",
)

# Keys are stored with only the first letter upper-cased ("linkedin" -> "Linkedin").
PLATFORM_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    ("linkedin", re.compile(r"linkedin\.com|from.*linkedin", re.IGNORECASE)),
    ("indeed", re.compile(r"indeed\.com|from.*indeed", re.IGNORECASE)),
    ("glassdoor", re.compile(r"glassdoor\.com|from.*glassdoor", re.IGNORECASE)),
    ("naukri", re.compile(r"naukri\.com|from.*naukri", re.IGNORECASE)),
    ("dice", re.compile(r"dice\.com|from.*dice", re.IGNORECASE)),
    ("monster", re.compile(r"monster\.com|from.*monster", re.IGNORECASE)),
    ("ziprecruiter", re.compile(r"ziprecruiter\.com|from.*ziprecruiter", re.IGNORECASE)),
    ("angellist", re.compile(r"angel\.co|wellfound\.com|from.*angel", re.IGNORECASE)),
    ("unstop", re.compile(r"unstop\.com|from.*unstop", re.IGNORECASE)),
)

# Category order matters: the first category with any phrase present wins.
STATUS_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Applied", (
        "application received",
        "thank you for applying",
        "we have received your application",
        "application confirmation",
        "successfully applied",
        "application submitted",
    )),
    ("Interview", (
        "interview",
        "schedule a call",
        "phone screen",
        "technical round",
        "video call",
        "meet with",
        "assessment",
        "coding challenge",
        "next round",
        "been shortlisted",
    )),
    ("Offer", (
        "congratulations",
        "pleased to offer",
        "job offer",
        "offer letter",
        "welcome to",
        "we would like to offer",
        "excited to offer",
    )),
    ("Rejected", (
        "unfortunately",
        "not selected",
        "other candidates",
        "decided to move forward",
        "thank you for your interest, but",
        "we have decided",
        "not proceeding",
        "position has been filled",
    )),
)

_MONTHS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")
_MONTH_NAME = r"(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Oct|Nov|Dec)[a-z]*"


def _year(raw: str) -> int:
    y = int(raw)
    if len(raw) <= 2:
        # Same pivot as strptime's %y.
        y += 2000 if y < 69 else 1900
    return y


def _month(raw: str) -> int:
    return _MONTHS.index(raw[:3].lower()) + 1


def _numeric_date(m: re.Match) -> Optional[date]:
    first, second, year = int(m.group("a")), int(m.group("b")), _year(m.group("y"))
    for day, month in ((first, second), (second, first)):
        try:
            return date(year, month, day)
        except ValueError:
            continue
    return None


def _day_month_year(m: re.Match) -> Optional[date]:
    try:
        return date(_year(m.group("y")), _month(m.group("mon")), int(m.group("d")))
    except ValueError:
        return None


DATE_PATTERNS: tuple[tuple[re.Pattern, Callable[[re.Match], Optional[date]]], ...] = (
    (re.compile(r"\b(?P<a>\d{1,2})[-/](?P<b>\d{1,2})[-/](?P<y>\d{4}|\d{2})\b"), _numeric_date),
    (re.compile(r"\b(?P<d>\d{1,2})\s+(?P<mon>" + _MONTH_NAME + r")\s+(?P<y>\d{4}|\d{2})\b", re.IGNORECASE), _day_month_year),
    (re.compile(r"\b(?P<mon>" + _MONTH_NAME + r")\s+(?P<d>\d{1,2}),?\s+(?P<y>\d{4}|\d{2})\b", re.IGNORECASE), _day_month_year),
)


def is_generic_sender(name: str) -> bool:
    low = name.lower()
    return any(marker in low for marker in GENERIC_SENDER_MARKERS)


def format_company_name(domain_label: str) -> str:
    """``acme-labs`` → ``Acme Labs``. Only the first letter of each segment changes."""
    parts = [p for p in re.split(r"[-_]", domain_label) if p]
    return " ".join(p[:1].upper() + p[1:] for p in parts)


def parse_first_date(text: str, not_after: datetime) -> Optional[date]:
    """First pattern whose first match is a real, non-future date."""
    cutoff = not_after.date()
    for pattern, parse in DATE_PATTERNS:
        m = pattern.search(text)
        if not m:
            continue
        found = parse(m)
        if found is not None and found <= cutoff:
            return found
    return None
