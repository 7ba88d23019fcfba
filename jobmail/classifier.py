"""Classify messages with an LLM and gate its answer on confidence.

The adapter never lets a classifier problem fail the extraction: transport
errors, missing or malformed JSON all degrade to "classifier unavailable" and
the caller keeps the pattern-only result.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Optional

from jobmail.errors import ExtractionUnavailable
from jobmail.log import get_logger
from jobmail.models import FactRecord, RawMessage, Status

log = get_logger(__name__)

ClassifyFn = Callable[[str], str]

DEFAULT_THRESHOLD = 0.6

_PROMPT = """\
You are an expert at analyzing job-related emails. Analyze this email and provide structured information.

Email Details:
- Subject: {subject}
- From: {sender}
- Body (excerpt):
{excerpt}

Initial Analysis (from patterns):
- Company: {company}
- Role: {role}
- Platform: {platform}
- Status: {status}

Instructions:
1. Determine if this is actually a job-related email (hiring, application, interview, etc.)
2. Extract or correct the company name
3. Extract or correct the job role/position
4. Determine the application status: Applied, Interview, Offer, Offer Rejected, or Rejected
5. Identify the platform (LinkedIn, Indeed, Direct, etc.)

Respond in this exact JSON format:
{{
  "isJobRelated": true/false,
  "company": "company name",
  "role": "job role",
  "status": "Applied|Interview|Offer|Offer Rejected|Rejected",
  "platform": "platform name",
  "confidence": 0.0-1.0
}}
"""


def body_excerpt(body: str, max_chars: int = 1500, max_lines: int = 30) -> str:
    lines = [ln.rstrip() for ln in (body or "").splitlines() if ln.strip()]
    excerpt = "\n".join(lines[:max_lines])
    if len(excerpt) > max_chars:
        excerpt = excerpt[:max_chars].rstrip() + "…"
    return excerpt


def build_prompt(
    message: RawMessage,
    base: FactRecord,
    *,
    max_chars: int = 1500,
    max_lines: int = 30,
) -> str:
    return _PROMPT.format(
        subject=message.subject[:300],
        sender=message.sender[:300],
        excerpt=body_excerpt(message.body, max_chars, max_lines),
        company=base.company,
        role=base.role,
        platform=base.platform,
        status=base.status.value,
    )


def first_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` span in *text*, or None.

    Braces inside JSON string literals do not count towards the balance.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # Unbalanced from here on; try the next opening brace.
        start = text.find("{", start + 1)
    return None


def parse_response(text: str) -> dict[str, Any]:
    span = first_json_object(text or "")
    if span is None:
        raise ExtractionUnavailable("classifier response contains no JSON object")
    try:
        data = json.loads(span)
    except json.JSONDecodeError as exc:
        raise ExtractionUnavailable(f"classifier returned malformed JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ExtractionUnavailable("classifier JSON is not an object")
    return data


def _confidence(data: dict[str, Any]) -> float:
    raw = data.get("confidence")
    if isinstance(raw, bool) or raw is None:
        raise ExtractionUnavailable(f"classifier confidence is not a number: {raw!r}")
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ExtractionUnavailable(f"classifier confidence is not a number: {raw!r}") from exc
    return max(0.0, min(1.0, value))


def _text(value: Any, fallback: str) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return fallback


@dataclass
class ClassifierFragment:
    """Classifier output that passed validation.

    A veto carries only ``is_job_related=False`` and the confidence; the field
    overrides are left as None.
    """

    is_job_related: bool
    confidence: float
    company: Optional[str] = None
    role: Optional[str] = None
    status: Optional[Status] = None
    platform: Optional[str] = None

    @property
    def is_veto(self) -> bool:
        return self.is_job_related is False


class ClassifierAdapter:
    def __init__(
        self,
        classify: ClassifyFn | None,
        *,
        threshold: float = DEFAULT_THRESHOLD,
        excerpt_chars: int = 1500,
        excerpt_lines: int = 30,
    ) -> None:
        self.classify = classify
        self.threshold = threshold
        self.excerpt_chars = excerpt_chars
        self.excerpt_lines = excerpt_lines

    def classify_message(self, message: RawMessage, base: FactRecord) -> ClassifierFragment | None:
        if self.classify is None:
            return None
        try:
            return self._classify(message, base)
        except ExtractionUnavailable as exc:
            log.warning("Classifier unavailable for %s, using patterns only: %s", message.message_id, exc)
            return None

    def _classify(self, message: RawMessage, base: FactRecord) -> ClassifierFragment | None:
        prompt = build_prompt(message, base, max_chars=self.excerpt_chars, max_lines=self.excerpt_lines)
        try:
            text = self.classify(prompt)
        except Exception as exc:
            raise ExtractionUnavailable(f"classifier call failed: {exc}") from exc

        data = parse_response(text)
        confidence = _confidence(data)
        job_related = data.get("isJobRelated")

        if confidence <= self.threshold:
            log.debug(
                "Classifier below threshold for %s (%.2f <= %.2f)",
                message.message_id, confidence, self.threshold,
            )
            return None
        if job_related is False:
            log.info("Classifier vetoed %s (confidence %.2f)", message.message_id, confidence)
            return ClassifierFragment(is_job_related=False, confidence=confidence)
        if job_related is not True:
            return None

        status = Status.parse(data.get("status"))
        if status is None:
            status = base.status
        return ClassifierFragment(
            is_job_related=True,
            confidence=confidence,
            company=_text(data.get("company"), base.company),
            role=_text(data.get("role"), base.role),
            status=status,
            platform=_text(data.get("platform"), base.platform),
        )


class GroqClassifier:
    """``classify(prompt) -> str`` over Groq's OpenAI-compatible endpoint."""

    def __init__(self, api_key: str, model: str = "llama-3.3-70b-versatile", max_tokens: int = 300) -> None:
        from openai import OpenAI

        self.client = OpenAI(api_key=api_key, base_url="https://api.groq.com/openai/v1")
        self.model = model
        self.max_tokens = max_tokens

    def __call__(self, prompt: str) -> str:
        r = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self.max_tokens,
            temperature=0.1,
        )
        return (r.choices[0].message.content or "").strip()


def get_classifier(env_getter) -> GroqClassifier | None:
    api_key = env_getter("GROQ_API_KEY")
    if not api_key:
        log.info("No GROQ_API_KEY — classifier disabled, using patterns only")
        return None
    model = env_getter("GROQ_LLM_MODEL") or "llama-3.3-70b-versatile"
    log.info("Registered classifier: Groq (%s)", model)
    return GroqClassifier(api_key, model)
