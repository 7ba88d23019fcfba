import base64
from datetime import datetime, timezone

from helpers import FakeResponse, FakeSession

from jobmail.sources import GmailSource, MockSource, get_source
from jobmail.sources.gmail import build_query, clean_body, message_link, parse_message


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def _resource(message_id="abc123", body=None, parts=None, date="Mon, 03 Jun 2024 10:00:00 +0000"):
    headers = [
        {"name": "From", "value": "Acme Corp <careers@acme.com>"},
        {"name": "Subject", "value": "Application received"},
    ]
    if date:
        headers.append({"name": "Date", "value": date})
    payload = {"headers": headers}
    if body is not None:
        payload["body"] = {"data": _b64(body)}
    if parts is not None:
        payload["parts"] = parts
    return {"id": message_id, "internalDate": "1717408800000", "payload": payload}


ENV = {"GMAIL_CLIENT_ID": "cid", "GMAIL_CLIENT_SECRET": "secret", "GMAIL_REFRESH_TOKEN": "refresh"}


def test_build_query_window():
    query = build_query(7, today=datetime(2024, 6, 1, tzinfo=timezone.utc))
    assert query.startswith("after:2024/05/25 ")
    assert "from:linkedin" in query


def test_clean_body_strips_markup():
    assert clean_body("<p>Hello&nbsp;<b>there</b></p>\n\n  &amp; welcome") == "Hello there & welcome"
    assert len(clean_body("x" * 5000)) == 2000


def test_parse_single_part_message():
    message = parse_message(_resource(body="<div>Thank you for applying</div>"))

    assert message.message_id == "abc123"
    assert message.sender == "Acme Corp <careers@acme.com>"
    assert message.subject == "Application received"
    assert message.body == "Thank you for applying"
    assert message.received_at == datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc)
    assert message.source_link == message_link("abc123") == "https://mail.google.com/mail/u/0/#inbox/abc123"


def test_parse_multipart_message_finds_nested_text():
    parts = [
        {"mimeType": "multipart/alternative", "parts": [
            {"mimeType": "text/plain", "body": {"data": _b64("Interview invitation")}},
        ]},
        {"mimeType": "application/pdf", "body": {"attachmentId": "att"}},
    ]
    assert parse_message(_resource(parts=parts)).body == "Interview invitation"


def test_parse_falls_back_to_internal_date():
    message = parse_message(_resource(body="hi", date=None))
    assert message.received_at == datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc)


def test_unreadable_message_is_skipped():
    assert parse_message({"id": "broken"}) is None


def test_fetch_candidate_messages():
    session = FakeSession([
        FakeResponse({"access_token": "tok"}),
        FakeResponse({"messages": [{"id": "abc123"}, {"id": "broken"}]}),
        FakeResponse(_resource(body="Thank you for applying")),
        FakeResponse({"id": "broken"}),
    ])
    source = GmailSource(ENV.get, session=session)

    messages = source.fetch_candidate_messages(max_results=10, days_back=3)

    assert [m.message_id for m in messages] == ["abc123"]
    token_call, list_call, get_call, _ = session.requests
    assert token_call[0] == "POST"
    assert token_call[2]["data"]["grant_type"] == "refresh_token"
    assert list_call[2]["params"]["maxResults"] == 10
    assert list_call[2]["headers"] == {"Authorization": "Bearer tok"}
    assert get_call[1].endswith("/messages/abc123")
    assert get_call[2]["params"] == {"format": "full"}


def test_empty_listing():
    session = FakeSession([FakeResponse({"access_token": "tok"}), FakeResponse({"resultSizeEstimate": 0})])
    assert GmailSource(ENV.get, session=session).fetch_candidate_messages() == []


def test_source_factory():
    assert isinstance(get_source(lambda k: ENV.get(k, "")), GmailSource)
    assert isinstance(get_source(lambda _k: ""), MockSource)
