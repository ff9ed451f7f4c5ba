import base64
from datetime import datetime, timezone

import pytest

from heimdr.models import Email
from heimdr.models.email import RiskLevel
from heimdr.services import analysis_pipeline, email_sync
from heimdr.services.email_sync import (
    FetchResult,
    ProviderNotConnected,
    analyze_pending_emails,
    fetch_gmail_emails,
    fetch_outlook_emails,
    parse_gmail_date,
    run_scheduled_analysis,
    run_scheduled_fetch,
)
from heimdr.services.gmail_service import GmailAuthError
from heimdr.services.risk_analyzer import RiskAssessment

USER_ID = "user-1"


def b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def gmail_message(msg_id, subject="Hei", sender="a@b.no", body="Body text"):
    headers = [
        {"name": "From", "value": sender},
        {"name": "Subject", "value": subject},
        {"name": "Date", "value": "Wed, 01 May 2024 10:00:00 +0200"},
    ]
    return {
        "id": msg_id,
        "payload": {
            "mimeType": "text/plain",
            "headers": [h for h in headers if h["value"] is not None],
            "body": {"data": b64(body)},
        },
    }


class FakeGmailClient:
    messages = {}
    fail_on = None

    def __init__(self, db, user_id, token):
        self.user_id = user_id

    def list_recent_message_ids(self, max_results=10):
        return list(self.messages)[:max_results]

    def get_full_message(self, message_id):
        if message_id == self.fail_on:
            raise GmailAuthError("Failed to refresh access token")
        return self.messages[message_id]


class FakeOutlookClient:
    messages = []

    def __init__(self, db, user_id, token):
        self.user_id = user_id

    def list_recent_messages(self, top=25):
        return self.messages[:top]


@pytest.fixture
def analyzed_pipeline(monkeypatch):
    """
    Pipeline stub: everything is high risk. Subjects starting with
    'fail' fail; 'skip' subjects are skipped when validating.
    """
    calls = []

    def fake_run(email_id, from_address, subject, body, validate=True):
        calls.append((email_id, validate))
        if subject.startswith("fail"):
            return {"status": "failed", "error_message": "OpenAI error: boom"}
        if validate and subject.startswith("skip"):
            return {"status": "skipped", "error_message": "Mangler nødvendig innhold for analyse"}
        return {"status": "analyzed", "risk_level": "Høy", "reason": "Mistenkelig"}

    monkeypatch.setattr(email_sync, "run_analysis_pipeline", fake_run)
    return calls


@pytest.fixture
def fake_gmail(monkeypatch):
    FakeGmailClient.messages = {}
    FakeGmailClient.fail_on = None
    monkeypatch.setattr(email_sync, "GmailClient", FakeGmailClient)
    return FakeGmailClient


@pytest.fixture
def fake_outlook(monkeypatch):
    FakeOutlookClient.messages = []
    monkeypatch.setattr(email_sync, "OutlookClient", FakeOutlookClient)
    return FakeOutlookClient


def test_parse_gmail_date():
    parsed = parse_gmail_date("Wed, 01 May 2024 10:00:00 +0200")
    assert parsed == datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)


def test_parse_gmail_date_falls_back_to_now():
    before = datetime.now(timezone.utc)
    assert parse_gmail_date("not a date") >= before
    assert parse_gmail_date("") >= before


def test_fetch_gmail_requires_token(db_session):
    with pytest.raises(ProviderNotConnected):
        fetch_gmail_emails(db_session, USER_ID)


def test_fetch_gmail_stores_and_analyzes(db_session, gmail_token, make_email, fake_gmail, analyzed_pipeline):
    make_email("done", risk_level="Lav", reason="OK")
    make_email("stale")
    fake_gmail.messages = {
        "done": gmail_message("done"),
        "stale": gmail_message("stale", subject="Oppdatert"),
        "new": gmail_message("new", subject="fail me"),
    }

    result = fetch_gmail_emails(db_session, USER_ID)

    assert result.skipped == 1
    assert result.new_emails == 2
    assert result.analysis_errors == [{"id": "new", "error": "OpenAI error: boom"}]
    assert analyzed_pipeline == [("stale", False), ("new", False)]

    stale = db_session.get(Email, "stale")
    assert stale.subject == "Oppdatert"
    assert stale.ai_risk_level == "Høy"
    assert stale.analyzed_at is not None

    new = db_session.get(Email, "new")
    assert new.body == "Body text"
    assert new.source == "gmail"
    assert new.analyzed_at is None


def test_fetch_gmail_stops_on_auth_error(db_session, gmail_token, fake_gmail, analyzed_pipeline):
    fake_gmail.messages = {"m1": gmail_message("m1")}
    fake_gmail.fail_on = "m1"

    with pytest.raises(GmailAuthError):
        fetch_gmail_emails(db_session, USER_ID)


def test_fetch_outlook_inserts_new_only(db_session, outlook_token, make_email, fake_outlook):
    make_email("o1", source="outlook")
    fake_outlook.messages = [
        {"id": "o1", "subject": "Old"},
        {
            "id": "o2",
            "subject": "Faktura",
            "from": {"emailAddress": {"address": "faktura@example.com"}},
            "receivedDateTime": "2024-05-01T10:00:00Z",
            "bodyPreview": "Preview",
            "body": {"contentType": "html", "content": "<p>Betal <b>nå</b></p>"},
        },
    ]

    result = fetch_outlook_emails(db_session, USER_ID)

    assert result.skipped == 1
    assert result.new_emails == 1
    stored = db_session.get(Email, "o2")
    assert stored.from_address == "faktura@example.com"
    assert stored.body == "Betal nå"
    assert stored.source == "outlook"
    assert stored.analyzed_at is None


def test_analyze_pending_emails(db_session, make_email, analyzed_pipeline):
    make_email("a")
    make_email("b", subject="skip this")
    make_email("c", risk_level="Lav", reason="OK")

    result = analyze_pending_emails(db_session, USER_ID)

    assert result.total == 2
    assert [e["id"] for e in result.emails] == ["a"]
    assert result.errors == [{"id": "b", "error": "Mangler nødvendig innhold for analyse"}]
    assert result.to_dict()["new_analyzed_emails"] == 1


def test_scheduled_fetch_collects_errors(db_session, monkeypatch):
    from heimdr.models import GmailToken, OutlookToken
    db_session.add_all([
        GmailToken(user_id="u1", access_token="a"),
        OutlookToken(user_id="u2", access_token="b"),
    ])
    db_session.commit()

    def fake_gmail(db, user_id):
        if user_id != "u1":
            raise ProviderNotConnected("Gmail token not found")
        raise GmailAuthError("Failed to refresh access token")

    def fake_outlook(db, user_id):
        if user_id != "u2":
            raise ProviderNotConnected("Outlook token not found")
        return FetchResult(source="outlook", total=3, skipped=1, emails=[{"id": "x"}, {"id": "y"}])

    monkeypatch.setattr(email_sync, "fetch_gmail_emails", fake_gmail)
    monkeypatch.setattr(email_sync, "fetch_outlook_emails", fake_outlook)

    response = run_scheduled_fetch(db_session)

    assert response["success"] is True
    assert response["processed_users"] == 2
    assert response["new_emails"] == 2
    assert response["errors"] == [
        {"user_id": "u1", "service": "gmail", "error": "Failed to refresh access token"}
    ]


def test_scheduled_analysis_totals(db_session, gmail_token, make_email, analyzed_pipeline):
    make_email("a")
    make_email("b")

    response = run_scheduled_analysis(db_session)

    assert response == {
        "success": True,
        "processed_users": 1,
        "total_new_emails": 2,
        "total_analyzed": 2,
    }


def test_fetch_gmail_classifies_email_without_subject(db_session, gmail_token, fake_gmail, monkeypatch):
    monkeypatch.setattr(
        analysis_pipeline, "analyze_email_risk",
        lambda content: RiskAssessment(risk_level=RiskLevel.HIGH, reason="Ukjent avsender")
    )
    fake_gmail.messages = {"m1": gmail_message("m1", subject=None)}

    result = fetch_gmail_emails(db_session, USER_ID)

    assert result.analysis_errors == []
    stored = db_session.get(Email, "m1")
    assert stored.subject == ""
    assert stored.ai_risk_level == "Høy"
    assert stored.analyzed_at is not None


def test_fetch_gmail_leaves_other_users_email_alone(db_session, gmail_token, make_email, fake_gmail, analyzed_pipeline):
    make_email("shared", user_id="user-2", subject="Tilhører en annen")
    fake_gmail.messages = {"shared": gmail_message("shared", subject="Overskrevet")}

    result = fetch_gmail_emails(db_session, USER_ID)

    assert result.new_emails == 0
    stored = db_session.get(Email, "shared")
    assert stored.user_id == "user-2"
    assert stored.subject == "Tilhører en annen"
