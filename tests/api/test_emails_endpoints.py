from datetime import datetime, timezone


def test_emails_requires_user(client):
    response = client.get("/api/v1/emails")
    assert response.status_code == 401


def test_list_analyzed_emails(client, auth_headers, make_email):
    make_email("old", risk_level="Lav", reason="OK", date=datetime(2024, 1, 1, tzinfo=timezone.utc))
    make_email("new", risk_level="Høy", reason="Falsk lenke", date=datetime(2024, 6, 1, tzinfo=timezone.utc))
    make_email("pending")
    make_email("someone-else", user_id="user-2", risk_level="Høy", reason="x")

    response = client.get("/api/v1/emails", headers=auth_headers)

    assert response.status_code == 200
    emails = response.json()["emails"]
    assert [e["id"] for e in emails] == ["new", "old"]
    assert emails[0]["ai_risk_level"] == "Høy"
    assert emails[0]["ai_reason"] == "Falsk lenke"


def test_risk_stats(client, auth_headers, make_email):
    make_email("a", risk_level="Høy", reason="r")
    make_email("b", risk_level="Medium", reason="r")
    make_email("c", risk_level="Lav", reason="r")
    make_email("d", risk_level="Lav", reason="r")
    make_email("e")

    response = client.get("/api/v1/emails/stats", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == {
        "high": 1,
        "medium": 1,
        "low": 2,
        "total_analyzed": 4,
        "percent_high": 25,
        "percent_medium": 25,
        "percent_low": 50,
        "pending": 1,
    }


def test_risk_stats_empty(client, auth_headers):
    response = client.get("/api/v1/emails/stats", headers=auth_headers)
    assert response.json()["percent_high"] == 0
    assert response.json()["total_analyzed"] == 0
