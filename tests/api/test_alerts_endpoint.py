from unittest.mock import patch

import pytest


@pytest.mark.parametrize("body", [
    {"email": "not-an-email", "risk": "high"},
    {"email": "ola@nordmann.no", "risk": "low"},
    {"email": "ola@nordmann.no"},
    {"risk": "high"},
    ["ola@nordmann.no"],
])
def test_send_alert_invalid_input(client, body):
    response = client.post("/api/v1/send-alert", json=body)
    assert response.status_code == 400
    assert response.json() == {"error": "Ugyldig input"}


def test_send_alert_malformed_json(client):
    response = client.post(
        "/api/v1/send-alert",
        content="{not json",
        headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 400


def test_send_alert_success(client):
    with patch("heimdr.api.v1.endpoints.alerts.send_alert", return_value={"id": "msg_1"}) as mock_send:
        response = client.post("/api/v1/send-alert", json={"email": "ola@nordmann.no", "risk": "medium"})

    assert response.status_code == 200
    assert response.json() == {"success": True}
    mock_send.assert_called_once_with("ola@nordmann.no", "medium")


def test_send_alert_provider_failure(client):
    with patch("heimdr.api.v1.endpoints.alerts.send_alert", side_effect=RuntimeError("resend down")):
        response = client.post("/api/v1/send-alert", json={"email": "ola@nordmann.no", "risk": "high"})

    assert response.status_code == 500
    assert response.json() == {"error": "Kunne ikke sende varsel"}
