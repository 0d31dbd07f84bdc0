from __future__ import annotations

from dataclasses import replace

import pytest

from backend.app.models import GoogleAdsLeadPayload
from backend.app.services.webhooks import (
    LeadPayloadError,
    SignatureVerificationError,
    WebhookNotConfiguredError,
    map_google_ads_lead,
    verify_webhook_key,
)


def _lead_payload(**overrides) -> dict:
    payload = {
        "lead_id": "lead-123",
        "campaign_id": "cmp-9",
        "user_column_data": [
            {"column_id": "FULL_NAME", "string_value": "Rosa Diaz"},
            {"column_id": "EMAIL", "string_value": "rosa@example.com"},
            {"column_id": "PHONE_NUMBER", "string_value": "+14155550177"},
            {"column_id": "CITY", "string_value": "San Mateo"},
        ],
    }
    payload.update(overrides)
    return payload


def test_google_ads_lead_creates_initial_contact(client) -> None:
    response = client.post("/webhooks/google-ads?key=ads-secret", json=_lead_payload())
    assert response.status_code == 200
    assert response.json()["lead_source"] == "Google Ads Lead"
    assert response.json()["status"] == "Google Ads Lead Received"

    contacts = client.get("/initial-contacts").json()
    assert len(contacts) == 1
    contact = contacts[0]
    assert contact["client_name"] == "Rosa Diaz"
    assert contact["client_phone"] == "+14155550177"
    assert contact["status"] == "Google Ads Lead Received"
    assert contact["follow_up_history"] == []
    assert contact["extra_fields"] == {
        "CITY": "San Mateo",
        "lead_id": "lead-123",
        "campaign_id": "cmp-9",
    }


def test_google_ads_wrong_key_is_401(client) -> None:
    response = client.post("/webhooks/google-ads?key=nope", json=_lead_payload())
    assert response.status_code == 401
    assert client.post("/webhooks/google-ads", json=_lead_payload()).status_code == 401


def test_google_ads_non_ascii_key_is_401(client) -> None:
    response = client.post(
        "/webhooks/google-ads", params={"key": "caf\u00e9"}, json=_lead_payload()
    )
    assert response.status_code == 401
    assert client.get("/initial-contacts").json() == []


def test_google_ads_missing_fields_is_400(client) -> None:
    payload = _lead_payload(
        user_column_data=[{"column_id": "FULL_NAME", "string_value": "Rosa Diaz"}]
    )
    response = client.post("/webhooks/google-ads?key=ads-secret", json=payload)
    assert response.status_code == 400
    assert "client_email" in response.json()["detail"]


def test_google_ads_unconfigured_secret_is_500(client) -> None:
    client.app.state.settings = replace(client.app.state.settings, google_ads_webhook_secret="")
    response = client.post("/webhooks/google-ads?key=anything", json=_lead_payload())
    assert response.status_code == 500


def test_verify_webhook_key() -> None:
    verify_webhook_key(" shared ", "shared")
    with pytest.raises(SignatureVerificationError):
        verify_webhook_key("other", "shared")
    with pytest.raises(SignatureVerificationError):
        verify_webhook_key("caf\u00e9", "shared")
    with pytest.raises(WebhookNotConfiguredError):
        verify_webhook_key("shared", "")


def test_map_lead_columns_are_case_insensitive() -> None:
    payload = GoogleAdsLeadPayload.model_validate(
        {
            "user_column_data": [
                {"column_id": "full_name", "string_value": " Rosa "},
                {"column_id": "email", "string_value": "rosa@example.com"},
                {"column_id": "phone_number", "string_value": "4155550177"},
                {"column_id": "NOTES", "string_value": ""},
            ]
        }
    )
    contact, extra = map_google_ads_lead(payload)
    assert contact == {
        "client_name": "Rosa",
        "client_email": "rosa@example.com",
        "client_phone": "4155550177",
    }
    assert extra == {}


def test_map_lead_requires_contact_fields() -> None:
    with pytest.raises(LeadPayloadError):
        map_google_ads_lead(GoogleAdsLeadPayload())
