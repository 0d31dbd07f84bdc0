from __future__ import annotations

from typing import Callable

import pytest
from fastapi.testclient import TestClient

from backend.app.main import create_app


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch) -> TestClient:
    monkeypatch.setenv("PERSISTENCE_ENABLED", "false")
    monkeypatch.setenv("AUTH_ENABLED", "false")
    monkeypatch.setenv("SMTP_HOST", "")
    monkeypatch.setenv("GEMINI_API_KEY", "")
    monkeypatch.setenv("GOOGLE_ADS_WEBHOOK_SECRET", "ads-secret")
    app = create_app()
    return TestClient(app)


@pytest.fixture()
def application_payload() -> Callable[..., dict]:
    def build(**overrides) -> dict:
        payload = {
            "full_name": "Maria Santos",
            "email": "maria.santos@example.com",
            "phone": "4155550101",
            "address": "100 Market Street",
            "city": "San Francisco",
            "state": "CA",
            "zip": "94105",
            "years_experience": 4,
            "summary": "Four years caring for seniors with dementia.",
            "can_transfer": True,
            "has_dementia_experience": True,
            "hha": True,
            "availability": {"monday": ["morning"], "wednesday": ["afternoon"]},
            "has_car": "yes",
            "valid_license": "yes",
        }
        payload.update(overrides)
        return payload

    return build


@pytest.fixture()
def candidate_id(client: TestClient, application_payload) -> str:
    response = client.post("/candidates/apply", json=application_payload())
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture()
def client_record(client: TestClient) -> dict:
    response = client.post(
        "/clients",
        json={
            "client_name": "Eleanor Whitfield",
            "address": "22 Oak Lane",
            "city": "Oakland",
            "zip": "94610",
            "mobile": "5105550199",
            "email": "eleanor@example.com",
        },
    )
    assert response.status_code == 201
    return response.json()
