from __future__ import annotations

import backend.app.main as main_module
from backend.app.models import CareLogExtractionResponse

IMAGE = "data:image/jpeg;base64,/9j/4AAQSkZJRgABAQAAAQABAAD"


def _template(client) -> dict:
    response = client.post(
        "/carelog-templates",
        json={
            "name": "Daily Visit",
            "description": "Standard visit checklist",
            "subsections": ["Meals", "Mobility", " "],
        },
    )
    assert response.status_code == 201
    return response.json()


def _group(client, client_record: dict, **overrides) -> dict:
    payload = {
        "client_id": client_record["id"],
        "caregiver_emails": ["Maria.Santos@example.com"],
        "client_access_enabled": False,
    }
    payload.update(overrides)
    response = client.put("/carelog-groups", json=payload)
    assert response.status_code == 200
    return response.json()


def _log(client, group_id: str, **overrides):
    payload = {
        "care_log_group_id": group_id,
        "caregiver_id": "maria.santos@example.com",
        "caregiver_name": "Maria Santos",
        "log_notes": "Assisted with lunch and a short walk.",
    }
    payload.update(overrides)
    return client.post("/carelogs", json=payload)


def test_template_requires_subsection(client) -> None:
    response = client.post(
        "/carelog-templates", json={"name": "Empty", "subsections": ["  "]}
    )
    assert response.status_code == 422
    assert "please select at least one subsection" in response.text

    template = _template(client)
    assert template["subsections"] == ["Meals", "Mobility"]
    assert [item["id"] for item in client.get("/carelog-templates").json()] == [template["id"]]


def test_template_in_use_cannot_be_deleted(client, client_record) -> None:
    template = _template(client)
    group = _group(client, client_record, care_log_template_id=template["id"])
    assert client.delete(f"/carelog-templates/{template['id']}").status_code == 409

    client.post(f"/carelog-groups/{group['id']}/status", json={"status": "INACTIVE"})
    assert client.delete(f"/carelog-templates/{template['id']}").status_code == 204
    assert client.delete(f"/carelog-templates/{template['id']}").status_code == 404


def test_group_denormalizes_client_and_emails(client, client_record) -> None:
    group = _group(client, client_record)
    assert group["client_name"] == "Eleanor Whitfield"
    assert group["caregiver_emails"] == ["maria.santos@example.com"]
    assert group["status"] == "ACTIVE"

    updated = _group(
        client,
        client_record,
        group_id=group["id"],
        caregiver_emails=["maria.santos@example.com", "joe@example.com"],
    )
    assert updated["id"] == group["id"]
    assert len(updated["caregiver_emails"]) == 2


def test_group_for_unknown_client_is_404(client) -> None:
    response = client.put(
        "/carelog-groups",
        json={"client_id": "cli_missing", "caregiver_emails": ["a@example.com"]},
    )
    assert response.status_code == 404


def test_group_needs_a_caregiver(client, client_record) -> None:
    response = client.put(
        "/carelog-groups", json={"client_id": client_record["id"], "caregiver_emails": []}
    )
    assert response.status_code == 422


def test_submit_and_report_newest_first(client, client_record) -> None:
    group = _group(client, client_record)
    first = _log(client, group["id"], shift_date_time="2030-01-01T16:00:00")
    second = _log(
        client,
        group["id"],
        shift_date_time="2030-01-02T16:00:00",
        log_notes=None,
        template_data={"Meals": "Ate well"},
        log_images=[IMAGE],
    )
    assert first.status_code == 201
    assert second.status_code == 201

    report = client.get(f"/carelog-groups/{group['id']}/carelogs").json()
    assert [item["id"] for item in report] == [second.json()["id"], first.json()["id"]]
    assert report[0]["template_data"] == {"Meals": "Ate well"}


def test_log_needs_notes_or_template_data(client, client_record) -> None:
    group = _group(client, client_record)
    response = _log(client, group["id"], log_notes="  ")
    assert response.status_code == 422
    assert "either log_notes or template_data is required" in response.text


def test_log_images_must_be_data_uris(client, client_record) -> None:
    group = _group(client, client_record)
    response = _log(client, group["id"], log_images=["https://example.com/a.png"])
    assert response.status_code == 422


def test_caregiver_outside_group_is_forbidden(client, client_record) -> None:
    group = _group(client, client_record)
    response = _log(client, group["id"], caregiver_id="stranger@example.com")
    assert response.status_code == 403


def test_inactive_group_rejects_logs(client, client_record) -> None:
    group = _group(client, client_record)
    client.post(f"/carelog-groups/{group['id']}/status", json={"status": "INACTIVE"})
    assert _log(client, group["id"]).status_code == 409

    client.post(f"/carelog-groups/{group['id']}/status", json={"status": "ACTIVE"})
    assert _log(client, group["id"]).status_code == 201


def test_shift_time_defaults_to_now(client, client_record) -> None:
    group = _group(client, client_record)
    body = _log(client, group["id"]).json()
    assert body["shift_date_time"] == body["created_at_utc"]


def test_extraction_uses_model(client, monkeypatch) -> None:
    captured = {}

    def fake_extract(settings, *, image_data_uri, text_content, now_utc):
        captured["image"] = image_data_uri
        return CareLogExtractionResponse(
            shift_date_time="2030-01-02T16:00:00Z", extracted_text="Lunch at noon."
        )

    monkeypatch.setattr(main_module, "extract_care_log", fake_extract)
    response = client.post("/carelogs/extract", json={"image_data_uri": IMAGE})
    assert response.status_code == 200
    assert response.json() == {
        "shift_date_time": "2030-01-02T16:00:00Z",
        "extracted_text": "Lunch at noon.",
    }
    assert captured["image"] == IMAGE


def test_extraction_needs_input(client) -> None:
    assert client.post("/carelogs/extract", json={}).status_code == 422


def test_extraction_unconfigured_is_503(client) -> None:
    response = client.post("/carelogs/extract", json={"text_content": "Shift notes"})
    assert response.status_code == 503
