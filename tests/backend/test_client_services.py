from __future__ import annotations

SIGNATURE = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk"


def test_care_request_notifies_staffing(client, client_record) -> None:
    response = client.post(
        "/care-requests",
        json={
            "client_id": client_record["id"],
            "preferred_date_time": "2030-02-01T17:00:00",
            "duration": "4 hours",
            "reason": "Family out of town for the weekend",
            "urgency": "High",
        },
    )
    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "pending"
    assert body["preferred_caregiver"] == "N/A"
    assert body["client_name"] == "Eleanor Whitfield"

    mail = client.get("/mail").json()
    assert mail[0]["to"] == ["admin-rc@firstlighthomecare.com"]
    assert mail[0]["subject"] == "[Action Required] New Care Request from Eleanor Whitfield"

    reviewed = client.post(
        f"/care-requests/{body['id']}/status",
        json={"status": "scheduled", "admin_notes": "Maria covers Saturday"},
    )
    assert reviewed.status_code == 200
    assert reviewed.json()["status"] == "scheduled"
    assert reviewed.json()["admin_notes"] == "Maria covers Saturday"

    assert client.get("/care-requests", params={"request_status": "pending"}).json() == []


def test_care_request_status_is_validated(client, client_record) -> None:
    created = client.post(
        "/care-requests",
        json={
            "client_id": client_record["id"],
            "preferred_date_time": "2030-02-01T17:00:00",
            "duration": "2 hours",
            "reason": "Appointment escort",
            "urgency": "Low",
        },
    ).json()
    response = client.post(f"/care-requests/{created['id']}/status", json={"status": "done"})
    assert response.status_code == 422
    assert client.post("/care-requests/ccr_missing/status", json={"status": "denied"}).status_code == 404


def test_video_checkin_flow(client, client_record) -> None:
    created = client.post(
        "/video-checkins",
        json={"client_id": client_record["id"], "requested_by": "Daughter", "notes": "Evening"},
    )
    assert created.status_code == 201
    checkin = created.json()
    assert checkin["status"] == "pending"

    scheduled = client.post(
        f"/video-checkins/{checkin['id']}/schedule",
        json={
            "caregiver_email": "maria.santos@example.com",
            "scheduled_at": "2030-02-02T03:00:00",
            "google_meet_link": "https://meet.google.com/xyz-abcd-efg",
        },
    )
    assert scheduled.status_code == 200
    body = scheduled.json()
    assert body["status"] == "scheduled"
    assert body["scheduled_end"] == "2030-02-02T03:15:00"

    mail = client.get("/mail").json()
    assert len(mail) == 2
    notice = next(item for item in mail if item["subject"].startswith("Video Check-in Scheduled"))
    assert notice["to"] == ["maria.santos@example.com", "eleanor@example.com"]
    assert notice["cc"] == ["admin-rc@firstlighthomecare.com"]

    assert client.get("/video-checkins", params={"checkin_status": "pending"}).json() == []


def test_campaign_template_crud(client) -> None:
    created = client.put(
        "/campaign-templates",
        json={
            "name": "Week One Follow Up",
            "subject": "Checking in on your care",
            "body": "Hi {{name}}, how is everything going with your caregiver?",
            "interval_days": 7,
            "send_immediately_for": ["New Client"],
        },
    )
    assert created.status_code == 200
    template = created.json()
    assert template["type"] == "email"

    updated = client.put(
        "/campaign-templates",
        json={
            "template_id": template["id"],
            "name": "Week One Follow Up",
            "subject": "Checking in after week one",
            "body": "Hi {{name}}, how is everything going with your caregiver?",
            "interval_days": 7,
        },
    )
    assert updated.json()["id"] == template["id"]
    assert updated.json()["subject"] == "Checking in after week one"
    assert len(client.get("/campaign-templates").json()) == 1

    assert client.delete(f"/campaign-templates/{template['id']}").status_code == 204
    assert client.get("/campaign-templates").json() == []


def test_campaign_template_validation(client) -> None:
    response = client.put(
        "/campaign-templates",
        json={"name": "ab", "subject": "Hi", "body": "short", "interval_days": -1, "type": "sms"},
    )
    assert response.status_code == 422
    fields = {tuple(error["loc"])[-1] for error in response.json()["detail"]}
    assert fields == {"name", "subject", "body", "interval_days", "type"}


def test_unknown_campaign_template_update_is_404(client) -> None:
    response = client.put(
        "/campaign-templates",
        json={
            "template_id": "cmt_missing",
            "name": "Anything",
            "subject": "Subject line",
            "body": "Body text long enough",
            "interval_days": 1,
        },
    )
    assert response.status_code == 404


def test_client_signup_signature_flow(client) -> None:
    created = client.post(
        "/client-signups",
        json={
            "client_name": "Walter Grey",
            "client_email": "walter@example.com",
            "form_data": {"services": ["Companionship"]},
        },
    )
    assert created.status_code == 201
    signup = created.json()
    assert signup["status"] == "INCOMPLETE"

    early = client.post(
        f"/client-signups/{signup['id']}/sign",
        json={
            "client_signature": SIGNATURE,
            "client_initials": "wg",
            "client_signature_date": "2030-01-10",
        },
    )
    assert early.status_code == 409

    sent = client.post(f"/client-signups/{signup['id']}/send")
    assert sent.status_code == 200
    assert sent.json()["status"] == "PENDING CLIENT SIGNATURES"
    assert sent.json()["signing_link"] == f"http://localhost:3000/client-sign/{signup['id']}"
    assert client.get("/mail").json()[0]["to"] == ["walter@example.com"]

    signature = {
        "client_signature": SIGNATURE,
        "client_initials": "wg",
        "client_signature_date": "2030-01-10",
    }
    signed = client.post(f"/client-signups/{signup['id']}/sign", json=signature)
    assert signed.status_code == 200
    assert signed.json()["status"] == "SIGNED AND PUBLISHED"
    assert signed.json()["client_initials"] == "WG"

    again = client.post(f"/client-signups/{signup['id']}/sign", json=signature)
    assert again.status_code == 409
    assert client.post(f"/client-signups/{signup['id']}/send").status_code == 409


def test_client_signature_must_be_image(client) -> None:
    signup = client.post(
        "/client-signups",
        json={"client_name": "Walter Grey", "client_email": "walter@example.com"},
    ).json()
    client.post(f"/client-signups/{signup['id']}/send")
    response = client.post(
        f"/client-signups/{signup['id']}/sign",
        json={
            "client_signature": "Walter",
            "client_initials": "WG",
            "client_signature_date": "2030-01-10",
        },
    )
    assert response.status_code == 422
