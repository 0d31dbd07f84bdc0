from __future__ import annotations

import backend.app.main as main_module
from backend.app.services.generative_ai import AiResponseError

EVENT_TIME = "2030-03-05T18:00:00"


def _screen(client, candidate_id: str, **overrides):
    payload = {
        "interview_notes": "Warm, clear communicator. Strong dementia background.",
        "candidate_rating": 4,
        "phone_screen_passed": "Yes",
        "interview_pathway": "separate",
        "interview_method": "In-Person",
        "event_date_time": EVENT_TIME,
    }
    payload.update(overrides)
    return client.put(f"/candidates/{candidate_id}/phone-screen", json=payload)


def _status(client, candidate_id: str) -> str:
    return client.get(f"/candidates/{candidate_id}").json()["status"]


def _hire(client, candidate_id: str, **overrides):
    payload = {
        "hire_date": "2030-03-20",
        "start_date": "2030-03-25",
        "hiring_manager": "Dana Brooks",
        "teletrack_pin": "8842",
    }
    payload.update(overrides)
    return client.post(f"/candidates/{candidate_id}/hire", json=payload)


def test_failed_phone_screen(client, candidate_id) -> None:
    response = _screen(client, candidate_id, phone_screen_passed="No")
    assert response.status_code == 200
    assert response.json()["phone_screen_passed"] == "No"
    assert _status(client, candidate_id) == "Phone Screen Failed"
    assert client.get("/mail").json() == []


def test_phone_screen_yes_requires_next_step(client, candidate_id) -> None:
    response = client.put(
        f"/candidates/{candidate_id}/phone-screen",
        json={"interview_notes": "ok", "candidate_rating": 3, "phone_screen_passed": "Yes"},
    )
    assert response.status_code == 422
    assert "interview_pathway" in response.text
    assert "event_date_time" in response.text


def test_separate_pathway_schedules_final_interview(client, candidate_id) -> None:
    response = _screen(client, candidate_id)
    assert response.status_code == 200
    body = response.json()
    assert body["final_interview_status"] == "Pending"
    assert body["orientation_scheduled"] is False
    assert body["interview_type"] == "In-Person"
    assert _status(client, candidate_id) == "Final Interview Pending"

    mail = client.get("/mail").json()
    assert len(mail) == 1
    assert mail[0]["to"] == ["maria.santos@example.com"]
    assert mail[0]["cc"] == ["care-rc@firstlighthomecare.com"]
    assert mail[0]["status"] == "queued"
    assert "Final Interview" in mail[0]["subject"]


def test_combined_pathway_schedules_orientation(client, candidate_id) -> None:
    response = _screen(
        client,
        candidate_id,
        interview_pathway="combined",
        interview_method="Google Meet",
        google_meet_link="https://meet.google.com/abc-defg-hij",
    )
    assert response.status_code == 200
    body = response.json()
    assert body["final_interview_status"] == "Passed"
    assert body["orientation_scheduled"] is True
    assert body["orientation_date_time"] == EVENT_TIME
    assert body["google_meet_link"] == "https://meet.google.com/abc-defg-hij"
    assert _status(client, candidate_id) == "Orientation Scheduled"


def test_full_separate_pathway_to_hire(client, candidate_id) -> None:
    _screen(client, candidate_id)
    passed = client.post(
        f"/candidates/{candidate_id}/final-interview",
        json={"final_interview_status": "Passed", "interview_notes": "Great with the mock client."},
    )
    assert passed.status_code == 200
    assert "Final interview: Great with the mock client." in passed.json()["interview_notes"]
    assert _status(client, candidate_id) == "Final Interview Passed"

    orientation = client.post(
        f"/candidates/{candidate_id}/orientation",
        json={"orientation_date_time": "2030-03-12T17:00:00"},
    )
    assert orientation.status_code == 200
    assert orientation.json()["orientation_scheduled"] is True
    assert _status(client, candidate_id) == "Orientation Scheduled"

    hired = _hire(client, candidate_id)
    assert hired.status_code == 201
    assert hired.json()["hiring_manager"] == "Dana Brooks"
    assert _status(client, candidate_id) == "Hired"

    again = _hire(client, candidate_id, hiring_comments="Updated start date")
    assert again.status_code == 200
    assert again.json()["id"] == hired.json()["id"]
    assert again.json()["hiring_comments"] == "Updated start date"


def test_hire_from_applied_is_conflict(client, candidate_id) -> None:
    response = _hire(client, candidate_id)
    assert response.status_code == 409
    assert _status(client, candidate_id) == "Applied"


def test_hire_requires_teletrack_pin_and_manager(client, candidate_id) -> None:
    response = client.post(f"/candidates/{candidate_id}/hire", json={"hire_date": "2030-03-20"})
    assert response.status_code == 422
    fields = {tuple(error["loc"])[-1] for error in response.json()["detail"]}
    assert fields == {"hiring_manager", "teletrack_pin"}


def test_orientation_requires_passed_final_interview(client, candidate_id) -> None:
    _screen(client, candidate_id)
    response = client.post(
        f"/candidates/{candidate_id}/orientation",
        json={"orientation_date_time": "2030-03-12T17:00:00"},
    )
    assert response.status_code == 409
    assert _status(client, candidate_id) == "Final Interview Pending"


def test_final_interview_without_screen_is_conflict(client, candidate_id) -> None:
    response = client.post(
        f"/candidates/{candidate_id}/final-interview", json={"final_interview_status": "Passed"}
    )
    assert response.status_code == 409


def test_failed_final_interview_cannot_be_hired(client, candidate_id) -> None:
    _screen(client, candidate_id)
    failed = client.post(
        f"/candidates/{candidate_id}/final-interview", json={"final_interview_status": "Failed"}
    )
    assert failed.status_code == 200
    assert _status(client, candidate_id) == "Final Interview Failed"
    assert _hire(client, candidate_id).status_code == 409


def test_reject_after_orientation(client, candidate_id) -> None:
    _screen(client, candidate_id, interview_pathway="combined")
    response = client.post(
        f"/candidates/{candidate_id}/orientation/reject",
        json={"rejection_reason": "No call no show", "rejection_notes": "Missed orientation"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["final_interview_status"] == "Failed"
    assert body["orientation_scheduled"] is False
    assert body["rejection_reason"] == "No call no show"
    assert body["rejection_date_utc"] is not None
    assert _status(client, candidate_id) == "Final Interview Failed"

    subjects = [item["subject"] for item in client.get("/mail").json()]
    assert any(subject.startswith("Update on your application") for subject in subjects)


def test_reject_requires_scheduled_orientation(client, candidate_id) -> None:
    _screen(client, candidate_id)
    response = client.post(
        f"/candidates/{candidate_id}/orientation/reject", json={"rejection_reason": "Other"}
    )
    assert response.status_code == 409


def test_rescreen_after_failed_phone_screen(client, candidate_id) -> None:
    _screen(client, candidate_id, phone_screen_passed="No")
    response = _screen(client, candidate_id)
    assert response.status_code == 200
    assert _status(client, candidate_id) == "Final Interview Pending"


def test_hired_candidate_cannot_be_rescreened(client, candidate_id) -> None:
    _screen(client, candidate_id, interview_pathway="combined")
    _hire(client, candidate_id)
    response = _screen(client, candidate_id, phone_screen_passed="No")
    assert response.status_code == 409
    assert _status(client, candidate_id) == "Hired"


def test_interview_insights_saved_to_interview(client, candidate_id, monkeypatch) -> None:
    captured = {}

    def fake_insights(settings, profile, *, interview_notes, candidate_rating):
        captured["name"] = profile.full_name
        captured["rating"] = candidate_rating
        return "Strong candidate.\n\nRecommendation: Recommend for in-person interview"

    monkeypatch.setattr(main_module, "generate_interview_insights", fake_insights)
    _screen(client, candidate_id)
    response = client.post(
        f"/candidates/{candidate_id}/insights",
        json={"interview_notes": "Great", "candidate_rating": 5, "save_to_interview": True},
    )
    assert response.status_code == 200
    assert response.json()["saved"] is True
    assert captured == {"name": "Maria Santos", "rating": 5}

    detail = client.get(f"/candidates/{candidate_id}").json()
    assert detail["interview"]["ai_generated_insight"].startswith("Strong candidate.")
    assert 'homecare_hrm_ai_calls_total{kind="interview_insights",outcome="ok"} 1' in (
        client.get("/metrics").text
    )


def test_interview_insights_unconfigured_is_503(client, candidate_id) -> None:
    response = client.post(
        f"/candidates/{candidate_id}/insights",
        json={"interview_notes": "Great", "candidate_rating": 5},
    )
    assert response.status_code == 503


def test_interview_insights_bad_model_output_is_502(client, candidate_id, monkeypatch) -> None:
    def broken(settings, profile, *, interview_notes, candidate_rating):
        raise AiResponseError("generative ai returned no insight")

    monkeypatch.setattr(main_module, "generate_interview_insights", broken)
    response = client.post(
        f"/candidates/{candidate_id}/insights",
        json={"interview_notes": "Great", "candidate_rating": 5},
    )
    assert response.status_code == 502
