from __future__ import annotations

import re

import pytest

from backend.app.services.referrals import (
    first_name_token,
    generate_referral_code,
    referral_link,
)

CODE_PATTERN = re.compile(r"^FLHC-ELEANOR-[A-Z0-9]{4}$")


def test_first_name_token_strips_non_letters() -> None:
    assert first_name_token("  mary-jane o'neil") == "MARYJANE"
    assert first_name_token("李 雷") == "CLIENT"
    assert first_name_token("") == "CLIENT"


def test_generate_code_retries_on_collision() -> None:
    seen: list[str] = []

    def taken(code: str) -> bool:
        seen.append(code)
        return len(seen) < 3

    code = generate_referral_code("Ann Lee", is_taken=taken)
    assert code == seen[-1]
    assert len(seen) == 3
    assert code.startswith("FLHC-ANN-")


def test_generate_code_gives_up() -> None:
    with pytest.raises(RuntimeError):
        generate_referral_code("Ann", is_taken=lambda code: True, max_attempts=3)


def test_referral_link_encodes_query() -> None:
    link = referral_link("https://care.example.com/", referral_code="FLHC-ANN-AB12", referrer_name="Ann Lee")
    assert link == "https://care.example.com/new-referral-client?ref=FLHC-ANN-AB12&referrer=Ann+Lee"


def test_referral_code_is_unique_and_stable(client, client_record) -> None:
    created = client.post("/referrals/codes", json={"client_id": client_record["id"]})
    assert created.status_code == 201
    code = created.json()["referral_code"]
    assert CODE_PATTERN.match(code)

    second = client.post("/referrals/codes", json={"client_id": client_record["id"]})
    assert second.status_code == 409

    for _ in range(3):
        read = client.get(f"/clients/{client_record['id']}/referral-code")
        assert read.json()["referral_code"] == code


def test_referral_code_for_unknown_client(client) -> None:
    response = client.post("/referrals/codes", json={"client_id": "cli_missing"})
    assert response.status_code == 404


def test_invite_queues_mail_with_link(client, client_record) -> None:
    code = client.post("/referrals/codes", json={"client_id": client_record["id"]}).json()[
        "referral_code"
    ]
    response = client.post(
        "/referrals/invites",
        json={
            "friend_name": "Dolores",
            "friend_email": "dolores@example.com",
            "referrer_name": "Eleanor Whitfield",
            "referral_code": code,
            "personal_message": "They took great care of my mother.",
        },
    )
    assert response.status_code == 200
    link = response.json()["referral_link"]
    assert link == (
        f"http://localhost:3000/new-referral-client?ref={code}&referrer=Eleanor+Whitfield"
    )

    mail = client.get("/mail").json()
    assert mail[0]["to"] == ["dolores@example.com"]
    assert mail[0]["subject"] == "Eleanor Whitfield has referred you to FirstLight Home Care"
    assert "They took great care of my mother." in mail[0]["html"]


def test_invite_with_unknown_code_is_404(client) -> None:
    response = client.post(
        "/referrals/invites",
        json={
            "friend_name": "Dolores",
            "friend_email": "dolores@example.com",
            "referrer_name": "Eleanor",
            "referral_code": "FLHC-NOPE-0000",
        },
    )
    assert response.status_code == 404


def test_referral_reward_flow(client, client_record) -> None:
    code = client.post("/referrals/codes", json={"client_id": client_record["id"]}).json()[
        "referral_code"
    ]
    referral = client.post(
        "/referrals",
        json={"referral_code": code.lower(), "new_client_name": "Harold Finch"},
    )
    assert referral.status_code == 201
    referral_body = referral.json()
    assert referral_body["status"] == "Pending"
    assert referral_body["referrer_client_id"] == client_record["id"]

    missing_details = client.post(
        f"/referrals/{referral_body['id']}/status",
        json={"new_status": "Converted", "issue_reward": True},
    )
    assert missing_details.status_code == 422

    rewarded = client.post(
        f"/referrals/{referral_body['id']}/status",
        json={
            "new_status": "Rewarded",
            "issue_reward": True,
            "reward_details": {
                "reward_type": "Free Hours",
                "amount": 4,
                "description": "Four free hours of care",
            },
        },
    )
    assert rewarded.status_code == 200
    body = rewarded.json()
    assert body["referral"]["status"] == "Rewarded"
    assert body["reward"]["status"] == "Available"
    assert body["referral"]["reward_id"] == body["reward"]["id"]

    duplicate = client.post(
        f"/referrals/{referral_body['id']}/status",
        json={
            "new_status": "Rewarded",
            "issue_reward": True,
            "reward_details": {"reward_type": "Discount", "amount": 50, "description": "Again"},
        },
    )
    assert duplicate.status_code == 409

    rewards = client.get(f"/clients/{client_record['id']}/rewards").json()
    assert [item["reward_type"] for item in rewards] == ["Free Hours"]

    listed = client.get("/referrals", params={"referral_status": "Rewarded"}).json()
    assert [item["id"] for item in listed] == [referral_body["id"]]


def test_referral_with_unknown_code_is_404(client) -> None:
    response = client.post(
        "/referrals", json={"referral_code": "FLHC-NOPE-0000", "new_client_name": "Harold"}
    )
    assert response.status_code == 404
