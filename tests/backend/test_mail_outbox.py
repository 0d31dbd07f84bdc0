from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import backend.app.main as main_module
from backend.app.models import MailStatus, utc_now
from backend.app.services.notifications import (
    OutgoingMail,
    PermanentMailError,
    TransientMailError,
)
from backend.app.store import InMemoryStore


def _mail(subject: str = "Hello") -> OutgoingMail:
    return OutgoingMail(to=["someone@example.com"], subject=subject, html="<p>Hi</p>")


def _enable_smtp(client) -> None:
    client.app.state.settings = replace(
        client.app.state.settings, smtp_host="smtp.example.com", mail_max_retries=2
    )


def test_transient_failures_back_off_then_fail() -> None:
    store = InMemoryStore()
    record = store.enqueue_mail(_mail())

    first = store.record_mail_attempt(
        record.id, success=False, error="timeout", transient=True, max_retries=3, backoff_seconds=60
    )
    assert first.status == MailStatus.retry_pending
    assert first.attempts == 1
    assert first.next_retry_utc - first.updated_at_utc <= timedelta(seconds=60)
    assert first.next_retry_utc > utc_now() + timedelta(seconds=50)

    second = store.record_mail_attempt(
        record.id, success=False, error="timeout", transient=True, max_retries=3, backoff_seconds=60
    )
    assert second.status == MailStatus.retry_pending
    assert second.next_retry_utc > utc_now() + timedelta(seconds=110)

    third = store.record_mail_attempt(
        record.id, success=False, error="timeout", transient=True, max_retries=3, backoff_seconds=60
    )
    assert third.status == MailStatus.failed
    assert third.attempts == 3
    assert third.next_retry_utc is None
    assert third.last_error == "timeout"


def test_permanent_failure_fails_immediately() -> None:
    store = InMemoryStore()
    record = store.enqueue_mail(_mail())
    updated = store.record_mail_attempt(record.id, success=False, error="bad address")
    assert updated.status == MailStatus.failed
    assert updated.attempts == 1


def test_due_mail_skips_future_retries() -> None:
    store = InMemoryStore()
    queued = store.enqueue_mail(_mail("queued"))
    waiting = store.enqueue_mail(_mail("waiting"))
    store.record_mail_attempt(waiting.id, success=False, transient=True, backoff_seconds=600)
    sent = store.enqueue_mail(_mail("sent"))
    store.record_mail_attempt(sent.id, success=True)

    assert [item.id for item in store.due_mail()] == [queued.id]
    later = utc_now() + timedelta(hours=1)
    assert {item.id for item in store.due_mail(later)} == {queued.id, waiting.id}


def test_dispatch_skips_without_smtp(client) -> None:
    response = client.post("/mail/dispatch")
    assert response.status_code == 200
    assert response.json()["skipped_reason"] == "smtp is not configured"
    assert response.json()["attempted"] == 0


def test_dispatch_sends_and_records_outcomes(client, monkeypatch) -> None:
    _enable_smtp(client)
    store = client.app.state.store
    ok = store.enqueue_mail(_mail("ok"))
    flaky = store.enqueue_mail(_mail("flaky"))
    rejected = store.enqueue_mail(_mail("rejected"))
    delivered: list[str] = []

    def fake_deliver(settings, record):
        if record.subject == "flaky":
            raise TransientMailError("smtp delivery failed: connection reset")
        if record.subject == "rejected":
            raise PermanentMailError("smtp rejected message: 550")
        delivered.append(record.id)

    monkeypatch.setattr(main_module, "deliver_mail", fake_deliver)
    response = client.post("/mail/dispatch")
    assert response.status_code == 200
    assert response.json() == {
        "attempted": 3,
        "sent": 1,
        "retry_pending": 1,
        "failed": 1,
        "skipped_reason": None,
    }
    assert delivered == [ok.id]
    assert store.mail[flaky.id].status == MailStatus.retry_pending
    assert store.mail[rejected.id].last_error == "smtp rejected message: 550"

    second = client.post("/mail/dispatch").json()
    assert second["attempted"] == 0

    failed = client.get("/mail", params={"mail_status": "failed"}).json()
    assert [item["id"] for item in failed] == [rejected.id]
    assert 'homecare_hrm_mail_deliveries_total{status="sent"} 1' in client.get("/metrics").text


def test_claimed_mail_is_not_handed_out_twice() -> None:
    store = InMemoryStore()
    record = store.enqueue_mail(_mail())
    now = utc_now()

    claimed = store.claim_due_mail(now, lease_seconds=300)
    assert [item.id for item in claimed] == [record.id]
    assert store.mail[record.id].status == MailStatus.sending
    assert store.claim_due_mail(now + timedelta(seconds=10)) == []

    reclaimed = store.claim_due_mail(now + timedelta(seconds=301))
    assert [item.id for item in reclaimed] == [record.id]

    sent = store.record_mail_attempt(record.id, success=True)
    assert sent.status == MailStatus.sent
    assert sent.next_retry_utc is None
    assert store.claim_due_mail(now + timedelta(hours=1)) == []
