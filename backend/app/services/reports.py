from __future__ import annotations

import math
from datetime import date, datetime, time
from typing import Iterable, Optional, Union

from backend.app.models import (
    AppointmentRecord,
    AppointmentStatus,
    CaregiverProfileRecord,
    CareRequestRecord,
    EmployeeRecord,
    InterviewRecord,
    ReferralRecord,
    ReferralStatus,
    RewardRecord,
    SpeedToHireReport,
    SpeedToHireRow,
)

SPEED_METRICS = (
    "app_to_phone_screen_days",
    "phone_screen_to_final_days",
    "final_to_orientation_days",
    "orientation_to_hire_days",
    "total_days",
)

Moment = Union[date, datetime, None]


def _as_datetime(value: Moment) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def days_between(start: Moment, end: Moment) -> Optional[int]:
    """Whole days from start to end, truncated toward zero; None if either is unknown."""
    start_dt = _as_datetime(start)
    end_dt = _as_datetime(end)
    if start_dt is None or end_dt is None:
        return None
    return math.trunc((end_dt - start_dt).total_seconds() / 86400)


def speed_to_hire(
    *,
    profiles: dict[str, CaregiverProfileRecord],
    interviews_by_profile: dict[str, InterviewRecord],
    employees: Iterable[EmployeeRecord],
) -> SpeedToHireReport:
    rows: list[SpeedToHireRow] = []
    for employee in employees:
        profile = profiles.get(employee.caregiver_profile_id)
        interview = interviews_by_profile.get(employee.caregiver_profile_id)
        if profile is None or interview is None:
            continue
        rows.append(
            SpeedToHireRow(
                caregiver_profile_id=profile.id,
                full_name=profile.full_name,
                app_to_phone_screen_days=days_between(
                    profile.created_at_utc, interview.created_at_utc
                ),
                phone_screen_to_final_days=days_between(
                    interview.created_at_utc, interview.interview_date_time
                ),
                final_to_orientation_days=days_between(
                    interview.interview_date_time, interview.orientation_date_time
                ),
                orientation_to_hire_days=days_between(
                    interview.orientation_date_time, employee.hire_date
                ),
                total_days=days_between(profile.created_at_utc, employee.hire_date),
            )
        )

    rows.sort(key=lambda row: (row.total_days is None, -(row.total_days or 0)))

    averages: dict[str, Optional[float]] = {}
    for metric in SPEED_METRICS:
        values = [getattr(row, metric) for row in rows if getattr(row, metric) is not None]
        averages[metric] = round(sum(values) / len(values), 1) if values else None
    return SpeedToHireReport(rows=rows, averages=averages)


def cancelled_interviews(
    appointments: Iterable[AppointmentRecord],
    profiles: dict[str, CaregiverProfileRecord],
) -> dict:
    items = []
    by_reason: dict[str, int] = {}
    for appointment in appointments:
        if appointment.appointment_status != AppointmentStatus.cancelled:
            continue
        reason = (appointment.cancel_reason or "unspecified").strip() or "unspecified"
        by_reason[reason] = by_reason.get(reason, 0) + 1
        profile = profiles.get(appointment.caregiver_id)
        items.append(
            {
                "appointment_id": appointment.id,
                "caregiver_id": appointment.caregiver_id,
                "caregiver_name": profile.full_name if profile else None,
                "start_time": appointment.start_time,
                "cancel_reason": appointment.cancel_reason,
                "cancel_date_time": appointment.cancel_date_time,
            }
        )
    items.sort(key=lambda item: item["cancel_date_time"] or item["start_time"], reverse=True)
    return {"total": len(items), "by_reason": by_reason, "items": items}


def referral_summary(
    referrals: Iterable[ReferralRecord], rewards: Iterable[RewardRecord]
) -> dict:
    by_status = {status.value: 0 for status in ReferralStatus}
    for referral in referrals:
        by_status[referral.status.value] += 1
    reward_list = list(rewards)
    available_by_type: dict[str, float] = {}
    for reward in reward_list:
        if reward.status == "Available":
            key = reward.reward_type.value
            available_by_type[key] = available_by_type.get(key, 0.0) + reward.amount
    return {
        "referrals_by_status": by_status,
        "rewards_issued": len(reward_list),
        "available_reward_totals": available_by_type,
    }


def care_request_summary(records: Iterable[CareRequestRecord]) -> dict:
    by_status: dict[str, int] = {}
    by_urgency: dict[str, int] = {}
    total = 0
    for record in records:
        total += 1
        by_status[record.status.value] = by_status.get(record.status.value, 0) + 1
        urgency = record.urgency.strip().lower() or "unspecified"
        by_urgency[urgency] = by_urgency.get(urgency, 0) + 1
    return {"total": total, "by_status": by_status, "by_urgency": by_urgency}
