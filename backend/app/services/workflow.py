from __future__ import annotations

from typing import Optional

from backend.app.models import (
    EmployeeRecord,
    FinalInterviewStatus,
    InterviewRecord,
    PhoneScreenResult,
    PipelineStatus,
)

ALLOWED_TRANSITIONS = {
    PipelineStatus.applied: {
        PipelineStatus.phone_screen_failed,
        PipelineStatus.final_interview_pending,
        PipelineStatus.orientation_scheduled,
    },
    PipelineStatus.phone_screen_failed: {
        PipelineStatus.final_interview_pending,
        PipelineStatus.orientation_scheduled,
    },
    PipelineStatus.final_interview_pending: {
        PipelineStatus.phone_screen_failed,
        PipelineStatus.final_interview_passed,
        PipelineStatus.final_interview_failed,
        PipelineStatus.orientation_scheduled,
    },
    PipelineStatus.final_interview_passed: {
        PipelineStatus.final_interview_failed,
        PipelineStatus.orientation_scheduled,
        PipelineStatus.hired,
    },
    PipelineStatus.final_interview_failed: {PipelineStatus.final_interview_passed},
    PipelineStatus.orientation_scheduled: {
        PipelineStatus.final_interview_failed,
        PipelineStatus.hired,
    },
    PipelineStatus.hired: set(),
}


def derive_pipeline_status(
    interview: Optional[InterviewRecord],
    employee: Optional[EmployeeRecord],
) -> PipelineStatus:
    """Pipeline status is never stored; it is read off the three documents.

    Precedence is fixed so that a record carrying several signals resolves
    the same way every time: an employee record wins over everything, a
    failed phone screen wins over any later interview fields.
    """
    if employee is not None:
        return PipelineStatus.hired
    if interview is None:
        return PipelineStatus.applied
    if interview.phone_screen_passed == PhoneScreenResult.no:
        return PipelineStatus.phone_screen_failed
    if interview.orientation_scheduled:
        return PipelineStatus.orientation_scheduled
    if interview.final_interview_status == FinalInterviewStatus.passed:
        return PipelineStatus.final_interview_passed
    if interview.final_interview_status == FinalInterviewStatus.failed:
        return PipelineStatus.final_interview_failed
    return PipelineStatus.final_interview_pending


def can_transition(current: PipelineStatus, target: PipelineStatus) -> bool:
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS.get(current, set())
