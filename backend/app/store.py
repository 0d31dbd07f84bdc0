from __future__ import annotations

from datetime import date, datetime, timedelta
from threading import RLock
from typing import TYPE_CHECKING, Any, Optional
from uuid import uuid4

from pydantic import BaseModel

from backend.app.models import (
    CERTIFICATION_FIELDS,
    SKILL_FIELDS,
    AppointmentCancelRequest,
    AppointmentCreateRequest,
    AppointmentRecord,
    AppointmentRescheduleRequest,
    AppointmentStatus,
    AvailabilitySettings,
    CampaignTemplateRecord,
    CampaignTemplateRequest,
    CaregiverApplicationRequest,
    CaregiverProfileRecord,
    CaregiverProfileUpdateRequest,
    CareLogCreateRequest,
    CareLogGroupRecord,
    CareLogGroupRequest,
    CareLogRecord,
    CareLogTemplateRecord,
    CareLogTemplateRequest,
    CareRequestCreateRequest,
    CareRequestRecord,
    CareRequestStatusUpdate,
    ClientCreateRequest,
    ClientRecord,
    ClientSignatureRequest,
    ClientSignupCreateRequest,
    ClientSignupRecord,
    ClientSignupStatus,
    EmployeeRecord,
    FinalInterviewDecision,
    FinalInterviewResultRequest,
    FinalInterviewStatus,
    FollowUpEntry,
    HireRequest,
    InitialContactRecord,
    InterviewMethod,
    InterviewPathway,
    InterviewRecord,
    InterviewType,
    MailRecord,
    MailStatus,
    OrientationRejectRequest,
    OrientationScheduleRequest,
    PhoneScreenDecision,
    PhoneScreenRequest,
    PhoneScreenResult,
    PipelineStatus,
    RecordStatus,
    ReferralCreateRequest,
    ReferralProfileRecord,
    ReferralRecord,
    ReferralStatus,
    ReferralStatusUpdateRequest,
    RewardRecord,
    VideoCheckinCreateRequest,
    VideoCheckinRecord,
    VideoCheckinScheduleRequest,
    VideoCheckinStatus,
    utc_now,
)
from backend.app.services.campaigns import is_follow_up_due
from backend.app.services.notifications import OutgoingMail
from backend.app.services.referrals import generate_referral_code
from backend.app.services.scheduling import DEFAULT_AVAILABILITY, EventKind, event_end
from backend.app.services.workflow import can_transition, derive_pipeline_status

if TYPE_CHECKING:
    from backend.app.persistence import SqlitePersistence


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:10]}"


class StoreConflictError(Exception):
    pass


class StoreNotFoundError(Exception):
    pass


class StorePermissionError(Exception):
    pass


# Snapshot key -> record type for every id-keyed collection.
SNAPSHOT_COLLECTIONS: dict[str, type[BaseModel]] = {
    "caregiver_profiles": CaregiverProfileRecord,
    "interviews": InterviewRecord,
    "caregiver_employees": EmployeeRecord,
    "appointments": AppointmentRecord,
    "clients": ClientRecord,
    "referral_profiles": ReferralProfileRecord,
    "referrals": ReferralRecord,
    "rewards": RewardRecord,
    "carelog_templates": CareLogTemplateRecord,
    "carelog_groups": CareLogGroupRecord,
    "carelogs": CareLogRecord,
    "care_requests": CareRequestRecord,
    "video_checkins": VideoCheckinRecord,
    "campaign_templates": CampaignTemplateRecord,
    "client_signups": ClientSignupRecord,
    "initial_contacts": InitialContactRecord,
}


def _mail_is_due(record: MailRecord, moment: datetime) -> bool:
    if record.status == MailStatus.queued:
        return True
    if record.status in (MailStatus.retry_pending, MailStatus.sending):
        return record.next_retry_utc is None or record.next_retry_utc <= moment
    return False


class InMemoryStore:
    def __init__(self, persistence: Optional["SqlitePersistence"] = None) -> None:
        self._lock = RLock()
        self.persistence = persistence
        self.caregiver_profiles: dict[str, CaregiverProfileRecord] = {}
        self.interviews: dict[str, InterviewRecord] = {}
        self.caregiver_employees: dict[str, EmployeeRecord] = {}
        self.appointments: dict[str, AppointmentRecord] = {}
        self.clients: dict[str, ClientRecord] = {}
        self.referral_profiles: dict[str, ReferralProfileRecord] = {}
        self.referrals: dict[str, ReferralRecord] = {}
        self.rewards: dict[str, RewardRecord] = {}
        self.carelog_templates: dict[str, CareLogTemplateRecord] = {}
        self.carelog_groups: dict[str, CareLogGroupRecord] = {}
        self.carelogs: dict[str, CareLogRecord] = {}
        self.care_requests: dict[str, CareRequestRecord] = {}
        self.video_checkins: dict[str, VideoCheckinRecord] = {}
        self.campaign_templates: dict[str, CampaignTemplateRecord] = {}
        self.client_signups: dict[str, ClientSignupRecord] = {}
        self.initial_contacts: dict[str, InitialContactRecord] = {}
        self.mail: dict[str, MailRecord] = {}
        self.availability_settings: Optional[AvailabilitySettings] = None

        if self.persistence:
            snapshot = self.persistence.load_snapshot()
            if snapshot:
                self._hydrate_from_snapshot(snapshot)
            for record in self.persistence.list_mail(limit=None):
                self.mail[record.id] = record

    # Candidate profiles

    def create_caregiver_profile(
        self, request: CaregiverApplicationRequest, *, uid: Optional[str] = None
    ) -> CaregiverProfileRecord:
        with self._lock:
            now = utc_now()
            profile = CaregiverProfileRecord(
                **request.model_dump(),
                id=new_id("cgp"),
                uid=uid,
                created_at_utc=now,
                updated_at_utc=now,
            )
            self.caregiver_profiles[profile.id] = profile
            self._persist_state()
            return profile

    def get_caregiver_profile(self, profile_id: str) -> CaregiverProfileRecord:
        profile = self.caregiver_profiles.get(profile_id)
        if not profile:
            raise StoreNotFoundError(f"caregiver profile not found: {profile_id}")
        return profile

    def update_caregiver_profile(
        self, profile_id: str, request: CaregiverProfileUpdateRequest
    ) -> CaregiverProfileRecord:
        with self._lock:
            profile = self.get_caregiver_profile(profile_id)
            changes = request.model_dump(exclude_unset=True, exclude={"skills", "certifications"})
            changes = {key: value for key, value in changes.items() if value is not None}
            if request.skills is not None:
                changes.update(request.skills.model_dump())
            if request.certifications:
                changes.update(request.certifications)
            merged = profile.model_dump()
            merged.update(changes)
            merged["updated_at_utc"] = utc_now()
            updated = CaregiverProfileRecord.model_validate(merged)
            self.caregiver_profiles[profile_id] = updated
            self._persist_state()
            return updated

    def list_caregiver_profiles(self) -> list[CaregiverProfileRecord]:
        with self._lock:
            records = list(self.caregiver_profiles.values())
        records.sort(key=lambda item: item.created_at_utc, reverse=True)
        return records

    def find_interview(self, profile_id: str) -> Optional[InterviewRecord]:
        for interview in self.interviews.values():
            if interview.caregiver_profile_id == profile_id:
                return interview
        return None

    def find_employee(self, profile_id: str) -> Optional[EmployeeRecord]:
        for employee in self.caregiver_employees.values():
            if employee.caregiver_profile_id == profile_id:
                return employee
        return None

    def pipeline_status(self, profile_id: str) -> PipelineStatus:
        with self._lock:
            return derive_pipeline_status(
                self.find_interview(profile_id), self.find_employee(profile_id)
            )

    def pipeline_statuses(self) -> dict[str, PipelineStatus]:
        with self._lock:
            interviews = {item.caregiver_profile_id: item for item in self.interviews.values()}
            employees = {
                item.caregiver_profile_id: item for item in self.caregiver_employees.values()
            }
            return {
                profile_id: derive_pipeline_status(
                    interviews.get(profile_id), employees.get(profile_id)
                )
                for profile_id in self.caregiver_profiles
            }

    def search_candidates(
        self,
        *,
        skills: Optional[list[str]] = None,
        status: Optional[PipelineStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        text: Optional[str] = None,
    ) -> list[tuple[CaregiverProfileRecord, PipelineStatus]]:
        wanted_skills = [skill.strip() for skill in skills or [] if skill.strip()]
        unknown = sorted(set(wanted_skills) - set(SKILL_FIELDS) - set(CERTIFICATION_FIELDS))
        if unknown:
            raise ValueError(f"unknown skills: {', '.join(unknown)}")
        statuses = self.pipeline_statuses()
        needle = (text or "").strip().lower()

        output = []
        for profile in self.list_caregiver_profiles():
            if any(not getattr(profile, skill) for skill in wanted_skills):
                continue
            created = profile.created_at_utc.date()
            if date_from and created < date_from:
                continue
            if date_to and created > date_to:
                continue
            if needle and needle not in profile.full_name.lower() and needle not in profile.email.lower():
                continue
            derived = statuses[profile.id]
            if status and derived != status:
                continue
            output.append((profile, derived))
        return output

    # Interview pipeline

    def _guard_transition(self, profile_id: str, target: PipelineStatus) -> PipelineStatus:
        current = derive_pipeline_status(
            self.find_interview(profile_id), self.find_employee(profile_id)
        )
        if not can_transition(current, target):
            raise StoreConflictError(
                f"cannot move candidate {profile_id} from {current.value} to {target.value}"
            )
        return current

    def _require_interview(self, profile_id: str) -> InterviewRecord:
        interview = self.find_interview(profile_id)
        if not interview:
            raise StoreConflictError(f"no interview record for candidate: {profile_id}")
        return interview

    def save_phone_screen(
        self, profile_id: str, request: PhoneScreenRequest
    ) -> tuple[InterviewRecord, PipelineStatus]:
        with self._lock:
            profile = self.get_caregiver_profile(profile_id)
            if request.phone_screen_passed == PhoneScreenDecision.no:
                target = PipelineStatus.phone_screen_failed
            elif request.interview_pathway == InterviewPathway.combined:
                target = PipelineStatus.orientation_scheduled
            else:
                target = PipelineStatus.final_interview_pending
            self._guard_transition(profile_id, target)

            now = utc_now()
            interview = self.find_interview(profile_id) or InterviewRecord(
                id=new_id("int"),
                caregiver_profile_id=profile_id,
                caregiver_uid=profile.uid,
                phone_screen_passed=PhoneScreenResult.not_applicable,
                created_at_utc=now,
                updated_at_utc=now,
            )
            update: dict[str, Any] = {
                "interview_notes": request.interview_notes,
                "candidate_rating": request.candidate_rating,
                "phone_screen_passed": PhoneScreenResult(request.phone_screen_passed.value),
                "updated_at_utc": now,
            }
            if request.ai_generated_insight:
                update["ai_generated_insight"] = request.ai_generated_insight
            if request.phone_screen_passed == PhoneScreenDecision.yes:
                combined = request.interview_pathway == InterviewPathway.combined
                update.update(
                    {
                        "interview_pathway": request.interview_pathway,
                        "interview_type": InterviewType(request.interview_method.value),
                        "interview_date_time": request.event_date_time,
                        "google_meet_link": (
                            request.google_meet_link
                            if request.interview_method == InterviewMethod.google_meet
                            else None
                        ),
                        "final_interview_status": (
                            FinalInterviewStatus.passed if combined else FinalInterviewStatus.pending
                        ),
                        "orientation_scheduled": combined,
                        "orientation_date_time": request.event_date_time if combined else None,
                    }
                )
            interview = interview.model_copy(update=update)
            self.interviews[interview.id] = interview
            self._persist_state()
            return interview, target

    def record_final_interview_result(
        self, profile_id: str, request: FinalInterviewResultRequest
    ) -> InterviewRecord:
        with self._lock:
            self.get_caregiver_profile(profile_id)
            interview = self._require_interview(profile_id)
            passed = request.final_interview_status == FinalInterviewDecision.passed
            target = (
                PipelineStatus.final_interview_passed if passed else PipelineStatus.final_interview_failed
            )
            self._guard_transition(profile_id, target)
            notes = interview.interview_notes
            if request.interview_notes:
                notes = (
                    f"{notes}\n\nFinal interview: {request.interview_notes}"
                    if notes
                    else f"Final interview: {request.interview_notes}"
                )
            interview = interview.model_copy(
                update={
                    "final_interview_status": FinalInterviewStatus(
                        request.final_interview_status.value
                    ),
                    "orientation_scheduled": False,
                    "orientation_date_time": None,
                    "interview_notes": notes,
                    "updated_at_utc": utc_now(),
                }
            )
            self.interviews[interview.id] = interview
            self._persist_state()
            return interview

    def schedule_orientation(
        self, profile_id: str, request: OrientationScheduleRequest
    ) -> InterviewRecord:
        with self._lock:
            self.get_caregiver_profile(profile_id)
            interview = self._require_interview(profile_id)
            current = self._guard_transition(profile_id, PipelineStatus.orientation_scheduled)
            if current not in {
                PipelineStatus.final_interview_passed,
                PipelineStatus.orientation_scheduled,
            }:
                raise StoreConflictError(
                    f"orientation requires a passed final interview; candidate is {current.value}"
                )
            update: dict[str, Any] = {
                "final_interview_status": FinalInterviewStatus.passed,
                "orientation_scheduled": True,
                "orientation_date_time": request.orientation_date_time,
                "updated_at_utc": utc_now(),
            }
            if request.google_meet_link:
                update["google_meet_link"] = request.google_meet_link
            interview = interview.model_copy(update=update)
            self.interviews[interview.id] = interview
            self._persist_state()
            return interview

    def reject_after_orientation(
        self, profile_id: str, request: OrientationRejectRequest
    ) -> InterviewRecord:
        with self._lock:
            self.get_caregiver_profile(profile_id)
            interview = self._require_interview(profile_id)
            current = self._guard_transition(profile_id, PipelineStatus.final_interview_failed)
            if current != PipelineStatus.orientation_scheduled:
                raise StoreConflictError(
                    f"only candidates with orientation scheduled can be rejected; "
                    f"candidate is {current.value}"
                )
            now = utc_now()
            interview = interview.model_copy(
                update={
                    "final_interview_status": FinalInterviewStatus.failed,
                    "orientation_scheduled": False,
                    "rejection_reason": request.rejection_reason,
                    "rejection_notes": request.rejection_notes,
                    "rejection_date_utc": now,
                    "updated_at_utc": now,
                }
            )
            self.interviews[interview.id] = interview
            self._persist_state()
            return interview

    def save_interview_insight(self, profile_id: str, insight: str) -> InterviewRecord:
        with self._lock:
            self.get_caregiver_profile(profile_id)
            interview = self._require_interview(profile_id)
            interview = interview.model_copy(
                update={"ai_generated_insight": insight, "updated_at_utc": utc_now()}
            )
            self.interviews[interview.id] = interview
            self._persist_state()
            return interview

    def hire_candidate(self, profile_id: str, request: HireRequest) -> tuple[EmployeeRecord, bool]:
        with self._lock:
            self.get_caregiver_profile(profile_id)
            self._guard_transition(profile_id, PipelineStatus.hired)
            interview = self._require_interview(profile_id)
            now = utc_now()
            fields = {
                "in_person_interview_date": request.in_person_interview_date,
                "hire_date": request.hire_date,
                "start_date": request.start_date,
                "hiring_comments": request.hiring_comments,
                "hiring_manager": request.hiring_manager.strip(),
                "teletrack_pin": request.teletrack_pin.strip(),
                "updated_at_utc": now,
            }
            existing = self.find_employee(profile_id)
            if existing:
                employee = existing.model_copy(update=fields)
                created = False
            else:
                employee = EmployeeRecord(
                    id=new_id("emp"),
                    caregiver_profile_id=profile_id,
                    interview_id=interview.id,
                    created_at_utc=now,
                    **fields,
                )
                created = True
            self.caregiver_employees[employee.id] = employee
            self._persist_state()
            return employee, created

    def list_employees(self) -> list[EmployeeRecord]:
        with self._lock:
            return list(self.caregiver_employees.values())

    # Hiring forms

    def save_hiring_form(
        self, profile_id: str, form_id: str, data: dict[str, Any]
    ) -> CaregiverProfileRecord:
        with self._lock:
            profile = self.get_caregiver_profile(profile_id)
            now = utc_now()
            forms = dict(profile.hiring_forms)
            forms[form_id] = {**forms.get(form_id, {}), **data}
            completed = dict(profile.hiring_forms_completed_at)
            completed[form_id] = now
            updated = profile.model_copy(
                update={
                    "hiring_forms": forms,
                    "hiring_forms_completed_at": completed,
                    "updated_at_utc": now,
                }
            )
            self.caregiver_profiles[profile_id] = updated
            self._persist_state()
            return updated

    # Phone interview availability and appointments

    def get_availability_settings(self) -> AvailabilitySettings:
        with self._lock:
            return self.availability_settings or DEFAULT_AVAILABILITY

    def update_availability_settings(self, settings: AvailabilitySettings) -> AvailabilitySettings:
        with self._lock:
            self.availability_settings = settings
            self._persist_state()
            return settings

    def active_appointment_starts(self) -> list[datetime]:
        with self._lock:
            return [
                item.start_time
                for item in self.appointments.values()
                if item.appointment_status != AppointmentStatus.cancelled
            ]

    def _ensure_slot_free(self, start_time: datetime, *, ignore_id: Optional[str] = None) -> None:
        for item in self.appointments.values():
            if item.id == ignore_id or item.appointment_status == AppointmentStatus.cancelled:
                continue
            if item.start_time == start_time:
                raise StoreConflictError(f"slot already booked: {start_time.isoformat()}")

    def create_appointment(self, request: AppointmentCreateRequest) -> AppointmentRecord:
        with self._lock:
            self.get_caregiver_profile(request.caregiver_id)
            self._ensure_slot_free(request.start_time)
            now = utc_now()
            appointment = AppointmentRecord(
                id=new_id("apt"),
                caregiver_id=request.caregiver_id,
                start_time=request.start_time,
                end_time=request.end_time,
                preferred_times=request.preferred_times,
                created_at_utc=now,
                updated_at_utc=now,
            )
            self.appointments[appointment.id] = appointment
            self._persist_state()
            return appointment

    def get_appointment(self, appointment_id: str) -> AppointmentRecord:
        appointment = self.appointments.get(appointment_id)
        if not appointment:
            raise StoreNotFoundError(f"appointment not found: {appointment_id}")
        return appointment

    def reschedule_appointment(
        self, appointment_id: str, request: AppointmentRescheduleRequest
    ) -> AppointmentRecord:
        with self._lock:
            appointment = self.get_appointment(appointment_id)
            if appointment.appointment_status == AppointmentStatus.cancelled:
                raise StoreConflictError(f"appointment is cancelled: {appointment_id}")
            self._ensure_slot_free(request.start_time, ignore_id=appointment_id)
            appointment = appointment.model_copy(
                update={
                    "start_time": request.start_time,
                    "end_time": request.end_time,
                    "invite_sent": False,
                    "updated_at_utc": utc_now(),
                }
            )
            self.appointments[appointment_id] = appointment
            self._persist_state()
            return appointment

    def cancel_appointment(
        self, appointment_id: str, request: AppointmentCancelRequest
    ) -> AppointmentRecord:
        with self._lock:
            appointment = self.get_appointment(appointment_id)
            if appointment.appointment_status == AppointmentStatus.cancelled:
                raise StoreConflictError(f"appointment already cancelled: {appointment_id}")
            now = utc_now()
            appointment = appointment.model_copy(
                update={
                    "appointment_status": AppointmentStatus.cancelled,
                    "cancel_reason": request.cancel_reason,
                    "cancel_date_time": now,
                    "updated_at_utc": now,
                }
            )
            self.appointments[appointment_id] = appointment
            self._persist_state()
            return appointment

    def mark_appointment_invite_sent(self, appointment_id: str) -> AppointmentRecord:
        with self._lock:
            appointment = self.get_appointment(appointment_id)
            appointment = appointment.model_copy(
                update={"invite_sent": True, "updated_at_utc": utc_now()}
            )
            self.appointments[appointment_id] = appointment
            self._persist_state()
            return appointment

    def list_appointments(self, *, include_cancelled: bool = True) -> list[AppointmentRecord]:
        with self._lock:
            records = list(self.appointments.values())
        if not include_cancelled:
            records = [
                item for item in records if item.appointment_status != AppointmentStatus.cancelled
            ]
        records.sort(key=lambda item: item.start_time)
        return records

    # Clients and referrals

    def create_client(self, request: ClientCreateRequest) -> ClientRecord:
        with self._lock:
            now = utc_now()
            client = ClientRecord(
                **request.model_dump(),
                id=new_id("cli"),
                created_at_utc=now,
                updated_at_utc=now,
            )
            self.clients[client.id] = client
            self._persist_state()
            return client

    def get_client(self, client_id: str) -> ClientRecord:
        client = self.clients.get(client_id)
        if not client:
            raise StoreNotFoundError(f"client not found: {client_id}")
        return client

    def list_clients(self, *, status: Optional[RecordStatus] = None) -> list[ClientRecord]:
        with self._lock:
            records = list(self.clients.values())
        if status:
            records = [item for item in records if item.status == status]
        records.sort(key=lambda item: item.client_name.lower())
        return records

    def create_referral_code(self, client_id: str, *, prefix: str) -> ReferralProfileRecord:
        with self._lock:
            client = self.get_client(client_id)
            if client_id in self.referral_profiles:
                raise StoreConflictError(f"referral code already exists for client: {client_id}")
            taken = {item.referral_code for item in self.referral_profiles.values()}
            code = generate_referral_code(
                client.client_name, prefix=prefix, is_taken=taken.__contains__
            )
            profile = ReferralProfileRecord(
                id=client_id,
                client_id=client_id,
                referral_code=code,
                created_at_utc=utc_now(),
            )
            self.referral_profiles[client_id] = profile
            self._persist_state()
            return profile

    def get_referral_profile(self, client_id: str) -> ReferralProfileRecord:
        profile = self.referral_profiles.get(client_id)
        if not profile:
            raise StoreNotFoundError(f"referral code not found for client: {client_id}")
        return profile

    def get_referral_profile_by_code(self, referral_code: str) -> ReferralProfileRecord:
        wanted = referral_code.strip().upper()
        for profile in self.referral_profiles.values():
            if profile.referral_code == wanted:
                return profile
        raise StoreNotFoundError(f"referral code not found: {referral_code}")

    def create_referral(self, request: ReferralCreateRequest) -> ReferralRecord:
        with self._lock:
            profile = self.get_referral_profile_by_code(request.referral_code)
            now = utc_now()
            referral = ReferralRecord(
                id=new_id("ref"),
                referrer_client_id=profile.client_id,
                referral_code=profile.referral_code,
                new_client_name=request.new_client_name.strip(),
                new_client_email=request.new_client_email,
                new_client_phone=request.new_client_phone,
                created_at_utc=now,
                updated_at_utc=now,
            )
            self.referrals[referral.id] = referral
            self._persist_state()
            return referral

    def list_referrals(
        self,
        *,
        status: Optional[ReferralStatus] = None,
        referrer_client_id: Optional[str] = None,
    ) -> list[ReferralRecord]:
        with self._lock:
            records = list(self.referrals.values())
        if status:
            records = [item for item in records if item.status == status]
        if referrer_client_id:
            records = [item for item in records if item.referrer_client_id == referrer_client_id]
        records.sort(key=lambda item: item.created_at_utc, reverse=True)
        return records

    def update_referral_status(
        self, referral_id: str, request: ReferralStatusUpdateRequest
    ) -> tuple[ReferralRecord, Optional[RewardRecord]]:
        """Status change and optional reward land together or not at all."""
        with self._lock:
            referral = self.referrals.get(referral_id)
            if not referral:
                raise StoreNotFoundError(f"referral not found: {referral_id}")
            reward: Optional[RewardRecord] = None
            update: dict[str, Any] = {"status": request.new_status, "updated_at_utc": utc_now()}
            if request.issue_reward and request.reward_details:
                if referral.reward_id:
                    raise StoreConflictError(f"reward already issued for referral: {referral_id}")
                details = request.reward_details
                reward = RewardRecord(
                    id=new_id("rwd"),
                    client_id=referral.referrer_client_id,
                    referral_id=referral_id,
                    reward_type=details.reward_type,
                    amount=details.amount,
                    description=details.description,
                    created_at_utc=utc_now(),
                )
                update["reward_id"] = reward.id
            referral = referral.model_copy(update=update)
            if reward:
                self.rewards[reward.id] = reward
            self.referrals[referral_id] = referral
            self._persist_state()
            return referral, reward

    def list_rewards(self, *, client_id: Optional[str] = None) -> list[RewardRecord]:
        with self._lock:
            records = list(self.rewards.values())
        if client_id:
            records = [item for item in records if item.client_id == client_id]
        records.sort(key=lambda item: item.created_at_utc, reverse=True)
        return records

    # Care logs

    def create_carelog_template(self, request: CareLogTemplateRequest) -> CareLogTemplateRecord:
        with self._lock:
            template = CareLogTemplateRecord(
                **request.model_dump(), id=new_id("clt"), created_at_utc=utc_now()
            )
            self.carelog_templates[template.id] = template
            self._persist_state()
            return template

    def list_carelog_templates(self) -> list[CareLogTemplateRecord]:
        with self._lock:
            records = list(self.carelog_templates.values())
        records.sort(key=lambda item: item.name.lower())
        return records

    def delete_carelog_template(self, template_id: str) -> None:
        with self._lock:
            if template_id not in self.carelog_templates:
                raise StoreNotFoundError(f"care log template not found: {template_id}")
            in_use = [
                group.id
                for group in self.carelog_groups.values()
                if group.care_log_template_id == template_id
                and group.status == RecordStatus.active
            ]
            if in_use:
                raise StoreConflictError(
                    f"care log template is used by active groups: {', '.join(sorted(in_use))}"
                )
            del self.carelog_templates[template_id]
            self._persist_state()

    def save_carelog_group(self, request: CareLogGroupRequest) -> CareLogGroupRecord:
        with self._lock:
            client = self.get_client(request.client_id)
            if (
                request.care_log_template_id
                and request.care_log_template_id not in self.carelog_templates
            ):
                raise StoreNotFoundError(
                    f"care log template not found: {request.care_log_template_id}"
                )
            emails = sorted({email.strip().lower() for email in request.caregiver_emails})
            now = utc_now()
            fields = {
                "client_id": client.id,
                "client_name": client.client_name,
                "caregiver_emails": emails,
                "care_log_template_id": request.care_log_template_id,
                "client_access_enabled": request.client_access_enabled,
                "last_updated_at_utc": now,
            }
            if request.group_id:
                group = self.get_carelog_group(request.group_id).model_copy(update=fields)
            else:
                group = CareLogGroupRecord(id=new_id("clg"), created_at_utc=now, **fields)
            self.carelog_groups[group.id] = group
            self._persist_state()
            return group

    def get_carelog_group(self, group_id: str) -> CareLogGroupRecord:
        group = self.carelog_groups.get(group_id)
        if not group:
            raise StoreNotFoundError(f"care log group not found: {group_id}")
        return group

    def set_carelog_group_status(self, group_id: str, status: RecordStatus) -> CareLogGroupRecord:
        with self._lock:
            group = self.get_carelog_group(group_id).model_copy(
                update={"status": status, "last_updated_at_utc": utc_now()}
            )
            self.carelog_groups[group_id] = group
            self._persist_state()
            return group

    def list_carelog_groups(
        self,
        *,
        caregiver_email: Optional[str] = None,
        client_id: Optional[str] = None,
    ) -> list[CareLogGroupRecord]:
        with self._lock:
            records = list(self.carelog_groups.values())
        if caregiver_email:
            wanted = caregiver_email.strip().lower()
            records = [item for item in records if wanted in item.caregiver_emails]
        if client_id:
            records = [item for item in records if item.client_id == client_id]
        records.sort(key=lambda item: item.client_name.lower())
        return records

    def create_carelog(self, request: CareLogCreateRequest) -> CareLogRecord:
        with self._lock:
            group = self.get_carelog_group(request.care_log_group_id)
            if group.status != RecordStatus.active:
                raise StoreConflictError(f"care log group is inactive: {group.id}")
            caregiver_email = request.caregiver_id.strip().lower()
            if caregiver_email not in group.caregiver_emails:
                raise StorePermissionError(
                    f"caregiver {caregiver_email} is not assigned to group {group.id}"
                )
            now = utc_now()
            log = CareLogRecord(
                id=new_id("log"),
                care_log_group_id=group.id,
                caregiver_id=caregiver_email,
                caregiver_name=request.caregiver_name.strip(),
                shift_date_time=request.shift_date_time or now,
                shift_end_date_time=request.shift_end_date_time,
                log_notes=request.log_notes,
                template_data=request.template_data,
                log_images=request.log_images,
                created_at_utc=now,
            )
            self.carelogs[log.id] = log
            self._persist_state()
            return log

    def list_carelogs(self, group_id: str) -> list[CareLogRecord]:
        with self._lock:
            self.get_carelog_group(group_id)
            records = [item for item in self.carelogs.values() if item.care_log_group_id == group_id]
        records.sort(key=lambda item: item.shift_date_time, reverse=True)
        return records

    # Client care requests and video check-ins

    def create_care_request(self, request: CareRequestCreateRequest) -> CareRequestRecord:
        with self._lock:
            client = self.get_client(request.client_id)
            now = utc_now()
            record = CareRequestRecord(
                id=new_id("ccr"),
                client_id=client.id,
                client_name=client.client_name,
                client_email=client.email,
                preferred_date_time=request.preferred_date_time,
                duration=request.duration,
                reason=request.reason,
                preferred_caregiver=(request.preferred_caregiver or "").strip() or "N/A",
                urgency=request.urgency,
                created_at_utc=now,
                updated_at_utc=now,
            )
            self.care_requests[record.id] = record
            self._persist_state()
            return record

    def update_care_request_status(
        self, request_id: str, request: CareRequestStatusUpdate
    ) -> CareRequestRecord:
        with self._lock:
            record = self.care_requests.get(request_id)
            if not record:
                raise StoreNotFoundError(f"care request not found: {request_id}")
            update: dict[str, Any] = {"status": request.status, "updated_at_utc": utc_now()}
            if request.admin_notes is not None:
                update["admin_notes"] = request.admin_notes
            record = record.model_copy(update=update)
            self.care_requests[request_id] = record
            self._persist_state()
            return record

    def list_care_requests(
        self, *, status: Optional[str] = None, client_id: Optional[str] = None
    ) -> list[CareRequestRecord]:
        with self._lock:
            records = list(self.care_requests.values())
        if status:
            records = [item for item in records if item.status.value == status]
        if client_id:
            records = [item for item in records if item.client_id == client_id]
        records.sort(key=lambda item: item.created_at_utc, reverse=True)
        return records

    def create_video_checkin(self, request: VideoCheckinCreateRequest) -> VideoCheckinRecord:
        with self._lock:
            client = self.get_client(request.client_id)
            now = utc_now()
            record = VideoCheckinRecord(
                id=new_id("vci"),
                client_id=client.id,
                client_name=client.client_name,
                client_email=client.email,
                requested_by=request.requested_by.strip(),
                notes=request.notes,
                created_at_utc=now,
                updated_at_utc=now,
            )
            self.video_checkins[record.id] = record
            self._persist_state()
            return record

    def schedule_video_checkin(
        self, checkin_id: str, request: VideoCheckinScheduleRequest
    ) -> VideoCheckinRecord:
        with self._lock:
            record = self.video_checkins.get(checkin_id)
            if not record:
                raise StoreNotFoundError(f"video check-in not found: {checkin_id}")
            record = record.model_copy(
                update={
                    "status": VideoCheckinStatus.scheduled,
                    "caregiver_email": request.caregiver_email.strip().lower(),
                    "scheduled_start": request.scheduled_at,
                    "scheduled_end": event_end(EventKind.video_checkin, request.scheduled_at),
                    "google_meet_link": request.google_meet_link,
                    "updated_at_utc": utc_now(),
                }
            )
            self.video_checkins[checkin_id] = record
            self._persist_state()
            return record

    def list_video_checkins(
        self, *, status: Optional[VideoCheckinStatus] = None
    ) -> list[VideoCheckinRecord]:
        with self._lock:
            records = list(self.video_checkins.values())
        if status:
            records = [item for item in records if item.status == status]
        records.sort(key=lambda item: item.created_at_utc, reverse=True)
        return records

    # Campaign templates

    def save_campaign_template(self, request: CampaignTemplateRequest) -> CampaignTemplateRecord:
        with self._lock:
            now = utc_now()
            fields = request.model_dump(exclude={"template_id"})
            fields["last_updated_at_utc"] = now
            if request.template_id:
                existing = self.campaign_templates.get(request.template_id)
                if not existing:
                    raise StoreNotFoundError(f"campaign template not found: {request.template_id}")
                template = existing.model_copy(update=fields)
            else:
                template = CampaignTemplateRecord(id=new_id("cmt"), created_at_utc=now, **fields)
            self.campaign_templates[template.id] = template
            self._persist_state()
            return template

    def list_campaign_templates(self) -> list[CampaignTemplateRecord]:
        with self._lock:
            records = list(self.campaign_templates.values())
        records.sort(key=lambda item: item.name.lower())
        return records

    def delete_campaign_template(self, template_id: str) -> None:
        with self._lock:
            if template_id not in self.campaign_templates:
                raise StoreNotFoundError(f"campaign template not found: {template_id}")
            del self.campaign_templates[template_id]
            self._persist_state()

    # Client signups

    def create_client_signup(self, request: ClientSignupCreateRequest) -> ClientSignupRecord:
        with self._lock:
            if request.client_id:
                self.get_client(request.client_id)
            if request.initial_contact_id:
                self.get_initial_contact(request.initial_contact_id)
            now = utc_now()
            record = ClientSignupRecord(
                id=new_id("csu"),
                client_name=request.client_name.strip(),
                client_email=request.client_email,
                client_id=request.client_id,
                initial_contact_id=request.initial_contact_id,
                form_data=request.form_data,
                created_at_utc=now,
                last_updated_at_utc=now,
            )
            self.client_signups[record.id] = record
            self._persist_state()
            return record

    def get_client_signup(self, signup_id: str) -> ClientSignupRecord:
        record = self.client_signups.get(signup_id)
        if not record:
            raise StoreNotFoundError(f"client signup not found: {signup_id}")
        return record

    def mark_client_signup_sent(self, signup_id: str, *, signing_link: str) -> ClientSignupRecord:
        with self._lock:
            record = self.get_client_signup(signup_id)
            if record.status == ClientSignupStatus.signed:
                raise StoreConflictError(f"client signup already signed: {signup_id}")
            record = record.model_copy(
                update={
                    "status": ClientSignupStatus.pending_signatures,
                    "signing_link": signing_link,
                    "last_updated_at_utc": utc_now(),
                }
            )
            self.client_signups[signup_id] = record
            self._persist_state()
            return record

    def sign_client_signup(
        self, signup_id: str, request: ClientSignatureRequest
    ) -> ClientSignupRecord:
        with self._lock:
            record = self.get_client_signup(signup_id)
            if record.status == ClientSignupStatus.signed:
                raise StoreConflictError(f"client signup already signed: {signup_id}")
            if record.status != ClientSignupStatus.pending_signatures:
                raise StoreConflictError(f"client signup was not sent for signature: {signup_id}")
            record = record.model_copy(
                update={
                    "status": ClientSignupStatus.signed,
                    "client_signature": request.client_signature,
                    "client_initials": request.client_initials.strip().upper(),
                    "client_signature_date": request.client_signature_date,
                    "last_updated_at_utc": utc_now(),
                }
            )
            self.client_signups[signup_id] = record
            self._persist_state()
            return record

    # Lead intake

    def create_initial_contact(
        self,
        *,
        contact: dict[str, str],
        extra: dict[str, str],
        lead_source: str,
        status: str,
    ) -> InitialContactRecord:
        with self._lock:
            record = InitialContactRecord(
                id=new_id("ic"),
                client_name=contact["client_name"],
                client_email=contact["client_email"],
                client_phone=contact["client_phone"],
                prompted_call=lead_source,
                status=status,
                lead_source=lead_source,
                extra_fields=extra,
                created_at_utc=utc_now(),
            )
            self.initial_contacts[record.id] = record
            self._persist_state()
            return record

    def get_initial_contact(self, contact_id: str) -> InitialContactRecord:
        record = self.initial_contacts.get(contact_id)
        if not record:
            raise StoreNotFoundError(f"initial contact not found: {contact_id}")
        return record

    def find_immediate_template(self, lead_status: str) -> Optional[CampaignTemplateRecord]:
        with self._lock:
            templates = sorted(
                self.campaign_templates.values(), key=lambda item: item.created_at_utc
            )
        for template in templates:
            if template.interval_days == 0 and lead_status in template.send_immediately_for:
                return template
        return None

    def converted_contact_ids(self) -> set[str]:
        with self._lock:
            return {
                signup.initial_contact_id
                for signup in self.client_signups.values()
                if signup.initial_contact_id
            }

    def due_follow_ups(
        self, now: Optional[datetime] = None
    ) -> list[tuple[InitialContactRecord, CampaignTemplateRecord]]:
        moment = now or utc_now()
        with self._lock:
            converted = self.converted_contact_ids()
            contacts = [
                item for item in self.initial_contacts.values() if item.id not in converted
            ]
            templates = [
                item for item in self.campaign_templates.values() if item.interval_days > 0
            ]
        contacts.sort(key=lambda item: item.created_at_utc)
        templates.sort(key=lambda item: (item.interval_days, item.created_at_utc))
        return [
            (contact, template)
            for contact in contacts
            for template in templates
            if is_follow_up_due(contact, template, moment)
        ]

    def queue_follow_up(
        self, contact_id: str, template_id: str, mail: OutgoingMail
    ) -> Optional[MailRecord]:
        """Queue a campaign mail unless the contact already received that template."""
        with self._lock:
            contact = self.get_initial_contact(contact_id)
            if any(entry.template_id == template_id for entry in contact.follow_up_history):
                return None
            record = self.enqueue_mail(mail)
            history = [
                *contact.follow_up_history,
                FollowUpEntry(template_id=template_id, sent_at_utc=record.created_at_utc),
            ]
            self.initial_contacts[contact_id] = contact.model_copy(
                update={"follow_up_history": history}
            )
            self._persist_state()
            return record

    def list_initial_contacts(self, limit: int = 100) -> list[InitialContactRecord]:
        with self._lock:
            records = list(self.initial_contacts.values())
        records.sort(key=lambda item: item.created_at_utc, reverse=True)
        return records[: max(1, min(limit, 500))]

    # Mail outbox

    def enqueue_mail(self, mail: OutgoingMail) -> MailRecord:
        with self._lock:
            now = utc_now()
            record = MailRecord(
                id=new_id("mail"),
                to=mail.to,
                cc=mail.cc,
                subject=mail.subject,
                html=mail.html,
                created_at_utc=now,
                updated_at_utc=now,
            )
            self.mail[record.id] = record
            self._persist_mail(record)
            return record

    def list_mail(self, *, status: Optional[MailStatus] = None, limit: int = 100) -> list[MailRecord]:
        with self._lock:
            records = list(self.mail.values())
        if status:
            records = [item for item in records if item.status == status]
        records.sort(key=lambda item: item.created_at_utc, reverse=True)
        return records[: max(1, min(limit, 500))]

    def due_mail(self, now: Optional[datetime] = None) -> list[MailRecord]:
        moment = now or utc_now()
        with self._lock:
            records = [item for item in self.mail.values() if _mail_is_due(item, moment)]
        records.sort(key=lambda item: item.created_at_utc)
        return records

    def claim_due_mail(
        self, now: Optional[datetime] = None, *, lease_seconds: int = 300
    ) -> list[MailRecord]:
        """Mark due mail as sending so a concurrent dispatch skips it until the lease ends."""
        moment = now or utc_now()
        with self._lock:
            claimed = []
            for record in self.due_mail(moment):
                updated = record.model_copy(
                    update={
                        "status": MailStatus.sending,
                        "next_retry_utc": moment + timedelta(seconds=lease_seconds),
                        "updated_at_utc": moment,
                    }
                )
                self.mail[record.id] = updated
                self._persist_mail(updated)
                claimed.append(updated)
            return claimed

    def record_mail_attempt(
        self,
        mail_id: str,
        *,
        success: bool,
        error: Optional[str] = None,
        transient: bool = False,
        max_retries: int = 3,
        backoff_seconds: int = 60,
    ) -> MailRecord:
        with self._lock:
            record = self.mail.get(mail_id)
            if not record:
                raise StoreNotFoundError(f"mail not found: {mail_id}")
            attempts = record.attempts + 1
            if success:
                status = MailStatus.sent
                next_retry = None
                last_error = None
            else:
                last_error = error or "unknown mail delivery error"
                if transient and attempts < max_retries:
                    status = MailStatus.retry_pending
                    next_retry = utc_now() + timedelta(seconds=backoff_seconds * attempts)
                else:
                    status = MailStatus.failed
                    next_retry = None

            updated = record.model_copy(
                update={
                    "attempts": attempts,
                    "status": status,
                    "last_error": last_error,
                    "next_retry_utc": next_retry,
                    "updated_at_utc": utc_now(),
                }
            )
            self.mail[mail_id] = updated
            self._persist_mail(updated)
            return updated

    # Persistence

    def _persist_mail(self, record: MailRecord) -> None:
        if self.persistence:
            self.persistence.upsert_mail(record)

    def _persist_state(self) -> None:
        if not self.persistence:
            return
        with self._lock:
            self.persistence.save_snapshot(self._snapshot_data())

    def _snapshot_data(self) -> dict:
        data: dict[str, Any] = {
            name: [record.model_dump(mode="json") for record in getattr(self, name).values()]
            for name in SNAPSHOT_COLLECTIONS
        }
        data["availability_settings"] = (
            self.availability_settings.model_dump(mode="json")
            if self.availability_settings
            else None
        )
        return data

    def _hydrate_from_snapshot(self, snapshot: dict) -> None:
        for name, record_type in SNAPSHOT_COLLECTIONS.items():
            collection = {}
            for raw in snapshot.get(name, []):
                record = record_type.model_validate(raw)
                collection[record.id] = record
            if name == "referral_profiles":
                collection = {record.client_id: record for record in collection.values()}
            setattr(self, name, collection)
        raw_settings = snapshot.get("availability_settings")
        self.availability_settings = (
            AvailabilitySettings.model_validate(raw_settings) if raw_settings else None
        )
