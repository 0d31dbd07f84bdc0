from __future__ import annotations

import re
from datetime import date, datetime, timezone
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, Field, field_validator, model_validator

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
SLOT_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def utc_now() -> datetime:
    return datetime.utcnow()


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


# Stored timestamps are naive UTC, like utc_now().
UtcDatetime = Annotated[datetime, AfterValidator(_naive_utc)]
EmailAddress = Annotated[str, Field(pattern=EMAIL_PATTERN, max_length=254)]


class PipelineStatus(str, Enum):
    applied = "Applied"
    phone_screen_failed = "Phone Screen Failed"
    final_interview_pending = "Final Interview Pending"
    final_interview_failed = "Final Interview Failed"
    final_interview_passed = "Final Interview Passed"
    orientation_scheduled = "Orientation Scheduled"
    hired = "Hired"


class PhoneScreenResult(str, Enum):
    yes = "Yes"
    no = "No"
    not_applicable = "N/A"


class PhoneScreenDecision(str, Enum):
    yes = "Yes"
    no = "No"


class FinalInterviewStatus(str, Enum):
    pending = "Pending"
    passed = "Passed"
    failed = "Failed"


class FinalInterviewDecision(str, Enum):
    passed = "Passed"
    failed = "Failed"


class InterviewType(str, Enum):
    phone = "Phone"
    in_person = "In-Person"
    google_meet = "Google Meet"
    orientation = "Orientation"


class InterviewMethod(str, Enum):
    in_person = "In-Person"
    google_meet = "Google Meet"


class InterviewPathway(str, Enum):
    separate = "separate"
    combined = "combined"


class YesNo(str, Enum):
    yes = "yes"
    no = "no"


class RecordStatus(str, Enum):
    active = "ACTIVE"
    inactive = "INACTIVE"


class AppointmentStatus(str, Enum):
    scheduled = "scheduled"
    cancelled = "cancelled"


class ReferralStatus(str, Enum):
    pending = "Pending"
    converted = "Converted"
    rewarded = "Rewarded"


class RewardType(str, Enum):
    discount = "Discount"
    free_hours = "Free Hours"


class CareRequestStatus(str, Enum):
    pending = "pending"
    reviewed = "reviewed"
    scheduled = "scheduled"
    denied = "denied"


class VideoCheckinStatus(str, Enum):
    pending = "pending"
    scheduled = "scheduled"


class ClientSignupStatus(str, Enum):
    incomplete = "INCOMPLETE"
    pending_signatures = "PENDING CLIENT SIGNATURES"
    signed = "SIGNED AND PUBLISHED"


class MailStatus(str, Enum):
    queued = "queued"
    sent = "sent"
    sending = "sending"
    retry_pending = "retry_pending"
    failed = "failed"


SKILL_FIELDS = (
    "can_change_brief",
    "can_transfer",
    "can_prepare_meals",
    "can_do_bed_bath",
    "can_use_hoyer_lift",
    "can_use_gait_belt",
    "can_use_purwick",
    "can_empty_catheter",
    "can_empty_colostomy_bag",
    "can_give_medication",
    "can_take_blood_pressure",
    "has_dementia_experience",
    "has_hospice_experience",
)

CERTIFICATION_FIELDS = (
    "hca",
    "hha",
    "cna",
    "live_scan",
    "negative_tb_test",
    "cpr_first_aid",
    "can_work_with_covid",
    "covid_vaccine",
)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class WeeklyAvailability(BaseModel):
    monday: list[str] = Field(default_factory=list)
    tuesday: list[str] = Field(default_factory=list)
    wednesday: list[str] = Field(default_factory=list)
    thursday: list[str] = Field(default_factory=list)
    friday: list[str] = Field(default_factory=list)
    saturday: list[str] = Field(default_factory=list)
    sunday: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_any_shift(self) -> "WeeklyAvailability":
        if not any(getattr(self, day) for day in WEEKDAYS):
            raise ValueError("sunday: please select at least one shift")
        return self


class CaregiverSkills(BaseModel):
    can_change_brief: bool = False
    can_transfer: bool = False
    can_prepare_meals: bool = False
    can_do_bed_bath: bool = False
    can_use_hoyer_lift: bool = False
    can_use_gait_belt: bool = False
    can_use_purwick: bool = False
    can_empty_catheter: bool = False
    can_empty_colostomy_bag: bool = False
    can_give_medication: bool = False
    can_take_blood_pressure: bool = False
    has_dementia_experience: bool = False
    has_hospice_experience: bool = False


class CaregiverApplicationRequest(CaregiverSkills):
    full_name: str = Field(min_length=2, max_length=120)
    email: EmailAddress
    phone: str = Field(min_length=10, max_length=20)
    address: str = Field(min_length=5, max_length=200)
    city: str = Field(min_length=2, max_length=80)
    state: str = Field(min_length=2, max_length=40)
    zip: str = Field(min_length=5, max_length=10)
    gender: Optional[str] = None
    years_experience: int = Field(ge=0, le=70)
    previous_roles: Optional[str] = None
    summary: Optional[str] = Field(default=None, max_length=4000)
    hca: bool = False
    hha: bool = False
    cna: bool = False
    live_scan: bool = False
    negative_tb_test: bool = False
    cpr_first_aid: bool = False
    can_work_with_covid: bool = False
    covid_vaccine: bool = False
    other_languages: Optional[str] = None
    cna_license: Optional[str] = None
    other_certifications: Optional[str] = None
    availability: WeeklyAvailability
    has_car: YesNo
    valid_license: YesNo


class CaregiverProfileUpdateRequest(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=2, max_length=120)
    email: Optional[EmailAddress] = None
    phone: Optional[str] = Field(default=None, min_length=10, max_length=20)
    address: Optional[str] = Field(default=None, min_length=5, max_length=200)
    city: Optional[str] = Field(default=None, min_length=2, max_length=80)
    state: Optional[str] = Field(default=None, min_length=2, max_length=40)
    zip: Optional[str] = Field(default=None, min_length=5, max_length=10)
    gender: Optional[str] = None
    years_experience: Optional[int] = Field(default=None, ge=0, le=70)
    previous_roles: Optional[str] = None
    summary: Optional[str] = Field(default=None, max_length=4000)
    skills: Optional[CaregiverSkills] = None
    certifications: Optional[dict[str, bool]] = None
    other_languages: Optional[str] = None
    cna_license: Optional[str] = None
    other_certifications: Optional[str] = None
    availability: Optional[WeeklyAvailability] = None
    has_car: Optional[YesNo] = None
    valid_license: Optional[YesNo] = None

    @field_validator("certifications")
    @classmethod
    def validate_certification_keys(cls, value: Optional[dict[str, bool]]):
        if value is None:
            return value
        unknown = sorted(set(value) - set(CERTIFICATION_FIELDS))
        if unknown:
            raise ValueError(f"unknown certifications: {', '.join(unknown)}")
        return value


class CaregiverProfileRecord(CaregiverApplicationRequest):
    id: str
    uid: Optional[str] = None
    hiring_forms: dict[str, dict[str, Any]] = Field(default_factory=dict)
    hiring_forms_completed_at: dict[str, datetime] = Field(default_factory=dict)
    created_at_utc: datetime
    updated_at_utc: datetime


class InterviewRecord(BaseModel):
    id: str
    caregiver_profile_id: str
    caregiver_uid: Optional[str] = None
    interview_type: InterviewType = InterviewType.phone
    interview_pathway: Optional[InterviewPathway] = None
    interview_date_time: Optional[datetime] = None
    interview_notes: Optional[str] = None
    candidate_rating: Optional[int] = Field(default=None, ge=0, le=5)
    phone_screen_passed: PhoneScreenResult = PhoneScreenResult.not_applicable
    ai_generated_insight: Optional[str] = None
    google_meet_link: Optional[str] = None
    final_interview_status: Optional[FinalInterviewStatus] = None
    orientation_scheduled: bool = False
    orientation_date_time: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    rejection_notes: Optional[str] = None
    rejection_date_utc: Optional[datetime] = None
    created_at_utc: datetime
    updated_at_utc: datetime


class EmployeeRecord(BaseModel):
    id: str
    caregiver_profile_id: str
    interview_id: str
    in_person_interview_date: Optional[date] = None
    hire_date: date
    start_date: Optional[date] = None
    hiring_comments: Optional[str] = None
    hiring_manager: str
    teletrack_pin: str
    created_at_utc: datetime
    updated_at_utc: datetime


class PhoneScreenRequest(BaseModel):
    interview_notes: str = Field(min_length=1, max_length=8000)
    candidate_rating: int = Field(ge=0, le=5)
    phone_screen_passed: PhoneScreenDecision
    interview_pathway: Optional[InterviewPathway] = None
    interview_method: Optional[InterviewMethod] = None
    event_date_time: Optional[UtcDatetime] = None
    google_meet_link: Optional[str] = None
    ai_generated_insight: Optional[str] = None

    @model_validator(mode="after")
    def validate_next_step(self) -> "PhoneScreenRequest":
        if self.phone_screen_passed != PhoneScreenDecision.yes:
            return self
        missing = []
        if self.interview_pathway is None:
            missing.append("interview_pathway: please select an interview pathway")
        if self.interview_method is None:
            missing.append("interview_method: please select an interview method")
        if self.event_date_time is None:
            missing.append("event_date_time: a date and time are required for the next event")
        if missing:
            raise ValueError("; ".join(missing))
        return self


class FinalInterviewResultRequest(BaseModel):
    final_interview_status: FinalInterviewDecision
    interview_notes: Optional[str] = Field(default=None, max_length=8000)


class OrientationScheduleRequest(BaseModel):
    orientation_date_time: UtcDatetime
    google_meet_link: Optional[str] = None


class OrientationRejectRequest(BaseModel):
    rejection_reason: str = Field(min_length=1, max_length=200)
    rejection_notes: Optional[str] = Field(default=None, max_length=4000)


class InterviewInsightRequest(BaseModel):
    interview_notes: str = Field(min_length=1, max_length=8000)
    candidate_rating: int = Field(ge=0, le=5)
    save_to_interview: bool = False


class InterviewInsightResponse(BaseModel):
    caregiver_profile_id: str
    ai_generated_insight: str
    saved: bool


class HireRequest(BaseModel):
    hire_date: date
    start_date: Optional[date] = None
    in_person_interview_date: Optional[date] = None
    hiring_comments: Optional[str] = Field(default=None, max_length=4000)
    hiring_manager: str = Field(min_length=2, max_length=120)
    teletrack_pin: str = Field(min_length=1, max_length=40)


class CandidateStatusItem(BaseModel):
    caregiver_profile_id: str
    full_name: str
    email: str
    phone: str
    status: PipelineStatus
    created_at_utc: datetime


class CandidateDetailResponse(BaseModel):
    profile: CaregiverProfileRecord
    interview: Optional[InterviewRecord]
    employee: Optional[EmployeeRecord]
    status: PipelineStatus


class CandidateStatusReportResponse(BaseModel):
    counts: dict[PipelineStatus, int]
    items: list[CandidateStatusItem]


class AvailabilitySettings(BaseModel):
    monday_slots: str = ""
    tuesday_slots: str = ""
    wednesday_slots: str = ""
    thursday_slots: str = ""
    friday_slots: str = ""
    saturday_slots: str = ""
    sunday_slots: str = ""

    @model_validator(mode="after")
    def validate_slot_times(self) -> "AvailabilitySettings":
        for day in WEEKDAYS:
            raw = getattr(self, f"{day}_slots")
            for item in [part.strip() for part in raw.split(",") if part.strip()]:
                if not SLOT_TIME_PATTERN.match(item):
                    raise ValueError(f"{day}_slots: invalid time {item!r}, expected HH:MM")
        return self

    def times_for(self, day: str) -> list[str]:
        raw = getattr(self, f"{day}_slots")
        return [part.strip() for part in raw.split(",") if part.strip()]


class SlotOption(BaseModel):
    label: str
    start_time: datetime


class DaySlots(BaseModel):
    date: date
    slots: list[SlotOption]


class AppointmentCreateRequest(BaseModel):
    caregiver_id: str = Field(min_length=1)
    start_time: UtcDatetime
    end_time: UtcDatetime
    preferred_times: list[UtcDatetime] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_window(self) -> "AppointmentCreateRequest":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class AppointmentRescheduleRequest(BaseModel):
    start_time: UtcDatetime
    end_time: UtcDatetime

    @model_validator(mode="after")
    def validate_window(self) -> "AppointmentRescheduleRequest":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class AppointmentCancelRequest(BaseModel):
    cancel_reason: str = Field(min_length=1, max_length=500)


class AppointmentRecord(BaseModel):
    id: str
    caregiver_id: str
    start_time: datetime
    end_time: datetime
    preferred_times: list[datetime] = Field(default_factory=list)
    appointment_status: AppointmentStatus = AppointmentStatus.scheduled
    invite_sent: bool = False
    cancel_reason: Optional[str] = None
    cancel_date_time: Optional[datetime] = None
    created_at_utc: datetime
    updated_at_utc: datetime


class ClientCreateRequest(BaseModel):
    client_name: str = Field(min_length=2, max_length=120)
    dob: Optional[date] = None
    address: str = Field(min_length=3, max_length=200)
    apt_unit: Optional[str] = None
    city: str = Field(min_length=2, max_length=80)
    zip: str = Field(min_length=5, max_length=10)
    mobile: str = Field(min_length=7, max_length=20)
    email: Optional[EmailAddress] = None
    contact_name: Optional[str] = None
    contact_mobile: Optional[str] = None


class ClientRecord(ClientCreateRequest):
    id: str
    status: RecordStatus = RecordStatus.active
    created_at_utc: datetime
    updated_at_utc: datetime


class ReferralCodeRequest(BaseModel):
    client_id: str = Field(min_length=1)


class ReferralProfileRecord(BaseModel):
    id: str
    client_id: str
    referral_code: str
    status: str = "active"
    created_at_utc: datetime


class ReferralInviteRequest(BaseModel):
    friend_name: str = Field(min_length=2, max_length=120)
    friend_email: EmailAddress
    referrer_name: str = Field(min_length=2, max_length=120)
    referral_code: str = Field(min_length=4, max_length=60)
    personal_message: Optional[str] = Field(default=None, max_length=2000)


class ReferralCreateRequest(BaseModel):
    referral_code: str = Field(min_length=4, max_length=60)
    new_client_name: str = Field(min_length=2, max_length=120)
    new_client_email: Optional[EmailAddress] = None
    new_client_phone: Optional[str] = Field(default=None, min_length=7, max_length=20)


class RewardDetails(BaseModel):
    reward_type: RewardType
    amount: float = Field(gt=0)
    description: str = Field(min_length=1, max_length=500)


class ReferralStatusUpdateRequest(BaseModel):
    new_status: ReferralStatus
    issue_reward: bool = False
    reward_details: Optional[RewardDetails] = None

    @model_validator(mode="after")
    def validate_reward(self) -> "ReferralStatusUpdateRequest":
        if self.issue_reward and self.reward_details is None:
            raise ValueError("reward_details are required when issuing a reward")
        return self


class ReferralRecord(BaseModel):
    id: str
    referrer_client_id: str
    referral_code: str
    new_client_name: str
    new_client_email: Optional[str] = None
    new_client_phone: Optional[str] = None
    status: ReferralStatus = ReferralStatus.pending
    reward_id: Optional[str] = None
    created_at_utc: datetime
    updated_at_utc: datetime


class RewardRecord(BaseModel):
    id: str
    client_id: str
    referral_id: str
    reward_type: RewardType
    amount: float
    description: str
    status: str = "Available"
    created_at_utc: datetime


class CareLogTemplateRequest(BaseModel):
    name: str = Field(min_length=3, max_length=120)
    description: Optional[str] = Field(default=None, max_length=1000)
    subsections: list[str] = Field(min_length=1)

    @field_validator("subsections")
    @classmethod
    def validate_subsections(cls, value: list[str]) -> list[str]:
        cleaned = [item.strip() for item in value if item.strip()]
        if not cleaned:
            raise ValueError("please select at least one subsection")
        return cleaned


class CareLogTemplateRecord(CareLogTemplateRequest):
    id: str
    created_at_utc: datetime


class CareLogGroupRequest(BaseModel):
    group_id: Optional[str] = None
    client_id: str = Field(min_length=1)
    caregiver_emails: list[EmailAddress] = Field(min_length=1)
    care_log_template_id: Optional[str] = None
    client_access_enabled: bool = False


class CareLogGroupRecord(BaseModel):
    id: str
    client_id: str
    client_name: str
    caregiver_emails: list[str]
    care_log_template_id: Optional[str] = None
    client_access_enabled: bool = False
    status: RecordStatus = RecordStatus.active
    created_at_utc: datetime
    last_updated_at_utc: datetime


class CareLogCreateRequest(BaseModel):
    care_log_group_id: str = Field(min_length=1)
    caregiver_id: EmailAddress
    caregiver_name: str = Field(min_length=1, max_length=120)
    shift_date_time: Optional[UtcDatetime] = None
    shift_end_date_time: Optional[UtcDatetime] = None
    log_notes: Optional[str] = Field(default=None, max_length=20000)
    template_data: Optional[dict[str, Any]] = None
    log_images: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def validate_content(self) -> "CareLogCreateRequest":
        has_notes = bool(self.log_notes and self.log_notes.strip())
        if not has_notes and not self.template_data:
            raise ValueError("either log_notes or template_data is required")
        for image in self.log_images:
            if not image.startswith("data:image/"):
                raise ValueError("log_images must be image data URIs")
        return self


class CareLogRecord(BaseModel):
    id: str
    care_log_group_id: str
    caregiver_id: str
    caregiver_name: str
    shift_date_time: datetime
    shift_end_date_time: Optional[datetime] = None
    log_notes: Optional[str] = None
    template_data: Optional[dict[str, Any]] = None
    log_images: list[str] = Field(default_factory=list)
    created_at_utc: datetime


class CareLogExtractionRequest(BaseModel):
    image_data_uri: Optional[str] = None
    text_content: Optional[str] = Field(default=None, max_length=50000)

    @model_validator(mode="after")
    def validate_source(self) -> "CareLogExtractionRequest":
        if not self.image_data_uri and not self.text_content:
            raise ValueError("either image_data_uri or text_content is required")
        if self.image_data_uri and not (
            self.image_data_uri.startswith("data:") and ";base64," in self.image_data_uri
        ):
            raise ValueError("image_data_uri must be a base64 data URI")
        return self


class CareLogExtractionResponse(BaseModel):
    shift_date_time: str
    extracted_text: str


class CareRequestCreateRequest(BaseModel):
    client_id: str = Field(min_length=1)
    preferred_date_time: UtcDatetime
    duration: str = Field(min_length=1, max_length=40)
    reason: str = Field(min_length=1, max_length=2000)
    preferred_caregiver: Optional[str] = None
    urgency: str = Field(min_length=1, max_length=40)


class CareRequestStatusUpdate(BaseModel):
    status: CareRequestStatus
    admin_notes: Optional[str] = Field(default=None, max_length=4000)


class CareRequestRecord(BaseModel):
    id: str
    client_id: str
    client_name: str
    client_email: Optional[str] = None
    preferred_date_time: datetime
    duration: str
    reason: str
    preferred_caregiver: str = "N/A"
    urgency: str
    status: CareRequestStatus = CareRequestStatus.pending
    admin_notes: Optional[str] = None
    created_at_utc: datetime
    updated_at_utc: datetime


class VideoCheckinCreateRequest(BaseModel):
    client_id: str = Field(min_length=1)
    requested_by: str = Field(min_length=1, max_length=120)
    notes: Optional[str] = Field(default=None, max_length=2000)


class VideoCheckinScheduleRequest(BaseModel):
    caregiver_email: EmailAddress
    scheduled_at: UtcDatetime
    google_meet_link: Optional[str] = None


class VideoCheckinRecord(BaseModel):
    id: str
    client_id: str
    client_name: str
    client_email: Optional[str] = None
    requested_by: str
    notes: Optional[str] = None
    status: VideoCheckinStatus = VideoCheckinStatus.pending
    caregiver_email: Optional[str] = None
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None
    google_meet_link: Optional[str] = None
    created_at_utc: datetime
    updated_at_utc: datetime


class CampaignTemplateRequest(BaseModel):
    template_id: Optional[str] = None
    name: str = Field(min_length=3, max_length=120)
    description: Optional[str] = Field(default=None, max_length=1000)
    subject: str = Field(min_length=5, max_length=200)
    body: str = Field(min_length=10, max_length=20000)
    interval_days: int = Field(ge=0, le=365)
    type: str = Field(default="email", pattern="^email$")
    send_immediately_for: list[str] = Field(default_factory=list)


class CampaignTemplateRecord(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    subject: str
    body: str
    interval_days: int
    type: str = "email"
    send_immediately_for: list[str] = Field(default_factory=list)
    created_at_utc: datetime
    last_updated_at_utc: datetime


class ClientSignupCreateRequest(BaseModel):
    client_name: str = Field(min_length=2, max_length=120)
    client_email: EmailAddress
    client_id: Optional[str] = None
    initial_contact_id: Optional[str] = None
    form_data: dict[str, Any] = Field(default_factory=dict)


class ClientSignatureRequest(BaseModel):
    client_signature: str = Field(min_length=1)
    client_initials: str = Field(min_length=1, max_length=10)
    client_signature_date: date

    @field_validator("client_signature")
    @classmethod
    def validate_signature(cls, value: str) -> str:
        if not value.startswith("data:image/"):
            raise ValueError("client_signature must be a captured signature image")
        return value


class ClientSignupRecord(BaseModel):
    id: str
    client_name: str
    client_email: str
    client_id: Optional[str] = None
    initial_contact_id: Optional[str] = None
    form_data: dict[str, Any] = Field(default_factory=dict)
    status: ClientSignupStatus = ClientSignupStatus.incomplete
    client_signature: Optional[str] = None
    client_initials: Optional[str] = None
    client_signature_date: Optional[date] = None
    signing_link: Optional[str] = None
    created_at_utc: datetime
    last_updated_at_utc: datetime


class FollowUpEntry(BaseModel):
    template_id: str
    sent_at_utc: datetime


class InitialContactRecord(BaseModel):
    id: str
    client_name: str
    client_email: str
    client_phone: str
    prompted_call: str
    status: str
    lead_source: str
    extra_fields: dict[str, str] = Field(default_factory=dict)
    in_home_visit_set: str = "No"
    send_follow_up_campaigns: bool = True
    follow_up_history: list[FollowUpEntry] = Field(default_factory=list)
    created_at_utc: datetime


class GoogleAdsColumn(BaseModel):
    column_id: str
    string_value: Optional[str] = None


class GoogleAdsLeadPayload(BaseModel):
    lead_id: Optional[str] = None
    campaign_id: Optional[str] = None
    form_id: Optional[str] = None
    user_column_data: list[GoogleAdsColumn] = Field(default_factory=list)


class MailRecord(BaseModel):
    id: str
    to: list[str]
    cc: list[str] = Field(default_factory=list)
    subject: str
    html: str
    status: MailStatus = MailStatus.queued
    attempts: int = 0
    last_error: Optional[str] = None
    next_retry_utc: Optional[datetime] = None
    created_at_utc: datetime
    updated_at_utc: datetime


class MailDispatchResponse(BaseModel):
    attempted: int
    sent: int
    retry_pending: int
    failed: int
    skipped_reason: Optional[str] = None


class CampaignDispatchResponse(BaseModel):
    processed: int
    emails_queued: int


class SpeedToHireRow(BaseModel):
    caregiver_profile_id: str
    full_name: str
    app_to_phone_screen_days: Optional[int] = None
    phone_screen_to_final_days: Optional[int] = None
    final_to_orientation_days: Optional[int] = None
    orientation_to_hire_days: Optional[int] = None
    total_days: Optional[int] = None


class SpeedToHireReport(BaseModel):
    rows: list[SpeedToHireRow]
    averages: dict[str, Optional[float]]


class HiringFormCatalogueItem(BaseModel):
    form_id: str
    title: str
    signature_fields: list[str]


class HiringFormStatusItem(BaseModel):
    form_id: str
    title: str
    completed: bool
    completed_at_utc: Optional[datetime] = None


class HiringFormSaveResponse(BaseModel):
    caregiver_profile_id: str
    form_id: str
    completed_at_utc: datetime
    data: dict[str, Any]


class ReferralInviteResponse(BaseModel):
    mail_id: str
    referral_link: str


class ReferralStatusUpdateResponse(BaseModel):
    referral: ReferralRecord
    reward: Optional[RewardRecord] = None


class CareLogGroupStatusRequest(BaseModel):
    status: RecordStatus


class InitialContactResponse(BaseModel):
    initial_contact_id: str
    lead_source: str
    status: str
    immediate_mail_id: Optional[str] = None
