from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from backend.app.auth import (
    STAFF_ROLES,
    AuthContext,
    ensure_self_or_staff,
    get_optional_auth_context,
    require_roles,
)
from backend.app.models import (
    AppointmentCancelRequest,
    AppointmentCreateRequest,
    AppointmentRecord,
    AppointmentRescheduleRequest,
    AvailabilitySettings,
    CampaignDispatchResponse,
    CampaignTemplateRecord,
    CampaignTemplateRequest,
    CandidateDetailResponse,
    CandidateStatusItem,
    CandidateStatusReportResponse,
    CaregiverApplicationRequest,
    CaregiverProfileRecord,
    CaregiverProfileUpdateRequest,
    CareLogCreateRequest,
    CareLogExtractionRequest,
    CareLogExtractionResponse,
    CareLogGroupRecord,
    CareLogGroupRequest,
    CareLogGroupStatusRequest,
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
    DaySlots,
    EmployeeRecord,
    FinalInterviewResultRequest,
    GoogleAdsLeadPayload,
    HireRequest,
    HiringFormCatalogueItem,
    HiringFormSaveResponse,
    HiringFormStatusItem,
    InitialContactRecord,
    InitialContactResponse,
    InterviewInsightRequest,
    InterviewInsightResponse,
    InterviewMethod,
    InterviewPathway,
    InterviewRecord,
    MailDispatchResponse,
    MailRecord,
    MailStatus,
    OrientationRejectRequest,
    OrientationScheduleRequest,
    PhoneScreenDecision,
    PhoneScreenRequest,
    PipelineStatus,
    ReferralCodeRequest,
    ReferralCreateRequest,
    ReferralInviteRequest,
    ReferralInviteResponse,
    ReferralProfileRecord,
    ReferralRecord,
    ReferralStatus,
    ReferralStatusUpdateRequest,
    ReferralStatusUpdateResponse,
    RewardRecord,
    SpeedToHireReport,
    VideoCheckinCreateRequest,
    VideoCheckinRecord,
    VideoCheckinScheduleRequest,
    VideoCheckinStatus,
    utc_now,
)
from backend.app.observability import MetricsRegistry, configure_logging, observe_request
from backend.app.persistence import SqlitePersistence
from backend.app.services import notifications
from backend.app.services.campaigns import (
    GOOGLE_ADS_LEAD_STATUS,
    assessment_link,
    campaign_mail,
)
from backend.app.services.generative_ai import (
    AiResponseError,
    AiServiceError,
    extract_care_log,
    generate_interview_insights,
)
from backend.app.services.hiring_forms import (
    HIRING_FORMS,
    HiringFormValidationError,
    UnknownHiringFormError,
    validate_hiring_form,
)
from backend.app.services.notifications import (
    PermanentMailError,
    TransientMailError,
    deliver_mail,
)
from backend.app.services.referrals import referral_link
from backend.app.services.reports import (
    cancelled_interviews,
    care_request_summary,
    referral_summary,
    speed_to_hire,
)
from backend.app.services.scheduling import EventKind, event_title, generate_available_slots
from backend.app.services.webhooks import (
    LeadPayloadError,
    SignatureVerificationError,
    WebhookNotConfiguredError,
    map_google_ads_lead,
    verify_webhook_key,
)
from backend.app.settings import Settings, load_settings
from backend.app.store import (
    InMemoryStore,
    StoreConflictError,
    StoreNotFoundError,
    StorePermissionError,
)

logger = logging.getLogger("homecare_hrm.api")

GOOGLE_ADS_LEAD_SOURCE = "Google Ads Lead"


def create_app() -> FastAPI:
    app = FastAPI(title="Home Care HRM API", version="0.1.0")
    configure_logging()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    settings = load_settings()
    persistence = SqlitePersistence(settings.database_url) if settings.persistence_enabled else None
    app.state.store = InMemoryStore(persistence=persistence)
    app.state.settings = settings
    app.state.metrics = MetricsRegistry()

    @app.middleware("http")
    async def observability_middleware(request: Request, call_next):
        return await observe_request(request, call_next, metrics=app.state.metrics)

    app.include_router(build_router())
    return app


def get_store(request: Request) -> InMemoryStore:
    return request.app.state.store


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_metrics(request: Request) -> MetricsRegistry:
    return request.app.state.metrics


def _not_found(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def _conflict(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))


def _forbidden(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc))


def _is_staff(context: AuthContext) -> bool:
    return not context.roles.isdisjoint(STAFF_ROLES)


def _load_profile(store: InMemoryStore, profile_id: str) -> CaregiverProfileRecord:
    try:
        return store.get_caregiver_profile(profile_id)
    except StoreNotFoundError as exc:
        raise _not_found(exc) from exc


def _ensure_carelog_reader(context: AuthContext, group: CareLogGroupRecord) -> None:
    if _is_staff(context):
        return
    if "caregiver" in context.roles and context.user_id.strip().lower() in group.caregiver_emails:
        return
    if "client" in context.roles and context.user_id == group.client_id:
        if not group.client_access_enabled:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="client access is disabled for this care log group",
            )
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail="not allowed to read this care log group",
    )


def build_router() -> APIRouter:
    router = APIRouter()

    @router.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @router.get("/health/ready")
    def readiness(request: Request) -> dict[str, str]:
        settings = get_settings(request)
        persistence = getattr(request.app.state.store, "persistence", None)
        if settings.persistence_enabled and persistence and not persistence.ping():
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="database unavailable",
            )
        return {"status": "ready"}

    @router.get("/metrics", response_class=PlainTextResponse)
    def metrics(request: Request) -> Response:
        registry = get_metrics(request)
        return PlainTextResponse(registry.to_prometheus())

    # Candidates

    @router.post(
        "/candidates/apply",
        response_model=CaregiverProfileRecord,
        status_code=status.HTTP_201_CREATED,
    )
    def submit_application(
        payload: CaregiverApplicationRequest,
        request: Request,
        context: Optional[AuthContext] = Depends(get_optional_auth_context),
    ) -> CaregiverProfileRecord:
        store = get_store(request)
        profile = store.create_caregiver_profile(
            payload, uid=context.user_id if context else None
        )
        logger.info("application_submitted profile_id=%s", profile.id)
        return profile

    @router.get("/candidates", response_model=list[CandidateStatusItem])
    def search_candidates(
        request: Request,
        skills: Optional[str] = None,
        hiring_status: Optional[PipelineStatus] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        q: Optional[str] = None,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> list[CandidateStatusItem]:
        if date_from and date_to and date_from > date_to:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="date_from cannot be greater than date_to",
            )
        store = get_store(request)
        try:
            matches = store.search_candidates(
                skills=skills.split(",") if skills else None,
                status=hiring_status,
                date_from=date_from,
                date_to=date_to,
                text=q,
            )
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
            ) from exc
        return [
            CandidateStatusItem(
                caregiver_profile_id=profile.id,
                full_name=profile.full_name,
                email=profile.email,
                phone=profile.phone,
                status=derived,
                created_at_utc=profile.created_at_utc,
            )
            for profile, derived in matches
        ]

    @router.get("/candidates/status-report", response_model=CandidateStatusReportResponse)
    def candidate_status_report(
        request: Request,
        q: Optional[str] = None,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> CandidateStatusReportResponse:
        store = get_store(request)
        matches = store.search_candidates(text=q)
        counts = {pipeline_status: 0 for pipeline_status in PipelineStatus}
        items = []
        for profile, derived in matches:
            counts[derived] += 1
            items.append(
                CandidateStatusItem(
                    caregiver_profile_id=profile.id,
                    full_name=profile.full_name,
                    email=profile.email,
                    phone=profile.phone,
                    status=derived,
                    created_at_utc=profile.created_at_utc,
                )
            )
        return CandidateStatusReportResponse(counts=counts, items=items)

    @router.get("/candidates/{profile_id}", response_model=CandidateDetailResponse)
    def get_candidate(
        profile_id: str,
        request: Request,
        context: AuthContext = Depends(require_roles(*STAFF_ROLES, "candidate")),
    ) -> CandidateDetailResponse:
        store = get_store(request)
        profile = _load_profile(store, profile_id)
        ensure_self_or_staff(context, profile.uid)
        return CandidateDetailResponse(
            profile=profile,
            interview=store.find_interview(profile_id),
            employee=store.find_employee(profile_id),
            status=store.pipeline_status(profile_id),
        )

    @router.patch("/candidates/{profile_id}", response_model=CaregiverProfileRecord)
    def update_candidate(
        profile_id: str,
        payload: CaregiverProfileUpdateRequest,
        request: Request,
        context: AuthContext = Depends(require_roles(*STAFF_ROLES, "candidate")),
    ) -> CaregiverProfileRecord:
        store = get_store(request)
        ensure_self_or_staff(context, _load_profile(store, profile_id).uid)
        try:
            return store.update_caregiver_profile(profile_id, payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc

    # Interviews and hiring

    @router.put("/candidates/{profile_id}/phone-screen", response_model=InterviewRecord)
    def save_phone_screen(
        profile_id: str,
        payload: PhoneScreenRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> InterviewRecord:
        store = get_store(request)
        settings = get_settings(request)
        try:
            interview, target = store.save_phone_screen(profile_id, payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        except StoreConflictError as exc:
            raise _conflict(exc) from exc

        if payload.phone_screen_passed == PhoneScreenDecision.yes and interview.interview_date_time:
            profile = store.get_caregiver_profile(profile_id)
            kind = (
                EventKind.interview_and_orientation
                if payload.interview_pathway == InterviewPathway.combined
                else EventKind.final_interview
            )
            store.enqueue_mail(
                notifications.interview_confirmation(
                    settings,
                    profile=profile,
                    title=event_title(kind, profile.full_name),
                    start_utc=interview.interview_date_time,
                    method=interview.interview_type.value,
                    meet_link=interview.google_meet_link,
                )
            )
        logger.info("phone_screen_saved profile_id=%s status=%s", profile_id, target.value)
        return interview

    @router.post("/candidates/{profile_id}/final-interview", response_model=InterviewRecord)
    def record_final_interview(
        profile_id: str,
        payload: FinalInterviewResultRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> InterviewRecord:
        store = get_store(request)
        try:
            return store.record_final_interview_result(profile_id, payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        except StoreConflictError as exc:
            raise _conflict(exc) from exc

    @router.post("/candidates/{profile_id}/orientation", response_model=InterviewRecord)
    def schedule_orientation(
        profile_id: str,
        payload: OrientationScheduleRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> InterviewRecord:
        store = get_store(request)
        settings = get_settings(request)
        try:
            interview = store.schedule_orientation(profile_id, payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        except StoreConflictError as exc:
            raise _conflict(exc) from exc

        profile = store.get_caregiver_profile(profile_id)
        store.enqueue_mail(
            notifications.interview_confirmation(
                settings,
                profile=profile,
                title=event_title(EventKind.orientation, profile.full_name),
                start_utc=payload.orientation_date_time,
                method=(
                    InterviewMethod.google_meet.value
                    if payload.google_meet_link
                    else InterviewMethod.in_person.value
                ),
                meet_link=payload.google_meet_link,
            )
        )
        return interview

    @router.post("/candidates/{profile_id}/orientation/reject", response_model=InterviewRecord)
    def reject_after_orientation(
        profile_id: str,
        payload: OrientationRejectRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> InterviewRecord:
        store = get_store(request)
        settings = get_settings(request)
        try:
            interview = store.reject_after_orientation(profile_id, payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        except StoreConflictError as exc:
            raise _conflict(exc) from exc
        store.enqueue_mail(
            notifications.orientation_rejection(
                settings, profile=store.get_caregiver_profile(profile_id)
            )
        )
        return interview

    @router.post("/candidates/{profile_id}/insights", response_model=InterviewInsightResponse)
    def interview_insights(
        profile_id: str,
        payload: InterviewInsightRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> InterviewInsightResponse:
        store = get_store(request)
        settings = get_settings(request)
        registry = get_metrics(request)
        profile = _load_profile(store, profile_id)
        try:
            insight = generate_interview_insights(
                settings,
                profile,
                interview_notes=payload.interview_notes,
                candidate_rating=payload.candidate_rating,
            )
        except AiServiceError as exc:
            registry.record_ai_call(kind="interview_insights", outcome="unavailable")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
            ) from exc
        except AiResponseError as exc:
            registry.record_ai_call(kind="interview_insights", outcome="bad_response")
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
        registry.record_ai_call(kind="interview_insights", outcome="ok")

        if payload.save_to_interview:
            try:
                store.save_interview_insight(profile_id, insight)
            except StoreConflictError as exc:
                raise _conflict(exc) from exc
        return InterviewInsightResponse(
            caregiver_profile_id=profile_id,
            ai_generated_insight=insight,
            saved=payload.save_to_interview,
        )

    @router.post("/candidates/{profile_id}/hire", response_model=EmployeeRecord)
    def hire_candidate(
        profile_id: str,
        payload: HireRequest,
        request: Request,
        response: Response,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> EmployeeRecord:
        store = get_store(request)
        try:
            employee, created = store.hire_candidate(profile_id, payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        except StoreConflictError as exc:
            raise _conflict(exc) from exc
        if created:
            response.status_code = status.HTTP_201_CREATED
            logger.info("candidate_hired profile_id=%s employee_id=%s", profile_id, employee.id)
        return employee

    # Hiring forms

    @router.get("/hiring-forms", response_model=list[HiringFormCatalogueItem])
    def hiring_form_catalogue() -> list[HiringFormCatalogueItem]:
        return [
            HiringFormCatalogueItem(
                form_id=definition.form_id,
                title=definition.title,
                signature_fields=definition.signature_fields,
            )
            for definition in HIRING_FORMS.values()
        ]

    @router.get(
        "/candidates/{profile_id}/hiring-forms", response_model=list[HiringFormStatusItem]
    )
    def hiring_form_status(
        profile_id: str,
        request: Request,
        context: AuthContext = Depends(require_roles(*STAFF_ROLES, "candidate")),
    ) -> list[HiringFormStatusItem]:
        profile = _load_profile(get_store(request), profile_id)
        ensure_self_or_staff(context, profile.uid)
        return [
            HiringFormStatusItem(
                form_id=definition.form_id,
                title=definition.title,
                completed=definition.form_id in profile.hiring_forms_completed_at,
                completed_at_utc=profile.hiring_forms_completed_at.get(definition.form_id),
            )
            for definition in HIRING_FORMS.values()
        ]

    @router.put(
        "/candidates/{profile_id}/hiring-forms/{form_id}", response_model=HiringFormSaveResponse
    )
    def save_hiring_form(
        profile_id: str,
        form_id: str,
        request: Request,
        payload: dict[str, Any] = Body(...),
        context: AuthContext = Depends(require_roles(*STAFF_ROLES, "candidate")),
    ) -> HiringFormSaveResponse:
        store = get_store(request)
        ensure_self_or_staff(context, _load_profile(store, profile_id).uid)
        try:
            data = validate_hiring_form(form_id, payload)
        except UnknownHiringFormError as exc:
            raise _not_found(exc) from exc
        except HiringFormValidationError as exc:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.errors
            ) from exc
        try:
            profile = store.save_hiring_form(profile_id, form_id, data)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        return HiringFormSaveResponse(
            caregiver_profile_id=profile_id,
            form_id=form_id,
            completed_at_utc=profile.hiring_forms_completed_at[form_id],
            data=profile.hiring_forms[form_id],
        )

    # Phone interview scheduling

    @router.get("/settings/availability", response_model=AvailabilitySettings)
    def get_availability(
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> AvailabilitySettings:
        return get_store(request).get_availability_settings()

    @router.put("/settings/availability", response_model=AvailabilitySettings)
    def update_availability(
        payload: AvailabilitySettings,
        request: Request,
        _: AuthContext = Depends(require_roles("admin", "owner")),
    ) -> AvailabilitySettings:
        return get_store(request).update_availability_settings(payload)

    @router.get("/appointments/slots", response_model=list[DaySlots])
    def available_slots(request: Request, weeks: Optional[int] = None) -> list[DaySlots]:
        store = get_store(request)
        settings = get_settings(request)
        return generate_available_slots(
            availability=store.get_availability_settings(),
            booked_starts_utc=store.active_appointment_starts(),
            now_utc=utc_now(),
            timezone_name=settings.agency_timezone,
            weeks=max(1, min(weeks or settings.slot_weeks_ahead, 8)),
        )

    @router.post(
        "/appointments",
        response_model=AppointmentRecord,
        status_code=status.HTTP_201_CREATED,
    )
    def book_appointment(
        payload: AppointmentCreateRequest,
        request: Request,
    ) -> AppointmentRecord:
        store = get_store(request)
        settings = get_settings(request)
        try:
            appointment = store.create_appointment(payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        except StoreConflictError as exc:
            raise _conflict(exc) from exc
        store.enqueue_mail(
            notifications.appointment_booked(
                settings,
                profile=store.get_caregiver_profile(appointment.caregiver_id),
                appointment=appointment,
            )
        )
        logger.info(
            "appointment_booked appointment_id=%s caregiver_id=%s",
            appointment.id,
            appointment.caregiver_id,
        )
        return appointment

    @router.get("/appointments", response_model=list[AppointmentRecord])
    def list_appointments(
        request: Request,
        include_cancelled: bool = True,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> list[AppointmentRecord]:
        return get_store(request).list_appointments(include_cancelled=include_cancelled)

    @router.post("/appointments/{appointment_id}/reschedule", response_model=AppointmentRecord)
    def reschedule_appointment(
        appointment_id: str,
        payload: AppointmentRescheduleRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> AppointmentRecord:
        store = get_store(request)
        try:
            return store.reschedule_appointment(appointment_id, payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        except StoreConflictError as exc:
            raise _conflict(exc) from exc

    @router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentRecord)
    def cancel_appointment(
        appointment_id: str,
        payload: AppointmentCancelRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> AppointmentRecord:
        store = get_store(request)
        try:
            return store.cancel_appointment(appointment_id, payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        except StoreConflictError as exc:
            raise _conflict(exc) from exc

    # Clients and referrals

    @router.post("/clients", response_model=ClientRecord, status_code=status.HTTP_201_CREATED)
    def create_client(
        payload: ClientCreateRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> ClientRecord:
        return get_store(request).create_client(payload)

    @router.get("/clients", response_model=list[ClientRecord])
    def list_clients(
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> list[ClientRecord]:
        return get_store(request).list_clients()

    @router.get("/clients/{client_id}", response_model=ClientRecord)
    def get_client(
        client_id: str,
        request: Request,
        context: AuthContext = Depends(require_roles(*STAFF_ROLES, "client")),
    ) -> ClientRecord:
        ensure_self_or_staff(context, client_id)
        try:
            return get_store(request).get_client(client_id)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc

    @router.post(
        "/referrals/codes",
        response_model=ReferralProfileRecord,
        status_code=status.HTTP_201_CREATED,
    )
    def create_referral_code(
        payload: ReferralCodeRequest,
        request: Request,
        context: AuthContext = Depends(require_roles(*STAFF_ROLES, "client")),
    ) -> ReferralProfileRecord:
        ensure_self_or_staff(context, payload.client_id)
        store = get_store(request)
        settings = get_settings(request)
        try:
            return store.create_referral_code(payload.client_id, prefix=settings.referral_code_prefix)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        except StoreConflictError as exc:
            raise _conflict(exc) from exc

    @router.get("/clients/{client_id}/referral-code", response_model=ReferralProfileRecord)
    def get_referral_code(
        client_id: str,
        request: Request,
        context: AuthContext = Depends(require_roles(*STAFF_ROLES, "client")),
    ) -> ReferralProfileRecord:
        ensure_self_or_staff(context, client_id)
        try:
            return get_store(request).get_referral_profile(client_id)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc

    @router.post("/referrals/invites", response_model=ReferralInviteResponse)
    def send_referral_invite(
        payload: ReferralInviteRequest,
        request: Request,
        context: AuthContext = Depends(require_roles(*STAFF_ROLES, "client")),
    ) -> ReferralInviteResponse:
        store = get_store(request)
        settings = get_settings(request)
        try:
            referral_profile = store.get_referral_profile_by_code(payload.referral_code)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        ensure_self_or_staff(context, referral_profile.client_id)
        link = referral_link(
            settings.public_base_url,
            referral_code=referral_profile.referral_code,
            referrer_name=payload.referrer_name,
        )
        mail = store.enqueue_mail(
            notifications.referral_invite(
                settings,
                friend_name=payload.friend_name,
                friend_email=payload.friend_email,
                referrer_name=payload.referrer_name,
                link=link,
                personal_message=payload.personal_message,
            )
        )
        return ReferralInviteResponse(mail_id=mail.id, referral_link=link)

    @router.post("/referrals", response_model=ReferralRecord, status_code=status.HTTP_201_CREATED)
    def record_referral(payload: ReferralCreateRequest, request: Request) -> ReferralRecord:
        try:
            return get_store(request).create_referral(payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc

    @router.get("/referrals", response_model=list[ReferralRecord])
    def list_referrals(
        request: Request,
        referral_status: Optional[ReferralStatus] = None,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> list[ReferralRecord]:
        return get_store(request).list_referrals(status=referral_status)

    @router.post(
        "/referrals/{referral_id}/status", response_model=ReferralStatusUpdateResponse
    )
    def update_referral_status(
        referral_id: str,
        payload: ReferralStatusUpdateRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> ReferralStatusUpdateResponse:
        try:
            referral, reward = get_store(request).update_referral_status(referral_id, payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        except StoreConflictError as exc:
            raise _conflict(exc) from exc
        return ReferralStatusUpdateResponse(referral=referral, reward=reward)

    @router.get("/clients/{client_id}/rewards", response_model=list[RewardRecord])
    def list_client_rewards(
        client_id: str,
        request: Request,
        context: AuthContext = Depends(require_roles(*STAFF_ROLES, "client")),
    ) -> list[RewardRecord]:
        ensure_self_or_staff(context, client_id)
        return get_store(request).list_rewards(client_id=client_id)

    # Care logs

    @router.post(
        "/carelog-templates",
        response_model=CareLogTemplateRecord,
        status_code=status.HTTP_201_CREATED,
    )
    def create_carelog_template(
        payload: CareLogTemplateRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> CareLogTemplateRecord:
        return get_store(request).create_carelog_template(payload)

    @router.get("/carelog-templates", response_model=list[CareLogTemplateRecord])
    def list_carelog_templates(
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES, "caregiver")),
    ) -> list[CareLogTemplateRecord]:
        return get_store(request).list_carelog_templates()

    @router.delete("/carelog-templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_carelog_template(
        template_id: str,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> Response:
        try:
            get_store(request).delete_carelog_template(template_id)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        except StoreConflictError as exc:
            raise _conflict(exc) from exc
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.put("/carelog-groups", response_model=CareLogGroupRecord)
    def save_carelog_group(
        payload: CareLogGroupRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> CareLogGroupRecord:
        try:
            return get_store(request).save_carelog_group(payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc

    @router.get("/carelog-groups", response_model=list[CareLogGroupRecord])
    def list_carelog_groups(
        request: Request,
        context: AuthContext = Depends(require_roles(*STAFF_ROLES, "caregiver")),
    ) -> list[CareLogGroupRecord]:
        store = get_store(request)
        if _is_staff(context):
            return store.list_carelog_groups()
        return store.list_carelog_groups(caregiver_email=context.user_id)

    @router.post("/carelog-groups/{group_id}/status", response_model=CareLogGroupRecord)
    def set_carelog_group_status(
        group_id: str,
        payload: CareLogGroupStatusRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> CareLogGroupRecord:
        try:
            return get_store(request).set_carelog_group_status(group_id, payload.status)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc

    @router.get("/carelog-groups/{group_id}/carelogs", response_model=list[CareLogRecord])
    def carelog_report(
        group_id: str,
        request: Request,
        context: AuthContext = Depends(require_roles(*STAFF_ROLES, "caregiver", "client")),
    ) -> list[CareLogRecord]:
        store = get_store(request)
        try:
            group = store.get_carelog_group(group_id)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        _ensure_carelog_reader(context, group)
        return store.list_carelogs(group_id)

    @router.post("/carelogs", response_model=CareLogRecord, status_code=status.HTTP_201_CREATED)
    def submit_carelog(
        payload: CareLogCreateRequest,
        request: Request,
        context: AuthContext = Depends(require_roles(*STAFF_ROLES, "caregiver")),
    ) -> CareLogRecord:
        if not _is_staff(context) and context.user_id.strip().lower() != payload.caregiver_id.lower():
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="caregivers may only submit their own care logs",
            )
        try:
            return get_store(request).create_carelog(payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        except StorePermissionError as exc:
            raise _forbidden(exc) from exc
        except StoreConflictError as exc:
            raise _conflict(exc) from exc

    @router.post("/carelogs/extract", response_model=CareLogExtractionResponse)
    def extract_carelog(
        payload: CareLogExtractionRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES, "caregiver")),
    ) -> CareLogExtractionResponse:
        registry = get_metrics(request)
        try:
            result = extract_care_log(
                get_settings(request),
                image_data_uri=payload.image_data_uri,
                text_content=payload.text_content,
                now_utc=utc_now(),
            )
        except AiServiceError as exc:
            registry.record_ai_call(kind="care_log_extraction", outcome="unavailable")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)
            ) from exc
        except AiResponseError as exc:
            registry.record_ai_call(kind="care_log_extraction", outcome="bad_response")
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
        registry.record_ai_call(kind="care_log_extraction", outcome="ok")
        return result

    # Client care requests and video check-ins

    @router.post(
        "/care-requests",
        response_model=CareRequestRecord,
        status_code=status.HTTP_201_CREATED,
    )
    def create_care_request(
        payload: CareRequestCreateRequest,
        request: Request,
        context: AuthContext = Depends(require_roles(*STAFF_ROLES, "client")),
    ) -> CareRequestRecord:
        ensure_self_or_staff(context, payload.client_id)
        store = get_store(request)
        try:
            record = store.create_care_request(payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        store.enqueue_mail(
            notifications.care_request_submitted(get_settings(request), record=record)
        )
        return record

    @router.get("/care-requests", response_model=list[CareRequestRecord])
    def list_care_requests(
        request: Request,
        request_status: Optional[str] = None,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> list[CareRequestRecord]:
        return get_store(request).list_care_requests(status=request_status)

    @router.post("/care-requests/{request_id}/status", response_model=CareRequestRecord)
    def update_care_request_status(
        request_id: str,
        payload: CareRequestStatusUpdate,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> CareRequestRecord:
        try:
            return get_store(request).update_care_request_status(request_id, payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc

    @router.post(
        "/video-checkins",
        response_model=VideoCheckinRecord,
        status_code=status.HTTP_201_CREATED,
    )
    def request_video_checkin(
        payload: VideoCheckinCreateRequest,
        request: Request,
        context: AuthContext = Depends(require_roles(*STAFF_ROLES, "client")),
    ) -> VideoCheckinRecord:
        ensure_self_or_staff(context, payload.client_id)
        store = get_store(request)
        try:
            record = store.create_video_checkin(payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        store.enqueue_mail(
            notifications.video_checkin_requested(get_settings(request), record=record)
        )
        return record

    @router.get("/video-checkins", response_model=list[VideoCheckinRecord])
    def list_video_checkins(
        request: Request,
        checkin_status: Optional[VideoCheckinStatus] = None,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> list[VideoCheckinRecord]:
        return get_store(request).list_video_checkins(status=checkin_status)

    @router.post("/video-checkins/{checkin_id}/schedule", response_model=VideoCheckinRecord)
    def schedule_video_checkin(
        checkin_id: str,
        payload: VideoCheckinScheduleRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> VideoCheckinRecord:
        store = get_store(request)
        try:
            record = store.schedule_video_checkin(checkin_id, payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        store.enqueue_mail(
            notifications.video_checkin_scheduled(get_settings(request), record=record)
        )
        return record

    # Campaign templates

    @router.put("/campaign-templates", response_model=CampaignTemplateRecord)
    def save_campaign_template(
        payload: CampaignTemplateRequest,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> CampaignTemplateRecord:
        try:
            return get_store(request).save_campaign_template(payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc

    @router.get("/campaign-templates", response_model=list[CampaignTemplateRecord])
    def list_campaign_templates(
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> list[CampaignTemplateRecord]:
        return get_store(request).list_campaign_templates()

    @router.delete("/campaign-templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
    def delete_campaign_template(
        template_id: str,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> Response:
        try:
            get_store(request).delete_campaign_template(template_id)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    # Client signups

    @router.post(
        "/client-signups",
        response_model=ClientSignupRecord,
        status_code=status.HTTP_201_CREATED,
    )
    def create_client_signup(
        payload: ClientSignupCreateRequest,
        request: Request,
        _: AuthContext = Depends(require_roles("admin", "owner")),
    ) -> ClientSignupRecord:
        try:
            return get_store(request).create_client_signup(payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc

    @router.get("/client-signups/{signup_id}", response_model=ClientSignupRecord)
    def get_client_signup(
        signup_id: str,
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> ClientSignupRecord:
        try:
            return get_store(request).get_client_signup(signup_id)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc

    @router.post("/client-signups/{signup_id}/send", response_model=ClientSignupRecord)
    def send_client_signup(
        signup_id: str,
        request: Request,
        _: AuthContext = Depends(require_roles("admin", "owner")),
    ) -> ClientSignupRecord:
        store = get_store(request)
        settings = get_settings(request)
        link = f"{settings.public_base_url}/client-sign/{signup_id}"
        try:
            record = store.mark_client_signup_sent(signup_id, signing_link=link)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        except StoreConflictError as exc:
            raise _conflict(exc) from exc
        store.enqueue_mail(
            notifications.client_signature_request(settings, record=record, link=link)
        )
        return record

    @router.post("/client-signups/{signup_id}/sign", response_model=ClientSignupRecord)
    def sign_client_signup(
        signup_id: str,
        payload: ClientSignatureRequest,
        request: Request,
    ) -> ClientSignupRecord:
        try:
            return get_store(request).sign_client_signup(signup_id, payload)
        except StoreNotFoundError as exc:
            raise _not_found(exc) from exc
        except StoreConflictError as exc:
            raise _conflict(exc) from exc

    # Lead intake

    @router.post("/webhooks/google-ads", response_model=InitialContactResponse)
    def google_ads_lead(
        payload: GoogleAdsLeadPayload,
        request: Request,
        key: Optional[str] = None,
    ) -> InitialContactResponse:
        settings = get_settings(request)
        try:
            verify_webhook_key(key, settings.google_ads_webhook_secret)
            contact, extra = map_google_ads_lead(payload)
        except WebhookNotConfiguredError as exc:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
            ) from exc
        except SignatureVerificationError as exc:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
        except LeadPayloadError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        store = get_store(request)
        record = store.create_initial_contact(
            contact=contact,
            extra=extra,
            lead_source=GOOGLE_ADS_LEAD_SOURCE,
            status=GOOGLE_ADS_LEAD_STATUS,
        )
        logger.info("google_ads_lead_received initial_contact_id=%s", record.id)

        immediate_mail_id = None
        template = store.find_immediate_template(record.status)
        if template:
            mail = store.queue_follow_up(record.id, template.id, campaign_mail(template, record))
            if mail:
                immediate_mail_id = mail.id
                logger.info(
                    "campaign_mail_queued initial_contact_id=%s template_id=%s mail_id=%s",
                    record.id,
                    template.id,
                    mail.id,
                )
        return InitialContactResponse(
            initial_contact_id=record.id,
            lead_source=record.lead_source,
            status=record.status,
            immediate_mail_id=immediate_mail_id,
        )

    @router.get("/initial-contacts", response_model=list[InitialContactRecord])
    def list_initial_contacts(
        request: Request,
        limit: int = 100,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> list[InitialContactRecord]:
        return get_store(request).list_initial_contacts(limit=limit)

    # Mail outbox

    @router.get("/mail", response_model=list[MailRecord])
    def list_mail(
        request: Request,
        mail_status: Optional[MailStatus] = None,
        limit: int = 100,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> list[MailRecord]:
        return get_store(request).list_mail(status=mail_status, limit=limit)

    @router.post("/mail/dispatch", response_model=MailDispatchResponse)
    def dispatch_mail(
        request: Request,
        _: AuthContext = Depends(require_roles("admin", "service")),
    ) -> MailDispatchResponse:
        store = get_store(request)
        settings = get_settings(request)
        registry = get_metrics(request)
        if not settings.smtp_configured:
            return MailDispatchResponse(
                attempted=0,
                sent=0,
                retry_pending=0,
                failed=0,
                skipped_reason="smtp is not configured",
            )

        counts = {MailStatus.sent: 0, MailStatus.retry_pending: 0, MailStatus.failed: 0}
        due = store.claim_due_mail()
        for record in due:
            try:
                deliver_mail(settings, record)
            except TransientMailError as exc:
                updated = store.record_mail_attempt(
                    record.id,
                    success=False,
                    error=str(exc),
                    transient=True,
                    max_retries=settings.mail_max_retries,
                    backoff_seconds=settings.mail_retry_backoff_seconds,
                )
            except PermanentMailError as exc:
                updated = store.record_mail_attempt(
                    record.id,
                    success=False,
                    error=str(exc),
                    transient=False,
                    max_retries=settings.mail_max_retries,
                    backoff_seconds=settings.mail_retry_backoff_seconds,
                )
            else:
                updated = store.record_mail_attempt(record.id, success=True)
            counts[updated.status] += 1
            registry.record_mail_delivery(updated.status.value)
            if updated.status != MailStatus.sent:
                logger.warning(
                    "mail_delivery_failed id=%s status=%s error=%s",
                    updated.id,
                    updated.status.value,
                    updated.last_error,
                )
        return MailDispatchResponse(
            attempted=len(due),
            sent=counts[MailStatus.sent],
            retry_pending=counts[MailStatus.retry_pending],
            failed=counts[MailStatus.failed],
        )

    @router.post("/campaigns/dispatch", response_model=CampaignDispatchResponse)
    def dispatch_campaigns(
        request: Request,
        _: AuthContext = Depends(require_roles("admin", "service")),
    ) -> CampaignDispatchResponse:
        store = get_store(request)
        settings = get_settings(request)
        due = store.due_follow_ups()
        queued = 0
        for contact, template in due:
            mail = campaign_mail(
                template,
                contact,
                assessment_url=assessment_link(settings.public_base_url, contact.id),
            )
            if store.queue_follow_up(contact.id, template.id, mail):
                queued += 1
        logger.info("campaign_dispatch processed=%s emails_queued=%s", len(due), queued)
        return CampaignDispatchResponse(processed=len(due), emails_queued=queued)

    # Reports

    @router.get("/reports/speed-to-hire", response_model=SpeedToHireReport)
    def speed_to_hire_report(
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> SpeedToHireReport:
        store = get_store(request)
        profiles = {profile.id: profile for profile in store.list_caregiver_profiles()}
        interviews = {}
        for profile_id in profiles:
            interview = store.find_interview(profile_id)
            if interview:
                interviews[profile_id] = interview
        return speed_to_hire(
            profiles=profiles,
            interviews_by_profile=interviews,
            employees=store.list_employees(),
        )

    @router.get("/reports/cancelled-interviews")
    def cancelled_interviews_report(
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> dict:
        store = get_store(request)
        profiles = {profile.id: profile for profile in store.list_caregiver_profiles()}
        return cancelled_interviews(store.list_appointments(), profiles)

    @router.get("/reports/referrals")
    def referrals_report(
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> dict:
        store = get_store(request)
        return referral_summary(store.list_referrals(), store.list_rewards())

    @router.get("/reports/care-requests")
    def care_requests_report(
        request: Request,
        _: AuthContext = Depends(require_roles(*STAFF_ROLES)),
    ) -> dict:
        return care_request_summary(get_store(request).list_care_requests())

    return router


app = create_app()
