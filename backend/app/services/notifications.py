from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass, field
from datetime import datetime
from email.message import EmailMessage
from html import escape
from typing import Optional

from backend.app.models import (
    AppointmentRecord,
    CaregiverProfileRecord,
    CareRequestRecord,
    ClientSignupRecord,
    MailRecord,
    VideoCheckinRecord,
)
from backend.app.services.scheduling import format_local
from backend.app.settings import Settings

logger = logging.getLogger("homecare_hrm.mail")


class TransientMailError(Exception):
    pass


class PermanentMailError(Exception):
    pass


@dataclass(frozen=True)
class OutgoingMail:
    to: list[str]
    subject: str
    html: str
    cc: list[str] = field(default_factory=list)


def _wrap(body: str) -> str:
    return (
        '<body style="font-family: sans-serif; line-height: 1.6;">'
        '<div style="max-width: 600px; margin: auto; padding: 20px; '
        'border: 1px solid #ddd; border-radius: 10px;">'
        f"{body}</div></body>"
    )


def interview_confirmation(
    settings: Settings,
    *,
    profile: CaregiverProfileRecord,
    title: str,
    start_utc: datetime,
    method: str,
    meet_link: Optional[str],
) -> OutgoingMail:
    when = format_local(start_utc, settings.agency_timezone)
    location = (
        f'<p>Join online: <a href="{escape(meet_link)}">{escape(meet_link)}</a></p>'
        if meet_link
        else "<p>Please arrive 10 minutes early at our office.</p>"
    )
    body = (
        f"<p>Hello {escape(profile.full_name)},</p>"
        f"<p>Your <strong>{escape(title)}</strong> with {escape(settings.agency_name)} "
        f"is scheduled for <strong>{escape(when)}</strong> ({escape(method)}).</p>"
        f"{location}"
        f"<p>Thank you,<br/>The {escape(settings.agency_name)} Team</p>"
    )
    return OutgoingMail(
        to=[profile.email],
        cc=[settings.admin_notification_email],
        subject=f"Your {title.split(':', 1)[0]} with {settings.agency_name}",
        html=_wrap(body),
    )


def orientation_rejection(
    settings: Settings, *, profile: CaregiverProfileRecord
) -> OutgoingMail:
    body = (
        f"<p>Dear {escape(profile.full_name)},</p>"
        f"<p>Thank you for attending orientation with {escape(settings.agency_name)}. "
        "After careful consideration, we will not be moving forward with your application "
        "at this time.</p>"
        "<p>We appreciate your interest and wish you the best in your search.</p>"
        f"<p>Sincerely,<br/>The {escape(settings.agency_name)} Team</p>"
    )
    return OutgoingMail(
        to=[profile.email],
        cc=[settings.admin_notification_email],
        subject=f"Update on your application with {settings.agency_name}",
        html=_wrap(body),
    )


def appointment_booked(
    settings: Settings,
    *,
    profile: CaregiverProfileRecord,
    appointment: AppointmentRecord,
) -> OutgoingMail:
    """Admin notice for a new phone interview, using the real profile fields."""
    when = format_local(appointment.start_time, settings.agency_timezone)
    body = (
        "<h1>New Phone Interview Appointment</h1>"
        f"<p>A phone interview has been booked for <strong>{escape(when)}</strong>.</p>"
        "<ul>"
        f"<li><strong>Name:</strong> {escape(profile.full_name)}</li>"
        f"<li><strong>Email:</strong> {escape(profile.email)}</li>"
        f"<li><strong>Phone:</strong> {escape(profile.phone)}</li>"
        f"<li><strong>Years of experience:</strong> {profile.years_experience}</li>"
        f"<li><strong>Summary:</strong> {escape(profile.summary or 'Not provided')}</li>"
        "</ul>"
    )
    return OutgoingMail(
        to=[settings.admin_notification_email],
        subject=f"New Phone Interview Appointment with {profile.full_name}",
        html=_wrap(body),
    )


def referral_invite(
    settings: Settings,
    *,
    friend_name: str,
    friend_email: str,
    referrer_name: str,
    link: str,
    personal_message: Optional[str],
) -> OutgoingMail:
    body = (
        f"<p>Hello {escape(friend_name)},</p>"
        f"<p>Your friend, {escape(referrer_name)}, thought you might be interested in the "
        f"services provided by {escape(settings.agency_name)}.</p>"
    )
    if personal_message:
        body += (
            "<p>They also included a personal message for you:</p>"
            '<blockquote style="border-left: 2px solid #ccc; padding-left: 1em; '
            f'font-style: italic;">{escape(personal_message)}</blockquote>'
        )
    body += (
        "<p>To learn more and request information, please use the link below. "
        "Your referral information will be included automatically.</p>"
        f'<p><a href="{escape(link)}">Request Care Information</a></p>'
        f"<p>Thank you,<br/>The {escape(settings.agency_name)} Team</p>"
    )
    return OutgoingMail(
        to=[friend_email],
        subject=f"{referrer_name} has referred you to {settings.agency_name}",
        html=_wrap(body),
    )


def care_request_submitted(settings: Settings, *, record: CareRequestRecord) -> OutgoingMail:
    when = format_local(record.preferred_date_time, settings.agency_timezone)
    body = (
        "<h1>New Additional Care Request</h1>"
        "<p>A client has requested additional care. Please review and follow up.</p>"
        "<ul>"
        f"<li><strong>Client:</strong> {escape(record.client_name)}</li>"
        f"<li><strong>Client email:</strong> {escape(record.client_email or 'N/A')}</li>"
        f"<li><strong>Preferred date:</strong> {escape(when)}</li>"
        f"<li><strong>Duration:</strong> {escape(record.duration)}</li>"
        f"<li><strong>Urgency:</strong> {escape(record.urgency)}</li>"
        f"<li><strong>Preferred caregiver:</strong> {escape(record.preferred_caregiver)}</li>"
        f"<li><strong>Reason:</strong> {escape(record.reason)}</li>"
        "</ul>"
    )
    return OutgoingMail(
        to=[settings.staffing_admin_email],
        subject=f"[Action Required] New Care Request from {record.client_name}",
        html=_wrap(body),
    )


def video_checkin_requested(
    settings: Settings, *, record: VideoCheckinRecord
) -> OutgoingMail:
    body = (
        "<h1>New Video Check-in Request</h1>"
        f"<p><strong>Client:</strong> {escape(record.client_name)}</p>"
        f"<p><strong>Requested by:</strong> {escape(record.requested_by)}</p>"
        f"<p><strong>Notes:</strong> {escape(record.notes or 'None')}</p>"
    )
    return OutgoingMail(
        to=[settings.staffing_admin_email],
        subject=f"[Action Required] Video Check-in Request from {record.client_name}",
        html=_wrap(body),
    )


def video_checkin_scheduled(
    settings: Settings, *, record: VideoCheckinRecord
) -> OutgoingMail:
    when = (
        format_local(record.scheduled_start, settings.agency_timezone)
        if record.scheduled_start
        else "TBD"
    )
    link = (
        f'<p>Join: <a href="{escape(record.google_meet_link)}">'
        f"{escape(record.google_meet_link)}</a></p>"
        if record.google_meet_link
        else ""
    )
    body = (
        f"<p>A 15 minute video check-in for {escape(record.client_name)} is scheduled "
        f"for <strong>{escape(when)}</strong>.</p>{link}"
    )
    recipients = [email for email in (record.caregiver_email, record.client_email) if email]
    return OutgoingMail(
        to=recipients,
        cc=[settings.staffing_admin_email],
        subject=f"Video Check-in Scheduled: {record.client_name}",
        html=_wrap(body),
    )


def client_signature_request(
    settings: Settings, *, record: ClientSignupRecord, link: str
) -> OutgoingMail:
    body = (
        f"<p>Hello {escape(record.client_name)},</p>"
        f"<p>Please review and sign your service agreement with "
        f"{escape(settings.agency_name)}.</p>"
        f'<p><a href="{escape(link)}">Review and Sign</a></p>'
    )
    return OutgoingMail(
        to=[record.client_email],
        subject=f"Action Required: Please sign your {settings.agency_name} agreement",
        html=_wrap(body),
    )


def deliver_mail(settings: Settings, record: MailRecord) -> None:
    """Send one outbox record over SMTP.

    Connection and temporary server failures are transient; a rejected
    recipient list or bad credentials will not get better on retry.
    """
    message = EmailMessage()
    message["Subject"] = record.subject
    message["From"] = settings.smtp_from
    message["To"] = ", ".join(record.to)
    if record.cc:
        message["Cc"] = ", ".join(record.cc)
    message.set_content("This message requires an HTML capable mail client.")
    message.add_alternative(record.html, subtype="html")

    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=15) as server:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_user:
                server.login(settings.smtp_user, settings.smtp_password)
            server.send_message(message)
    except (smtplib.SMTPAuthenticationError, smtplib.SMTPRecipientsRefused) as exc:
        raise PermanentMailError(f"smtp rejected message: {exc}") from exc
    except (smtplib.SMTPException, OSError) as exc:
        raise TransientMailError(f"smtp delivery failed: {exc}") from exc
    logger.info("mail_sent id=%s to=%s", record.id, ",".join(record.to))
