from __future__ import annotations

from datetime import datetime, time, timedelta
from html import escape
from typing import Optional
from urllib.parse import urlencode

from backend.app.models import CampaignTemplateRecord, InitialContactRecord
from backend.app.services.notifications import OutgoingMail

GOOGLE_ADS_LEAD_STATUS = "Google Ads Lead Received"

FOLLOW_UP_STATUSES = frozenset(
    {
        GOOGLE_ADS_LEAD_STATUS,
        "Initial Phone Contact Completed",
        "App Referral Received",
    }
)


def assessment_link(base_url: str, contact_id: str) -> str:
    return f"{base_url.rstrip('/')}/lead-intake?{urlencode({'id': contact_id})}"


def render_campaign_body(
    body: str, *, client_name: str, assessment_url: Optional[str] = None
) -> str:
    rendered = body.replace("{{clientName}}", escape(client_name))
    if assessment_url is not None:
        rendered = rendered.replace("{{assessmentLink}}", escape(assessment_url))
    return rendered


def campaign_mail(
    template: CampaignTemplateRecord,
    contact: InitialContactRecord,
    *,
    assessment_url: Optional[str] = None,
) -> OutgoingMail:
    return OutgoingMail(
        to=[contact.client_email],
        subject=template.subject,
        html=render_campaign_body(
            template.body, client_name=contact.client_name, assessment_url=assessment_url
        ),
    )


def is_follow_up_due(
    contact: InitialContactRecord, template: CampaignTemplateRecord, now: datetime
) -> bool:
    """A contact is due once it predates the start of the day `interval_days` ago."""
    if template.interval_days <= 0:
        return False
    if contact.status not in FOLLOW_UP_STATUSES:
        return False
    if contact.in_home_visit_set != "No" or not contact.send_follow_up_campaigns:
        return False
    if any(entry.template_id == template.id for entry in contact.follow_up_history):
        return False
    cutoff = datetime.combine((now - timedelta(days=template.interval_days)).date(), time.min)
    return contact.created_at_utc < cutoff
