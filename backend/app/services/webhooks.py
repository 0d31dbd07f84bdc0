from __future__ import annotations

import hmac
from typing import Optional

from backend.app.models import GoogleAdsLeadPayload

GOOGLE_ADS_COLUMN_MAP = {
    "FULL_NAME": "client_name",
    "EMAIL": "client_email",
    "PHONE_NUMBER": "client_phone",
}


class WebhookNotConfiguredError(Exception):
    pass


class SignatureVerificationError(Exception):
    pass


class LeadPayloadError(Exception):
    pass


def verify_webhook_key(provided: Optional[str], secret: str) -> None:
    if not secret:
        raise WebhookNotConfiguredError("google ads webhook secret is not configured")
    if not provided or not hmac.compare_digest(
        provided.strip().encode("utf-8"), secret.encode("utf-8")
    ):
        raise SignatureVerificationError("invalid webhook key")


def map_google_ads_lead(payload: GoogleAdsLeadPayload) -> tuple[dict[str, str], dict[str, str]]:
    """Split lead-form columns into contact fields and everything else."""
    contact: dict[str, str] = {}
    extra: dict[str, str] = {}
    for column in payload.user_column_data:
        value = (column.string_value or "").strip()
        mapped = GOOGLE_ADS_COLUMN_MAP.get(column.column_id.strip().upper())
        if mapped:
            contact[mapped] = value
        elif value:
            extra[column.column_id] = value

    missing = [name for name in GOOGLE_ADS_COLUMN_MAP.values() if not contact.get(name)]
    if missing:
        raise LeadPayloadError(f"lead is missing required fields: {', '.join(missing)}")
    if payload.lead_id:
        extra["lead_id"] = payload.lead_id
    if payload.campaign_id:
        extra["campaign_id"] = payload.campaign_id
    return contact, extra
