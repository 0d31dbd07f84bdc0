from __future__ import annotations

import base64
import binascii
import json
import logging
from datetime import datetime
from typing import Any, Optional

import httpx
from google import genai
from google.genai import errors, types

from backend.app.models import (
    WEEKDAYS,
    CareLogExtractionResponse,
    CaregiverProfileRecord,
)
from backend.app.settings import Settings

logger = logging.getLogger("homecare_hrm.ai")


class AiServiceError(Exception):
    pass


class AiResponseError(Exception):
    pass


INTERVIEW_INSIGHTS_PROMPT = """You are an expert HR assistant for a home care agency. Analyze a caregiver candidate's profile and the notes from their phone screen, then write a single combined insight containing a summary and a hiring recommendation.

Caregiver profile:
- Full Name: {full_name}
- Years of Experience: {years_experience}
- Experience Summary: {summary}
- Skills:
  - Hoyer Lift: {hoyer_lift}
  - Dementia Experience: {dementia}
  - Hospice Experience: {hospice}
- Certifications:
  - CNA: {cna}
  - HHA: {hha}
  - HCA: {hca}
- Availability:
{availability}
- Transportation: Has car: {has_car}, Valid License: {valid_license}

Interviewer's phone screen feedback:
- Rating (out of 5): {rating}
- Notes:
{notes}

Write the insight in two parts:
1. Summary: a concise professional summary of the candidate, with key strengths, potential weaknesses and fit for a caregiver role. Maximum 200 words.
2. Recommendation: after two new lines, start with "Recommendation:" and choose one of "Recommend for in-person interview", "Proceed with caution" or "Do not recommend". Justify it with 1-2 reasons from the data above.

Respond with JSON: {{"aiGeneratedInsight": "<summary>\\n\\nRecommendation: <recommendation>"}}
"""

CARE_LOG_PROMPT = """You are an expert at reading documents and extracting structured information. The attached content is a caregiver's shift log.

1. Read all of the text in the content (an image or plain text).
2. Identify the date and start time of the shift.
3. Format it as a single ISO 8601 timestamp in "shiftDateTime". Assume the current year if it is not written. If no date or time can be found, use {now}.
4. Put the complete, unedited transcription in "extractedText". If the input was plain text, return it as is.

Respond with JSON: {{"shiftDateTime": "...", "extractedText": "..."}}
"""


def _yes_no(value: bool) -> str:
    return "Yes" if value else "No"


def build_interview_prompt(
    profile: CaregiverProfileRecord, *, interview_notes: str, candidate_rating: int
) -> str:
    availability_lines = []
    for day in WEEKDAYS:
        shifts = getattr(profile.availability, day)
        availability_lines.append(f"  {day}: {', '.join(shifts) if shifts else 'Not available'}")
    return INTERVIEW_INSIGHTS_PROMPT.format(
        full_name=profile.full_name,
        years_experience=profile.years_experience,
        summary=profile.summary or "Not provided",
        hoyer_lift=_yes_no(profile.can_use_hoyer_lift),
        dementia=_yes_no(profile.has_dementia_experience),
        hospice=_yes_no(profile.has_hospice_experience),
        cna=_yes_no(profile.cna),
        hha=_yes_no(profile.hha),
        hca=_yes_no(profile.hca),
        availability="\n".join(availability_lines),
        has_car=profile.has_car.value,
        valid_license=profile.valid_license.value,
        rating=candidate_rating,
        notes=interview_notes,
    )


def _image_part(data_uri: str) -> types.Part:
    header, _, encoded = data_uri.partition(",")
    if not encoded or ";base64" not in header:
        raise AiServiceError("image must be a base64 data URI")
    mime_type = header[len("data:") :].split(";", 1)[0] or "application/octet-stream"
    try:
        data = base64.b64decode(encoded, validate=True)
    except binascii.Error as exc:
        raise AiServiceError("image data is not valid base64") from exc
    return types.Part.from_bytes(data=data, mime_type=mime_type)


def _client(settings: Settings) -> genai.Client:
    return genai.Client(
        api_key=settings.gemini_api_key,
        http_options=types.HttpOptions(timeout=settings.ai_timeout_seconds * 1000),
    )


def _generate_json(settings: Settings, parts: list[types.Part]) -> dict[str, Any]:
    if not settings.ai_configured:
        raise AiServiceError("generative ai is not configured")

    try:
        response = _client(settings).models.generate_content(
            model=settings.gemini_model,
            contents=parts,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                temperature=0.2,
            ),
        )
    except errors.APIError as exc:
        raise AiServiceError(f"generative ai request rejected with status {exc.code}") from exc
    except httpx.HTTPError as exc:
        raise AiServiceError("generative ai request failed") from exc

    try:
        decoded = json.loads(response.text or "")
    except json.JSONDecodeError as exc:
        raise AiResponseError("generative ai returned an unusable response") from exc
    if not isinstance(decoded, dict):
        raise AiResponseError("generative ai returned an unusable response")
    return decoded


def generate_interview_insights(
    settings: Settings,
    profile: CaregiverProfileRecord,
    *,
    interview_notes: str,
    candidate_rating: int,
) -> str:
    prompt = build_interview_prompt(
        profile, interview_notes=interview_notes, candidate_rating=candidate_rating
    )
    result = _generate_json(settings, [types.Part.from_text(text=prompt)])
    insight = result.get("aiGeneratedInsight")
    if not isinstance(insight, str) or not insight.strip():
        raise AiResponseError("generative ai returned no insight")
    logger.info("interview_insight_generated profile_id=%s", profile.id)
    return insight.strip()


def extract_care_log(
    settings: Settings,
    *,
    image_data_uri: Optional[str],
    text_content: Optional[str],
    now_utc: datetime,
) -> CareLogExtractionResponse:
    parts = [types.Part.from_text(text=CARE_LOG_PROMPT.format(now=now_utc.isoformat() + "Z"))]
    if image_data_uri:
        parts.append(_image_part(image_data_uri))
    if text_content:
        parts.append(types.Part.from_text(text=f"Text of the care log:\n{text_content}"))

    result = _generate_json(settings, parts)
    shift = result.get("shiftDateTime")
    extracted = result.get("extractedText")
    if not isinstance(extracted, str):
        raise AiResponseError("generative ai returned no extracted text")
    try:
        datetime.fromisoformat(str(shift).replace("Z", "+00:00"))
    except ValueError:
        shift = now_utc.isoformat() + "Z"
    return CareLogExtractionResponse(shift_date_time=str(shift), extracted_text=extracted)
