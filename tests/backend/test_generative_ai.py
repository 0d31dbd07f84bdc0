from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime
from types import SimpleNamespace
from typing import Optional

import httpx
import pytest

from backend.app.models import CaregiverProfileRecord
from backend.app.services import generative_ai
from backend.app.services.generative_ai import (
    AiResponseError,
    AiServiceError,
    extract_care_log,
    generate_interview_insights,
)
from backend.app.settings import load_settings

NOW = datetime(2030, 1, 2, 18, 0)


class FakeModels:
    def __init__(self, text: Optional[str] = None, error: Optional[Exception] = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[dict] = []

    def generate_content(self, *, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error:
            raise self.error
        return SimpleNamespace(text=self.text)


@pytest.fixture()
def settings(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("GEMINI_API_KEY", "")
    return replace(load_settings(), gemini_api_key="test-key", gemini_model="gemini-test")


def _use_models(monkeypatch: pytest.MonkeyPatch, models: FakeModels) -> None:
    monkeypatch.setattr(generative_ai, "_client", lambda settings: SimpleNamespace(models=models))


def test_care_log_extraction_sends_text_and_image(settings, monkeypatch) -> None:
    models = FakeModels(
        text=json.dumps({"shiftDateTime": "2030-01-02T16:00:00Z", "extractedText": "Lunch."})
    )
    _use_models(monkeypatch, models)

    result = extract_care_log(
        settings,
        image_data_uri="data:image/jpeg;base64,/9j/4AAQSkZJRg==",
        text_content="Lunch at noon",
        now_utc=NOW,
    )

    assert result.shift_date_time == "2030-01-02T16:00:00Z"
    assert result.extracted_text == "Lunch."
    call = models.calls[0]
    assert call["model"] == "gemini-test"
    assert call["config"].response_mime_type == "application/json"
    assert len(call["contents"]) == 3
    assert call["contents"][1].inline_data.mime_type == "image/jpeg"
    assert call["contents"][2].text == "Text of the care log:\nLunch at noon"


def test_unparseable_shift_time_falls_back_to_now(settings, monkeypatch) -> None:
    _use_models(
        monkeypatch,
        FakeModels(text=json.dumps({"shiftDateTime": "tuesday", "extractedText": "Notes"})),
    )
    result = extract_care_log(settings, image_data_uri=None, text_content="Notes", now_utc=NOW)
    assert result.shift_date_time == "2030-01-02T18:00:00Z"


def test_non_json_output_is_a_response_error(settings, monkeypatch) -> None:
    _use_models(monkeypatch, FakeModels(text="Sorry, I cannot help with that."))
    with pytest.raises(AiResponseError):
        extract_care_log(settings, image_data_uri=None, text_content="Notes", now_utc=NOW)


def test_transport_failure_is_a_service_error(settings, monkeypatch) -> None:
    _use_models(monkeypatch, FakeModels(error=httpx.ConnectError("connection refused")))
    with pytest.raises(AiServiceError):
        extract_care_log(settings, image_data_uri=None, text_content="Notes", now_utc=NOW)


def test_bad_image_data_is_rejected_before_calling_the_model(settings, monkeypatch) -> None:
    models = FakeModels(text="{}")
    _use_models(monkeypatch, models)
    with pytest.raises(AiServiceError):
        extract_care_log(
            settings, image_data_uri="data:image/png,not-base64", text_content=None, now_utc=NOW
        )
    assert models.calls == []


def test_unconfigured_model_is_a_service_error(settings, monkeypatch) -> None:
    models = FakeModels(text="{}")
    _use_models(monkeypatch, models)
    with pytest.raises(AiServiceError):
        extract_care_log(
            replace(settings, gemini_api_key=""),
            image_data_uri=None,
            text_content="Notes",
            now_utc=NOW,
        )
    assert models.calls == []


def test_interview_insight_uses_profile_and_notes(settings, monkeypatch, application_payload) -> None:
    profile = CaregiverProfileRecord.model_validate(
        {**application_payload(), "id": "cgp_1", "created_at_utc": NOW, "updated_at_utc": NOW}
    )
    insight = "Experienced and calm.\n\nRecommendation: Recommend for in-person interview"
    models = FakeModels(text=json.dumps({"aiGeneratedInsight": f"  {insight} "}))
    _use_models(monkeypatch, models)

    result = generate_interview_insights(
        settings, profile, interview_notes="Great with dementia clients", candidate_rating=5
    )

    assert result == insight
    prompt = models.calls[0]["contents"][0].text
    assert "Maria Santos" in prompt
    assert "Great with dementia clients" in prompt


def test_missing_insight_is_a_response_error(settings, monkeypatch, application_payload) -> None:
    profile = CaregiverProfileRecord.model_validate(
        {**application_payload(), "id": "cgp_1", "created_at_utc": NOW, "updated_at_utc": NOW}
    )
    _use_models(monkeypatch, FakeModels(text=json.dumps({"summary": "no insight key"})))
    with pytest.raises(AiResponseError):
        generate_interview_insights(settings, profile, interview_notes="ok", candidate_rating=3)
