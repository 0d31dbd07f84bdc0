from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, Field, ValidationError


class UnknownHiringFormError(Exception):
    pass


class HiringFormValidationError(Exception):
    def __init__(self, errors: list[dict[str, str]]) -> None:
        super().__init__("; ".join(item["message"] for item in errors))
        self.errors = errors


def _validate_signature(value: str) -> str:
    if not value.strip():
        raise ValueError("signature is required")
    if not value.startswith("data:image/"):
        raise ValueError("signature must be captured on the signature pad")
    return value


SignatureImage = Annotated[str, AfterValidator(_validate_signature)]


class OfferLetterForm(BaseModel):
    offer_letter_signature: SignatureImage
    offer_letter_signature_date: date


class ArbitrationAgreementForm(BaseModel):
    arbitration_agreement_printed_name: Optional[str] = None
    arbitration_agreement_signature: SignatureImage
    arbitration_agreement_signature_date: date


class DrugAlcoholPolicyForm(BaseModel):
    drug_alcohol_policy_employee_printed_name: str = Field(min_length=2, max_length=120)
    drug_alcohol_policy_signature: SignatureImage
    drug_alcohol_policy_signature_date: date


class ConfidentialityAgreementForm(BaseModel):
    confidentiality_agreement_employee_signature: SignatureImage
    confidentiality_agreement_employee_signature_date: date


class TrainingAcknowledgementForm(BaseModel):
    training_acknowledgement_signature: SignatureImage
    training_acknowledgement_signature_date: date


class HcaJobDescriptionForm(BaseModel):
    job_description_signature: SignatureImage
    job_description_signature_date: date


class ClientAbandonmentForm(BaseModel):
    client_abandonment_signature: SignatureImage
    client_abandonment_signature_date: date


class AcknowledgmentForm(BaseModel):
    acknowledgment_signature: SignatureImage
    acknowledgment_signature_date: date


class EmployeeOrientationAgreementForm(BaseModel):
    orientation_agreement_signature: SignatureImage
    orientation_agreement_signature_date: date


class EmergencyContactForm(BaseModel):
    emergency_contact_name: str = Field(min_length=2, max_length=120)
    emergency_contact_relationship: Optional[str] = None
    emergency_contact_home_phone: Optional[str] = None
    emergency_contact_work_phone: Optional[str] = None
    second_emergency_contact_name: Optional[str] = None
    second_emergency_contact_relationship: Optional[str] = None
    second_emergency_contact_phone: Optional[str] = None


@dataclass(frozen=True)
class HiringFormDefinition:
    form_id: str
    title: str
    model: type[BaseModel]

    @property
    def signature_fields(self) -> list[str]:
        return [name for name in self.model.model_fields if name.endswith("_signature")]


HIRING_FORMS: dict[str, HiringFormDefinition] = {
    definition.form_id: definition
    for definition in (
        HiringFormDefinition("acknowledgment-form", "Acknowledgment Form", AcknowledgmentForm),
        HiringFormDefinition(
            "arbitration-agreement", "Arbitration Agreement", ArbitrationAgreementForm
        ),
        HiringFormDefinition("client-abandonment", "Client Abandonment", ClientAbandonmentForm),
        HiringFormDefinition(
            "confidentiality-agreement",
            "Confidentiality Agreement",
            ConfidentialityAgreementForm,
        ),
        HiringFormDefinition(
            "drug-alcohol-policy", "Drug and Alcohol Policy", DrugAlcoholPolicyForm
        ),
        HiringFormDefinition("emergency-contact", "Emergency Contact", EmergencyContactForm),
        HiringFormDefinition(
            "employee-orientation-agreement",
            "Employee Orientation Agreement",
            EmployeeOrientationAgreementForm,
        ),
        HiringFormDefinition("hca-job-description", "HCA Job Description", HcaJobDescriptionForm),
        HiringFormDefinition("offer-letter", "Offer Letter", OfferLetterForm),
        HiringFormDefinition(
            "training-acknowledgement", "Training Acknowledgement", TrainingAcknowledgementForm
        ),
    )
}


def get_hiring_form(form_id: str) -> HiringFormDefinition:
    definition = HIRING_FORMS.get(form_id)
    if not definition:
        raise UnknownHiringFormError(f"hiring form not found: {form_id}")
    return definition


def validate_hiring_form(form_id: str, payload: dict[str, Any]) -> dict[str, Any]:
    """Validate a submitted form; date strings come back as dates.

    Errors are flattened to one entry per field, and each message leads with
    the field name so the signing page can point the candidate at it.
    """
    definition = get_hiring_form(form_id)
    try:
        form = definition.model.model_validate(payload)
    except ValidationError as exc:
        errors = []
        for error in exc.errors():
            field = ".".join(str(part) for part in error["loc"]) or "__root__"
            message = str(error["msg"]).removeprefix("Value error, ")
            if error["type"] == "missing":
                message = "is required"
            errors.append({"field": field, "message": f"{field} {message}"})
        raise HiringFormValidationError(errors) from exc
    return form.model_dump()
