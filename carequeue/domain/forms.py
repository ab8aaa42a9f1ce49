from typing import Any

from pydantic import ValidationError

from carequeue.domain.exceptions import BookingValidationError
from carequeue.domain.models import BookingDraft, PatientDraft


def _invalid_fields(exc: ValidationError) -> list[str]:
    fields: list[str] = []
    for error in exc.errors():
        name = ".".join(str(part) for part in error["loc"]) or "__root__"
        if name not in fields:
            fields.append(name)
    return fields


def _blank_to_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: (None if isinstance(v, str) and not v.strip() else v) for k, v in data.items()}


def parse_booking_form(patient_id: str | None, data: dict[str, Any]) -> tuple[str, BookingDraft]:
    """Validate raw booking form input. Returns ``(patient_id, draft)``.

    Raises:
        BookingValidationError: If the patient, date or time is missing or malformed.
    """
    missing: list[str] = []
    if not patient_id or not patient_id.strip():
        missing.append("patient_id")

    draft: BookingDraft | None = None
    try:
        draft = BookingDraft.model_validate(_blank_to_none(data))
    except ValidationError as exc:
        missing.extend(_invalid_fields(exc))

    if missing or draft is None or patient_id is None:
        raise BookingValidationError(missing)
    return patient_id.strip(), draft


def parse_patient_form(data: dict[str, Any]) -> PatientDraft:
    """Validate raw patient form input.

    Raises:
        BookingValidationError: If full name or email is missing or malformed.
    """
    try:
        return PatientDraft.model_validate(_blank_to_none(data))
    except ValidationError as exc:
        raise BookingValidationError(_invalid_fields(exc)) from exc
