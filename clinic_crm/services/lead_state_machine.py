"""
Lead State Machine

Fresh -> tenant intermediates (Hot, Warm, ...) -> Converted / Booked /
No-Show / Re-follow / Lost.

Converted and Booked are only reachable through the conversion flow,
which needs appointment details. Moving a closed lead back to an open
status re-opens it, so the caller must run the open-lead guard.
"""
from enum import Enum
from typing import Iterable, Optional

from clinic_crm.errors import ConversionRequiredError, InvalidTransitionError, ValidationError
from clinic_crm.statuses import (
    CLOSED_LEAD_STATUSES,
    CONVERSION_LEAD_STATUSES,
    LeadStatus,
    lead_status_choices,
    status_value,
)
from clinic_crm.services.validation import parse_date_or_none


class TransitionKind(str, Enum):
    NOOP = "noop"
    FIELD_UPDATE = "field_update"
    REOPEN = "reopen"


class LeadStateMachine:
    def __init__(self, custom_statuses: Optional[Iterable[str]] = None):
        self.allowed = set(lead_status_choices(custom_statuses))

    def check_transition(self, old, new) -> TransitionKind:
        old, new = status_value(old), status_value(new)

        if new not in self.allowed:
            raise InvalidTransitionError(f"Unknown lead status: {new}")
        if old == new:
            return TransitionKind.NOOP
        if new in CONVERSION_LEAD_STATUSES:
            raise ConversionRequiredError(
                "Appointment details are required: use the conversion flow to book this lead"
            )
        if old == LeadStatus.CONVERTED.value:
            raise InvalidTransitionError("A converted lead cannot change status")
        if old in CLOSED_LEAD_STATUSES and new not in CLOSED_LEAD_STATUSES:
            return TransitionKind.REOPEN
        return TransitionKind.FIELD_UPDATE


def validate_lead_update(data: dict):
    """status, assigned agent and date are mandatory on every lead edit"""
    errors = []
    if not data.get("status"):
        errors.append("Status is required")
    if not data.get("assigned_agent"):
        errors.append("Assigned agent is required")
    if not data.get("date"):
        errors.append("Date is required")
    elif parse_date_or_none(data["date"]) is None:
        errors.append("Date must be a valid date")
    if errors:
        raise ValidationError(errors)
