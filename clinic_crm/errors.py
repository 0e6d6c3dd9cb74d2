"""
Error taxonomy for the clinic CRM core

Every failure a caller can act on is a CrmError subclass carrying a stable
`code`, a user-facing `message` and the HTTP status the API layer returns.
Store failures are folded into PersistenceError with one of a small set of
user-facing messages.
"""
from typing import Any, Dict, List, Optional


class CrmError(Exception):
    code = "crm_error"
    http_status = 500
    default_message = "The operation could not be completed"

    def __init__(self, message: Optional[str] = None, *, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload = {"error": self.code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


# ---------------------------------------------------------------------------
# Validation (400) - nothing was written
# ---------------------------------------------------------------------------

class ValidationError(CrmError):
    code = "validation_error"
    http_status = 400
    default_message = "Please fill in all required fields"

    def __init__(self, errors=None, message: Optional[str] = None, **kwargs):
        if isinstance(errors, str):
            errors = [errors]
        self.errors: List[str] = list(errors or [])
        super().__init__(message or (self.errors[0] if self.errors else None), **kwargs)
        if self.errors:
            self.details.setdefault("errors", self.errors)


class ConversionRequiredError(ValidationError):
    """Converted/Booked can only be reached through the conversion flow"""
    code = "conversion_required"


class InvalidTransitionError(ValidationError):
    code = "invalid_transition"


# ---------------------------------------------------------------------------
# Conflicts (409)
# ---------------------------------------------------------------------------

class ConflictError(CrmError):
    code = "conflict"
    http_status = 409
    default_message = "This record already exists in the database"


class DuplicateRecordError(ConflictError):
    code = "duplicate_record"
    default_message = "This phone number is already saved in the system under another contact."

    def __init__(self, conflicting_id=None, conflicting_name: Optional[str] = None, message: Optional[str] = None):
        self.conflicting_id = conflicting_id
        self.conflicting_name = conflicting_name
        if message is None and conflicting_name:
            message = f"This contact is already created: {conflicting_name}"
        super().__init__(message, details={"conflicting_id": conflicting_id, "conflicting_name": conflicting_name})


class DuplicateOpenLeadError(ConflictError):
    code = "duplicate_open_lead"
    default_message = "This contact already has an open lead"

    def __init__(self, contact_id=None, lead_id=None, message: Optional[str] = None):
        self.contact_id = contact_id
        self.lead_id = lead_id
        super().__init__(message, details={"contact_id": contact_id, "lead_id": lead_id})


class StaleWriteError(ConflictError):
    code = "stale_write"
    default_message = "This record was changed by someone else. Refresh and try again."


# ---------------------------------------------------------------------------
# Lookup / access
# ---------------------------------------------------------------------------

class NotFoundError(CrmError):
    code = "not_found"
    http_status = 404
    default_message = "Record not found or access denied"


class AuthenticationRequiredError(CrmError):
    code = "authentication_required"
    http_status = 401
    default_message = "Authentication required"


class AccessDeniedError(CrmError):
    code = "access_denied"
    http_status = 403
    default_message = "You do not have permission to perform this action"


# ---------------------------------------------------------------------------
# Store failures
# ---------------------------------------------------------------------------

PERSISTENCE_MESSAGES = {
    "duplicate_key": "This record already exists in the database",
    "foreign_key": "This action cannot be completed due to related data",
    "not_null": "Please fill in all required fields",
    "permission": "You do not have permission to perform this action",
    "network": "Network connection error. Please check your internet connection.",
    "unknown": "Database operation failed. Please try again.",
}


def classify_store_error(exc: BaseException) -> str:
    """Map a store exception to one of the PERSISTENCE_MESSAGES keys"""
    text = str(getattr(exc, "orig", None) or exc).lower()
    if "duplicate key" in text or "unique constraint" in text:
        return "duplicate_key"
    if "foreign key" in text:
        return "foreign_key"
    if "not null" in text or "null value" in text:
        return "not_null"
    if "permission denied" in text or "insufficient privilege" in text:
        return "permission"
    if "connection" in text or "network" in text or "timeout" in text or "timed out" in text:
        return "network"
    return "unknown"


class PersistenceError(CrmError):
    code = "persistence_error"
    http_status = 500
    default_message = PERSISTENCE_MESSAGES["unknown"]

    def __init__(self, message: Optional[str] = None, *, kind: str = "unknown", **kwargs):
        self.kind = kind
        if message is None and kind != "unknown":
            message = PERSISTENCE_MESSAGES.get(kind)
        super().__init__(message, **kwargs)
        if kind == "network":
            self.http_status = 503

    @classmethod
    def from_exception(cls, exc: BaseException) -> "PersistenceError":
        kind = classify_store_error(exc)
        return cls(kind=kind, details={"kind": kind})


class PartialFailureError(PersistenceError):
    """A multi-step write failed and could not be rolled back cleanly"""
    code = "partial_failure"
    default_message = "The operation failed partway and may have left partial data. Please refresh."
