"""
Duplicate Guard - pre-write uniqueness checks

Phone numbers must be unique across all contacts (primary and secondary),
and a contact may have at most one open lead. The checks are read-only;
the unique phone columns and the uq_leads_open_contact partial index back
them in the store, and the integrity handlers below turn an index hit
from a concurrent writer back into the same conflict error.
"""
import logging
from typing import Optional

from sqlalchemy import or_

from clinic_crm.errors import DuplicateOpenLeadError, DuplicateRecordError, ValidationError
from clinic_crm.models_sql import Contact, Lead
from clinic_crm.statuses import CLOSED_LEAD_STATUSES
from clinic_crm.utils.phone_normalization import normalize_phone

logger = logging.getLogger(__name__)


def check_contact_phones(phone: Optional[str], secondary: Optional[str] = None,
                         exclude_contact_id: Optional[int] = None):
    """
    Raise DuplicateRecordError if either number belongs to another contact.

    Both numbers are compared in normalized form against the primary and
    secondary numbers of every contact (branch scope does not apply).
    """
    candidates = [n for n in (normalize_phone(phone), normalize_phone(secondary)) if n]
    if not candidates:
        return

    if len(candidates) == 2 and candidates[0] == candidates[1]:
        raise ValidationError("Secondary phone number must differ from the primary number")

    query = Contact.query.filter(or_(
        Contact.phone_number.in_(candidates),
        Contact.secondary_phone_number.in_(candidates),
    ))
    if exclude_contact_id is not None:
        query = query.filter(Contact.id != exclude_contact_id)

    existing = query.first()
    if existing is not None:
        logger.info(f"[DuplicateGuard] Phone collision with contact {existing.id}")
        raise DuplicateRecordError(existing.id, existing.full_name)


def find_open_lead(contact_id, exclude_lead_id: Optional[int] = None) -> Optional[Lead]:
    query = Lead.query.filter(
        Lead.contact_id == contact_id,
        Lead.status.notin_(list(CLOSED_LEAD_STATUSES)),
    )
    if exclude_lead_id is not None:
        query = query.filter(Lead.id != exclude_lead_id)
    return query.first()


def check_open_lead(contact_id, exclude_lead_id: Optional[int] = None):
    """Raise DuplicateOpenLeadError if the contact already has an open lead"""
    existing = find_open_lead(contact_id, exclude_lead_id)
    if existing is not None:
        logger.info(f"[DuplicateGuard] Contact {contact_id} already has open lead {existing.id}")
        raise DuplicateOpenLeadError(contact_id, existing.id)


def contact_integrity_error(exc) -> Optional[DuplicateRecordError]:
    """IntegrityError handler for contact writes"""
    text = str(getattr(exc, "orig", exc)).lower()
    if "phone_number" in text:
        return DuplicateRecordError(message=DuplicateRecordError.default_message)
    return None


def lead_integrity_error(exc) -> Optional[DuplicateOpenLeadError]:
    """IntegrityError handler for lead writes"""
    text = str(getattr(exc, "orig", exc)).lower()
    if "uq_leads_open_contact" in text or "leads.contact_id" in text:
        return DuplicateOpenLeadError()
    return None
