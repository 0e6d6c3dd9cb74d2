"""
Contact Service - create / update / read contacts

Phone numbers are stored normalized; the duplicate guard runs before every
write that touches a phone number.
"""
import logging
from typing import List, Optional

from sqlalchemy import or_

from clinic_crm.db import db
from clinic_crm.models_sql import Contact
from clinic_crm.services.audit_log import log_action
from clinic_crm.services.duplicate_guard import check_contact_phones, contact_integrity_error
from clinic_crm.services.history_recorder import record_changes, snapshot
from clinic_crm.services.persistence import check_version, commit_session, flush_session
from clinic_crm.services.record_items import initial_notes
from clinic_crm.services.validation import sanitize_data, validate_contact_data
from clinic_crm.utils.dates import parse_date
from clinic_crm.utils.phone_normalization import normalize_phone

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "full_name",
    "phone_number",
    "secondary_phone_number",
    "email",
    "address",
    "source",
    "instagram_url",
    "birthday",
    "branch_id",
)


def add_contact(data: dict, ctx) -> Contact:
    data = sanitize_data(data)
    validate_contact_data(data, ctx.now().date())

    phone = normalize_phone(data.get("phone_number"))
    secondary = normalize_phone(data.get("secondary_phone_number"))
    check_contact_phones(phone, secondary)

    contact = Contact(
        branch_id=ctx.resolve_branch(data.get("branch_id")),
        full_name=data["full_name"],
        phone_number=phone,
        secondary_phone_number=secondary,
        email=data.get("email") or None,
        address=data.get("address") or None,
        source=data["source"],
        instagram_url=data.get("instagram_url") or None,
        birthday=parse_date(data.get("birthday")),
        notes=initial_notes(data.get("notes"), ctx),
        attachments=[],
        comments=[],
        history=[],
        created_at=ctx.now(),
    )
    db.session.add(contact)
    flush_session("ContactCreate", contact_integrity_error)

    log_action("CONTACT_CREATED", "Contacts", {
        "contact_id": contact.id, "name": contact.full_name, "branch_id": contact.branch_id,
    }, ctx)
    commit_session("ContactCreate", contact_integrity_error)

    logger.info(f"[Contacts] Created contact {contact.id} by {ctx.user_name}")
    return contact


def update_contact(contact_id, data: dict, ctx, expected_version=None) -> Contact:
    contact = ctx.get_or_404(Contact, contact_id, "Contact")
    check_version(contact, expected_version)

    data = {k: v for k, v in sanitize_data(data).items() if k in UPDATABLE_FIELDS}
    validate_contact_data(data, ctx.now().date(), partial=True)

    if "phone_number" in data or "secondary_phone_number" in data:
        phone = normalize_phone(data.get("phone_number", contact.phone_number))
        secondary = normalize_phone(data.get("secondary_phone_number", contact.secondary_phone_number))
        check_contact_phones(phone, secondary, exclude_contact_id=contact.id)
        data["phone_number"] = phone
        data["secondary_phone_number"] = secondary

    if "birthday" in data:
        data["birthday"] = parse_date(data["birthday"])
    if "branch_id" in data:
        data["branch_id"] = ctx.resolve_branch(data["branch_id"])

    old_values = snapshot(contact, "contact")
    for field, value in data.items():
        setattr(contact, field, value if value != "" else None)

    entries = record_changes(contact, "contact", old_values, ctx.user_name, ctx.now())

    log_action("CONTACT_UPDATED", "Contacts", {
        "contact_id": contact.id,
        "changed_fields": [e["field"] for e in entries],
        "branch_id": contact.branch_id,
    }, ctx)
    commit_session("ContactUpdate", contact_integrity_error)

    logger.info(f"[Contacts] Updated contact {contact.id} ({len(entries)} tracked changes)")
    return contact


def get_contact(contact_id, ctx) -> Contact:
    return ctx.get_or_404(Contact, contact_id, "Contact")


def list_contacts(ctx, search: Optional[str] = None) -> List[Contact]:
    query = ctx.scope_query(Contact.query, Contact)
    if search:
        term = f"%{search.strip()}%"
        conditions = [Contact.full_name.ilike(term)]
        digits = normalize_phone(search)
        if digits and len(digits.lstrip("+")) >= 3:
            conditions.append(Contact.phone_number.contains(digits.lstrip("+")))
            conditions.append(Contact.secondary_phone_number.contains(digits.lstrip("+")))
        query = query.filter(or_(*conditions))
    return query.order_by(Contact.created_at.desc(), Contact.id.desc()).all()
