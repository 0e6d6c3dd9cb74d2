"""
Lead Service - create / update / list leads

Status changes go through LeadStateMachine; Converted/Booked are rejected
here and must use conversion_service.convert(). Re-opening a closed lead
runs the open-lead guard again.
"""
import logging
from datetime import date, timedelta
from typing import List, Optional

from sqlalchemy import and_, or_

from clinic_crm.db import db
from clinic_crm.errors import ValidationError
from clinic_crm.models_sql import Contact, Lead
from clinic_crm.statuses import CLOSED_LEAD_STATUSES, LeadStatus
from clinic_crm.services.audit_log import log_action
from clinic_crm.services.duplicate_guard import check_open_lead, lead_integrity_error
from clinic_crm.services.history_recorder import record_changes, snapshot
from clinic_crm.services.lead_state_machine import LeadStateMachine, TransitionKind, validate_lead_update
from clinic_crm.services.persistence import check_version, commit_session, flush_session
from clinic_crm.services.record_items import initial_notes
from clinic_crm.services.validation import sanitize_data, validate_lead_data
from clinic_crm.utils.dates import parse_date

logger = logging.getLogger(__name__)

UNASSIGNED_AGENT = "Unassigned"
OVERDUE_AFTER_DAYS = 3

# Leads in these states never show up as overdue follow-ups
NO_FOLLOWUP_STATUSES = (LeadStatus.CONVERTED.value, LeadStatus.LOST.value, LeadStatus.BOOKED.value)

UPDATABLE_FIELDS = (
    "status",
    "assigned_agent",
    "date",
    "next_followup_date",
    "lead_source",
    "service_of_interest",
)


def add_lead(data: dict, ctx) -> Lead:
    """
    Create a lead for an existing contact.

    Raises:
        ValidationError: missing contact / source / service, date in the past
        DuplicateOpenLeadError: the contact already has an open lead
    """
    data = sanitize_data(data)
    validate_lead_data(data, ctx.now().date())

    contact = ctx.get_or_404(Contact, data["contact_id"], "Contact")

    status = data.get("status") or LeadStatus.FRESH.value
    machine = LeadStateMachine(ctx.settings.lead_statuses)
    if status not in machine.allowed or status in CLOSED_LEAD_STATUSES or status == LeadStatus.BOOKED.value:
        raise ValidationError(f"A new lead cannot start as '{status}'")

    check_open_lead(contact.id)

    lead = Lead(
        branch_id=ctx.resolve_branch(data.get("branch_id") or contact.branch_id),
        contact_id=contact.id,
        contact_full_name=contact.full_name,
        contact_phone_number=contact.phone_number,
        lead_source=data["lead_source"],
        service_of_interest=data["service_of_interest"],
        status=status,
        assigned_agent=data.get("assigned_agent") or UNASSIGNED_AGENT,
        date=parse_date(data["date"]),
        next_followup_date=parse_date(data.get("next_followup_date")),
        notes_data=initial_notes(data.get("notes"), ctx),
        attachments=[],
        comments=[],
        status_history=[],
        created_at=ctx.now(),
    )
    db.session.add(lead)
    flush_session("LeadCreate", lead_integrity_error)

    log_action("LEAD_CREATED", "Leads", {
        "lead_id": lead.id, "contact_id": contact.id, "name": lead.contact_full_name,
        "branch_id": lead.branch_id,
    }, ctx)
    commit_session("LeadCreate", lead_integrity_error)

    logger.info(f"[Leads] Created lead {lead.id} for contact {contact.id}")
    return lead


def update_lead(lead_id, data: dict, ctx, expected_version=None) -> Lead:
    """
    Edit a lead. status, assigned_agent and date are required on every edit.

    Raises:
        ValidationError / ConversionRequiredError / InvalidTransitionError
        DuplicateOpenLeadError: re-opening while another lead is open
        StaleWriteError: expected_version is behind the stored version
    """
    data = sanitize_data(data)
    validate_lead_update(data)

    lead = ctx.get_or_404(Lead, lead_id, "Lead")
    check_version(lead, expected_version)

    machine = LeadStateMachine(ctx.settings.lead_statuses)
    kind = machine.check_transition(lead.status, data["status"])
    if kind == TransitionKind.REOPEN:
        check_open_lead(lead.contact_id, exclude_lead_id=lead.id)

    old_values = snapshot(lead, "lead")
    for field in UPDATABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field in ("date", "next_followup_date"):
            value = parse_date(value)
        setattr(lead, field, value)

    entries = record_changes(lead, "lead", old_values, ctx.user_name, ctx.now())

    log_action("LEAD_UPDATED", "Leads", {
        "lead_id": lead.id,
        "status": lead.status,
        "transition": kind.value,
        "branch_id": lead.branch_id,
    }, ctx)
    commit_session("LeadUpdate", lead_integrity_error)

    if entries:
        logger.info(f"[Leads] Lead {lead.id} status {entries[0]['from']} -> {entries[0]['to']}")
    return lead


def get_lead(lead_id, ctx) -> Lead:
    return ctx.get_or_404(Lead, lead_id, "Lead")


def list_leads(ctx, include_closed: bool = False, status: Optional[str] = None) -> List[Lead]:
    """Open leads by default (closed statuses are hidden from the active view)"""
    query = ctx.scope_query(Lead.query, Lead)
    if status:
        query = query.filter(Lead.status == status)
    elif not include_closed:
        query = query.filter(Lead.status.notin_(list(CLOSED_LEAD_STATUSES)))
    return query.order_by(Lead.created_at.desc(), Lead.id.desc()).all()


def list_overdue_followups(ctx, today: Optional[date] = None) -> List[Lead]:
    """
    Leads that need a call back: the follow-up date has passed, or (with no
    follow-up date) the lead is more than OVERDUE_AFTER_DAYS days old.
    Oldest first.
    """
    today = today or ctx.now().date()
    cutoff = today - timedelta(days=OVERDUE_AFTER_DAYS)

    query = ctx.scope_query(Lead.query, Lead).filter(
        Lead.status.notin_(NO_FOLLOWUP_STATUSES),
        or_(
            Lead.next_followup_date < today,
            and_(Lead.next_followup_date.is_(None), Lead.date < cutoff),
        ),
    )
    return query.order_by(Lead.next_followup_date.asc(), Lead.date.asc(), Lead.id.asc()).all()
