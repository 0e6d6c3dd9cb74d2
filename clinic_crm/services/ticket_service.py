"""
Ticket Service - support tickets raised for customers

History starts with a "Created" entry; status, priority, assigned_to and
department changes are recorded on every update.
"""
import logging
from typing import List, Optional

from clinic_crm.db import db
from clinic_crm.errors import ValidationError
from clinic_crm.models_sql import Customer, Ticket
from clinic_crm.services.audit_log import log_action
from clinic_crm.services.history_recorder import creation_entry, record_changes, snapshot
from clinic_crm.services.persistence import check_version, commit_session, flush_session
from clinic_crm.services.record_items import initial_notes
from clinic_crm.services.validation import sanitize_data, validate_ticket_data

logger = logging.getLogger(__name__)

TICKET_STATUSES = ("Open", "In Progress", "Resolved", "Closed")
TICKET_PRIORITIES = ("Low", "Medium", "High", "Urgent")

UPDATABLE_FIELDS = ("subject", "description", "status", "priority", "assigned_to", "department")


def _check_choices(data: dict):
    errors = []
    if data.get("status") and data["status"] not in TICKET_STATUSES:
        errors.append(f"Unknown ticket status: {data['status']}")
    if data.get("priority") and data["priority"] not in TICKET_PRIORITIES:
        errors.append(f"Unknown ticket priority: {data['priority']}")
    if errors:
        raise ValidationError(errors)


def add_ticket(data: dict, ctx) -> Ticket:
    data = sanitize_data(data)
    validate_ticket_data(data)
    _check_choices(data)

    customer = ctx.get_or_404(Customer, data["customer_id"], "Customer")
    now = ctx.now()

    ticket = Ticket(
        branch_id=customer.branch_id,
        customer_id=customer.id,
        customer_name=customer.contact_full_name,
        subject=data["subject"],
        description=data["description"],
        status=data.get("status") or "Open",
        priority=data.get("priority") or "Medium",
        assigned_to=data.get("assigned_to") or None,
        department=data["department"],
        notes=initial_notes(data.get("notes"), ctx),
        attachments=[],
        comments=[],
        history=[creation_entry(ctx.user_name, now)],
        created_at=now,
    )
    db.session.add(ticket)
    flush_session("TicketCreate")

    log_action("TICKET_CREATED", "Tickets", {
        "ticket_id": ticket.id, "subject": ticket.subject, "branch_id": ticket.branch_id,
    }, ctx)
    commit_session("TicketCreate")

    logger.info(f"[Tickets] Created ticket {ticket.id} for customer {customer.id}")
    return ticket


def update_ticket(ticket_id, data: dict, ctx, expected_version=None) -> Ticket:
    ticket = ctx.get_or_404(Ticket, ticket_id, "Ticket")
    check_version(ticket, expected_version)

    data = {k: v for k, v in sanitize_data(data).items() if k in UPDATABLE_FIELDS}
    _check_choices(data)
    if "subject" in data and len(data["subject"] or "") < 3:
        raise ValidationError("Subject must be at least 3 characters long")
    if "description" in data and len(data["description"] or "") < 10:
        raise ValidationError("Description must be at least 10 characters long")

    old_values = snapshot(ticket, "ticket")
    for field, value in data.items():
        setattr(ticket, field, value)
    record_changes(ticket, "ticket", old_values, ctx.user_name, ctx.now())

    log_action("TICKET_UPDATED", "Tickets", {
        "ticket_id": ticket.id, "subject": ticket.subject, "status": ticket.status,
        "branch_id": ticket.branch_id,
    }, ctx)
    commit_session("TicketUpdate")
    return ticket


def get_ticket(ticket_id, ctx) -> Ticket:
    return ctx.get_or_404(Ticket, ticket_id, "Ticket")


def list_tickets(ctx, customer_id=None, status: Optional[str] = None) -> List[Ticket]:
    query = ctx.scope_query(Ticket.query, Ticket)
    if customer_id is not None:
        query = query.filter(Ticket.customer_id == customer_id)
    if status:
        query = query.filter(Ticket.status == status)
    return query.order_by(Ticket.created_at.desc(), Ticket.id.desc()).all()
