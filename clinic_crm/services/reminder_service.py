"""
Reminder Service - contact reminders and lead follow-ups

Contact reminders: add / update / delete / complete, plus the upcoming
window (pending reminders due within `days_ahead` days, overdue ones
included, each tagged with days_until).

Lead follow-ups: add / update / complete, plus the overdue list (pending
follow-ups dated before today, tagged with days_overdue).

Completing is idempotent: a second call keeps the first completed_at.
"""
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from clinic_crm.db import db
from clinic_crm.models_sql import Contact, ContactReminder, Lead, LeadFollowup
from clinic_crm.services.audit_log import log_action
from clinic_crm.services.persistence import check_version, commit_session, flush_session
from clinic_crm.services.validation import sanitize_data, validate_followup_data, validate_reminder_data
from clinic_crm.utils.dates import parse_date

logger = logging.getLogger(__name__)

UPCOMING_DAYS_AHEAD = 7

REMINDER_FIELDS = ("title", "description", "reminder_date", "reminder_type")
FOLLOWUP_FIELDS = ("followup_date", "followup_type", "priority", "notes", "assigned_agent")


# ---------------------------------------------------------------------------
# Contact reminders
# ---------------------------------------------------------------------------

def add_reminder(data: dict, ctx) -> ContactReminder:
    data = sanitize_data(data)
    validate_reminder_data(data)

    contact = ctx.get_or_404(Contact, data["contact_id"], "Contact")
    now = ctx.now()

    reminder = ContactReminder(
        branch_id=contact.branch_id,
        contact_id=contact.id,
        contact_name=contact.full_name,
        title=data["title"],
        description=data.get("description") or None,
        reminder_date=parse_date(data["reminder_date"]),
        reminder_type=data.get("reminder_type") or "general",
        is_completed=False,
        created_by=ctx.user_name,
        created_at=now,
        updated_at=now,
    )
    db.session.add(reminder)
    flush_session("ReminderCreate")

    log_action("REMINDER_CREATED", "Reminders", {
        "reminder_id": reminder.id, "title": reminder.title, "contact_id": contact.id,
        "branch_id": reminder.branch_id,
    }, ctx)
    commit_session("ReminderCreate")

    logger.info(f"[Reminders] Created reminder {reminder.id} for contact {contact.id}")
    return reminder


def update_reminder(reminder_id, data: dict, ctx, expected_version=None) -> ContactReminder:
    reminder = ctx.get_or_404(ContactReminder, reminder_id, "Reminder")
    check_version(reminder, expected_version)

    data = {k: v for k, v in sanitize_data(data).items() if k in REMINDER_FIELDS}
    validate_reminder_data(data, partial=True)
    if "reminder_date" in data:
        data["reminder_date"] = parse_date(data["reminder_date"])

    for field, value in data.items():
        setattr(reminder, field, value if value != "" else None)
    reminder.updated_at = ctx.now()

    log_action("REMINDER_UPDATED", "Reminders", {
        "reminder_id": reminder.id, "changed_fields": sorted(data), "branch_id": reminder.branch_id,
    }, ctx)
    commit_session("ReminderUpdate")
    return reminder


def delete_reminder(reminder_id, ctx) -> bool:
    reminder = ctx.get_or_404(ContactReminder, reminder_id, "Reminder")

    log_action("REMINDER_DELETED", "Reminders", {
        "reminder_id": reminder.id, "title": reminder.title, "contact_id": reminder.contact_id,
        "branch_id": reminder.branch_id,
    }, ctx)
    db.session.delete(reminder)
    commit_session("ReminderDelete")

    logger.info(f"[Reminders] Deleted reminder {reminder_id} by {ctx.user_name}")
    return True


def complete_reminder(reminder_id, ctx) -> ContactReminder:
    reminder = ctx.get_or_404(ContactReminder, reminder_id, "Reminder")
    if reminder.is_completed:
        return reminder

    now = ctx.now()
    reminder.is_completed = True
    reminder.completed_at = now
    reminder.updated_at = now

    log_action("REMINDER_COMPLETED", "Reminders", {
        "reminder_id": reminder.id, "title": reminder.title, "branch_id": reminder.branch_id,
    }, ctx)
    commit_session("ReminderComplete")
    return reminder


def get_reminder(reminder_id, ctx) -> ContactReminder:
    return ctx.get_or_404(ContactReminder, reminder_id, "Reminder")


def list_reminders(ctx, contact_id=None, include_completed: bool = False) -> List[ContactReminder]:
    query = ctx.scope_query(ContactReminder.query, ContactReminder)
    if contact_id is not None:
        query = query.filter(ContactReminder.contact_id == contact_id)
    if not include_completed:
        query = query.filter(ContactReminder.is_completed.is_(False))
    return query.order_by(ContactReminder.reminder_date.asc(), ContactReminder.id.asc()).all()


def list_upcoming_reminders(ctx, days_ahead: int = UPCOMING_DAYS_AHEAD,
                            today: Optional[date] = None) -> List[Dict[str, Any]]:
    """Pending reminders due on or before today + days_ahead, soonest first"""
    today = today or ctx.now().date()
    horizon = today + timedelta(days=days_ahead)

    reminders = ctx.scope_query(ContactReminder.query, ContactReminder).filter(
        ContactReminder.is_completed.is_(False),
        ContactReminder.reminder_date <= horizon,
    ).order_by(ContactReminder.reminder_date.asc(), ContactReminder.id.asc()).all()

    return [{**r.to_dict(), "days_until": (r.reminder_date - today).days} for r in reminders]


# ---------------------------------------------------------------------------
# Lead follow-ups
# ---------------------------------------------------------------------------

def add_followup(data: dict, ctx) -> LeadFollowup:
    data = sanitize_data(data)
    validate_followup_data(data)

    lead = ctx.get_or_404(Lead, data["lead_id"], "Lead")
    now = ctx.now()

    followup = LeadFollowup(
        branch_id=lead.branch_id,
        lead_id=lead.id,
        contact_name=lead.contact_full_name,
        followup_date=parse_date(data["followup_date"]),
        followup_type=data.get("followup_type") or "call",
        priority=data.get("priority") or "medium",
        notes=data.get("notes") or None,
        assigned_agent=data.get("assigned_agent") or lead.assigned_agent,
        is_completed=False,
        created_by=ctx.user_name,
        created_at=now,
        updated_at=now,
    )
    db.session.add(followup)
    flush_session("FollowupCreate")

    log_action("FOLLOWUP_CREATED", "Leads", {
        "followup_id": followup.id, "lead_id": lead.id, "followup_date": followup.followup_date.isoformat(),
        "branch_id": followup.branch_id,
    }, ctx)
    commit_session("FollowupCreate")

    logger.info(f"[Followups] Scheduled follow-up {followup.id} for lead {lead.id} on {followup.followup_date}")
    return followup


def update_followup(followup_id, data: dict, ctx, expected_version=None) -> LeadFollowup:
    followup = ctx.get_or_404(LeadFollowup, followup_id, "Follow-up")
    check_version(followup, expected_version)

    data = {k: v for k, v in sanitize_data(data).items() if k in FOLLOWUP_FIELDS}
    validate_followup_data(data, partial=True)
    if "followup_date" in data:
        data["followup_date"] = parse_date(data["followup_date"])

    for field, value in data.items():
        setattr(followup, field, value if value != "" else None)
    followup.updated_at = ctx.now()

    log_action("FOLLOWUP_UPDATED", "Leads", {
        "followup_id": followup.id, "lead_id": followup.lead_id, "changed_fields": sorted(data),
        "branch_id": followup.branch_id,
    }, ctx)
    commit_session("FollowupUpdate")
    return followup


def complete_followup(followup_id, ctx) -> LeadFollowup:
    followup = ctx.get_or_404(LeadFollowup, followup_id, "Follow-up")
    if followup.is_completed:
        return followup

    now = ctx.now()
    followup.is_completed = True
    followup.completed_at = now
    followup.updated_at = now

    log_action("FOLLOWUP_COMPLETED", "Leads", {
        "followup_id": followup.id, "lead_id": followup.lead_id, "branch_id": followup.branch_id,
    }, ctx)
    commit_session("FollowupComplete")
    return followup


def get_followup(followup_id, ctx) -> LeadFollowup:
    return ctx.get_or_404(LeadFollowup, followup_id, "Follow-up")


def list_followups(ctx, lead_id=None, include_completed: bool = False) -> List[LeadFollowup]:
    query = ctx.scope_query(LeadFollowup.query, LeadFollowup)
    if lead_id is not None:
        query = query.filter(LeadFollowup.lead_id == lead_id)
    if not include_completed:
        query = query.filter(LeadFollowup.is_completed.is_(False))
    return query.order_by(LeadFollowup.followup_date.asc(), LeadFollowup.id.asc()).all()


def list_overdue_lead_followups(ctx, today: Optional[date] = None) -> List[Dict[str, Any]]:
    """Pending follow-ups dated before today, oldest first"""
    today = today or ctx.now().date()

    followups = ctx.scope_query(LeadFollowup.query, LeadFollowup).filter(
        LeadFollowup.is_completed.is_(False),
        LeadFollowup.followup_date < today,
    ).order_by(LeadFollowup.followup_date.asc(), LeadFollowup.id.asc()).all()

    return [{**f.to_dict(), "days_overdue": (today - f.followup_date).days} for f in followups]
