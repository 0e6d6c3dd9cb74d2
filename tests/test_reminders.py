"""
Contact reminders and lead follow-ups
"""
from datetime import date, datetime

import pytest

from clinic_crm.db import db
from clinic_crm.errors import NotFoundError, StaleWriteError, ValidationError
from clinic_crm.models_sql import AuditLog, ContactReminder
from clinic_crm.services.contact_service import add_contact
from clinic_crm.services.reminder_service import (
    add_followup,
    add_reminder,
    complete_followup,
    complete_reminder,
    delete_reminder,
    list_followups,
    list_overdue_lead_followups,
    list_reminders,
    list_upcoming_reminders,
    update_followup,
    update_reminder,
)


def _reminder(ctx, contact, when, title="Call about lab results", **extra):
    return add_reminder({"contact_id": contact.id, "title": title, "reminder_date": when, **extra}, ctx)


def _followup(ctx, lead, when, **extra):
    return add_followup({"lead_id": lead.id, "followup_date": when, **extra}, ctx)


class TestContactReminders:

    def test_new_reminder_defaults(self, ctx, contact):
        reminder = _reminder(ctx, contact, "2025-04-30")

        assert reminder.contact_name == "Maya Levi"
        assert reminder.reminder_date == date(2025, 4, 30)
        assert reminder.reminder_type == "general"
        assert reminder.is_completed is False
        assert reminder.created_by == "Dana"
        assert AuditLog.query.filter_by(action="REMINDER_CREATED").count() == 1

    def test_unknown_contact(self, ctx):
        with pytest.raises(NotFoundError):
            add_reminder({"contact_id": 999, "title": "Call back", "reminder_date": "2025-04-30"}, ctx)

    @pytest.mark.parametrize("with_contact, payload", [
        (False, {"title": "Call back", "reminder_date": "2025-04-30"}),
        (True, {"title": "x", "reminder_date": "2025-04-30"}),
        (True, {"title": "Call back"}),
        (True, {"title": "Call back", "reminder_date": "someday"}),
        (True, {"title": "Call back", "reminder_date": "2025-04-30", "reminder_type": "horoscope"}),
    ])
    def test_invalid_reminder_is_rejected(self, ctx, contact, with_contact, payload):
        if with_contact:
            payload = {"contact_id": contact.id, **payload}

        with pytest.raises(ValidationError):
            add_reminder(payload, ctx)

        assert ContactReminder.query.count() == 0

    def test_update_changes_fields_and_version(self, ctx, contact):
        reminder = _reminder(ctx, contact, "2025-04-30")

        updated = update_reminder(reminder.id, {"reminder_date": "2025-05-02", "reminder_type": "call",
                                                "contact_id": 12345}, ctx, expected_version=1)

        assert updated.reminder_date == date(2025, 5, 2)
        assert updated.reminder_type == "call"
        assert updated.contact_id == contact.id
        assert updated.version == 2
        entry = AuditLog.query.filter_by(action="REMINDER_UPDATED").one()
        assert entry.details["changed_fields"] == ["reminder_date", "reminder_type"]

    def test_stale_update_is_rejected(self, ctx, contact):
        reminder = _reminder(ctx, contact, "2025-04-30")
        update_reminder(reminder.id, {"title": "Call about the invoice"}, ctx)

        with pytest.raises(StaleWriteError):
            update_reminder(reminder.id, {"title": "Call about lab results"}, ctx, expected_version=1)

    def test_complete_is_idempotent(self, ctx, contact):
        reminder = _reminder(ctx, contact, "2025-04-30")

        complete_reminder(reminder.id, ctx)
        again = complete_reminder(reminder.id, ctx)

        assert again.is_completed is True
        assert again.completed_at == datetime(2025, 4, 28, 9, 0)
        assert AuditLog.query.filter_by(action="REMINDER_COMPLETED").count() == 1
        assert list_reminders(ctx) == []
        assert [r.id for r in list_reminders(ctx, include_completed=True)] == [reminder.id]

    def test_delete(self, ctx, contact):
        reminder = _reminder(ctx, contact, "2025-04-30")

        assert delete_reminder(reminder.id, ctx) is True

        assert db.session.get(ContactReminder, reminder.id) is None
        assert AuditLog.query.filter_by(action="REMINDER_DELETED").count() == 1
        with pytest.raises(NotFoundError):
            delete_reminder(reminder.id, ctx)

    def test_upcoming_window_includes_overdue(self, ctx, contact):
        overdue = _reminder(ctx, contact, "2025-04-25", title="Send the consent form")
        today = _reminder(ctx, contact, "2025-04-28", title="Confirm tomorrow's visit")
        edge = _reminder(ctx, contact, "2025-05-05", title="Birthday message", reminder_type="birthday")
        _reminder(ctx, contact, "2025-05-06", title="Too far out")
        done = _reminder(ctx, contact, "2025-04-29", title="Already handled")
        complete_reminder(done.id, ctx)

        upcoming = list_upcoming_reminders(ctx)

        assert [(r["id"], r["days_until"]) for r in upcoming] == [(overdue.id, -3), (today.id, 0), (edge.id, 7)]

    def test_upcoming_honours_days_ahead(self, ctx, contact):
        _reminder(ctx, contact, "2025-04-30")

        assert list_upcoming_reminders(ctx, days_ahead=1) == []
        assert len(list_upcoming_reminders(ctx, days_ahead=2)) == 1
        assert list_upcoming_reminders(ctx, days_ahead=1, today=date(2025, 4, 29))[0]["days_until"] == 1

    def test_agent_sees_only_own_branch(self, ctx, agent_ctx, branches):
        north, south = branches
        mine = add_contact({"full_name": "North Patient", "phone_number": "050-000 0001",
                            "source": "Walk-in", "branch_id": north.id}, ctx)
        other = add_contact({"full_name": "South Patient", "phone_number": "050-000 0002",
                             "source": "Walk-in", "branch_id": south.id}, ctx)
        own = _reminder(ctx, mine, "2025-04-30")
        foreign = _reminder(ctx, other, "2025-04-30")

        assert own.branch_id == north.id
        assert [r["id"] for r in list_upcoming_reminders(agent_ctx)] == [own.id]
        with pytest.raises(NotFoundError):
            complete_reminder(foreign.id, agent_ctx)


class TestLeadFollowups:

    def test_new_followup_inherits_lead(self, ctx, lead):
        followup = _followup(ctx, lead, "2025-04-30")

        assert followup.contact_name == lead.contact_full_name
        assert followup.assigned_agent == "Noa"
        assert followup.followup_type == "call"
        assert followup.priority == "medium"
        assert followup.branch_id == lead.branch_id
        assert [f.id for f in lead.followups] == [followup.id]
        assert AuditLog.query.filter_by(action="FOLLOWUP_CREATED").count() == 1

    def test_explicit_agent_and_priority(self, ctx, lead):
        followup = _followup(ctx, lead, "2025-04-30", assigned_agent="Ori", priority="urgent",
                             followup_type="whatsapp")

        assert followup.assigned_agent == "Ori"
        assert followup.priority == "urgent"
        assert followup.followup_type == "whatsapp"

    def test_invalid_followup_is_rejected(self, ctx, lead):
        with pytest.raises(ValidationError):
            _followup(ctx, lead, "2025-04-30", priority="someday")
        with pytest.raises(ValidationError):
            add_followup({"lead_id": lead.id}, ctx)
        with pytest.raises(ValidationError):
            add_followup({"followup_date": "2025-04-30"}, ctx)
        with pytest.raises(NotFoundError):
            add_followup({"lead_id": 999, "followup_date": "2025-04-30"}, ctx)

    def test_update_and_complete(self, ctx, lead):
        followup = _followup(ctx, lead, "2025-04-30")

        updated = update_followup(followup.id, {"followup_date": "2025-05-01", "notes": "Asked to call after 5pm"},
                                  ctx, expected_version=1)
        assert updated.followup_date == date(2025, 5, 1)
        assert updated.notes == "Asked to call after 5pm"

        completed = complete_followup(followup.id, ctx)
        complete_followup(followup.id, ctx)

        assert completed.is_completed is True
        assert completed.completed_at == datetime(2025, 4, 28, 9, 0)
        assert AuditLog.query.filter_by(action="FOLLOWUP_COMPLETED").count() == 1
        assert list_followups(ctx, lead_id=lead.id) == []

    def test_overdue_lists_pending_past_followups(self, ctx, lead):
        oldest = _followup(ctx, lead, "2025-04-20")
        recent = _followup(ctx, lead, "2025-04-27", priority="high")
        _followup(ctx, lead, "2025-04-28")
        handled = _followup(ctx, lead, "2025-04-21")
        complete_followup(handled.id, ctx)

        overdue = list_overdue_lead_followups(ctx)

        assert [(f["id"], f["days_overdue"]) for f in overdue] == [(oldest.id, 8), (recent.id, 1)]
        assert overdue[1]["priority"] == "high"
