"""
Contact reminders and lead follow-ups API
"""
from flask import Blueprint, jsonify, request

from clinic_crm.api_helpers import bool_arg, expected_version, int_arg, json_body
from clinic_crm.errors import ValidationError
from clinic_crm.services import reminder_service
from clinic_crm.session_context import get_session_context
from clinic_crm.utils.dates import parse_date

reminders_bp = Blueprint("reminders_bp", __name__)


def _today_arg():
    value = request.args.get("today")
    if not value:
        return None
    try:
        return parse_date(value)
    except ValueError:
        raise ValidationError("today must be a date (YYYY-MM-DD)")


@reminders_bp.route("/api/reminders", methods=["GET"])
def list_reminders():
    ctx = get_session_context()
    reminders = reminder_service.list_reminders(
        ctx,
        contact_id=request.args.get("contact_id", type=int),
        include_completed=bool_arg("include_completed"),
    )
    return jsonify({"items": [r.to_dict() for r in reminders], "total": len(reminders)})


@reminders_bp.route("/api/reminders", methods=["POST"])
def create_reminder():
    ctx = get_session_context()
    reminder = reminder_service.add_reminder(json_body(), ctx)
    return jsonify(reminder.to_dict()), 201


@reminders_bp.route("/api/reminders/upcoming", methods=["GET"])
def upcoming_reminders():
    ctx = get_session_context()
    items = reminder_service.list_upcoming_reminders(
        ctx,
        days_ahead=int_arg("days", reminder_service.UPCOMING_DAYS_AHEAD, maximum=365),
        today=_today_arg(),
    )
    return jsonify({"items": items, "total": len(items)})


@reminders_bp.route("/api/reminders/<int:reminder_id>", methods=["PUT", "PATCH"])
def update_reminder(reminder_id):
    ctx = get_session_context()
    data = json_body()
    reminder = reminder_service.update_reminder(reminder_id, data, ctx, expected_version=expected_version(data))
    return jsonify(reminder.to_dict())


@reminders_bp.route("/api/reminders/<int:reminder_id>", methods=["DELETE"])
def delete_reminder(reminder_id):
    ctx = get_session_context()
    reminder_service.delete_reminder(reminder_id, ctx)
    return jsonify({"success": True})


@reminders_bp.route("/api/reminders/<int:reminder_id>/complete", methods=["POST"])
def complete_reminder(reminder_id):
    ctx = get_session_context()
    return jsonify(reminder_service.complete_reminder(reminder_id, ctx).to_dict())


@reminders_bp.route("/api/followups", methods=["GET"])
def list_followups():
    ctx = get_session_context()
    followups = reminder_service.list_followups(
        ctx,
        lead_id=request.args.get("lead_id", type=int),
        include_completed=bool_arg("include_completed"),
    )
    return jsonify({"items": [f.to_dict() for f in followups], "total": len(followups)})


@reminders_bp.route("/api/followups", methods=["POST"])
def create_followup():
    ctx = get_session_context()
    followup = reminder_service.add_followup(json_body(), ctx)
    return jsonify(followup.to_dict()), 201


@reminders_bp.route("/api/followups/overdue", methods=["GET"])
def overdue_followups():
    ctx = get_session_context()
    items = reminder_service.list_overdue_lead_followups(ctx, today=_today_arg())
    return jsonify({"items": items, "total": len(items)})


@reminders_bp.route("/api/followups/<int:followup_id>", methods=["PUT", "PATCH"])
def update_followup(followup_id):
    ctx = get_session_context()
    data = json_body()
    followup = reminder_service.update_followup(followup_id, data, ctx, expected_version=expected_version(data))
    return jsonify(followup.to_dict())


@reminders_bp.route("/api/followups/<int:followup_id>/complete", methods=["POST"])
def complete_followup(followup_id):
    ctx = get_session_context()
    return jsonify(reminder_service.complete_followup(followup_id, ctx).to_dict())
