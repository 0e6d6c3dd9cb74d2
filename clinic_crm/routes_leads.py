"""
Leads API - lead list/edit, conversion to customer, overdue follow-ups
"""
import logging

from flask import Blueprint, jsonify, request

from clinic_crm.api_helpers import bool_arg, expected_version, json_body
from clinic_crm.services import lead_service
from clinic_crm.services.conversion_service import ConversionOrchestrator
from clinic_crm.session_context import get_session_context
from clinic_crm.statuses import lead_status_choices
from clinic_crm.utils.dates import parse_date

log = logging.getLogger(__name__)

leads_bp = Blueprint("leads_bp", __name__)


@leads_bp.route("/api/leads", methods=["GET"])
def list_leads():
    """Open leads by default; ?include_closed=1 or ?status=<name> to widen"""
    ctx = get_session_context()
    leads = lead_service.list_leads(
        ctx,
        include_closed=bool_arg("include_closed"),
        status=request.args.get("status"),
    )
    return jsonify({"items": [l.to_dict() for l in leads], "total": len(leads)})


@leads_bp.route("/api/leads/statuses", methods=["GET"])
def lead_statuses():
    ctx = get_session_context()
    return jsonify({"statuses": lead_status_choices(ctx.settings.lead_statuses)})


@leads_bp.route("/api/leads", methods=["POST"])
def create_lead():
    ctx = get_session_context()
    lead = lead_service.add_lead(json_body(), ctx)
    return jsonify(lead.to_dict()), 201


@leads_bp.route("/api/leads/<int:lead_id>", methods=["GET"])
def get_lead(lead_id):
    ctx = get_session_context()
    return jsonify(lead_service.get_lead(lead_id, ctx).to_dict())


@leads_bp.route("/api/leads/<int:lead_id>", methods=["PUT", "PATCH"])
def update_lead(lead_id):
    ctx = get_session_context()
    data = json_body()
    lead = lead_service.update_lead(lead_id, data, ctx, expected_version=expected_version(data))
    return jsonify(lead.to_dict())


@leads_bp.route("/api/leads/<int:lead_id>/convert", methods=["POST"])
def convert_lead(lead_id):
    """Body: {department, visit_date, status?, notes?}"""
    ctx = get_session_context()
    result = ConversionOrchestrator(ctx).convert(lead_id, json_body())
    log.info(f"[LeadsAPI] Lead {lead_id} converted by {ctx.user_name}")
    return jsonify(result.model_dump()), 201


@leads_bp.route("/api/leads/followups/overdue", methods=["GET"])
def overdue_followups():
    ctx = get_session_context()
    today = parse_date(request.args.get("today")) if request.args.get("today") else None
    leads = lead_service.list_overdue_followups(ctx, today=today)
    return jsonify({"items": [l.to_dict() for l in leads], "total": len(leads)})
