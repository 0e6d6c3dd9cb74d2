"""
Clinic settings + audit log API
"""
from flask import Blueprint, jsonify, request

from clinic_crm.api_helpers import int_arg, json_body
from clinic_crm.services.audit_log import list_actions
from clinic_crm.services.settings_service import update_settings
from clinic_crm.session_context import get_session_context

settings_bp = Blueprint("settings_bp", __name__)


@settings_bp.route("/api/settings", methods=["GET"])
def get_settings():
    ctx = get_session_context()
    return jsonify(ctx.settings.model_dump())


@settings_bp.route("/api/settings", methods=["PUT", "PATCH"])
def put_settings():
    ctx = get_session_context()
    snapshot = update_settings(json_body(), ctx)
    return jsonify(snapshot.model_dump())


@settings_bp.route("/api/audit", methods=["GET"])
def audit_log():
    ctx = get_session_context()
    entries = list_actions(ctx, limit=int_arg("limit", 100), action=request.args.get("action"))
    return jsonify({"items": [e.to_dict() for e in entries], "total": len(entries)})
