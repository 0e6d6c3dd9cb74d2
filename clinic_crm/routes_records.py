"""
Comments, notes and attachments on any record

record_type is one of: contacts, leads, customers, tickets
"""
import logging

from flask import Blueprint, jsonify, request

from clinic_crm.api_helpers import json_body
from clinic_crm.services import record_items
from clinic_crm.session_context import get_session_context

log = logging.getLogger(__name__)

records_bp = Blueprint("records_bp", __name__)

RECORD_TYPES = "<any(contacts, leads, customers, tickets):record_type>"


@records_bp.route(f"/api/{RECORD_TYPES}/<int:record_id>/comments", methods=["POST"])
def add_comment(record_type, record_id):
    ctx = get_session_context()
    comment = record_items.add_comment(record_type, record_id, json_body().get("text"), ctx)
    return jsonify(comment), 201


@records_bp.route(f"/api/{RECORD_TYPES}/<int:record_id>/notes", methods=["POST"])
def add_note(record_type, record_id):
    ctx = get_session_context()
    note = record_items.add_note(record_type, record_id, json_body().get("text"), ctx)
    return jsonify(note), 201


@records_bp.route(f"/api/{RECORD_TYPES}/<int:record_id>/attachments", methods=["POST"])
def upload_attachment(record_type, record_id):
    """multipart/form-data: file, tags (comma separated)"""
    ctx = get_session_context()
    tags = [t.strip() for t in request.form.get("tags", "").split(",") if t.strip()]
    attachment = record_items.add_attachment(record_type, record_id, request.files.get("file"), ctx, tags=tags)
    return jsonify(attachment), 201


@records_bp.route(f"/api/{RECORD_TYPES}/<int:record_id>/attachments/<attachment_id>", methods=["PATCH"])
def update_attachment(record_type, record_id, attachment_id):
    ctx = get_session_context()
    attachment = record_items.update_attachment(record_type, record_id, attachment_id, json_body(), ctx)
    return jsonify(attachment)


@records_bp.route(f"/api/{RECORD_TYPES}/<int:record_id>/attachments/<attachment_id>", methods=["DELETE"])
def delete_attachment(record_type, record_id, attachment_id):
    ctx = get_session_context()
    record_items.delete_attachment(record_type, record_id, attachment_id, ctx)
    return jsonify({"success": True})
