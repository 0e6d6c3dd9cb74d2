"""
Contacts API
"""
import logging

from flask import Blueprint, jsonify, request

from clinic_crm.api_helpers import expected_version, json_body
from clinic_crm.services import contact_service
from clinic_crm.session_context import get_session_context

log = logging.getLogger(__name__)

contacts_bp = Blueprint("contacts_bp", __name__)


@contacts_bp.route("/api/contacts", methods=["GET"])
def list_contacts():
    ctx = get_session_context()
    contacts = contact_service.list_contacts(ctx, search=request.args.get("q"))
    return jsonify({"items": [c.to_dict() for c in contacts], "total": len(contacts)})


@contacts_bp.route("/api/contacts", methods=["POST"])
def create_contact():
    ctx = get_session_context()
    contact = contact_service.add_contact(json_body(), ctx)
    return jsonify(contact.to_dict()), 201


@contacts_bp.route("/api/contacts/<int:contact_id>", methods=["GET"])
def get_contact(contact_id):
    ctx = get_session_context()
    return jsonify(contact_service.get_contact(contact_id, ctx).to_dict())


@contacts_bp.route("/api/contacts/<int:contact_id>", methods=["PUT", "PATCH"])
def update_contact(contact_id):
    ctx = get_session_context()
    data = json_body()
    contact = contact_service.update_contact(contact_id, data, ctx, expected_version=expected_version(data))
    return jsonify(contact.to_dict())
