"""
Tickets API
"""
from flask import Blueprint, jsonify, request

from clinic_crm.api_helpers import expected_version, json_body
from clinic_crm.services import ticket_service
from clinic_crm.session_context import get_session_context

tickets_bp = Blueprint("tickets_bp", __name__)


@tickets_bp.route("/api/tickets", methods=["GET"])
def list_tickets():
    ctx = get_session_context()
    tickets = ticket_service.list_tickets(
        ctx,
        customer_id=request.args.get("customer_id", type=int),
        status=request.args.get("status"),
    )
    return jsonify({"items": [t.to_dict() for t in tickets], "total": len(tickets)})


@tickets_bp.route("/api/tickets", methods=["POST"])
def create_ticket():
    ctx = get_session_context()
    ticket = ticket_service.add_ticket(json_body(), ctx)
    return jsonify(ticket.to_dict()), 201


@tickets_bp.route("/api/tickets/<int:ticket_id>", methods=["GET"])
def get_ticket(ticket_id):
    ctx = get_session_context()
    return jsonify(ticket_service.get_ticket(ticket_id, ctx).to_dict())


@tickets_bp.route("/api/tickets/<int:ticket_id>", methods=["PUT", "PATCH"])
def update_ticket(ticket_id):
    ctx = get_session_context()
    data = json_body()
    ticket = ticket_service.update_ticket(ticket_id, data, ctx, expected_version=expected_version(data))
    return jsonify(ticket.to_dict())
