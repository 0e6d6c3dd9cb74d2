"""
Customers + appointments API
"""
import logging

from flask import Blueprint, jsonify, request

from clinic_crm.api_helpers import expected_version, json_body
from clinic_crm.services import appointment_service, customer_service
from clinic_crm.session_context import get_session_context

log = logging.getLogger(__name__)

customers_bp = Blueprint("customers_bp", __name__)


@customers_bp.route("/api/customers", methods=["GET"])
def list_customers():
    ctx = get_session_context()
    customers = customer_service.list_customers(ctx, status=request.args.get("status"))
    return jsonify({"items": [c.to_dict() for c in customers], "total": len(customers)})


@customers_bp.route("/api/customers/<int:customer_id>", methods=["GET"])
def get_customer(customer_id):
    ctx = get_session_context()
    customer = customer_service.get_customer(customer_id, ctx)
    payload = customer.to_dict()
    payload["appointments"] = [a.to_dict() for a in appointment_service.list_appointments(ctx, customer_id)]
    return jsonify(payload)


@customers_bp.route("/api/customers/<int:customer_id>", methods=["PUT", "PATCH"])
def update_customer(customer_id):
    """Setting status No-Show moves the customer back to leads (response carries the new lead id)"""
    ctx = get_session_context()
    data = json_body()
    result = customer_service.update_customer(customer_id, data, ctx, expected_version=expected_version(data))
    if result.no_show is not None:
        return jsonify({"no_show": result.no_show.model_dump()})
    return jsonify(result.customer.to_dict())


@customers_bp.route("/api/customers/<int:customer_id>/appointments", methods=["POST"])
def add_appointment(customer_id):
    ctx = get_session_context()
    appointment = appointment_service.add_appointment(customer_id, json_body(), ctx)
    return jsonify(appointment.to_dict()), 201


@customers_bp.route("/api/appointments", methods=["GET"])
def list_appointments():
    ctx = get_session_context()
    customer_id = request.args.get("customer_id", type=int)
    appointments = appointment_service.list_appointments(ctx, customer_id)
    return jsonify({"items": [a.to_dict() for a in appointments], "total": len(appointments)})


@customers_bp.route("/api/appointments/<int:appointment_id>", methods=["PUT", "PATCH"])
def update_appointment(appointment_id):
    ctx = get_session_context()
    data = json_body()
    appointment = appointment_service.update_appointment(
        appointment_id, data, ctx, expected_version=expected_version(data)
    )
    return jsonify(appointment.to_dict())
