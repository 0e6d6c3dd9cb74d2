"""
Public booking page API - no CRM session required
"""
import logging

from flask import Blueprint, jsonify

from clinic_crm.api_helpers import json_body
from clinic_crm.services.conversion_service import ConversionOrchestrator
from clinic_crm.services.settings_service import load_settings
from clinic_crm.session_context import SessionContext

log = logging.getLogger(__name__)

booking_bp = Blueprint("booking_bp", __name__)


@booking_bp.route("/api/booking", methods=["POST"])
def request_appointment():
    """Body: {full_name, phone_number, department, appointment_date, email?, notes?}"""
    ctx = SessionContext.system(settings=load_settings())
    result = ConversionOrchestrator(ctx).book_appointment(json_body())
    return jsonify({"success": True, **result.model_dump()}), 201
