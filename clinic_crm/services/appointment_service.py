"""
Appointment Service

Appointment status changes propagate to the parent customer through the
fixed mapping in statuses.APPOINTMENT_TO_CUSTOMER_STATUS. The customer is
only touched when the mapped status differs from its current one, so
repeating the same appointment status records no extra history.
"""
import logging
from typing import List, Optional

from clinic_crm.db import db
from clinic_crm.errors import PersistenceError, ValidationError
from clinic_crm.models_sql import Appointment, Customer
from clinic_crm.statuses import (
    APPOINTMENT_STATUS_VALUES,
    AppointmentStatus,
    CustomerStatus,
    customer_status_for_appointment,
)
from clinic_crm.services.audit_log import log_action
from clinic_crm.services.customer_service import run_status_side_effects
from clinic_crm.services.history_recorder import record_changes, snapshot
from clinic_crm.services.no_show_service import NoShowReconciler
from clinic_crm.services.notification_dispatcher import NotificationDispatcher
from clinic_crm.services.persistence import check_version, commit_session, flush_session
from clinic_crm.services.validation import sanitize_data
from clinic_crm.utils.dates import parse_datetime

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("status", "appointment_date", "department", "notes")


def _parse_appointment_fields(data: dict) -> dict:
    errors = []
    if "status" in data and data["status"] not in APPOINTMENT_STATUS_VALUES:
        errors.append(f"Unknown appointment status: {data['status']}")
    if "appointment_date" in data:
        try:
            data["appointment_date"] = parse_datetime(data["appointment_date"])
        except (TypeError, ValueError):
            errors.append("Appointment date must be a valid date")
        else:
            if data["appointment_date"] is None:
                errors.append("Appointment date is required")
    if errors:
        raise ValidationError(errors)
    return data


def _propagate_status(appointment: Appointment, customer: Customer, ctx) -> Optional[str]:
    """Apply the mapped customer status. Returns the customer's previous status if it changed."""
    mapped = customer_status_for_appointment(appointment.status, customer.status)
    if mapped == customer.status:
        return None

    old_status = customer.status
    old_values = snapshot(customer, "customer")
    customer.status = mapped
    customer.changed_by = ctx.user_name
    record_changes(customer, "customer", old_values, ctx.user_name, ctx.now())
    return old_status


def add_appointment(customer_id, data: dict, ctx, dispatcher: Optional[NotificationDispatcher] = None) -> Appointment:
    """Book another appointment for an existing customer"""
    customer = ctx.get_or_404(Customer, customer_id, "Customer")

    data = {k: v for k, v in sanitize_data(data).items() if k in UPDATABLE_FIELDS}
    if not data.get("appointment_date"):
        raise ValidationError("Appointment date is required")
    data.setdefault("status", AppointmentStatus.SCHEDULED.value)
    data = _parse_appointment_fields(data)

    appointment = Appointment(
        customer=customer,
        branch_id=customer.branch_id,
        contact_id=customer.contact_id,
        contact_full_name=customer.contact_full_name,
        contact_phone_number=customer.contact_phone_number,
        department=data.get("department") or customer.department,
        appointment_date=data["appointment_date"],
        status=data["status"],
        notes=data.get("notes"),
        created_at=ctx.now(),
    )
    db.session.add(appointment)

    customer.appointment_date = appointment.appointment_date
    customer.department = appointment.department
    old_status = _propagate_status(appointment, customer, ctx)

    flush_session("AppointmentCreate")
    log_action("APPOINTMENT_CREATED", "Appointments", {
        "appointment_id": appointment.id, "customer_id": customer.id, "branch_id": customer.branch_id,
    }, ctx)
    commit_session("AppointmentCreate")

    logger.info(f"[Appointments] Added appointment {appointment.id} for customer {customer.id}")
    if old_status is not None:
        run_status_side_effects(customer, old_status, ctx, dispatcher)
    return appointment


def update_appointment(appointment_id, data: dict, ctx, expected_version=None,
                       dispatcher: Optional[NotificationDispatcher] = None) -> Appointment:
    """
    Update an appointment and propagate its status to the customer.

    An appointment marked No-Show hands its customer to the No-Show
    Reconciler in the same transaction.
    """
    appointment = ctx.get_or_404(Appointment, appointment_id, "Appointment")
    check_version(appointment, expected_version)

    data = {k: v for k, v in sanitize_data(data).items() if k in UPDATABLE_FIELDS}
    data = _parse_appointment_fields(data)
    for field, value in data.items():
        setattr(appointment, field, value)

    customer = appointment.customer if appointment.customer_id else None
    old_status = None
    if customer is not None and "status" in data:
        mapped = customer_status_for_appointment(appointment.status, customer.status)
        if mapped == CustomerStatus.NO_SHOW.value and customer.status != CustomerStatus.NO_SHOW.value:
            result = NoShowReconciler(ctx).reconcile(customer.id)
            if not result.success:
                raise PersistenceError(result.message, details={"appointment_id": appointment_id})
            logger.info(f"[Appointments] Appointment {appointment_id} no-show -> lead {result.lead_id}")
            return appointment
        old_status = _propagate_status(appointment, customer, ctx)

    log_action("APPOINTMENT_UPDATED", "Appointments", {
        "appointment_id": appointment.id,
        "status": appointment.status,
        "customer_id": appointment.customer_id,
        "branch_id": appointment.branch_id,
    }, ctx)
    commit_session("AppointmentUpdate")

    if customer is not None and old_status is not None:
        run_status_side_effects(customer, old_status, ctx, dispatcher)
    return appointment


def get_appointment(appointment_id, ctx) -> Appointment:
    return ctx.get_or_404(Appointment, appointment_id, "Appointment")


def list_appointments(ctx, customer_id=None) -> List[Appointment]:
    query = ctx.scope_query(Appointment.query, Appointment)
    if customer_id is not None:
        query = query.filter(Appointment.customer_id == customer_id)
    return query.order_by(Appointment.appointment_date.asc(), Appointment.id.asc()).all()
