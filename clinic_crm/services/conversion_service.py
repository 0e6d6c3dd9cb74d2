"""
Conversion Orchestrator - Lead -> Customer + Appointment

convert() performs three writes in ONE transaction:
1. insert a Customer (contact snapshot, lead source, department, status
   Booked, appointment_date = visit_date, copied notes / attachments /
   comments, lead_id back-reference)
2. insert the matching Appointment
3. set the Lead to Converted (with a status history entry)

Either all three are committed or none is. Calendar sync and automated
messages run after the commit and never undo it.

book_appointment() is the online booking flow: find or create the contact
by phone, then create a Booked customer and its appointment atomically.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import or_

from clinic_crm.db import db
from clinic_crm.errors import InvalidTransitionError, ValidationError
from clinic_crm.models_sql import Appointment, Branch, Contact, Customer, Lead
from clinic_crm.statuses import (
    BOOKABLE_APPOINTMENT_STATUSES,
    AppointmentStatus,
    CustomerStatus,
    LeadStatus,
    customer_status_for_appointment,
)
from clinic_crm.services.audit_log import log_action
from clinic_crm.services.history_recorder import record_changes, snapshot
from clinic_crm.services.notification_dispatcher import NotificationDispatcher, get_notification_dispatcher
from clinic_crm.services.persistence import commit_session, flush_session, write_transaction
from clinic_crm.services.duplicate_guard import contact_integrity_error
from clinic_crm.services.record_items import make_item
from clinic_crm.services.validation import sanitize_data
from clinic_crm.utils.dates import parse_datetime
from clinic_crm.utils.phone_normalization import is_valid_phone, normalize_phone

logger = logging.getLogger(__name__)

ONLINE_BOOKING_SOURCE = "Online Booking"


def _format_pydantic_errors(exc: PydanticValidationError):
    return [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]


class AppointmentDetails(BaseModel):
    """Appointment details required to convert a lead"""
    department: str = Field(..., min_length=1, description="Department the visit is booked with")
    visit_date: datetime = Field(..., description="Visit date/time (stored as naive UTC)")
    status: Optional[str] = Field(None, description="Scheduled (default) or Confirmed")
    notes: Optional[str] = Field(None, description="Appointment note")

    @field_validator("visit_date", mode="before")
    @classmethod
    def _to_naive_utc(cls, value):
        return parse_datetime(value)

    @field_validator("status")
    @classmethod
    def _known_status(cls, value):
        if value and value not in BOOKABLE_APPOINTMENT_STATUSES:
            allowed = " or ".join(BOOKABLE_APPOINTMENT_STATUSES)
            raise ValueError(f"a new appointment must be {allowed}, not '{value}'")
        return value

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "AppointmentDetails":
        try:
            return cls(**sanitize_data(data))
        except PydanticValidationError as e:
            raise ValidationError(_format_pydantic_errors(e), message="Appointment details are incomplete") from e
        except ValueError as e:
            raise ValidationError(str(e)) from e


class ConversionResult(BaseModel):
    customer_id: int
    appointment_id: int
    lead_id: Optional[int] = None
    contact_id: Optional[int] = None


class BookingRequest(BaseModel):
    """Online booking form"""
    full_name: str = Field(..., min_length=2)
    phone_number: str
    department: str = Field(..., min_length=1)
    appointment_date: datetime
    email: Optional[str] = None
    birthday: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("phone_number")
    @classmethod
    def _valid_phone(cls, value):
        if not is_valid_phone(value):
            raise ValueError("invalid phone number")
        return value

    @field_validator("appointment_date", mode="before")
    @classmethod
    def _to_naive_utc(cls, value):
        return parse_datetime(value)


class ConversionOrchestrator:
    """
    Usage:
        orchestrator = ConversionOrchestrator(ctx)
        result = orchestrator.convert(lead_id, {"department": "Cardiology", "visit_date": "..."})
    """

    def __init__(self, ctx, dispatcher: Optional[NotificationDispatcher] = None):
        self.ctx = ctx
        self._dispatcher = dispatcher

    @property
    def dispatcher(self) -> NotificationDispatcher:
        if self._dispatcher is None:
            self._dispatcher = get_notification_dispatcher(self.ctx.settings)
        return self._dispatcher

    def convert(self, lead_id, details: Union[AppointmentDetails, Dict[str, Any]]) -> ConversionResult:
        ctx = self.ctx
        if not isinstance(details, AppointmentDetails):
            details = AppointmentDetails.from_payload(details or {})

        lead = ctx.get_or_404(Lead, lead_id, "Lead")
        if lead.status == LeadStatus.CONVERTED.value:
            raise InvalidTransitionError(f"Lead {lead.id} is already converted")

        with write_transaction("Conversion"):
            now = ctx.now()
            appointment_status = details.status or AppointmentStatus.SCHEDULED.value
            customer = Customer(
                branch_id=lead.branch_id,
                contact_id=lead.contact_id,
                lead_id=lead.id,
                contact_full_name=lead.contact_full_name,
                contact_phone_number=lead.contact_phone_number,
                lead_source=lead.lead_source,
                department=details.department,
                status=customer_status_for_appointment(appointment_status, CustomerStatus.BOOKED.value),
                appointment_date=details.visit_date,
                lead_created_at=lead.created_at,
                changed_by=ctx.user_name,
                notes=list(lead.notes_data or []),
                attachments=list(lead.attachments or []),
                comments=list(lead.comments or []),
                status_history=[],
                created_at=now,
            )
            appointment = Appointment(
                customer=customer,
                branch_id=lead.branch_id,
                contact_id=lead.contact_id,
                contact_full_name=lead.contact_full_name,
                contact_phone_number=lead.contact_phone_number,
                department=details.department,
                appointment_date=details.visit_date,
                status=appointment_status,
                notes=details.notes or f"Converted from lead. Original source: {lead.lead_source}",
                created_at=now,
            )
            db.session.add(customer)
            db.session.add(appointment)

            old_values = snapshot(lead, "lead")
            lead.status = LeadStatus.CONVERTED.value
            record_changes(lead, "lead", old_values, ctx.user_name, now)

            flush_session("Conversion")
            log_action("LEAD_CONVERTED", "Leads", {
                "lead_id": lead.id,
                "customer_id": customer.id,
                "name": lead.contact_full_name,
                "department": details.department,
                "branch_id": lead.branch_id,
            }, ctx)
            commit_session("Conversion")

        logger.info(f"[Conversion] Lead {lead.id} -> customer {customer.id} / appointment {appointment.id}")

        self._after_booking(customer, details.department)
        return ConversionResult(
            customer_id=customer.id,
            appointment_id=appointment.id,
            lead_id=lead.id,
            contact_id=customer.contact_id,
        )

    def book_appointment(self, booking: Union[BookingRequest, Dict[str, Any]]) -> ConversionResult:
        """Online booking: reuse the contact by phone or create one, then book"""
        ctx = self.ctx
        if not isinstance(booking, BookingRequest):
            try:
                booking = BookingRequest(**sanitize_data(booking or {}))
            except PydanticValidationError as e:
                raise ValidationError(_format_pydantic_errors(e), message="Please fill in all required fields") from e

        with write_transaction("Booking"):
            now = ctx.now()
            phone = normalize_phone(booking.phone_number)
            contact = Contact.query.filter(
                or_(Contact.phone_number == phone, Contact.secondary_phone_number == phone)
            ).first()

            if contact is None:
                first_branch = Branch.query.order_by(Branch.id.asc()).first()
                contact = Contact(
                    branch_id=first_branch.id if first_branch else None,
                    full_name=booking.full_name,
                    phone_number=phone,
                    email=booking.email or None,
                    source=ONLINE_BOOKING_SOURCE,
                    notes=[],
                    attachments=[],
                    comments=[],
                    history=[],
                    created_at=now,
                )
                db.session.add(contact)
                flush_session("Booking", contact_integrity_error)
                log_action("CONTACT_CREATED", "Booking Page", {
                    "contact_id": contact.id, "name": contact.full_name, "branch_id": contact.branch_id,
                }, ctx)

            note = make_item(f"Online Booking Request Notes: {booking.notes or 'N/A'}", ctx)
            customer = Customer(
                branch_id=contact.branch_id,
                contact_id=contact.id,
                contact_full_name=booking.full_name,
                contact_phone_number=phone,
                lead_source=ONLINE_BOOKING_SOURCE,
                department=booking.department,
                status=CustomerStatus.BOOKED.value,
                appointment_date=booking.appointment_date,
                changed_by=ctx.user_name,
                notes=[note],
                attachments=[],
                comments=[],
                status_history=[],
                created_at=now,
            )
            appointment = Appointment(
                customer=customer,
                branch_id=contact.branch_id,
                contact_id=contact.id,
                contact_full_name=booking.full_name,
                contact_phone_number=phone,
                department=booking.department,
                appointment_date=booking.appointment_date,
                status=AppointmentStatus.SCHEDULED.value,
                notes=note["text"],
                created_at=now,
            )
            db.session.add(customer)
            db.session.add(appointment)

            flush_session("Booking")
            log_action("APPOINTMENT_REQUESTED", "Booking Page", {
                "customer_id": customer.id, "name": customer.contact_full_name, "branch_id": customer.branch_id,
            }, ctx)
            commit_session("Booking")

        logger.info(f"[Booking] Online booking -> customer {customer.id} (contact {contact.id})")

        self._after_booking(customer, booking.department)
        return ConversionResult(
            customer_id=customer.id,
            appointment_id=appointment.id,
            contact_id=contact.id,
        )

    def _after_booking(self, customer: Customer, department: str):
        try:
            self.dispatcher.after_booking(customer, self.ctx.now(), {
                "appointment_date": customer.appointment_date,
                "department": department,
            })
        except Exception as e:
            logger.error(f"[Conversion] Post-booking side effects failed for customer {customer.id}: {e}")


def convert(lead_id, details, ctx, dispatcher: Optional[NotificationDispatcher] = None) -> ConversionResult:
    return ConversionOrchestrator(ctx, dispatcher).convert(lead_id, details)


def book_appointment(booking, ctx, dispatcher: Optional[NotificationDispatcher] = None) -> ConversionResult:
    return ConversionOrchestrator(ctx, dispatcher).book_appointment(booking)
