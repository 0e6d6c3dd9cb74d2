"""
No-Show Reconciler - Customer -> Re-follow Lead

Runs exactly when a customer's status is set to No-Show (and was not
already No-Show). In one transaction it:
1. creates a Re-follow lead from the customer's contact snapshot, carrying
   over the customer's notes / attachments / comments unchanged, with a
   system note naming the missed appointment date
2. marks the customer's pending appointments No-Show and detaches them
3. deletes the customer

On any failure everything is rolled back and a failed NoShowResult is
returned; the customer is never deleted without its replacement lead.
"""
import logging
from typing import Optional

from pydantic import BaseModel

from clinic_crm.db import db
from clinic_crm.errors import CrmError, PartialFailureError
from clinic_crm.models_sql import Appointment, Customer, Lead
from clinic_crm.statuses import TERMINAL_APPOINTMENT_STATUSES, AppointmentStatus, LeadStatus
from clinic_crm.services.audit_log import log_action
from clinic_crm.services.persistence import commit_session, flush_session
from clinic_crm.services.lead_service import UNASSIGNED_AGENT
from clinic_crm.services.duplicate_guard import lead_integrity_error

logger = logging.getLogger(__name__)


class NoShowResult(BaseModel):
    success: bool
    message: str
    lead_id: Optional[int] = None
    customer_id: Optional[int] = None


def no_show_note(customer: Customer) -> str:
    when = customer.appointment_date
    label = when.strftime("%Y-%m-%d") if when else "unknown date"
    return f"No-show on {label}. Needs follow-up."


class NoShowReconciler:
    def __init__(self, ctx):
        self.ctx = ctx

    def reconcile(self, customer_id) -> NoShowResult:
        """All-or-nothing; returns success=False instead of raising on store failures"""
        ctx = self.ctx
        customer = ctx.get_or_404(Customer, customer_id, "Customer")
        now = ctx.now()

        lead = Lead(
            branch_id=customer.branch_id,
            contact_id=customer.contact_id,
            contact_full_name=customer.contact_full_name,
            contact_phone_number=customer.contact_phone_number,
            lead_source=customer.lead_source,
            service_of_interest=customer.department,
            status=LeadStatus.RE_FOLLOW.value,
            assigned_agent=UNASSIGNED_AGENT,
            date=now.date(),
            notes=no_show_note(customer),
            notes_data=list(customer.notes or []),
            attachments=list(customer.attachments or []),
            comments=list(customer.comments or []),
            status_history=[],
            created_at=now,
        )

        try:
            db.session.add(lead)

            with db.session.no_autoflush:
                appointments = Appointment.query.filter(Appointment.customer_id == customer.id).all()
            for appointment in appointments:
                if appointment.status not in TERMINAL_APPOINTMENT_STATUSES:
                    appointment.status = AppointmentStatus.NO_SHOW.value
                appointment.customer_id = None

            flush_session("NoShow", lead_integrity_error)
            log_action("CUSTOMER_NO_SHOW", "Leads", {
                "customer_id": customer.id,
                "lead_id": lead.id,
                "name": customer.contact_full_name,
                "appointment_date": customer.appointment_date.isoformat() if customer.appointment_date else None,
                "branch_id": customer.branch_id,
            }, ctx)
            db.session.delete(customer)
            commit_session("NoShow", lead_integrity_error)
        except PartialFailureError:
            raise
        except CrmError as e:
            logger.error(f"[NoShow] Reconciliation failed for customer {customer_id}: {e.message}")
            if db.session.is_active:
                db.session.rollback()
            return NoShowResult(success=False, message=e.message, customer_id=customer_id)

        logger.info(f"[NoShow] Customer {customer_id} moved to Re-follow lead {lead.id}")
        return NoShowResult(
            success=True,
            message=f"{lead.contact_full_name} moved back to leads for follow-up",
            lead_id=lead.id,
            customer_id=customer_id,
        )


def reconcile(customer_id, ctx) -> NoShowResult:
    return NoShowReconciler(ctx).reconcile(customer_id)
