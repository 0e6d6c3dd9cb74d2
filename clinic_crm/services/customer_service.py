"""
Customer Service - update / read customers

Setting a customer to No-Show hands over to the No-Show Reconciler (the
customer is replaced by a Re-follow lead). Every other edit is a plain
update with status history; the status-driven side effects (calendar
sync, confirmation, reminder, feedback) run after the commit.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from clinic_crm.errors import PersistenceError, ValidationError
from clinic_crm.models_sql import Customer
from clinic_crm.statuses import BOOKING_CUSTOMER_STATUSES, CustomerStatus
from clinic_crm.services.audit_log import log_action
from clinic_crm.services.history_recorder import record_changes, snapshot
from clinic_crm.services.no_show_service import NoShowReconciler, NoShowResult
from clinic_crm.services.notification_dispatcher import NotificationDispatcher, get_notification_dispatcher
from clinic_crm.services.persistence import check_version, commit_session
from clinic_crm.services.validation import sanitize_data
from clinic_crm.utils.dates import parse_datetime

logger = logging.getLogger(__name__)

CUSTOMER_STATUS_VALUES = [s.value for s in CustomerStatus]

UPDATABLE_FIELDS = ("status", "department", "appointment_date", "notes")


@dataclass
class CustomerUpdateResult:
    """Either the updated customer, or the outcome of a no-show hand-over"""
    customer: Optional[Customer] = None
    no_show: Optional[NoShowResult] = None


def run_status_side_effects(customer: Customer, old_status: Optional[str], ctx,
                            dispatcher: Optional[NotificationDispatcher] = None):
    """Post-commit, best-effort notifications for a customer status change"""
    if customer.status == old_status:
        return
    try:
        dispatcher = dispatcher or get_notification_dispatcher(ctx.settings)
        if customer.status in BOOKING_CUSTOMER_STATUSES:
            dispatcher.after_booking(customer, ctx.now())
        elif customer.status == CustomerStatus.SHOWED.value:
            dispatcher.dispatch("feedback", customer)
    except Exception as e:
        logger.error(f"[Customers] Side effects failed for customer {customer.id}: {e}")


def update_customer(customer_id, data: dict, ctx, expected_version=None,
                    dispatcher: Optional[NotificationDispatcher] = None) -> CustomerUpdateResult:
    """
    Update a customer.

    Raises:
        ValidationError: unknown status / bad date
        StaleWriteError: expected_version is behind the stored version
        PersistenceError: the no-show hand-over failed (nothing was changed)
    """
    customer = ctx.get_or_404(Customer, customer_id, "Customer")
    check_version(customer, expected_version)

    data = {k: v for k, v in sanitize_data(data).items() if k in UPDATABLE_FIELDS}
    new_status = data.get("status") or customer.status
    if new_status not in CUSTOMER_STATUS_VALUES:
        raise ValidationError(f"Unknown customer status: {new_status}")

    if new_status == CustomerStatus.NO_SHOW.value and customer.status != CustomerStatus.NO_SHOW.value:
        result = NoShowReconciler(ctx).reconcile(customer.id)
        if not result.success:
            raise PersistenceError(result.message, details={"customer_id": customer.id})
        return CustomerUpdateResult(no_show=result)

    if "appointment_date" in data:
        try:
            data["appointment_date"] = parse_datetime(data["appointment_date"])
        except (TypeError, ValueError):
            raise ValidationError("Appointment date must be a valid date")
    if "notes" in data and not isinstance(data["notes"], list):
        raise ValidationError("notes must be a list")

    old_status = customer.status
    old_values = snapshot(customer, "customer")
    data["status"] = new_status
    for field, value in data.items():
        setattr(customer, field, list(value) if isinstance(value, list) else value)
    customer.changed_by = ctx.user_name

    record_changes(customer, "customer", old_values, ctx.user_name, ctx.now())

    log_action("CUSTOMER_UPDATED", "Customers", {
        "customer_id": customer.id,
        "name": customer.contact_full_name,
        "status": customer.status,
        "branch_id": customer.branch_id,
    }, ctx)
    commit_session("CustomerUpdate")

    run_status_side_effects(customer, old_status, ctx, dispatcher)
    return CustomerUpdateResult(customer=customer)


def get_customer(customer_id, ctx) -> Customer:
    return ctx.get_or_404(Customer, customer_id, "Customer")


def list_customers(ctx, status: Optional[str] = None) -> List[Customer]:
    query = ctx.scope_query(Customer.query, Customer)
    if status:
        query = query.filter(Customer.status == status)
    return query.order_by(Customer.appointment_date.desc(), Customer.id.desc()).all()
