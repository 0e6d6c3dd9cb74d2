"""
Record statuses

System-critical states are closed enums; tenant-specific intermediate lead
statuses (Hot, Warm, ...) stay plain strings configured in ClinicSettings.
"""
from enum import Enum
from typing import Iterable, List, Optional


class LeadStatus(str, Enum):
    FRESH = "Fresh"
    CONVERTED = "Converted"
    BOOKED = "Booked"
    NO_SHOW = "No-Show"
    RE_FOLLOW = "Re-follow"
    LOST = "Lost"


class CustomerStatus(str, Enum):
    BOOKED = "Booked"
    RESCHEDULED = "Rescheduled"
    SHOWED = "Showed"
    NO_SHOW = "No-Show"


class AppointmentStatus(str, Enum):
    SCHEDULED = "Scheduled"
    CONFIRMED = "Confirmed"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    NO_SHOW = "No-Show"
    RESCHEDULED = "Rescheduled"


# A lead in one of these states does not count as "open" for its contact
CLOSED_LEAD_STATUSES = frozenset({
    LeadStatus.CONVERTED.value,
    LeadStatus.LOST.value,
    LeadStatus.NO_SHOW.value,
    LeadStatus.RE_FOLLOW.value,
})

# Reaching these requires appointment details (conversion flow)
CONVERSION_LEAD_STATUSES = frozenset({LeadStatus.CONVERTED.value, LeadStatus.BOOKED.value})

FIXED_LEAD_STATUSES = frozenset(s.value for s in LeadStatus)

DEFAULT_CUSTOM_LEAD_STATUSES = ["Hot", "Warm", "Cold"]

# Customer statuses that (re)trigger calendar sync + confirmation
BOOKING_CUSTOMER_STATUSES = frozenset({CustomerStatus.BOOKED.value, CustomerStatus.RESCHEDULED.value})

TERMINAL_APPOINTMENT_STATUSES = frozenset({
    AppointmentStatus.COMPLETED.value,
    AppointmentStatus.CANCELLED.value,
    AppointmentStatus.NO_SHOW.value,
})

APPOINTMENT_STATUS_VALUES = [s.value for s in AppointmentStatus]

# Statuses a new booking may start in (both map the customer to Booked)
BOOKABLE_APPOINTMENT_STATUSES = (AppointmentStatus.SCHEDULED.value, AppointmentStatus.CONFIRMED.value)

APPOINTMENT_TO_CUSTOMER_STATUS = {
    AppointmentStatus.NO_SHOW.value: CustomerStatus.NO_SHOW.value,
    AppointmentStatus.COMPLETED.value: CustomerStatus.SHOWED.value,
    AppointmentStatus.SCHEDULED.value: CustomerStatus.BOOKED.value,
    AppointmentStatus.CONFIRMED.value: CustomerStatus.BOOKED.value,
}


def status_value(status) -> Optional[str]:
    if status is None:
        return None
    return status.value if isinstance(status, Enum) else str(status)


def is_open_lead_status(status) -> bool:
    return status_value(status) not in CLOSED_LEAD_STATUSES


def customer_status_for_appointment(appointment_status, current_customer_status: Optional[str]) -> Optional[str]:
    """Customer status implied by an appointment status; other statuses leave it unchanged"""
    return APPOINTMENT_TO_CUSTOMER_STATUS.get(status_value(appointment_status), current_customer_status)


def lead_status_choices(custom_statuses: Optional[Iterable[str]] = None) -> List[str]:
    """Fresh, tenant statuses, then the fixed terminal states"""
    custom = [s for s in (custom_statuses or DEFAULT_CUSTOM_LEAD_STATUSES) if s not in FIXED_LEAD_STATUSES]
    return [LeadStatus.FRESH.value] + custom + [
        LeadStatus.CONVERTED.value,
        LeadStatus.BOOKED.value,
        LeadStatus.NO_SHOW.value,
        LeadStatus.RE_FOLLOW.value,
        LeadStatus.LOST.value,
    ]
