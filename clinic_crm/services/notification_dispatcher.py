"""
Notification Dispatcher - automated patient messages and calendar sync

The core calls dispatch() synchronously after a successful commit and
treats it as best-effort: every failure is caught and logged, never
raised back into the transition that triggered it.

Channel delivery is delegated to external collaborators reached over HTTP:
- WhatsAppGatewaySender: POST {WHATSAPP_GATEWAY_URL}/messages
- CalendarSyncClient:    POST {CALENDAR_SYNC_URL}/{calendar}/events

Usage:
    dispatcher = get_notification_dispatcher(ctx.settings)
    dispatcher.dispatch("confirmation", customer, {"appointment_date": ...})
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

import requests

from clinic_crm.services.settings_service import MESSAGE_KINDS, ClinicSettingsSnapshot

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10


class WhatsAppGatewaySender:
    """Thin client for the external WhatsApp gateway"""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def send(self, to: str, message: str, kind: Optional[str] = None) -> bool:
        response = requests.post(
            f"{self.base_url}/messages",
            json={"to": to, "message": message, "kind": kind},
            headers=self._headers(),
            timeout=self.timeout,
        )
        response.raise_for_status()
        logger.info(f"[WhatsAppGateway] Sent {kind or 'message'} to {to} (status={response.status_code})")
        return True


class CalendarSyncClient:
    """Pushes appointments to the calendar bridge (google / outlook)"""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT_SECONDS):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout

    def sync(self, calendar: str, event: Dict[str, Any]) -> bool:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        response = requests.post(
            f"{self.base_url}/{calendar}/events",
            json=event,
            headers=headers,
            timeout=self.timeout,
        )
        response.raise_for_status()
        return True


class _TemplateValues(dict):
    def __missing__(self, key):
        return "{" + key + "}"


def is_tomorrow(appointment_date, now: datetime) -> bool:
    """True if the appointment falls on the calendar day after `now`"""
    if appointment_date is None:
        return False
    if isinstance(appointment_date, datetime):
        appointment_date = appointment_date.date()
    elif not isinstance(appointment_date, date):
        return False
    return appointment_date == (now + timedelta(days=1)).date()


def render_message(template: str, record, details: Optional[Dict[str, Any]] = None) -> str:
    details = details or {}
    when = details.get("appointment_date") or getattr(record, "appointment_date", None)
    values = _TemplateValues(
        name=getattr(record, "contact_full_name", None) or "",
        department=details.get("department") or getattr(record, "department", None) or "",
        date=when.strftime("%Y-%m-%d") if isinstance(when, (date, datetime)) else (when or ""),
        time=when.strftime("%H:%M") if isinstance(when, datetime) else "",
    )
    return template.format_map(values)


def calendar_event(customer) -> Dict[str, Any]:
    when = customer.appointment_date
    return {
        "customer_id": customer.id,
        "title": f"{customer.department or 'Appointment'} - {customer.contact_full_name}",
        "phone": customer.contact_phone_number,
        "start": when.isoformat() + "Z" if when else None,
        "department": customer.department,
    }


class NotificationDispatcher:
    """
    Best-effort boundary for confirmation / reminder / feedback messages
    and calendar sync. Automation switches and templates come from the
    tenant settings snapshot.
    """

    def __init__(self, settings: Optional[ClinicSettingsSnapshot] = None,
                 sender: Optional[WhatsAppGatewaySender] = None,
                 calendar_client: Optional[CalendarSyncClient] = None,
                 enabled: bool = True):
        self.settings = settings or ClinicSettingsSnapshot()
        self.sender = sender
        self.calendar_client = calendar_client
        self.enabled = enabled

    def dispatch(self, kind: str, record, details: Optional[Dict[str, Any]] = None) -> bool:
        """Send one automated message. Returns True only if it was delivered."""
        try:
            if kind not in MESSAGE_KINDS:
                logger.warning(f"[Dispatch] Unknown message kind: {kind}")
                return False
            if not self.enabled or self.sender is None:
                logger.debug(f"[Dispatch] Notifications disabled, skipping {kind}")
                return False
            if not self.settings.automation_enabled:
                logger.debug(f"[Dispatch] Automation off, skipping {kind}")
                return False

            rule = self.settings.message_rule(kind)
            if rule is None or not rule.enabled:
                logger.debug(f"[Dispatch] Rule '{kind}' disabled")
                return False

            phone = getattr(record, "contact_phone_number", None)
            if not phone:
                logger.warning(f"[Dispatch] No phone number on {type(record).__name__} {getattr(record, 'id', None)}")
                return False

            message = render_message(rule.template, record, details)
            return bool(self.sender.send(phone, message, kind=kind))
        except Exception as e:
            logger.error(f"[Dispatch] Failed to send {kind} for {type(record).__name__} "
                         f"{getattr(record, 'id', None)}: {e}")
            return False

    def sync_appointment_to_calendar(self, customer) -> List[str]:
        """Push the customer's appointment to every connected calendar"""
        synced = []
        if not self.enabled or self.calendar_client is None:
            return synced

        for calendar in self.settings.connected_calendars:
            try:
                self.calendar_client.sync(calendar, calendar_event(customer))
                synced.append(calendar)
            except Exception as e:
                logger.error(f"[Dispatch] Calendar sync to {calendar} failed for customer {customer.id}: {e}")

        if synced:
            logger.info(f"[Dispatch] Customer {customer.id} synced to {', '.join(synced)}")
        return synced

    def after_booking(self, customer, now: datetime, details: Optional[Dict[str, Any]] = None):
        """Calendar sync + confirmation, plus a reminder when the visit is tomorrow"""
        self.sync_appointment_to_calendar(customer)
        self.dispatch("confirmation", customer, details)
        if is_tomorrow(customer.appointment_date, now):
            self.dispatch("reminder", customer, details)


def get_notification_dispatcher(settings: Optional[ClinicSettingsSnapshot] = None) -> NotificationDispatcher:
    """Build a dispatcher from the Flask app config"""
    from flask import current_app

    config = current_app.config
    enabled = bool(config.get("NOTIFICATIONS_ENABLED", False))
    timeout = config.get("NOTIFICATION_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS)

    sender = None
    if config.get("WHATSAPP_GATEWAY_URL"):
        sender = WhatsAppGatewaySender(config["WHATSAPP_GATEWAY_URL"], config.get("WHATSAPP_GATEWAY_TOKEN"), timeout)

    calendar_client = None
    if config.get("CALENDAR_SYNC_URL"):
        calendar_client = CalendarSyncClient(config["CALENDAR_SYNC_URL"], config.get("CALENDAR_SYNC_TOKEN"), timeout)

    return NotificationDispatcher(settings, sender=sender, calendar_client=calendar_client, enabled=enabled)
