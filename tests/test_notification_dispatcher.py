"""
Notification dispatcher - best-effort auto messages and calendar sync
"""
from datetime import date, datetime
from unittest.mock import MagicMock, patch

import pytest
import requests

from clinic_crm.services.notification_dispatcher import (
    CalendarSyncClient,
    NotificationDispatcher,
    WhatsAppGatewaySender,
    get_notification_dispatcher,
    is_tomorrow,
    render_message,
)
from clinic_crm.services.settings_service import AutoMessageRule, ClinicSettingsSnapshot

NOW = datetime(2025, 4, 28, 22, 30)


class _Customer:
    id = 5
    contact_full_name = "Maya Levi"
    contact_phone_number = "0501234567"
    department = "Dermatology"
    appointment_date = datetime(2025, 4, 29, 9, 15)


@pytest.fixture
def settings():
    return ClinicSettingsSnapshot(automation_enabled=True)


class TestHelpers:

    def test_is_tomorrow_uses_calendar_days(self):
        assert is_tomorrow(datetime(2025, 4, 29, 0, 5), NOW)
        assert is_tomorrow(date(2025, 4, 29), NOW)
        assert not is_tomorrow(datetime(2025, 4, 28, 23, 59), NOW)
        assert not is_tomorrow(datetime(2025, 4, 30, 8, 0), NOW)
        assert not is_tomorrow(None, NOW)

    def test_render_fills_known_placeholders(self):
        message = render_message("Hi {name}, {department} on {date} at {time} {unknown}", _Customer())

        assert message == "Hi Maya Levi, Dermatology on 2025-04-29 at 09:15 {unknown}"

    def test_details_override_record_values(self):
        message = render_message("{department} {date}", _Customer(), {
            "department": "ENT", "appointment_date": datetime(2025, 5, 2, 8, 0),
        })

        assert message == "ENT 2025-05-02"


class TestDispatch:

    def test_sends_rendered_template(self, settings):
        sender = MagicMock()
        dispatcher = NotificationDispatcher(settings, sender=sender)

        assert dispatcher.dispatch("confirmation", _Customer()) is True

        to, message = sender.send.call_args.args
        assert to == "0501234567"
        assert message == "Hello Maya Levi, your Dermatology appointment is confirmed for 2025-04-29 at 09:15."
        assert sender.send.call_args.kwargs == {"kind": "confirmation"}

    def test_automation_off(self):
        sender = MagicMock()
        dispatcher = NotificationDispatcher(ClinicSettingsSnapshot(), sender=sender)

        assert dispatcher.dispatch("confirmation", _Customer()) is False
        sender.send.assert_not_called()

    def test_rule_disabled(self):
        settings = ClinicSettingsSnapshot(
            automation_enabled=True,
            auto_messages={"reminder": AutoMessageRule(enabled=False, template="x")},
        )
        sender = MagicMock()

        assert NotificationDispatcher(settings, sender=sender).dispatch("reminder", _Customer()) is False
        sender.send.assert_not_called()

    def test_unknown_kind(self, settings):
        assert NotificationDispatcher(settings, sender=MagicMock()).dispatch("birthday", _Customer()) is False

    def test_no_sender_configured(self, settings):
        assert NotificationDispatcher(settings).dispatch("confirmation", _Customer()) is False

    def test_sender_failure_is_swallowed(self, settings):
        sender = MagicMock()
        sender.send.side_effect = requests.ConnectionError("gateway down")

        assert NotificationDispatcher(settings, sender=sender).dispatch("feedback", _Customer()) is False

    def test_calendar_sync_only_connected_calendars(self):
        settings = ClinicSettingsSnapshot(calendar_sync={
            "google": {"connected": True}, "outlook": {"connected": True},
        })
        client = MagicMock()
        client.sync.side_effect = [True, requests.HTTPError("500")]

        synced = NotificationDispatcher(settings, calendar_client=client).sync_appointment_to_calendar(_Customer())

        assert synced == ["google"]
        assert client.sync.call_count == 2

    def test_after_booking_reminder_only_for_tomorrow(self, settings):
        sender = MagicMock()
        dispatcher = NotificationDispatcher(settings, sender=sender)

        dispatcher.after_booking(_Customer(), datetime(2025, 4, 20, 9, 0))

        assert [c.kwargs["kind"] for c in sender.send.call_args_list] == ["confirmation"]


class TestHttpClients:

    def test_whatsapp_gateway_post(self):
        with patch('clinic_crm.services.notification_dispatcher.requests.post') as post:
            post.return_value.status_code = 200
            WhatsAppGatewaySender("https://gw.example.com/", token="secret", timeout=5).send(
                "0501234567", "hello", kind="reminder"
            )

        post.assert_called_once_with(
            "https://gw.example.com/messages",
            json={"to": "0501234567", "message": "hello", "kind": "reminder"},
            headers={"Content-Type": "application/json", "Authorization": "Bearer secret"},
            timeout=5,
        )
        post.return_value.raise_for_status.assert_called_once()

    def test_calendar_bridge_error_raises(self):
        with patch('clinic_crm.services.notification_dispatcher.requests.post') as post:
            post.return_value.raise_for_status.side_effect = requests.HTTPError("502 Bad Gateway")

            with pytest.raises(requests.HTTPError):
                CalendarSyncClient("https://cal.example.com").sync("google", {"customer_id": 5})

        assert post.call_args.args == ("https://cal.example.com/google/events",)

    def test_dispatcher_from_app_config(self, app):
        app.config.update(
            NOTIFICATIONS_ENABLED=True,
            WHATSAPP_GATEWAY_URL="https://gw.example.com",
            CALENDAR_SYNC_URL="https://cal.example.com",
            CALENDAR_SYNC_TOKEN="cal-token",
        )

        dispatcher = get_notification_dispatcher()

        assert dispatcher.enabled is True
        assert dispatcher.sender.base_url == "https://gw.example.com"
        assert dispatcher.calendar_client.token == "cal-token"

    def test_test_config_disables_delivery(self, app):
        dispatcher = get_notification_dispatcher()

        assert dispatcher.enabled is False
        assert dispatcher.sender is None
