"""
Tenant settings and the action log
"""
import pytest

from clinic_crm.errors import AccessDeniedError, ValidationError
from clinic_crm.models_sql import ClinicSettings
from clinic_crm.services.audit_log import list_actions
from clinic_crm.services.lead_service import update_lead
from clinic_crm.services.settings_service import load_settings, snapshot_from_row, update_settings
from clinic_crm.session_context import SessionContext


class TestSettings:

    def test_defaults_without_stored_row(self, app):
        settings = load_settings()

        assert settings.lead_statuses == ["Hot", "Warm", "Cold"]
        assert settings.automation_enabled is False
        assert settings.connected_calendars == []
        assert "{name}" in settings.message_rule("confirmation").template

    def test_update_merges_and_is_audited(self, ctx):
        update_settings({"automation": {"enabled": True}}, ctx)
        snapshot = update_settings({
            "lead_statuses": ["Callback", " Interested "],
            "calendar_sync": {"outlook": {"connected": True}},
        }, ctx)

        assert snapshot.automation_enabled is True
        assert snapshot.lead_statuses == ["Callback", "Interested"]
        assert snapshot.connected_calendars == ["outlook"]
        assert ClinicSettings.query.count() == 1
        assert [a.action for a in list_actions(ctx, action="SETTINGS_UPDATED")] == ["SETTINGS_UPDATED"] * 2

    def test_message_rule_override_keeps_default_template(self):
        row = ClinicSettings(automation={"enabled": True, "messages": {"reminder": {"enabled": False}}})

        rule = snapshot_from_row(row).message_rule("reminder")

        assert rule.enabled is False
        assert rule.template.startswith("Hello {name}, a reminder")

    def test_fixed_statuses_cannot_be_redefined(self, ctx):
        with pytest.raises(ValidationError):
            update_settings({"lead_statuses": ["Hot", "Lost"]}, ctx)

    def test_unknown_setting(self, ctx):
        with pytest.raises(ValidationError):
            update_settings({"theme": "dark"}, ctx)

    def test_agents_cannot_change_settings(self, agent_ctx):
        with pytest.raises(AccessDeniedError):
            update_settings({"automation": {"enabled": True}}, agent_ctx)

    def test_custom_statuses_drive_lead_transitions(self, ctx, lead, now):
        settings = update_settings({"lead_statuses": ["Callback"]}, ctx)
        tenant_ctx = SessionContext(user=ctx.user, settings=settings, clock=lambda: now)

        updated = update_lead(lead.id, {"status": "Callback", "assigned_agent": "Noa", "date": "2025-04-28"},
                              tenant_ctx)

        assert updated.status == "Callback"


class TestSettingsShape:

    def test_malformed_calendar_sync_is_rejected_before_write(self, ctx):
        with pytest.raises(ValidationError) as exc:
            update_settings({"calendar_sync": {"google": True}}, ctx)

        assert exc.value.errors[0].startswith("calendar_sync.google")
        assert ClinicSettings.query.count() == 0
        assert load_settings().connected_calendars == []

    def test_malformed_automation_is_rejected(self, ctx):
        update_settings({"automation": {"enabled": True}}, ctx)

        for payload in (
            {"automation": {"enabled": True, "messages": {"reminder": False}}},
            {"automation": {"messages": {"birthday": {"enabled": True}}}},
            {"automation": {"enabld": True}},
            {"automation": "on"},
        ):
            with pytest.raises(ValidationError):
                update_settings(payload, ctx)

        assert load_settings().automation_enabled is True
        assert load_settings().message_rule("reminder").enabled is True

    def test_message_rule_updates_merge_per_kind(self, ctx):
        update_settings({"automation": {"messages": {"reminder": {"enabled": False}}}}, ctx)
        snapshot = update_settings({"automation": {"messages": {"reminder": {"template": "See you, {name}"}}}}, ctx)

        rule = snapshot.message_rule("reminder")
        assert rule.enabled is False
        assert rule.template == "See you, {name}"
        assert snapshot.message_rule("confirmation").enabled is True

    def test_stored_bad_entries_fall_back_to_defaults(self):
        row = ClinicSettings(
            calendar_sync={"google": True, "outlook": {"connected": True}},
            automation={"enabled": True, "messages": {"reminder": "off"}},
        )

        snapshot = snapshot_from_row(row)

        assert snapshot.connected_calendars == ["outlook"]
        assert snapshot.message_rule("reminder").template.startswith("Hello {name}, a reminder")
