"""
Clinic settings - tenant configuration snapshot

The stored ClinicSettings row is read once per request into an immutable
ClinicSettingsSnapshot that travels inside the SessionContext.
"""
import logging
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from clinic_crm.db import db
from clinic_crm.errors import AccessDeniedError, ValidationError
from clinic_crm.models_sql import ClinicSettings
from clinic_crm.statuses import DEFAULT_CUSTOM_LEAD_STATUSES, FIXED_LEAD_STATUSES
from clinic_crm.services.audit_log import log_action
from clinic_crm.services.persistence import commit_session

logger = logging.getLogger(__name__)

MESSAGE_KINDS = ("confirmation", "reminder", "feedback")

DEFAULT_TEMPLATES = {
    "confirmation": "Hello {name}, your {department} appointment is confirmed for {date} at {time}.",
    "reminder": "Hello {name}, a reminder that your {department} appointment is tomorrow at {time}.",
    "feedback": "Hello {name}, thank you for visiting us. We would love to hear about your experience.",
}


class CalendarConnection(BaseModel):
    connected: bool = False


class AutoMessageRule(BaseModel):
    enabled: bool = True
    template: str = ""


def _default_calendars() -> Dict[str, CalendarConnection]:
    return {"google": CalendarConnection(), "outlook": CalendarConnection()}


def _default_rules() -> Dict[str, AutoMessageRule]:
    return {kind: AutoMessageRule(template=DEFAULT_TEMPLATES[kind]) for kind in MESSAGE_KINDS}


class ClinicSettingsSnapshot(BaseModel):
    lead_statuses: List[str] = Field(default_factory=lambda: list(DEFAULT_CUSTOM_LEAD_STATUSES))
    calendar_sync: Dict[str, CalendarConnection] = Field(default_factory=_default_calendars)
    automation_enabled: bool = False
    auto_messages: Dict[str, AutoMessageRule] = Field(default_factory=_default_rules)

    model_config = {"frozen": True}

    @property
    def connected_calendars(self) -> List[str]:
        return [name for name, conn in self.calendar_sync.items() if conn.connected]

    def message_rule(self, kind: str) -> Optional[AutoMessageRule]:
        rule = self.auto_messages.get(kind)
        if rule is None and kind in DEFAULT_TEMPLATES:
            return AutoMessageRule(template=DEFAULT_TEMPLATES[kind])
        return rule


class AutoMessageRuleUpdate(BaseModel):
    enabled: Optional[bool] = None
    template: Optional[str] = None

    model_config = {"extra": "forbid"}


class AutomationUpdate(BaseModel):
    enabled: Optional[bool] = None
    messages: Optional[Dict[str, AutoMessageRuleUpdate]] = None

    model_config = {"extra": "forbid"}

    @field_validator("messages")
    @classmethod
    def _known_kinds(cls, value):
        unknown = sorted(set(value or {}) - set(MESSAGE_KINDS))
        if unknown:
            raise ValueError(f"unknown message kind(s): {', '.join(unknown)}")
        return value


class ClinicSettingsUpdate(BaseModel):
    """Shape check for PUT /api/settings, run before the row is touched"""
    calendar_sync: Optional[Dict[str, CalendarConnection]] = None
    automation: Optional[AutomationUpdate] = None


def _parse_update(data: dict) -> ClinicSettingsUpdate:
    try:
        return ClinicSettingsUpdate(**{k: data[k] for k in ("calendar_sync", "automation") if k in data})
    except PydanticValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]
        raise ValidationError(errors, message="Invalid settings") from e


def _merge_automation(stored: Optional[dict], update: AutomationUpdate) -> dict:
    merged = dict(stored or {})
    if update.enabled is not None:
        merged["enabled"] = update.enabled
    if update.messages:
        messages = dict(merged.get("messages") or {})
        for kind, rule in update.messages.items():
            messages[kind] = {**(messages.get(kind) or {}), **rule.model_dump(exclude_none=True)}
        merged["messages"] = messages
    return merged


def snapshot_from_row(row: Optional[ClinicSettings]) -> ClinicSettingsSnapshot:
    if row is None:
        return ClinicSettingsSnapshot()

    data = {}
    if row.lead_statuses:
        data["lead_statuses"] = row.lead_statuses

    calendars = _default_calendars()
    stored_calendars = row.calendar_sync if isinstance(row.calendar_sync, dict) else {}
    for name, conn in stored_calendars.items():
        try:
            calendars[name] = CalendarConnection.model_validate(conn or {})
        except PydanticValidationError:
            logger.warning(f"[Settings] Ignoring malformed calendar_sync entry '{name}': {conn!r}")
    data["calendar_sync"] = calendars

    automation = row.automation if isinstance(row.automation, dict) else {}
    data["automation_enabled"] = bool(automation.get("enabled", False))
    rules = _default_rules()
    messages = automation.get("messages")
    for kind, rule in (messages if isinstance(messages, dict) else {}).items():
        try:
            rules[kind] = AutoMessageRule.model_validate(
                {"template": DEFAULT_TEMPLATES.get(kind, ""), **(rule or {})}
            )
        except (PydanticValidationError, TypeError):
            logger.warning(f"[Settings] Ignoring malformed message rule '{kind}': {rule!r}")
    data["auto_messages"] = rules
    return ClinicSettingsSnapshot(**data)


def load_settings() -> ClinicSettingsSnapshot:
    """Read the tenant settings row (defaults when none is stored yet)"""
    return snapshot_from_row(ClinicSettings.query.first())


def update_settings(data: dict, ctx) -> ClinicSettingsSnapshot:
    """
    Merge `data` into the stored settings. Admin only.

    Accepted keys: lead_statuses, calendar_sync, automation
    """
    if not ctx.user.is_admin:
        raise AccessDeniedError()

    unknown = set(data) - {"lead_statuses", "calendar_sync", "automation"}
    if unknown:
        raise ValidationError([f"Unknown setting: {key}" for key in sorted(unknown)])

    statuses = data.get("lead_statuses")
    if statuses is not None:
        if not isinstance(statuses, list) or not all(isinstance(s, str) and s.strip() for s in statuses):
            raise ValidationError("lead_statuses must be a list of non-empty names")
        clashing = [s for s in statuses if s in FIXED_LEAD_STATUSES]
        if clashing:
            raise ValidationError(f"Built-in statuses cannot be redefined: {', '.join(clashing)}")

    update = _parse_update(data)

    row = ClinicSettings.query.first()
    if row is None:
        row = ClinicSettings()
        db.session.add(row)

    if statuses is not None:
        row.lead_statuses = [s.strip() for s in statuses]
    if update.calendar_sync:
        row.calendar_sync = {
            **(row.calendar_sync or {}),
            **{name: conn.model_dump() for name, conn in update.calendar_sync.items()},
        }
    if update.automation is not None:
        row.automation = _merge_automation(row.automation, update.automation)
    row.updated_by = ctx.user_name

    log_action("SETTINGS_UPDATED", "Settings", {"updated_keys": sorted(data)}, ctx)
    commit_session("Settings")

    logger.info(f"[Settings] Updated {sorted(data)} by {ctx.user_name}")
    return snapshot_from_row(row)
