"""
Status History Recorder

Computes field-level diffs over a fixed whitelist per entity type and
prepends one entry per changed field to the record's history array.
Entries look like {field, from, to, user, date} and are never edited or
removed once written.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

TRACKED_FIELDS: Dict[str, Dict[str, str]] = {
    "contact": {
        "full_name": "Full Name",
        "phone_number": "Phone Number",
        "secondary_phone_number": "Secondary Phone",
        "address": "Address",
        "source": "Source",
        "instagram_url": "Instagram URL",
        "birthday": "Birthday",
    },
    "lead": {"status": "Status"},
    "customer": {"status": "Status"},
    "ticket": {
        "status": "Status",
        "priority": "Priority",
        "assigned_to": "Assigned to",
        "department": "Department",
    },
}

HISTORY_ATTRIBUTE = {
    "contact": "history",
    "lead": "status_history",
    "customer": "status_history",
    "ticket": "history",
}


def _display(value) -> str:
    if value is None:
        return ""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def make_entry(field: str, old: str, new: str, user: str, now: datetime) -> Dict[str, str]:
    return {"field": field, "from": old, "to": new, "user": user, "date": now.isoformat()}


def snapshot(record, entity_type: str) -> Dict[str, Any]:
    """Current values of the tracked fields, taken before an update"""
    return {name: getattr(record, name, None) for name in TRACKED_FIELDS[entity_type]}


def diff(entity_type: str, old_values: Dict[str, Any], new_values: Dict[str, Any],
         user: str, now: datetime) -> List[Dict[str, str]]:
    """
    Pure diff over the tracked fields of `entity_type`.

    Fields absent from `new_values` are treated as unchanged; missing old
    values compare as the empty string.
    """
    if entity_type not in TRACKED_FIELDS:
        raise KeyError(f"No tracked fields for {entity_type}")

    entries = []
    for name, label in TRACKED_FIELDS[entity_type].items():
        if name not in new_values:
            continue
        old = _display(old_values.get(name))
        new = _display(new_values.get(name))
        if old != new:
            entries.append(make_entry(label, old, new, user, now))
    return entries


def record_changes(record, entity_type: str, old_values: Dict[str, Any], user: str,
                   now: Optional[datetime] = None) -> List[Dict[str, str]]:
    """
    Diff `record` against `old_values` and prepend the entries to its history.

    A new list is assigned so the JSON column change is flushed.
    """
    now = now or datetime.utcnow()
    entries = diff(entity_type, old_values, snapshot(record, entity_type), user, now)
    if entries:
        attr = HISTORY_ATTRIBUTE[entity_type]
        setattr(record, attr, entries + list(getattr(record, attr) or []))
    return entries


def creation_entry(user: str, now: Optional[datetime] = None) -> Dict[str, str]:
    return make_entry("Created", "", "", user, now or datetime.utcnow())
