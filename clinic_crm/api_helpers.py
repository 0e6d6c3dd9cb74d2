"""
Shared request helpers for the JSON blueprints
"""
from flask import request

from clinic_crm.errors import ValidationError


def json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON data required")
    return data


def expected_version(data: dict = None):
    """Last-seen version from the body ("version") or an If-Match header"""
    value = (data or {}).get("version")
    if value is None:
        value = request.headers.get("If-Match")
    if value in (None, ""):
        return None
    try:
        return int(str(value).strip('"'))
    except ValueError:
        raise ValidationError("version must be an integer")


def int_arg(name: str, default: int, maximum: int = 500) -> int:
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")
    return max(1, min(value, maximum))


def bool_arg(name: str) -> bool:
    return request.args.get(name, "").lower() in ("1", "true", "yes")
