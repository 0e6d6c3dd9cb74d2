"""
Phone normalization - single place that decides when two numbers are "the same"
"""
import re
from typing import Optional

_PHONE_FORMAT = re.compile(r'^\+?[\d\s\-\(\)]{8,}$')


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Strip formatting so equal numbers compare equal.

    Keeps a leading + and the digits; spaces, dashes, dots and parentheses
    are dropped.

    Examples:
        "+1 (555) 123-4567" -> "+15551234567"
        "050-123 4567"      -> "0501234567"
        ""                  -> None
    """
    if not phone:
        return None

    cleaned = re.sub(r'[^\d+]', '', str(phone).strip())
    if not cleaned:
        return None

    # Only a leading + is meaningful
    if cleaned.startswith('+'):
        return '+' + cleaned[1:].replace('+', '')
    return cleaned.replace('+', '')


def is_valid_phone(phone: Optional[str]) -> bool:
    return bool(phone) and bool(_PHONE_FORMAT.match(str(phone).strip()))
