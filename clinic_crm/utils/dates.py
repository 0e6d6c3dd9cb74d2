"""
Date parsing for API payloads

All datetimes are stored NAIVE in UTC. ISO strings with an offset or a
trailing "Z" are converted to UTC and stripped of tzinfo.
"""
from datetime import date, datetime, timezone
from typing import Optional, Union


def parse_datetime(value: Union[str, datetime, date, None]) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_date(value: Union[str, datetime, date, None]) -> Optional[date]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return parse_datetime(value).date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) == 10:
        return date.fromisoformat(text)
    return parse_datetime(text).date()
