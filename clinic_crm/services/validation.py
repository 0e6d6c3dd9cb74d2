"""
Payload validation for contacts, leads, tickets, reminders and follow-ups

Every check runs before the store is touched; failures raise a
ValidationError carrying all messages at once.
"""
from datetime import date
from typing import List, Optional

from clinic_crm.errors import ValidationError
from clinic_crm.utils.dates import parse_date
from clinic_crm.utils.phone_normalization import is_valid_phone


def sanitize_data(data: dict) -> dict:
    """Trim surrounding whitespace from every string value"""
    return {key: value.strip() if isinstance(value, str) else value for key, value in (data or {}).items()}


def _safe_date(value, errors: List[str], message: str) -> Optional[date]:
    try:
        return parse_date(value)
    except (TypeError, ValueError):
        errors.append(message)
        return None


def _raise_if(errors: List[str]):
    if errors:
        raise ValidationError(errors)


def validate_contact_data(data: dict, today: date, partial: bool = False):
    errors = []

    if not partial or 'full_name' in data:
        full_name = data.get('full_name') or ''
        if len(full_name.strip()) < 2:
            errors.append('Full name must be at least 2 characters long')

    if not partial or 'phone_number' in data:
        if not is_valid_phone(data.get('phone_number')):
            errors.append('Please provide a valid phone number')

    if data.get('secondary_phone_number') and not is_valid_phone(data['secondary_phone_number']):
        errors.append('Secondary phone number format is invalid')

    if not partial or 'source' in data:
        if not data.get('source'):
            errors.append('Source is required')

    if data.get('birthday'):
        birthday = _safe_date(data['birthday'], errors, 'Birthday must be a valid date')
        if birthday and birthday > today:
            errors.append('Birthday cannot be in the future')

    if data.get('instagram_url') and 'instagram.com' not in data['instagram_url']:
        errors.append('Instagram URL must be a valid Instagram profile link')

    _raise_if(errors)


def validate_lead_data(data: dict, today: date):
    errors = []

    if not data.get('contact_id'):
        errors.append('Please select a contact for this lead')
    if not data.get('lead_source'):
        errors.append('Lead source is required')
    if not data.get('service_of_interest'):
        errors.append('Service of interest is required')

    lead_date = _safe_date(data.get('date'), errors, 'Lead date must be a valid date') if data.get('date') else None
    if lead_date is None or lead_date < today:
        errors.append('Lead date cannot be in the past')

    _raise_if(errors)


def parse_date_or_none(value) -> Optional[date]:
    try:
        return parse_date(value)
    except (TypeError, ValueError):
        return None


def validate_ticket_data(data: dict):
    errors = []

    if not data.get('customer_id'):
        errors.append('Please select a customer for this ticket')
    if not data.get('subject') or len(data['subject'].strip()) < 3:
        errors.append('Subject must be at least 3 characters long')
    if not data.get('description') or len(data['description'].strip()) < 10:
        errors.append('Description must be at least 10 characters long')
    if not data.get('department'):
        errors.append('Department is required')

    _raise_if(errors)


REMINDER_TYPES = ('general', 'call', 'birthday', 'appointment', 'payment')
FOLLOWUP_TYPES = ('call', 'whatsapp', 'email', 'visit')
FOLLOWUP_PRIORITIES = ('low', 'medium', 'high', 'urgent')


def validate_reminder_data(data: dict, partial: bool = False):
    errors = []

    if not partial and not data.get('contact_id'):
        errors.append('Please select a contact for this reminder')
    if not partial or 'title' in data:
        if len((data.get('title') or '').strip()) < 2:
            errors.append('Title must be at least 2 characters long')
    if not partial or 'reminder_date' in data:
        if not data.get('reminder_date'):
            errors.append('Reminder date is required')
        else:
            _safe_date(data['reminder_date'], errors, 'Reminder date must be a valid date')
    if data.get('reminder_type') and data['reminder_type'] not in REMINDER_TYPES:
        errors.append(f"Unknown reminder type: {data['reminder_type']}")

    _raise_if(errors)


def validate_followup_data(data: dict, partial: bool = False):
    errors = []

    if not partial and not data.get('lead_id'):
        errors.append('Please select a lead for this follow-up')
    if not partial or 'followup_date' in data:
        if not data.get('followup_date'):
            errors.append('Follow-up date is required')
        else:
            _safe_date(data['followup_date'], errors, 'Follow-up date must be a valid date')
    if data.get('followup_type') and data['followup_type'] not in FOLLOWUP_TYPES:
        errors.append(f"Unknown follow-up type: {data['followup_type']}")
    if data.get('priority') and data['priority'] not in FOLLOWUP_PRIORITIES:
        errors.append(f"Unknown priority: {data['priority']}")

    _raise_if(errors)
