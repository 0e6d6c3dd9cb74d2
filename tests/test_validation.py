"""
Payload validation, phone normalization and date parsing
"""
from datetime import date, datetime

import pytest

from clinic_crm.errors import ValidationError
from clinic_crm.services.validation import (
    sanitize_data,
    validate_contact_data,
    validate_lead_data,
    validate_ticket_data,
)
from clinic_crm.utils.dates import parse_date, parse_datetime
from clinic_crm.utils.phone_normalization import is_valid_phone, normalize_phone

TODAY = date(2025, 4, 28)


def test_sanitize_trims_strings_only():
    assert sanitize_data({"full_name": "  Maya  ", "contact_id": 3, "tags": [" a "]}) == {
        "full_name": "Maya", "contact_id": 3, "tags": [" a "],
    }


class TestContactValidation:

    def test_valid_contact(self):
        validate_contact_data({"full_name": "Maya Levi", "phone_number": "050-123-4567", "source": "Instagram"}, TODAY)

    def test_all_errors_reported_together(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_contact_data({"full_name": "M", "phone_number": "12", "source": ""}, TODAY)

        assert exc_info.value.errors == [
            "Full name must be at least 2 characters long",
            "Please provide a valid phone number",
            "Source is required",
        ]

    def test_future_birthday(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_contact_data({
                "full_name": "Maya Levi", "phone_number": "0501234567", "source": "Instagram",
                "birthday": "2025-05-01",
            }, TODAY)

        assert exc_info.value.errors == ["Birthday cannot be in the future"]

    def test_instagram_link(self):
        with pytest.raises(ValidationError):
            validate_contact_data({
                "full_name": "Maya Levi", "phone_number": "0501234567", "source": "Instagram",
                "instagram_url": "https://example.com/maya",
            }, TODAY)

    def test_partial_update_checks_only_given_fields(self):
        validate_contact_data({"address": "12 Herzl St"}, TODAY, partial=True)

        with pytest.raises(ValidationError):
            validate_contact_data({"full_name": ""}, TODAY, partial=True)


class TestLeadValidation:

    def test_missing_fields(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_lead_data({"date": "2025-04-28"}, TODAY)

        assert exc_info.value.errors == [
            "Please select a contact for this lead",
            "Lead source is required",
            "Service of interest is required",
        ]

    def test_today_is_allowed(self):
        validate_lead_data({
            "contact_id": 1, "lead_source": "Referral", "service_of_interest": "ENT", "date": "2025-04-28",
        }, TODAY)


class TestTicketValidation:

    def test_short_subject_and_description(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_ticket_data({"customer_id": 1, "subject": "Hi", "description": "short", "department": "ENT"})

        assert exc_info.value.errors == [
            "Subject must be at least 3 characters long",
            "Description must be at least 10 characters long",
        ]


class TestPhoneNormalization:

    @pytest.mark.parametrize("raw, expected", [
        ("+1 (555) 123-4567", "+15551234567"),
        ("050-123 4567", "0501234567"),
        ("050.123.4567", "0501234567"),
        ("+972+50", "+97250"),
        ("", None),
        (None, None),
        ("---", None),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_phone(raw) == expected

    def test_valid_formats(self):
        assert is_valid_phone("+972 (50) 123-4567")
        assert not is_valid_phone("050-12")
        assert not is_valid_phone("call me")
        assert not is_valid_phone(None)


class TestDates:

    def test_zulu_is_utc(self):
        assert parse_datetime("2025-05-01T10:00:00Z") == datetime(2025, 5, 1, 10, 0)

    def test_offset_converted_to_naive_utc(self):
        assert parse_datetime("2025-05-01T12:00:00+02:00") == datetime(2025, 5, 1, 10, 0)

    def test_date_becomes_midnight(self):
        assert parse_datetime(date(2025, 5, 1)) == datetime(2025, 5, 1)

    def test_parse_date_from_datetime_string(self):
        assert parse_date("2025-05-01T23:30:00-02:00") == date(2025, 5, 2)

    def test_empty_values(self):
        assert parse_date("") is None
        assert parse_datetime(None) is None

    def test_garbage(self):
        with pytest.raises(ValueError):
            parse_date("tomorrow")
