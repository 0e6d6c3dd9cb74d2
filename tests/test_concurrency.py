"""
Optimistic concurrency - a write based on a stale read is rejected
"""
import pytest
from sqlalchemy import text

from clinic_crm.db import db
from clinic_crm.errors import StaleWriteError
from clinic_crm.models_sql import Contact, Lead
from clinic_crm.services.contact_service import update_contact
from clinic_crm.services.lead_service import update_lead
from clinic_crm.services.ticket_service import update_ticket
from clinic_crm.services.persistence import check_version


def _bump_version(table, record_id):
    """Simulate another writer committing in between"""
    db.session.execute(text(f"UPDATE {table} SET version = version + 1 WHERE id = :id"), {"id": record_id})


class TestExpectedVersion:

    def test_matching_version_is_accepted(self, ctx, lead):
        version = lead.version

        updated = update_lead(lead.id, {"status": "Hot", "assigned_agent": "Noa", "date": "2025-04-28"},
                              ctx, expected_version=version)

        assert updated.version == version + 1

    def test_outdated_version_is_rejected(self, ctx, lead):
        update_lead(lead.id, {"status": "Hot", "assigned_agent": "Noa", "date": "2025-04-28"}, ctx)

        with pytest.raises(StaleWriteError) as exc_info:
            update_lead(lead.id, {"status": "Lost", "assigned_agent": "Noa", "date": "2025-04-28"},
                        ctx, expected_version=1)

        assert exc_info.value.http_status == 409
        assert exc_info.value.details == {"expected_version": 1, "current_version": 2}
        assert db.session.get(Lead, lead.id).status == "Hot"

    def test_ticket_version(self, ctx, ticket):
        with pytest.raises(StaleWriteError):
            update_ticket(ticket.id, {"status": "Closed"}, ctx, expected_version=ticket.version + 3)

    def test_no_expected_version_skips_the_check(self, contact):
        check_version(contact, None)


class TestConcurrentWriter:

    def test_lost_update_is_detected_at_commit(self, ctx, lead):
        assert lead.version == 1
        _bump_version("leads", lead.id)

        with pytest.raises(StaleWriteError):
            update_lead(lead.id, {"status": "Warm", "assigned_agent": "Noa", "date": "2025-04-28"}, ctx)

        assert db.session.get(Lead, lead.id).status == "Fresh"

    def test_contact_edit_against_newer_row(self, ctx, contact):
        assert contact.version == 1
        _bump_version("contacts", contact.id)

        with pytest.raises(StaleWriteError):
            update_contact(contact.id, {"full_name": "Maya Katz"}, ctx)

        refreshed = db.session.get(Contact, contact.id)
        assert refreshed.full_name == "Maya Levi"
        assert refreshed.version == 1
