"""
No-show reconciliation: customer -> Re-follow lead, all or nothing
"""
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from clinic_crm.db import db
from clinic_crm.errors import PersistenceError
from clinic_crm.models_sql import Appointment, AuditLog, Customer, Lead
from clinic_crm.services.appointment_service import add_appointment, update_appointment
from clinic_crm.services.customer_service import update_customer
from clinic_crm.services.duplicate_guard import find_open_lead
from clinic_crm.services.no_show_service import NoShowReconciler, no_show_note, reconcile


class TestReconcile:

    def test_customer_replaced_by_refollow_lead(self, ctx, contact, customer, now):
        customer.notes = [{"id": "n1", "text": "Bring referral", "author": "Noa", "created_at": "2025-04-28T08:00:00"}]
        customer.attachments = [{"id": "a1", "name": "referral.pdf", "url": "/files/x.pdf", "size": 10,
                                 "type": "application/pdf", "tags": [], "uploaded_by": "Noa",
                                 "uploaded_at": "2025-04-28T08:00:00"}]
        db.session.commit()
        customer_id = customer.id

        result = reconcile(customer_id, ctx)

        assert result.success is True
        assert result.customer_id == customer_id
        assert db.session.get(Customer, customer_id) is None

        lead = db.session.get(Lead, result.lead_id)
        assert lead.status == "Re-follow"
        assert lead.assigned_agent == "Unassigned"
        assert lead.contact_id == contact.id
        assert lead.contact_full_name == "Maya Levi"
        assert lead.service_of_interest == "Dermatology"
        assert lead.date == now.date()
        assert lead.notes == "No-show on 2025-05-03. Needs follow-up."
        assert lead.notes_data[0]["text"] == "Bring referral"
        assert lead.attachments[0]["id"] == "a1"
        assert lead.status_history == []

    def test_refollow_lead_is_not_open(self, ctx, contact, customer):
        reconcile(customer.id, ctx)

        assert find_open_lead(contact.id) is None

    def test_pending_appointments_marked_and_detached(self, ctx, customer, converted):
        completed = add_appointment(customer.id, {"appointment_date": "2025-04-20T09:00:00", "status": "Completed"}, ctx)
        completed_id = completed.id

        reconcile(customer.id, ctx)

        pending = db.session.get(Appointment, converted.appointment_id)
        assert pending.status == "No-Show"
        assert pending.customer_id is None
        done = db.session.get(Appointment, completed_id)
        assert done.status == "Completed"
        assert done.customer_id is None

    def test_audit_entry_written_with_the_change(self, ctx, customer):
        customer_id = customer.id
        reconcile(customer_id, ctx)

        entry = AuditLog.query.filter_by(action="CUSTOMER_NO_SHOW").one()
        assert entry.details["customer_id"] == customer_id

    def test_store_failure_changes_nothing(self, ctx, customer):
        customer_id = customer.id
        failure = OperationalError("DELETE FROM customers", {}, Exception("connection refused"))

        with patch.object(db.session, "commit", side_effect=failure):
            result = NoShowReconciler(ctx).reconcile(customer_id)

        assert result.success is False
        assert result.message == "Network connection error. Please check your internet connection."
        assert db.session.get(Customer, customer_id).status == "Booked"
        assert Lead.query.filter_by(status="Re-follow").count() == 0
        assert Appointment.query.filter_by(customer_id=customer_id).count() == 1

    def test_note_without_appointment_date(self):
        assert no_show_note(Customer(appointment_date=None)) == "No-show on unknown date. Needs follow-up."


class TestTriggers:

    def test_customer_status_no_show_triggers_reconcile(self, ctx, customer, quiet_dispatcher):
        customer_id = customer.id

        outcome = update_customer(customer_id, {"status": "No-Show"}, ctx, dispatcher=quiet_dispatcher)

        assert outcome.customer is None
        assert outcome.no_show.success is True
        assert db.session.get(Customer, customer_id) is None

    def test_failed_reconcile_surfaces_as_persistence_error(self, ctx, customer, quiet_dispatcher):
        customer_id = customer.id
        failure = OperationalError("DELETE FROM customers", {}, Exception("connection refused"))

        with patch.object(db.session, "commit", side_effect=failure):
            with pytest.raises(PersistenceError):
                update_customer(customer_id, {"status": "No-Show"}, ctx, dispatcher=quiet_dispatcher)

        assert db.session.get(Customer, customer_id) is not None

    def test_appointment_no_show_reconciles_its_customer(self, ctx, customer, converted, quiet_dispatcher):
        customer_id = customer.id

        appointment = update_appointment(converted.appointment_id, {"status": "No-Show"}, ctx,
                                         dispatcher=quiet_dispatcher)

        assert appointment.status == "No-Show"
        assert appointment.customer_id is None
        assert db.session.get(Customer, customer_id) is None
        assert Lead.query.filter_by(status="Re-follow").count() == 1
