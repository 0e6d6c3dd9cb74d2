"""
Support tickets
"""
import pytest

from clinic_crm.errors import NotFoundError, ValidationError
from clinic_crm.models_sql import AuditLog
from clinic_crm.services.ticket_service import add_ticket, list_tickets, update_ticket


class TestTickets:

    def test_new_ticket_defaults(self, ctx, customer, ticket):
        assert ticket.status == "Open"
        assert ticket.priority == "Medium"
        assert ticket.customer_name == "Maya Levi"
        assert ticket.branch_id == customer.branch_id
        assert ticket.history == [{
            "field": "Created", "from": "", "to": "", "user": "Dana", "date": "2025-04-28T09:00:00",
        }]
        assert AuditLog.query.filter_by(action="TICKET_CREATED").count() == 1

    def test_unknown_customer(self, ctx):
        with pytest.raises(NotFoundError):
            add_ticket({
                "customer_id": 999,
                "subject": "Billing question",
                "description": "Patient asks about the invoice",
                "department": "Billing",
            }, ctx)

    def test_invalid_priority(self, ctx, customer):
        with pytest.raises(ValidationError):
            add_ticket({
                "customer_id": customer.id,
                "subject": "Billing question",
                "description": "Patient asks about the invoice",
                "department": "Billing",
                "priority": "Whenever",
            }, ctx)

    def test_update_records_assignment(self, ctx, ticket):
        updated = update_ticket(ticket.id, {"assigned_to": "Ori", "description": "Refund was requested twice"}, ctx)

        assert updated.history[0]["field"] == "Assigned to"
        assert updated.history[0]["to"] == "Ori"
        assert len(updated.history) == 2

    def test_update_rejects_short_subject(self, ctx, ticket):
        with pytest.raises(ValidationError):
            update_ticket(ticket.id, {"subject": "no"}, ctx)

    def test_list_filters(self, ctx, customer, ticket):
        update_ticket(ticket.id, {"status": "Resolved"}, ctx)

        assert [t.id for t in list_tickets(ctx, customer_id=customer.id)] == [ticket.id]
        assert list_tickets(ctx, status="Open") == []
