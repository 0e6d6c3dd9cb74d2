"""
Shared fixtures: in-memory SQLite app, a fixed clock and seeded records
"""
from datetime import datetime

import pytest

from clinic_crm.app_factory import create_app
from clinic_crm.config import TestConfig
from clinic_crm.db import db
from clinic_crm.models_sql import Branch, Customer
from clinic_crm.services.contact_service import add_contact
from clinic_crm.services.conversion_service import convert
from clinic_crm.services.lead_service import add_lead
from clinic_crm.services.notification_dispatcher import NotificationDispatcher
from clinic_crm.services.settings_service import ClinicSettingsSnapshot
from clinic_crm.services.ticket_service import add_ticket
from clinic_crm.session_context import CurrentUser, SessionContext

NOW = datetime(2025, 4, 28, 9, 0)


def fixed_clock():
    return NOW


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def app(tmp_path):
    """Create Flask app for testing"""
    app = create_app(TestConfig)
    app.config['ATTACHMENT_STORAGE_ROOT'] = str(tmp_path / 'attachments')

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(client):
    """Test client with an admin CRM session"""
    with client.session_transaction() as sess:
        sess['crm_user'] = {'id': 1, 'name': 'Dana', 'role': 'admin'}
    return client


@pytest.fixture
def ctx(app):
    return SessionContext(user=CurrentUser(name='Dana', id=1, role='admin'), clock=fixed_clock)


@pytest.fixture
def branches(app):
    north = Branch(name='North')
    south = Branch(name='South')
    db.session.add_all([north, south])
    db.session.commit()
    return north, south


@pytest.fixture
def agent_ctx(app, branches):
    """Agent restricted to the North branch"""
    north, _ = branches
    return SessionContext(
        user=CurrentUser(name='Noa', id=2, role='agent', branch_ids=frozenset({north.id})),
        clock=fixed_clock,
    )


@pytest.fixture
def automation_settings():
    return ClinicSettingsSnapshot(
        automation_enabled=True,
        calendar_sync={'google': {'connected': True}, 'outlook': {'connected': False}},
    )


@pytest.fixture
def contact(ctx):
    return add_contact({
        'full_name': 'Maya Levi',
        'phone_number': '050-123 4567',
        'source': 'Instagram',
    }, ctx)


@pytest.fixture
def lead(ctx, contact):
    return add_lead({
        'contact_id': contact.id,
        'lead_source': 'Instagram',
        'service_of_interest': 'Dermatology',
        'date': '2025-04-28',
        'assigned_agent': 'Noa',
    }, ctx)


@pytest.fixture
def quiet_dispatcher():
    return NotificationDispatcher(enabled=False)


@pytest.fixture
def converted(ctx, lead, quiet_dispatcher):
    """Lead converted to a customer booked for 2025-05-03 10:30"""
    return convert(lead.id, {
        'department': 'Dermatology',
        'visit_date': '2025-05-03T10:30:00',
    }, ctx, dispatcher=quiet_dispatcher)


@pytest.fixture
def customer(converted):
    return db.session.get(Customer, converted.customer_id)


@pytest.fixture
def ticket(ctx, customer):
    return add_ticket({
        'customer_id': customer.id,
        'subject': 'Billing question',
        'description': 'Patient asks about the invoice for the last visit',
        'department': 'Billing',
    }, ctx)
