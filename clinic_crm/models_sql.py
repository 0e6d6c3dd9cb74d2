"""
SQLAlchemy models for the clinic CRM
Contacts, leads, customers, appointments, tickets, reminders and follow-ups
+ audit log and tenant settings
"""
from datetime import datetime

from clinic_crm.db import db
from clinic_crm.statuses import CLOSED_LEAD_STATUSES, LeadStatus, AppointmentStatus


def _iso(value):
    return value.isoformat() if value else None


_OPEN_LEAD_PREDICATE = "status NOT IN ({})".format(
    ", ".join(f"'{s}'" for s in sorted(CLOSED_LEAD_STATUSES))
)


class Branch(db.Model):
    __tablename__ = "branches"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "is_active": self.is_active}


class Contact(db.Model):
    """Person record; phone numbers are unique across all contacts"""
    __tablename__ = "contacts"
    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), index=True)

    full_name = db.Column(db.String(255), nullable=False)
    phone_number = db.Column(db.String(64), nullable=False, unique=True, index=True)
    secondary_phone_number = db.Column(db.String(64), unique=True, index=True)
    email = db.Column(db.String(255))
    address = db.Column(db.String(500))
    source = db.Column(db.String(64), nullable=False)
    instagram_url = db.Column(db.String(512))
    birthday = db.Column(db.Date)

    notes = db.Column(db.JSON, default=list)
    attachments = db.Column(db.JSON, default=list)
    comments = db.Column(db.JSON, default=list)
    history = db.Column(db.JSON, default=list)

    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "full_name": self.full_name,
            "phone_number": self.phone_number,
            "secondary_phone_number": self.secondary_phone_number,
            "email": self.email,
            "address": self.address,
            "source": self.source,
            "instagram_url": self.instagram_url,
            "birthday": _iso(self.birthday),
            "notes": self.notes or [],
            "attachments": self.attachments or [],
            "comments": self.comments or [],
            "history": self.history or [],
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Lead(db.Model):
    """Sales lead for a contact; at most one open lead per contact"""
    __tablename__ = "leads"
    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), index=True)
    contact_id = db.Column(db.Integer, db.ForeignKey("contacts.id"), nullable=False, index=True)

    # Snapshot of the contact at creation time
    contact_full_name = db.Column(db.String(255))
    contact_phone_number = db.Column(db.String(64))

    lead_source = db.Column(db.String(64))
    service_of_interest = db.Column(db.String(255))
    status = db.Column(db.String(32), nullable=False, default=LeadStatus.FRESH.value, index=True)
    assigned_agent = db.Column(db.String(255))
    date = db.Column(db.Date)
    next_followup_date = db.Column(db.Date, index=True)

    notes = db.Column(db.Text)  # system note, e.g. the no-show follow-up reason
    notes_data = db.Column(db.JSON, default=list)
    attachments = db.Column(db.JSON, default=list)
    comments = db.Column(db.JSON, default=list)
    status_history = db.Column(db.JSON, default=list)

    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    contact = db.relationship("Contact", backref="leads")

    __mapper_args__ = {"version_id_col": version}
    __table_args__ = (
        db.Index(
            "uq_leads_open_contact", "contact_id", unique=True,
            sqlite_where=db.text(_OPEN_LEAD_PREDICATE),
            postgresql_where=db.text(_OPEN_LEAD_PREDICATE),
        ),
    )

    @property
    def is_open(self):
        return self.status not in CLOSED_LEAD_STATUSES

    def to_dict(self):
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "contact_id": self.contact_id,
            "contact_full_name": self.contact_full_name,
            "contact_phone_number": self.contact_phone_number,
            "lead_source": self.lead_source,
            "service_of_interest": self.service_of_interest,
            "status": self.status,
            "assigned_agent": self.assigned_agent,
            "date": _iso(self.date),
            "next_followup_date": _iso(self.next_followup_date),
            "notes": self.notes,
            "notes_data": self.notes_data or [],
            "attachments": self.attachments or [],
            "comments": self.comments or [],
            "status_history": self.status_history or [],
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Customer(db.Model):
    """Booked patient; created by conversion or direct booking, removed on no-show"""
    __tablename__ = "customers"
    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), index=True)
    contact_id = db.Column(db.Integer, db.ForeignKey("contacts.id"), nullable=False, index=True)
    lead_id = db.Column(db.Integer, db.ForeignKey("leads.id"), nullable=True, index=True)

    contact_full_name = db.Column(db.String(255))
    contact_phone_number = db.Column(db.String(64))

    lead_source = db.Column(db.String(64))
    department = db.Column(db.String(128))
    status = db.Column(db.String(32), nullable=False, index=True)
    appointment_date = db.Column(db.DateTime, index=True)
    lead_created_at = db.Column(db.DateTime)
    changed_by = db.Column(db.String(255))

    notes = db.Column(db.JSON, default=list)
    attachments = db.Column(db.JSON, default=list)
    comments = db.Column(db.JSON, default=list)
    status_history = db.Column(db.JSON, default=list)

    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "contact_id": self.contact_id,
            "lead_id": self.lead_id,
            "contact_full_name": self.contact_full_name,
            "contact_phone_number": self.contact_phone_number,
            "lead_source": self.lead_source,
            "department": self.department,
            "status": self.status,
            "appointment_date": _iso(self.appointment_date),
            "lead_created_at": _iso(self.lead_created_at),
            "notes": self.notes or [],
            "attachments": self.attachments or [],
            "comments": self.comments or [],
            "status_history": self.status_history or [],
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Appointment(db.Model):
    __tablename__ = "appointments"
    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True)
    contact_id = db.Column(db.Integer, db.ForeignKey("contacts.id"), index=True)

    contact_full_name = db.Column(db.String(255))
    contact_phone_number = db.Column(db.String(64))

    department = db.Column(db.String(128))
    appointment_date = db.Column(db.DateTime, nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False, default=AppointmentStatus.SCHEDULED.value)
    notes = db.Column(db.Text)

    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    customer = db.relationship("Customer", backref=db.backref("appointments", passive_deletes=True))

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "contact_id": self.contact_id,
            "contact_full_name": self.contact_full_name,
            "contact_phone_number": self.contact_phone_number,
            "department": self.department,
            "appointment_date": _iso(self.appointment_date),
            "status": self.status,
            "notes": self.notes,
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Ticket(db.Model):
    __tablename__ = "tickets"
    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), index=True)
    customer_id = db.Column(db.Integer, index=True)  # weak reference, customers can be reconciled away
    customer_name = db.Column(db.String(255))

    subject = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(32), default="Open", index=True)
    priority = db.Column(db.String(16), default="Medium")
    assigned_to = db.Column(db.String(255))
    department = db.Column(db.String(128))

    notes = db.Column(db.JSON, default=list)
    attachments = db.Column(db.JSON, default=list)
    comments = db.Column(db.JSON, default=list)
    history = db.Column(db.JSON, default=list)

    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "subject": self.subject,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "assigned_to": self.assigned_to,
            "department": self.department,
            "notes": self.notes or [],
            "attachments": self.attachments or [],
            "comments": self.comments or [],
            "history": self.history or [],
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class ContactReminder(db.Model):
    """Dated reminder about a contact (call back, birthday, paperwork...)"""
    __tablename__ = "contact_reminders"
    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), index=True)
    contact_id = db.Column(db.Integer, db.ForeignKey("contacts.id"), nullable=False, index=True)
    contact_name = db.Column(db.String(255))

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    reminder_date = db.Column(db.Date, nullable=False, index=True)
    reminder_type = db.Column(db.String(32), default="general")

    is_completed = db.Column(db.Boolean, nullable=False, default=False, index=True)
    completed_at = db.Column(db.DateTime)
    created_by = db.Column(db.String(255))

    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "contact_id": self.contact_id,
            "contact_name": self.contact_name,
            "title": self.title,
            "description": self.description,
            "reminder_date": _iso(self.reminder_date),
            "reminder_type": self.reminder_type,
            "is_completed": self.is_completed,
            "completed_at": _iso(self.completed_at),
            "created_by": self.created_by,
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class LeadFollowup(db.Model):
    """Scheduled follow-up task on a lead"""
    __tablename__ = "lead_followups"
    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), index=True)
    lead_id = db.Column(db.Integer, db.ForeignKey("leads.id"), nullable=False, index=True)
    contact_name = db.Column(db.String(255))

    followup_date = db.Column(db.Date, nullable=False, index=True)
    followup_type = db.Column(db.String(32), default="call")
    priority = db.Column(db.String(16), default="medium")
    notes = db.Column(db.Text)
    assigned_agent = db.Column(db.String(255))

    is_completed = db.Column(db.Boolean, nullable=False, default=False, index=True)
    completed_at = db.Column(db.DateTime)
    created_by = db.Column(db.String(255))

    version = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    lead = db.relationship("Lead", backref="followups")

    __mapper_args__ = {"version_id_col": version}

    def to_dict(self):
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "lead_id": self.lead_id,
            "contact_name": self.contact_name,
            "followup_date": _iso(self.followup_date),
            "followup_type": self.followup_type,
            "priority": self.priority,
            "notes": self.notes,
            "assigned_agent": self.assigned_agent,
            "is_completed": self.is_completed,
            "completed_at": _iso(self.completed_at),
            "created_by": self.created_by,
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class AuditLog(db.Model):
    """Action log (who did what, where); written in the caller's transaction"""
    __tablename__ = "audit_log"
    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(64), nullable=False, index=True)  # LEAD_CONVERTED, CUSTOMER_NO_SHOW, ...
    module = db.Column(db.String(64), nullable=False)
    details = db.Column(db.JSON)
    user_name = db.Column(db.String(255))
    branch_id = db.Column(db.Integer, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "action": self.action,
            "module": self.module,
            "details": self.details or {},
            "user_name": self.user_name,
            "branch_id": self.branch_id,
            "created_at": _iso(self.created_at),
        }


class ClinicSettings(db.Model):
    """Tenant configuration - single row"""
    __tablename__ = "clinic_settings"
    id = db.Column(db.Integer, primary_key=True)
    lead_statuses = db.Column(db.JSON)  # custom intermediate statuses, e.g. ["Hot", "Warm"]
    calendar_sync = db.Column(db.JSON)  # {"google": {"connected": true}, "outlook": {"connected": false}}
    automation = db.Column(db.JSON)     # {"enabled": true, "confirmation": {"enabled": true, "template": "..."}, ...}
    updated_by = db.Column(db.String(255))
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
