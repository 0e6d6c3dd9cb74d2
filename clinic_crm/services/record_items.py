"""
Notes, comments and attachments on contacts, leads, customers and tickets

Items are prepended (newest first) to the record's JSON arrays. A new list
is always assigned so SQLAlchemy flushes the JSON column.
"""
import logging
import uuid
from typing import Any, Dict, List, Optional

from clinic_crm.errors import NotFoundError, ValidationError
from clinic_crm.models_sql import Contact, Customer, Lead, Ticket
from clinic_crm.services.audit_log import log_action
from clinic_crm.services.persistence import commit_session

logger = logging.getLogger(__name__)

RECORD_MODELS = {
    "contacts": Contact,
    "leads": Lead,
    "customers": Customer,
    "tickets": Ticket,
}

# Leads keep their note list in notes_data (notes holds the system note)
NOTES_ATTRIBUTE = {"leads": "notes_data"}

ALLOWED_ATTACHMENT_FIELDS = ("name", "tags")


def make_item(text: str, ctx) -> Dict[str, Any]:
    return {
        "id": uuid.uuid4().hex,
        "text": text,
        "author": ctx.user_name,
        "created_at": ctx.now().isoformat(),
    }


def initial_notes(text: Optional[str], ctx) -> List[Dict[str, Any]]:
    """A free-text note given on create becomes the first note object"""
    if isinstance(text, list):
        return list(text)
    if text and str(text).strip():
        return [make_item(str(text).strip(), ctx)]
    return []


def get_record(record_type: str, record_id, ctx):
    model = RECORD_MODELS.get(record_type)
    if model is None:
        raise NotFoundError(f"Unknown record type: {record_type}")
    return ctx.get_or_404(model, record_id, model.__name__)


def _require_text(text) -> str:
    if not text or not str(text).strip():
        raise ValidationError("Text is required")
    return str(text).strip()


def add_comment(record_type: str, record_id, text: str, ctx) -> Dict[str, Any]:
    record = get_record(record_type, record_id, ctx)
    comment = make_item(_require_text(text), ctx)
    record.comments = [comment] + list(record.comments or [])

    log_action("COMMENT_ADDED", record_type, {
        "record_id": record.id, "author": ctx.user_name, "branch_id": record.branch_id,
    }, ctx)
    commit_session("Comments")
    return comment


def add_note(record_type: str, record_id, text: str, ctx) -> Dict[str, Any]:
    record = get_record(record_type, record_id, ctx)
    attr = NOTES_ATTRIBUTE.get(record_type, "notes")
    note = make_item(_require_text(text), ctx)
    setattr(record, attr, [note] + list(getattr(record, attr) or []))

    log_action("NOTE_ADDED", record_type, {
        "record_id": record.id, "author": ctx.user_name, "branch_id": record.branch_id,
    }, ctx)
    commit_session("Notes")
    return note


def add_attachment(record_type: str, record_id, file, ctx, tags: Optional[List[str]] = None,
                   storage=None) -> Dict[str, Any]:
    """Upload `file` and prepend an attachment entry to the record"""
    from clinic_crm.services.storage import get_attachment_storage

    if file is None or not getattr(file, "filename", None):
        raise ValidationError("A file is required")

    record = get_record(record_type, record_id, ctx)
    storage = storage or get_attachment_storage()
    result = storage.upload(file, folder=f"{record_type}/{record.id}")

    attachment = {
        "id": uuid.uuid4().hex,
        "name": file.filename,
        "url": result.url,
        "size": result.size,
        "type": getattr(file, "mimetype", None),
        "tags": list(tags or []),
        "uploaded_by": ctx.user_name,
        "uploaded_at": ctx.now().isoformat(),
    }
    record.attachments = [attachment] + list(record.attachments or [])

    log_action("FILE_UPLOADED", "Files", {
        "file_name": attachment["name"], "record_type": record_type, "record_id": record.id,
        "branch_id": record.branch_id,
    }, ctx)
    try:
        commit_session("Attachments")
    except Exception:
        # Record write failed: remove the orphaned blob
        storage.delete(result.url)
        raise
    return attachment


def _find_attachment(record, attachment_id) -> Dict[str, Any]:
    for att in record.attachments or []:
        if att.get("id") == attachment_id:
            return att
    raise NotFoundError(f"Attachment {attachment_id} not found")


def update_attachment(record_type: str, record_id, attachment_id: str, data: dict, ctx) -> Dict[str, Any]:
    """Rename or retag an attachment"""
    record = get_record(record_type, record_id, ctx)
    current = _find_attachment(record, attachment_id)

    changes = {k: v for k, v in (data or {}).items() if k in ALLOWED_ATTACHMENT_FIELDS}
    if "name" in changes and not str(changes["name"] or "").strip():
        raise ValidationError("File name is required")
    if "tags" in changes:
        changes["tags"] = [str(t).strip() for t in (changes["tags"] or []) if str(t).strip()]

    updated = {**current, **changes}
    record.attachments = [updated if att.get("id") == attachment_id else att for att in record.attachments]

    log_action("FILE_UPDATED", "Files", {
        "file_name": updated.get("name"), "changed_fields": sorted(changes), "record_type": record_type,
        "record_id": record.id, "branch_id": record.branch_id,
    }, ctx)
    commit_session("Attachments")
    return updated


def _url_still_referenced(url: str) -> bool:
    """True when any record still lists an attachment stored at `url`"""
    from clinic_crm.db import db

    for model in RECORD_MODELS.values():
        candidates = model.query.filter(db.cast(model.attachments, db.Text).contains(url)).all()
        for record in candidates:
            if any(att.get("url") == url for att in record.attachments or []):
                return True
    return False


def delete_attachment(record_type: str, record_id, attachment_id: str, ctx, storage=None) -> bool:
    """
    Remove the entry, then delete the blob unless another record still lists it
    (conversion and no-show copy attachment entries). A failed blob delete is
    only logged.
    """
    from clinic_crm.services.storage import get_attachment_storage

    record = get_record(record_type, record_id, ctx)
    target = _find_attachment(record, attachment_id)
    record.attachments = [att for att in record.attachments if att.get("id") != attachment_id]

    log_action("FILE_DELETED", "Files", {
        "file_name": target.get("name"), "record_type": record_type, "record_id": record.id,
        "branch_id": record.branch_id,
    }, ctx)
    commit_session("Attachments")

    url = target.get("url")
    if not url:
        return True
    if _url_still_referenced(url):
        logger.info(f"[Attachments] Keeping blob {url}, still referenced by another record")
        return True

    storage = storage or get_attachment_storage()
    try:
        storage.delete(url)
    except Exception as e:
        logger.error(f"[Attachments] Blob delete failed for {url}: {e}")
    return True
