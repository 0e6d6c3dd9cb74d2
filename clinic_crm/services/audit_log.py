"""
Action log - who did what, in which module and branch

log_action() only adds the row to the current session; it is committed
together with the change it describes.
"""
import logging
from typing import Any, Dict, Optional

from clinic_crm.db import db
from clinic_crm.models_sql import AuditLog

logger = logging.getLogger(__name__)


def log_action(action: str, module: str, details: Optional[Dict[str, Any]] = None, ctx=None) -> AuditLog:
    details = dict(details or {})
    entry = AuditLog(
        action=action,
        module=module,
        details=details,
        user_name=ctx.user_name if ctx is not None else 'System',
        branch_id=details.get("branch_id"),
    )
    if ctx is not None:
        entry.created_at = ctx.now()
    db.session.add(entry)
    logger.debug(f"[Audit] {action} ({module}) {details}")
    return entry


def list_actions(ctx, limit: int = 100, action: Optional[str] = None):
    query = ctx.scope_query(AuditLog.query, AuditLog)
    if action:
        query = query.filter(AuditLog.action == action)
    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
