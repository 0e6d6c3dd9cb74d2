"""
Explicit per-request identity, branch scope and tenant settings

Core services never read Flask's session or global settings directly; the
HTTP layer builds a SessionContext and passes it into every operation.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, FrozenSet, Optional

from sqlalchemy import or_

from clinic_crm.errors import AccessDeniedError, AuthenticationRequiredError, NotFoundError
from clinic_crm.services.settings_service import ClinicSettingsSnapshot

ADMIN_ROLES = ('admin', 'superadmin')
SESSION_USER_KEY = 'crm_user'


@dataclass(frozen=True)
class CurrentUser:
    name: str
    id: Optional[int] = None
    role: str = 'agent'
    branch_ids: FrozenSet[int] = frozenset()

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


@dataclass(frozen=True)
class SessionContext:
    user: CurrentUser
    settings: ClinicSettingsSnapshot = field(default_factory=ClinicSettingsSnapshot)
    clock: Callable[[], datetime] = datetime.utcnow

    @classmethod
    def system(cls, settings: Optional[ClinicSettingsSnapshot] = None, clock=None) -> "SessionContext":
        """Context for system/background actors (full scope)"""
        return cls(
            user=CurrentUser(name='System', role='admin'),
            settings=settings or ClinicSettingsSnapshot(),
            clock=clock or datetime.utcnow,
        )

    @classmethod
    def from_user_dict(cls, user: dict, settings: Optional[ClinicSettingsSnapshot] = None, clock=None) -> "SessionContext":
        return cls(
            user=CurrentUser(
                name=user.get('name') or user.get('email') or 'Unknown',
                id=user.get('id'),
                role=user.get('role', 'agent'),
                branch_ids=frozenset(int(b) for b in (user.get('branch_ids') or [])),
            ),
            settings=settings or ClinicSettingsSnapshot(),
            clock=clock or datetime.utcnow,
        )

    @property
    def user_name(self) -> str:
        return self.user.name or 'System'

    @property
    def branch_scope(self) -> Optional[FrozenSet[int]]:
        """None means unrestricted (admins)"""
        if self.user.is_admin:
            return None
        return self.user.branch_ids

    def now(self) -> datetime:
        return self.clock()

    def can_access(self, branch_id) -> bool:
        scope = self.branch_scope
        if scope is None or branch_id is None:
            return True
        return branch_id in scope

    def require_branch(self, branch_id):
        """Reject writes into a branch outside the actor's scope"""
        if not self.can_access(branch_id):
            raise AccessDeniedError(f"No access to branch {branch_id}")
        return branch_id

    def resolve_branch(self, requested=None):
        """Branch for a new record: the requested one, or the actor's only branch"""
        if requested not in (None, ''):
            return self.require_branch(int(requested))
        scope = self.branch_scope
        if scope is not None and len(scope) == 1:
            return next(iter(scope))
        return None

    def scope_query(self, query, model):
        scope = self.branch_scope
        if scope is None:
            return query
        return query.filter(or_(model.branch_id.in_(list(scope)), model.branch_id.is_(None)))

    def get_or_404(self, model, record_id, label: Optional[str] = None):
        record = model.query.filter_by(id=record_id).first()
        if record is None or not self.can_access(record.branch_id):
            raise NotFoundError(f"{label or model.__name__} {record_id} not found")
        return record


def get_session_context() -> SessionContext:
    """Build the context for the current Flask request"""
    from flask import session
    from clinic_crm.services.settings_service import load_settings

    user = session.get(SESSION_USER_KEY)
    if not user:
        raise AuthenticationRequiredError()
    return SessionContext.from_user_dict(user, settings=load_settings())
