"""
Branch scoping: agents only see and write records of their own branches
"""
import pytest

from clinic_crm.errors import AccessDeniedError, NotFoundError
from clinic_crm.services.contact_service import add_contact, get_contact, list_contacts
from clinic_crm.session_context import SessionContext


def _contact(ctx, name, phone, branch_id=None):
    return add_contact({'full_name': name, 'phone_number': phone, 'source': 'Walk-in', 'branch_id': branch_id}, ctx)


class TestBranchScope:

    def test_agent_sees_own_branch_and_unassigned(self, ctx, agent_ctx, branches):
        north, south = branches
        mine = _contact(ctx, 'North Patient', '050-000 0001', north.id)
        _contact(ctx, 'South Patient', '050-000 0002', south.id)
        shared = _contact(ctx, 'Shared Patient', '050-000 0003')

        visible = {c.id for c in list_contacts(agent_ctx)}

        assert visible == {mine.id, shared.id}

    def test_other_branch_record_is_not_found(self, ctx, agent_ctx, branches):
        _, south = branches
        other = _contact(ctx, 'South Patient', '050-000 0002', south.id)

        with pytest.raises(NotFoundError):
            get_contact(other.id, agent_ctx)

    def test_agent_cannot_write_into_other_branch(self, agent_ctx, branches):
        _, south = branches

        with pytest.raises(AccessDeniedError):
            _contact(agent_ctx, 'South Patient', '050-000 0002', south.id)

    def test_single_branch_agent_defaults_to_it(self, agent_ctx, branches):
        north, _ = branches

        created = _contact(agent_ctx, 'North Patient', '050-000 0001')

        assert created.branch_id == north.id

    def test_admin_is_unrestricted(self, ctx, branches):
        _, south = branches
        _contact(ctx, 'South Patient', '050-000 0002', south.id)

        assert ctx.branch_scope is None
        assert len(list_contacts(ctx)) == 1

    def test_context_from_session_user(self):
        ctx = SessionContext.from_user_dict({'email': 'noa@clinic.test', 'role': 'agent', 'branch_ids': ['3']})

        assert ctx.user_name == 'noa@clinic.test'
        assert ctx.branch_scope == frozenset({3})
        assert ctx.can_access(3)
        assert not ctx.can_access(4)
