from __future__ import annotations

import uuid

import pytest
from fastapi import HTTPException

from inandout.core.auth import (
    OrganizationMembership,
    RequestUserContext,
    has_organization_role,
    is_organization_admin,
    require_organization_admin,
    require_organization_member,
)
from inandout.models.entities import OrganizationRole


def _context(*memberships: OrganizationMembership, system_admin: bool = False) -> RequestUserContext:
    return RequestUserContext(
        user_id=uuid.uuid4(),
        email="user@test.local",
        name="User",
        system_admin=system_admin,
        memberships=memberships,
    )


def _membership(organization_id: uuid.UUID, role: OrganizationRole) -> OrganizationMembership:
    return OrganizationMembership(organization_id=organization_id, role=role, membership_id=uuid.uuid4())


def test_has_organization_role_matches_expected_roles() -> None:
    org_id = uuid.uuid4()
    context = _context(_membership(org_id, OrganizationRole.EMPLOYEE))

    assert has_organization_role(context, organization_id=org_id) is True
    assert has_organization_role(context, organization_id=org_id, allowed_roles={OrganizationRole.EMPLOYEE}) is True
    assert has_organization_role(context, organization_id=org_id, allowed_roles={OrganizationRole.ADMIN}) is False
    assert has_organization_role(context, organization_id=uuid.uuid4()) is False


def test_admin_organization_ids_only_lists_admin_memberships() -> None:
    admin_org = uuid.uuid4()
    member_org = uuid.uuid4()
    context = _context(
        _membership(admin_org, OrganizationRole.ADMIN),
        _membership(member_org, OrganizationRole.EMPLOYEE),
    )

    assert context.organization_ids == (admin_org, member_org)
    assert context.admin_organization_ids == (admin_org,)
    assert is_organization_admin(context, admin_org) is True
    assert is_organization_admin(context, member_org) is False


def test_role_is_scoped_per_organization() -> None:
    first = uuid.uuid4()
    second = uuid.uuid4()
    context = _context(
        _membership(first, OrganizationRole.ADMIN),
        _membership(second, OrganizationRole.EMPLOYEE),
    )

    assert context.role_in(first) is OrganizationRole.ADMIN
    assert context.role_in(second) is OrganizationRole.EMPLOYEE
    assert context.role_in(uuid.uuid4()) is None


def test_require_helpers_raise_forbidden() -> None:
    org_id = uuid.uuid4()
    context = _context(_membership(org_id, OrganizationRole.EMPLOYEE))

    assert require_organization_member(context, org_id) is OrganizationRole.EMPLOYEE

    with pytest.raises(HTTPException) as not_member:
        require_organization_member(context, uuid.uuid4())
    assert not_member.value.status_code == 403

    with pytest.raises(HTTPException) as not_admin:
        require_organization_admin(context, org_id)
    assert not_admin.value.status_code == 403


def test_system_admin_flag_does_not_grant_organization_access() -> None:
    context = _context(system_admin=True)

    assert is_organization_admin(context, uuid.uuid4()) is False
    with pytest.raises(HTTPException):
        require_organization_member(context, uuid.uuid4())
