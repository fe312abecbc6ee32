"""Session authentication context and organization RBAC guard utilities."""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from inandout.core.config import get_settings
from inandout.core.security import decode_session_token
from inandout.db.dependencies import get_db_session
from inandout.models.entities import Membership, OrganizationRole, User


@dataclass(frozen=True)
class OrganizationMembership:
    """Organization membership resolved for request context."""

    organization_id: UUID
    role: OrganizationRole
    membership_id: UUID


@dataclass(frozen=True)
class RequestUserContext:
    """Authenticated request actor resolved from the session and DB state."""

    user_id: UUID
    email: str
    name: str | None
    system_admin: bool
    memberships: tuple[OrganizationMembership, ...]

    @property
    def organization_ids(self) -> tuple[UUID, ...]:
        return tuple(membership.organization_id for membership in self.memberships)

    @property
    def admin_organization_ids(self) -> tuple[UUID, ...]:
        """Organizations where the user holds the ADMIN role."""

        return tuple(
            membership.organization_id
            for membership in self.memberships
            if membership.role is OrganizationRole.ADMIN
        )

    def role_in(self, organization_id: UUID) -> OrganizationRole | None:
        for membership in self.memberships:
            if membership.organization_id == organization_id:
                return membership.role
        return None


def _extract_token(request: Request, authorization: str | None) -> str:
    if authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()

    cookie_token = request.cookies.get(get_settings().session_cookie_name)
    if cookie_token:
        return cookie_token

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required.",
        headers={"WWW-Authenticate": "Bearer"},
    )


def load_memberships(db: Session, *, user_id: UUID) -> tuple[OrganizationMembership, ...]:
    memberships = db.scalars(
        select(Membership).where(Membership.user_id == user_id).order_by(Membership.joined_at.asc())
    ).all()

    return tuple(
        OrganizationMembership(
            organization_id=membership.organization_id,
            role=membership.role,
            membership_id=membership.id,
        )
        for membership in memberships
    )


def build_user_context(db: Session, user: User) -> RequestUserContext:
    return RequestUserContext(
        user_id=user.id,
        email=user.email,
        name=user.name,
        system_admin=user.system_admin,
        memberships=load_memberships(db, user_id=user.id),
    )


def get_current_user_context(
    request: Request,
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db_session),
) -> RequestUserContext:
    """Resolve current request user and organization memberships.

    Token strategy:
    - ``Authorization: Bearer <token>`` for API clients and tests.
    - Session cookie set by ``POST /auth/signin`` for browser clients.
    """

    user_id = decode_session_token(_extract_token(request, authorization))
    user = db.scalar(select(User).where(User.id == user_id))
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session user no longer exists.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return build_user_context(db, user)


def has_organization_role(
    context: RequestUserContext,
    *,
    organization_id: UUID,
    allowed_roles: set[OrganizationRole] | None = None,
) -> bool:
    """Check organization membership optionally constrained by allowed roles."""

    role = context.role_in(organization_id)
    if role is None:
        return False
    return allowed_roles is None or role in allowed_roles


def is_organization_admin(context: RequestUserContext, organization_id: UUID) -> bool:
    return has_organization_role(
        context,
        organization_id=organization_id,
        allowed_roles={OrganizationRole.ADMIN},
    )


def require_organization_member(context: RequestUserContext, organization_id: UUID) -> OrganizationRole:
    role = context.role_in(organization_id)
    if role is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not a member of this organization.",
        )
    return role


def require_organization_admin(context: RequestUserContext, organization_id: UUID) -> None:
    if not is_organization_admin(context, organization_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required for this organization.",
        )


def require_system_admin(context: RequestUserContext = Depends(get_current_user_context)) -> RequestUserContext:
    """Dependency requiring the global system administrator flag."""

    if not context.system_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="System administrator access required.",
        )
    return context
