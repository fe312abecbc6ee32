"""Application service for accounts, organizations and memberships."""

from __future__ import annotations

import secrets
import string
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inandout.core.audit import AuditAction, record_audit
from inandout.core.auth import RequestUserContext, require_organization_admin, require_organization_member
from inandout.core.clock import utcnow
from inandout.core.config import get_settings
from inandout.core.security import hash_password, verify_password
from inandout.models.entities import (
    Invitation,
    InvitationStatus,
    Membership,
    Organization,
    OrganizationRole,
    User,
)
from inandout.repositories.workforce_repository import WorkforceRepository

CODE_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
CODE_SUFFIX_LENGTH = 4
CODE_ATTEMPTS = 10


@dataclass(slots=True)
class SignupData:
    email: str
    password: str
    name: str | None = None
    organization_name: str | None = None
    organization_code: str | None = None
    invitation_token: str | None = None


@dataclass(slots=True)
class ProfileUpdateData:
    email: str
    name: str | None = None


def ensure_invitation_usable(db: Session, invitation: Invitation | None) -> Invitation:
    """Validate an invitation, marking it expired when past its deadline."""

    if invitation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invitation not found.")
    if invitation.status is not InvitationStatus.PENDING:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invitation is no longer valid.",
        )
    if invitation.expires_at < utcnow():
        invitation.status = InvitationStatus.EXPIRED
        db.commit()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invitation has expired.")
    return invitation


class OrganizationService:
    """Service implementing signup, organization and membership rules."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = WorkforceRepository(db)
        self.settings = get_settings()

    def _commit(self, conflict_detail: str) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=conflict_detail) from exc

    # ---------- Serialization ----------
    @staticmethod
    def serialize_user(user: User) -> dict[str, object]:
        return {
            "id": str(user.id),
            "email": user.email,
            "name": user.name,
            "system_admin": user.system_admin,
            "default_hourly_rate": str(user.default_hourly_rate) if user.default_hourly_rate is not None else None,
            "last_login_at": user.last_login_at.isoformat() if user.last_login_at else None,
            "created_at": user.created_at.isoformat(),
        }

    @staticmethod
    def serialize_organization(organization: Organization, membership: Membership | None = None) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": str(organization.id),
            "name": organization.name,
            "code": organization.code,
            "owner_id": str(organization.owner_id) if organization.owner_id else None,
            "created_at": organization.created_at.isoformat(),
        }
        if membership is not None:
            payload["user_role"] = membership.role.value
            payload["is_admin"] = membership.role is OrganizationRole.ADMIN
        return payload

    @staticmethod
    def serialize_member(membership: Membership, user: User) -> dict[str, object]:
        return {
            "membership_id": str(membership.id),
            "user_id": str(user.id),
            "email": user.email,
            "name": user.name,
            "role": membership.role.value,
            "default_hourly_rate": str(user.default_hourly_rate) if user.default_hourly_rate is not None else None,
            "joined_at": membership.joined_at.isoformat(),
        }

    # ---------- Organization codes ----------
    def generate_organization_code(self, name: str) -> str:
        base = "".join(ch for ch in name.lower() if ch in CODE_SUFFIX_ALPHABET)[:8] or "org"
        for _ in range(CODE_ATTEMPTS):
            suffix = "".join(secrets.choice(CODE_SUFFIX_ALPHABET) for _ in range(CODE_SUFFIX_LENGTH))
            code = f"{base}{suffix}"
            if not self.repo.organization_code_exists(code):
                return code
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Could not generate a unique organization code.",
        )

    def _new_organization(self, *, name: str, owner: User) -> Organization:
        now = utcnow()
        organization = Organization(
            name=name.strip(),
            code=self.generate_organization_code(name),
            owner_id=owner.id,
            created_at=now,
            updated_at=now,
        )
        self.repo.add(organization)
        self.repo.add(
            Membership(
                user_id=owner.id,
                organization_id=organization.id,
                role=OrganizationRole.ADMIN,
                joined_at=now,
            )
        )
        return organization

    # ---------- Accounts ----------
    def signup(self, *, data: SignupData, request: Request | None = None) -> User:
        email = data.email.strip().lower()
        if self.repo.get_user_by_email(email) is not None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists.")

        invitation: Invitation | None = None
        join_organization: Organization | None = None
        if data.invitation_token:
            invitation = ensure_invitation_usable(self.db, self.repo.get_invitation_by_token(data.invitation_token))
            if invitation.email.lower() != email:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Email does not match the invitation.",
                )
        elif data.organization_code:
            join_organization = self.repo.get_organization_by_code(data.organization_code)
            if join_organization is None:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid organization code.")
        elif not (data.organization_name and data.organization_name.strip()):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Provide an organization name, an organization code or an invitation token.",
            )

        now = utcnow()
        user = User(
            email=email,
            name=data.name.strip() if data.name else None,
            password_hash=hash_password(data.password),
            system_admin=False,
            created_at=now,
            updated_at=now,
        )
        self.repo.add(user)

        created_organization: Organization | None = None
        if invitation is not None:
            organization_id = invitation.organization_id
            self.repo.add(
                Membership(user_id=user.id, organization_id=organization_id, role=invitation.role, joined_at=now)
            )
            invitation.status = InvitationStatus.ACCEPTED
        elif join_organization is not None:
            organization_id = join_organization.id
            self.repo.add(
                Membership(
                    user_id=user.id,
                    organization_id=organization_id,
                    role=OrganizationRole.EMPLOYEE,
                    joined_at=now,
                )
            )
        else:
            created_organization = self._new_organization(name=data.organization_name or "", owner=user)
            organization_id = created_organization.id

        self._commit("User already exists.")
        self.db.refresh(user)

        record_audit(
            self.db,
            action=AuditAction.USER_CREATED,
            user_id=user.id,
            organization_id=organization_id,
            entity_type="USER",
            entity_id=user.id,
            entity_name=user.email,
            new_values={"email": user.email, "name": user.name},
            request=request,
        )
        if created_organization is not None:
            record_audit(
                self.db,
                action=AuditAction.ORGANIZATION_CREATED,
                user_id=user.id,
                organization_id=organization_id,
                entity_type="ORGANIZATION",
                entity_id=organization_id,
                entity_name=created_organization.name,
                request=request,
            )
        return user

    def authenticate(self, *, email: str, password: str, request: Request | None = None) -> User:
        user = self.repo.get_user_by_email(email)
        if user is None or not verify_password(user.password_hash, password):
            record_audit(
                self.db,
                action=AuditAction.LOGIN_FAILED,
                user_id=user.id if user is not None else None,
                entity_type="USER",
                entity_name=email.strip().lower(),
                request=request,
            )
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password.")

        user.last_login_at = utcnow()
        self.db.commit()
        self.db.refresh(user)
        record_audit(
            self.db,
            action=AuditAction.LOGIN_SUCCESS,
            user_id=user.id,
            entity_type="USER",
            entity_id=user.id,
            entity_name=user.email,
            request=request,
        )
        return user

    def record_logout(self, *, context: RequestUserContext, request: Request | None = None) -> None:
        record_audit(
            self.db,
            action=AuditAction.LOGOUT,
            user_id=context.user_id,
            entity_type="USER",
            entity_id=context.user_id,
            entity_name=context.email,
            request=request,
        )

    def get_user(self, user_id: UUID) -> User:
        user = self.repo.get_user(user_id)
        if user is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found.")
        return user

    def update_profile(
        self,
        *,
        context: RequestUserContext,
        data: ProfileUpdateData,
        request: Request | None = None,
    ) -> User:
        user = self.get_user(context.user_id)
        email = data.email.strip().lower()
        existing = self.repo.get_user_by_email(email)
        if existing is not None and existing.id != user.id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email is already in use.")

        old_values = {"email": user.email, "name": user.name}
        user.email = email
        if data.name is not None:
            user.name = data.name.strip() or None
        user.updated_at = utcnow()
        self._commit("Email is already in use.")
        self.db.refresh(user)

        record_audit(
            self.db,
            action=AuditAction.USER_UPDATED,
            user_id=user.id,
            entity_type="USER",
            entity_id=user.id,
            entity_name=user.email,
            old_values=old_values,
            new_values={"email": user.email, "name": user.name},
            request=request,
        )
        return user

    # ---------- Organizations ----------
    def list_organizations(self, *, context: RequestUserContext) -> list[dict[str, object]]:
        return [
            self.serialize_organization(organization, membership)
            for organization, membership in self.repo.list_organizations_for_user(context.user_id)
        ]

    def get_organization(self, organization_id: UUID) -> Organization:
        organization = self.repo.get_organization(organization_id)
        if organization is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found.")
        return organization

    def create_organization(
        self,
        *,
        context: RequestUserContext,
        name: str,
        request: Request | None = None,
    ) -> dict[str, object]:
        owner = self.get_user(context.user_id)
        organization = self._new_organization(name=name, owner=owner)
        self._commit("Organization code already exists.")
        self.db.refresh(organization)

        payload = self.serialize_organization(
            organization,
            self.repo.get_membership(user_id=owner.id, organization_id=organization.id),
        )
        record_audit(
            self.db,
            action=AuditAction.ORGANIZATION_CREATED,
            user_id=owner.id,
            organization_id=organization.id,
            entity_type="ORGANIZATION",
            entity_id=organization.id,
            entity_name=organization.name,
            request=request,
        )
        return payload

    def join_organization(
        self,
        *,
        context: RequestUserContext,
        code: str,
        request: Request | None = None,
    ) -> dict[str, object]:
        organization = self.repo.get_organization_by_code(code)
        if organization is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found.")
        if self.repo.get_membership(user_id=context.user_id, organization_id=organization.id) is not None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Already a member of this organization.",
            )

        membership = Membership(
            user_id=context.user_id,
            organization_id=organization.id,
            role=OrganizationRole.EMPLOYEE,
            joined_at=utcnow(),
        )
        self.repo.add(membership)
        self._commit("Already a member of this organization.")
        payload = self.serialize_organization(organization, membership)

        record_audit(
            self.db,
            action=AuditAction.ORGANIZATION_JOINED,
            user_id=context.user_id,
            organization_id=organization.id,
            entity_type="ORGANIZATION",
            entity_id=organization.id,
            entity_name=organization.name,
            request=request,
        )
        return payload

    # ---------- Members ----------
    def list_members(self, *, context: RequestUserContext, organization_id: UUID) -> list[dict[str, object]]:
        self.get_organization(organization_id)
        role = require_organization_member(context, organization_id)
        only_user = None if role is OrganizationRole.ADMIN else context.user_id
        return [
            self.serialize_member(membership, user)
            for membership, user in self.repo.list_members(organization_id, user_id=only_user)
        ]

    def _get_member(self, *, organization_id: UUID, user_id: UUID) -> Membership:
        membership = self.repo.get_membership(user_id=user_id, organization_id=organization_id)
        if membership is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found.")
        return membership

    def update_member_role(
        self,
        *,
        context: RequestUserContext,
        organization_id: UUID,
        user_id: UUID,
        role: OrganizationRole,
        request: Request | None = None,
    ) -> dict[str, object]:
        self.get_organization(organization_id)
        require_organization_admin(context, organization_id)
        membership = self._get_member(organization_id=organization_id, user_id=user_id)

        previous = membership.role
        if (
            previous is OrganizationRole.ADMIN
            and role is not OrganizationRole.ADMIN
            and self.repo.count_admins(organization_id) <= 1
        ):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Organization must keep at least one admin.",
            )

        membership.role = role
        self.db.commit()
        user = self.get_user(user_id)
        payload = self.serialize_member(membership, user)

        if previous is not role:
            record_audit(
                self.db,
                action=AuditAction.USER_ROLE_CHANGED,
                user_id=context.user_id,
                organization_id=organization_id,
                entity_type="USER",
                entity_id=user_id,
                entity_name=user.email,
                old_values={"role": previous},
                new_values={"role": role},
                request=request,
            )
        return payload

    def remove_member(
        self,
        *,
        context: RequestUserContext,
        organization_id: UUID,
        user_id: UUID,
        request: Request | None = None,
    ) -> None:
        organization = self.get_organization(organization_id)
        require_organization_admin(context, organization_id)
        membership = self._get_member(organization_id=organization_id, user_id=user_id)
        if organization.owner_id == user_id:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="The organization owner cannot be removed.",
            )
        if membership.role is OrganizationRole.ADMIN and self.repo.count_admins(organization_id) <= 1:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Organization must keep at least one admin.",
            )

        user = self.get_user(user_id)
        old_values = {"role": membership.role}
        self.repo.delete(membership)
        self.db.commit()

        record_audit(
            self.db,
            action=AuditAction.USER_REMOVED_FROM_ORG,
            user_id=context.user_id,
            organization_id=organization_id,
            entity_type="USER",
            entity_id=user_id,
            entity_name=user.email,
            old_values=old_values,
            request=request,
        )

    def set_default_hourly_rate(
        self,
        *,
        context: RequestUserContext,
        user_id: UUID,
        rate: Decimal,
        request: Request | None = None,
    ) -> User:
        user = self.get_user(user_id)
        administered = set(context.admin_organization_ids)
        shared = [
            membership.organization_id
            for membership in self.repo.list_user_memberships(user_id)
            if membership.organization_id in administered
        ]
        if not shared:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Admin access required in an organization this user belongs to.",
            )

        previous = user.default_hourly_rate
        user.default_hourly_rate = rate
        user.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(user)

        record_audit(
            self.db,
            action=AuditAction.USER_RATE_CHANGED,
            user_id=context.user_id,
            organization_id=shared[0],
            entity_type="USER",
            entity_id=user.id,
            entity_name=user.email,
            old_values={"default_hourly_rate": previous},
            new_values={"default_hourly_rate": user.default_hourly_rate},
            request=request,
        )
        return user
