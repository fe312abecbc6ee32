"""Application service for organization invitations."""

from __future__ import annotations

import secrets
from datetime import timedelta
from uuid import UUID

from fastapi import HTTPException, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inandout.core.audit import AuditAction, record_audit
from inandout.core.auth import RequestUserContext, require_organization_admin
from inandout.core.clock import utcnow
from inandout.core.config import get_settings
from inandout.models.entities import Invitation, InvitationStatus, Membership, OrganizationRole
from inandout.repositories.workforce_repository import WorkforceRepository
from inandout.services.organization_service import ensure_invitation_usable

TOKEN_BYTES = 32


class InvitationService:
    """Invite, look up, accept and revoke organization invitations."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = WorkforceRepository(db)
        self.settings = get_settings()

    @staticmethod
    def serialize_invitation(invitation: Invitation) -> dict[str, object]:
        return {
            "id": str(invitation.id),
            "organization_id": str(invitation.organization_id),
            "email": invitation.email,
            "role": invitation.role.value,
            "status": invitation.status.value,
            "token": invitation.token,
            "invited_by": str(invitation.invited_by),
            "expires_at": invitation.expires_at.isoformat(),
            "created_at": invitation.created_at.isoformat(),
        }

    def _ensure_organization_admin(self, *, context: RequestUserContext, organization_id: UUID) -> None:
        if self.repo.get_organization(organization_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found.")
        require_organization_admin(context, organization_id)

    def list_invitations(self, *, context: RequestUserContext, organization_id: UUID) -> list[Invitation]:
        self._ensure_organization_admin(context=context, organization_id=organization_id)
        return self.repo.list_invitations(organization_id)

    def create_invitation(
        self,
        *,
        context: RequestUserContext,
        organization_id: UUID,
        email: str,
        role: OrganizationRole,
        request: Request | None = None,
    ) -> Invitation:
        self._ensure_organization_admin(context=context, organization_id=organization_id)
        normalized_email = email.strip().lower()

        invitee = self.repo.get_user_by_email(normalized_email)
        if invitee is not None and self.repo.get_membership(user_id=invitee.id, organization_id=organization_id):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User is already a member of this organization.",
            )
        if self.repo.get_pending_invitation(organization_id=organization_id, email=normalized_email) is not None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="A pending invitation already exists for this email.",
            )

        now = utcnow()
        invitation = Invitation(
            organization_id=organization_id,
            email=normalized_email,
            role=role,
            token=secrets.token_hex(TOKEN_BYTES),
            status=InvitationStatus.PENDING,
            invited_by=context.user_id,
            expires_at=now + timedelta(days=self.settings.invitation_ttl_days),
            created_at=now,
        )
        self.repo.add(invitation)
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Invitation token collision, retry the request.",
            ) from exc
        self.db.refresh(invitation)

        record_audit(
            self.db,
            action=AuditAction.INVITATION_CREATED,
            user_id=context.user_id,
            organization_id=organization_id,
            entity_type="INVITATION",
            entity_id=invitation.id,
            entity_name=invitation.email,
            new_values={"email": invitation.email, "role": invitation.role},
            request=request,
        )
        return invitation

    def describe_invitation(self, token: str) -> dict[str, object]:
        """Public lookup used by the signup page before an account exists."""

        invitation = ensure_invitation_usable(self.db, self.repo.get_invitation_by_token(token))
        organization = self.repo.get_organization(invitation.organization_id)
        return {
            "email": invitation.email,
            "role": invitation.role.value,
            "expires_at": invitation.expires_at.isoformat(),
            "organization": {
                "id": str(invitation.organization_id),
                "name": organization.name if organization else None,
                "code": organization.code if organization else None,
            },
        }

    def accept_invitation(
        self,
        *,
        context: RequestUserContext,
        token: str,
        request: Request | None = None,
    ) -> Membership:
        invitation = ensure_invitation_usable(self.db, self.repo.get_invitation_by_token(token))
        if invitation.email.lower() != context.email.lower():
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="This invitation was issued for a different email address.",
            )
        if self.repo.get_membership(user_id=context.user_id, organization_id=invitation.organization_id):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Already a member of this organization.",
            )

        membership = Membership(
            user_id=context.user_id,
            organization_id=invitation.organization_id,
            role=invitation.role,
            joined_at=utcnow(),
        )
        self.repo.add(membership)
        invitation.status = InvitationStatus.ACCEPTED
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Already a member of this organization.",
            ) from exc
        self.db.refresh(membership)

        record_audit(
            self.db,
            action=AuditAction.INVITATION_ACCEPTED,
            user_id=context.user_id,
            organization_id=membership.organization_id,
            entity_type="INVITATION",
            entity_id=invitation.id,
            entity_name=invitation.email,
            new_values={"role": membership.role},
            request=request,
        )
        return membership

    def revoke_invitation(
        self,
        *,
        context: RequestUserContext,
        invitation_id: UUID,
        request: Request | None = None,
    ) -> Invitation:
        invitation = self.repo.get_invitation(invitation_id)
        if invitation is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invitation not found.")
        require_organization_admin(context, invitation.organization_id)
        if invitation.status is not InvitationStatus.PENDING:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only pending invitations can be revoked.",
            )

        invitation.status = InvitationStatus.REVOKED
        self.db.commit()
        self.db.refresh(invitation)

        record_audit(
            self.db,
            action=AuditAction.INVITATION_REVOKED,
            user_id=context.user_id,
            organization_id=invitation.organization_id,
            entity_type="INVITATION",
            entity_id=invitation.id,
            entity_name=invitation.email,
            request=request,
        )
        return invitation
