"""Organization, membership and invitation endpoints."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from inandout.core.auth import RequestUserContext, get_current_user_context
from inandout.db.dependencies import get_db_session
from inandout.models.entities import OrganizationRole
from inandout.services.invitation_service import InvitationService
from inandout.services.organization_service import OrganizationService

router = APIRouter(tags=["organizations"])


class OrganizationCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class OrganizationJoinPayload(BaseModel):
    code: str = Field(min_length=1, max_length=32)


class MemberRolePayload(BaseModel):
    role: OrganizationRole


class InvitationCreatePayload(BaseModel):
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    role: OrganizationRole = OrganizationRole.EMPLOYEE


def _service(db: Session) -> OrganizationService:
    return OrganizationService(db)


@router.get("/organizations")
def list_organizations(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    return {"items": _service(db).list_organizations(context=context)}


@router.post("/organizations", status_code=status.HTTP_201_CREATED)
def create_organization(
    payload: OrganizationCreatePayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).create_organization(context=context, name=payload.name, request=request)


@router.post("/organizations/join")
def join_organization(
    payload: OrganizationJoinPayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).join_organization(context=context, code=payload.code, request=request)


@router.get("/organizations/{organization_id}/members")
def list_members(
    organization_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    return {"items": _service(db).list_members(context=context, organization_id=organization_id)}


@router.patch("/organizations/{organization_id}/members/{user_id}")
def update_member_role(
    organization_id: UUID,
    user_id: UUID,
    payload: MemberRolePayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).update_member_role(
        context=context,
        organization_id=organization_id,
        user_id=user_id,
        role=payload.role,
        request=request,
    )


@router.delete("/organizations/{organization_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_member(
    organization_id: UUID,
    user_id: UUID,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).remove_member(context=context, organization_id=organization_id, user_id=user_id, request=request)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/organizations/{organization_id}/invitations")
def list_invitations(
    organization_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = InvitationService(db)
    rows = service.list_invitations(context=context, organization_id=organization_id)
    return {"items": [service.serialize_invitation(invitation) for invitation in rows]}


@router.post("/organizations/{organization_id}/invitations", status_code=status.HTTP_201_CREATED)
def create_invitation(
    organization_id: UUID,
    payload: InvitationCreatePayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = InvitationService(db)
    invitation = service.create_invitation(
        context=context,
        organization_id=organization_id,
        email=payload.email,
        role=payload.role,
        request=request,
    )
    return service.serialize_invitation(invitation)


@router.get("/invitations/{token}")
def describe_invitation(token: str, db: Session = Depends(get_db_session)) -> dict[str, object]:
    return InvitationService(db).describe_invitation(token)


@router.post("/invitations/{token}/accept")
def accept_invitation(
    token: str,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    membership = InvitationService(db).accept_invitation(context=context, token=token, request=request)
    return {
        "organization_id": str(membership.organization_id),
        "role": membership.role.value,
        "joined_at": membership.joined_at.isoformat(),
    }


@router.delete("/invitations/{invitation_id}")
def revoke_invitation(
    invitation_id: UUID,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = InvitationService(db)
    invitation = service.revoke_invitation(context=context, invitation_id=invitation_id, request=request)
    return service.serialize_invitation(invitation)
