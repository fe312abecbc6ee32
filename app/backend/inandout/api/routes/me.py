"""Current user endpoints."""

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from inandout.core.auth import OrganizationMembership, RequestUserContext, get_current_user_context
from inandout.db.dependencies import get_db_session
from inandout.services.organization_service import OrganizationService, ProfileUpdateData

router = APIRouter(tags=["me"])


class ProfileUpdatePayload(BaseModel):
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    name: str | None = Field(default=None, max_length=255)


class HourlyRatePayload(BaseModel):
    default_hourly_rate: Decimal = Field(ge=0, max_digits=10, decimal_places=2)


def _serialize_membership(membership: OrganizationMembership) -> dict[str, object]:
    return {
        "organization_id": str(membership.organization_id),
        "role": membership.role.value,
    }


@router.get("/me")
def get_me(context: RequestUserContext = Depends(get_current_user_context)) -> dict[str, object]:
    """Return current authenticated user profile and memberships."""

    return {
        "id": str(context.user_id),
        "email": context.email,
        "name": context.name,
        "system_admin": context.system_admin,
        "memberships": [_serialize_membership(membership) for membership in context.memberships],
    }


@router.put("/me/profile")
def update_profile(
    payload: ProfileUpdatePayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = OrganizationService(db)
    user = service.update_profile(
        context=context,
        data=ProfileUpdateData(email=payload.email, name=payload.name),
        request=request,
    )
    return service.serialize_user(user)


@router.put("/users/{user_id}/rate")
def set_user_rate(
    user_id: UUID,
    payload: HourlyRatePayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = OrganizationService(db)
    user = service.set_default_hourly_rate(
        context=context,
        user_id=user_id,
        rate=payload.default_hourly_rate,
        request=request,
    )
    return service.serialize_user(user)
