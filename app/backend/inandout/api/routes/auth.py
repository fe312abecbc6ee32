"""Credential signup and session endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from inandout.core.auth import RequestUserContext, get_current_user_context
from inandout.core.config import get_settings
from inandout.core.rate_limit import rate_limited
from inandout.core.security import create_session_token
from inandout.db.dependencies import get_db_session
from inandout.services.organization_service import OrganizationService, SignupData

router = APIRouter(prefix="/auth", tags=["auth"])


class SignupPayload(BaseModel):
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(min_length=6, max_length=256)
    name: str | None = Field(default=None, max_length=255)
    organization_name: str | None = Field(default=None, max_length=255)
    organization_code: str | None = Field(default=None, max_length=32)
    invitation_token: str | None = Field(default=None, max_length=128)


class SigninPayload(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1, max_length=256)


def _service(db: Session) -> OrganizationService:
    return OrganizationService(db)


@router.post(
    "/signup",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(rate_limited("auth"))],
)
def signup(
    payload: SignupPayload,
    request: Request,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    user = service.signup(
        data=SignupData(
            email=payload.email,
            password=payload.password,
            name=payload.name,
            organization_name=payload.organization_name,
            organization_code=payload.organization_code,
            invitation_token=payload.invitation_token,
        ),
        request=request,
    )
    return {"user": service.serialize_user(user)}


@router.post("/signin", dependencies=[Depends(rate_limited("auth"))])
def signin(
    payload: SigninPayload,
    request: Request,
    response: Response,
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    settings = get_settings()
    service = _service(db)
    user = service.authenticate(email=payload.email, password=payload.password, request=request)
    token = create_session_token(user.id)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_max_age_seconds,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    return {
        "access_token": token,
        "token_type": "bearer",
        "expires_in": settings.session_max_age_seconds,
        "user": service.serialize_user(user),
    }


@router.post("/signout", status_code=status.HTTP_204_NO_CONTENT)
def signout(
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).record_logout(context=context, request=request)
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(get_settings().session_cookie_name)
    return response
