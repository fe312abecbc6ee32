"""System administrator endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from inandout.core.auth import RequestUserContext, require_system_admin
from inandout.db.dependencies import get_db_session
from inandout.services.system_service import SystemAdminService

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/verify")
def verify_system_admin(context: RequestUserContext = Depends(require_system_admin)) -> dict[str, object]:
    return SystemAdminService.verify(context)


@router.get("/stats")
def system_stats(
    _: RequestUserContext = Depends(require_system_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, int]:
    return SystemAdminService(db).stats()


@router.get("/users")
def system_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    search: str | None = Query(default=None, max_length=255),
    _: RequestUserContext = Depends(require_system_admin),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return SystemAdminService(db).list_users(page=page, limit=limit, search=search)
