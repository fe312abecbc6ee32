"""Audit log browsing endpoint."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from inandout.core.auth import RequestUserContext, get_current_user_context
from inandout.core.rate_limit import rate_limited
from inandout.db.dependencies import get_db_session
from inandout.services.audit_service import AuditLogQuery, AuditService

router = APIRouter(tags=["audit"])


@router.get("/audit-logs", dependencies=[Depends(rate_limited("api"))])
def list_audit_logs(
    organization_id: UUID | None = None,
    user_id: UUID | None = None,
    action: str | None = None,
    entity_type: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return AuditService(db).list_logs(
        context=context,
        query=AuditLogQuery(
            organization_id=organization_id,
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            start_date=start_date,
            end_date=end_date,
            limit=limit,
            offset=offset,
        ),
    )
