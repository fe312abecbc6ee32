"""Time clock and time entry endpoints."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from inandout.core.auth import RequestUserContext, get_current_user_context
from inandout.db.dependencies import get_db_session
from inandout.services.time_tracking_service import (
    ClockActionData,
    TimeEntryCreateData,
    TimeEntryUpdateData,
    TimeTrackingService,
)

router = APIRouter(prefix="/time", tags=["time"])


class ClockPayload(BaseModel):
    action: str = Field(min_length=1, max_length=16)
    description: str | None = Field(default=None, max_length=2000)
    organization_id: UUID | None = None
    project_id: UUID | None = None


class TimeEntryCreatePayload(BaseModel):
    clock_in: datetime
    clock_out: datetime | None = None
    description: str | None = Field(default=None, max_length=2000)
    organization_id: UUID | None = None
    project_id: UUID | None = None
    user_id: UUID | None = None


class TimeEntryUpdatePayload(BaseModel):
    clock_in: datetime | None = None
    clock_out: datetime | None = None
    description: str | None = Field(default=None, max_length=2000)
    project_id: UUID | None = None


def _service(db: Session) -> TimeTrackingService:
    return TimeTrackingService(db)


@router.get("/clock")
def clock_status(
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    entry = service.active_entry(context=context)
    return {
        "is_clocked_in": entry is not None,
        "active_entry": service.serialize_entry(entry) if entry is not None else None,
    }


@router.post("/clock")
def clock(
    payload: ClockPayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    entry = service.clock(
        context=context,
        data=ClockActionData(
            action=payload.action,
            description=payload.description,
            organization_id=payload.organization_id,
            project_id=payload.project_id,
        ),
        request=request,
    )
    return service.serialize_entry(entry)


@router.get("/entries")
def list_entries(
    user_id: UUID | None = None,
    organization_id: UUID | None = None,
    project_id: UUID | None = None,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _service(db)
    rows = service.list_entries(
        context=context,
        user_id=user_id,
        organization_id=organization_id,
        project_id=project_id,
    )
    return {"items": [service.serialize_entry(entry) for entry in rows]}


@router.post("/entries", status_code=status.HTTP_201_CREATED)
def create_entry(
    payload: TimeEntryCreatePayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    entry = service.create_entry(
        context=context,
        data=TimeEntryCreateData(
            clock_in=payload.clock_in,
            clock_out=payload.clock_out,
            description=payload.description,
            organization_id=payload.organization_id,
            project_id=payload.project_id,
            user_id=payload.user_id,
        ),
        request=request,
    )
    return service.serialize_entry(entry)


@router.put("/entries/{entry_id}")
def update_entry(
    entry_id: UUID,
    payload: TimeEntryUpdatePayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    entry = service.update_entry(
        context=context,
        entry_id=entry_id,
        data=TimeEntryUpdateData(
            clock_in=payload.clock_in,
            clock_out=payload.clock_out,
            description=payload.description,
            project_id=payload.project_id,
        ),
        request=request,
    )
    return service.serialize_entry(entry)


@router.delete("/entries/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_entry(
    entry_id: UUID,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_entry(context=context, entry_id=entry_id, request=request)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
