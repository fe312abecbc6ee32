"""Schedule and shift endpoints."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from inandout.core.auth import RequestUserContext, get_current_user_context
from inandout.db.dependencies import get_db_session
from inandout.models.entities import RecurringPattern
from inandout.services.scheduling_service import (
    ScheduleData,
    ScheduleUpdateData,
    SchedulingService,
    ShiftCreateData,
    ShiftUpdateData,
)

router = APIRouter(tags=["scheduling"])


class ScheduleCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)


class ScheduleUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)


class ShiftCreatePayload(BaseModel):
    schedule_id: UUID
    title: str = Field(min_length=1, max_length=255)
    start_time: datetime
    end_time: datetime
    user_id: UUID | None = None
    project_id: UUID | None = None
    description: str | None = Field(default=None, max_length=2000)
    is_recurring: bool = False
    recurring_pattern: RecurringPattern | None = None
    recurring_end_date: datetime | None = None


class ShiftUpdatePayload(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    start_time: datetime | None = None
    end_time: datetime | None = None
    user_id: UUID | None = None
    project_id: UUID | None = None
    description: str | None = Field(default=None, max_length=2000)
    is_recurring: bool | None = None
    recurring_pattern: RecurringPattern | None = None
    recurring_end_date: datetime | None = None


def _service(db: Session) -> SchedulingService:
    return SchedulingService(db)


@router.get("/organizations/{organization_id}/schedules")
def list_schedules(
    organization_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    return {"items": _service(db).list_schedules(context=context, organization_id=organization_id)}


@router.post("/organizations/{organization_id}/schedules", status_code=status.HTTP_201_CREATED)
def create_schedule(
    organization_id: UUID,
    payload: ScheduleCreatePayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    schedule = service.create_schedule(
        context=context,
        organization_id=organization_id,
        data=ScheduleData(name=payload.name, description=payload.description),
        request=request,
    )
    return service.serialize_schedule(schedule, [])


@router.put("/schedules/{schedule_id}")
def update_schedule(
    schedule_id: UUID,
    payload: ScheduleUpdatePayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    schedule = service.update_schedule(
        context=context,
        schedule_id=schedule_id,
        data=ScheduleUpdateData(name=payload.name, description=payload.description),
        request=request,
    )
    return service.serialize_schedule(schedule)


@router.delete("/schedules/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_schedule(
    schedule_id: UUID,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_schedule(context=context, schedule_id=schedule_id, request=request)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/organizations/{organization_id}/shifts")
def list_shifts(
    organization_id: UUID,
    schedule_id: UUID | None = None,
    user_id: UUID | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _service(db)
    rows = service.list_shifts(
        context=context,
        organization_id=organization_id,
        schedule_id=schedule_id,
        user_id=user_id,
        start=start,
        end=end,
    )
    return {"items": [service.serialize_shift(shift) for shift in rows]}


@router.post("/shifts", status_code=status.HTTP_201_CREATED)
def create_shift(
    payload: ShiftCreatePayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    shift = service.create_shift(
        context=context,
        data=ShiftCreateData(
            schedule_id=payload.schedule_id,
            title=payload.title,
            start_time=payload.start_time,
            end_time=payload.end_time,
            user_id=payload.user_id,
            project_id=payload.project_id,
            description=payload.description,
            is_recurring=payload.is_recurring,
            recurring_pattern=payload.recurring_pattern,
            recurring_end_date=payload.recurring_end_date,
        ),
        request=request,
    )
    return service.serialize_shift(shift)


@router.put("/shifts/{shift_id}")
def update_shift(
    shift_id: UUID,
    payload: ShiftUpdatePayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    shift = service.update_shift(
        context=context,
        shift_id=shift_id,
        data=ShiftUpdateData(
            title=payload.title,
            start_time=payload.start_time,
            end_time=payload.end_time,
            user_id=payload.user_id,
            project_id=payload.project_id,
            description=payload.description,
            is_recurring=payload.is_recurring,
            recurring_pattern=payload.recurring_pattern,
            recurring_end_date=payload.recurring_end_date,
        ),
        request=request,
    )
    return service.serialize_shift(shift)


@router.delete("/shifts/{shift_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_shift(
    shift_id: UUID,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_shift(context=context, shift_id=shift_id, request=request)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
