"""Application service for schedules and shift assignments."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from fastapi import HTTPException, Request, status
from sqlalchemy.orm import Session

from inandout.core.audit import AuditAction, record_audit
from inandout.core.auth import RequestUserContext, require_organization_admin, require_organization_member
from inandout.core.clock import to_naive_utc, utcnow
from inandout.models.entities import OrganizationRole, RecurringPattern, Schedule, Shift
from inandout.repositories.workforce_repository import WorkforceRepository


@dataclass(slots=True)
class ScheduleData:
    name: str
    description: str | None = None


@dataclass(slots=True)
class ScheduleUpdateData:
    name: str | None = None
    description: str | None = None


@dataclass(slots=True)
class ShiftCreateData:
    schedule_id: UUID
    title: str
    start_time: datetime
    end_time: datetime
    user_id: UUID | None = None
    project_id: UUID | None = None
    description: str | None = None
    is_recurring: bool = False
    recurring_pattern: RecurringPattern | None = None
    recurring_end_date: datetime | None = None


@dataclass(slots=True)
class ShiftUpdateData:
    title: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    user_id: UUID | None = None
    project_id: UUID | None = None
    description: str | None = None
    is_recurring: bool | None = None
    recurring_pattern: RecurringPattern | None = None
    recurring_end_date: datetime | None = None


class SchedulingService:
    """Service implementing schedule and shift rules."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = WorkforceRepository(db)

    # ---------- Serialization ----------
    @staticmethod
    def serialize_shift(shift: Shift) -> dict[str, object]:
        return {
            "id": str(shift.id),
            "schedule_id": str(shift.schedule_id),
            "user_id": str(shift.user_id) if shift.user_id else None,
            "project_id": str(shift.project_id) if shift.project_id else None,
            "title": shift.title,
            "description": shift.description,
            "start_time": shift.start_time.isoformat(),
            "end_time": shift.end_time.isoformat(),
            "is_recurring": shift.is_recurring,
            "recurring_pattern": shift.recurring_pattern.value if shift.recurring_pattern else None,
            "recurring_end_date": shift.recurring_end_date.isoformat() if shift.recurring_end_date else None,
        }

    def serialize_schedule(self, schedule: Schedule, shifts: list[Shift] | None = None) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": str(schedule.id),
            "organization_id": str(schedule.organization_id),
            "name": schedule.name,
            "description": schedule.description,
            "created_by": str(schedule.created_by),
            "created_at": schedule.created_at.isoformat(),
            "updated_at": schedule.updated_at.isoformat(),
        }
        if shifts is not None:
            payload["shifts"] = [self.serialize_shift(shift) for shift in shifts]
        return payload

    # ---------- Access / validation ----------
    def _get_schedule(self, schedule_id: UUID) -> Schedule:
        schedule = self.repo.get_schedule(schedule_id)
        if schedule is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule not found.")
        return schedule

    def _get_shift(self, shift_id: UUID) -> tuple[Shift, Schedule]:
        shift = self.repo.get_shift(shift_id)
        if shift is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shift not found.")
        return shift, self._get_schedule(shift.schedule_id)

    def _validate_assignment(self, *, organization_id: UUID, user_id: UUID | None, project_id: UUID | None) -> None:
        if user_id is not None and self.repo.get_membership(user_id=user_id, organization_id=organization_id) is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User is not a member of this organization.",
            )
        if project_id is not None:
            project = self.repo.get_project(project_id)
            if project is None or project.organization_id != organization_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Project does not belong to this organization.",
                )

    @staticmethod
    def _validate_window(start_time: datetime, end_time: datetime) -> None:
        if end_time <= start_time:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="end_time must be later than start_time.",
            )

    # ---------- Schedules ----------
    def list_schedules(self, *, context: RequestUserContext, organization_id: UUID) -> list[dict[str, object]]:
        if self.repo.get_organization(organization_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found.")
        role = require_organization_member(context, organization_id)
        schedules = self.repo.list_schedules(organization_id)
        shifts = self.repo.list_shifts(
            organization_id,
            schedule_ids=[schedule.id for schedule in schedules],
            user_id=None if role is OrganizationRole.ADMIN else context.user_id,
        )
        by_schedule: dict[UUID, list[Shift]] = {schedule.id: [] for schedule in schedules}
        for shift in shifts:
            by_schedule[shift.schedule_id].append(shift)
        return [self.serialize_schedule(schedule, by_schedule[schedule.id]) for schedule in schedules]

    def create_schedule(
        self,
        *,
        context: RequestUserContext,
        organization_id: UUID,
        data: ScheduleData,
        request: Request | None = None,
    ) -> Schedule:
        if self.repo.get_organization(organization_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found.")
        require_organization_admin(context, organization_id)

        now = utcnow()
        schedule = Schedule(
            organization_id=organization_id,
            name=data.name.strip(),
            description=data.description,
            created_by=context.user_id,
            created_at=now,
            updated_at=now,
        )
        self.repo.add(schedule)
        self.db.commit()
        self.db.refresh(schedule)

        record_audit(
            self.db,
            action=AuditAction.SCHEDULE_CREATED,
            user_id=context.user_id,
            organization_id=organization_id,
            entity_type="SCHEDULE",
            entity_id=schedule.id,
            entity_name=schedule.name,
            request=request,
        )
        return schedule

    def update_schedule(
        self,
        *,
        context: RequestUserContext,
        schedule_id: UUID,
        data: ScheduleUpdateData,
        request: Request | None = None,
    ) -> Schedule:
        schedule = self._get_schedule(schedule_id)
        require_organization_admin(context, schedule.organization_id)

        old_values = {"name": schedule.name, "description": schedule.description}
        if data.name is not None:
            schedule.name = data.name.strip()
        if data.description is not None:
            schedule.description = data.description or None
        schedule.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(schedule)

        record_audit(
            self.db,
            action=AuditAction.SCHEDULE_UPDATED,
            user_id=context.user_id,
            organization_id=schedule.organization_id,
            entity_type="SCHEDULE",
            entity_id=schedule.id,
            entity_name=schedule.name,
            old_values=old_values,
            new_values={"name": schedule.name, "description": schedule.description},
            request=request,
        )
        return schedule

    def delete_schedule(
        self,
        *,
        context: RequestUserContext,
        schedule_id: UUID,
        request: Request | None = None,
    ) -> None:
        schedule = self._get_schedule(schedule_id)
        require_organization_admin(context, schedule.organization_id)

        organization_id = schedule.organization_id
        name = schedule.name
        self.repo.delete_schedule_shifts(schedule.id)
        self.repo.delete(schedule)
        self.db.commit()

        record_audit(
            self.db,
            action=AuditAction.SCHEDULE_DELETED,
            user_id=context.user_id,
            organization_id=organization_id,
            entity_type="SCHEDULE",
            entity_id=schedule_id,
            entity_name=name,
            request=request,
        )

    # ---------- Shifts ----------
    def list_shifts(
        self,
        *,
        context: RequestUserContext,
        organization_id: UUID,
        schedule_id: UUID | None = None,
        user_id: UUID | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Shift]:
        role = require_organization_member(context, organization_id)
        if role is not OrganizationRole.ADMIN:
            if user_id is not None and user_id != context.user_id:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail="Admin access required to view other users' shifts.",
                )
            user_id = context.user_id

        return self.repo.list_shifts(
            organization_id,
            schedule_ids=[schedule_id] if schedule_id is not None else None,
            user_id=user_id,
            start=to_naive_utc(start) if start is not None else None,
            end=to_naive_utc(end) if end is not None else None,
        )

    def create_shift(
        self,
        *,
        context: RequestUserContext,
        data: ShiftCreateData,
        request: Request | None = None,
    ) -> Shift:
        schedule = self._get_schedule(data.schedule_id)
        require_organization_admin(context, schedule.organization_id)
        self._validate_assignment(
            organization_id=schedule.organization_id,
            user_id=data.user_id,
            project_id=data.project_id,
        )
        start_time = to_naive_utc(data.start_time)
        end_time = to_naive_utc(data.end_time)
        self._validate_window(start_time, end_time)

        now = utcnow()
        shift = Shift(
            schedule_id=schedule.id,
            user_id=data.user_id,
            project_id=data.project_id,
            title=data.title.strip(),
            description=data.description,
            start_time=start_time,
            end_time=end_time,
            is_recurring=data.is_recurring,
            recurring_pattern=data.recurring_pattern if data.is_recurring else None,
            recurring_end_date=(
                to_naive_utc(data.recurring_end_date)
                if data.is_recurring and data.recurring_end_date is not None
                else None
            ),
            created_at=now,
            updated_at=now,
        )
        self.repo.add(shift)
        self.db.commit()
        self.db.refresh(shift)

        record_audit(
            self.db,
            action=AuditAction.SHIFT_CREATED,
            user_id=context.user_id,
            organization_id=schedule.organization_id,
            entity_type="SHIFT",
            entity_id=shift.id,
            entity_name=shift.title,
            new_values=self.serialize_shift(shift),
            request=request,
        )
        return shift

    def update_shift(
        self,
        *,
        context: RequestUserContext,
        shift_id: UUID,
        data: ShiftUpdateData,
        request: Request | None = None,
    ) -> Shift:
        shift, schedule = self._get_shift(shift_id)
        require_organization_admin(context, schedule.organization_id)
        self._validate_assignment(
            organization_id=schedule.organization_id,
            user_id=data.user_id,
            project_id=data.project_id,
        )
        old_values = self.serialize_shift(shift)

        start_time = to_naive_utc(data.start_time) if data.start_time is not None else shift.start_time
        end_time = to_naive_utc(data.end_time) if data.end_time is not None else shift.end_time
        self._validate_window(start_time, end_time)

        shift.start_time = start_time
        shift.end_time = end_time
        if data.title is not None:
            shift.title = data.title.strip()
        if data.description is not None:
            shift.description = data.description or None
        if data.user_id is not None:
            shift.user_id = data.user_id
        if data.project_id is not None:
            shift.project_id = data.project_id
        if data.is_recurring is not None:
            shift.is_recurring = data.is_recurring
        if data.recurring_pattern is not None:
            shift.recurring_pattern = data.recurring_pattern
        if data.recurring_end_date is not None:
            shift.recurring_end_date = to_naive_utc(data.recurring_end_date)
        if not shift.is_recurring:
            shift.recurring_pattern = None
            shift.recurring_end_date = None
        shift.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(shift)

        record_audit(
            self.db,
            action=AuditAction.SHIFT_UPDATED,
            user_id=context.user_id,
            organization_id=schedule.organization_id,
            entity_type="SHIFT",
            entity_id=shift.id,
            entity_name=shift.title,
            old_values=old_values,
            new_values=self.serialize_shift(shift),
            request=request,
        )
        return shift

    def delete_shift(
        self,
        *,
        context: RequestUserContext,
        shift_id: UUID,
        request: Request | None = None,
    ) -> None:
        shift, schedule = self._get_shift(shift_id)
        require_organization_admin(context, schedule.organization_id)
        old_values = self.serialize_shift(shift)

        self.repo.delete(shift)
        self.db.commit()

        record_audit(
            self.db,
            action=AuditAction.SHIFT_DELETED,
            user_id=context.user_id,
            organization_id=schedule.organization_id,
            entity_type="SHIFT",
            entity_id=shift_id,
            entity_name=old_values["title"],
            old_values=old_values,
            request=request,
        )
