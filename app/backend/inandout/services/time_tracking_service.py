"""Application service for the time clock and time entry lifecycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from fastapi import HTTPException, Request, status
from sqlalchemy.orm import Session

from inandout.core.audit import AuditAction, record_audit
from inandout.core.auth import (
    RequestUserContext,
    is_organization_admin,
    require_organization_admin,
    require_organization_member,
)
from inandout.core.clock import to_naive_utc, utcnow
from inandout.models.entities import Project, TimeEntry
from inandout.repositories.workforce_repository import WorkforceRepository

logger = logging.getLogger(__name__)

Q2 = Decimal("0.01")
SECONDS_PER_HOUR = Decimal("3600")


def compute_total_hours(clock_in: datetime, clock_out: datetime) -> Decimal:
    """Elapsed hours between two instants rounded to two decimals."""

    seconds = Decimal(str((clock_out - clock_in).total_seconds()))
    return (seconds / SECONDS_PER_HOUR).quantize(Q2, rounding=ROUND_HALF_UP)


@dataclass(slots=True)
class ClockActionData:
    action: str
    description: str | None = None
    organization_id: UUID | None = None
    project_id: UUID | None = None


@dataclass(slots=True)
class TimeEntryCreateData:
    clock_in: datetime
    clock_out: datetime | None = None
    description: str | None = None
    organization_id: UUID | None = None
    project_id: UUID | None = None
    user_id: UUID | None = None


@dataclass(slots=True)
class TimeEntryUpdateData:
    clock_in: datetime | None = None
    clock_out: datetime | None = None
    description: str | None = None
    project_id: UUID | None = None


class TimeTrackingService:
    """Service implementing clock in/out and manual time entry rules."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = WorkforceRepository(db)

    # ---------- Serialization ----------
    @staticmethod
    def serialize_entry(entry: TimeEntry) -> dict[str, object]:
        return {
            "id": str(entry.id),
            "user_id": str(entry.user_id),
            "organization_id": str(entry.organization_id) if entry.organization_id else None,
            "project_id": str(entry.project_id) if entry.project_id else None,
            "clock_in": entry.clock_in.isoformat(),
            "clock_out": entry.clock_out.isoformat() if entry.clock_out else None,
            "total_hours": str(entry.total_hours) if entry.total_hours is not None else None,
            "description": entry.description,
            "edited_by": str(entry.edited_by) if entry.edited_by else None,
            "edited_at": entry.edited_at.isoformat() if entry.edited_at else None,
            "created_at": entry.created_at.isoformat(),
        }

    @staticmethod
    def _audit_values(entry: TimeEntry) -> dict[str, object]:
        return {
            "clock_in": entry.clock_in,
            "clock_out": entry.clock_out,
            "total_hours": entry.total_hours,
            "description": entry.description,
            "project_id": entry.project_id,
        }

    # ---------- Scope ----------
    def _resolve_scope(
        self,
        *,
        context: RequestUserContext,
        organization_id: UUID | None,
        project_id: UUID | None,
    ) -> tuple[UUID | None, Project | None]:
        project: Project | None = None
        if project_id is not None:
            project = self.repo.get_project(project_id)
            if project is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found.")
            if organization_id is not None and project.organization_id != organization_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Project does not belong to this organization.",
                )
            organization_id = project.organization_id

        if organization_id is not None:
            require_organization_member(context, organization_id)
        return organization_id, project

    def _ensure_can_manage(self, *, context: RequestUserContext, entry: TimeEntry) -> bool:
        """Return whether the caller is acting on someone else's entry."""

        if entry.user_id == context.user_id:
            return False
        if entry.organization_id is None or not is_organization_admin(context, entry.organization_id):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Admin access required to manage another user's time entries.",
            )
        return True

    def _get_entry(self, entry_id: UUID) -> TimeEntry:
        entry = self.repo.get_time_entry(entry_id)
        if entry is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Time entry not found.")
        return entry

    @staticmethod
    def _validate_range(clock_in: datetime, clock_out: datetime | None) -> None:
        if clock_out is not None and clock_out < clock_in:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="clock_out must be greater than or equal to clock_in.",
            )

    # ---------- Clock ----------
    def active_entry(self, *, context: RequestUserContext) -> TimeEntry | None:
        return self.repo.get_active_entry(context.user_id)

    def clock(
        self,
        *,
        context: RequestUserContext,
        data: ClockActionData,
        request: Request | None = None,
    ) -> TimeEntry:
        action = data.action.strip().lower()
        if action == "in":
            return self.clock_in(context=context, data=data, request=request)
        if action == "out":
            return self.clock_out(context=context, data=data, request=request)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid action.")

    def clock_in(
        self,
        *,
        context: RequestUserContext,
        data: ClockActionData,
        request: Request | None = None,
    ) -> TimeEntry:
        if self.repo.get_active_entry(context.user_id) is not None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Already clocked in.")

        organization_id, _ = self._resolve_scope(
            context=context,
            organization_id=data.organization_id,
            project_id=data.project_id,
        )
        now = utcnow()
        entry = TimeEntry(
            user_id=context.user_id,
            organization_id=organization_id,
            project_id=data.project_id,
            clock_in=now,
            description=data.description,
            created_at=now,
            updated_at=now,
        )
        self.repo.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        logger.info("User %s clocked in (entry %s)", context.user_id, entry.id)

        record_audit(
            self.db,
            action=AuditAction.TIME_CLOCK_IN,
            user_id=context.user_id,
            organization_id=entry.organization_id,
            entity_type="TIME_ENTRY",
            entity_id=entry.id,
            new_values=self._audit_values(entry),
            request=request,
        )
        return entry

    def clock_out(
        self,
        *,
        context: RequestUserContext,
        data: ClockActionData,
        request: Request | None = None,
    ) -> TimeEntry:
        entry = self.repo.get_active_entry(context.user_id)
        if entry is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No active clock in found.")

        now = max(utcnow(), entry.clock_in)
        entry.clock_out = now
        entry.total_hours = compute_total_hours(entry.clock_in, now)
        if data.description:
            entry.description = data.description
        entry.updated_at = now
        self.db.commit()
        self.db.refresh(entry)
        logger.info("User %s clocked out after %s hours (entry %s)", context.user_id, entry.total_hours, entry.id)

        record_audit(
            self.db,
            action=AuditAction.TIME_CLOCK_OUT,
            user_id=context.user_id,
            organization_id=entry.organization_id,
            entity_type="TIME_ENTRY",
            entity_id=entry.id,
            new_values=self._audit_values(entry),
            request=request,
        )
        return entry

    # ---------- Entries ----------
    def list_entries(
        self,
        *,
        context: RequestUserContext,
        user_id: UUID | None = None,
        organization_id: UUID | None = None,
        project_id: UUID | None = None,
    ) -> list[TimeEntry]:
        target_user_id = user_id or context.user_id
        if target_user_id != context.user_id:
            if organization_id is None:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="organization_id is required to view another user's time entries.",
                )
            require_organization_admin(context, organization_id)
        elif organization_id is not None:
            require_organization_member(context, organization_id)

        return self.repo.list_time_entries(
            user_id=target_user_id,
            organization_id=organization_id,
            project_id=project_id,
        )

    def create_entry(
        self,
        *,
        context: RequestUserContext,
        data: TimeEntryCreateData,
        request: Request | None = None,
    ) -> TimeEntry:
        target_user_id = data.user_id or context.user_id
        acting_for_other = target_user_id != context.user_id
        if acting_for_other:
            if data.organization_id is None:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="organization_id is required to create another user's time entry.",
                )
            require_organization_admin(context, data.organization_id)
            if self.repo.get_membership(user_id=target_user_id, organization_id=data.organization_id) is None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="User is not a member of this organization.",
                )

        organization_id, _ = self._resolve_scope(
            context=context,
            organization_id=data.organization_id,
            project_id=data.project_id,
        )
        clock_in = to_naive_utc(data.clock_in)
        clock_out = to_naive_utc(data.clock_out) if data.clock_out is not None else None
        self._validate_range(clock_in, clock_out)

        now = utcnow()
        entry = TimeEntry(
            user_id=target_user_id,
            organization_id=organization_id,
            project_id=data.project_id,
            clock_in=clock_in,
            clock_out=clock_out,
            total_hours=compute_total_hours(clock_in, clock_out) if clock_out is not None else None,
            description=data.description,
            edited_by=context.user_id if acting_for_other else None,
            edited_at=now if acting_for_other else None,
            created_at=now,
            updated_at=now,
        )
        self.repo.add(entry)
        self.db.commit()
        self.db.refresh(entry)

        record_audit(
            self.db,
            action=AuditAction.TIME_ENTRY_CREATED,
            user_id=context.user_id,
            organization_id=entry.organization_id,
            entity_type="TIME_ENTRY",
            entity_id=entry.id,
            new_values=self._audit_values(entry),
            request=request,
        )
        return entry

    def update_entry(
        self,
        *,
        context: RequestUserContext,
        entry_id: UUID,
        data: TimeEntryUpdateData,
        request: Request | None = None,
    ) -> TimeEntry:
        entry = self._get_entry(entry_id)
        acting_for_other = self._ensure_can_manage(context=context, entry=entry)
        old_values = self._audit_values(entry)

        if data.project_id is not None:
            project = self.repo.get_project(data.project_id)
            if project is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found.")
            if entry.organization_id is not None and project.organization_id != entry.organization_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Project does not belong to this organization.",
                )
            if entry.organization_id is None:
                require_organization_member(context, project.organization_id)
                entry.organization_id = project.organization_id
            entry.project_id = project.id

        clock_in = to_naive_utc(data.clock_in) if data.clock_in is not None else entry.clock_in
        clock_out = to_naive_utc(data.clock_out) if data.clock_out is not None else entry.clock_out
        self._validate_range(clock_in, clock_out)

        now = utcnow()
        entry.clock_in = clock_in
        entry.clock_out = clock_out
        entry.total_hours = compute_total_hours(clock_in, clock_out) if clock_out is not None else None
        if data.description is not None:
            entry.description = data.description
        if acting_for_other:
            entry.edited_by = context.user_id
            entry.edited_at = now
        entry.updated_at = now
        self.db.commit()
        self.db.refresh(entry)

        record_audit(
            self.db,
            action=AuditAction.TIME_ENTRY_UPDATED,
            user_id=context.user_id,
            organization_id=entry.organization_id,
            entity_type="TIME_ENTRY",
            entity_id=entry.id,
            old_values=old_values,
            new_values=self._audit_values(entry),
            request=request,
        )
        return entry

    def delete_entry(
        self,
        *,
        context: RequestUserContext,
        entry_id: UUID,
        request: Request | None = None,
    ) -> None:
        entry = self._get_entry(entry_id)
        self._ensure_can_manage(context=context, entry=entry)
        old_values = self._audit_values(entry)
        organization_id = entry.organization_id

        self.repo.delete(entry)
        self.db.commit()

        record_audit(
            self.db,
            action=AuditAction.TIME_ENTRY_DELETED,
            user_id=context.user_id,
            organization_id=organization_id,
            entity_type="TIME_ENTRY",
            entity_id=entry_id,
            old_values=old_values,
            request=request,
        )
