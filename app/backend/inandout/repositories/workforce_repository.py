"""Repository helpers for organizations, time tracking, projects and scheduling."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import Session

from inandout.models.entities import (
    AuditLog,
    Invitation,
    InvitationStatus,
    Membership,
    Organization,
    OrganizationRole,
    Project,
    ProjectCost,
    ProjectEmployee,
    Schedule,
    Shift,
    TimeEntry,
    User,
)


class WorkforceRepository:
    """Persistence operations used by the time-tracking services."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def add(self, entity: object) -> object:
        self.db.add(entity)
        self.db.flush()
        return entity

    def delete(self, entity: object) -> None:
        self.db.delete(entity)
        self.db.flush()

    # ---------- Users ----------
    def get_user(self, user_id: UUID) -> User | None:
        return self.db.scalar(select(User).where(User.id == user_id))

    def get_user_by_email(self, email: str) -> User | None:
        return self.db.scalar(select(User).where(func.lower(User.email) == email.strip().lower()))

    def search_users(self, *, search: str | None, limit: int, offset: int) -> tuple[list[User], int]:
        statement = select(User)
        if search:
            pattern = f"%{search.strip().lower()}%"
            statement = statement.where(
                or_(func.lower(User.email).like(pattern), func.lower(func.coalesce(User.name, "")).like(pattern))
            )
        total = self.db.scalar(select(func.count()).select_from(statement.subquery())) or 0
        rows = self.db.scalars(statement.order_by(User.created_at.desc()).limit(limit).offset(offset)).all()
        return list(rows), int(total)

    def membership_counts_for_users(self, user_ids: list[UUID]) -> dict[UUID, int]:
        if not user_ids:
            return {}
        rows = self.db.execute(
            select(Membership.user_id, func.count(Membership.id))
            .where(Membership.user_id.in_(user_ids))
            .group_by(Membership.user_id)
        ).all()
        return {user_id: int(count) for user_id, count in rows}

    def time_entry_counts_for_users(self, user_ids: list[UUID]) -> dict[UUID, int]:
        if not user_ids:
            return {}
        rows = self.db.execute(
            select(TimeEntry.user_id, func.count(TimeEntry.id))
            .where(TimeEntry.user_id.in_(user_ids))
            .group_by(TimeEntry.user_id)
        ).all()
        return {user_id: int(count) for user_id, count in rows}

    def count_rows(self, model: type) -> int:
        return int(self.db.scalar(select(func.count()).select_from(model)) or 0)

    def count_system_admins(self) -> int:
        return int(self.db.scalar(select(func.count(User.id)).where(User.system_admin.is_(True))) or 0)

    # ---------- Organizations and memberships ----------
    def get_organization(self, organization_id: UUID) -> Organization | None:
        return self.db.scalar(select(Organization).where(Organization.id == organization_id))

    def get_organization_by_code(self, code: str) -> Organization | None:
        return self.db.scalar(select(Organization).where(Organization.code == code.strip().lower()))

    def organization_code_exists(self, code: str) -> bool:
        return self.db.scalar(select(Organization.id).where(Organization.code == code)) is not None

    def list_organizations_for_user(self, user_id: UUID) -> list[tuple[Organization, Membership]]:
        rows = self.db.execute(
            select(Organization, Membership)
            .join(Membership, Membership.organization_id == Organization.id)
            .where(Membership.user_id == user_id)
            .order_by(Organization.name.asc())
        ).all()
        return [(organization, membership) for organization, membership in rows]

    def get_membership(self, *, user_id: UUID, organization_id: UUID) -> Membership | None:
        return self.db.scalar(
            select(Membership).where(
                and_(Membership.user_id == user_id, Membership.organization_id == organization_id)
            )
        )

    def list_user_memberships(self, user_id: UUID) -> list[Membership]:
        return self.db.scalars(select(Membership).where(Membership.user_id == user_id)).all()

    def list_members(self, organization_id: UUID, *, user_id: UUID | None = None) -> list[tuple[Membership, User]]:
        statement = (
            select(Membership, User)
            .join(User, User.id == Membership.user_id)
            .where(Membership.organization_id == organization_id)
        )
        if user_id is not None:
            statement = statement.where(Membership.user_id == user_id)
        rows = self.db.execute(statement.order_by(User.name.asc(), User.email.asc())).all()
        return [(membership, user) for membership, user in rows]

    def count_admins(self, organization_id: UUID) -> int:
        return int(
            self.db.scalar(
                select(func.count(Membership.id)).where(
                    and_(
                        Membership.organization_id == organization_id,
                        Membership.role == OrganizationRole.ADMIN,
                    )
                )
            )
            or 0
        )

    # ---------- Invitations ----------
    def get_invitation(self, invitation_id: UUID) -> Invitation | None:
        return self.db.scalar(select(Invitation).where(Invitation.id == invitation_id))

    def get_invitation_by_token(self, token: str) -> Invitation | None:
        return self.db.scalar(select(Invitation).where(Invitation.token == token))

    def get_pending_invitation(self, *, organization_id: UUID, email: str) -> Invitation | None:
        return self.db.scalar(
            select(Invitation).where(
                and_(
                    Invitation.organization_id == organization_id,
                    func.lower(Invitation.email) == email.strip().lower(),
                    Invitation.status == InvitationStatus.PENDING,
                )
            )
        )

    def list_invitations(self, organization_id: UUID) -> list[Invitation]:
        return self.db.scalars(
            select(Invitation)
            .where(Invitation.organization_id == organization_id)
            .order_by(Invitation.created_at.desc())
        ).all()

    # ---------- Projects ----------
    def get_project(self, project_id: UUID) -> Project | None:
        return self.db.scalar(select(Project).where(Project.id == project_id))

    def list_projects(self, organization_id: UUID) -> list[Project]:
        return self.db.scalars(
            select(Project)
            .where(Project.organization_id == organization_id)
            .order_by(Project.created_at.desc(), Project.name.asc())
        ).all()

    def project_hour_totals(self, project_ids: list[UUID]) -> dict[UUID, tuple[Decimal, int]]:
        """Completed hours and entry count per project."""

        if not project_ids:
            return {}
        rows = self.db.execute(
            select(
                TimeEntry.project_id,
                func.coalesce(func.sum(TimeEntry.total_hours), 0),
                func.count(TimeEntry.id),
            )
            .where(TimeEntry.project_id.in_(project_ids))
            .group_by(TimeEntry.project_id)
        ).all()
        return {project_id: (Decimal(str(hours)), int(count)) for project_id, hours, count in rows}

    def count_project_time_entries(self, project_id: UUID) -> int:
        return int(
            self.db.scalar(select(func.count(TimeEntry.id)).where(TimeEntry.project_id == project_id)) or 0
        )

    def list_assigned_projects(self, *, user_id: UUID, organization_id: UUID) -> list[tuple[Project, ProjectEmployee]]:
        rows = self.db.execute(
            select(Project, ProjectEmployee)
            .join(ProjectEmployee, ProjectEmployee.project_id == Project.id)
            .where(
                and_(
                    ProjectEmployee.user_id == user_id,
                    ProjectEmployee.is_active.is_(True),
                    Project.organization_id == organization_id,
                )
            )
            .order_by(Project.name.asc())
        ).all()
        return [(project, employee) for project, employee in rows]

    def delete_project_children(self, project_id: UUID) -> None:
        self.db.execute(delete(ProjectEmployee).where(ProjectEmployee.project_id == project_id))
        self.db.execute(delete(ProjectCost).where(ProjectCost.project_id == project_id))
        self.db.execute(delete(Shift).where(Shift.project_id == project_id))
        self.db.flush()

    # ---------- Project employees and costs ----------
    def get_project_employee(self, employee_id: UUID) -> ProjectEmployee | None:
        return self.db.scalar(select(ProjectEmployee).where(ProjectEmployee.id == employee_id))

    def get_project_employee_for_user(self, *, project_id: UUID, user_id: UUID) -> ProjectEmployee | None:
        return self.db.scalar(
            select(ProjectEmployee).where(
                and_(ProjectEmployee.project_id == project_id, ProjectEmployee.user_id == user_id)
            )
        )

    def list_project_employees(self, project_id: UUID) -> list[tuple[ProjectEmployee, User]]:
        rows = self.db.execute(
            select(ProjectEmployee, User)
            .join(User, User.id == ProjectEmployee.user_id)
            .where(ProjectEmployee.project_id == project_id)
            .order_by(ProjectEmployee.is_active.desc(), User.name.asc())
        ).all()
        return [(employee, user) for employee, user in rows]

    def active_project_rates(self, project_ids: list[UUID]) -> dict[tuple[UUID, UUID], Decimal]:
        """Active per-project hourly rates keyed by ``(project_id, user_id)``."""

        if not project_ids:
            return {}
        rows = self.db.scalars(
            select(ProjectEmployee).where(
                and_(
                    ProjectEmployee.project_id.in_(project_ids),
                    ProjectEmployee.is_active.is_(True),
                    ProjectEmployee.hourly_rate.is_not(None),
                )
            )
        ).all()
        return {(row.project_id, row.user_id): row.hourly_rate for row in rows}

    def list_project_costs(self, project_id: UUID) -> list[ProjectCost]:
        return self.db.scalars(
            select(ProjectCost)
            .where(ProjectCost.project_id == project_id)
            .order_by(ProjectCost.created_at.desc())
        ).all()

    def list_organization_costs(
        self,
        organization_id: UUID,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        project_ids: list[UUID] | None = None,
    ) -> list[tuple[ProjectCost, Project]]:
        statement = (
            select(ProjectCost, Project)
            .join(Project, Project.id == ProjectCost.project_id)
            .where(Project.organization_id == organization_id)
        )
        if start is not None:
            statement = statement.where(ProjectCost.created_at >= start)
        if end is not None:
            statement = statement.where(ProjectCost.created_at <= end)
        if project_ids:
            statement = statement.where(ProjectCost.project_id.in_(project_ids))
        rows = self.db.execute(statement.order_by(ProjectCost.created_at.desc())).all()
        return [(cost, project) for cost, project in rows]

    # ---------- Time entries ----------
    def get_time_entry(self, entry_id: UUID) -> TimeEntry | None:
        return self.db.scalar(select(TimeEntry).where(TimeEntry.id == entry_id))

    def get_active_entry(self, user_id: UUID) -> TimeEntry | None:
        return self.db.scalar(
            select(TimeEntry)
            .where(and_(TimeEntry.user_id == user_id, TimeEntry.clock_out.is_(None)))
            .order_by(TimeEntry.clock_in.desc())
            .limit(1)
        )

    def list_time_entries(
        self,
        *,
        user_id: UUID,
        organization_id: UUID | None = None,
        project_id: UUID | None = None,
    ) -> list[TimeEntry]:
        statement = select(TimeEntry).where(TimeEntry.user_id == user_id)
        if organization_id is not None:
            statement = statement.where(TimeEntry.organization_id == organization_id)
        if project_id is not None:
            statement = statement.where(TimeEntry.project_id == project_id)
        return self.db.scalars(statement.order_by(TimeEntry.clock_in.desc())).all()

    def list_completed_entries(
        self,
        organization_id: UUID,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        user_ids: list[UUID] | None = None,
        project_ids: list[UUID] | None = None,
    ) -> list[tuple[TimeEntry, User, Project | None]]:
        """Closed entries in the organization with their user and project."""

        statement = (
            select(TimeEntry, User, Project)
            .join(User, User.id == TimeEntry.user_id)
            .outerjoin(Project, Project.id == TimeEntry.project_id)
            .where(
                and_(
                    TimeEntry.organization_id == organization_id,
                    TimeEntry.clock_out.is_not(None),
                )
            )
        )
        if start is not None:
            statement = statement.where(TimeEntry.clock_in >= start)
        if end is not None:
            statement = statement.where(TimeEntry.clock_in <= end)
        if user_ids:
            statement = statement.where(TimeEntry.user_id.in_(user_ids))
        if project_ids:
            statement = statement.where(TimeEntry.project_id.in_(project_ids))
        rows = self.db.execute(statement.order_by(TimeEntry.clock_in.desc())).all()
        return [(entry, user, project) for entry, user, project in rows]

    def list_project_entries(self, project_id: UUID) -> list[tuple[TimeEntry, User]]:
        rows = self.db.execute(
            select(TimeEntry, User)
            .join(User, User.id == TimeEntry.user_id)
            .where(and_(TimeEntry.project_id == project_id, TimeEntry.clock_out.is_not(None)))
        ).all()
        return [(entry, user) for entry, user in rows]

    def list_recent_entries(self, organization_id: UUID, *, limit: int) -> list[tuple[TimeEntry, User, Project | None]]:
        rows = self.db.execute(
            select(TimeEntry, User, Project)
            .join(User, User.id == TimeEntry.user_id)
            .outerjoin(Project, Project.id == TimeEntry.project_id)
            .where(TimeEntry.organization_id == organization_id)
            .order_by(TimeEntry.created_at.desc())
            .limit(limit)
        ).all()
        return [(entry, user, project) for entry, user, project in rows]

    # ---------- Schedules and shifts ----------
    def get_schedule(self, schedule_id: UUID) -> Schedule | None:
        return self.db.scalar(select(Schedule).where(Schedule.id == schedule_id))

    def list_schedules(self, organization_id: UUID) -> list[Schedule]:
        return self.db.scalars(
            select(Schedule)
            .where(Schedule.organization_id == organization_id)
            .order_by(Schedule.created_at.desc())
        ).all()

    def get_shift(self, shift_id: UUID) -> Shift | None:
        return self.db.scalar(select(Shift).where(Shift.id == shift_id))

    def list_shifts(
        self,
        organization_id: UUID,
        *,
        schedule_ids: list[UUID] | None = None,
        user_id: UUID | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Shift]:
        statement = (
            select(Shift)
            .join(Schedule, Schedule.id == Shift.schedule_id)
            .where(Schedule.organization_id == organization_id)
        )
        if schedule_ids is not None:
            if not schedule_ids:
                return []
            statement = statement.where(Shift.schedule_id.in_(schedule_ids))
        if user_id is not None:
            statement = statement.where(Shift.user_id == user_id)
        if start is not None:
            statement = statement.where(Shift.end_time >= start)
        if end is not None:
            statement = statement.where(Shift.start_time <= end)
        return self.db.scalars(statement.order_by(Shift.start_time.asc())).all()

    def delete_schedule_shifts(self, schedule_id: UUID) -> None:
        self.db.execute(delete(Shift).where(Shift.schedule_id == schedule_id))
        self.db.flush()

    # ---------- Audit logs ----------
    def query_audit_logs(
        self,
        *,
        organization_ids: list[UUID],
        user_id: UUID | None = None,
        action: str | None = None,
        entity_type: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int,
        offset: int,
    ) -> tuple[list[AuditLog], int]:
        statement = select(AuditLog).where(AuditLog.organization_id.in_(organization_ids))
        if user_id is not None:
            statement = statement.where(AuditLog.user_id == user_id)
        if action:
            statement = statement.where(AuditLog.action == action)
        if entity_type:
            statement = statement.where(AuditLog.entity_type == entity_type)
        if start is not None:
            statement = statement.where(AuditLog.created_at >= start)
        if end is not None:
            statement = statement.where(AuditLog.created_at <= end)

        total = self.db.scalar(select(func.count()).select_from(statement.subquery())) or 0
        rows = self.db.scalars(
            statement.order_by(AuditLog.created_at.desc()).limit(limit).offset(offset)
        ).all()
        return list(rows), int(total)

    def users_by_ids(self, user_ids: list[UUID]) -> dict[UUID, User]:
        if not user_ids:
            return {}
        return {user.id: user for user in self.db.scalars(select(User).where(User.id.in_(user_ids))).all()}
