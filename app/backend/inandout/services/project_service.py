"""Application service for projects, project staffing and project costs."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from inandout.core.audit import AuditAction, record_audit
from inandout.core.auth import RequestUserContext, require_organization_admin, require_organization_member
from inandout.core.clock import utcnow
from inandout.models.entities import CostType, Project, ProjectCost, ProjectEmployee, ProjectStatus, User
from inandout.repositories.workforce_repository import WorkforceRepository

ZERO = Decimal("0.00")
Q2 = Decimal("0.01")
HUNDRED = Decimal("100")


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2)


def _money(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


@dataclass(slots=True)
class ProjectCreateData:
    name: str
    description: str | None = None
    status: ProjectStatus = ProjectStatus.ACTIVE
    estimated_hours: Decimal | None = None
    hourly_rate: Decimal | None = None
    fixed_cost: Decimal | None = None


@dataclass(slots=True)
class ProjectUpdateData:
    name: str | None = None
    description: str | None = None
    status: ProjectStatus | None = None
    estimated_hours: Decimal | None = None
    hourly_rate: Decimal | None = None
    fixed_cost: Decimal | None = None


@dataclass(slots=True)
class ProjectEmployeeData:
    user_id: UUID
    hourly_rate: Decimal | None = None
    role: str | None = None


@dataclass(slots=True)
class ProjectEmployeeUpdateData:
    hourly_rate: Decimal | None = None
    role: str | None = None


@dataclass(slots=True)
class ProjectCostCreateData:
    cost_type: CostType
    amount: Decimal
    description: str | None = None
    user_id: UUID | None = None


class ProjectService:
    """Service implementing project lifecycle, staffing and cost rules."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = WorkforceRepository(db)

    # ---------- Serialization ----------
    @staticmethod
    def serialize_project(
        project: Project,
        *,
        total_hours: Decimal | None = None,
        time_entry_count: int | None = None,
    ) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": str(project.id),
            "organization_id": str(project.organization_id),
            "name": project.name,
            "description": project.description,
            "status": project.status.value,
            "estimated_hours": _money(project.estimated_hours),
            "hourly_rate": _money(project.hourly_rate),
            "fixed_cost": _money(project.fixed_cost),
            "created_by": str(project.created_by),
            "created_at": project.created_at.isoformat(),
            "updated_at": project.updated_at.isoformat(),
        }
        if total_hours is not None:
            payload["total_hours"] = str(_q2(total_hours))
        if time_entry_count is not None:
            payload["time_entry_count"] = time_entry_count
        return payload

    @staticmethod
    def serialize_employee(employee: ProjectEmployee, user: User | None = None) -> dict[str, object]:
        payload: dict[str, object] = {
            "id": str(employee.id),
            "project_id": str(employee.project_id),
            "user_id": str(employee.user_id),
            "hourly_rate": _money(employee.hourly_rate),
            "role": employee.role,
            "is_active": employee.is_active,
            "joined_at": employee.joined_at.isoformat(),
            "left_at": employee.left_at.isoformat() if employee.left_at else None,
        }
        if user is not None:
            payload["user"] = {"id": str(user.id), "email": user.email, "name": user.name}
        return payload

    @staticmethod
    def serialize_cost(cost: ProjectCost) -> dict[str, object]:
        return {
            "id": str(cost.id),
            "project_id": str(cost.project_id),
            "user_id": str(cost.user_id) if cost.user_id else None,
            "cost_type": cost.cost_type.value,
            "amount": str(cost.amount),
            "description": cost.description,
            "created_by": str(cost.created_by),
            "created_at": cost.created_at.isoformat(),
        }

    # ---------- Access ----------
    def _ensure_organization(self, organization_id: UUID) -> None:
        if self.repo.get_organization(organization_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found.")

    def get_admin_project(self, *, context: RequestUserContext, project_id: UUID) -> Project:
        project = self.repo.get_project(project_id)
        if project is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found.")
        require_organization_admin(context, project.organization_id)
        return project

    def _ensure_member_of(self, *, organization_id: UUID, user_id: UUID) -> None:
        if self.repo.get_membership(user_id=user_id, organization_id=organization_id) is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User is not a member of this organization.",
            )

    # ---------- Projects ----------
    def list_projects(self, *, context: RequestUserContext, organization_id: UUID) -> list[dict[str, object]]:
        self._ensure_organization(organization_id)
        require_organization_member(context, organization_id)
        projects = self.repo.list_projects(organization_id)
        totals = self.repo.project_hour_totals([project.id for project in projects])
        items = []
        for project in projects:
            hours, count = totals.get(project.id, (ZERO, 0))
            items.append(self.serialize_project(project, total_hours=hours, time_entry_count=count))
        return items

    def assigned_projects(self, *, context: RequestUserContext, organization_id: UUID) -> list[dict[str, object]]:
        require_organization_member(context, organization_id)
        rows = [
            (project, employee)
            for project, employee in self.repo.list_assigned_projects(
                user_id=context.user_id,
                organization_id=organization_id,
            )
            if project.status is ProjectStatus.ACTIVE
        ]
        totals = self.repo.project_hour_totals([project.id for project, _ in rows])
        items = []
        for project, employee in rows:
            hours, count = totals.get(project.id, (ZERO, 0))
            payload = self.serialize_project(project, total_hours=hours, time_entry_count=count)
            payload["assignment"] = self.serialize_employee(employee)
            items.append(payload)
        return items

    def create_project(
        self,
        *,
        context: RequestUserContext,
        organization_id: UUID,
        data: ProjectCreateData,
        request: Request | None = None,
    ) -> Project:
        self._ensure_organization(organization_id)
        require_organization_admin(context, organization_id)

        now = utcnow()
        project = Project(
            organization_id=organization_id,
            name=data.name.strip(),
            description=data.description.strip() if data.description else None,
            status=data.status,
            estimated_hours=data.estimated_hours,
            hourly_rate=data.hourly_rate,
            fixed_cost=data.fixed_cost,
            created_by=context.user_id,
            created_at=now,
            updated_at=now,
        )
        self.repo.add(project)
        self.db.commit()
        self.db.refresh(project)

        record_audit(
            self.db,
            action=AuditAction.PROJECT_CREATED,
            user_id=context.user_id,
            organization_id=organization_id,
            entity_type="PROJECT",
            entity_id=project.id,
            entity_name=project.name,
            new_values={"name": project.name, "status": project.status, "hourly_rate": project.hourly_rate},
            request=request,
        )
        return project

    def project_detail(self, *, context: RequestUserContext, project_id: UUID) -> dict[str, object]:
        project = self.get_admin_project(context=context, project_id=project_id)
        entries = self.repo.list_project_entries(project.id)
        costs = self.repo.list_project_costs(project.id)

        total_hours = _q2(sum((entry.total_hours or ZERO for entry, _ in entries), ZERO))
        total_cost = _q2(sum((cost.amount for cost in costs), ZERO))
        contributors = {entry.user_id for entry, _ in entries}

        completion: str | None = None
        if project.estimated_hours:
            completion = str(_q2(min(total_hours / project.estimated_hours * HUNDRED, HUNDRED)))

        payload = self.serialize_project(project, total_hours=total_hours, time_entry_count=len(entries))
        payload["employees"] = [
            self.serialize_employee(employee, user) for employee, user in self.repo.list_project_employees(project.id)
        ]
        payload["costs"] = [self.serialize_cost(cost) for cost in costs]
        payload["stats"] = {
            "total_hours": str(total_hours),
            "total_cost": str(total_cost),
            "unique_contributors": len(contributors),
            "completion_percentage": completion,
        }
        return payload

    def update_project(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        data: ProjectUpdateData,
        request: Request | None = None,
    ) -> Project:
        project = self.get_admin_project(context=context, project_id=project_id)
        old_values = {
            "name": project.name,
            "status": project.status,
            "estimated_hours": project.estimated_hours,
            "hourly_rate": project.hourly_rate,
            "fixed_cost": project.fixed_cost,
        }

        if data.name is not None:
            project.name = data.name.strip()
        if data.description is not None:
            project.description = data.description.strip() or None
        if data.status is not None:
            project.status = data.status
        if data.estimated_hours is not None:
            project.estimated_hours = data.estimated_hours
        if data.hourly_rate is not None:
            project.hourly_rate = data.hourly_rate
        if data.fixed_cost is not None:
            project.fixed_cost = data.fixed_cost
        project.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(project)

        record_audit(
            self.db,
            action=AuditAction.PROJECT_UPDATED,
            user_id=context.user_id,
            organization_id=project.organization_id,
            entity_type="PROJECT",
            entity_id=project.id,
            entity_name=project.name,
            old_values=old_values,
            new_values={
                "name": project.name,
                "status": project.status,
                "estimated_hours": project.estimated_hours,
                "hourly_rate": project.hourly_rate,
                "fixed_cost": project.fixed_cost,
            },
            request=request,
        )
        return project

    def delete_project(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        request: Request | None = None,
    ) -> None:
        project = self.get_admin_project(context=context, project_id=project_id)
        if self.repo.count_project_time_entries(project.id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Cannot delete a project with recorded time entries.",
            )

        organization_id = project.organization_id
        name = project.name
        self.repo.delete_project_children(project.id)
        self.repo.delete(project)
        self.db.commit()

        record_audit(
            self.db,
            action=AuditAction.PROJECT_DELETED,
            user_id=context.user_id,
            organization_id=organization_id,
            entity_type="PROJECT",
            entity_id=project_id,
            entity_name=name,
            request=request,
        )

    # ---------- Project employees ----------
    def list_employees(self, *, context: RequestUserContext, project_id: UUID) -> list[dict[str, object]]:
        project = self.get_admin_project(context=context, project_id=project_id)
        return [
            self.serialize_employee(employee, user) for employee, user in self.repo.list_project_employees(project.id)
        ]

    def add_employee(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        data: ProjectEmployeeData,
        request: Request | None = None,
    ) -> tuple[ProjectEmployee, bool]:
        """Assign a member to the project; returns the row and whether it was new."""

        project = self.get_admin_project(context=context, project_id=project_id)
        self._ensure_member_of(organization_id=project.organization_id, user_id=data.user_id)

        now = utcnow()
        employee = self.repo.get_project_employee_for_user(project_id=project.id, user_id=data.user_id)
        created = employee is None
        if employee is not None and employee.is_active:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User is already assigned to this project.",
            )
        if employee is None:
            employee = ProjectEmployee(
                project_id=project.id,
                user_id=data.user_id,
                hourly_rate=data.hourly_rate,
                role=data.role,
                is_active=True,
                joined_at=now,
            )
            self.repo.add(employee)
        else:
            employee.is_active = True
            employee.left_at = None
            employee.joined_at = now
            employee.hourly_rate = data.hourly_rate
            employee.role = data.role

        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="User is already assigned to this project.",
            ) from exc
        self.db.refresh(employee)

        record_audit(
            self.db,
            action=AuditAction.PROJECT_MEMBER_ADDED,
            user_id=context.user_id,
            organization_id=project.organization_id,
            entity_type="PROJECT",
            entity_id=project.id,
            entity_name=project.name,
            new_values={"user_id": employee.user_id, "hourly_rate": employee.hourly_rate, "role": employee.role},
            request=request,
        )
        return employee, created

    def _get_project_employee(self, *, project: Project, employee_id: UUID) -> ProjectEmployee:
        employee = self.repo.get_project_employee(employee_id)
        if employee is None or employee.project_id != project.id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project employee not found.")
        return employee

    def update_employee(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        employee_id: UUID,
        data: ProjectEmployeeUpdateData,
        request: Request | None = None,
    ) -> ProjectEmployee:
        project = self.get_admin_project(context=context, project_id=project_id)
        employee = self._get_project_employee(project=project, employee_id=employee_id)

        previous_rate = employee.hourly_rate
        if data.hourly_rate is not None:
            employee.hourly_rate = data.hourly_rate
        if data.role is not None:
            employee.role = data.role.strip() or None
        self.db.commit()
        self.db.refresh(employee)

        if employee.hourly_rate != previous_rate:
            record_audit(
                self.db,
                action=AuditAction.PROJECT_MEMBER_RATE_CHANGED,
                user_id=context.user_id,
                organization_id=project.organization_id,
                entity_type="PROJECT",
                entity_id=project.id,
                entity_name=project.name,
                old_values={"user_id": employee.user_id, "hourly_rate": previous_rate},
                new_values={"user_id": employee.user_id, "hourly_rate": employee.hourly_rate},
                request=request,
            )
        return employee

    def remove_employee(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        employee_id: UUID,
        request: Request | None = None,
    ) -> ProjectEmployee:
        project = self.get_admin_project(context=context, project_id=project_id)
        employee = self._get_project_employee(project=project, employee_id=employee_id)

        employee.is_active = False
        employee.left_at = utcnow()
        self.db.commit()
        self.db.refresh(employee)

        record_audit(
            self.db,
            action=AuditAction.PROJECT_MEMBER_REMOVED,
            user_id=context.user_id,
            organization_id=project.organization_id,
            entity_type="PROJECT",
            entity_id=project.id,
            entity_name=project.name,
            old_values={"user_id": employee.user_id},
            request=request,
        )
        return employee

    # ---------- Project costs ----------
    def list_costs(self, *, context: RequestUserContext, project_id: UUID) -> list[ProjectCost]:
        project = self.get_admin_project(context=context, project_id=project_id)
        return self.repo.list_project_costs(project.id)

    def add_cost(
        self,
        *,
        context: RequestUserContext,
        project_id: UUID,
        data: ProjectCostCreateData,
        request: Request | None = None,
    ) -> ProjectCost:
        project = self.get_admin_project(context=context, project_id=project_id)
        if data.user_id is not None:
            self._ensure_member_of(organization_id=project.organization_id, user_id=data.user_id)

        cost = ProjectCost(
            project_id=project.id,
            user_id=data.user_id,
            cost_type=data.cost_type,
            amount=data.amount,
            description=data.description,
            created_by=context.user_id,
            created_at=utcnow(),
        )
        self.repo.add(cost)
        self.db.commit()
        self.db.refresh(cost)

        record_audit(
            self.db,
            action=AuditAction.PROJECT_COST_ADDED,
            user_id=context.user_id,
            organization_id=project.organization_id,
            entity_type="PROJECT",
            entity_id=project.id,
            entity_name=project.name,
            new_values={"cost_type": cost.cost_type, "amount": cost.amount},
            request=request,
        )
        return cost
