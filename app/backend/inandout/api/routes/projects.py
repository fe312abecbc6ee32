"""Project, project staffing and project cost endpoints."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from inandout.core.auth import RequestUserContext, get_current_user_context
from inandout.db.dependencies import get_db_session
from inandout.models.entities import CostType, ProjectStatus
from inandout.services.project_service import (
    ProjectCostCreateData,
    ProjectCreateData,
    ProjectEmployeeData,
    ProjectEmployeeUpdateData,
    ProjectService,
    ProjectUpdateData,
)

router = APIRouter(tags=["projects"])


class ProjectCreatePayload(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    status: ProjectStatus = ProjectStatus.ACTIVE
    estimated_hours: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    hourly_rate: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    fixed_cost: Decimal | None = Field(default=None, ge=0, max_digits=14, decimal_places=2)


class ProjectUpdatePayload(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    status: ProjectStatus | None = None
    estimated_hours: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    hourly_rate: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    fixed_cost: Decimal | None = Field(default=None, ge=0, max_digits=14, decimal_places=2)


class ProjectEmployeePayload(BaseModel):
    user_id: UUID
    hourly_rate: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    role: str | None = Field(default=None, max_length=128)


class ProjectEmployeeUpdatePayload(BaseModel):
    hourly_rate: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    role: str | None = Field(default=None, max_length=128)


class ProjectCostPayload(BaseModel):
    cost_type: CostType
    amount: Decimal = Field(ge=0, max_digits=14, decimal_places=2)
    description: str | None = Field(default=None, max_length=2000)
    user_id: UUID | None = None


def _service(db: Session) -> ProjectService:
    return ProjectService(db)


@router.get("/organizations/{organization_id}/projects")
def list_organization_projects(
    organization_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    return {"items": _service(db).list_projects(context=context, organization_id=organization_id)}


@router.post("/organizations/{organization_id}/projects", status_code=status.HTTP_201_CREATED)
def create_organization_project(
    organization_id: UUID,
    payload: ProjectCreatePayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    project = service.create_project(
        context=context,
        organization_id=organization_id,
        data=ProjectCreateData(
            name=payload.name,
            description=payload.description,
            status=payload.status,
            estimated_hours=payload.estimated_hours,
            hourly_rate=payload.hourly_rate,
            fixed_cost=payload.fixed_cost,
        ),
        request=request,
    )
    return service.serialize_project(project)


@router.get("/projects/assigned")
def list_assigned_projects(
    organization_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    return {"items": _service(db).assigned_projects(context=context, organization_id=organization_id)}


@router.get("/projects/{project_id}")
def get_project(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).project_detail(context=context, project_id=project_id)


@router.patch("/projects/{project_id}")
def update_project(
    project_id: UUID,
    payload: ProjectUpdatePayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    project = service.update_project(
        context=context,
        project_id=project_id,
        data=ProjectUpdateData(
            name=payload.name,
            description=payload.description,
            status=payload.status,
            estimated_hours=payload.estimated_hours,
            hourly_rate=payload.hourly_rate,
            fixed_cost=payload.fixed_cost,
        ),
        request=request,
    )
    return service.serialize_project(project)


@router.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    project_id: UUID,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> Response:
    _service(db).delete_project(context=context, project_id=project_id, request=request)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/projects/{project_id}/employees")
def list_project_employees(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    return {"items": _service(db).list_employees(context=context, project_id=project_id)}


@router.post("/projects/{project_id}/employees", status_code=status.HTTP_201_CREATED)
def add_project_employee(
    project_id: UUID,
    payload: ProjectEmployeePayload,
    request: Request,
    response: Response,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    employee, created = service.add_employee(
        context=context,
        project_id=project_id,
        data=ProjectEmployeeData(user_id=payload.user_id, hourly_rate=payload.hourly_rate, role=payload.role),
        request=request,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return service.serialize_employee(employee)


@router.patch("/projects/{project_id}/employees/{employee_id}")
def update_project_employee(
    project_id: UUID,
    employee_id: UUID,
    payload: ProjectEmployeeUpdatePayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    employee = service.update_employee(
        context=context,
        project_id=project_id,
        employee_id=employee_id,
        data=ProjectEmployeeUpdateData(hourly_rate=payload.hourly_rate, role=payload.role),
        request=request,
    )
    return service.serialize_employee(employee)


@router.delete("/projects/{project_id}/employees/{employee_id}")
def remove_project_employee(
    project_id: UUID,
    employee_id: UUID,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    employee = service.remove_employee(
        context=context,
        project_id=project_id,
        employee_id=employee_id,
        request=request,
    )
    return service.serialize_employee(employee)


@router.get("/projects/{project_id}/costs")
def list_project_costs(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, list[object]]:
    service = _service(db)
    rows = service.list_costs(context=context, project_id=project_id)
    return {"items": [service.serialize_cost(cost) for cost in rows]}


@router.post("/projects/{project_id}/costs", status_code=status.HTTP_201_CREATED)
def add_project_cost(
    project_id: UUID,
    payload: ProjectCostPayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    service = _service(db)
    cost = service.add_cost(
        context=context,
        project_id=project_id,
        data=ProjectCostCreateData(
            cost_type=payload.cost_type,
            amount=payload.amount,
            description=payload.description,
            user_id=payload.user_id,
        ),
        request=request,
    )
    return service.serialize_cost(cost)
