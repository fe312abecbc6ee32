"""Cost, payroll and utilization reporting endpoints."""

from __future__ import annotations

from datetime import date
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from inandout.core.auth import RequestUserContext, get_current_user_context
from inandout.core.rate_limit import rate_limited
from inandout.db.dependencies import get_db_session
from inandout.services.reporting_service import ReportFilters, ReportingService

router = APIRouter(tags=["reports"])


class SummaryReportPayload(BaseModel):
    start_date: date
    end_date: date


class GenerateReportPayload(BaseModel):
    start_date: date | None = None
    end_date: date | None = None
    time_range_days: int = Field(default=30, ge=1, le=366)
    employee_ids: list[UUID] = Field(default_factory=list)
    project_ids: list[UUID] = Field(default_factory=list)


def _service(db: Session) -> ReportingService:
    return ReportingService(db)


@router.post(
    "/organizations/{organization_id}/reports/summary",
    dependencies=[Depends(rate_limited("reports"))],
)
def summary_report(
    organization_id: UUID,
    payload: SummaryReportPayload,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).summary_report(
        context=context,
        organization_id=organization_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
    )


@router.post(
    "/organizations/{organization_id}/reports/{report_key}",
    dependencies=[Depends(rate_limited("reports"))],
)
def generate_report(
    organization_id: UUID,
    report_key: str,
    payload: GenerateReportPayload,
    request: Request,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).generate_report(
        context=context,
        organization_id=organization_id,
        report_key=report_key,
        filters=ReportFilters(
            start_date=payload.start_date,
            end_date=payload.end_date,
            time_range_days=payload.time_range_days,
            employee_ids=payload.employee_ids,
            project_ids=payload.project_ids,
        ),
        request=request,
    )


@router.get(
    "/organizations/{organization_id}/dashboard",
    dependencies=[Depends(rate_limited("reports"))],
)
def organization_dashboard(
    organization_id: UUID,
    time_range: Literal["week", "month", "quarter"] = "month",
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).dashboard(context=context, organization_id=organization_id, time_range=time_range)


@router.get("/projects/{project_id}/cost-summary")
def project_cost_summary(
    project_id: UUID,
    context: RequestUserContext = Depends(get_current_user_context),
    db: Session = Depends(get_db_session),
) -> dict[str, object]:
    return _service(db).project_cost_summary(context=context, project_id=project_id)
