"""Cost, payroll and utilization reporting plus the admin dashboard."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, Request, status
from sqlalchemy.orm import Session

from inandout.core.audit import AuditAction, record_audit
from inandout.core.auth import RequestUserContext, require_organization_admin
from inandout.core.clock import utcnow
from inandout.core.config import get_settings
from inandout.models.entities import Project, ProjectStatus, TimeEntry, User
from inandout.repositories.workforce_repository import WorkforceRepository
from inandout.services.time_tracking_service import compute_total_hours

ZERO = Decimal("0.00")
Q2 = Decimal("0.01")
HUNDRED = Decimal("100")
NO_PROJECT = "No Project"

REPORT_KEYS = (
    "time-tracking-summary",
    "project-profitability",
    "team-utilization",
    "cost-breakdown",
)
DASHBOARD_RANGES = {"week": 7, "month": 30, "quarter": 90}
TOP_PERFORMERS = 10
ACTIVITY_DAYS = 7
RECENT_ACTIVITY = 15


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2)


def _safe_percent(numerator: Decimal, denominator: Decimal) -> str | None:
    if denominator == ZERO:
        return None
    return str(_q2(numerator / denominator * HUNDRED))


def _display_name(user: User) -> str:
    return user.name or user.email


@dataclass(slots=True)
class ReportFilters:
    start_date: date | None = None
    end_date: date | None = None
    time_range_days: int = 30
    employee_ids: list[UUID] = field(default_factory=list)
    project_ids: list[UUID] = field(default_factory=list)


@dataclass(slots=True)
class _CostedEntry:
    entry: TimeEntry
    user: User
    project: Project | None
    hours: Decimal
    rate: Decimal
    cost: Decimal


class ReportingService:
    """Aggregates completed time entries into cost and workload reports."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = WorkforceRepository(db)
        self.settings = get_settings()

    # ---------- Access / ranges ----------
    def _ensure_admin(self, *, context: RequestUserContext, organization_id: UUID) -> None:
        if self.repo.get_organization(organization_id) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found.")
        require_organization_admin(context, organization_id)

    @staticmethod
    def _day_range(start_date: date, end_date: date) -> tuple[datetime, datetime]:
        if end_date < start_date:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="end_date must be greater than or equal to start_date.",
            )
        return datetime.combine(start_date, time.min), datetime.combine(end_date, time.max)

    def _filter_range(self, filters: ReportFilters) -> tuple[datetime, datetime]:
        if filters.start_date is not None and filters.end_date is not None:
            return self._day_range(filters.start_date, filters.end_date)
        end = utcnow()
        return end - timedelta(days=filters.time_range_days), end

    # ---------- Rates ----------
    def resolve_hourly_rate(
        self,
        *,
        user: User,
        project: Project | None,
        project_rates: dict[tuple[UUID, UUID], Decimal],
    ) -> Decimal:
        """Labor rate for an entry: project assignment, user default, project, global default."""

        if project is not None:
            assignment_rate = project_rates.get((project.id, user.id))
            if assignment_rate is not None:
                return assignment_rate
        if user.default_hourly_rate is not None:
            return user.default_hourly_rate
        if project is not None and project.hourly_rate is not None:
            return project.hourly_rate
        return self.settings.default_hourly_rate

    def _costed_entries(
        self,
        organization_id: UUID,
        *,
        start: datetime | None,
        end: datetime | None,
        user_ids: list[UUID] | None = None,
        project_ids: list[UUID] | None = None,
    ) -> list[_CostedEntry]:
        rows = self.repo.list_completed_entries(
            organization_id,
            start=start,
            end=end,
            user_ids=user_ids,
            project_ids=project_ids,
        )
        project_rates = self.repo.active_project_rates(
            list({project.id for _, _, project in rows if project is not None})
        )
        costed = []
        for entry, user, project in rows:
            hours = entry.total_hours
            if hours is None:
                hours = compute_total_hours(entry.clock_in, entry.clock_out)
            rate = self.resolve_hourly_rate(user=user, project=project, project_rates=project_rates)
            costed.append(
                _CostedEntry(entry=entry, user=user, project=project, hours=hours, rate=rate, cost=_q2(hours * rate))
            )
        return costed

    @staticmethod
    def _serialize_costed(row: _CostedEntry) -> dict[str, object]:
        return {
            "id": str(row.entry.id),
            "date": row.entry.clock_in.date().isoformat(),
            "user_id": str(row.user.id),
            "employee_name": _display_name(row.user),
            "employee_email": row.user.email,
            "project_id": str(row.project.id) if row.project else None,
            "project_name": row.project.name if row.project else NO_PROJECT,
            "clock_in": row.entry.clock_in.isoformat(),
            "clock_out": row.entry.clock_out.isoformat() if row.entry.clock_out else None,
            "hours": str(_q2(row.hours)),
            "rate": str(_q2(row.rate)),
            "cost": str(row.cost),
            "description": row.entry.description,
        }

    # ---------- Summary report ----------
    def summary_report(
        self,
        *,
        context: RequestUserContext,
        organization_id: UUID,
        start_date: date,
        end_date: date,
    ) -> dict[str, object]:
        self._ensure_admin(context=context, organization_id=organization_id)
        start, end = self._day_range(start_date, end_date)
        rows = self._costed_entries(organization_id, start=start, end=end)

        employees: dict[UUID, dict[str, object]] = {}
        projects: dict[UUID | None, dict[str, object]] = {}
        total_hours = ZERO
        total_cost = ZERO
        for row in rows:
            total_hours += row.hours
            total_cost += row.cost

            employee = employees.setdefault(
                row.user.id,
                {"name": _display_name(row.user), "email": row.user.email, "hours": ZERO, "cost": ZERO, "entries": 0},
            )
            employee["hours"] += row.hours
            employee["cost"] += row.cost
            employee["entries"] += 1

            project_key = row.project.id if row.project else None
            project = projects.setdefault(
                project_key,
                {"name": row.project.name if row.project else NO_PROJECT, "hours": ZERO, "cost": ZERO, "entries": 0},
            )
            project["hours"] += row.hours
            project["cost"] += row.cost
            project["entries"] += 1

        employee_breakdown = [
            {
                "user_id": str(user_id),
                "name": bucket["name"],
                "email": bucket["email"],
                "hours": str(_q2(bucket["hours"])),
                "cost": str(_q2(bucket["cost"])),
                "entries": bucket["entries"],
            }
            for user_id, bucket in sorted(employees.items(), key=lambda item: item[1]["hours"], reverse=True)
        ]
        project_breakdown = [
            {
                "project_id": str(project_id) if project_id else None,
                "name": bucket["name"],
                "hours": str(_q2(bucket["hours"])),
                "cost": str(_q2(bucket["cost"])),
                "entries": bucket["entries"],
            }
            for project_id, bucket in sorted(projects.items(), key=lambda item: item[1]["hours"], reverse=True)
        ]

        return {
            "organization_id": str(organization_id),
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "total_hours": str(_q2(total_hours)),
            "total_cost": str(_q2(total_cost)),
            "employee_breakdown": employee_breakdown,
            "project_breakdown": project_breakdown,
            "entries": [self._serialize_costed(row) for row in rows],
        }

    # ---------- Dataset reports ----------
    def generate_report(
        self,
        *,
        context: RequestUserContext,
        organization_id: UUID,
        report_key: str,
        filters: ReportFilters,
        request: Request | None = None,
    ) -> dict[str, object]:
        if report_key not in REPORT_KEYS:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown report.")
        self._ensure_admin(context=context, organization_id=organization_id)
        start, end = self._filter_range(filters)

        if report_key == "time-tracking-summary":
            records, summary = self._time_tracking_records(organization_id, start, end, filters)
        elif report_key == "project-profitability":
            records, summary = self._profitability_records(organization_id, start, end, filters)
        elif report_key == "team-utilization":
            records, summary = self._utilization_records(organization_id, start, end, filters)
        else:
            records, summary = self._cost_breakdown_records(organization_id, start, end, filters)

        payload = {
            "report_key": report_key,
            "organization_id": str(organization_id),
            "start": start.isoformat(),
            "end": end.isoformat(),
            "generated_at": utcnow().isoformat(),
            "record_count": len(records),
            "summary": summary,
            "records": records,
        }
        record_audit(
            self.db,
            action=AuditAction.DATA_EXPORTED,
            user_id=context.user_id,
            organization_id=organization_id,
            entity_type="REPORT",
            entity_name=report_key,
            new_values={"record_count": len(records), "start": start, "end": end},
            request=request,
        )
        return payload

    def _time_tracking_records(
        self,
        organization_id: UUID,
        start: datetime,
        end: datetime,
        filters: ReportFilters,
    ) -> tuple[list[dict[str, object]], dict[str, object]]:
        rows = self._costed_entries(
            organization_id,
            start=start,
            end=end,
            user_ids=filters.employee_ids or None,
            project_ids=filters.project_ids or None,
        )
        summary = {
            "total_hours": str(_q2(sum((row.hours for row in rows), ZERO))),
            "total_cost": str(_q2(sum((row.cost for row in rows), ZERO))),
            "employees": len({row.user.id for row in rows}),
        }
        return [self._serialize_costed(row) for row in rows], summary

    def _profitability_records(
        self,
        organization_id: UUID,
        start: datetime,
        end: datetime,
        filters: ReportFilters,
    ) -> tuple[list[dict[str, object]], dict[str, object]]:
        projects = self.repo.list_projects(organization_id)
        if filters.project_ids:
            wanted = set(filters.project_ids)
            projects = [project for project in projects if project.id in wanted]

        rows = self._costed_entries(
            organization_id,
            start=start,
            end=end,
            project_ids=[project.id for project in projects] or None,
        )
        hours_by_project: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        labor_by_project: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for row in rows:
            if row.project is None:
                continue
            hours_by_project[row.project.id] += row.hours
            labor_by_project[row.project.id] += row.cost

        records = []
        totals = {"revenue": ZERO, "cost": ZERO, "profit": ZERO}
        for project in projects:
            hours = hours_by_project[project.id]
            labor = _q2(labor_by_project[project.id])
            # Recorded project costs are lifetime totals; only hours follow the report window.
            total_cost = _q2(sum((cost.amount for cost in self.repo.list_project_costs(project.id)), ZERO))
            billing_rate = project.hourly_rate if project.hourly_rate is not None else self.settings.default_billing_rate
            revenue = _q2(hours * billing_rate)
            profit = _q2(revenue - total_cost)
            totals["revenue"] += revenue
            totals["cost"] += total_cost
            totals["profit"] += profit
            records.append(
                {
                    "project_id": str(project.id),
                    "project_name": project.name,
                    "status": project.status.value,
                    "hours": str(_q2(hours)),
                    "billing_rate": str(_q2(billing_rate)),
                    "revenue": str(revenue),
                    "labor_cost": str(labor),
                    "total_cost": str(total_cost),
                    "profit": str(profit),
                    "margin_percent": _safe_percent(profit, revenue),
                    "roi_percent": _safe_percent(profit, total_cost),
                }
            )

        summary = {key: str(_q2(value)) for key, value in totals.items()}
        summary["margin_percent"] = _safe_percent(totals["profit"], totals["revenue"])
        return records, summary

    def _utilization_records(
        self,
        organization_id: UUID,
        start: datetime,
        end: datetime,
        filters: ReportFilters,
    ) -> tuple[list[dict[str, object]], dict[str, object]]:
        members = self.repo.list_members(organization_id)
        if filters.employee_ids:
            wanted = set(filters.employee_ids)
            members = [(membership, user) for membership, user in members if user.id in wanted]

        rows = self._costed_entries(
            organization_id,
            start=start,
            end=end,
            user_ids=[user.id for _, user in members] or None,
        )
        hours_by_user: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        entries_by_user: dict[UUID, int] = defaultdict(int)
        projects_by_user: dict[UUID, dict[str, Decimal]] = defaultdict(lambda: defaultdict(lambda: ZERO))
        for row in rows:
            hours_by_user[row.user.id] += row.hours
            entries_by_user[row.user.id] += 1
            projects_by_user[row.user.id][row.project.name if row.project else NO_PROJECT] += row.hours

        capacity = self.settings.utilization_hours_per_period
        records = []
        for membership, user in members:
            hours = hours_by_user[user.id]
            utilization = min(hours / capacity * HUNDRED, HUNDRED)
            records.append(
                {
                    "user_id": str(user.id),
                    "employee_name": _display_name(user),
                    "employee_email": user.email,
                    "role": membership.role.value,
                    "hours": str(_q2(hours)),
                    "entries": entries_by_user[user.id],
                    "utilization_percent": str(_q2(utilization)),
                    "projects": {name: str(_q2(value)) for name, value in projects_by_user[user.id].items()},
                }
            )
        records.sort(key=lambda record: Decimal(str(record["hours"])), reverse=True)

        total_hours = sum(hours_by_user.values(), ZERO)
        summary = {
            "members": len(members),
            "total_hours": str(_q2(total_hours)),
            "capacity_hours_per_member": str(capacity),
        }
        return records, summary

    def _cost_breakdown_records(
        self,
        organization_id: UUID,
        start: datetime,
        end: datetime,
        filters: ReportFilters,
    ) -> tuple[list[dict[str, object]], dict[str, object]]:
        rows = self.repo.list_organization_costs(
            organization_id,
            start=start,
            end=end,
            project_ids=filters.project_ids or None,
        )
        users = self.repo.users_by_ids(list({cost.user_id for cost, _ in rows if cost.user_id is not None}))

        by_type: dict[str, Decimal] = defaultdict(lambda: ZERO)
        records = []
        for cost, project in rows:
            by_type[cost.cost_type.value] += cost.amount
            user = users.get(cost.user_id) if cost.user_id else None
            records.append(
                {
                    "id": str(cost.id),
                    "date": cost.created_at.date().isoformat(),
                    "project_id": str(project.id),
                    "project_name": project.name,
                    "cost_type": cost.cost_type.value,
                    "amount": str(cost.amount),
                    "description": cost.description,
                    "employee_name": _display_name(user) if user else None,
                }
            )

        summary = {
            "total": str(_q2(sum(by_type.values(), ZERO))),
            "by_type": {key: str(_q2(value)) for key, value in sorted(by_type.items())},
        }
        return records, summary

    # ---------- Project cost summary ----------
    def project_cost_summary(self, *, context: RequestUserContext, project_id: UUID) -> dict[str, object]:
        project = self.repo.get_project(project_id)
        if project is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found.")
        require_organization_admin(context, project.organization_id)

        rows = self._costed_entries(project.organization_id, start=None, end=None, project_ids=[project.id])
        labor: dict[UUID, dict[str, object]] = {}
        for row in rows:
            bucket = labor.setdefault(
                row.user.id,
                {"name": _display_name(row.user), "hours": ZERO, "rate": row.rate, "cost": ZERO},
            )
            bucket["hours"] += row.hours
            bucket["cost"] += row.cost

        labor_cost = _q2(sum((row.cost for row in rows), ZERO))
        recorded = _q2(sum((cost.amount for cost in self.repo.list_project_costs(project.id)), ZERO))
        fixed_cost = _q2(project.fixed_cost or ZERO)
        return {
            "project_id": str(project.id),
            "project_name": project.name,
            "labor": [
                {
                    "user_id": str(user_id),
                    "name": bucket["name"],
                    "hours": str(_q2(bucket["hours"])),
                    "rate": str(_q2(bucket["rate"])),
                    "cost": str(_q2(bucket["cost"])),
                }
                for user_id, bucket in sorted(labor.items(), key=lambda item: item[1]["cost"], reverse=True)
            ],
            "labor_cost": str(labor_cost),
            "recorded_costs": str(recorded),
            "fixed_cost": str(fixed_cost),
            "total_cost": str(_q2(labor_cost + recorded + fixed_cost)),
        }

    # ---------- Dashboard ----------
    def dashboard(
        self,
        *,
        context: RequestUserContext,
        organization_id: UUID,
        time_range: str = "month",
    ) -> dict[str, object]:
        if time_range not in DASHBOARD_RANGES:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="time_range must be one of: week, month, quarter.",
            )
        self._ensure_admin(context=context, organization_id=organization_id)

        now = utcnow()
        start = now - timedelta(days=DASHBOARD_RANGES[time_range])
        rows = self._costed_entries(organization_id, start=start, end=now)
        members = self.repo.list_members(organization_id)
        projects = self.repo.list_projects(organization_id)

        total_hours = _q2(sum((row.hours for row in rows), ZERO))
        total_cost = _q2(sum((row.cost for row in rows), ZERO))
        active_user_ids = {row.user.id for row in rows}

        performers: dict[UUID, dict[str, object]] = {}
        for row in rows:
            bucket = performers.setdefault(
                row.user.id,
                {"name": _display_name(row.user), "email": row.user.email, "hours": ZERO, "cost": ZERO, "entries": 0},
            )
            bucket["hours"] += row.hours
            bucket["cost"] += row.cost
            bucket["entries"] += 1
        top_performers = [
            {
                "user_id": str(user_id),
                "name": bucket["name"],
                "email": bucket["email"],
                "hours": str(_q2(bucket["hours"])),
                "cost": str(_q2(bucket["cost"])),
                "entries": bucket["entries"],
            }
            for user_id, bucket in sorted(performers.items(), key=lambda item: item[1]["hours"], reverse=True)[
                :TOP_PERFORMERS
            ]
        ]

        today = now.date()
        daily: dict[date, list[Decimal | int]] = {
            today - timedelta(days=offset): [ZERO, 0] for offset in range(ACTIVITY_DAYS - 1, -1, -1)
        }
        for row in rows:
            bucket = daily.get(row.entry.clock_in.date())
            if bucket is not None:
                bucket[0] += row.hours
                bucket[1] += 1
        weekly_activity = [
            {"date": day.isoformat(), "hours": str(_q2(values[0])), "entries": values[1]}
            for day, values in daily.items()
        ]

        hours_by_project: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        cost_by_project: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        contributors: dict[UUID, set[UUID]] = defaultdict(set)
        for row in rows:
            if row.project is None:
                continue
            hours_by_project[row.project.id] += row.hours
            cost_by_project[row.project.id] += row.cost
            contributors[row.project.id].add(row.user.id)
        project_stats = [
            {
                "project_id": str(project.id),
                "name": project.name,
                "status": project.status.value,
                "hours": str(_q2(hours_by_project[project.id])),
                "cost": str(_q2(cost_by_project[project.id])),
                "contributors": len(contributors[project.id]),
                "estimated_hours": str(project.estimated_hours) if project.estimated_hours is not None else None,
            }
            for project in projects
        ]

        activity: list[tuple[datetime, dict[str, object]]] = []
        for entry, user, project in self.repo.list_recent_entries(organization_id, limit=RECENT_ACTIVITY):
            activity.append(
                (
                    entry.created_at,
                    {
                        "type": "time_entry",
                        "user_name": _display_name(user),
                        "project_name": project.name if project else None,
                        "hours": str(entry.total_hours) if entry.total_hours is not None else None,
                        "timestamp": entry.created_at.isoformat(),
                    },
                )
            )
        for project in projects[:RECENT_ACTIVITY]:
            activity.append(
                (
                    project.created_at,
                    {
                        "type": "project_created",
                        "project_name": project.name,
                        "timestamp": project.created_at.isoformat(),
                    },
                )
            )
        activity.sort(key=lambda item: item[0], reverse=True)

        return {
            "organization_id": str(organization_id),
            "time_range": time_range,
            "stats": {
                "total_users": len(members),
                "active_users": len(active_user_ids),
                "total_projects": len(projects),
                "active_projects": sum(1 for project in projects if project.status is ProjectStatus.ACTIVE),
                "total_hours": str(total_hours),
                "total_cost": str(total_cost),
                "avg_hours_per_user": str(
                    _q2(total_hours / Decimal(len(active_user_ids))) if active_user_ids else ZERO
                ),
            },
            "top_performers": top_performers,
            "weekly_activity": weekly_activity,
            "project_stats": project_stats,
            "recent_activity": [item for _, item in activity[:RECENT_ACTIVITY]],
        }
