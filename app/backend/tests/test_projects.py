from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from inandout.core.clock import utcnow
from inandout.models.entities import AuditLog, ProjectEmployee, TimeEntry


def _entry(db: Session, *, user_id, organization_id, project_id, clock_in: datetime, clock_out: datetime, hours: str):
    now = utcnow()
    entry = TimeEntry(
        user_id=user_id,
        organization_id=organization_id,
        project_id=UUID(str(project_id)),
        clock_in=clock_in,
        clock_out=clock_out,
        total_hours=Decimal(hours),
        created_at=now,
        updated_at=now,
    )
    db.add(entry)
    db.commit()
    return entry


def test_admin_creates_and_lists_projects(
    client: TestClient,
    db_session: Session,
    make_user,
    make_organization,
    add_member,
    headers_for,
) -> None:
    admin = make_user("admin@test.local")
    employee = make_user("employee@test.local")
    organization = make_organization("Builders", code="build001", owner=admin)
    add_member(organization, employee)

    created = client.post(
        f"/api/v1/organizations/{organization.id}/projects",
        json={"name": "  Warehouse  ", "hourly_rate": "80.00", "estimated_hours": "10"},
        headers=headers_for(admin),
    )
    assert created.status_code == 201
    project = created.json()
    assert project["name"] == "Warehouse"
    assert project["status"] == "ACTIVE"
    assert project["hourly_rate"] == "80.00"

    forbidden = client.post(
        f"/api/v1/organizations/{organization.id}/projects",
        json={"name": "Nope"},
        headers=headers_for(employee),
    )
    assert forbidden.status_code == 403

    _entry(
        db_session,
        user_id=employee.id,
        organization_id=organization.id,
        project_id=project["id"],
        clock_in=datetime(2026, 10, 1, 9, 0),
        clock_out=datetime(2026, 10, 1, 13, 0),
        hours="4.00",
    )

    listed = client.get(f"/api/v1/organizations/{organization.id}/projects", headers=headers_for(employee))
    assert listed.status_code == 200
    items = listed.json()["items"]
    assert len(items) == 1
    assert items[0]["total_hours"] == "4.00"
    assert items[0]["time_entry_count"] == 1

    assert db_session.scalar(select(AuditLog).where(AuditLog.action == "PROJECT_CREATED")) is not None


def test_project_detail_reports_stats(
    client: TestClient,
    db_session: Session,
    make_user,
    make_organization,
    add_member,
    headers_for,
) -> None:
    admin = make_user("admin@test.local")
    employee = make_user("employee@test.local", name="Emp")
    organization = make_organization("Builders", code="build002", owner=admin)
    add_member(organization, employee)
    headers = headers_for(admin)

    project_id = client.post(
        f"/api/v1/organizations/{organization.id}/projects",
        json={"name": "Bridge", "estimated_hours": "8"},
        headers=headers,
    ).json()["id"]
    client.post(
        f"/api/v1/projects/{project_id}/costs",
        json={"cost_type": "EXPENSE", "amount": "120.50", "description": "Materials"},
        headers=headers,
    )
    _entry(
        db_session,
        user_id=employee.id,
        organization_id=organization.id,
        project_id=project_id,
        clock_in=datetime(2026, 10, 2, 8, 0),
        clock_out=datetime(2026, 10, 2, 14, 0),
        hours="6.00",
    )

    detail = client.get(f"/api/v1/projects/{project_id}", headers=headers)

    assert detail.status_code == 200
    payload = detail.json()
    assert payload["stats"] == {
        "total_hours": "6.00",
        "total_cost": "120.50",
        "unique_contributors": 1,
        "completion_percentage": "75.00",
    }
    assert [cost["description"] for cost in payload["costs"]] == ["Materials"]

    employee_view = client.get(f"/api/v1/projects/{project_id}", headers=headers_for(employee))
    assert employee_view.status_code == 403


def test_update_and_delete_project(
    client: TestClient,
    db_session: Session,
    make_user,
    make_organization,
    headers_for,
) -> None:
    admin = make_user("admin@test.local")
    organization = make_organization("Builders", code="build003", owner=admin)
    headers = headers_for(admin)

    project_id = client.post(
        f"/api/v1/organizations/{organization.id}/projects",
        json={"name": "Tower"},
        headers=headers,
    ).json()["id"]

    updated = client.patch(
        f"/api/v1/projects/{project_id}",
        json={"status": "ON_HOLD", "fixed_cost": "1000.00"},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json()["status"] == "ON_HOLD"
    assert updated.json()["fixed_cost"] == "1000.00"
    assert updated.json()["name"] == "Tower"

    _entry(
        db_session,
        user_id=admin.id,
        organization_id=organization.id,
        project_id=project_id,
        clock_in=datetime(2026, 10, 3, 9, 0),
        clock_out=datetime(2026, 10, 3, 10, 0),
        hours="1.00",
    )
    blocked = client.delete(f"/api/v1/projects/{project_id}", headers=headers)
    assert blocked.status_code == 409

    empty_id = client.post(
        f"/api/v1/organizations/{organization.id}/projects",
        json={"name": "Scratch"},
        headers=headers,
    ).json()["id"]
    removed = client.delete(f"/api/v1/projects/{empty_id}", headers=headers)
    assert removed.status_code == 204
    assert client.get(f"/api/v1/projects/{empty_id}", headers=headers).status_code == 404


def test_project_employee_assignment_lifecycle(
    client: TestClient,
    db_session: Session,
    make_user,
    make_organization,
    add_member,
    headers_for,
) -> None:
    admin = make_user("admin@test.local")
    employee = make_user("employee@test.local", name="Emp")
    stranger = make_user("stranger@test.local")
    organization = make_organization("Builders", code="build004", owner=admin)
    add_member(organization, employee)
    headers = headers_for(admin)

    project_id = client.post(
        f"/api/v1/organizations/{organization.id}/projects",
        json={"name": "Canal"},
        headers=headers,
    ).json()["id"]

    added = client.post(
        f"/api/v1/projects/{project_id}/employees",
        json={"user_id": str(employee.id), "hourly_rate": "42.00", "role": "Foreman"},
        headers=headers,
    )
    assert added.status_code == 201
    assignment = added.json()
    assert assignment["is_active"] is True
    assert assignment["hourly_rate"] == "42.00"

    duplicate = client.post(
        f"/api/v1/projects/{project_id}/employees",
        json={"user_id": str(employee.id)},
        headers=headers,
    )
    assert duplicate.status_code == 400

    outsider = client.post(
        f"/api/v1/projects/{project_id}/employees",
        json={"user_id": str(stranger.id)},
        headers=headers,
    )
    assert outsider.status_code == 400

    assigned = client.get(
        "/api/v1/projects/assigned",
        params={"organization_id": str(organization.id)},
        headers=headers_for(employee),
    )
    assert assigned.status_code == 200
    assert [item["id"] for item in assigned.json()["items"]] == [project_id]
    assert assigned.json()["items"][0]["assignment"]["role"] == "Foreman"

    rate_change = client.patch(
        f"/api/v1/projects/{project_id}/employees/{assignment['id']}",
        json={"hourly_rate": "45.00"},
        headers=headers,
    )
    assert rate_change.status_code == 200
    assert rate_change.json()["hourly_rate"] == "45.00"
    assert rate_change.json()["role"] == "Foreman"

    removed = client.delete(f"/api/v1/projects/{project_id}/employees/{assignment['id']}", headers=headers)
    assert removed.status_code == 200
    assert removed.json()["is_active"] is False
    assert removed.json()["left_at"] is not None

    no_longer_assigned = client.get(
        "/api/v1/projects/assigned",
        params={"organization_id": str(organization.id)},
        headers=headers_for(employee),
    )
    assert no_longer_assigned.json()["items"] == []

    readded = client.post(
        f"/api/v1/projects/{project_id}/employees",
        json={"user_id": str(employee.id), "hourly_rate": "50.00"},
        headers=headers,
    )
    assert readded.status_code == 200
    assert readded.json()["id"] == assignment["id"]
    assert readded.json()["is_active"] is True
    assert len(db_session.scalars(select(ProjectEmployee)).all()) == 1

    actions = set(db_session.scalars(select(AuditLog.action)).all())
    assert {"PROJECT_MEMBER_ADDED", "PROJECT_MEMBER_RATE_CHANGED", "PROJECT_MEMBER_REMOVED"} <= actions


def test_assigned_projects_hide_inactive_projects(
    client: TestClient,
    make_user,
    make_organization,
    add_member,
    headers_for,
) -> None:
    admin = make_user("admin@test.local")
    employee = make_user("employee@test.local")
    organization = make_organization("Builders", code="build005", owner=admin)
    add_member(organization, employee)
    headers = headers_for(admin)

    project_id = client.post(
        f"/api/v1/organizations/{organization.id}/projects",
        json={"name": "Paused", "status": "ON_HOLD"},
        headers=headers,
    ).json()["id"]
    client.post(f"/api/v1/projects/{project_id}/employees", json={"user_id": str(employee.id)}, headers=headers)

    assigned = client.get(
        "/api/v1/projects/assigned",
        params={"organization_id": str(organization.id)},
        headers=headers_for(employee),
    )

    assert assigned.status_code == 200
    assert assigned.json()["items"] == []


def test_project_costs_require_admin(
    client: TestClient,
    make_user,
    make_organization,
    add_member,
    headers_for,
) -> None:
    admin = make_user("admin@test.local")
    employee = make_user("employee@test.local")
    organization = make_organization("Builders", code="build006", owner=admin)
    add_member(organization, employee)
    headers = headers_for(admin)

    project_id = client.post(
        f"/api/v1/organizations/{organization.id}/projects",
        json={"name": "Road"},
        headers=headers,
    ).json()["id"]

    created = client.post(
        f"/api/v1/projects/{project_id}/costs",
        json={"cost_type": "FIXED_COST", "amount": "300.00", "user_id": str(employee.id)},
        headers=headers,
    )
    assert created.status_code == 201
    assert created.json()["amount"] == "300.00"

    negative = client.post(
        f"/api/v1/projects/{project_id}/costs",
        json={"cost_type": "EXPENSE", "amount": "-1"},
        headers=headers,
    )
    assert negative.status_code == 422

    listed = client.get(f"/api/v1/projects/{project_id}/costs", headers=headers)
    assert [item["cost_type"] for item in listed.json()["items"]] == ["FIXED_COST"]

    employee_list = client.get(f"/api/v1/projects/{project_id}/costs", headers=headers_for(employee))
    assert employee_list.status_code == 403
