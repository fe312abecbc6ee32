from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from inandout.core.clock import utcnow
from inandout.models.entities import AuditLog, Project, TimeEntry
from inandout.services.time_tracking_service import compute_total_hours


def _project(db: Session, *, organization_id, created_by, name: str = "Website") -> Project:
    now = utcnow()
    project = Project(
        organization_id=organization_id,
        name=name,
        created_by=created_by,
        created_at=now,
        updated_at=now,
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def test_compute_total_hours_rounds_half_up() -> None:
    start = datetime(2026, 10, 1, 9, 0, 0)

    assert compute_total_hours(start, datetime(2026, 10, 1, 17, 30, 0)) == Decimal("8.50")
    assert compute_total_hours(start, datetime(2026, 10, 1, 9, 0, 18)) == Decimal("0.01")
    assert compute_total_hours(start, datetime(2026, 10, 1, 9, 0, 17)) == Decimal("0.00")
    assert compute_total_hours(start, start) == Decimal("0.00")


def test_clock_in_and_out_cycle(
    client: TestClient,
    db_session: Session,
    make_user,
    make_organization,
    headers_for,
) -> None:
    user = make_user("worker@test.local")
    organization = make_organization("Clock Org", code="clock001", owner=user)
    headers = headers_for(user)

    idle = client.get("/api/v1/time/clock", headers=headers)
    assert idle.status_code == 200
    assert idle.json() == {"is_clocked_in": False, "active_entry": None}

    clock_in = client.post(
        "/api/v1/time/clock",
        json={"action": "in", "organization_id": str(organization.id), "description": "Morning"},
        headers=headers,
    )
    assert clock_in.status_code == 200
    entry = clock_in.json()
    assert entry["clock_out"] is None
    assert entry["organization_id"] == str(organization.id)

    again = client.post("/api/v1/time/clock", json={"action": "in"}, headers=headers)
    assert again.status_code == 400
    assert again.json()["detail"] == "Already clocked in."

    active = client.get("/api/v1/time/clock", headers=headers).json()
    assert active["is_clocked_in"] is True
    assert active["active_entry"]["id"] == entry["id"]

    clock_out = client.post("/api/v1/time/clock", json={"action": "out"}, headers=headers)
    assert clock_out.status_code == 200
    closed = clock_out.json()
    assert closed["id"] == entry["id"]
    assert closed["clock_out"] is not None
    assert Decimal(closed["total_hours"]) >= Decimal("0")
    assert closed["description"] == "Morning"

    no_active = client.post("/api/v1/time/clock", json={"action": "out"}, headers=headers)
    assert no_active.status_code == 400
    assert no_active.json()["detail"] == "No active clock in found."

    actions = db_session.scalars(select(AuditLog.action).order_by(AuditLog.created_at)).all()
    assert "TIME_CLOCK_IN" in actions
    assert "TIME_CLOCK_OUT" in actions


def test_clock_rejects_unknown_action_and_foreign_scope(
    client: TestClient,
    db_session: Session,
    make_user,
    make_organization,
    headers_for,
) -> None:
    user = make_user("worker@test.local")
    outsider = make_user("outsider@test.local")
    own_org = make_organization("Own", code="own00001", owner=user)
    other_org = make_organization("Other", code="other001", owner=outsider)
    other_project = _project(db_session, organization_id=other_org.id, created_by=outsider.id)
    headers = headers_for(user)

    invalid = client.post("/api/v1/time/clock", json={"action": "pause"}, headers=headers)
    assert invalid.status_code == 400
    assert invalid.json()["detail"] == "Invalid action."

    foreign = client.post(
        "/api/v1/time/clock",
        json={"action": "in", "organization_id": str(other_org.id)},
        headers=headers,
    )
    assert foreign.status_code == 403

    mismatch = client.post(
        "/api/v1/time/clock",
        json={"action": "in", "organization_id": str(own_org.id), "project_id": str(other_project.id)},
        headers=headers,
    )
    assert mismatch.status_code == 400
    assert mismatch.json()["detail"] == "Project does not belong to this organization."

    assert db_session.scalar(select(TimeEntry)) is None


def test_clock_in_with_project_infers_organization(
    client: TestClient,
    db_session: Session,
    make_user,
    make_organization,
    headers_for,
) -> None:
    user = make_user("worker@test.local")
    organization = make_organization("Infer", code="infer001", owner=user)
    project = _project(db_session, organization_id=organization.id, created_by=user.id)

    response = client.post(
        "/api/v1/time/clock",
        json={"action": "IN", "project_id": str(project.id)},
        headers=headers_for(user),
    )

    assert response.status_code == 200
    assert response.json()["organization_id"] == str(organization.id)
    assert response.json()["project_id"] == str(project.id)


def test_manual_entry_lifecycle(
    client: TestClient,
    db_session: Session,
    make_user,
    make_organization,
    headers_for,
) -> None:
    user = make_user("worker@test.local")
    organization = make_organization("Manual", code="manual01", owner=user)
    headers = headers_for(user)

    created = client.post(
        "/api/v1/time/entries",
        json={
            "clock_in": "2026-10-05T09:00:00",
            "clock_out": "2026-10-05T12:15:00",
            "organization_id": str(organization.id),
            "description": "Planning",
        },
        headers=headers,
    )
    assert created.status_code == 201
    entry = created.json()
    assert entry["total_hours"] == "3.25"
    assert entry["edited_by"] is None

    updated = client.put(
        f"/api/v1/time/entries/{entry['id']}",
        json={"clock_out": "2026-10-05T13:00:00"},
        headers=headers,
    )
    assert updated.status_code == 200
    assert updated.json()["total_hours"] == "4.00"
    assert updated.json()["description"] == "Planning"

    invalid = client.put(
        f"/api/v1/time/entries/{entry['id']}",
        json={"clock_out": "2026-10-05T08:00:00"},
        headers=headers,
    )
    assert invalid.status_code == 422

    listed = client.get("/api/v1/time/entries", headers=headers)
    assert listed.status_code == 200
    assert [item["id"] for item in listed.json()["items"]] == [entry["id"]]

    deleted = client.delete(f"/api/v1/time/entries/{entry['id']}", headers=headers)
    assert deleted.status_code == 204
    assert client.get("/api/v1/time/entries", headers=headers).json()["items"] == []

    actions = set(db_session.scalars(select(AuditLog.action)).all())
    assert {"TIME_ENTRY_CREATED", "TIME_ENTRY_UPDATED", "TIME_ENTRY_DELETED"} <= actions


def test_manual_entry_rejects_clock_out_before_clock_in(
    client: TestClient,
    make_user,
    headers_for,
) -> None:
    user = make_user("worker@test.local")

    response = client.post(
        "/api/v1/time/entries",
        json={"clock_in": "2026-10-05T09:00:00", "clock_out": "2026-10-05T08:59:00"},
        headers=headers_for(user),
    )

    assert response.status_code == 422


def test_admin_manages_employee_entries_and_employee_cannot(
    client: TestClient,
    db_session: Session,
    make_user,
    make_organization,
    add_member,
    headers_for,
) -> None:
    admin = make_user("admin@test.local")
    employee = make_user("employee@test.local")
    colleague = make_user("colleague@test.local")
    organization = make_organization("Team", code="team0001", owner=admin)
    add_member(organization, employee)
    add_member(organization, colleague)

    created = client.post(
        "/api/v1/time/entries",
        json={
            "clock_in": "2026-10-06T08:00:00",
            "clock_out": "2026-10-06T16:00:00",
            "organization_id": str(organization.id),
            "user_id": str(employee.id),
        },
        headers=headers_for(admin),
    )
    assert created.status_code == 201
    entry = created.json()
    assert entry["user_id"] == str(employee.id)
    assert entry["edited_by"] == str(admin.id)
    assert entry["edited_at"] is not None

    missing_org = client.get(
        "/api/v1/time/entries",
        params={"user_id": str(employee.id)},
        headers=headers_for(admin),
    )
    assert missing_org.status_code == 422

    admin_view = client.get(
        "/api/v1/time/entries",
        params={"user_id": str(employee.id), "organization_id": str(organization.id)},
        headers=headers_for(admin),
    )
    assert admin_view.status_code == 200
    assert len(admin_view.json()["items"]) == 1

    own_view = client.get("/api/v1/time/entries", headers=headers_for(employee))
    assert [item["id"] for item in own_view.json()["items"]] == [entry["id"]]

    colleague_view = client.get(
        "/api/v1/time/entries",
        params={"user_id": str(employee.id), "organization_id": str(organization.id)},
        headers=headers_for(colleague),
    )
    assert colleague_view.status_code == 403

    colleague_edit = client.put(
        f"/api/v1/time/entries/{entry['id']}",
        json={"description": "hijack"},
        headers=headers_for(colleague),
    )
    assert colleague_edit.status_code == 403

    colleague_delete = client.delete(f"/api/v1/time/entries/{entry['id']}", headers=headers_for(colleague))
    assert colleague_delete.status_code == 403

    admin_delete = client.delete(f"/api/v1/time/entries/{entry['id']}", headers=headers_for(admin))
    assert admin_delete.status_code == 204


def test_admin_cannot_create_entry_for_non_member(
    client: TestClient,
    make_user,
    make_organization,
    headers_for,
) -> None:
    admin = make_user("admin@test.local")
    stranger = make_user("stranger@test.local")
    organization = make_organization("Team", code="team0002", owner=admin)

    response = client.post(
        "/api/v1/time/entries",
        json={
            "clock_in": "2026-10-06T08:00:00",
            "clock_out": "2026-10-06T09:00:00",
            "organization_id": str(organization.id),
            "user_id": str(stranger.id),
        },
        headers=headers_for(admin),
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "User is not a member of this organization."


def test_unknown_entry_returns_404(client: TestClient, make_user, headers_for) -> None:
    user = make_user("worker@test.local")

    response = client.delete(
        "/api/v1/time/entries/00000000-0000-0000-0000-000000000000",
        headers=headers_for(user),
    )

    assert response.status_code == 404
