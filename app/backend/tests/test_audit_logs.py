from __future__ import annotations

from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from inandout.core.audit import AuditAction, record_audit
from inandout.models.entities import AuditLog


def test_record_audit_serializes_values(db_session: Session, make_user) -> None:
    user = make_user("admin@test.local")

    record_audit(
        db_session,
        action=AuditAction.USER_UPDATED,
        user_id=user.id,
        entity_id=user.id,
        old_values={"rate": None, "id": user.id},
        new_values={"tags": ("a", "b")},
    )

    log = db_session.scalar(select(AuditLog))
    assert log.entity_type == "UNKNOWN"
    assert log.entity_id == str(user.id)
    assert log.old_values == {"rate": None, "id": str(user.id)}
    assert log.new_values == {"tags": ["a", "b"]}
    assert log.request_metadata["ip_address"] == "unknown"


def test_record_audit_swallows_database_errors(db_session: Session, make_user, caplog) -> None:
    user = make_user("admin@test.local")

    with patch.object(db_session, "commit", side_effect=SQLAlchemyError("boom")):
        record_audit(db_session, action=AuditAction.LOGOUT, user_id=user.id, entity_type="USER")

    assert db_session.scalar(select(AuditLog)) is None
    assert "Dropped audit record LOGOUT" in caplog.text


def test_admin_lists_organization_audit_logs(
    client: TestClient,
    make_user,
    make_organization,
    add_member,
    headers_for,
) -> None:
    admin = make_user("admin@test.local", name="Admin")
    employee = make_user("employee@test.local")
    outsider = make_user("outsider@test.local")
    organization = make_organization("Audited", code="audit001", owner=admin)
    other = make_organization("Elsewhere", code="audit002", owner=outsider)
    add_member(organization, employee)
    headers = headers_for(admin)

    for name in ("One", "Two", "Three"):
        client.post(f"/api/v1/organizations/{organization.id}/projects", json={"name": name}, headers=headers)
    client.post(f"/api/v1/organizations/{other.id}/projects", json={"name": "Hidden"}, headers=headers_for(outsider))

    page = client.get("/api/v1/audit-logs", params={"limit": 2}, headers=headers)
    assert page.status_code == 200
    payload = page.json()
    assert payload["total"] == 3
    assert payload["has_more"] is True
    assert [log["entity_name"] for log in payload["logs"]] == ["Three", "Two"]
    assert payload["logs"][0]["user"] == {"name": "Admin", "email": "admin@test.local"}
    assert page.headers["X-RateLimit-Limit"] == "100"

    rest = client.get("/api/v1/audit-logs", params={"limit": 2, "offset": 2}, headers=headers).json()
    assert rest["has_more"] is False
    assert [log["entity_name"] for log in rest["logs"]] == ["One"]

    filtered = client.get(
        "/api/v1/audit-logs",
        params={"action": "PROJECT_DELETED", "organization_id": str(organization.id)},
        headers=headers,
    )
    assert filtered.json()["total"] == 0

    foreign = client.get("/api/v1/audit-logs", params={"organization_id": str(other.id)}, headers=headers)
    assert foreign.status_code == 403

    employee_view = client.get("/api/v1/audit-logs", headers=headers_for(employee))
    assert employee_view.status_code == 403
