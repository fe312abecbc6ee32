from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from inandout.core.clock import utcnow
from inandout.models.entities import Invitation, InvitationStatus, Membership, OrganizationRole, User


def test_create_list_and_join_organizations(
    client: TestClient,
    make_user,
    make_organization,
    headers_for,
) -> None:
    founder = make_user("founder@test.local")
    joiner = make_user("joiner@test.local")

    created = client.post("/api/v1/organizations", json={"name": "North Star"}, headers=headers_for(founder))
    assert created.status_code == 201
    organization = created.json()
    assert organization["user_role"] == "ADMIN"
    assert organization["is_admin"] is True
    assert organization["owner_id"] == str(founder.id)

    joined = client.post(
        "/api/v1/organizations/join",
        json={"code": organization["code"].upper()},
        headers=headers_for(joiner),
    )
    assert joined.status_code == 200
    assert joined.json()["user_role"] == "EMPLOYEE"

    again = client.post("/api/v1/organizations/join", json={"code": organization["code"]}, headers=headers_for(joiner))
    assert again.status_code == 400

    unknown = client.post("/api/v1/organizations/join", json={"code": "missing1"}, headers=headers_for(joiner))
    assert unknown.status_code == 404

    listed = client.get("/api/v1/organizations", headers=headers_for(joiner))
    assert [item["id"] for item in listed.json()["items"]] == [organization["id"]]


def test_member_listing_respects_role(
    client: TestClient,
    make_user,
    make_organization,
    add_member,
    headers_for,
) -> None:
    admin = make_user("admin@test.local", name="Admin")
    employee = make_user("employee@test.local", name="Employee")
    organization = make_organization("Crew", code="crew0001", owner=admin)
    add_member(organization, employee)

    admin_view = client.get(f"/api/v1/organizations/{organization.id}/members", headers=headers_for(admin))
    assert admin_view.status_code == 200
    assert {item["email"] for item in admin_view.json()["items"]} == {"admin@test.local", "employee@test.local"}

    employee_view = client.get(f"/api/v1/organizations/{organization.id}/members", headers=headers_for(employee))
    assert [item["email"] for item in employee_view.json()["items"]] == ["employee@test.local"]


def test_role_changes_keep_one_admin(
    client: TestClient,
    db_session: Session,
    make_user,
    make_organization,
    add_member,
    headers_for,
) -> None:
    admin = make_user("admin@test.local")
    employee = make_user("employee@test.local")
    organization = make_organization("Crew", code="crew0002", owner=admin)
    add_member(organization, employee)
    url = f"/api/v1/organizations/{organization.id}/members"

    demote_self = client.patch(f"{url}/{admin.id}", json={"role": "EMPLOYEE"}, headers=headers_for(admin))
    assert demote_self.status_code == 409

    promote = client.patch(f"{url}/{employee.id}", json={"role": "ADMIN"}, headers=headers_for(admin))
    assert promote.status_code == 200
    assert promote.json()["role"] == "ADMIN"

    remove_owner = client.delete(f"{url}/{admin.id}", headers=headers_for(employee))
    assert remove_owner.status_code == 409

    demote = client.patch(f"{url}/{employee.id}", json={"role": "EMPLOYEE"}, headers=headers_for(admin))
    assert demote.status_code == 200

    removed = client.delete(f"{url}/{employee.id}", headers=headers_for(admin))
    assert removed.status_code == 204
    assert db_session.scalar(select(Membership).where(Membership.user_id == employee.id)) is None

    employee_attempt = client.patch(f"{url}/{admin.id}", json={"role": "EMPLOYEE"}, headers=headers_for(employee))
    assert employee_attempt.status_code == 403


def test_admin_sets_default_hourly_rate_for_shared_member(
    client: TestClient,
    db_session: Session,
    make_user,
    make_organization,
    add_member,
    headers_for,
) -> None:
    admin = make_user("admin@test.local")
    employee = make_user("employee@test.local")
    stranger = make_user("stranger@test.local")
    organization = make_organization("Crew", code="crew0003", owner=admin)
    add_member(organization, employee)

    response = client.put(
        f"/api/v1/users/{employee.id}/rate",
        json={"default_hourly_rate": "31.50"},
        headers=headers_for(admin),
    )
    assert response.status_code == 200
    assert response.json()["default_hourly_rate"] == "31.50"

    outside = client.put(
        f"/api/v1/users/{stranger.id}/rate",
        json={"default_hourly_rate": "10.00"},
        headers=headers_for(admin),
    )
    assert outside.status_code == 403

    self_service = client.put(
        f"/api/v1/users/{employee.id}/rate",
        json={"default_hourly_rate": "99.00"},
        headers=headers_for(employee),
    )
    assert self_service.status_code == 403

    db_session.expire_all()
    assert db_session.get(User, employee.id).default_hourly_rate == Decimal("31.50")


def test_invitation_create_describe_and_accept(
    client: TestClient,
    db_session: Session,
    make_user,
    make_organization,
    headers_for,
) -> None:
    admin = make_user("admin@test.local")
    invitee = make_user("invitee@test.local")
    organization = make_organization("Guild", code="guild001", owner=admin)

    created = client.post(
        f"/api/v1/organizations/{organization.id}/invitations",
        json={"email": "Invitee@Test.Local", "role": "ADMIN"},
        headers=headers_for(admin),
    )
    assert created.status_code == 201
    invitation = created.json()
    assert invitation["email"] == "invitee@test.local"
    assert invitation["status"] == "PENDING"
    assert len(invitation["token"]) == 64

    duplicate = client.post(
        f"/api/v1/organizations/{organization.id}/invitations",
        json={"email": "invitee@test.local"},
        headers=headers_for(admin),
    )
    assert duplicate.status_code == 400

    described = client.get(f"/api/v1/invitations/{invitation['token']}")
    assert described.status_code == 200
    assert described.json()["organization"]["name"] == "Guild"

    accepted = client.post(f"/api/v1/invitations/{invitation['token']}/accept", headers=headers_for(invitee))
    assert accepted.status_code == 200
    assert accepted.json()["role"] == "ADMIN"

    reused = client.post(f"/api/v1/invitations/{invitation['token']}/accept", headers=headers_for(invitee))
    assert reused.status_code == 400

    listed = client.get(f"/api/v1/organizations/{organization.id}/invitations", headers=headers_for(admin))
    assert [item["status"] for item in listed.json()["items"]] == ["ACCEPTED"]


def test_invitation_rejects_member_wrong_email_and_expired(
    client: TestClient,
    db_session: Session,
    make_user,
    make_organization,
    add_member,
    headers_for,
) -> None:
    admin = make_user("admin@test.local")
    member = make_user("member@test.local")
    someone_else = make_user("someone@test.local")
    organization = make_organization("Guild", code="guild002", owner=admin)
    add_member(organization, member)
    url = f"/api/v1/organizations/{organization.id}/invitations"

    existing_member = client.post(url, json={"email": "member@test.local"}, headers=headers_for(admin))
    assert existing_member.status_code == 400

    by_employee = client.post(url, json={"email": "new@test.local"}, headers=headers_for(member))
    assert by_employee.status_code == 403

    token = client.post(url, json={"email": "new@test.local"}, headers=headers_for(admin)).json()["token"]
    wrong_email = client.post(f"/api/v1/invitations/{token}/accept", headers=headers_for(someone_else))
    assert wrong_email.status_code == 403

    invitation = db_session.scalar(select(Invitation).where(Invitation.token == token))
    invitation.expires_at = utcnow() - timedelta(minutes=1)
    db_session.commit()

    expired = client.get(f"/api/v1/invitations/{token}")
    assert expired.status_code == 400
    db_session.expire_all()
    assert db_session.scalar(select(Invitation.status).where(Invitation.token == token)) is InvitationStatus.EXPIRED

    assert client.get("/api/v1/invitations/not-a-real-token").status_code == 404


def test_revoke_invitation_and_signup_with_token(
    client: TestClient,
    db_session: Session,
    make_user,
    make_organization,
    headers_for,
) -> None:
    admin = make_user("admin@test.local")
    organization = make_organization("Guild", code="guild003", owner=admin)
    url = f"/api/v1/organizations/{organization.id}/invitations"

    revoked_id = client.post(url, json={"email": "gone@test.local"}, headers=headers_for(admin)).json()["id"]
    revoked = client.delete(f"/api/v1/invitations/{revoked_id}", headers=headers_for(admin))
    assert revoked.status_code == 200
    assert revoked.json()["status"] == "REVOKED"
    assert client.delete(f"/api/v1/invitations/{revoked_id}", headers=headers_for(admin)).status_code == 400

    token = client.post(url, json={"email": "newbie@test.local"}, headers=headers_for(admin)).json()["token"]
    mismatch = client.post(
        "/api/v1/auth/signup",
        json={"email": "other@test.local", "password": "newbie-pass", "invitation_token": token},
    )
    assert mismatch.status_code == 400

    signup = client.post(
        "/api/v1/auth/signup",
        json={"email": "newbie@test.local", "password": "newbie-pass", "invitation_token": token},
    )
    assert signup.status_code == 201

    new_user = db_session.scalar(select(User).where(User.email == "newbie@test.local"))
    membership = db_session.scalar(select(Membership).where(Membership.user_id == new_user.id))
    assert membership.organization_id == organization.id
    assert membership.role is OrganizationRole.EMPLOYEE
    assert db_session.scalar(select(Invitation.status).where(Invitation.token == token)) is InvitationStatus.ACCEPTED
