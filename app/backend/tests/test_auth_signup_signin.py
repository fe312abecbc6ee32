from __future__ import annotations

from datetime import timedelta

from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import select
from sqlalchemy.orm import Session

from inandout.core.clock import utcnow
from inandout.core.config import get_settings
from inandout.core.security import hash_password, verify_password
from inandout.models.entities import AuditLog, Membership, Organization, OrganizationRole, User


def test_password_hash_round_trip() -> None:
    password_hash = hash_password("s3cret-value")

    assert password_hash != "s3cret-value"
    assert verify_password(password_hash, "s3cret-value") is True
    assert verify_password(password_hash, "other") is False
    assert verify_password(None, "s3cret-value") is False


def test_signup_creates_organization_with_admin_membership(client: TestClient, db_session: Session) -> None:
    response = client.post(
        "/api/v1/auth/signup",
        json={
            "email": "Owner@Test.Local",
            "password": "owner-pass",
            "name": "Owner",
            "organization_name": "Acme Works",
        },
    )

    assert response.status_code == 201
    user_payload = response.json()["user"]
    assert user_payload["email"] == "owner@test.local"
    assert user_payload["system_admin"] is False

    organization = db_session.scalar(select(Organization))
    assert organization is not None
    assert organization.name == "Acme Works"
    assert organization.code.startswith("acmework")
    membership = db_session.scalar(select(Membership))
    assert membership.role is OrganizationRole.ADMIN
    assert str(membership.user_id) == user_payload["id"]
    assert str(organization.owner_id) == user_payload["id"]

    actions = set(db_session.scalars(select(AuditLog.action)).all())
    assert {"USER_CREATED", "ORGANIZATION_CREATED"} <= actions


def test_signup_with_organization_code_joins_as_employee(
    client: TestClient,
    db_session: Session,
    make_user,
    make_organization,
) -> None:
    owner = make_user("owner@test.local")
    organization = make_organization("Join Me", code="joinme01", owner=owner)

    response = client.post(
        "/api/v1/auth/signup",
        json={"email": "worker@test.local", "password": "worker-pass", "organization_code": "JOINME01"},
    )

    assert response.status_code == 201
    user_id = response.json()["user"]["id"]
    membership = db_session.scalar(
        select(Membership).where(Membership.organization_id == organization.id, Membership.role == OrganizationRole.EMPLOYEE)
    )
    assert membership is not None
    assert str(membership.user_id) == user_id


def test_signup_rejects_duplicate_email_and_bad_code(client: TestClient, make_user) -> None:
    make_user("taken@test.local")

    duplicate = client.post(
        "/api/v1/auth/signup",
        json={"email": "TAKEN@test.local", "password": "whatever", "organization_name": "Dup"},
    )
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "User already exists."

    bad_code = client.post(
        "/api/v1/auth/signup",
        json={"email": "fresh@test.local", "password": "whatever", "organization_code": "nope"},
    )
    assert bad_code.status_code == 400
    assert bad_code.json()["detail"] == "Invalid organization code."

    no_path = client.post("/api/v1/auth/signup", json={"email": "fresh@test.local", "password": "whatever"})
    assert no_path.status_code == 400


def test_signin_sets_cookie_and_me_resolves_context(
    client: TestClient,
    db_session: Session,
    make_user,
    make_organization,
) -> None:
    user = make_user("person@test.local", name="Person", password="person-pass")
    organization = make_organization("Person Org", code="person01", owner=user)

    response = client.post(
        "/api/v1/auth/signin",
        json={"email": "person@test.local", "password": "person-pass"},
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["token_type"] == "bearer"
    assert payload["expires_in"] == get_settings().session_max_age_seconds
    assert payload["user"]["last_login_at"] is not None
    assert get_settings().session_cookie_name in response.cookies

    me_by_bearer = client.get("/api/v1/me", headers={"Authorization": f"Bearer {payload['access_token']}"})
    assert me_by_bearer.status_code == 200
    me_payload = me_by_bearer.json()
    assert me_payload["email"] == "person@test.local"
    assert me_payload["memberships"] == [{"organization_id": str(organization.id), "role": "ADMIN"}]

    me_by_cookie = client.get("/api/v1/me")
    assert me_by_cookie.status_code == 200
    assert me_by_cookie.json()["id"] == str(user.id)

    success = db_session.scalar(select(AuditLog).where(AuditLog.action == "LOGIN_SUCCESS"))
    assert success is not None
    assert success.request_metadata["user_agent"] == "testclient"


def test_signin_with_wrong_password_records_failed_login(
    client: TestClient,
    db_session: Session,
    make_user,
) -> None:
    make_user("person@test.local", password="person-pass")

    response = client.post("/api/v1/auth/signin", json={"email": "person@test.local", "password": "nope"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid email or password."
    failed = db_session.scalar(select(AuditLog).where(AuditLog.action == "LOGIN_FAILED"))
    assert failed is not None
    assert failed.entity_name == "person@test.local"


def test_missing_invalid_and_expired_tokens_are_rejected(client: TestClient, make_user) -> None:
    user = make_user("person@test.local")

    assert client.get("/api/v1/me").status_code == 401
    assert client.get("/api/v1/me", headers={"Authorization": "Bearer not-a-token"}).status_code == 401

    settings = get_settings()
    issued = utcnow() - timedelta(days=2)
    expired = jwt.encode(
        {"sub": str(user.id), "iat": issued, "exp": issued + timedelta(hours=1)},
        settings.session_secret_key,
        algorithm=settings.session_algorithm,
    )
    response = client.get("/api/v1/me", headers={"Authorization": f"Bearer {expired}"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Session has expired."


def test_signout_clears_cookie_and_records_logout(
    client: TestClient,
    db_session: Session,
    make_user,
    headers_for,
) -> None:
    user = make_user("person@test.local")

    response = client.post("/api/v1/auth/signout", headers=headers_for(user))

    assert response.status_code == 204
    assert db_session.scalar(select(AuditLog).where(AuditLog.action == "LOGOUT")) is not None


def test_update_profile_and_conflicting_email(
    client: TestClient,
    db_session: Session,
    make_user,
    headers_for,
) -> None:
    user = make_user("person@test.local", name="Person")
    make_user("other@test.local")

    response = client.put(
        "/api/v1/me/profile",
        json={"email": "Renamed@Test.Local", "name": "Renamed"},
        headers=headers_for(user),
    )
    assert response.status_code == 200
    assert response.json()["email"] == "renamed@test.local"
    assert response.json()["name"] == "Renamed"

    conflict = client.put(
        "/api/v1/me/profile",
        json={"email": "other@test.local"},
        headers=headers_for(user),
    )
    assert conflict.status_code == 400

    db_session.expire_all()
    assert db_session.get(User, user.id).email == "renamed@test.local"
