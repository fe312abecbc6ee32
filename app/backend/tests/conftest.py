from __future__ import annotations

from collections.abc import Callable, Generator
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from inandout.core.clock import utcnow
from inandout.core.security import create_session_token, hash_password
from inandout.db.base import Base
from inandout.db.dependencies import get_db_session
import inandout.models.entities  # noqa: F401
from inandout.main import create_app
from inandout.models.entities import Membership, Organization, OrganizationRole, User

DEFAULT_PASSWORD = "correct-horse"


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_headers(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_session_token(user.id)}"}


@pytest.fixture()
def headers_for() -> Callable[[User], dict[str, str]]:
    return auth_headers


@pytest.fixture()
def make_user(db_session: Session) -> Callable[..., User]:
    def factory(
        email: str,
        *,
        name: str | None = None,
        password: str | None = None,
        system_admin: bool = False,
        default_hourly_rate: Decimal | None = None,
    ) -> User:
        now = utcnow()
        user = User(
            email=email,
            name=name,
            password_hash=hash_password(password) if password else None,
            system_admin=system_admin,
            default_hourly_rate=default_hourly_rate,
            created_at=now,
            updated_at=now,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return factory


@pytest.fixture()
def make_organization(db_session: Session) -> Callable[..., Organization]:
    def factory(name: str, *, code: str, owner: User) -> Organization:
        now = utcnow()
        organization = Organization(name=name, code=code, owner_id=owner.id, created_at=now, updated_at=now)
        db_session.add(organization)
        db_session.flush()
        db_session.add(
            Membership(
                user_id=owner.id,
                organization_id=organization.id,
                role=OrganizationRole.ADMIN,
                joined_at=now,
            )
        )
        db_session.commit()
        db_session.refresh(organization)
        return organization

    return factory


@pytest.fixture()
def add_member(db_session: Session) -> Callable[..., Membership]:
    def factory(
        organization: Organization,
        user: User,
        role: OrganizationRole = OrganizationRole.EMPLOYEE,
    ) -> Membership:
        membership = Membership(
            user_id=user.id,
            organization_id=organization.id,
            role=role,
            joined_at=utcnow(),
        )
        db_session.add(membership)
        db_session.commit()
        db_session.refresh(membership)
        return membership

    return factory
