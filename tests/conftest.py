"""
Pytest configuration and shared fixtures
"""
import os
import uuid
from datetime import datetime, timezone

import pytest

# Settings are read at import time, so they must be in place first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTH_URL"] = "https://auth.test.local"
os.environ["AUTH_SERVICE_ROLE_KEY"] = "test-service-role-key"
os.environ["AUTH_JWT_SECRET"] = "test-jwt-secret-minimum-32-chars-long-for-hs256"
os.environ["APP_URL"] = "https://app.test.local"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from fieldops.auth import CurrentUser, get_current_user  # noqa: E402
from fieldops.database import Base, get_db  # noqa: E402
from fieldops.main import app  # noqa: E402
from fieldops.models import Profile, Technician, Tenant, UserTenantRole  # noqa: E402
from fieldops.services.identity_provider import (  # noqa: E402
    IdentityProviderError,
    get_identity_provider,
)

TENANT_ID = "11111111-1111-1111-1111-111111111111"
OTHER_TENANT_ID = "22222222-2222-2222-2222-222222222222"
OWNER_ID = "aaaaaaaa-0000-0000-0000-000000000001"
TECH_USER_ID = "aaaaaaaa-0000-0000-0000-000000000002"
OUTSIDER_ID = "aaaaaaaa-0000-0000-0000-000000000003"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeIdentityProvider:
    """In-process stand-in for the auth admin API"""

    def __init__(self):
        self.users = {}
        self.invites = []
        self.recoveries = []
        self.deleted = []
        self.invite_error = None
        self.create_error = None

    def _find(self, email):
        for user_id, user in self.users.items():
            if user["email"] == email:
                return user_id
        return None

    async def invite_user_by_email(self, email, redirect_to, data=None):
        if self.invite_error:
            raise self.invite_error
        self.invites.append({"email": email, "redirect_to": redirect_to, "data": data})
        return {"id": str(uuid.uuid4()), "email": email}

    async def create_user(self, email, password, user_metadata=None):
        if self.create_error:
            raise self.create_error
        if self._find(email):
            raise IdentityProviderError(
                "A user with this email address has already been registered", 422
            )
        user_id = str(uuid.uuid4())
        self.users[user_id] = {
            "email": email,
            "password": password,
            "user_metadata": user_metadata or {},
        }
        return {"id": user_id, "email": email}

    async def update_user_by_id(self, user_id, **attributes):
        self.users[user_id].update(attributes)
        return {"id": user_id}

    async def delete_user(self, user_id):
        self.deleted.append(user_id)
        self.users.pop(user_id, None)

    async def find_user_id_by_email(self, email):
        return self._find(email)

    async def reset_password_for_email(self, email, redirect_to):
        self.recoveries.append(email)

    async def generate_link(self, link_type, email, redirect_to):
        return {
            "hashed_token": f"hashed-{link_type}",
            "action_link": f"https://auth.test.local/verify?type={link_type}",
        }


class CallerHolder:
    """Which account the overridden auth dependency resolves to"""

    def __init__(self):
        self.user = None

    def __call__(self, user_id, email=None):
        self.user = CurrentUser(id=user_id, email=email)
        return self.user


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_idp():
    return FakeIdentityProvider()


@pytest.fixture
def act_as():
    return CallerHolder()


@pytest.fixture
def client(db_session, fake_idp, act_as):
    """TestClient with the session, caller and identity provider overridden"""
    from fieldops.errors import UnauthorizedError

    def override_get_db():
        yield db_session

    async def override_get_current_user():
        if act_as.user is None:
            raise UnauthorizedError()
        return act_as.user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_identity_provider] = lambda: fake_idp

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def tenant(db_session):
    """Tenant with an owner whose active tenant is set, plus an unrelated tenant"""
    db_session.add_all(
        [
            Tenant(id=TENANT_ID, name="Djawara HVAC"),
            Tenant(id=OTHER_TENANT_ID, name="Other HVAC"),
            Profile(id=OWNER_ID, full_name="Owner", active_tenant_id=TENANT_ID),
            UserTenantRole(tenant_id=TENANT_ID, user_id=OWNER_ID, role="owner", is_active=True),
        ]
    )
    db_session.commit()
    return TENANT_ID


@pytest.fixture
def technician(db_session, tenant):
    """Activated technician linked to TECH_USER_ID"""
    row = Technician(
        tenant_id=tenant,
        user_id=TECH_USER_ID,
        full_name="Budi Teknisi",
        email="budi@example.com",
        role="technician",
        is_verified=True,
    )
    db_session.add_all(
        [
            row,
            Profile(id=TECH_USER_ID, full_name="Budi Teknisi", active_tenant_id=tenant),
            UserTenantRole(
                tenant_id=tenant, user_id=TECH_USER_ID, role="technician", is_active=True
            ),
        ]
    )
    db_session.commit()
    db_session.refresh(row)
    return row


def utc(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)
