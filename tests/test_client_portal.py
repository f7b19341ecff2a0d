"""
Tests for client portal invitations and activation
"""
from datetime import timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from conftest import OTHER_TENANT_ID, OWNER_ID, TECH_USER_ID, utc
from fieldops.domain.clients.repository import ClientRepository
from fieldops.models import Client, ClientPortalActivity
from fieldops.services.identity_provider import IdentityProviderError
from fieldops.shared.clock import utc_now

PORTAL_TOKEN = "portal-token-0000000000000000000"


@pytest.fixture
def customer(db_session, tenant):
    """Client with a portal invitation that is still valid"""
    row = Client(
        tenant_id=tenant,
        name="PT Sejuk Selalu",
        email="admin@sejuk.co.id",
        portal_invitation_token=PORTAL_TOKEN,
        portal_token_expires_at=utc_now() + timedelta(days=7),
    )
    db_session.add(row)
    db_session.commit()
    db_session.refresh(row)
    return row


def activation(customer, **overrides):
    payload = {
        "token": PORTAL_TOKEN,
        "email": "admin@sejuk.co.id",
        "password": "secret123",
        "client_id": customer.id,
    }
    payload.update(overrides)
    return payload


@pytest.mark.integration
class TestGeneratePortalInvitation:
    def test_staff_gets_shareable_link(self, client, db_session, customer, act_as):
        act_as(OWNER_ID)
        response = client.post("/admin/generate-portal-invitation", json={"client_id": customer.id})

        assert response.status_code == 200
        body = response.json()
        assert body["invitation_link"] == f"https://app.test.local/client/invite/{body['token']}"
        assert body["token"] != PORTAL_TOKEN

        db_session.refresh(customer)
        assert customer.portal_invitation_token == body["token"]
        assert customer.portal_invited_by == OWNER_ID
        assert customer.portal_token_expires_at is not None

        activity = db_session.query(ClientPortalActivity).one()
        assert activity.activity_type == "invitation_generated"

    def test_missing_client_id(self, client, tenant, act_as):
        act_as(OWNER_ID)
        response = client.post("/admin/generate-portal-invitation", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "Missing client_id"

    def test_client_of_another_tenant_is_not_found(self, client, db_session, tenant, act_as):
        other = Client(tenant_id=OTHER_TENANT_ID, name="Elsewhere")
        db_session.add(other)
        db_session.commit()
        act_as(OWNER_ID)

        response = client.post("/admin/generate-portal-invitation", json={"client_id": other.id})
        assert response.status_code == 404

    def test_activated_portal_is_conflict(self, client, db_session, customer, act_as):
        customer.portal_user_id = "cccccccc-0000-0000-0000-000000000001"
        db_session.commit()
        act_as(OWNER_ID)

        response = client.post("/admin/generate-portal-invitation", json={"client_id": customer.id})
        assert response.status_code == 409

    def test_technician_is_forbidden(self, client, technician, customer, act_as):
        act_as(TECH_USER_ID)
        response = client.post("/admin/generate-portal-invitation", json={"client_id": customer.id})
        assert response.status_code == 403


@pytest.mark.integration
class TestValidatePortalInvitation:
    def test_valid_token(self, client, customer):
        body = client.post("/client/validate-invitation", json={"token": PORTAL_TOKEN}).json()

        assert body["is_valid"] is True
        assert body["client_id"] == customer.id
        assert body["client_email"] == "admin@sejuk.co.id"
        assert body["error_message"] is None

    def test_expired_token(self, client, db_session, customer):
        customer.portal_token_expires_at = utc(2020, 1, 1)
        db_session.commit()

        body = client.post("/client/validate-invitation", json={"token": PORTAL_TOKEN}).json()
        assert body["is_valid"] is False
        assert body["error_message"] == "Invitation has expired"

    def test_unknown_token(self, client, customer):
        body = client.post("/client/validate-invitation", json={"token": "nope"}).json()
        assert body["is_valid"] is False
        assert body["client_id"] is None

    def test_resolving_does_not_consume_the_token(self, client, db_session, customer):
        client.post("/client/validate-invitation", json={"token": PORTAL_TOKEN})
        db_session.refresh(customer)
        assert customer.portal_invitation_token == PORTAL_TOKEN


@pytest.mark.integration
class TestActivatePortal:
    def test_activates_once(self, client, db_session, fake_idp, customer):
        response = client.post("/client/activate-portal", json=activation(customer))

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Portal activated successfully"
        user_id = body["auth_user_id"]
        assert fake_idp.users[user_id]["user_metadata"] == {
            "client_id": customer.id,
            "account_type": "client",
            "client_name": "PT Sejuk Selalu",
        }

        db_session.refresh(customer)
        assert customer.portal_enabled is True
        assert customer.portal_user_id == user_id
        assert customer.portal_email == "admin@sejuk.co.id"
        assert customer.portal_invitation_token is None
        activity = db_session.query(ClientPortalActivity).one()
        assert activity.activity_type == "portal_activated"

        again = client.post("/client/activate-portal", json=activation(customer))
        assert again.status_code == 400
        assert len(fake_idp.users) == 1

    def test_expired_token_creates_nothing(self, client, db_session, fake_idp, customer):
        customer.portal_token_expires_at = utc(2020, 1, 1)
        db_session.commit()

        response = client.post("/client/activate-portal", json=activation(customer))
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid or expired invitation"
        assert fake_idp.users == {}

    def test_token_for_another_client_is_rejected(self, client, fake_idp, customer):
        response = client.post(
            "/client/activate-portal", json=activation(customer, client_id="someone-else")
        )
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid or expired invitation"
        assert fake_idp.users == {}

    def test_missing_fields(self, client, customer):
        response = client.post("/client/activate-portal", json=activation(customer, password=""))
        assert response.status_code == 400
        assert response.json()["error"] == "Missing required fields"

    def test_identity_provider_error_is_surfaced(self, client, fake_idp, customer):
        fake_idp.create_error = IdentityProviderError("Password is too weak", 422)
        response = client.post("/client/activate-portal", json=activation(customer))
        assert response.status_code == 400
        assert response.json()["error"] == "Password is too weak"

    def test_failed_activation_deletes_created_account(
        self, client, db_session, fake_idp, customer, monkeypatch
    ):
        def broken(*args):
            raise SQLAlchemyError("clients table locked")

        monkeypatch.setattr(ClientRepository, "activate_portal", staticmethod(broken))

        response = client.post("/client/activate-portal", json=activation(customer))

        assert response.status_code == 500
        assert response.json()["error"] == "Failed to activate portal"
        assert len(fake_idp.deleted) == 1
        assert fake_idp.users == {}
        db_session.refresh(customer)
        assert customer.portal_user_id is None

    def test_lost_activation_race_deletes_created_account(
        self, client, fake_idp, customer, monkeypatch
    ):
        monkeypatch.setattr(
            ClientRepository, "activate_portal", staticmethod(lambda *args: False)
        )

        response = client.post("/client/activate-portal", json=activation(customer))
        assert response.status_code == 409
        assert len(fake_idp.deleted) == 1


@pytest.mark.unit
class TestClientRepository:
    def test_activation_is_single_use(self, db_session, customer):
        args = (db_session, customer.tenant_id, customer.id, PORTAL_TOKEN, "a@example.com")
        now = utc_now()

        assert ClientRepository.activate_portal(*args, "dddddddd-0000-0000-0000-000000000001", now)
        assert not ClientRepository.activate_portal(*args, "dddddddd-0000-0000-0000-000000000002", now)
