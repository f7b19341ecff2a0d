"""Client portal service - staff-issued invitations and self-service activation"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...auth import TenantContext
from ...config import MIN_PASSWORD_LENGTH
from ...errors import ConflictError, InternalError, NotFoundError, ValidationError
from ...models import Client
from ...services.identity_provider import IdentityProvider, IdentityProviderError
from ...shared.clock import ensure_utc, utc_now
from ...shared.links import client_portal_invite_url, generate_secure_token, invitation_expiry
from ...shared.post_commit import PostCommitTasks
from ...shared.validators import is_valid_email, normalize_email
from ..people.provisioning import discard_account
from .repository import ClientRepository
from .schemas import (
    ActivatePortalRequest,
    GeneratePortalInvitationRequest,
    ValidatePortalInvitationRequest,
)

logger = logging.getLogger(__name__)

INVALID_INVITATION = "Invalid or expired invitation"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return ensure_utc(value).isoformat() if value else None


def portal_invitation_error(client: Optional[Client], now: datetime) -> Optional[str]:
    """Why a portal token can't be used, or None while it is still valid"""
    if client is None:
        return "Invitation not found"
    if client.portal_user_id:
        return "Portal already activated"
    expires_at = client.portal_token_expires_at
    if expires_at is None or now > ensure_utc(expires_at):
        return "Invitation has expired"
    return None


class ClientPortalService:
    """Service layer for client portal access"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ClientRepository()

    def generate_invitation(
        self, ctx: TenantContext, data: GeneratePortalInvitationRequest, base_url: str
    ) -> dict:
        client_id = str(data.client_id or "").strip()
        if not client_id:
            raise ValidationError("Missing client_id")

        try:
            client = self.repo.get(self.db, ctx.tenant_id, client_id)
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e

        if not client:
            raise NotFoundError("Client not found")
        if client.portal_user_id:
            raise ConflictError("Client portal already activated")

        token, expires_at = generate_secure_token(32), invitation_expiry()
        try:
            issued = self.repo.set_portal_invitation(
                self.db, ctx.tenant_id, client_id, token, expires_at, ctx.user.id
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InternalError(str(e)) from e
        if not issued:
            raise ConflictError("Client portal already activated")

        logger.info(f"✉️ Portal invitation generated for client {client_id} by {ctx.user.id}")
        PostCommitTasks(self.db, context="generate-portal-invitation").add(
            "activity log",
            lambda: self.repo.log_activity(
                self.db,
                ctx.tenant_id,
                client_id,
                "invitation_generated",
                {"generated_by": ctx.user.id, "expires_at": _iso(expires_at)},
            ),
        ).run()

        return {
            "success": True,
            "token": token,
            "invitation_link": client_portal_invite_url(base_url, token),
            "expires_at": _iso(expires_at),
        }

    def validate_invitation(
        self, data: ValidatePortalInvitationRequest, now: Optional[datetime] = None
    ) -> dict:
        """Read-only token resolution for the client invite page"""
        now = ensure_utc(now or utc_now())
        token = str(data.token or "").strip()
        if not token:
            return self._validation(None, "Invalid invitation link")

        try:
            client = self.repo.get_by_portal_token(self.db, token)
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e

        return self._validation(client, portal_invitation_error(client, now))

    @staticmethod
    def _validation(client: Optional[Client], error_message: Optional[str]) -> dict:
        return {
            "is_valid": error_message is None,
            "client_id": client.id if client else None,
            "client_name": client.name if client else None,
            "client_email": client.email if client else None,
            "expires_at": _iso(client.portal_token_expires_at) if client else None,
            "error_message": error_message,
        }

    async def activate_portal(
        self, data: ActivatePortalRequest, idp: IdentityProvider, now: Optional[datetime] = None
    ) -> dict:
        now = ensure_utc(now or utc_now())
        token = str(data.token or "").strip()
        email = normalize_email(data.email)
        password = str(data.password or "")
        client_id = str(data.client_id or "").strip()

        if not token or not email or not password or not client_id:
            raise ValidationError("Missing required fields")
        if not is_valid_email(email):
            raise ValidationError("Invalid email")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        try:
            client = self.repo.get_by_portal_token(self.db, token)
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e

        if portal_invitation_error(client, now) or client.id != client_id:
            raise ValidationError(INVALID_INVITATION)

        tenant_id, client_name = client.tenant_id, client.name

        try:
            created = await idp.create_user(
                email,
                password,
                user_metadata={
                    "client_id": client_id,
                    "account_type": "client",
                    "client_name": client_name,
                },
            )
        except IdentityProviderError as e:
            logger.error(f"❌ Portal account creation failed for client {client_id}: {e.message}")
            raise ValidationError(e.message) from e

        user_id = (created.get("user") or created).get("id")
        if not user_id:
            raise InternalError("Failed to create account")

        try:
            activated = self.repo.activate_portal(
                self.db, tenant_id, client_id, token, email, user_id, now
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Activating portal for client {client_id} failed: {e}")
            await discard_account(idp, user_id)
            raise InternalError("Failed to activate portal") from e

        if not activated:
            await discard_account(idp, user_id)
            raise ConflictError("Invitation already used")

        logger.info(f"✅ Client portal activated for client {client_id} (user {user_id})")
        PostCommitTasks(self.db, context="activate-portal").add(
            "activity log",
            lambda: self.repo.log_activity(
                self.db,
                tenant_id,
                client_id,
                "portal_activated",
                {"invited_via": "invitation_link", "activated_at": now.isoformat()},
            ),
        ).run()

        return {
            "success": True,
            "message": "Portal activated successfully",
            "auth_user_id": user_id,
        }
