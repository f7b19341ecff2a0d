"""Technician activation service - links identity accounts to technician rows"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...auth import CurrentUser
from ...config import MIN_PASSWORD_LENGTH
from ...errors import ConflictError, GoneError, InternalError, NotFoundError, ValidationError
from ...models import Technician
from ...services.identity_provider import IdentityProvider, IdentityProviderError
from ...shared.clock import ensure_utc, utc_now
from ...shared.permissions import tenant_role_for_technician
from ...shared.post_commit import PostCommitTasks
from ...shared.validators import normalize_email
from ..people.provisioning import AccountProvisioner, discard_account
from .repository import TechnicianRepository
from .schemas import CreateAccountRequest, VerifyTokenRequest

logger = logging.getLogger(__name__)


def token_expired(technician: Technician, now: datetime) -> bool:
    expires_at = technician.token_expires_at
    return expires_at is not None and ensure_utc(expires_at) < now


class TechnicianService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = TechnicianRepository()
        self.provisioner = AccountProvisioner(db)

    def complete_invite(self, user: CurrentUser) -> dict:
        """Link the signed-in invitee to the technician row carrying their email"""
        email = normalize_email(user.email)
        if not email:
            raise ValidationError("Missing email")

        try:
            technician = self.repo.get_by_email(self.db, email)
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e

        if not technician:
            raise NotFoundError("Technician not found for this email")
        if technician.user_id and technician.user_id != user.id:
            raise ConflictError("Technician email already linked to another account")
        if technician.is_verified and technician.user_id == user.id:
            return {"success": True, "alreadyCompleted": True}

        try:
            linked = self.repo.link_account(self.db, technician.tenant_id, technician.id, user.id)
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError("Account already linked to another technician") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InternalError(str(e)) from e
        if not linked:
            raise ConflictError("Technician email already linked to another account")

        logger.info(f"✅ Technician {technician.id} linked to user {user.id}")
        self._after_activation(technician, user.id, email, "complete-invite")
        return {"success": True}

    def verify_token(self, data: VerifyTokenRequest, now: Optional[datetime] = None) -> dict:
        """Read-only check of a manually shared verification link"""
        now = ensure_utc(now or utc_now())
        email = normalize_email(data.email)
        token = str(data.token or "").strip()
        if not email or not token:
            return {"technician": None, "isValid": False, "reason": "Invalid verification link"}

        try:
            technician = self.repo.get_by_email_and_token(self.db, email, token)
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e

        if not technician:
            return {"technician": None, "isValid": False, "reason": "Invalid token"}

        summary = {
            "id": technician.id,
            "tenant_id": technician.tenant_id,
            "email": technician.email,
            "full_name": technician.full_name,
            "role": technician.role,
        }
        if technician.user_id:
            return {"technician": summary, "isValid": False, "reason": "Account already created"}
        if token_expired(technician, now):
            return {"technician": summary, "isValid": False, "reason": "Token has expired"}
        return {"technician": summary, "isValid": True, "reason": None}

    async def create_account(
        self, data: CreateAccountRequest, idp: IdentityProvider, now: Optional[datetime] = None
    ) -> dict:
        now = ensure_utc(now or utc_now())
        email = normalize_email(data.email)
        token = str(data.token or "").strip()
        password = str(data.password or "")

        if not email or not token or not password:
            raise ValidationError("Email, password and token are required")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        try:
            technician = self.repo.get_by_email_and_token(self.db, email, token)
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e

        if not technician:
            raise ValidationError("Invalid token")
        if technician.user_id:
            raise ConflictError("Account already created")
        if token_expired(technician, now):
            raise GoneError("Token has expired")

        try:
            created = await idp.create_user(
                email,
                password,
                user_metadata={
                    "role": "technician",
                    "is_technician": True,
                    "tenant_id": technician.tenant_id,
                    "technician_id": technician.id,
                },
            )
        except IdentityProviderError as e:
            logger.error(f"❌ Account creation failed for technician {technician.id}: {e.message}")
            if e.already_registered:
                raise ConflictError(e.message) from e
            raise InternalError(e.message) from e

        user_id = (created.get("user") or created).get("id")
        if not user_id:
            raise InternalError("Failed to create account")

        try:
            linked = self.repo.link_account_by_token(
                self.db, technician.tenant_id, technician.id, token, user_id
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Linking technician {technician.id} failed: {e}")
            await discard_account(idp, user_id)
            raise InternalError("Failed to update technician record") from e

        if not linked:
            await discard_account(idp, user_id)
            raise ConflictError("Token already used")

        logger.info(f"✅ Technician {technician.id} activated with new account {user_id}")
        self._after_activation(technician, user_id, email, "create-account")
        return {
            "success": True,
            "message": "Account created. Please log in.",
            "user_id": user_id,
        }

    def _after_activation(self, technician: Technician, user_id: str, email: str, context: str) -> None:
        tenant_id = technician.tenant_id
        full_name, phone = technician.full_name, technician.phone
        tenant_role = tenant_role_for_technician(technician.role)

        PostCommitTasks(self.db, context=context).add(
            "profile upsert",
            lambda: self.provisioner.upsert_profile(user_id, tenant_id, full_name, email, phone),
        ).add(
            "tenant role",
            lambda: self.provisioner.ensure_tenant_role(tenant_id, user_id, tenant_role),
        ).run()
