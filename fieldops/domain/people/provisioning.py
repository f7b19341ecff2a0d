"""
Account provisioning shared by team and technician activation.

The identity-provider step is the primary write of an activation; the
profile, role grant and technician row written here are follow-up work the
callers schedule through PostCommitTasks.
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError

from ...errors import ConflictError, InternalError, ValidationError
from ...services.identity_provider import IdentityProvider, IdentityProviderError
from ...shared.clock import utc_now
from ...shared.permissions import technician_table_role
from ...shared.validators import display_name
from ..technicians.repository import TechnicianRepository
from .repository import PeopleRepository

logger = logging.getLogger(__name__)


async def create_or_update_account(
    idp: IdentityProvider, email: str, password: str, metadata: dict
) -> str:
    """Create a confirmed account, or set the password of the one already registered"""
    try:
        created = await idp.create_user(email, password, user_metadata=metadata)
    except IdentityProviderError as e:
        if "already" not in e.message.lower():
            raise ValidationError(e.message) from e

        try:
            existing_id = await idp.find_user_id_by_email(email)
        except IdentityProviderError as lookup_error:
            raise InternalError(lookup_error.message) from lookup_error
        if not existing_id:
            raise ConflictError("Account already registered but could not be found to update") from e

        try:
            await idp.update_user_by_id(existing_id, password=password, email_confirm=True)
        except IdentityProviderError as update_error:
            raise InternalError(update_error.message) from update_error

        logger.info(f"🔑 Existing account {existing_id} re-used for {email}")
        return existing_id

    user = created.get("user") or created
    user_id = user.get("id")
    if not user_id:
        raise InternalError("Failed to create account")
    return user_id


async def discard_account(idp: IdentityProvider, user_id: str) -> None:
    """Delete an account created for an activation that did not complete"""
    try:
        await idp.delete_user(user_id)
    except IdentityProviderError as e:
        logger.error(f"❌ Could not delete orphaned account {user_id}: {e.message}")


class AccountProvisioner:
    """Profile, tenant role and technician row for a freshly activated account"""

    def __init__(self, db):
        self.db = db
        self.people = PeopleRepository()
        self.technicians = TechnicianRepository()

    def upsert_profile(
        self, user_id: str, tenant_id: str, full_name: Optional[str], email: str, phone: Optional[str]
    ) -> None:
        self.people.upsert_profile(
            self.db,
            user_id,
            full_name=display_name(full_name, email, "User"),
            phone=phone or None,
            active_tenant_id=tenant_id,
        )

    def ensure_tenant_role(self, tenant_id: str, user_id: str, role: str) -> bool:
        """Insert the grant only if the user has none in this tenant"""
        if self.people.get_membership(self.db, tenant_id, user_id):
            return False
        try:
            self.people.insert_membership(self.db, tenant_id, user_id, role, utc_now())
        except IntegrityError:
            # Granted concurrently
            self.db.rollback()
            return False
        logger.info(f"👥 Granted role {role} to user {user_id} in tenant {tenant_id}")
        return True

    def provision_technician(
        self,
        tenant_id: str,
        user_id: str,
        email: str,
        full_name: Optional[str],
        phone: Optional[str],
        role: str,
    ) -> None:
        technician = self.technicians.get_by_email(self.db, email)
        if technician and technician.tenant_id != tenant_id:
            raise ConflictError("Email already used by a technician in another tenant")

        values = {
            "full_name": display_name(full_name, email, "Technician"),
            "phone": phone or None,
            "role": technician_table_role(role),
            "user_id": user_id,
            "is_verified": True,
            "verification_token": None,
            "token_expires_at": None,
        }
        if technician:
            self.technicians.update(self.db, technician, **values)
        else:
            self.technicians.create(
                self.db,
                tenant_id,
                email=email,
                status="active",
                availability_status="available",
                **values,
            )
        logger.info(f"🔧 Technician row provisioned for user {user_id} in tenant {tenant_id}")
