"""People service - technician onboarding, team invitations and memberships"""

import logging
from datetime import datetime
from typing import Optional
from urllib.parse import quote

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...auth import CurrentUser, require_capability
from ...config import MIN_PASSWORD_LENGTH
from ...errors import (
    AppError,
    ConflictError,
    GoneError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from ...models import TeamInvitation, Technician
from ...services.identity_provider import IdentityProvider, IdentityProviderError
from ...shared.clock import ensure_utc, utc_now
from ...shared.links import (
    generate_secure_token,
    invitation_expiry,
    team_invite_url,
    technician_invite_url,
    technician_verify_url,
)
from ...shared.permissions import (
    ASSIGNABLE_ROLES,
    TECHNICIAN_TABLE_ROLES,
    Capability,
    is_technician_class,
)
from ...shared.post_commit import PostCommitTasks
from ...shared.validators import clean_optional, display_name, is_valid_email, normalize_email
from ..technicians.repository import TechnicianRepository
from .provisioning import AccountProvisioner, create_or_update_account
from .repository import PeopleRepository
from .schemas import (
    AddMemberRequest,
    AddTechnicianRequest,
    CompleteTeamInviteRequest,
    InvitationActionRequest,
    RemoveMemberRequest,
    ResendTechnicianActivationRequest,
    TeamInviteMetaRequest,
)

logger = logging.getLogger(__name__)

INVITATION_USED = "Invitation already used or no longer valid"


def _strip(value: Optional[str]) -> str:
    return str(value or "").strip()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return ensure_utc(value).isoformat() if value else None


def is_expired(expires_at: Optional[datetime], now: datetime) -> bool:
    return expires_at is not None and now > ensure_utc(expires_at)


def invitation_validity(invitation: Optional[TeamInvitation], now: datetime) -> tuple[bool, Optional[str]]:
    """A token is usable only while pending, unlinked and unexpired"""
    if invitation is None:
        return False, "Invitation not found"
    if invitation.status != "pending" or invitation.user_id:
        return False, INVITATION_USED
    if is_expired(invitation.expires_at, now):
        return False, "Invitation has expired"
    return True, None


def effective_status(invitation: TeamInvitation, now: datetime) -> str:
    if invitation.status == "pending" and is_expired(invitation.expires_at, now):
        return "expired"
    return invitation.status


def serialize_invitation(invitation: TeamInvitation, now: datetime) -> dict:
    """Public view of an invitation; the token itself is never echoed back"""
    return {
        "id": invitation.id,
        "tenant_id": invitation.tenant_id,
        "email": invitation.email,
        "full_name": invitation.full_name,
        "phone": invitation.phone,
        "role": invitation.role,
        "expires_at": _iso(invitation.expires_at),
        "status": invitation.status,
        "effective_status": effective_status(invitation, now),
        "user_id": invitation.user_id,
    }


class PeopleService:
    """Service layer for tenant people management"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = PeopleRepository()
        self.technicians = TechnicianRepository()
        self.provisioner = AccountProvisioner(db)

    # Technician onboarding

    async def add_technician(
        self,
        user: CurrentUser,
        data: AddTechnicianRequest,
        idp: IdentityProvider,
        base_url: str,
    ) -> dict:
        tenant_id = _strip(data.tenantId)
        if not tenant_id:
            raise ValidationError("Missing tenantId")

        email = normalize_email(data.email)
        if not is_valid_email(email):
            raise ValidationError("Invalid email")

        role = _strip(data.role) or "technician"
        if role not in TECHNICIAN_TABLE_ROLES:
            raise ValidationError("Invalid role")

        require_capability(self.db, user, tenant_id, Capability.MANAGE_PEOPLE)

        values = {
            "full_name": display_name(data.fullName, email, "Technician"),
            "phone": clean_optional(data.phone),
            "role": role,
        }

        try:
            existing = self.technicians.get_by_email(self.db, email)
            if existing and existing.tenant_id != tenant_id:
                raise ConflictError("Email already used by a technician in another tenant")

            if existing:
                technician = self.technicians.update(self.db, existing, **values)
            else:
                technician = self.technicians.create(
                    self.db,
                    tenant_id,
                    email=email,
                    status="active",
                    availability_status="available",
                    created_by=user.id,
                    **values,
                )
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError("Email already used by another technician") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InternalError(str(e)) from e

        redirect_to = f"{base_url}/technician/invite"
        try:
            await idp.invite_user_by_email(
                email, redirect_to, data=self._invite_metadata(tenant_id, technician.id)
            )
        except IdentityProviderError as e:
            logger.warning(f"⚠️ Invite email for technician {technician.id} failed: {e.message}")
            return self._fallback_activation(technician, base_url, e.message)

        logger.info(f"📧 Technician invite sent to {email} (tenant {tenant_id})")
        return {"success": True, "technicianId": technician.id, "email": email, "tokenSent": True}

    async def resend_technician_activation(
        self,
        user: CurrentUser,
        data: ResendTechnicianActivationRequest,
        idp: IdentityProvider,
        base_url: str,
    ) -> dict:
        tenant_id = _strip(data.tenantId)
        technician_id = _strip(data.technicianId)
        if not tenant_id or not technician_id:
            raise ValidationError("Missing tenantId or technicianId")

        require_capability(self.db, user, tenant_id, Capability.MANAGE_PEOPLE)

        try:
            technician = self.technicians.get(self.db, tenant_id, technician_id)
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e

        if not technician:
            raise NotFoundError("Technician not found")
        if technician.is_verified or technician.user_id:
            raise ConflictError("Technician already activated")

        email = normalize_email(technician.email)
        redirect_to = f"{base_url}/technician/invite"

        try:
            await idp.invite_user_by_email(
                email, redirect_to, data=self._invite_metadata(tenant_id, technician_id)
            )
        except IdentityProviderError as e:
            invite_error = e
        else:
            verify_url = await self._action_link(idp, "invite", email, redirect_to, base_url)
            logger.info(f"📧 Technician invite re-sent to {email} (tenant {tenant_id})")
            return {"success": True, "tokenSent": True, "verifyUrl": verify_url}

        if invite_error.already_registered:
            try:
                await idp.reset_password_for_email(email, redirect_to)
            except IdentityProviderError as e:
                logger.warning(f"⚠️ Recovery email for {email} failed: {e.message}")
            else:
                verify_url = await self._action_link(idp, "recovery", email, redirect_to, base_url)
                return {
                    "success": True,
                    "tokenSent": True,
                    "verifyUrl": verify_url,
                    "warning": "User already exists; sent recovery email instead of invite",
                }

        response = self._fallback_activation(technician, base_url, invite_error.message)
        response.pop("technicianId")
        response.pop("email")
        return response

    @staticmethod
    def _invite_metadata(tenant_id: str, technician_id: str) -> dict:
        return {
            "role": "technician",
            "is_technician": True,
            "tenant_id": tenant_id,
            "technician_id": technician_id,
        }

    @staticmethod
    async def _action_link(
        idp: IdentityProvider, link_type: str, email: str, redirect_to: str, base_url: str
    ) -> Optional[str]:
        """Shareable copy of the emailed link; None when the provider can't produce one"""
        try:
            properties = await idp.generate_link(link_type, email, redirect_to)
        except IdentityProviderError as e:
            logger.warning(f"⚠️ Could not generate {link_type} link for {email}: {e.message}")
            return None

        hashed_token = properties.get("hashed_token")
        if hashed_token:
            return technician_invite_url(base_url, hashed_token, link_type)
        return properties.get("action_link")

    def _fallback_activation(self, technician: Technician, base_url: str, warning: str) -> dict:
        """Store a local verification token for a manually shared activation link"""
        token = generate_secure_token(32)
        try:
            self.technicians.set_token(
                self.db, technician.tenant_id, technician.id, token, invitation_expiry()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InternalError(str(e)) from e

        return {
            "success": True,
            "technicianId": technician.id,
            "email": technician.email,
            "tokenSent": False,
            "verifyUrl": technician_verify_url(base_url, technician.email, token),
            "token": token,
            "warning": warning or "Identity provider invite email failed",
        }

    # Team invitations

    def add_member(self, user: CurrentUser, data: AddMemberRequest, base_url: str) -> dict:
        tenant_id = _strip(data.tenantId)
        email = normalize_email(data.email)
        full_name = _strip(data.fullName)
        role = _strip(data.role)

        if not tenant_id or not email or not full_name or not role:
            raise ValidationError("Missing required fields")
        if not is_valid_email(email):
            raise ValidationError("Invalid email")
        if role not in ASSIGNABLE_ROLES:
            raise ValidationError("Invalid role")

        require_capability(self.db, user, tenant_id, Capability.MANAGE_PEOPLE)

        now = utc_now()
        try:
            pending = self.repo.get_pending_invitation_for_email(self.db, tenant_id, email)
            if pending and not pending.user_id and not is_expired(pending.expires_at, now):
                raise ConflictError("A pending invitation already exists for this email")

            invitation = self.repo.create_invitation(
                self.db,
                tenant_id,
                email=email,
                full_name=full_name[:100],
                phone=clean_optional(data.phone),
                role=role,
                token=generate_secure_token(32),
                expires_at=invitation_expiry(now),
                invited_by=user.id,
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InternalError(f"Failed to create invitation: {e}") from e

        logger.info(f"✉️ Team invitation {invitation.id} created for {email} as {role}")
        return {
            "success": True,
            "message": "Invitation created successfully",
            "invitationUrl": team_invite_url(base_url, invitation.token),
            "tokenSent": False,
            "invitation": {
                "id": invitation.id,
                "email": invitation.email,
                "full_name": invitation.full_name,
                "role": invitation.role,
                "expires_at": _iso(invitation.expires_at),
            },
        }

    def resend_team_invite(self, user: CurrentUser, data: InvitationActionRequest, base_url: str) -> dict:
        invitation = self._pending_invitation_for_admin(user, data)

        now = utc_now()
        if is_expired(invitation.expires_at, now):
            # An expired link is re-issued with a fresh token and window
            token, expires_at = generate_secure_token(32), invitation_expiry(now)
            try:
                refreshed = self.repo.refresh_invitation(
                    self.db, invitation.tenant_id, invitation.id, token, expires_at
                )
            except SQLAlchemyError as e:
                self.db.rollback()
                raise InternalError(str(e)) from e
            if not refreshed:
                raise ConflictError("Invitation already activated or cancelled")
            self.db.refresh(invitation)
            logger.info(f"🔁 Team invitation {invitation.id} renewed")

        return {
            "success": True,
            "tokenSent": False,
            "invitationUrl": team_invite_url(base_url, invitation.token),
            "warning": "Email invitation is not configured; share this link manually.",
            "meta": {
                "email": invitation.email,
                "role": invitation.role,
                "expires_at": _iso(invitation.expires_at),
            },
        }

    def cancel_team_invite(self, user: CurrentUser, data: InvitationActionRequest) -> dict:
        invitation = self._pending_invitation_for_admin(user, data)

        try:
            cancelled = self.repo.cancel_invitation(self.db, invitation.tenant_id, invitation.id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InternalError(str(e)) from e
        if not cancelled:
            raise ConflictError("Invitation already activated or cancelled")

        logger.info(f"🚫 Team invitation {invitation.id} cancelled by {user.id}")
        return {"success": True, "invitationId": invitation.id, "status": "cancelled"}

    def _pending_invitation_for_admin(self, user: CurrentUser, data: InvitationActionRequest) -> TeamInvitation:
        tenant_id = _strip(data.tenantId)
        invitation_id = _strip(data.invitationId)
        if not tenant_id or not invitation_id:
            raise ValidationError("Missing tenantId or invitationId")

        require_capability(self.db, user, tenant_id, Capability.MANAGE_PEOPLE)

        try:
            invitation = self.repo.get_invitation(self.db, tenant_id, invitation_id)
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e

        if not invitation:
            raise NotFoundError("Invitation not found")
        if invitation.status != "pending" or invitation.user_id:
            raise ConflictError("Invitation already activated or cancelled")
        return invitation

    def team_invite_meta(self, data: TeamInviteMetaRequest, now: Optional[datetime] = None) -> dict:
        """Read-only token resolution for the invite landing page"""
        now = ensure_utc(now or utc_now())
        token = _strip(data.token)
        if not token:
            return {"invitation": None, "isValid": False, "reason": "Invalid invitation link"}

        try:
            invitation = self.repo.get_invitation_by_token(self.db, token)
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e

        is_valid, reason = invitation_validity(invitation, now)
        return {
            "invitation": serialize_invitation(invitation, now) if invitation else None,
            "isValid": is_valid,
            "reason": reason,
        }

    async def complete_team_invite(
        self,
        data: CompleteTeamInviteRequest,
        idp: IdentityProvider,
        now: Optional[datetime] = None,
    ) -> dict:
        now = ensure_utc(now or utc_now())
        token = _strip(data.token)
        password = _strip(data.password)

        if not token or not password:
            raise ValidationError("Missing token or password")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")

        try:
            invitation = self.repo.get_invitation_by_token(self.db, token)
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e

        if not invitation:
            raise NotFoundError("Invitation not found")
        if invitation.status != "pending" or invitation.user_id:
            raise ConflictError(INVITATION_USED)
        if is_expired(invitation.expires_at, now):
            raise GoneError("Invitation has expired")

        email = normalize_email(invitation.email)
        if not email:
            raise ValidationError("Invitation email is invalid")

        tenant_id, invitation_id, role = invitation.tenant_id, invitation.id, invitation.role
        full_name, phone = invitation.full_name, invitation.phone

        try:
            claimed = self.repo.claim_invitation(self.db, tenant_id, invitation_id, now)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InternalError(str(e)) from e
        if not claimed:
            raise ConflictError(INVITATION_USED)

        try:
            user_id = await create_or_update_account(
                idp,
                email,
                password,
                {"role": role, "tenant_id": tenant_id, "invited_via": "team_invitations"},
            )
        except AppError:
            self.repo.release_invitation(self.db, tenant_id, invitation_id)
            logger.warning(f"⚠️ Account step failed; invitation {invitation_id} released")
            raise

        logger.info(f"✅ Team invitation {invitation_id} accepted by user {user_id}")

        tasks = PostCommitTasks(self.db, context="complete-team-invite")
        tasks.add(
            "link invitation",
            lambda: self.repo.set_invitation_user(self.db, tenant_id, invitation_id, user_id),
        )
        tasks.add(
            "profile upsert",
            lambda: self.provisioner.upsert_profile(user_id, tenant_id, full_name, email, phone),
        )
        tasks.add(
            "tenant role",
            lambda: self.provisioner.ensure_tenant_role(tenant_id, user_id, role),
        )
        if is_technician_class(role):
            tasks.add(
                "technician provisioning",
                lambda: self.provisioner.provision_technician(
                    tenant_id, user_id, email, full_name, phone, role
                ),
            )
        tasks.run()

        login_path = "/technician/login" if is_technician_class(role) else "/login"
        return {
            "success": True,
            "userId": user_id,
            "redirectTo": f"{login_path}?email={quote(email, safe='')}",
        }

    # Memberships

    def remove_member(self, user: CurrentUser, data: RemoveMemberRequest) -> dict:
        tenant_id = _strip(data.tenantId)
        membership_id = _strip(data.membershipId)
        member_id = _strip(data.userId)
        if not tenant_id or not membership_id or not member_id:
            raise ValidationError("Missing tenantId, membershipId, or userId")

        require_capability(self.db, user, tenant_id, Capability.MANAGE_PEOPLE)

        try:
            deleted = self.repo.delete_membership(self.db, tenant_id, membership_id, member_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InternalError(str(e)) from e
        if not deleted:
            raise NotFoundError("Membership not found")

        logger.info(f"👋 Removed user {member_id} from tenant {tenant_id}")

        # Technician portal access goes with the membership
        PostCommitTasks(self.db, context="remove-member").add(
            "technician cleanup",
            lambda: self.technicians.delete_for_user(self.db, tenant_id, member_id),
        ).run()
        return {"success": True}
