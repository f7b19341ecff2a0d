"""People repository - invitations, tenant memberships and profiles"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Profile, TeamInvitation, UserTenantRole


class PeopleRepository:
    """Repository for invitation, membership and profile database operations"""

    # Invitations

    @staticmethod
    def get_invitation_by_token(db: Session, token: str) -> Optional[TeamInvitation]:
        """The token itself selects the tenant"""
        return db.query(TeamInvitation).filter(TeamInvitation.token == token).first()

    @staticmethod
    def get_invitation(db: Session, tenant_id: str, invitation_id: str) -> Optional[TeamInvitation]:
        """Get a specific invitation by ID"""
        return (
            db.query(TeamInvitation)
            .filter(TeamInvitation.id == invitation_id, TeamInvitation.tenant_id == tenant_id)
            .first()
        )

    @staticmethod
    def get_pending_invitation_for_email(
        db: Session, tenant_id: str, email: str
    ) -> Optional[TeamInvitation]:
        """Get the newest pending invitation for an email"""
        return (
            db.query(TeamInvitation)
            .filter(
                TeamInvitation.tenant_id == tenant_id,
                TeamInvitation.email == email,
                TeamInvitation.status == "pending",
            )
            .order_by(TeamInvitation.created_at.desc())
            .first()
        )

    @staticmethod
    def create_invitation(db: Session, tenant_id: str, **values) -> TeamInvitation:
        """Create a pending invitation"""
        invitation = TeamInvitation(tenant_id=tenant_id, status="pending", **values)
        db.add(invitation)
        db.commit()
        db.refresh(invitation)
        return invitation

    @staticmethod
    def refresh_invitation(
        db: Session, tenant_id: str, invitation_id: str, token: str, expires_at: datetime
    ) -> bool:
        """Issue a new token and expiry while the invitation is still pending"""
        updated = (
            db.query(TeamInvitation)
            .filter(
                TeamInvitation.id == invitation_id,
                TeamInvitation.tenant_id == tenant_id,
                TeamInvitation.status == "pending",
                TeamInvitation.user_id.is_(None),
            )
            .update({"token": token, "expires_at": expires_at}, synchronize_session=False)
        )
        db.commit()
        return updated == 1

    @staticmethod
    def claim_invitation(db: Session, tenant_id: str, invitation_id: str, now: datetime) -> bool:
        """pending -> accepted; exactly one concurrent caller gets True"""
        updated = (
            db.query(TeamInvitation)
            .filter(
                TeamInvitation.id == invitation_id,
                TeamInvitation.tenant_id == tenant_id,
                TeamInvitation.status == "pending",
                TeamInvitation.user_id.is_(None),
            )
            .update({"status": "accepted", "accepted_at": now}, synchronize_session=False)
        )
        db.commit()
        return updated == 1

    @staticmethod
    def release_invitation(db: Session, tenant_id: str, invitation_id: str) -> None:
        """Undo a claim whose account step failed"""
        (
            db.query(TeamInvitation)
            .filter(
                TeamInvitation.id == invitation_id,
                TeamInvitation.tenant_id == tenant_id,
                TeamInvitation.status == "accepted",
                TeamInvitation.user_id.is_(None),
            )
            .update({"status": "pending", "accepted_at": None}, synchronize_session=False)
        )
        db.commit()

    @staticmethod
    def set_invitation_user(db: Session, tenant_id: str, invitation_id: str, user_id: str) -> None:
        """Link the accepted invitation to its account"""
        (
            db.query(TeamInvitation)
            .filter(
                TeamInvitation.id == invitation_id,
                TeamInvitation.tenant_id == tenant_id,
                TeamInvitation.user_id.is_(None),
            )
            .update({"user_id": user_id}, synchronize_session=False)
        )
        db.commit()

    @staticmethod
    def cancel_invitation(db: Session, tenant_id: str, invitation_id: str) -> bool:
        """pending -> cancelled"""
        updated = (
            db.query(TeamInvitation)
            .filter(
                TeamInvitation.id == invitation_id,
                TeamInvitation.tenant_id == tenant_id,
                TeamInvitation.status == "pending",
                TeamInvitation.user_id.is_(None),
            )
            .update({"status": "cancelled"}, synchronize_session=False)
        )
        db.commit()
        return updated == 1

    # Memberships and profiles

    @staticmethod
    def get_membership(db: Session, tenant_id: str, user_id: str) -> Optional[UserTenantRole]:
        """Get a user's role grant in a tenant"""
        return (
            db.query(UserTenantRole)
            .filter(UserTenantRole.tenant_id == tenant_id, UserTenantRole.user_id == user_id)
            .first()
        )

    @staticmethod
    def insert_membership(db: Session, tenant_id: str, user_id: str, role: str, now: datetime) -> UserTenantRole:
        """Grant a tenant role; the (tenant, user) unique key rejects a duplicate"""
        membership = UserTenantRole(
            tenant_id=tenant_id, user_id=user_id, role=role, is_active=True, assigned_at=now
        )
        db.add(membership)
        db.commit()
        db.refresh(membership)
        return membership

    @staticmethod
    def delete_membership(db: Session, tenant_id: str, membership_id: str, user_id: str) -> int:
        """Delete a role grant, returning the number of rows removed"""
        deleted = (
            db.query(UserTenantRole)
            .filter(
                UserTenantRole.id == membership_id,
                UserTenantRole.tenant_id == tenant_id,
                UserTenantRole.user_id == user_id,
            )
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted

    @staticmethod
    def upsert_profile(db: Session, user_id: str, **values) -> Profile:
        """Create or update an account's profile"""
        profile = db.query(Profile).filter(Profile.id == user_id).first()
        if profile is None:
            profile = Profile(id=user_id, **values)
            db.add(profile)
        else:
            for key, value in values.items():
                setattr(profile, key, value)
        db.commit()
        db.refresh(profile)
        return profile
