"""Technician repository"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Technician


class TechnicianRepository:
    """Repository for technician database operations"""

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[Technician]:
        """Emails are unique across tenants; not tenant-scoped"""
        return db.query(Technician).filter(Technician.email == email).first()

    @staticmethod
    def get(db: Session, tenant_id: str, technician_id: str) -> Optional[Technician]:
        """Get a specific technician by ID"""
        return (
            db.query(Technician)
            .filter(Technician.id == technician_id, Technician.tenant_id == tenant_id)
            .first()
        )

    @staticmethod
    def get_by_email_and_token(db: Session, email: str, token: str) -> Optional[Technician]:
        """Get the technician a verification link points at"""
        return (
            db.query(Technician)
            .filter(Technician.email == email, Technician.verification_token == token)
            .first()
        )

    @staticmethod
    def create(db: Session, tenant_id: str, **values) -> Technician:
        """Create a new technician"""
        technician = Technician(tenant_id=tenant_id, **values)
        db.add(technician)
        db.commit()
        db.refresh(technician)
        return technician

    @staticmethod
    def update(db: Session, technician: Technician, **values) -> Technician:
        """Update a technician's fields"""
        for key, value in values.items():
            setattr(technician, key, value)
        db.commit()
        db.refresh(technician)
        return technician

    @staticmethod
    def set_token(
        db: Session, tenant_id: str, technician_id: str, token: str, expires_at: datetime
    ) -> bool:
        """Store a fallback verification token and its expiry"""
        updated = (
            db.query(Technician)
            .filter(Technician.id == technician_id, Technician.tenant_id == tenant_id)
            .update(
                {"verification_token": token, "token_expires_at": expires_at},
                synchronize_session=False,
            )
        )
        db.commit()
        return updated == 1

    @staticmethod
    def link_account(db: Session, tenant_id: str, technician_id: str, user_id: str) -> bool:
        """Link an account unless the row already belongs to a different one"""
        updated = (
            db.query(Technician)
            .filter(
                Technician.id == technician_id,
                Technician.tenant_id == tenant_id,
                or_(Technician.user_id.is_(None), Technician.user_id == user_id),
            )
            .update(
                {
                    "user_id": user_id,
                    "is_verified": True,
                    "verification_token": None,
                    "token_expires_at": None,
                },
                synchronize_session=False,
            )
        )
        db.commit()
        return updated == 1

    @staticmethod
    def link_account_by_token(
        db: Session, tenant_id: str, technician_id: str, token: str, user_id: str
    ) -> bool:
        """Single-use: only succeeds while the token is still on an unlinked row"""
        updated = (
            db.query(Technician)
            .filter(
                Technician.id == technician_id,
                Technician.tenant_id == tenant_id,
                Technician.verification_token == token,
                Technician.user_id.is_(None),
            )
            .update(
                {
                    "user_id": user_id,
                    "is_verified": True,
                    "verification_token": None,
                    "token_expires_at": None,
                },
                synchronize_session=False,
            )
        )
        db.commit()
        return updated == 1

    @staticmethod
    def delete_for_user(db: Session, tenant_id: str, user_id: str) -> int:
        """Delete the technician row linked to an account"""
        deleted = (
            db.query(Technician)
            .filter(Technician.tenant_id == tenant_id, Technician.user_id == user_id)
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted
