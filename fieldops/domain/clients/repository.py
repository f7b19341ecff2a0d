"""Client repository - portal invitation and activation"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...models import Client, ClientPortalActivity


class ClientRepository:
    """Repository for client portal database operations"""

    @staticmethod
    def get(db: Session, tenant_id: str, client_id: str) -> Optional[Client]:
        """Get a specific client by ID"""
        return (
            db.query(Client)
            .filter(Client.id == client_id, Client.tenant_id == tenant_id)
            .first()
        )

    @staticmethod
    def get_by_portal_token(db: Session, token: str) -> Optional[Client]:
        """The token itself selects the tenant"""
        return db.query(Client).filter(Client.portal_invitation_token == token).first()

    @staticmethod
    def set_portal_invitation(
        db: Session,
        tenant_id: str,
        client_id: str,
        token: str,
        expires_at: datetime,
        invited_by: str,
    ) -> bool:
        """Replace any earlier invitation while the portal is not yet activated"""
        updated = (
            db.query(Client)
            .filter(
                Client.id == client_id,
                Client.tenant_id == tenant_id,
                Client.portal_user_id.is_(None),
            )
            .update(
                {
                    "portal_invitation_token": token,
                    "portal_token_expires_at": expires_at,
                    "portal_invited_by": invited_by,
                },
                synchronize_session=False,
            )
        )
        db.commit()
        return updated == 1

    @staticmethod
    def activate_portal(
        db: Session,
        tenant_id: str,
        client_id: str,
        token: str,
        email: str,
        user_id: str,
        now: datetime,
    ) -> bool:
        """Single-use: only succeeds while the token is still on an unactivated client"""
        updated = (
            db.query(Client)
            .filter(
                Client.id == client_id,
                Client.tenant_id == tenant_id,
                Client.portal_invitation_token == token,
                Client.portal_user_id.is_(None),
            )
            .update(
                {
                    "portal_enabled": True,
                    "portal_email": email,
                    "portal_user_id": user_id,
                    "portal_activated_at": now,
                    "portal_invitation_token": None,
                    "portal_token_expires_at": None,
                },
                synchronize_session=False,
            )
        )
        db.commit()
        return updated == 1

    @staticmethod
    def log_activity(
        db: Session, tenant_id: str, client_id: str, activity_type: str, details: dict
    ) -> ClientPortalActivity:
        """Append an entry to the client's portal activity log"""
        activity = ClientPortalActivity(
            tenant_id=tenant_id, client_id=client_id, activity_type=activity_type, details=details
        )
        db.add(activity)
        db.commit()
        return activity
