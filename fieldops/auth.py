import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import AUTH_JWT_AUDIENCE, AUTH_JWT_SECRET
from .database import get_db
from .errors import ConflictError, ForbiddenError, InternalError, UnauthorizedError
from .models import Profile, Technician, UserTenantRole
from .shared.permissions import Capability, has_capability

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    id: str
    email: Optional[str] = None


@dataclass
class TenantContext:
    user: CurrentUser
    tenant_id: str
    role: str


@dataclass
class TechnicianContext:
    user: CurrentUser
    tenant_id: str
    technician: Technician


def verify_access_token(token: str) -> dict:
    """Verify an HS256 access token issued by the identity provider"""
    if not AUTH_JWT_SECRET:
        logger.error("❌ AUTH_JWT_SECRET not configured")
        raise InternalError("Server misconfigured: missing AUTH_JWT_SECRET")

    try:
        return jwt.decode(
            token,
            AUTH_JWT_SECRET,
            algorithms=["HS256"],
            audience=AUTH_JWT_AUDIENCE,
        )
    except ExpiredSignatureError as e:
        raise UnauthorizedError("Token has expired. Please refresh your session.") from e
    except JWTError as e:
        logger.warning(f"⚠️ Token verification failed: {e}")
        raise UnauthorizedError() from e


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    """Resolve the caller from the bearer token"""
    if not credentials or not credentials.credentials:
        raise UnauthorizedError()

    claims = verify_access_token(credentials.credentials)
    user_id = claims.get("sub")
    if not user_id:
        logger.error(f"❌ Token missing sub claim. Available claims: {list(claims.keys())}")
        raise UnauthorizedError()

    return CurrentUser(id=str(user_id), email=claims.get("email"))


def get_tenant_role(db: Session, tenant_id: str, user_id: str) -> Optional[str]:
    try:
        row = (
            db.query(UserTenantRole)
            .filter(
                UserTenantRole.tenant_id == tenant_id,
                UserTenantRole.user_id == user_id,
                UserTenantRole.is_active.is_(True),
            )
            .first()
        )
    except SQLAlchemyError as e:
        raise InternalError(str(e)) from e
    return row.role if row else None


def require_capability(
    db: Session, user: CurrentUser, tenant_id: str, capability: Capability
) -> str:
    """Return the caller's role in the tenant or raise Forbidden"""
    role = get_tenant_role(db, tenant_id, user.id)
    if not has_capability(role, capability):
        logger.warning(f"🚫 User {user.id} lacks {capability.value} in tenant {tenant_id}")
        raise ForbiddenError()
    return role


def get_active_tenant_id(db: Session, user: CurrentUser) -> str:
    try:
        profile = db.query(Profile).filter(Profile.id == user.id).first()
    except SQLAlchemyError as e:
        raise InternalError(str(e)) from e

    tenant_id = str(profile.active_tenant_id or "").strip() if profile else ""
    if not tenant_id:
        raise ConflictError("No active tenant. Set active tenant first.")
    return tenant_id


def tenant_admin(capability: Capability):
    """Dependency factory: caller must hold ``capability`` in their active tenant"""

    async def dependency(
        current_user: CurrentUser = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> TenantContext:
        tenant_id = get_active_tenant_id(db, current_user)
        role = require_capability(db, current_user, tenant_id, capability)
        return TenantContext(user=current_user, tenant_id=tenant_id, role=role)

    return dependency


async def get_technician_context(
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TechnicianContext:
    """Caller's account must resolve to a tenant-scoped technician row whose role records attendance"""
    try:
        technician = db.query(Technician).filter(Technician.user_id == current_user.id).first()
    except SQLAlchemyError as e:
        raise InternalError(str(e)) from e

    if not technician or not technician.tenant_id:
        raise ForbiddenError()
    if not has_capability(technician.role, Capability.RECORD_ATTENDANCE):
        logger.warning(f"🚫 Technician {technician.id} role {technician.role} cannot record attendance")
        raise ForbiddenError()

    return TechnicianContext(
        user=current_user, tenant_id=technician.tenant_id, technician=technician
    )
