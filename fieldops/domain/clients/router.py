"""Client portal router - staff invitations and client self-activation"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import TenantContext, tenant_admin
from ...database import get_db
from ...services.identity_provider import IdentityProvider, get_identity_provider
from ...shared.links import get_base_url
from ...shared.permissions import Capability
from .schemas import (
    ActivatePortalRequest,
    GeneratePortalInvitationRequest,
    ValidatePortalInvitationRequest,
)
from .service import ClientPortalService

logger = logging.getLogger(__name__)

admin_router = APIRouter(prefix="/admin", tags=["Client Portal"])
router = APIRouter(prefix="/client", tags=["Client Portal"])


def get_client_portal_service(db: Session = Depends(get_db)) -> ClientPortalService:
    """Dependency injection for ClientPortalService"""
    return ClientPortalService(db)


@admin_router.post("/generate-portal-invitation")
async def generate_portal_invitation(
    data: GeneratePortalInvitationRequest,
    ctx: TenantContext = Depends(tenant_admin(Capability.MANAGE_PEOPLE)),
    service: ClientPortalService = Depends(get_client_portal_service),
    base_url: str = Depends(get_base_url),
):
    return service.generate_invitation(ctx, data, base_url)


@router.post("/validate-invitation")
async def validate_invitation(
    data: ValidatePortalInvitationRequest,
    service: ClientPortalService = Depends(get_client_portal_service),
):
    return service.validate_invitation(data)


@router.post("/activate-portal")
async def activate_portal(
    data: ActivatePortalRequest,
    service: ClientPortalService = Depends(get_client_portal_service),
    idp: IdentityProvider = Depends(get_identity_provider),
):
    """Public: the invitation token is the credential"""
    return await service.activate_portal(data, idp)
