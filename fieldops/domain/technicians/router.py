"""Technician activation router"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import CurrentUser, get_current_user
from ...database import get_db
from ...services.identity_provider import IdentityProvider, get_identity_provider
from .schemas import CreateAccountRequest, VerifyTokenRequest
from .service import TechnicianService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/technician", tags=["Technicians"])


def get_technician_service(db: Session = Depends(get_db)) -> TechnicianService:
    """Dependency injection for TechnicianService"""
    return TechnicianService(db)


@router.post("/complete-invite")
async def complete_invite(
    current_user: CurrentUser = Depends(get_current_user),
    service: TechnicianService = Depends(get_technician_service),
):
    """Called by the invitee after accepting the identity provider's invite email"""
    return service.complete_invite(current_user)


@router.post("/verify-token")
async def verify_token(
    data: VerifyTokenRequest,
    service: TechnicianService = Depends(get_technician_service),
):
    return service.verify_token(data)


@router.post("/create-account")
async def create_account(
    data: CreateAccountRequest,
    service: TechnicianService = Depends(get_technician_service),
    idp: IdentityProvider = Depends(get_identity_provider),
):
    return await service.create_account(data, idp)
