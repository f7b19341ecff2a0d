"""People router - technician onboarding, team invitations and memberships"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import CurrentUser, get_current_user
from ...database import get_db
from ...services.identity_provider import IdentityProvider, get_identity_provider
from ...shared.links import get_base_url
from .schemas import (
    AddMemberRequest,
    AddTechnicianRequest,
    CompleteTeamInviteRequest,
    InvitationActionRequest,
    RemoveMemberRequest,
    ResendTechnicianActivationRequest,
    TeamInviteMetaRequest,
)
from .service import PeopleService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/people", tags=["People"])


def get_people_service(db: Session = Depends(get_db)) -> PeopleService:
    """Dependency injection for PeopleService"""
    return PeopleService(db)


@router.post("/add-technician")
async def add_technician(
    data: AddTechnicianRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: PeopleService = Depends(get_people_service),
    idp: IdentityProvider = Depends(get_identity_provider),
    base_url: str = Depends(get_base_url),
):
    return await service.add_technician(current_user, data, idp, base_url)


@router.post("/resend-technician-activation")
async def resend_technician_activation(
    data: ResendTechnicianActivationRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: PeopleService = Depends(get_people_service),
    idp: IdentityProvider = Depends(get_identity_provider),
    base_url: str = Depends(get_base_url),
):
    return await service.resend_technician_activation(current_user, data, idp, base_url)


@router.post("/add-member")
async def add_member(
    data: AddMemberRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: PeopleService = Depends(get_people_service),
    base_url: str = Depends(get_base_url),
):
    return service.add_member(current_user, data, base_url)


@router.post("/resend-team-invite")
async def resend_team_invite(
    data: InvitationActionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: PeopleService = Depends(get_people_service),
    base_url: str = Depends(get_base_url),
):
    return service.resend_team_invite(current_user, data, base_url)


@router.post("/cancel-team-invite")
async def cancel_team_invite(
    data: InvitationActionRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: PeopleService = Depends(get_people_service),
):
    return service.cancel_team_invite(current_user, data)


@router.post("/team-invite-meta")
async def team_invite_meta(
    data: TeamInviteMetaRequest,
    service: PeopleService = Depends(get_people_service),
):
    """Public: the token is the credential"""
    return service.team_invite_meta(data)


@router.post("/complete-team-invite")
async def complete_team_invite(
    data: CompleteTeamInviteRequest,
    service: PeopleService = Depends(get_people_service),
    idp: IdentityProvider = Depends(get_identity_provider),
):
    return await service.complete_team_invite(data, idp)


@router.post("/remove-member")
async def remove_member(
    data: RemoveMemberRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: PeopleService = Depends(get_people_service),
):
    return service.remove_member(current_user, data)
