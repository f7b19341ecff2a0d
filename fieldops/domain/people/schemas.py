"""People domain schemas - request bodies for membership and invitation routes"""

from typing import Optional

from pydantic import BaseModel


class AddTechnicianRequest(BaseModel):
    tenantId: Optional[str] = None
    email: Optional[str] = None
    fullName: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None  # technician | supervisor | team_lead


class ResendTechnicianActivationRequest(BaseModel):
    tenantId: Optional[str] = None
    technicianId: Optional[str] = None


class AddMemberRequest(BaseModel):
    """Team invitation for any assignable tenant role"""

    tenantId: Optional[str] = None
    email: Optional[str] = None
    fullName: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None


class InvitationActionRequest(BaseModel):
    tenantId: Optional[str] = None
    invitationId: Optional[str] = None


class TeamInviteMetaRequest(BaseModel):
    token: Optional[str] = None


class CompleteTeamInviteRequest(BaseModel):
    token: Optional[str] = None
    password: Optional[str] = None


class RemoveMemberRequest(BaseModel):
    tenantId: Optional[str] = None
    membershipId: Optional[str] = None
    userId: Optional[str] = None
