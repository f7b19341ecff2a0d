"""Client portal schemas"""

from typing import Optional

from pydantic import BaseModel


class GeneratePortalInvitationRequest(BaseModel):
    client_id: Optional[str] = None


class ValidatePortalInvitationRequest(BaseModel):
    token: Optional[str] = None


class ActivatePortalRequest(BaseModel):
    """Submitted from the client invite page"""

    token: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    client_id: Optional[str] = None
