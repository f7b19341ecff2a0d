"""Technician activation schemas"""

from typing import Optional

from pydantic import BaseModel


class VerifyTokenRequest(BaseModel):
    email: Optional[str] = None
    token: Optional[str] = None


class CreateAccountRequest(BaseModel):
    """Activation through a manually shared verification link"""

    email: Optional[str] = None
    token: Optional[str] = None
    password: Optional[str] = None
