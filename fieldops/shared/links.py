"""Activation token and link helpers"""

import secrets
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import quote, urlparse

from fastapi import Request

from ..config import APP_URL, DEFAULT_APP_URL, INVITE_VALIDITY_DAYS
from .clock import utc_now


def generate_secure_token(length: int = 32) -> str:
    """URL-safe random token of exactly ``length`` characters"""
    return secrets.token_urlsafe(length)[:length]


def invitation_expiry(now: Optional[datetime] = None) -> datetime:
    return (now or utc_now()) + timedelta(days=INVITE_VALIDITY_DAYS)


def get_base_url(request: Request) -> str:
    """Origin for links sent to invitees: APP_URL, then forwarded headers, then default"""
    if APP_URL:
        parsed = urlparse(APP_URL)
        if parsed.scheme and parsed.netloc:
            return f"{parsed.scheme}://{parsed.netloc}"

    proto = request.headers.get("x-forwarded-proto") or "https"
    host = request.headers.get("x-forwarded-host") or request.headers.get("host")
    if host:
        return f"{proto}://{host}"
    return DEFAULT_APP_URL


def technician_verify_url(base_url: str, email: str, token: str) -> str:
    return f"{base_url}/technician/verify?email={quote(email, safe='')}&token={quote(token, safe='')}"


def client_portal_invite_url(base_url: str, token: str) -> str:
    return f"{base_url}/client/invite/{quote(token, safe='')}"


def team_invite_url(base_url: str, token: str) -> str:
    return f"{base_url}/team/invite/{quote(token, safe='')}"


def technician_invite_url(base_url: str, hashed_token: str, link_type: str) -> str:
    """App-domain landing link for a provider-issued invite or recovery token"""
    return f"{base_url}/technician/invite?token_hash={quote(hashed_token, safe='')}&type={link_type}"
