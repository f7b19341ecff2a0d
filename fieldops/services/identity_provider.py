import logging
from typing import Any, Optional

import httpx

from ..config import AUTH_HTTP_TIMEOUT, AUTH_SERVICE_ROLE_KEY, AUTH_URL
from ..errors import InternalError
from ..shared.validators import normalize_email

logger = logging.getLogger(__name__)


class IdentityProviderError(Exception):
    """Non-2xx answer from the identity provider"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    @property
    def already_registered(self) -> bool:
        text = self.message.lower()
        return "already" in text and ("registered" in text or "exists" in text)


class IdentityProvider:
    """Client for the hosted auth admin API (GoTrue-compatible REST endpoints)"""

    USERS_PER_PAGE = 100
    MAX_USER_PAGES = 10

    def __init__(
        self,
        base_url: str,
        service_role_key: str,
        timeout: float = AUTH_HTTP_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.service_role_key = service_role_key
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.service_role_key,
            "Authorization": f"Bearer {self.service_role_key}",
            "Content-Type": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict[str, Any]:
        url = f"{self.base_url}/auth/v1{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(
                    method, url, json=json, params=params, headers=self._headers()
                )
        except httpx.HTTPError as e:
            logger.error(f"❌ Identity provider {method} {path} unreachable: {e}")
            raise IdentityProviderError(f"Identity provider unreachable: {e}") from e

        if response.status_code >= 400:
            try:
                body = response.json()
            except ValueError:
                body = {}
            message = (
                body.get("msg")
                or body.get("message")
                or body.get("error_description")
                or body.get("error")
                or response.text
                or f"HTTP {response.status_code}"
            )
            logger.warning(f"⚠️ Identity provider {method} {path} failed: {response.status_code} {message}")
            raise IdentityProviderError(str(message), response.status_code)

        if not response.content:
            return {}
        return response.json()

    async def invite_user_by_email(
        self, email: str, redirect_to: str, data: Optional[dict] = None
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/invite",
            json={"email": email, "data": data or {}},
            params={"redirect_to": redirect_to},
        )

    async def create_user(
        self, email: str, password: str, user_metadata: Optional[dict] = None
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/admin/users",
            json={
                "email": email,
                "password": password,
                "email_confirm": True,
                "user_metadata": user_metadata or {},
            },
        )

    async def update_user_by_id(self, user_id: str, **attributes) -> dict[str, Any]:
        return await self._request("PUT", f"/admin/users/{user_id}", json=attributes)

    async def delete_user(self, user_id: str) -> None:
        await self._request("DELETE", f"/admin/users/{user_id}")

    async def list_users(self, page: int, per_page: int) -> list[dict[str, Any]]:
        data = await self._request(
            "GET", "/admin/users", params={"page": page, "per_page": per_page}
        )
        return data.get("users") or []

    async def find_user_id_by_email(self, email: str) -> Optional[str]:
        """Bounded scan of the user list; the admin API has no lookup by email"""
        target = normalize_email(email)
        if not target:
            return None

        for page in range(1, self.MAX_USER_PAGES + 1):
            users = await self.list_users(page, self.USERS_PER_PAGE)
            for user in users:
                if normalize_email(user.get("email")) == target and user.get("id"):
                    return user["id"]
            if len(users) < self.USERS_PER_PAGE:
                break
        return None

    async def reset_password_for_email(self, email: str, redirect_to: str) -> None:
        await self._request(
            "POST", "/recover", json={"email": email}, params={"redirect_to": redirect_to}
        )

    async def generate_link(self, link_type: str, email: str, redirect_to: str) -> dict[str, Any]:
        """Returns at least ``action_link`` and ``hashed_token`` when the provider supports them"""
        data = await self._request(
            "POST",
            "/admin/generate_link",
            json={"type": link_type, "email": email, "redirect_to": redirect_to},
        )
        return data.get("properties") or data


def get_identity_provider() -> IdentityProvider:
    """Per-request constructor; no process-wide client state"""
    if not AUTH_URL or not AUTH_SERVICE_ROLE_KEY:
        raise InternalError("Server misconfigured: missing AUTH_SERVICE_ROLE_KEY")
    return IdentityProvider(AUTH_URL, AUTH_SERVICE_ROLE_KEY)
