"""
Tests for the identity provider admin client
"""
import asyncio
import json

import httpx
import pytest

from fieldops.errors import InternalError
from fieldops.services import identity_provider
from fieldops.services.identity_provider import IdentityProvider, IdentityProviderError


def provider(handler):
    return IdentityProvider(
        "https://auth.test.local/", "service-key", transport=httpx.MockTransport(handler)
    )


@pytest.mark.unit
class TestIdentityProvider:
    def test_create_user_sends_admin_headers(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["apikey"] = request.headers["apikey"]
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "user-1", "email": "a@example.com"})

        result = asyncio.run(provider(handler).create_user("a@example.com", "secret123"))

        assert result["id"] == "user-1"
        assert seen["url"] == "https://auth.test.local/auth/v1/admin/users"
        assert seen["apikey"] == "service-key"
        assert seen["auth"] == "Bearer service-key"
        assert seen["body"]["email_confirm"] is True

    def test_error_message_is_surfaced(self):
        def handler(request):
            return httpx.Response(
                422, json={"msg": "A user with this email address has already been registered"}
            )

        with pytest.raises(IdentityProviderError) as exc_info:
            asyncio.run(provider(handler).invite_user_by_email("a@example.com", "https://x"))

        assert exc_info.value.status_code == 422
        assert exc_info.value.already_registered is True

    def test_unreachable_provider(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(IdentityProviderError, match="unreachable"):
            asyncio.run(provider(handler).delete_user("user-1"))

    def test_find_user_scans_pages(self):
        pages = []

        def handler(request):
            page = int(request.url.params["page"])
            pages.append(page)
            if page == 1:
                users = [{"id": f"u{i}", "email": f"u{i}@example.com"} for i in range(100)]
            else:
                users = [{"id": "target", "email": "Target@Example.com"}]
            return httpx.Response(200, json={"users": users})

        user_id = asyncio.run(provider(handler).find_user_id_by_email("target@example.com"))

        assert user_id == "target"
        assert pages == [1, 2]

    def test_find_user_stops_on_short_page(self):
        def handler(request):
            return httpx.Response(200, json={"users": [{"id": "u1", "email": "u1@example.com"}]})

        assert asyncio.run(provider(handler).find_user_id_by_email("nobody@example.com")) is None

    def test_generate_link_returns_properties(self):
        def handler(request):
            return httpx.Response(
                200, json={"properties": {"hashed_token": "abc", "action_link": "https://x"}}
            )

        props = asyncio.run(provider(handler).generate_link("invite", "a@example.com", "https://x"))
        assert props["hashed_token"] == "abc"

    def test_missing_credentials(self, monkeypatch):
        monkeypatch.setattr(identity_provider, "AUTH_SERVICE_ROLE_KEY", None)
        with pytest.raises(InternalError, match="missing AUTH_SERVICE_ROLE_KEY"):
            identity_provider.get_identity_provider()
