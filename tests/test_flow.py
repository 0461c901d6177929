"""Tests for the provider flow handlers (start, callback, refresh, logout)."""

from __future__ import annotations

import json
from urllib.parse import parse_qs, urlparse

import pytest
from aiohttp.test_utils import make_mocked_request

from authgate.oauth.errors import (
    ExchangeError,
    InputError,
    MissingNonceError,
    NonceMismatchError,
    RefreshError,
    RequestedWithError,
    SessionCookieError,
)
from authgate.oauth.flow import OAuthProvider
from authgate.oauth.strategy import TokenResponse
from conftest import BASE_URL, decode_auth_result, make_session

XHR = {"X-Requested-With": "XMLHttpRequest"}


def _state_from_location(location: str) -> str:
    return parse_qs(urlparse(location).query)["state"][0]


class TestStart:
    """Tests for starting the authorization flow."""

    @pytest.mark.asyncio
    async def test_start_redirects_with_nonce_cookie_matching_state(self, provider):
        """Test the nonce cookie equals the state in the redirect URL."""
        request = make_mocked_request("GET", "/auth/demo/start?scope=openid%20profile")
        response = await provider.start(request)

        assert response.status == 302
        state = _state_from_location(response.headers["Location"])
        cookie = response.cookies["demo-nonce"]
        assert cookie.value == state
        assert cookie["max-age"] == "600"
        assert cookie["httponly"] is True
        assert cookie["path"] == "/auth/demo/handler"
        assert cookie["domain"] == "localhost"

    @pytest.mark.asyncio
    async def test_start_requests_offline_access_with_consent(self, provider, fake_strategy):
        """Test start asks the IdP for offline access and forced consent."""
        request = make_mocked_request("GET", "/auth/demo/start?scope=openid%20profile")
        await provider.start(request)

        call = fake_strategy.authorize_calls[0]
        assert call["scope"] == "openid profile"
        assert call["access_type"] == "offline"
        assert call["prompt"] == "consent"
        assert call["redirect_uri"] == f"{BASE_URL}/auth/demo/handler/frame"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/auth/demo/start", "/auth/demo/start?scope="])
    async def test_start_without_scope_fails(self, provider, fake_strategy, path):
        """Test missing or empty scope is an input error."""
        with pytest.raises(InputError, match="missing scope"):
            await provider.start(make_mocked_request("GET", path))

        assert fake_strategy.authorize_calls == []

    @pytest.mark.asyncio
    async def test_each_start_issues_a_new_nonce(self, provider):
        """Test nonces are not reused across logins."""
        first = await provider.start(make_mocked_request("GET", "/auth/demo/start?scope=openid"))
        second = await provider.start(make_mocked_request("GET", "/auth/demo/start?scope=openid"))

        assert first.cookies["demo-nonce"].value != second.cookies["demo-nonce"].value


class TestFrameHandler:
    """Tests for the IdP redirect handler."""

    @staticmethod
    def _callback(state: str | None = "n1", cookie: str | None = "n1"):
        path = "/auth/demo/handler/frame?code=abc"
        if state is not None:
            path += f"&state={state}"
        headers = {"Cookie": f"demo-nonce={cookie}"} if cookie is not None else {}
        return make_mocked_request("GET", path, headers=headers)

    @pytest.mark.asyncio
    async def test_mismatched_nonce_rejected(self, provider, fake_strategy):
        """Test cookie nonce different from state is rejected before exchange."""
        with pytest.raises(NonceMismatchError) as exc_info:
            await provider.frame_handler(self._callback(state="Y", cookie="X"))

        assert exc_info.value.status == 401
        assert exc_info.value.message == "Invalid nonce"
        assert fake_strategy.authenticate_calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("state,cookie", [(None, "n1"), ("n1", None), (None, None)])
    async def test_missing_nonce_rejected(self, provider, fake_strategy, state, cookie):
        """Test absent cookie or state is rejected before exchange."""
        with pytest.raises(MissingNonceError, match="Missing nonce"):
            await provider.frame_handler(self._callback(state=state, cookie=cookie))

        assert fake_strategy.authenticate_calls == []

    @pytest.mark.asyncio
    async def test_success_sets_refresh_cookie(self, provider):
        """Test a successful exchange stores the refresh token in a cookie."""
        response = await provider.frame_handler(self._callback())

        assert response.status == 200
        assert response.content_type == "text/html"
        cookie = response.cookies["demo-refresh-token"]
        assert cookie.value == "rt1"
        assert cookie["max-age"] == "86400000"
        assert cookie["path"] == "/auth/demo"
        assert cookie["httponly"] is True

    @pytest.mark.asyncio
    async def test_success_payload_has_no_refresh_token(self, provider):
        """Test the page payload never carries the refresh token."""
        response = await provider.frame_handler(self._callback())

        message = decode_auth_result(response.text)
        assert message["type"] == "auth-result"
        assert "error" not in message
        payload = message["payload"]
        assert "refreshToken" not in payload
        assert payload["accessToken"] == "at1"
        assert payload["idToken"] == "idt1"
        assert payload["expiresInSeconds"] == 3600
        assert payload["profile"]["email"] == "ada@example.com"
        assert "rt1" not in json.dumps(message)

    @pytest.mark.asyncio
    async def test_callback_passes_query_and_redirect_uri(self, provider, fake_strategy):
        """Test the strategy receives the IdP query and the callback URL."""
        await provider.frame_handler(self._callback())

        call = fake_strategy.authenticate_calls[0]
        assert call["query"]["code"] == "abc"
        assert call["redirect_uri"] == f"{BASE_URL}/auth/demo/handler/frame"

    @pytest.mark.asyncio
    async def test_missing_refresh_token_is_error_without_cookie(self, provider, fake_strategy):
        """Test a session without refresh token yields an error and no cookie."""
        fake_strategy.session = make_session(refresh_token=None)

        response = await provider.frame_handler(self._callback())

        assert "demo-refresh-token" not in response.cookies
        message = decode_auth_result(response.text)
        assert "payload" not in message
        assert message["error"]["message"] == "Missing refresh token"

    @pytest.mark.asyncio
    async def test_exchange_error_is_reported_in_page(self, provider, fake_strategy):
        """Test IdP exchange failures are relayed to the opener."""
        fake_strategy.error = ExchangeError("invalid_grant")

        response = await provider.frame_handler(self._callback())

        assert response.status == 200
        assert "demo-refresh-token" not in response.cookies
        message = decode_auth_result(response.text)
        assert message["type"] == "auth-result"
        assert message["error"]["message"] == "Demo auth failed, invalid_grant"


class TestRefresh:
    """Tests for the refresh endpoint."""

    @pytest.mark.asyncio
    async def test_requires_requested_with_header(self, provider, fake_strategy):
        """Test refresh without the header fails before reading the cookie."""
        request = make_mocked_request(
            "POST", "/auth/demo/refresh", headers={"Cookie": "demo-refresh-token=rt1"}
        )
        with pytest.raises(RequestedWithError, match="Invalid X-Requested-With header"):
            await provider.refresh(request)

        assert fake_strategy.refresh_calls == []

    @pytest.mark.asyncio
    async def test_rejects_wrong_header_value(self, provider):
        """Test the header value must match exactly."""
        request = make_mocked_request(
            "POST",
            "/auth/demo/refresh",
            headers={"X-Requested-With": "fetch", "Cookie": "demo-refresh-token=rt1"},
        )
        with pytest.raises(RequestedWithError):
            await provider.refresh(request)

    @pytest.mark.asyncio
    async def test_requires_session_cookie(self, provider):
        """Test refresh without the cookie fails even with the header."""
        request = make_mocked_request("POST", "/auth/demo/refresh", headers=XHR)
        with pytest.raises(SessionCookieError, match="Missing session cookie"):
            await provider.refresh(request)

    @pytest.mark.asyncio
    async def test_success_returns_new_access_token(self, provider, fake_strategy):
        """Test a successful refresh returns the new token set."""
        request = make_mocked_request(
            "POST",
            "/auth/demo/refresh?scope=openid",
            headers={**XHR, "Cookie": "demo-refresh-token=rt1"},
        )
        response = await provider.refresh(request)

        assert response.status == 200
        body = json.loads(response.body)
        assert body == {
            "accessToken": "at2",
            "idToken": "idt2",
            "expiresInSeconds": 3599,
            "scope": "openid",
        }
        assert fake_strategy.refresh_calls == [("rt1", "openid")]

    @pytest.mark.asyncio
    async def test_scope_is_optional(self, provider, fake_strategy):
        """Test refresh without scope passes None to the strategy."""
        request = make_mocked_request(
            "POST", "/auth/demo/refresh", headers={**XHR, "Cookie": "demo-refresh-token=rt1"}
        )
        await provider.refresh(request)

        assert fake_strategy.refresh_calls == [("rt1", None)]

    @pytest.mark.asyncio
    async def test_rotated_refresh_token_is_not_stored(self, provider, fake_strategy):
        """Test a new refresh token from the IdP is neither echoed nor stored."""
        fake_strategy.refresh_response = TokenResponse(
            access_token="at2",
            refresh_token="rt2",
            params={"access_token": "at2", "refresh_token": "rt2"},
        )
        request = make_mocked_request(
            "POST", "/auth/demo/refresh", headers={**XHR, "Cookie": "demo-refresh-token=rt1"}
        )
        response = await provider.refresh(request)

        assert "demo-refresh-token" not in response.cookies
        assert "rt2" not in response.body.decode()

    @pytest.mark.asyncio
    async def test_exchange_failure_is_refresh_error(self, provider, fake_strategy):
        """Test an IdP failure maps to a 401 refresh error."""
        fake_strategy.refresh_error = ExchangeError("invalid_grant")
        request = make_mocked_request(
            "POST", "/auth/demo/refresh", headers={**XHR, "Cookie": "demo-refresh-token=rt1"}
        )
        with pytest.raises(RefreshError) as exc_info:
            await provider.refresh(request)

        assert exc_info.value.status == 401
        assert exc_info.value.message == "Failed to refresh access token"

    @pytest.mark.asyncio
    async def test_missing_access_token_is_refresh_error(self, provider, fake_strategy):
        """Test a grant without access token is a failure."""
        fake_strategy.refresh_response = TokenResponse(access_token=None)
        request = make_mocked_request(
            "POST", "/auth/demo/refresh", headers={**XHR, "Cookie": "demo-refresh-token=rt1"}
        )
        with pytest.raises(RefreshError):
            await provider.refresh(request)


class TestLogout:
    """Tests for the logout endpoint."""

    @pytest.mark.asyncio
    async def test_requires_requested_with_header(self, provider):
        """Test logout without the header is rejected."""
        request = make_mocked_request(
            "POST", "/auth/demo/logout", headers={"Cookie": "demo-refresh-token=rt1"}
        )
        with pytest.raises(RequestedWithError):
            await provider.logout(request)

    @pytest.mark.asyncio
    async def test_logout_clears_refresh_cookie(self, provider, fake_strategy):
        """Test logout expires the cookie on the same path and domain."""
        request = make_mocked_request(
            "POST", "/auth/demo/logout", headers={**XHR, "Cookie": "demo-refresh-token=rt1"}
        )
        response = await provider.logout(request)

        assert response.status == 200
        assert response.text == "logout!"
        cookie = response.cookies["demo-refresh-token"]
        assert cookie.value == ""
        assert cookie["max-age"] == "0"
        assert cookie["path"] == "/auth/demo"
        assert cookie["domain"] == "localhost"
        assert fake_strategy.refresh_calls == []


class TestDefaultCookieSettings:
    """Tests for a provider built without explicit cookie settings."""

    @pytest.mark.asyncio
    async def test_cookies_are_host_only_and_secure(self, demo_config, fake_strategy):
        """Test the default cookies carry no Domain attribute and are Secure."""
        provider = OAuthProvider(config=demo_config, strategy=fake_strategy, base_url=BASE_URL)

        response = await provider.start(
            make_mocked_request("GET", "/auth/demo/start?scope=openid")
        )

        cookie = response.cookies["demo-nonce"]
        assert cookie["domain"] == ""
        assert cookie["secure"] is True
        assert cookie["samesite"] == "None"
        assert "Domain=" not in cookie.OutputString()


class TestRoutes:
    """Tests for the provider route table."""

    def test_routes_are_scoped_to_provider(self, provider):
        """Test all routes live under /auth/{provider_id}."""
        routes = {(route.method, route.path) for route in provider.routes()}
        assert routes == {
            ("GET", "/auth/demo/start"),
            ("GET", "/auth/demo/handler/frame"),
            ("POST", "/auth/demo/refresh"),
            ("POST", "/auth/demo/logout"),
        }

    def test_callback_url(self, provider):
        """Test the callback URL is built from the base URL."""
        assert provider.callback_url == "http://localhost:7000/auth/demo/handler/frame"
