"""Shared fixtures: a fake IdP strategy and a provider wired to it."""

from __future__ import annotations

import base64
import json
import re
from collections.abc import Mapping
from urllib.parse import urlencode

import pytest

from authgate.oauth.config import ClientOptions, CookieSettings, ProviderConfig
from authgate.oauth.flow import OAuthProvider
from authgate.oauth.strategy import SessionResult, TokenResponse

BASE_URL = "http://localhost:7000"


class FakeStrategy:
    """In-memory stand-in for an IdP strategy that records its calls."""

    def __init__(
        self,
        session: SessionResult | None = None,
        error: Exception | None = None,
        refresh_response: TokenResponse | None = None,
        refresh_error: Exception | None = None,
    ):
        self.session = session
        self.error = error
        self.refresh_response = refresh_response
        self.refresh_error = refresh_error
        self.authorize_calls: list[dict] = []
        self.authenticate_calls: list[dict] = []
        self.refresh_calls: list[tuple[str, str | None]] = []

    async def authorization_url(self, *, scope, state, redirect_uri, **params):
        self.authorize_calls.append(
            {"scope": scope, "state": state, "redirect_uri": redirect_uri, **params}
        )
        query = urlencode({"scope": scope, "state": state, "redirect_uri": redirect_uri, **params})
        return f"https://idp.example.com/authorize?{query}"

    async def authenticate(self, query: Mapping[str, str], redirect_uri: str):
        self.authenticate_calls.append({"query": dict(query), "redirect_uri": redirect_uri})
        if self.error is not None:
            raise self.error
        return self.session

    async def refresh(self, refresh_token: str, scope: str | None = None):
        self.refresh_calls.append((refresh_token, scope))
        if self.refresh_error is not None:
            raise self.refresh_error
        return self.refresh_response


def make_session(refresh_token: str | None = "rt1") -> SessionResult:
    return SessionResult(
        profile={"provider": "demo", "id": "42", "displayName": "Ada", "email": "ada@example.com"},
        id_token="idt1",
        access_token="at1",
        refresh_token=refresh_token,
        scope="openid profile",
        expires_in_seconds=3600,
    )


def decode_auth_result(html: str) -> dict:
    """Pull the posted message out of a post-message HTML page."""
    match = re.search(r"atob\('([^']+)'\)", html)
    assert match, "no encoded payload in page"
    return json.loads(base64.b64decode(match.group(1)))


@pytest.fixture
def demo_config() -> ProviderConfig:
    return ProviderConfig(
        provider_id="demo",
        options=ClientOptions(
            client_id="demo-client",
            client_secret="demo-secret",
            authorize_url="https://idp.example.com/authorize",
            token_url="https://idp.example.com/token",
        ),
    )


@pytest.fixture
def fake_strategy() -> FakeStrategy:
    return FakeStrategy(
        session=make_session(),
        refresh_response=TokenResponse(
            access_token="at2",
            refresh_token=None,
            params={"access_token": "at2", "id_token": "idt2", "expires_in": 3599, "scope": "openid"},
        ),
    )


@pytest.fixture
def cookie_settings() -> CookieSettings:
    return CookieSettings(domain="localhost", secure=False)


@pytest.fixture
def provider(demo_config, fake_strategy, cookie_settings) -> OAuthProvider:
    return OAuthProvider(
        config=demo_config,
        strategy=fake_strategy,
        base_url=BASE_URL,
        cookie_settings=cookie_settings,
    )
