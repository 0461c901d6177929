"""IdP strategy: the boundary between the provider flow and the OAuth2 client.

The flow controller never talks to the identity provider directly. It calls a
``Strategy``, which builds the authorization redirect, completes the
authorization-code exchange and performs refresh grants. ``OAuth2Strategy``
implements this on top of authlib's httpx client; tests inject fakes.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
import structlog
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from authlib.oidc.discovery import get_well_known_url

from authgate.oauth.config import ProviderConfig
from authgate.oauth.errors import ExchangeError

logger = structlog.get_logger()

DEFAULT_TIMEOUT = 10.0


def _as_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class SessionResult:
    """Outcome of a successful login, held in memory for one request only."""

    profile: dict[str, Any]
    id_token: str | None
    access_token: str
    refresh_token: str | None = field(default=None, repr=False)
    scope: str | None = None
    expires_in_seconds: int | None = None

    def to_payload(self) -> dict[str, Any]:
        """Browser-facing shape. The refresh token is never included."""
        return {
            "profile": self.profile,
            "idToken": self.id_token,
            "accessToken": self.access_token,
            "scope": self.scope,
            "expiresInSeconds": self.expires_in_seconds,
        }


@dataclass(frozen=True)
class TokenResponse:
    """Raw token endpoint response from a refresh grant."""

    access_token: str | None
    refresh_token: str | None = field(default=None, repr=False)
    params: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def id_token(self) -> str | None:
        return self.params.get("id_token")

    @property
    def scope(self) -> str | None:
        return self.params.get("scope")

    @property
    def expires_in_seconds(self) -> int | None:
        return _as_int(self.params.get("expires_in"))


class Strategy(Protocol):
    """Capability the provider flow needs from an IdP integration."""

    async def authorization_url(
        self,
        *,
        scope: str,
        state: str,
        redirect_uri: str,
        **params: str,
    ) -> str: ...

    async def authenticate(
        self,
        query: Mapping[str, str],
        redirect_uri: str,
    ) -> SessionResult: ...

    async def refresh(self, refresh_token: str, scope: str | None = None) -> TokenResponse: ...


def normalize_profile(provider_id: str, claims: Mapping[str, Any]) -> dict[str, Any]:
    """Reduce OIDC userinfo claims to the profile shape sent to the browser."""
    subject = claims.get("sub") or claims.get("id")
    return {
        "provider": provider_id,
        "id": str(subject) if subject is not None else None,
        "displayName": claims.get("name") or claims.get("login"),
        "email": claims.get("email"),
        "picture": claims.get("picture") or claims.get("avatar_url"),
    }


def session_from_token(
    access_token: str | None,
    refresh_token: str | None,
    params: Mapping[str, Any],
    profile: dict[str, Any],
) -> SessionResult:
    """Map an IdP token response onto a SessionResult.

    ``params`` is the full token endpoint response; the id token, granted
    scope and lifetime are read from their standard OAuth2/OIDC names.
    """
    if not access_token:
        raise ExchangeError("token response did not include an access token")

    return SessionResult(
        profile=profile,
        id_token=params.get("id_token"),
        access_token=access_token,
        refresh_token=refresh_token or None,
        scope=params.get("scope"),
        expires_in_seconds=_as_int(params.get("expires_in")),
    )


class OAuth2Strategy:
    """Strategy backed by authlib's ``AsyncOAuth2Client``.

    For OIDC providers the endpoints are discovered once from the issuer's
    well-known document and cached; manual endpoints from the client options
    take precedence over discovered ones.
    """

    def __init__(
        self,
        config: ProviderConfig,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the strategy.

        Args:
            config: Provider configuration with client credentials
            timeout: Timeout in seconds for every IdP call
            transport: Optional httpx transport (used by tests)
        """
        self._config = config
        self._options = config.options
        self._timeout = timeout
        self._transport = transport
        self._metadata: dict[str, Any] | None = None

    @property
    def provider_id(self) -> str:
        return self._config.provider_id

    def _http_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"timeout": self._timeout}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return kwargs

    def _client(self, **kwargs: Any) -> AsyncOAuth2Client:
        return AsyncOAuth2Client(
            client_id=self._options.client_id,
            client_secret=self._options.client_secret,
            **self._http_kwargs(),
            **kwargs,
        )

    async def provider_metadata(self) -> dict[str, Any]:
        """Return the IdP endpoints, fetching the discovery document if needed."""
        if self._metadata is not None:
            return self._metadata

        options = self._options
        metadata: dict[str, Any] = {}

        if options.issuer_url:
            discovery_url = get_well_known_url(options.issuer_url, external=True)
            try:
                async with httpx.AsyncClient(**self._http_kwargs()) as client:
                    response = await client.get(discovery_url)
                    response.raise_for_status()
                    data = response.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(
                    "OIDC discovery failed",
                    provider=self.provider_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise ExchangeError(f"OIDC discovery failed for {options.issuer_url}") from e
            if not isinstance(data, dict):
                raise ExchangeError("Invalid OIDC discovery document")
            metadata.update(data)

        overrides = {
            "authorization_endpoint": options.authorize_url,
            "token_endpoint": options.token_url,
            "userinfo_endpoint": options.userinfo_url,
        }
        metadata.update({k: v for k, v in overrides.items() if v})

        self._metadata = metadata
        logger.debug(
            "Provider metadata loaded",
            provider=self.provider_id,
            discovered=options.issuer_url is not None,
        )
        return metadata

    async def _endpoint(self, name: str) -> str:
        metadata = await self.provider_metadata()
        endpoint = metadata.get(name)
        if not endpoint:
            raise ExchangeError(f"No {name} configured")
        return str(endpoint)

    async def authorization_url(
        self,
        *,
        scope: str,
        state: str,
        redirect_uri: str,
        **params: str,
    ) -> str:
        """Build the IdP consent URL carrying ``state`` and extra ``params``."""
        endpoint = await self._endpoint("authorization_endpoint")
        async with self._client(scope=scope, redirect_uri=redirect_uri) as client:
            url, _ = client.create_authorization_url(endpoint, state=state, **params)
        return url

    async def authenticate(
        self,
        query: Mapping[str, str],
        redirect_uri: str,
    ) -> SessionResult:
        """Complete the authorization-code exchange for the IdP redirect."""
        error = query.get("error")
        if error:
            raise ExchangeError(query.get("error_description") or error)

        code = query.get("code")
        if not code:
            raise ExchangeError("missing authorization code")

        token_endpoint = await self._endpoint("token_endpoint")
        metadata = await self.provider_metadata()

        try:
            async with self._client(redirect_uri=redirect_uri) as client:
                token = await client.fetch_token(
                    token_endpoint,
                    grant_type="authorization_code",
                    code=code,
                )
                claims = await self._fetch_userinfo(
                    client,
                    metadata.get("userinfo_endpoint"),
                    token.get("access_token"),
                )
        except (AuthlibBaseError, httpx.HTTPError, ValueError) as e:
            raise ExchangeError(str(e) or type(e).__name__) from e

        params = dict(token)
        profile = normalize_profile(self.provider_id, claims)
        return session_from_token(
            params.get("access_token"),
            params.get("refresh_token"),
            params,
            profile,
        )

    async def _fetch_userinfo(
        self,
        client: AsyncOAuth2Client,
        userinfo_endpoint: str | None,
        access_token: str | None,
    ) -> dict[str, Any]:
        if not userinfo_endpoint or not access_token:
            return {}
        # authlib's 60s leeway would treat short-lived tokens as already expired.
        response = await client.get(
            userinfo_endpoint,
            headers={"Authorization": f"Bearer {access_token}"},
            withhold_token=True,
        )
        response.raise_for_status()
        claims = response.json()
        if not isinstance(claims, dict):
            raise ValueError("Invalid userinfo response")
        return claims

    async def refresh(self, refresh_token: str, scope: str | None = None) -> TokenResponse:
        """Exchange ``refresh_token`` for a new access token."""
        token_endpoint = await self._endpoint("token_endpoint")
        extra = {"scope": scope} if scope else {}

        try:
            async with self._client() as client:
                token = await client.refresh_token(
                    token_endpoint,
                    refresh_token=refresh_token,
                    **extra,
                )
        except (AuthlibBaseError, httpx.HTTPError, ValueError) as e:
            raise ExchangeError(str(e) or type(e).__name__) from e

        params = dict(token)
        return TokenResponse(
            access_token=params.get("access_token"),
            refresh_token=params.get("refresh_token"),
            params=params,
        )
