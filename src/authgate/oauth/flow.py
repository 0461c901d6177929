"""Browser popup OAuth flow for a single identity provider.

This module provides the OAuthProvider class that handles:
- Starting the authorization-code flow with a CSRF nonce (start)
- Receiving the IdP redirect in the popup and relaying the result (frame_handler)
- Exchanging the refresh-token cookie for a new access token (refresh)
- Clearing the refresh-token cookie (logout)

Security properties:
- The nonce cookie and the OAuth2 state parameter must match on callback
- The refresh token only ever travels in an HttpOnly cookie, never in a body
- refresh/logout require the X-Requested-With header (same-origin scripts)
- Offline access with forced consent, so repeat logins still get a refresh token
"""

from __future__ import annotations

from typing import Any

import structlog
from aiohttp import hdrs, web

from authgate.oauth import nonce
from authgate.oauth.config import CookieSettings, ProviderConfig
from authgate.oauth.cookies import (
    CookieKind,
    cookie_options,
    nonce_cookie_name,
    refresh_cookie_name,
)
from authgate.oauth.errors import (
    CsrfError,
    ExchangeError,
    InputError,
    MissingRefreshTokenError,
    RefreshError,
    RequestedWithError,
    SessionCookieError,
)
from authgate.oauth.strategy import OAuth2Strategy, Strategy
from authgate.oauth.utils import (
    DEFAULT_REQUESTED_WITH,
    ensures_x_requested_with,
    error_to_dict,
    post_message_response,
)

logger = structlog.get_logger()

AUTH_RESULT = "auth-result"


class OAuthProvider:
    """Route handlers for one configured provider under ``/auth/{provider_id}``.

    Holds no per-request state: everything a request needs travels in its
    cookies and query string, so one instance serves concurrent logins.
    """

    def __init__(
        self,
        config: ProviderConfig,
        strategy: Strategy,
        base_url: str,
        cookie_settings: CookieSettings | None = None,
        app_origin: str = "*",
        requested_with: str = DEFAULT_REQUESTED_WITH,
    ):
        """Initialize the provider.

        Args:
            config: Provider configuration (id and client options)
            strategy: IdP strategy performing the token exchanges
            base_url: Public base URL of the gateway (e.g., https://auth.mycompany.com)
            cookie_settings: Domain and Secure flag for issued cookies
            app_origin: Origin allowed to receive the popup's postMessage
            requested_with: Expected X-Requested-With header value
        """
        self._config = config
        self._strategy = strategy
        self._base_url = base_url.rstrip("/")
        self._cookies = cookie_settings or CookieSettings()
        self._app_origin = app_origin
        self._requested_with = requested_with

        self._prefix = f"/auth/{config.provider_id}"
        self._callback_url = f"{self._base_url}{self._prefix}/handler/frame"

    @property
    def provider_id(self) -> str:
        return self._config.provider_id

    @property
    def callback_url(self) -> str:
        return self._callback_url

    def routes(self) -> list[web.RouteDef]:
        """Route table for mounting this provider on an aiohttp application."""
        return [
            web.get(f"{self._prefix}/start", self.start),
            web.get(f"{self._prefix}/handler/frame", self.frame_handler),
            web.post(f"{self._prefix}/refresh", self.refresh),
            web.post(f"{self._prefix}/logout", self.logout),
        ]

    async def start(self, request: web.Request) -> web.Response:
        """Redirect the popup to the IdP consent screen.

        Raises:
            InputError: If the ``scope`` query parameter is missing or empty
        """
        scope = request.query.get("scope") or ""
        if not scope:
            raise InputError("missing scope parameter")

        state = nonce.issue()
        redirect_url = await self._strategy.authorization_url(
            scope=scope,
            state=state,
            redirect_uri=self._callback_url,
            access_type="offline",
            prompt="consent",
        )

        response = web.Response(status=302, headers={hdrs.LOCATION: redirect_url})
        response.set_cookie(
            nonce_cookie_name(self.provider_id),
            state,
            **cookie_options(CookieKind.NONCE, self.provider_id, self._cookies).as_kwargs(),
        )

        logger.info("OAuth flow started", provider=self.provider_id, scope=scope)
        return response

    async def frame_handler(self, request: web.Request) -> web.Response:
        """Handle the IdP redirect inside the popup window.

        CSRF failures raise (plain 401 text); every other outcome is an HTML
        page posting an ``auth-result`` message to the opener.

        Raises:
            MissingNonceError: If the nonce cookie or state parameter is absent
            NonceMismatchError: If they differ
        """
        try:
            nonce.validate(
                request.cookies.get(nonce_cookie_name(self.provider_id)),
                request.query.get("state"),
            )
        except CsrfError as e:
            logger.warning("OAuth callback rejected", provider=self.provider_id, reason=e.message)
            raise

        try:
            session = await self._strategy.authenticate(request.query, self._callback_url)
        except ExchangeError as e:
            logger.warning(
                "OAuth token exchange failed",
                provider=self.provider_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return self._auth_result(error=ExchangeError(f"{self._config.title} auth failed, {e}"))

        if not session.refresh_token:
            logger.error(
                "Provider misconfiguration: no refresh token granted",
                provider=self.provider_id,
            )
            return self._auth_result(error=MissingRefreshTokenError())

        response = self._auth_result(payload=session.to_payload())
        response.set_cookie(
            refresh_cookie_name(self.provider_id),
            session.refresh_token,
            **cookie_options(CookieKind.REFRESH_TOKEN, self.provider_id, self._cookies).as_kwargs(),
        )

        logger.info("OAuth authentication successful", provider=self.provider_id)
        return response

    async def refresh(self, request: web.Request) -> web.Response:
        """Exchange the refresh-token cookie for a fresh access token.

        Raises:
            RequestedWithError: If the X-Requested-With header is absent or wrong
            SessionCookieError: If no refresh-token cookie was sent
            RefreshError: If the IdP refused the grant or returned no access token
        """
        self._ensure_requested_with(request)

        refresh_token = request.cookies.get(refresh_cookie_name(self.provider_id))
        if not refresh_token:
            raise SessionCookieError()

        scope = request.query.get("scope") or None

        try:
            token = await self._strategy.refresh(refresh_token, scope)
        except ExchangeError as e:
            logger.warning(
                "Access token refresh failed",
                provider=self.provider_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RefreshError() from e

        if not token.access_token:
            logger.warning("Refresh grant returned no access token", provider=self.provider_id)
            raise RefreshError()

        if token.refresh_token and token.refresh_token != refresh_token:
            # The stored cookie stays authoritative; rotated tokens are dropped.
            logger.debug("Ignoring rotated refresh token", provider=self.provider_id)

        logger.info("Access token refreshed", provider=self.provider_id)

        return web.json_response(
            {
                "accessToken": token.access_token,
                "idToken": token.id_token,
                "expiresInSeconds": token.expires_in_seconds,
                "scope": token.scope,
            }
        )

    async def logout(self, request: web.Request) -> web.Response:
        """Clear the refresh-token cookie. The IdP is not contacted.

        Raises:
            RequestedWithError: If the X-Requested-With header is absent or wrong
        """
        self._ensure_requested_with(request)

        response = web.Response(text="logout!")
        response.set_cookie(
            refresh_cookie_name(self.provider_id),
            "",
            **cookie_options(CookieKind.LOGOUT, self.provider_id, self._cookies).as_kwargs(),
        )

        logger.info("User logged out", provider=self.provider_id)
        return response

    def _ensure_requested_with(self, request: web.Request) -> None:
        if not ensures_x_requested_with(request, self._requested_with):
            logger.warning(
                "Request rejected: bad X-Requested-With header",
                provider=self.provider_id,
                path=request.path,
            )
            raise RequestedWithError()

    def _auth_result(
        self,
        payload: dict[str, Any] | None = None,
        error: BaseException | None = None,
    ) -> web.Response:
        message: dict[str, Any] = {"type": AUTH_RESULT}
        if error is not None:
            message["error"] = error_to_dict(error)
        else:
            message["payload"] = payload
        return post_message_response(message, self._app_origin)


def create_oauth_provider(
    config: ProviderConfig,
    base_url: str,
    cookie_settings: CookieSettings | None = None,
    app_origin: str = "*",
    requested_with: str = DEFAULT_REQUESTED_WITH,
    timeout: float = 10.0,
) -> OAuthProvider:
    """Factory function wiring a provider to an authlib-backed strategy.

    Args:
        config: Provider configuration
        base_url: Public base URL of the gateway
        cookie_settings: Domain and Secure flag for issued cookies
        app_origin: Origin allowed to receive the popup's postMessage
        requested_with: Expected X-Requested-With header value
        timeout: Timeout in seconds for IdP calls

    Returns:
        OAuthProvider ready to mount
    """
    strategy = OAuth2Strategy(config, timeout=timeout)
    return OAuthProvider(
        config=config,
        strategy=strategy,
        base_url=base_url,
        cookie_settings=cookie_settings,
        app_origin=app_origin,
        requested_with=requested_with,
    )
