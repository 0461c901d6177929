"""OAuth2/OIDC identity-provider adapter for the authgate gateway.

This module drives a browser popup "authorization code + offline access"
flow against an external identity provider, protects it with a CSRF nonce,
keeps the long-lived refresh token in an HttpOnly cookie, and exchanges that
cookie for fresh access tokens on demand.

Example usage:

    from aiohttp import web

    from authgate.oauth import (
        CookieSettings,
        OAuth2Strategy,
        OAuthProvider,
        create_oauth_provider,
        create_provider,
    )

    # Describe the IdP integration
    provider_config = create_provider(
        provider_type="google",
        client_id="...",
        client_secret="...",
    )

    # Wire it to an authlib-backed strategy (recommended)
    provider = create_oauth_provider(
        provider_config,
        base_url="https://auth.mycompany.com",
        cookie_settings=CookieSettings(domain="auth.mycompany.com", secure=True),
    )

    app = web.Application()
    app.add_routes(provider.routes())

    # Or inject your own strategy for more control
    provider = OAuthProvider(
        config=provider_config,
        strategy=OAuth2Strategy(provider_config, timeout=5.0),
        base_url="https://auth.mycompany.com",
    )
"""

from authgate.oauth.config import (
    ClientOptions,
    CookieSettings,
    ProviderConfig,
)
from authgate.oauth.cookies import (
    CookieKind,
    CookieOptions,
    cookie_options,
    nonce_cookie_name,
    refresh_cookie_name,
)
from authgate.oauth.errors import (
    AuthError,
    CsrfError,
    ExchangeError,
    InputError,
    MissingNonceError,
    MissingRefreshTokenError,
    NonceMismatchError,
    RefreshError,
    RequestedWithError,
    SessionCookieError,
)
from authgate.oauth.flow import (
    OAuthProvider,
    create_oauth_provider,
)
from authgate.oauth.providers import (
    create_google_provider,
    create_oauth2_provider,
    create_oidc_provider,
    create_provider,
)
from authgate.oauth.strategy import (
    OAuth2Strategy,
    SessionResult,
    Strategy,
    TokenResponse,
    session_from_token,
)

__all__ = [
    # Flow
    "OAuthProvider",
    "create_oauth_provider",
    # Config
    "ClientOptions",
    "CookieSettings",
    "ProviderConfig",
    # Cookies
    "CookieKind",
    "CookieOptions",
    "cookie_options",
    "nonce_cookie_name",
    "refresh_cookie_name",
    # Errors
    "AuthError",
    "CsrfError",
    "ExchangeError",
    "InputError",
    "MissingNonceError",
    "MissingRefreshTokenError",
    "NonceMismatchError",
    "RefreshError",
    "RequestedWithError",
    "SessionCookieError",
    # Providers
    "create_google_provider",
    "create_oauth2_provider",
    "create_oidc_provider",
    "create_provider",
    # Strategy
    "OAuth2Strategy",
    "SessionResult",
    "Strategy",
    "TokenResponse",
    "session_from_token",
]
