"""Pre-configured provider templates.

Provides factory functions for common identity providers, producing
``ProviderConfig`` values that the flow controller and strategy consume.
"""

from __future__ import annotations

from authgate.oauth.config import ClientOptions, ProviderConfig

GOOGLE_ISSUER = "https://accounts.google.com"


def create_google_provider(
    client_id: str,
    client_secret: str,
    provider_id: str = "google",
    display_name: str | None = "Google",
    authorize_url: str | None = None,
    token_url: str | None = None,
    userinfo_url: str | None = None,
) -> ProviderConfig:
    """Create Google OAuth/OIDC provider configuration.

    Google supports OIDC discovery, so we use issuer_url for auto-configuration.

    Args:
        client_id: Google OAuth client ID
        client_secret: Google OAuth client secret
        provider_id: Identifier used in routes and cookie names
        display_name: Name used in error messages
        authorize_url: Override for the discovered authorization endpoint
        token_url: Override for the discovered token endpoint
        userinfo_url: Override for the discovered userinfo endpoint

    Returns:
        Configured ProviderConfig for Google
    """
    return ProviderConfig(
        provider_id=provider_id,
        options=ClientOptions(
            client_id=client_id,
            client_secret=client_secret,
            issuer_url=GOOGLE_ISSUER,
            authorize_url=authorize_url,
            token_url=token_url,
            userinfo_url=userinfo_url,
        ),
        display_name=display_name,
    )


def create_oidc_provider(
    client_id: str,
    client_secret: str,
    issuer_url: str,
    provider_id: str = "oidc",
    display_name: str | None = None,
    authorize_url: str | None = None,
    token_url: str | None = None,
    userinfo_url: str | None = None,
) -> ProviderConfig:
    """Create a generic OIDC provider configuration.

    Works with any OIDC-compliant provider that supports discovery
    (Okta, Auth0, Keycloak, Azure AD, etc.). Endpoint arguments override
    the discovered ones.
    """
    return ProviderConfig(
        provider_id=provider_id,
        options=ClientOptions(
            client_id=client_id,
            client_secret=client_secret,
            issuer_url=issuer_url,
            authorize_url=authorize_url,
            token_url=token_url,
            userinfo_url=userinfo_url,
        ),
        display_name=display_name,
    )


def create_oauth2_provider(
    provider_id: str,
    client_id: str,
    client_secret: str,
    authorize_url: str,
    token_url: str,
    userinfo_url: str | None = None,
    display_name: str | None = None,
) -> ProviderConfig:
    """Create a plain OAuth2 provider configuration with manual endpoints."""
    return ProviderConfig(
        provider_id=provider_id,
        options=ClientOptions(
            client_id=client_id,
            client_secret=client_secret,
            authorize_url=authorize_url,
            token_url=token_url,
            userinfo_url=userinfo_url,
        ),
        display_name=display_name,
    )


def create_provider(
    provider_type: str,
    client_id: str,
    client_secret: str,
    provider_id: str | None = None,
    issuer_url: str | None = None,
    **kwargs,
) -> ProviderConfig:
    """Factory to create provider config from type name.

    Args:
        provider_type: One of "google", "oidc", or "oauth2"
        client_id: OAuth client ID
        client_secret: OAuth client secret
        provider_id: Route/cookie identifier (defaults to the type name)
        issuer_url: OIDC issuer URL (required for "oidc" type)
        **kwargs: Additional arguments passed to the provider factory

    Returns:
        Configured ProviderConfig

    Raises:
        ValueError: If provider_type is unknown or required args are missing
    """
    provider_type = provider_type.lower()
    provider_id = provider_id or provider_type

    if provider_type == "google":
        return create_google_provider(
            client_id,
            client_secret,
            provider_id=provider_id,
            **kwargs,
        )

    elif provider_type == "oidc":
        if not issuer_url:
            raise ValueError("OIDC provider requires issuer_url")
        return create_oidc_provider(
            client_id=client_id,
            client_secret=client_secret,
            issuer_url=issuer_url,
            provider_id=provider_id,
            **kwargs,
        )

    elif provider_type == "oauth2":
        if not kwargs.get("authorize_url") or not kwargs.get("token_url"):
            raise ValueError("OAuth2 provider requires authorize_url and token_url")
        if issuer_url:
            raise ValueError("OAuth2 provider does not use issuer_url; use type 'oidc'")
        return create_oauth2_provider(
            provider_id=provider_id,
            client_id=client_id,
            client_secret=client_secret,
            **kwargs,
        )

    else:
        raise ValueError(
            f"Unknown provider type: {provider_type}. "
            "Supported: 'google', 'oidc', 'oauth2'"
        )
