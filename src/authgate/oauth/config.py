"""OAuth provider configuration types.

This module defines the immutable configuration handed to one provider
instance: the provider identifier used in routes and cookie names, the IdP
client options consumed by the strategy, and the deployment cookie settings.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_PROVIDER_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass(frozen=True)
class ClientOptions:
    """OAuth2 client credentials and IdP endpoints.

    Supports both OIDC providers (with discovery) and manual OAuth2 providers.

    For OIDC providers (Google, Okta, Auth0, Keycloak), set issuer_url
    and endpoints will be discovered via .well-known/openid-configuration.

    For OAuth2-only providers, set authorize_url and token_url (and
    optionally userinfo_url) manually.
    """

    client_id: str
    client_secret: str = field(repr=False)
    # OIDC discovery URL (auto-configures endpoints)
    issuer_url: str | None = None
    # Manual endpoints (if not using discovery)
    authorize_url: str | None = None
    token_url: str | None = None
    userinfo_url: str | None = None

    def __post_init__(self) -> None:
        """Validate that either issuer_url or manual endpoints are provided."""
        if not self.client_id:
            raise ValueError("ClientOptions requires a client_id")
        has_manual = self.authorize_url and self.token_url
        if not self.issuer_url and not has_manual:
            raise ValueError(
                "ClientOptions requires either issuer_url (for OIDC discovery) "
                "or authorize_url + token_url (for manual OAuth2)"
            )


@dataclass(frozen=True)
class ProviderConfig:
    """One configured IdP integration.

    ``provider_id`` appears in URL paths (``/auth/{provider_id}``) and cookie
    names (``{provider_id}-nonce``), so it is restricted to a token-safe
    alphabet.
    """

    provider_id: str
    options: ClientOptions
    display_name: str | None = None

    def __post_init__(self) -> None:
        if not _PROVIDER_ID_RE.match(self.provider_id or ""):
            raise ValueError(
                f"Invalid provider id: {self.provider_id!r}. "
                "Use letters, digits, '-' or '_'"
            )

    @property
    def title(self) -> str:
        return self.display_name or self.provider_id.title()


@dataclass(frozen=True)
class CookieSettings:
    """Deployment-level cookie attributes shared by every provider cookie."""

    domain: str | None = None
    secure: bool = True

    @property
    def same_site(self) -> str:
        # Browsers drop SameSite=None cookies that are not Secure.
        return "None" if self.secure else "Lax"
