"""Cookie scoping policy for the nonce and refresh-token cookies."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from authgate.oauth.config import CookieSettings

TEN_MINUTES = 10 * 60
THOUSAND_DAYS = 1000 * 24 * 60 * 60


class CookieKind(Enum):
    NONCE = "nonce"
    REFRESH_TOKEN = "refresh-token"
    LOGOUT = "logout"


@dataclass(frozen=True)
class CookieOptions:
    """Attributes for a single Set-Cookie. ``max_age`` is in seconds."""

    max_age: int
    secure: bool
    same_site: str
    domain: str | None
    path: str
    http_only: bool = True

    def as_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``aiohttp.web.StreamResponse.set_cookie``."""
        return {
            "max_age": self.max_age,
            "secure": self.secure,
            "samesite": self.same_site,
            "domain": self.domain,
            "path": self.path,
            "httponly": self.http_only,
        }


def nonce_cookie_name(provider_id: str) -> str:
    return f"{provider_id}-nonce"


def refresh_cookie_name(provider_id: str) -> str:
    return f"{provider_id}-refresh-token"


def cookie_options(
    kind: CookieKind,
    provider_id: str,
    settings: CookieSettings | None = None,
) -> CookieOptions:
    """Compute the cookie attributes for ``kind`` under ``provider_id``.

    The nonce cookie is only sent back to the callback endpoint. The refresh
    cookie covers all of the provider's endpoints; clearing it must reuse the
    same path and domain or the browser keeps the original.
    """
    settings = settings or CookieSettings()

    if kind is CookieKind.NONCE:
        max_age = TEN_MINUTES
        path = f"/auth/{provider_id}/handler"
    elif kind is CookieKind.REFRESH_TOKEN:
        max_age = THOUSAND_DAYS
        path = f"/auth/{provider_id}"
    elif kind is CookieKind.LOGOUT:
        max_age = 0
        path = f"/auth/{provider_id}"
    else:
        raise ValueError(f"Unknown cookie kind: {kind}")

    return CookieOptions(
        max_age=max_age,
        secure=settings.secure,
        same_site=settings.same_site,
        domain=settings.domain,
        path=path,
        http_only=True,
    )
