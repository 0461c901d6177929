"""Error types raised by the OAuth provider flow.

Every error carries the HTTP status it maps to and a short, human-readable
message that is safe to send back to the browser as a plain-text body.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all provider flow errors."""

    status: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InputError(AuthError):
    """The client omitted a required input (e.g. the scope parameter)."""

    status = 400


class CsrfError(AuthError):
    """A cross-site request forgery guard rejected the request."""

    status = 401


class MissingNonceError(CsrfError):
    def __init__(self, message: str = "Missing nonce") -> None:
        super().__init__(message)


class NonceMismatchError(CsrfError):
    def __init__(self, message: str = "Invalid nonce") -> None:
        super().__init__(message)


class RequestedWithError(CsrfError):
    def __init__(self, message: str = "Invalid X-Requested-With header") -> None:
        super().__init__(message)


class SessionCookieError(AuthError):
    """The refresh-token cookie is absent."""

    status = 401

    def __init__(self, message: str = "Missing session cookie") -> None:
        super().__init__(message)


class ExchangeError(AuthError):
    """The identity provider rejected or failed a token exchange."""

    status = 502


class MissingRefreshTokenError(ExchangeError):
    """The identity provider granted no refresh token.

    This is a provider misconfiguration (offline access not enabled for the
    client), not a transient failure.
    """

    def __init__(self, message: str = "Missing refresh token") -> None:
        super().__init__(message)


class RefreshError(ExchangeError):
    """A refresh grant failed or returned no access token."""

    status = 401

    def __init__(self, message: str = "Failed to refresh access token") -> None:
        super().__init__(message)
