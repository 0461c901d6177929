"""CSRF nonce binding a browser to its in-flight login attempt.

The nonce is sent twice: once as a short-lived HttpOnly cookie scoped to the
callback path, and once as the OAuth2 ``state`` parameter. The callback only
proceeds when both copies come back and match.
"""

from __future__ import annotations

import base64
import secrets

from authgate.oauth.errors import MissingNonceError, NonceMismatchError

NONCE_BYTES = 16


def issue() -> str:
    """Generate a new nonce (128 bits, base64url without padding)."""
    return base64.urlsafe_b64encode(secrets.token_bytes(NONCE_BYTES)).decode("ascii").rstrip("=")


def validate(cookie_value: str | None, state_value: str | None) -> None:
    """Check the cookie nonce against the ``state`` returned by the IdP.

    Raises:
        MissingNonceError: If either value is absent or empty
        NonceMismatchError: If both are present but differ
    """
    if not cookie_value or not state_value:
        raise MissingNonceError()

    if not secrets.compare_digest(cookie_value.encode("utf-8"), state_value.encode("utf-8")):
        raise NonceMismatchError()
