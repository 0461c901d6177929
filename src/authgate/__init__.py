"""authgate - OAuth2/OIDC login and refresh-token gateway for browser apps."""

__version__ = "0.1.0"
