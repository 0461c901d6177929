"""Gateway configuration with environment variable support.

All settings can be configured via environment variables with the AUTHGATE_
prefix. Nested provider settings use a double underscore:
AUTHGATE_PROVIDERS__GOOGLE__CLIENT_ID=... configures the "google" provider.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from authgate.oauth.config import CookieSettings, ProviderConfig
from authgate.oauth.providers import create_provider


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Load configuration from a YAML or TOML file.

    Args:
        path: Path to the configuration file (.yaml, .yml, or .toml)

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config file has encoding errors, invalid syntax, or unsupported format
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Config file encoding error in {path}: {e}") from e

    try:
        if path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(content) or {}
        elif path.suffix == ".toml":
            return tomllib.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path}: {e}") from e


class ProviderSettings(BaseModel):
    """Settings for one identity provider integration."""

    type: str = Field(
        default="google",
        description="Provider type: 'google', 'oidc', or 'oauth2'.",
    )
    client_id: str = Field(description="OAuth client ID.")
    client_secret: str = Field(
        repr=False,
        description="OAuth client secret.",
    )
    issuer_url: str | None = Field(
        default=None,
        description="OIDC issuer URL for discovery (required for 'oidc').",
    )
    authorize_url: str | None = Field(
        default=None,
        description="Authorization endpoint (required for 'oauth2').",
    )
    token_url: str | None = Field(
        default=None,
        description="Token endpoint (required for 'oauth2').",
    )
    userinfo_url: str | None = Field(
        default=None,
        description="Userinfo endpoint used to build the profile.",
    )
    display_name: str | None = Field(
        default=None,
        description="Human-readable name used in error messages.",
    )

    def to_provider_config(self, provider_id: str) -> ProviderConfig:
        # Unset fields fall back to the template defaults (e.g. "Google").
        optional = {
            "authorize_url": self.authorize_url,
            "token_url": self.token_url,
            "userinfo_url": self.userinfo_url,
            "display_name": self.display_name,
        }
        kwargs = {key: value for key, value in optional.items() if value is not None}

        return create_provider(
            provider_type=self.type,
            client_id=self.client_id,
            client_secret=self.client_secret,
            provider_id=provider_id,
            issuer_url=self.issuer_url,
            **kwargs,
        )


class GatewayConfig(BaseSettings):
    """Master configuration for the authentication gateway.

    Use get_config() to get a cached instance, or GatewayConfig.from_file()
    to load a YAML/TOML file (environment variables still apply to fields the
    file leaves out).

    Example:
        config = get_config()
        for provider in config.provider_configs():
            print(provider.provider_id)
    """

    model_config = SettingsConfigDict(
        env_prefix="AUTHGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    host: str = Field(
        default="0.0.0.0",
        description="Bind host for the HTTP server.",
    )
    port: int = Field(
        default=7000,
        description="Bind port for the HTTP server.",
    )
    base_url: str = Field(
        default="http://localhost:7000",
        description="Public base URL of the gateway; used to build IdP redirect URIs.",
    )
    app_origin: str = Field(
        default="*",
        description="Origin allowed to receive the login popup's postMessage.",
    )
    cookie_domain: str | None = Field(
        default=None,
        description="Cookie Domain attribute. Defaults to the host of base_url.",
    )
    cookie_secure: bool | None = Field(
        default=None,
        description="Cookie Secure attribute. Defaults to True unless base_url is plain http.",
    )
    requested_with: str = Field(
        default="XMLHttpRequest",
        description="Expected X-Requested-With header value for refresh and logout.",
    )
    idp_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Timeout in seconds for calls to the identity provider.",
    )
    providers: dict[str, ProviderSettings] = Field(
        default_factory=dict,
        description="Configured providers keyed by provider id.",
    )

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, value: str) -> str:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"base_url must be an absolute http(s) URL, got {value!r}")
        return value.rstrip("/")

    @classmethod
    def from_file(cls, path: str | Path) -> GatewayConfig:
        """Build a configuration from a YAML or TOML file."""
        return cls(**load_config_from_file(path))

    def cookie_settings(self) -> CookieSettings:
        """Resolve cookie domain and Secure flag against base_url."""
        parsed = urlparse(self.base_url)
        domain = self.cookie_domain or parsed.hostname
        if self.cookie_secure is not None:
            secure = self.cookie_secure
        else:
            secure = parsed.scheme != "http"
        return CookieSettings(domain=domain, secure=secure)

    def provider_configs(self) -> list[ProviderConfig]:
        """Build a ProviderConfig for every configured provider."""
        return [
            settings.to_provider_config(provider_id)
            for provider_id, settings in self.providers.items()
        ]

    def to_display_dict(self) -> dict[str, Any]:
        """Export current configuration as a nested dictionary for display."""
        cookies = self.cookie_settings()
        return {
            "server": {
                "host": self.host,
                "port": self.port,
                "base_url": self.base_url,
                "app_origin": self.app_origin,
                "idp_timeout": self.idp_timeout,
                "requested_with": self.requested_with,
            },
            "cookies": {
                "domain": cookies.domain,
                "secure": cookies.secure,
                "same_site": cookies.same_site,
            },
            "providers": {
                provider_id: {
                    "type": settings.type,
                    "client_id": settings.client_id,
                    "issuer_url": settings.issuer_url,
                    "authorize_url": settings.authorize_url,
                    "token_url": settings.token_url,
                    "userinfo_url": settings.userinfo_url,
                    "display_name": settings.display_name,
                }
                for provider_id, settings in self.providers.items()
            },
        }


_config: GatewayConfig | None = None


def get_config() -> GatewayConfig:
    """Get the global configuration instance.

    Returns a cached instance of GatewayConfig that reads from environment variables.
    The instance is created once and cached for the lifetime of the process.

    To reload config (e.g., in tests), call clear_config() first.
    """
    global _config
    if _config is None:
        _config = GatewayConfig()
    return _config


def clear_config() -> None:
    """Clear the cached configuration.

    Call this to force reloading of environment variables on next get_config() call.
    Useful for testing.
    """
    global _config
    _config = None
