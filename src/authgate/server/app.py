"""aiohttp application hosting the provider routes."""

from __future__ import annotations

import structlog
from aiohttp import web

from authgate.core.config import GatewayConfig
from authgate.oauth.errors import AuthError
from authgate.oauth.flow import OAuthProvider, create_oauth_provider

logger = structlog.get_logger()

PROVIDERS_KEY = web.AppKey("providers", dict)


@web.middleware
async def auth_error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Render flow errors as plain-text responses with their HTTP status."""
    try:
        return await handler(request)
    except AuthError as e:
        return web.Response(
            text=e.message,
            status=e.status,
            content_type="text/plain",
        )


def build_providers(config: GatewayConfig) -> list[OAuthProvider]:
    """Create one OAuthProvider per configured provider."""
    cookie_settings = config.cookie_settings()
    return [
        create_oauth_provider(
            provider_config,
            base_url=config.base_url,
            cookie_settings=cookie_settings,
            app_origin=config.app_origin,
            requested_with=config.requested_with,
            timeout=config.idp_timeout,
        )
        for provider_config in config.provider_configs()
    ]


def mount_provider(app: web.Application, provider: OAuthProvider) -> None:
    """Register a provider's routes under /auth/{provider_id}."""
    providers: dict[str, OAuthProvider] = app[PROVIDERS_KEY]
    if provider.provider_id in providers:
        raise ValueError(f"Provider already mounted: {provider.provider_id}")
    providers[provider.provider_id] = provider
    app.add_routes(provider.routes())
    logger.info(
        "Provider mounted",
        provider=provider.provider_id,
        callback_url=provider.callback_url,
    )


async def _handle_health_check(request: web.Request) -> web.Response:
    """Health check endpoint listing mounted provider ids."""
    providers = request.app[PROVIDERS_KEY]
    return web.json_response({"status": "ok", "providers": sorted(providers)})


def create_app(
    config: GatewayConfig | None = None,
    providers: list[OAuthProvider] | None = None,
) -> web.Application:
    """Build the gateway application.

    Args:
        config: Gateway configuration; providers are built from it when
            ``providers`` is not given
        providers: Pre-built providers (e.g. with injected strategies)

    Returns:
        Configured aiohttp application
    """
    if providers is None:
        providers = build_providers(config or GatewayConfig())

    app = web.Application(middlewares=[auth_error_middleware])
    app[PROVIDERS_KEY] = {}
    app.router.add_get("/healthz", _handle_health_check)

    for provider in providers:
        mount_provider(app, provider)

    return app
