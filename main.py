"""
Vanity & User Lookup API - Main Application Entry Point.

This module builds and configures the FastAPI application: logging, the
upstream client, cache, rate limiter, middleware and routes.

The application is a small proxy in front of the Discord REST API. The
browser application asks it whether a vanity invite code is free and for a
user's public profile; the proxy validates the request, answers from cache
when it can, and otherwise makes one authenticated upstream call and reshapes
the response.

Key Responsibilities:
- Build all collaborators from `Settings` and attach them to `app.state`.
- Set up middleware for CORS, correlation, timing, security headers and
  error handling.
- Mount the API and health routers, and optionally the browser build.
- Manage the application's lifecycle: logging setup and the startup token
  check on the way in, closing the HTTP session and state store on the way
  out.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.endpoints import router
from api.error_handlers import register_error_handlers
from api.health_router import health_router
from core.cache import CacheManager, create_backend
from core.config import Settings, get_settings
from core.exceptions import ConfigurationError
from core.inflight import InFlightRegistry
from core.logging_config import get_logger, mask_secret, setup_logging
from core.middleware import (
    CorrelationMiddleware,
    ErrorHandlingMiddleware,
    PerformanceMiddleware,
    SecurityHeadersMiddleware,
)
from core.rate_limiter import RateLimiter, RateLimitRule
from providers.discord_provider import DiscordProvider
from services.lookup_service import USERS_RULE, VANITY_RULE, LookupService

logger = get_logger("api.main")


class SPAStaticFiles(StaticFiles):
    """Static files with history fallback to index.html"""

    @staticmethod
    def _is_api_path(path: str) -> bool:
        return path == "api" or path.startswith("api/")

    async def get_response(self, path: str, scope):
        try:
            response = await super().get_response(path, scope)
        except StarletteHTTPException as e:
            if e.status_code != 404 or self._is_api_path(path):
                raise
            return await super().get_response("index.html", scope)
        if response.status_code == 404 and not self._is_api_path(path):
            return await super().get_response("index.html", scope)
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    startup_logger = get_logger("api.startup")
    settings: Settings = app.state.settings
    provider: DiscordProvider = app.state.provider

    if not provider.configured:
        if settings.STRICT_STARTUP:
            startup_logger.critical("DISCORD_BOT_TOKEN is not set; refusing to start")
            raise ConfigurationError("DISCORD_BOT_TOKEN")
        startup_logger.warning(
            "DISCORD_BOT_TOKEN is not set; lookups will fail until it is configured"
        )
    else:
        startup_logger.info(
            f"Upstream client ready for {provider.api_url}",
            extra={"token": mask_secret(provider.token)},
        )

    startup_logger.info(
        f"{settings.APP_NAME} started",
        extra={
            "environment": settings.ENVIRONMENT,
            "state_backend": settings.STATE_BACKEND,
            "cache_enabled": settings.CACHE_ENABLED,
            "rate_limit_enabled": settings.RATE_LIMIT_ENABLED,
        },
    )
    yield

    # Cleanup on shutdown
    startup_logger.info(f"Shutting down {settings.APP_NAME}")
    await provider.close()
    for store in app.state.stores:
        await store.close()
    startup_logger.info("Cleanup completed")


def create_app(
    settings: Optional[Settings] = None, provider: Optional[DiscordProvider] = None
) -> FastAPI:
    settings = settings or get_settings()
    provider = provider or DiscordProvider.from_settings(settings)

    app = FastAPI(
        title=settings.APP_NAME,
        description="Vanity invite availability checks and user lookups for the browser app",
        version=settings.APP_VERSION,
        lifespan=lifespan,
    )

    stores = []
    cache = None
    if settings.CACHE_ENABLED:
        cache_store = create_backend(
            settings.STATE_BACKEND, settings.REDIS_URL, settings.CACHE_MAX_SIZE
        )
        stores.append(cache_store)
        cache = CacheManager(cache_store)

    rate_limiter = None
    if settings.RATE_LIMIT_ENABLED:
        counter_store = create_backend(
            settings.STATE_BACKEND, settings.REDIS_URL, settings.CACHE_MAX_SIZE
        )
        stores.append(counter_store)
        rate_limiter = RateLimiter(counter_store)
        rate_limiter.add_rule(
            VANITY_RULE,
            RateLimitRule(
                requests=settings.VANITY_RATE_LIMIT_REQUESTS,
                window=settings.VANITY_RATE_LIMIT_WINDOW,
            ),
        )
        rate_limiter.add_rule(
            USERS_RULE,
            RateLimitRule(
                requests=settings.USER_RATE_LIMIT_REQUESTS,
                window=settings.USER_RATE_LIMIT_WINDOW,
            ),
        )

    app.state.settings = settings
    app.state.provider = provider
    app.state.cache = cache
    app.state.rate_limiter = rate_limiter
    app.state.stores = stores
    app.state.lookup_service = LookupService(
        provider=provider,
        cache=cache,
        rate_limiter=rate_limiter,
        inflight=InFlightRegistry() if settings.DEDUPE_ENABLED else None,
        vanity_cache_ttl=settings.VANITY_CACHE_TTL,
        user_cache_ttl=settings.USER_CACHE_TTL,
        cdn_url=settings.DISCORD_CDN_URL,
        default_retry_after=settings.DEFAULT_RETRY_AFTER_SECONDS,
    )

    # Last added runs first: CORS wraps everything so preflights and error
    # responses both carry CORS headers
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(PerformanceMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(CorrelationMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Turnstile-Token"],
        expose_headers=["Retry-After", "X-Correlation-ID"],
    )

    register_error_handlers(app)

    app.include_router(health_router)
    app.include_router(router)

    if settings.STATIC_DIR:
        static_dir = Path(settings.STATIC_DIR)
        if static_dir.is_dir():
            app.mount("/", SPAStaticFiles(directory=static_dir, html=True), name="static")
            logger.info(f"Serving browser build from {static_dir}")
        else:
            logger.warning(f"STATIC_DIR {static_dir} does not exist; not serving static files")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development,
        log_level="info",
    )
