"""
Health and Monitoring Router.

Public, unauthenticated endpoints for uptime checks and operators.

Endpoints Provided:
- `/health` and `/api/health`: Lightweight liveness check. Never touches the
  upstream API.
- `/health/detailed`: Probes the upstream API with a known invite, and
  reports cache and rate limiter state plus process resource usage.

Graceful Degradation: The detailed check reports each component separately.
A failing component marks the service "degraded" rather than failing the
request, so monitors always get a body to inspect.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

import psutil
from fastapi import APIRouter, Depends

from core.cache import CacheManager
from core.config import Settings
from core.exceptions import VanityAPIException
from core.logging_config import get_logger
from core.rate_limiter import RateLimiter
from providers.discord_provider import DiscordProvider

from .dependencies import get_cache_manager, get_provider, get_rate_limiter, get_settings

logger = get_logger(__name__)

PROBE_INVITE_CODE = "discord-developers"

health_router = APIRouter(tags=["Health & Monitoring"])


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@health_router.get("/health")
@health_router.get("/api/health")
async def health_check(settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    """
    Basic health check endpoint (no authentication required)

    Returns:
        Dict with status, timestamp, service name and version
    """
    logger.debug("Health check requested")

    return {
        "status": "healthy",
        "timestamp": _timestamp(),
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
    }


async def _probe_upstream(provider: DiscordProvider) -> Dict[str, Any]:
    if not provider.configured:
        return {"status": "unconfigured", "error": "Bot token not configured"}

    try:
        response = await provider.fetch_invite(PROBE_INVITE_CODE)
    except VanityAPIException as e:
        logger.warning(f"Upstream probe failed: {e.message}")
        return {"status": "unhealthy", "error": e.message}

    # 404 still proves the API answered and accepted our credential
    healthy = response.ok or response.status == 404
    probe: Dict[str, Any] = {
        "status": "healthy" if healthy else "unhealthy",
        "upstream_status": response.status,
    }
    rate_limit = response.rate_limit
    if rate_limit is not None:
        probe["rate_limit"] = {
            "limit": rate_limit.limit,
            "remaining": rate_limit.remaining,
            "reset_after": rate_limit.reset_after,
        }
    return probe


def _process_stats() -> Dict[str, Any]:
    process = psutil.Process()
    memory = process.memory_info()
    system_memory = psutil.virtual_memory()
    return {
        "status": "healthy",
        "memory": {
            "rss_bytes": memory.rss,
            "vms_bytes": memory.vms,
            "system_percent": system_memory.percent,
        },
        "cpu_percent": psutil.cpu_percent(interval=None),
    }


@health_router.get("/health/detailed")
async def detailed_health_check(
    settings: Settings = Depends(get_settings),
    provider: DiscordProvider = Depends(get_provider),
    cache: Optional[CacheManager] = Depends(get_cache_manager),
    rate_limiter: Optional[RateLimiter] = Depends(get_rate_limiter),
) -> Dict[str, Any]:
    """
    Detailed health check with component status

    Note: This makes one real upstream call, so it is slower than `/health`
    and counts against the upstream rate limit.
    """
    logger.info("Detailed health check requested")

    health_status: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": _timestamp(),
        "service": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "components": {},
    }
    components = health_status["components"]

    components["upstream"] = await _probe_upstream(provider)
    if components["upstream"]["status"] != "healthy":
        health_status["status"] = "degraded"

    if cache is not None:
        components["cache"] = await cache.health_check()
        if components["cache"].get("status") != "healthy":
            health_status["status"] = "degraded"
    else:
        components["cache"] = {"status": "disabled"}

    if rate_limiter is not None:
        components["rate_limiter"] = {"status": "healthy", **rate_limiter.get_stats()}
    else:
        components["rate_limiter"] = {"status": "disabled"}

    try:
        components["process"] = _process_stats()
    except psutil.Error as e:
        logger.warning(f"Process metrics unavailable (non-critical): {e}")
        components["process"] = {"status": "unavailable", "error": str(e)}

    return health_status
