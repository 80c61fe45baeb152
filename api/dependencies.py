from typing import Optional

from fastapi import Request

from core.cache import CacheManager
from core.config import Settings
from core.rate_limiter import RateLimiter, get_client_identifier
from providers.discord_provider import DiscordProvider
from services.lookup_service import LookupService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_lookup_service(request: Request) -> LookupService:
    return request.app.state.lookup_service


def get_cache_manager(request: Request) -> Optional[CacheManager]:
    return request.app.state.cache


def get_rate_limiter(request: Request) -> Optional[RateLimiter]:
    return request.app.state.rate_limiter


def get_provider(request: Request) -> DiscordProvider:
    return request.app.state.provider


def get_client_id(request: Request) -> str:
    return get_client_identifier(request)
