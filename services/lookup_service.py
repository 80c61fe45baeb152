"""
Lookup Service.

Orchestrates a single lookup from validated input to response model:

    validate → cache check → per-client rate limit → (shared) upstream call
    → decode → cache fill → normalize

All collaborators are injected, which keeps the service free of module-level
state and lets tests swap in fakes. Any failure is raised as a
`VanityAPIException`; the API layer renders it into the route's envelope.

Caching policy: only successful upstream payloads ("taken" invites and found
users) are cached. An "available" result is never cached, so a code claimed
moments after a check is reported as taken on the next request.
"""

from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from core.cache import CacheManager, cache_key
from core.cdn import DEFAULT_CDN_URL
from core.inflight import InFlightRegistry
from core.logging_config import get_logger, log_function_call
from core.models import (
    InviteAvailable,
    InviteOutcome,
    InviteTaken,
    UserFound,
    UserLookupResult,
    UserOutcome,
    VanityCheckResult,
)
from core.rate_limiter import RateLimiter
from core.validation import InputValidator
from providers.discord_provider import DEFAULT_RETRY_AFTER, DiscordProvider
from services.normalizer import (
    build_guild_summary,
    build_user_summary,
    decode_invite,
    decode_user,
    failure_to_exception,
)

logger = get_logger(__name__)

VANITY_RULE = "vanity"
USERS_RULE = "users"


@dataclass
class LookupStats:
    """Process-local counters; reset on restart"""

    total_lookups: int = 0
    available_vanities: int = 0
    taken_vanities: int = 0
    user_lookups: int = 0

    def to_dict(self) -> Dict[str, int]:
        data = asdict(self)
        return {
            "totalLookups": data["total_lookups"],
            "availableVanities": data["available_vanities"],
            "takenVanities": data["taken_vanities"],
            "userLookups": data["user_lookups"],
        }


class LookupService:
    """Vanity availability checks and user lookups"""

    def __init__(
        self,
        provider: DiscordProvider,
        cache: Optional[CacheManager] = None,
        rate_limiter: Optional[RateLimiter] = None,
        inflight: Optional[InFlightRegistry] = None,
        vanity_cache_ttl: int = 60,
        user_cache_ttl: int = 1800,
        cdn_url: str = DEFAULT_CDN_URL,
        default_retry_after: int = DEFAULT_RETRY_AFTER,
    ):
        self.provider = provider
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.inflight = inflight
        self.vanity_cache_ttl = vanity_cache_ttl
        self.user_cache_ttl = user_cache_ttl
        self.cdn_url = cdn_url
        self.default_retry_after = default_retry_after
        self.stats = LookupStats()

    @log_function_call(logger)
    async def check_vanity(self, raw_code: str, client_id: str) -> VanityCheckResult:
        code = InputValidator.validate_vanity_code(raw_code)
        key = cache_key("invite", code)

        cached = await self._cache_get(key)
        if cached is not None:
            logger.info(f"Cache hit for invite code: {code}")
            outcome: InviteOutcome = InviteTaken(code, cached)
        else:
            await self._enforce_rate_limit(client_id, VANITY_RULE)
            outcome = await self._shared(key, lambda: self._fetch_invite(code, key))

        if isinstance(outcome, InviteAvailable):
            self.stats.total_lookups += 1
            self.stats.available_vanities += 1
            return VanityCheckResult(available=True, error=None, guild=None)

        if isinstance(outcome, InviteTaken):
            self.stats.total_lookups += 1
            self.stats.taken_vanities += 1
            return VanityCheckResult(
                available=False,
                error=None,
                guild=build_guild_summary(outcome.payload, self.cdn_url),
            )

        raise failure_to_exception(
            outcome,
            resource="invite",
            identifier=code,
            not_found_message="Unknown Invite",
            fallback_message="Failed to check vanity URL",
        )

    @log_function_call(logger)
    async def lookup_user(self, raw_user_id: str, client_id: str) -> UserLookupResult:
        user_id = InputValidator.validate_user_id(raw_user_id)
        key = cache_key("user", user_id)

        cached = await self._cache_get(key)
        if cached is not None:
            logger.info(f"Cache hit for user: {user_id}")
            outcome: UserOutcome = UserFound(cached)
        else:
            await self._enforce_rate_limit(client_id, USERS_RULE)
            outcome = await self._shared(key, lambda: self._fetch_user(user_id, key))

        if isinstance(outcome, UserFound):
            self.stats.total_lookups += 1
            self.stats.user_lookups += 1
            return UserLookupResult(
                error=None, user=build_user_summary(outcome.payload, self.cdn_url)
            )

        raise failure_to_exception(
            outcome,
            resource="user",
            identifier=user_id,
            not_found_message="User not found",
            fallback_message="Failed to lookup user",
        )

    async def _fetch_invite(self, code: str, key: str) -> InviteOutcome:
        response = await self.provider.fetch_invite(code)
        outcome = decode_invite(code, response, self.default_retry_after)
        logger.info(
            f"Invite lookup for {code}: upstream {response.status}",
            extra={"code": code, "upstream_status": response.status},
        )
        if isinstance(outcome, InviteTaken):
            await self._cache_set(key, outcome.payload, self.vanity_cache_ttl)
        return outcome

    async def _fetch_user(self, user_id: str, key: str) -> UserOutcome:
        response = await self.provider.fetch_user(user_id)
        outcome = decode_user(response, self.default_retry_after)
        logger.info(
            f"User lookup for {user_id}: upstream {response.status}",
            extra={"user_id": user_id, "upstream_status": response.status},
        )
        if isinstance(outcome, UserFound):
            await self._cache_set(key, outcome.payload, self.user_cache_ttl)
        return outcome

    async def _shared(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        if self.inflight is None:
            return await factory()
        return await self.inflight.run(key, factory)

    async def _enforce_rate_limit(self, client_id: str, rule: str) -> None:
        if self.rate_limiter is not None:
            await self.rate_limiter.enforce(client_id, rule)

    async def _cache_get(self, key: str) -> Optional[Any]:
        if self.cache is None:
            return None
        return await self.cache.get(key)

    async def _cache_set(self, key: str, value: Any, ttl: int) -> None:
        if self.cache is not None:
            await self.cache.set(key, value, ttl)
