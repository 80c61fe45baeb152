"""
Discord REST API Provider

Issues the authenticated HTTP calls for invite and user lookups. This class
only knows about transport: credentials, timeout, pacing and retry. It hands
back the raw status, headers and JSON body; interpreting them is the
normalizer's job.
"""

import asyncio
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
from urllib.parse import quote

import aiohttp
from multidict import CIMultiDict

from core.exceptions import (
    ConfigurationError,
    UpstreamNetworkError,
    UpstreamTimeoutError,
)
from core.logging_config import get_logger, mask_secret
from core.retry import RetryPolicy
from core.throttle import RequestPacer

logger = get_logger(__name__)

DEFAULT_RETRY_AFTER = 5


@dataclass
class UpstreamRateLimit:
    """Discord's X-RateLimit-* response headers"""

    limit: int
    remaining: int
    reset_after: float
    bucket: str
    scope: Optional[str] = None


@dataclass
class UpstreamResponse:
    status: int
    payload: Optional[Any] = None
    headers: CIMultiDict = field(default_factory=CIMultiDict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def rate_limit(self) -> Optional[UpstreamRateLimit]:
        return parse_rate_limit_headers(self.headers)


def parse_retry_after(value: Any, default: int = DEFAULT_RETRY_AFTER) -> int:
    """Whole seconds from a Retry-After value, rounding fractions up"""
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(seconds) or math.isinf(seconds) or seconds <= 0:
        return default
    return max(1, math.ceil(seconds))


def parse_rate_limit_headers(headers: Mapping[str, str]) -> Optional[UpstreamRateLimit]:
    limit = headers.get("X-RateLimit-Limit")
    remaining = headers.get("X-RateLimit-Remaining")
    reset_after = headers.get("X-RateLimit-Reset-After")
    bucket = headers.get("X-RateLimit-Bucket")

    if not (limit and remaining and reset_after and bucket):
        return None

    try:
        return UpstreamRateLimit(
            limit=int(limit),
            remaining=int(remaining),
            reset_after=float(reset_after),
            bucket=bucket,
            scope=headers.get("X-RateLimit-Scope"),
        )
    except ValueError:
        return None


class DiscordProvider:
    """Authenticated client for the Discord REST API"""

    def __init__(
        self,
        token: Optional[str],
        api_url: str = "https://discord.com/api/v10",
        user_agent: str = "DiscordBot (https://discordtest.com, 1.0.0)",
        timeout: float = 10.0,
        pacer: Optional[RequestPacer] = None,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.user_agent = user_agent
        self.timeout = timeout
        self.pacer = pacer or RequestPacer(0)
        self.retry_policy = retry_policy or RetryPolicy()
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_settings(cls, settings) -> "DiscordProvider":
        return cls(
            token=settings.DISCORD_BOT_TOKEN,
            api_url=settings.discord_api_url,
            user_agent=settings.DISCORD_USER_AGENT,
            timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
            pacer=RequestPacer(settings.UPSTREAM_MIN_INTERVAL_SECONDS),
            retry_policy=RetryPolicy(
                max_attempts=settings.UPSTREAM_RETRY_ATTEMPTS,
                base_delay=settings.UPSTREAM_RETRY_BASE_DELAY,
                backoff_factor=settings.UPSTREAM_RETRY_BACKOFF,
            ),
        )

    @property
    def configured(self) -> bool:
        return bool(self.token)

    def _headers(self) -> Dict[str, str]:
        if not self.token:
            logger.error("DISCORD_BOT_TOKEN is not configured")
            raise ConfigurationError("DISCORD_BOT_TOKEN")

        return {
            "Authorization": f"Bot {self.token}",
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch_invite(self, code: str) -> UpstreamResponse:
        return await self.request(
            f"/invites/{quote(code, safe='')}",
            params={"with_counts": "true", "with_expiration": "true"},
        )

    async def fetch_user(self, user_id: str) -> UpstreamResponse:
        return await self.request(f"/users/{quote(user_id, safe='')}")

    async def request(
        self, path: str, params: Optional[Dict[str, str]] = None
    ) -> UpstreamResponse:
        return await self.retry_policy.run(
            lambda: self._request_once(path, params), operation_name=f"GET {path}"
        )

    async def _request_once(
        self, path: str, params: Optional[Dict[str, str]]
    ) -> UpstreamResponse:
        headers = self._headers()
        await self.pacer.wait()
        session = await self._get_session()
        url = f"{self.api_url}{path}"

        logger.debug(
            f"Upstream request: GET {path}",
            extra={"token": mask_secret(self.token)},
        )

        try:
            async with session.get(
                url,
                params=params,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as response:
                payload = await self._read_payload(response)
                result = UpstreamResponse(
                    status=response.status,
                    payload=payload,
                    headers=CIMultiDict(response.headers),
                )
        except asyncio.TimeoutError:
            logger.warning(f"Upstream request timed out after {self.timeout}s: {path}")
            raise UpstreamTimeoutError(self.timeout)
        except aiohttp.ClientError as e:
            logger.error(f"Upstream request failed for {path}: {e}")
            raise UpstreamNetworkError(str(e))

        self._log_rate_limit(path, result)
        return result

    @staticmethod
    async def _read_payload(response) -> Optional[Any]:
        try:
            return await response.json(content_type=None)
        except ValueError:
            return None

    @staticmethod
    def _log_rate_limit(path: str, response: UpstreamResponse) -> None:
        rate_limit = response.rate_limit
        if rate_limit is None:
            return
        if rate_limit.remaining == 0:
            logger.warning(
                f"Upstream rate limit bucket exhausted for {path}",
                extra={
                    "bucket": rate_limit.bucket,
                    "limit": rate_limit.limit,
                    "reset_after": rate_limit.reset_after,
                },
            )
