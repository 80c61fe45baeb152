"""
Per-Client Rate Limiting.

A fixed-window counter per `(rule, client)` pair. Counters live in a
`CacheBackend`, so the same code limits a single process (memory backend) or
a fleet of instances sharing Redis. Reading and writing a counter is not
atomic; under concurrency a client may slip a request or two past the limit.
The limiter is advisory, not a security boundary.

Key Components:
- `RateLimitRule`: Requests allowed per window (seconds).
- `RateLimitDecision`: Outcome of a check, including `retry_after`.
- `RateLimiter`: Holds the rules and the counter store.
- `get_client_identifier`: Derives the client key from a request.
"""

import math
import time
from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import Request

from core.cache import CacheBackend
from core.exceptions import RateLimitedError
from core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class RateLimitRule:
    """Rate limit rule configuration"""

    requests: int  # Number of requests allowed
    window: int  # Time window in seconds


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: int
    reset_at: float


class RateLimiter:
    """Fixed-window rate limiter over a key-value store"""

    def __init__(self, store: CacheBackend, clock=None):
        self.store = store
        self.rules: Dict[str, RateLimitRule] = {}
        self._clock = clock or time.time

    def add_rule(self, key: str, rule: RateLimitRule):
        """Add a rate limiting rule"""
        self.rules[key] = rule
        logger.info(
            f"Added rate limit rule for {key}: {rule.requests} requests per {rule.window}s"
        )

    async def check(self, identifier: str, rule_key: str) -> RateLimitDecision:
        """Count one request against the window and report whether it is allowed"""
        rule = self.rules.get(rule_key)
        now = self._clock()
        if rule is None:
            return RateLimitDecision(True, 0, 0, 0, now)

        counter_key = f"ratelimit:{rule_key}:{identifier}"
        try:
            counter = await self.store.get(counter_key)
            if not counter or now - counter["window_start"] >= rule.window:
                counter = {"count": 0, "window_start": now}

            counter["count"] += 1
            reset_at = counter["window_start"] + rule.window
            await self.store.set(counter_key, counter, ttl=max(reset_at - now, 0.001))
        except Exception as e:
            # Fail open: a broken store must not take the API down
            logger.error(f"Rate limiting error for {rule_key}: {e}")
            return RateLimitDecision(True, rule.requests, rule.requests, 0, now)

        allowed = counter["count"] <= rule.requests
        retry_after = 0 if allowed else max(1, math.ceil(reset_at - now))
        return RateLimitDecision(
            allowed=allowed,
            limit=rule.requests,
            remaining=max(0, rule.requests - counter["count"]),
            retry_after=retry_after,
            reset_at=reset_at,
        )

    async def enforce(self, identifier: str, rule_key: str) -> RateLimitDecision:
        """Like `check`, but raise `RateLimitedError` when over the limit"""
        decision = await self.check(identifier, rule_key)
        if not decision.allowed:
            logger.warning(
                f"Rate limit exceeded for {identifier} on rule {rule_key}",
                extra={"rule": rule_key, "retry_after": decision.retry_after},
            )
            raise RateLimitedError(
                decision.retry_after,
                "Too many requests, please try again later",
            )
        return decision

    async def reset(self, identifier: str, rule_key: str):
        """Reset rate limit for an identifier"""
        await self.store.delete(f"ratelimit:{rule_key}:{identifier}")

    def get_stats(self) -> Dict[str, object]:
        """Get rate limiter statistics"""
        return {
            "total_rules": len(self.rules),
            "rules": {
                k: {"requests": v.requests, "window": v.window}
                for k, v in self.rules.items()
            },
        }


def get_client_identifier(request: Request) -> str:
    """Identify the caller, preferring proxy-supplied client IPs"""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    for header in ("CF-Connecting-IP", "X-Real-IP"):
        value = request.headers.get(header)
        if value:
            return value.strip()

    # Weak fallback; easily shared or spoofed
    user_agent = request.headers.get("User-Agent")
    trace: Optional[str] = request.headers.get("CF-Ray") or request.headers.get(
        "X-Request-ID"
    )
    if user_agent and trace:
        return f"{user_agent}:{trace}"

    return request.client.host if request.client else "unknown"
