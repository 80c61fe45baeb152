import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

from core.cache import MemoryCacheBackend
from core.exceptions import RateLimitedError
from core.rate_limiter import RateLimiter, RateLimitRule, get_client_identifier


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def make_request(headers=None, host="127.0.0.1"):
    return SimpleNamespace(
        headers=headers or {},
        client=SimpleNamespace(host=host) if host else None,
    )


class TestRateLimiter:
    """Test the fixed-window limiter."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def limiter(self, clock):
        limiter = RateLimiter(MemoryCacheBackend(clock=clock), clock=clock)
        limiter.add_rule("vanity", RateLimitRule(requests=5, window=5))
        return limiter

    @pytest.mark.asyncio
    async def test_allows_up_to_limit(self, limiter):
        decisions = [await limiter.check("client", "vanity") for _ in range(5)]

        assert all(d.allowed for d in decisions)
        assert [d.remaining for d in decisions] == [4, 3, 2, 1, 0]

    @pytest.mark.asyncio
    async def test_rejects_over_limit_with_retry_after(self, limiter, clock):
        for _ in range(5):
            await limiter.check("client", "vanity")

        clock.now += 1.2
        decision = await limiter.check("client", "vanity")

        assert decision.allowed is False
        assert decision.retry_after == 4
        assert decision.reset_at == 1005.0

    @pytest.mark.asyncio
    async def test_window_resets(self, limiter, clock):
        for _ in range(6):
            await limiter.check("client", "vanity")

        clock.now += 5
        decision = await limiter.check("client", "vanity")

        assert decision.allowed is True
        assert decision.remaining == 4

    @pytest.mark.asyncio
    async def test_clients_are_independent(self, limiter):
        for _ in range(5):
            await limiter.check("a", "vanity")

        assert (await limiter.check("b", "vanity")).allowed is True
        assert (await limiter.check("a", "vanity")).allowed is False

    @pytest.mark.asyncio
    async def test_unknown_rule_is_unlimited(self, limiter):
        for _ in range(100):
            assert (await limiter.check("client", "nope")).allowed is True

    @pytest.mark.asyncio
    async def test_enforce_raises(self, limiter):
        for _ in range(5):
            await limiter.enforce("client", "vanity")

        with pytest.raises(RateLimitedError) as exc_info:
            await limiter.enforce("client", "vanity")

        assert exc_info.value.status_code == 429
        assert 1 <= exc_info.value.retry_after <= 5
        assert exc_info.value.message == "Too many requests, please try again later"

    @pytest.mark.asyncio
    async def test_store_failure_fails_open(self, clock):
        store = Mock()
        store.get = AsyncMock(side_effect=ConnectionError("redis down"))
        limiter = RateLimiter(store, clock=clock)
        limiter.add_rule("vanity", RateLimitRule(requests=1, window=5))

        for _ in range(3):
            assert (await limiter.enforce("client", "vanity")).allowed is True

    @pytest.mark.asyncio
    async def test_reset(self, limiter):
        for _ in range(6):
            await limiter.check("client", "vanity")

        await limiter.reset("client", "vanity")

        assert (await limiter.check("client", "vanity")).allowed is True

    def test_get_stats(self, limiter):
        stats = limiter.get_stats()

        assert stats["total_rules"] == 1
        assert stats["rules"]["vanity"] == {"requests": 5, "window": 5}


class TestClientIdentifier:
    def test_forwarded_for_first_entry(self):
        request = make_request({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})
        assert get_client_identifier(request) == "203.0.113.7"

    def test_cloudflare_header(self):
        request = make_request({"CF-Connecting-IP": "198.51.100.2", "X-Real-IP": "10.0.0.9"})
        assert get_client_identifier(request) == "198.51.100.2"

    def test_real_ip(self):
        assert get_client_identifier(make_request({"X-Real-IP": "10.0.0.9"})) == "10.0.0.9"

    def test_user_agent_and_trace_fallback(self):
        request = make_request({"User-Agent": "Mozilla/5.0", "CF-Ray": "8abc"}, host=None)
        assert get_client_identifier(request) == "Mozilla/5.0:8abc"

    def test_socket_peer(self):
        assert get_client_identifier(make_request(host="192.0.2.1")) == "192.0.2.1"

    def test_unknown(self):
        assert get_client_identifier(make_request(host=None)) == "unknown"
