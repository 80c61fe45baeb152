import asyncio
import logging
import pytest
from unittest.mock import AsyncMock, Mock

import aiohttp
from multidict import CIMultiDict

from core.config import Settings
from core.exceptions import ConfigurationError, UpstreamNetworkError, UpstreamTimeoutError
from core.retry import RetryPolicy
from providers.discord_provider import (
    DiscordProvider,
    UpstreamResponse,
    parse_rate_limit_headers,
    parse_retry_after,
)

TOKEN = "MTIzNDU2Nzg5MDEyMzQ1Njc4.secret.part"
API_URL = "https://discord.com/api/v10"


class TestParseRetryAfter:
    @pytest.mark.parametrize(
        "value,expected",
        [("2.5", 3), ("1", 1), (0.2, 1), (7, 7), ("60.000", 60)],
    )
    def test_rounds_up(self, value, expected):
        assert parse_retry_after(value) == expected

    @pytest.mark.parametrize("value", [None, "", "soon", "nan", "inf", "-3", "0"])
    def test_defaults(self, value):
        assert parse_retry_after(value) == 5
        assert parse_retry_after(value, default=9) == 9


class TestRateLimitHeaders:
    def test_parses_complete_headers(self):
        rate_limit = parse_rate_limit_headers(
            CIMultiDict(
                {
                    "x-ratelimit-limit": "5",
                    "x-ratelimit-remaining": "0",
                    "x-ratelimit-reset-after": "1.5",
                    "x-ratelimit-bucket": "abcd1234",
                }
            )
        )

        assert rate_limit.limit == 5
        assert rate_limit.remaining == 0
        assert rate_limit.reset_after == 1.5
        assert rate_limit.bucket == "abcd1234"
        assert rate_limit.scope is None

    def test_incomplete_headers(self):
        assert parse_rate_limit_headers(CIMultiDict({"X-RateLimit-Limit": "5"})) is None

    def test_garbage_headers(self):
        headers = CIMultiDict(
            {
                "X-RateLimit-Limit": "five",
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset-After": "1",
                "X-RateLimit-Bucket": "b",
            }
        )
        assert parse_rate_limit_headers(headers) is None

    def test_response_ok(self):
        assert UpstreamResponse(204).ok is True
        assert UpstreamResponse(404).ok is False


class TestDiscordProvider:
    @pytest.fixture
    def provider(self, fake_upstream):
        return DiscordProvider(token=TOKEN, api_url=API_URL, session=fake_upstream)

    @pytest.mark.asyncio
    async def test_fetch_invite(self, provider, fake_upstream, sample_invite):
        fake_upstream.respond("/invites/taken-code", 200, sample_invite, {"X-Test": "1"})

        response = await provider.fetch_invite("taken-code")

        assert response.status == 200
        assert response.payload == sample_invite
        assert response.headers["x-test"] == "1"
        call = fake_upstream.calls[0]
        assert call["url"] == f"{API_URL}/invites/taken-code"
        assert call["params"] == {"with_counts": "true", "with_expiration": "true"}
        assert call["headers"] == {
            "Authorization": f"Bot {TOKEN}",
            "Content-Type": "application/json",
            "User-Agent": "DiscordBot (https://discordtest.com, 1.0.0)",
        }
        assert call["timeout"].total == 10.0

    @pytest.mark.asyncio
    async def test_fetch_user(self, provider, fake_upstream):
        fake_upstream.respond("/users/80351110224678912", 404, {"message": "Unknown User"})

        response = await provider.fetch_user("80351110224678912")

        assert response.status == 404
        assert fake_upstream.calls[0]["params"] is None

    @pytest.mark.asyncio
    async def test_non_json_body(self, provider, fake_upstream, make_response):
        fake_upstream.responses["/invites/abc"] = make_response(502, ValueError("not json"))

        response = await provider.fetch_invite("abc")

        assert response.status == 502
        assert response.payload is None

    @pytest.mark.asyncio
    async def test_missing_token(self, fake_upstream):
        provider = DiscordProvider(token="", api_url=API_URL, session=fake_upstream)

        assert provider.configured is False
        with pytest.raises(ConfigurationError) as exc_info:
            await provider.fetch_invite("abc")

        assert exc_info.value.message == "Bot token not configured"
        assert fake_upstream.calls == []

    @pytest.mark.asyncio
    async def test_timeout(self, provider, fake_upstream):
        fake_upstream.fail("/invites/abc", asyncio.TimeoutError())

        with pytest.raises(UpstreamTimeoutError) as exc_info:
            await provider.fetch_invite("abc")

        assert exc_info.value.status_code == 408

    @pytest.mark.asyncio
    async def test_network_error(self, provider, fake_upstream):
        fake_upstream.fail("/invites/abc", aiohttp.ClientConnectionError("refused"))

        with pytest.raises(UpstreamNetworkError):
            await provider.fetch_invite("abc")

    @pytest.mark.asyncio
    async def test_retry_policy_is_applied(self, fake_upstream, make_response):
        provider = DiscordProvider(
            token=TOKEN,
            api_url=API_URL,
            session=fake_upstream,
            retry_policy=RetryPolicy(max_attempts=2, base_delay=0),
        )
        outcomes = [aiohttp.ClientConnectionError("reset"), make_response(404, None)]
        original_get = fake_upstream.get

        def flaky_get(url, **kwargs):
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                fake_upstream.calls.append({"url": url, "path": None})
                raise outcome
            fake_upstream.responses["/invites/abc"] = outcome
            return original_get(url, **kwargs)

        fake_upstream.get = flaky_get

        response = await provider.fetch_invite("abc")

        assert response.status == 404
        assert len(fake_upstream.calls) == 2

    @pytest.mark.asyncio
    async def test_pacer_is_awaited(self, fake_upstream):
        pacer = Mock()
        pacer.wait = AsyncMock(return_value=0.0)
        provider = DiscordProvider(token=TOKEN, api_url=API_URL, pacer=pacer, session=fake_upstream)
        fake_upstream.respond("/invites/abc", 404, None)

        await provider.fetch_invite("abc")

        pacer.wait.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_code_is_path_escaped(self, provider, fake_upstream):
        await provider.fetch_invite("a/b")

        assert fake_upstream.calls[0]["url"] == f"{API_URL}/invites/a%2Fb"

    @pytest.mark.asyncio
    async def test_token_never_logged_in_full(self, provider, fake_upstream):
        records = []

        class ListHandler(logging.Handler):
            def emit(self, record):
                records.append(record)

        handler = ListHandler(level=logging.DEBUG)
        provider_logger = logging.getLogger("providers.discord_provider")
        previous_level = provider_logger.level
        provider_logger.addHandler(handler)
        provider_logger.setLevel(logging.DEBUG)
        fake_upstream.respond(
            "/invites/abc",
            404,
            None,
            {
                "X-RateLimit-Limit": "5",
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset-After": "2",
                "X-RateLimit-Bucket": "bucket-1",
            },
        )

        try:
            await provider.fetch_invite("abc")
        finally:
            provider_logger.removeHandler(handler)
            provider_logger.setLevel(previous_level)

        assert records
        assert any(r.levelno == logging.WARNING and "exhausted" in r.getMessage() for r in records)
        for record in records:
            assert TOKEN not in record.getMessage()
            assert TOKEN not in str(record.__dict__)

    @pytest.mark.asyncio
    async def test_close_leaves_injected_session_open(self, provider, fake_upstream):
        await provider.close()

        assert fake_upstream.closed is False

    @pytest.mark.asyncio
    async def test_close_owned_session(self):
        provider = DiscordProvider(token=TOKEN)
        session = await provider._get_session()

        await provider.close()

        assert session.closed is True

    def test_from_settings(self):
        settings = Settings(
            _env_file=None,
            DISCORD_BOT_TOKEN=TOKEN,
            DISCORD_API_VERSION="v9",
            UPSTREAM_TIMEOUT_SECONDS=3,
            UPSTREAM_MIN_INTERVAL_SECONDS=1.5,
            UPSTREAM_RETRY_ATTEMPTS=2,
        )

        provider = DiscordProvider.from_settings(settings)

        assert provider.api_url == "https://discord.com/api/v9"
        assert provider.timeout == 3
        assert provider.pacer.min_interval == 1.5
        assert provider.retry_policy.max_attempts == 2
        assert provider.configured is True
