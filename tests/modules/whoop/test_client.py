from datetime import datetime, timedelta, timezone

import httpx
import pytest

from app.modules.whoop.client import (
    WhoopAPIError,
    WhoopClient,
    WhoopRateLimitError,
    extract_records,
)
from app.modules.whoop.rate_limiter import WhoopRateLimiter

END = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
START = END - timedelta(hours=24)


def _client(handler, limiter: WhoopRateLimiter) -> WhoopClient:
    return WhoopClient(
        limiter=limiter,
        client_id="cid",
        client_secret="secret",
        api_base_url="https://api.example.test/developer/v2",
        oauth_base_url="https://api.example.test/oauth/oauth2",
        transport=httpx.MockTransport(handler),
    )


@pytest.fixture
def limiter(clock) -> WhoopRateLimiter:
    return WhoopRateLimiter(clock=clock)


def test_extract_records_shapes() -> None:
    assert extract_records([1, 2]) == [1, 2]
    assert extract_records({"records": [1]}) == [1]
    assert extract_records({"data": [2]}) == [2]
    assert extract_records({"next_token": None}) == []
    assert extract_records(None) == []


@pytest.mark.asyncio
async def test_fetch_cycles_sends_range_and_records_headers(limiter, clock) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"records": [{"id": 1}]},
            headers={
                "X-RateLimit-Limit": "100",
                "X-RateLimit-Remaining": "42",
                "X-RateLimit-Reset": str(int(clock.now) + 10),
            },
        )

    client = _client(handler, limiter)
    payload = await client.fetch_cycles("tok", START, END)
    await client.aclose()

    assert payload == {"records": [{"id": 1}]}
    request = seen[0]
    assert request.url.path == "/developer/v2/cycle"
    assert request.url.params["start"] == "2024-04-30T12:00:00Z"
    assert request.url.params["end"] == "2024-05-01T12:00:00Z"
    assert request.headers["Authorization"] == "Bearer tok"

    status = limiter.status()
    assert status["per_minute"]["used"] == 1
    assert status["api_reported"]["remaining"] == 42


@pytest.mark.asyncio
async def test_429_raises_with_retry_after(limiter) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, text="slow down", headers={"Retry-After": "17"})

    client = _client(handler, limiter)
    with pytest.raises(WhoopRateLimitError) as exc_info:
        await client.fetch_sleep("tok", START, END)

    assert exc_info.value.retry_after_seconds == 17
    assert exc_info.value.status_code == 429
    assert "Wait 17 seconds" in str(exc_info.value)
    assert limiter.status()["per_day"]["used"] == 1


@pytest.mark.asyncio
async def test_error_status_raises_api_error(limiter) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="boom")

    client = _client(handler, limiter)
    with pytest.raises(WhoopAPIError) as exc_info:
        await client.fetch_workouts("tok", START, END)

    assert exc_info.value.status_code == 500
    assert exc_info.value.path == "activity/workout"


@pytest.mark.asyncio
async def test_recovery_falls_back_to_cycles(limiter) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/recovery"):
            return httpx.Response(404, text="not found")
        return httpx.Response(
            200,
            json={"records": [{"recovery": {"score": {"recovery_score": 71}}}, {"id": 2}]},
        )

    client = _client(handler, limiter)
    recovery = await client.fetch_recovery("tok", START, END)

    assert recovery == [{"score": {"recovery_score": 71}}]
    assert limiter.status()["per_minute"]["used"] == 2


@pytest.mark.asyncio
async def test_refresh_tokens_parses_token_set(limiter) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/oauth/oauth2/token"
        body = request.content.decode()
        assert "grant_type=refresh_token" in body
        assert "refresh_token=old-refresh" in body
        return httpx.Response(
            200,
            json={
                "access_token": "new-access",
                "refresh_token": "new-refresh",
                "expires_in": 3600,
                "token_type": "bearer",
                "scope": "read:cycles offline",
            },
        )

    client = _client(handler, limiter)
    before = datetime.now(timezone.utc)
    tokens = await client.refresh_tokens("old-refresh")

    assert tokens.access_token == "new-access"
    assert tokens.refresh_token == "new-refresh"
    assert tokens.scope == "read:cycles offline"
    assert tokens.expires_at >= before + timedelta(seconds=3599)


@pytest.mark.asyncio
async def test_refresh_requires_client_credentials(limiter) -> None:
    client = WhoopClient(
        limiter=limiter,
        client_id="",
        client_secret="",
        api_base_url="https://api.example.test/developer/v2",
        oauth_base_url="https://api.example.test/oauth/oauth2",
    )

    with pytest.raises(WhoopAPIError):
        await client.refresh_tokens("r")
