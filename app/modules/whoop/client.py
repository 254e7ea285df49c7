"""HTTP client for the Whoop developer API (v2)."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import structlog

from app.core.config import settings
from app.modules.whoop.rate_limiter import WhoopRateLimiter

log = structlog.get_logger()


class WhoopAPIError(Exception):
    def __init__(self, message: str, status_code: int | None = None, path: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.path = path


class WhoopRateLimitError(WhoopAPIError):
    """HTTP 429 from the vendor."""

    def __init__(self, message: str, retry_after_seconds: int | None = None, path: str | None = None) -> None:
        super().__init__(message, status_code=429, path=path)
        self.retry_after_seconds = retry_after_seconds


@dataclass
class WhoopTokenSet:
    access_token: str
    refresh_token: str
    expires_at: datetime
    token_type: str
    refresh_token_expires_at: datetime | None = None
    scope: str | None = None


def extract_records(payload: Any) -> list[Any]:
    """Vendor collections arrive as a bare list or wrapped in `records`/`data`."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in ("records", "data"):
            value = payload.get(key)
            if isinstance(value, list):
                return value
    return []


class WhoopClient:
    """Thin async wrapper over the vendor endpoints; every response feeds the limiter."""

    def __init__(
        self,
        limiter: WhoopRateLimiter,
        client_id: str,
        client_secret: str,
        api_base_url: str,
        oauth_base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._limiter = limiter
        self._client_id = client_id
        self._client_secret = client_secret
        self._api_base_url = api_base_url if api_base_url.endswith("/") else f"{api_base_url}/"
        self._oauth_base_url = oauth_base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

        if "/developer/v1" in self._api_base_url or "/v1/" in self._api_base_url:
            log.warning("whoop api v1 is deprecated, configure WHOOP_API_BASE_URL for v2", base_url=self._api_base_url)

    @classmethod
    def from_settings(cls, limiter: WhoopRateLimiter) -> "WhoopClient":
        return cls(
            limiter=limiter,
            client_id=settings.WHOOP_CLIENT_ID,
            client_secret=settings.WHOOP_CLIENT_SECRET,
            api_base_url=settings.WHOOP_API_BASE_URL,
            oauth_base_url=settings.WHOOP_OAUTH_BASE_URL,
            timeout=settings.WHOOP_REQUEST_TIMEOUT_SECONDS,
        )

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self._api_base_url,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    # ========== OAuth ==========

    async def refresh_tokens(self, refresh_token: str) -> WhoopTokenSet:
        if not self._client_id or not self._client_secret:
            raise WhoopAPIError("Missing required Whoop configuration: WHOOP_CLIENT_ID/WHOOP_CLIENT_SECRET")

        response = await self._client().post(
            f"{self._oauth_base_url}/token",
            data={
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            },
            headers={"Content-Type": "application/x-www-form-urlencoded"},
        )
        if response.status_code != 200:
            raise WhoopAPIError(
                f"Whoop token request failed: {response.status_code} - {_safe_body(response)}",
                status_code=response.status_code,
                path="/token",
            )

        body = response.json()
        now = datetime.now(timezone.utc)
        refresh_expires_in = body.get("refresh_token_expires_in")
        return WhoopTokenSet(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token", refresh_token),
            expires_at=now + timedelta(seconds=int(body.get("expires_in", 3600))),
            refresh_token_expires_at=(
                now + timedelta(seconds=int(refresh_expires_in)) if refresh_expires_in else None
            ),
            token_type=body.get("token_type", "Bearer"),
            scope=body.get("scope"),
        )

    # ========== Data ==========

    async def fetch_profile(self, access_token: str) -> dict[str, Any]:
        return await self._get_json(access_token, "user/profile/basic")

    async def fetch_cycles(self, access_token: str, start: datetime, end: datetime) -> Any:
        return await self._get_range(access_token, "cycle", start, end)

    async def fetch_recovery(self, access_token: str, start: datetime, end: datetime) -> Any:
        try:
            return await self._get_range(access_token, "recovery", start, end)
        except WhoopRateLimitError:
            raise
        except WhoopAPIError as exc:
            # Some accounts only expose recovery embedded in cycles.
            log.info("whoop recovery endpoint failed, reading recovery from cycles", error=str(exc))
            cycles = await self.fetch_cycles(access_token, start, end)
            recoveries = [
                cycle["recovery"]
                for cycle in extract_records(cycles)
                if isinstance(cycle, dict) and cycle.get("recovery")
            ]
            if recoveries:
                return recoveries
            raise

    async def fetch_sleep(self, access_token: str, start: datetime, end: datetime) -> Any:
        return await self._get_range(access_token, "activity/sleep", start, end)

    async def fetch_workouts(self, access_token: str, start: datetime, end: datetime) -> Any:
        return await self._get_range(access_token, "activity/workout", start, end)

    async def _get_range(self, access_token: str, path: str, start: datetime, end: datetime) -> Any:
        return await self._get_json(
            access_token,
            path,
            params={"start": _isoformat(start), "end": _isoformat(end)},
        )

    async def _get_json(self, access_token: str, path: str, params: dict[str, str] | None = None) -> Any:
        try:
            response = await self._client().get(
                path,
                params=params,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        finally:
            # A request that never produced a response still spent quota.
            self._limiter.record_request()

        self._limiter.update_rate_limits(response.headers)

        if response.status_code == 429:
            retry_after = _parse_int(response.headers.get("Retry-After"))
            if retry_after is not None:
                wait = f"{retry_after} seconds"
            else:
                decision = self._limiter.can_make_request()
                wait = (
                    f"{math.ceil(decision.wait_ms / 1000)} seconds"
                    if decision.wait_ms
                    else "before retrying"
                )
            raise WhoopRateLimitError(
                f"Rate limit exceeded (429): {_safe_body(response) or 'Too Many Requests'}. Wait {wait}.",
                retry_after_seconds=retry_after,
                path=path,
            )

        if response.is_error:
            raise WhoopAPIError(
                f"Failed to fetch Whoop data ({path}): {response.status_code} - {_safe_body(response)}",
                status_code=response.status_code,
                path=path,
            )

        return response.json()


def _isoformat(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _safe_body(response: httpx.Response) -> str:
    try:
        return response.text
    except Exception:  # pragma: no cover - undecodable body
        return ""
