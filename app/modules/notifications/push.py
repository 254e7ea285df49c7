from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol

import httpx
import structlog
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from app.core.config import settings

log = structlog.get_logger()

InvalidTokenHandler = Callable[[str], Awaitable[None]]

INVALID_TOKEN_STATUSES = {"UNREGISTERED", "INVALID_ARGUMENT", "NOT_FOUND"}
FCM_SCOPES = ["https://www.googleapis.com/auth/firebase.messaging"]


class PushTransport(Protocol):
    async def send(self, token: str, title: str, body: str, data: dict[str, str]) -> bool: ...


class AccessTokenSource(Protocol):
    async def get_token(self, force_refresh: bool = False) -> str: ...


def load_service_account_info(key: str) -> dict[str, Any]:
    """Parse a service-account key given inline as JSON or as a path to a JSON file."""
    text = key.strip()
    if not text.startswith("{"):
        text = Path(text).expanduser().read_text(encoding="utf-8")
    info = json.loads(text)
    if not isinstance(info, dict):
        raise ValueError("service account key must be a JSON object")
    return info


class ServiceAccountTokenSource:
    """
    Short-lived OAuth access tokens for FCM, minted from a Firebase service account.

    The token is cached on the credentials object and refreshed when it expires
    or when the caller asks for a new one after a 401.
    """

    def __init__(self, credentials: Any) -> None:
        self._credentials = credentials
        self._lock = asyncio.Lock()

    @classmethod
    def from_key(cls, key: str) -> "ServiceAccountTokenSource":
        info = load_service_account_info(key)
        credentials = service_account.Credentials.from_service_account_info(
            info, scopes=FCM_SCOPES
        )
        return cls(credentials)

    @property
    def project_id(self) -> str | None:
        return getattr(self._credentials, "project_id", None)

    async def get_token(self, force_refresh: bool = False) -> str:
        async with self._lock:
            if force_refresh or not self._credentials.valid:
                await asyncio.to_thread(self._credentials.refresh, Request())
            return self._credentials.token


class FcmPushTransport:
    """
    Firebase Cloud Messaging HTTP v1 sender.

    ``send`` never raises. Tokens the service reports as unknown or malformed
    are handed to ``on_invalid_token`` for cleanup and are not retried. A 401
    forces one access-token refresh and a single resend.
    """

    def __init__(
        self,
        project_id: str | None,
        token_source: AccessTokenSource | None,
        base_url: str = "https://fcm.googleapis.com/v1",
        on_invalid_token: InvalidTokenHandler | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._project_id = project_id
        self._token_source = token_source
        self._base_url = base_url.rstrip("/")
        self._on_invalid_token = on_invalid_token
        self._timeout = timeout
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, on_invalid_token: InvalidTokenHandler | None = None) -> "FcmPushTransport":
        token_source: ServiceAccountTokenSource | None = None
        project_id = settings.FCM_PROJECT_ID
        if settings.FIREBASE_SERVICE_ACCOUNT_KEY:
            try:
                token_source = ServiceAccountTokenSource.from_key(settings.FIREBASE_SERVICE_ACCOUNT_KEY)
            except (OSError, ValueError) as exc:
                log.error("firebase service account key could not be loaded", error=str(exc))
            else:
                project_id = project_id or token_source.project_id
        return cls(
            project_id=project_id,
            token_source=token_source,
            base_url=settings.FCM_BASE_URL,
            on_invalid_token=on_invalid_token,
        )

    @property
    def enabled(self) -> bool:
        return bool(self._project_id and self._token_source)

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def send(self, token: str, title: str, body: str, data: dict[str, str]) -> bool:
        if not self.enabled:
            log.warning("push notifications disabled, FCM is not configured")
            return False

        message: dict[str, Any] = {
            "message": {
                "token": token,
                "notification": {"title": title, "body": body},
                "data": data,
                "android": {
                    "priority": "high",
                    "notification": {"channel_id": "alerts", "sound": "default"},
                },
                "apns": {"payload": {"aps": {"sound": "default", "badge": 1}}},
            }
        }
        try:
            response = await self._post(message)
            if response.status_code == 401:
                log.info("fcm access token rejected, refreshing")
                response = await self._post(message, force_refresh=True)
        except (httpx.HTTPError, GoogleAuthError) as exc:
            log.warning("push delivery failed", error=str(exc))
            return False

        if response.is_success:
            return True

        error_status = _error_status(response)
        if error_status in INVALID_TOKEN_STATUSES or response.status_code == 404:
            log.info("push token rejected", status_code=response.status_code, error_status=error_status)
            await self._invalidate(token)
        else:
            log.warning(
                "push delivery failed",
                status_code=response.status_code,
                error_status=error_status,
            )
        return False

    async def _post(self, message: dict[str, Any], force_refresh: bool = False) -> httpx.Response:
        access_token = await self._token_source.get_token(force_refresh=force_refresh)
        return await self._client().post(
            f"{self._base_url}/projects/{self._project_id}/messages:send",
            json=message,
            headers={"Authorization": f"Bearer {access_token}"},
        )

    async def _invalidate(self, token: str) -> None:
        if self._on_invalid_token is None:
            return
        try:
            await self._on_invalid_token(token)
        except Exception as exc:
            log.warning("device token cleanup failed", error=str(exc))


def _error_status(response: httpx.Response) -> str | None:
    try:
        payload = response.json()
    except ValueError:
        return None
    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict):
        return None
    for detail in error.get("details") or []:
        if isinstance(detail, dict) and detail.get("errorCode"):
            return str(detail["errorCode"])
    status = error.get("status")
    return str(status) if status else None
