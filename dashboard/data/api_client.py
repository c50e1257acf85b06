from __future__ import annotations

import logging
from typing import Any

import httpx

from dashboard.errors import ConflictError, NotFoundError, TransientIOError, ValidationError

logger = logging.getLogger(__name__)


def _build_transport(retries: int = 2) -> httpx.AsyncHTTPTransport:
    return httpx.AsyncHTTPTransport(retries=retries)


def _error_detail(response: httpx.Response) -> Any:
    try:
        payload = response.json()
    except ValueError:
        return response.text
    if isinstance(payload, dict):
        return payload.get("detail") or payload.get("message") or payload
    return payload


class ApiClient:
    def __init__(
        self,
        base_url: str,
        token: str,
        user_email: str,
        timeout: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.token = token or ""
        self.user_email = (user_email or "").strip().lower()
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings, transport=None) -> "ApiClient":
        return cls(
            settings.api_base_url,
            settings.backend_session_secret,
            settings.user_email,
            timeout=settings.request_timeout_seconds,
            transport=transport,
        )

    def is_enabled(self) -> bool:
        return bool(self.base_url and self.token and self.user_email)

    def _session(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "X-User-Email": self.user_email,
                    "X-Backend-Token": self.token,
                },
                timeout=self.timeout,
                transport=self._transport or _build_transport(),
            )
        return self._client

    async def request(self, method: str, path: str, params: dict | None = None, json: Any = None) -> Any:
        if not self.base_url:
            raise TransientIOError("API_BASE_URL not configured")
        if not self.token:
            raise TransientIOError("BACKEND_SESSION_SECRET not configured")
        if not self.user_email:
            raise TransientIOError("Missing user email for API request")
        try:
            response = await self._session().request(method, path, params=params, json=json)
        except httpx.HTTPError as exc:
            logger.info("API %s %s unreachable: %s", method, path, exc)
            raise TransientIOError(f"API request failed: {exc}") from exc

        if response.status_code == 404:
            raise NotFoundError(f"{method} {path} not found")
        if response.status_code == 409:
            raise ConflictError(str(_error_detail(response)))
        if response.status_code in (400, 422):
            raise ValidationError(str(_error_detail(response)))
        if not response.is_success:
            raise TransientIOError(
                f"API error {response.status_code} {response.reason_phrase}: {_error_detail(response)}"
            )
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise TransientIOError(f"API returned invalid JSON for {method} {path}") from exc

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
