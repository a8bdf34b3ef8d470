"""Async httpx client for the issue chat / consent REST API.

Every privileged action (posting, answering consent) goes through here,
never over the live channel, so the server can check it against the
database.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

import httpx

from civicpulse.config import settings

logger = logging.getLogger(__name__)


class ChatApiError(Exception):
    """Non-2xx answer from the API, carrying the `{error}` envelope text."""

    def __init__(self, status_code: int, message: str, reason: str | None = None) -> None:
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.reason = reason


class ChatApiClient:
    """Thin async wrapper around `/api/issues/...`.

    Auth: `Authorization: Bearer <token>` on every call.
    """

    def __init__(
        self,
        token: str,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        self._base_url = (base_url or settings.client.api_base_url).rstrip("/")
        self._timeout = httpx.Timeout(settings.realtime.connect_timeout, connect=5.0)
        self._transport = transport

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self._token}"},
        ) as client:
            response = await client.request(method, path, **kwargs)

        try:
            payload: dict[str, Any] = response.json()
        except ValueError:
            payload = {}

        if response.is_error:
            message = payload.get("error") or response.reason_phrase or "Request failed"
            logger.warning("%s %s failed: %s %s", method, path, response.status_code, message)
            raise ChatApiError(response.status_code, message, payload.get("reason"))
        return payload

    # ── Chat ─────────────────────────────────────────────────────────

    async def get_messages(self, issue_id: uuid.UUID | str, page: int = 1, limit: int | None = None) -> dict[str, Any]:
        """Full page envelope: `data`, `pagination`, `canonicalIssueId`."""
        params: dict[str, int] = {"page": page}
        if limit is not None:
            params["limit"] = limit
        return await self._request("GET", f"/issues/{issue_id}/chat", params=params)

    async def post_message(self, issue_id: uuid.UUID | str, text: str) -> dict[str, Any]:
        payload = await self._request("POST", f"/issues/{issue_id}/chat", json={"message": text})
        return payload["data"]

    # ── Consent ──────────────────────────────────────────────────────

    async def respond_to_consent(self, issue_id: uuid.UUID | str, accept: bool) -> dict[str, Any]:
        payload = await self._request("POST", f"/issues/{issue_id}/consent", json={"accept": accept})
        return payload["data"]

    async def get_consent(self, issue_id: uuid.UUID | str) -> dict[str, Any]:
        payload = await self._request("GET", f"/issues/{issue_id}/consent")
        return payload["data"]

    async def pending_consents(self) -> list[dict[str, Any]]:
        payload = await self._request("GET", "/issues/consent/pending")
        return payload["data"]
