"""Client-side chat session: the local mirror of consent and chat state.

Everything here is a cache. The pending prompt list, the consent map and
the `can_chat` affordance only decide what to show; the server re-checks
every post. After a reconnect the whole mirror is rebuilt over REST, so
missed pushes never leave it permanently stale.

Consent map values follow the UI's three-way reading:
    True   accepted
    False  declined
    None   prompt pending
    (absent) never merged, the reporter keeps default access
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from civicpulse.client.api import ChatApiClient, ChatApiError
from civicpulse.client.buffer import LiveTail, Message, MessageBuffer
from civicpulse.client.live import LiveChannelClient
from civicpulse.models.enums import UserRole
from civicpulse.schemas.live import LiveEvent

logger = logging.getLogger(__name__)


class ChatSession:
    """Consent prompts, consent status and message buffers of one user."""

    def __init__(self, api: ChatApiClient, live: LiveChannelClient, role: UserRole) -> None:
        self.api = api
        self.live = live
        self.role = role

        self.pending_consent_requests: list[str] = []
        self.consent_status: dict[str, bool | None] = {}
        self.live_messages: dict[str, LiveTail] = {}
        self.buffers: dict[str, MessageBuffer] = {}
        self._canonical: dict[str, str] = {}

        live.on(LiveEvent.CONSENT_REQUEST, self._on_consent_request)
        live.on(LiveEvent.CONSENT_UPDATED, self._on_consent_updated)
        live.on(LiveEvent.CHAT_MESSAGE, self._on_chat_message)
        live.on_connected = self.resync

    @property
    def connected(self) -> bool:
        return self.live.connected

    # ── Live events ──────────────────────────────────────────────────

    def _on_consent_request(self, data: dict[str, Any]) -> None:
        issue_id = str((data or {}).get("issueId") or "")
        if not issue_id:
            return
        if issue_id not in self.pending_consent_requests:
            self.pending_consent_requests.append(issue_id)
        self.consent_status[issue_id] = None

    def _on_consent_updated(self, data: dict[str, Any]) -> None:
        issue_id = str((data or {}).get("issueId") or "")
        if not issue_id:
            return
        self._settle_consent(issue_id, bool(data.get("consent")))

    def _on_chat_message(self, data: dict[str, Any]) -> None:
        issue_id = str((data or {}).get("issueId") or "")
        message = (data or {}).get("message")
        if not issue_id or not message:
            return
        self.live_tail(issue_id).append(message)
        buffer = self.buffers.get(issue_id)
        if buffer is not None:
            buffer.add_live(message)

    def _settle_consent(self, issue_id: str, consent: bool) -> None:
        self.pending_consent_requests = [i for i in self.pending_consent_requests if i != issue_id]
        self.consent_status[issue_id] = consent

    def live_tail(self, issue_id: str) -> LiveTail:
        tail = self.live_messages.get(issue_id)
        if tail is None:
            tail = self.live_messages[issue_id] = LiveTail()
        return tail

    # ── Chat ─────────────────────────────────────────────────────────

    def buffer_for(self, issue_id: str) -> MessageBuffer | None:
        issue_id = str(issue_id)
        return self.buffers.get(self._canonical.get(issue_id, issue_id))

    async def open_issue(self, issue_id: str) -> MessageBuffer:
        """Load the newest page and merge whatever already arrived live."""
        issue_id = str(issue_id)
        body = await self.api.get_messages(issue_id, page=1)
        canonical = str(body.get("canonicalIssueId") or issue_id)
        self._canonical[issue_id] = canonical

        buffer = self.buffers.get(canonical) or MessageBuffer(canonical)
        buffer.load_page(body.get("data", []), body.get("pagination", {}))
        buffer.merge_live(self.live_tail(canonical))
        self.buffers[canonical] = buffer
        return buffer

    async def load_older(self, issue_id: str) -> int:
        """Prepend the next older page; 0 when there is nothing more."""
        buffer = self.buffer_for(issue_id)
        if buffer is None or not buffer.has_more:
            return 0
        body = await self.api.get_messages(buffer.issue_id, page=buffer.next_page)
        return buffer.load_page(body.get("data", []), body.get("pagination", {}))

    def close_issue(self, issue_id: str) -> None:
        buffer = self.buffer_for(issue_id)
        if buffer is not None:
            self.buffers.pop(buffer.issue_id, None)

    def can_chat(self, issue_id: str, is_reporter: bool = True) -> bool:
        """Whether to enable the message input. Never authoritative."""
        if self.role == UserRole.GOVERNMENT:
            return True
        issue_id = str(issue_id)
        if issue_id not in self.consent_status:
            return is_reporter
        return self.consent_status[issue_id] is True

    async def send_message(self, issue_id: str, text: str) -> Message:
        """Post over REST; the stored message is merged like a live one."""
        message = await self.api.post_message(issue_id, text.strip())
        buffer = self.buffer_for(issue_id)
        if buffer is not None:
            buffer.add_live(message)
        return message

    # ── Consent ──────────────────────────────────────────────────────

    async def respond_to_consent(self, issue_id: str, accept: bool) -> bool:
        """Answer a prompt; on success update the mirror without waiting for the push."""
        issue_id = str(issue_id)
        try:
            await self.api.respond_to_consent(issue_id, accept)
        except ChatApiError as exc:
            logger.warning("Consent answer for issue %s refused: %s", issue_id, exc.message)
            return False
        self._settle_consent(issue_id, accept)
        return True

    # ── Recovery ─────────────────────────────────────────────────────

    async def resync(self) -> None:
        """Rebuild the mirror over REST after (re)connecting."""
        try:
            pending = await self.api.pending_consents()
            pending_ids = [str(p["issueId"]) for p in pending]
            for issue_id in [i for i in self.consent_status if i not in pending_ids]:
                status = await self.api.get_consent(issue_id)
                if status.get("state") == "none":
                    self.consent_status.pop(issue_id, None)
                else:
                    self.consent_status[issue_id] = status.get("consent")
            self.pending_consent_requests = pending_ids
            for issue_id in pending_ids:
                self.consent_status[issue_id] = None

            for canonical, buffer in list(self.buffers.items()):
                buffer.reset()
                body = await self.api.get_messages(canonical, page=1)
                buffer.load_page(body.get("data", []), body.get("pagination", {}))
                buffer.merge_live(self.live_tail(canonical))
        except (ChatApiError, httpx.HTTPError) as exc:
            logger.warning("Resync after reconnect failed, keeping cached state: %s", exc)
            return
        logger.info(
            "Resynced: %d pending consent requests, %d open issues",
            len(self.pending_consent_requests),
            len(self.buffers),
        )

    def clear(self) -> None:
        """Drop all cached state, e.g. on sign-out."""
        self.pending_consent_requests = []
        self.consent_status = {}
        self.live_messages = {}
        self.buffers = {}
        self._canonical = {}
