"""Domain errors raised by the chat, consent and live channel services.

Each error carries the HTTP status the API layer answers with; the REST
routes turn them into `{"success": false, "error": ...}` envelopes.
"""

from __future__ import annotations

from civicpulse.models.enums import DenialReason


class ChatError(Exception):
    """Base class for failures reported back to the caller."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AuthError(ChatError):
    """Missing or invalid bearer credential."""

    status_code = 401


class AuthorizationError(ChatError):
    """Authenticated, but not entitled to the action."""

    status_code = 403


class ChatPermissionError(AuthorizationError):
    """Chat write refused by the permission resolver."""

    MESSAGES = {
        DenialReason.CONSENT_PENDING: "Consent pending: accept the merge request to participate in chat",
        DenialReason.CONSENT_DENIED: "Consent declined: you can view this discussion but not post",
        DenialReason.NOT_PARTICIPANT: "Consent required to participate in chat",
    }

    def __init__(self, reason: DenialReason) -> None:
        super().__init__(self.MESSAGES[reason])
        self.reason = reason


class ValidationError(ChatError):
    """Malformed request, e.g. an empty message body."""

    status_code = 400


class NotFoundError(ChatError):
    """Unknown issue or missing consent request."""

    status_code = 404


class ConflictError(ChatError):
    """Request contradicts recorded state (e.g. answering a consent twice differently)."""

    status_code = 409


class RateLimitedError(ChatError):
    """Too many chat posts in the current window."""

    status_code = 429

    def __init__(self, retry_after: int) -> None:
        super().__init__(f"Too many messages, retry in {retry_after}s")
        self.retry_after = retry_after


class TransientDeliveryFailure(Exception):
    """A live send could not reach a connection.

    Raised by Connection.send and swallowed by the ConnectionManager; it
    never reaches business logic.
    """
