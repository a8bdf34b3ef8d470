"""Security helpers — audit trail and rate limiting."""

from civicpulse.security.audit import audit_on_event
from civicpulse.security.rate_limiter import rate_limiter

__all__ = ["audit_on_event", "rate_limiter"]
