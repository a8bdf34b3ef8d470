"""Issue chat core — consent state machine, permissions, message log, merge trigger."""

from civicpulse.chat.consent import consent_service
from civicpulse.chat.merge import merge_service
from civicpulse.chat.permissions import permission_resolver
from civicpulse.chat.service import chat_service

__all__ = ["consent_service", "merge_service", "permission_resolver", "chat_service"]
