"""Error taxonomy for the conversation core."""

from __future__ import annotations


class ChatError(Exception):
    """Base class for recoverable chat failures. None of these are fatal."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(ChatError):
    """Message content rejected locally, before any store call."""


class StoreError(ChatError):
    """Query or write against the message store failed (network, permission, constraint)."""


class AbsentIdentityError(ChatError):
    """No authenticated identity yet. Callers defer instead of surfacing it."""

    def __init__(self, message: str = "No authenticated identity") -> None:
        super().__init__(message)
