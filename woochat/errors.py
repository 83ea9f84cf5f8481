from __future__ import annotations

from typing import Optional


class WooChatError(Exception):
    """Base class for errors surfaced to the operator."""


class ConfigurationError(WooChatError):
    """Raised before any network call when credentials are missing."""


class CatalogError(WooChatError):
    """Network or upstream failure talking to the store's REST API."""

    def __init__(self, message: str, status: Optional[int] = None, code: str = "unknown_error") -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class CompletionError(WooChatError):
    """Network or upstream failure talking to the completion API."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        error_type: str = "unknown_error",
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.error_type = error_type
        self.code = code


class RequestCancelled(WooChatError):
    """Raised when the caller's cancellation signal fires mid-request."""
