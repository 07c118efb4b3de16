"""
Exceptions raised by the SERMAS platform client.

The `SermasApp` facade absorbs all of these and converts them into absent
results; they only surface to callers that use `SermasApiClient` directly.
"""
from typing import Optional


class SermasError(Exception):
    """Base class for all sermas_app errors."""


class SermasApiError(SermasError):
    """The platform answered a request with a non-success status."""

    def __init__(self, status_code: int, message: str = "", url: Optional[str] = None):
        self.status_code = status_code
        self.message = message
        self.url = url
        detail = f"{status_code} {message}".strip()
        if url:
            detail = f"{detail} ({url})"
        super().__init__(detail)


class NotFoundError(SermasApiError):
    """The requested resource does not exist (HTTP 404)."""

    def __init__(self, message: str = "Not Found", url: Optional[str] = None):
        super().__init__(404, message, url)


class AuthenticationError(SermasError):
    """Client credentials were rejected or the token endpoint is unreachable."""


class SubscriptionError(SermasError):
    """A remote event stream could not be opened."""

    def __init__(self, topic: str, reason: str):
        self.topic = topic
        self.reason = reason
        super().__init__(f"Subscription to {topic} failed: {reason}")
