"""Error taxonomy for the ingest path.

Only AuthError and ValidationError reach the client. Store and
notification failures are scoped to a single occurrence or task and are
logged, never surfaced in the HTTP response.
"""

from __future__ import annotations

from typing import Any, Optional


class BubbleMonError(Exception):
    """Base class for all ingest errors."""


class AuthError(BubbleMonError):
    """Missing or invalid client credentials. Aborts the request (401).

    The reason is for operator logs only; clients always receive the
    same response.
    """

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ValidationError(BubbleMonError):
    """Malformed batch envelope. Aborts the request (400)."""


class StoreError(BubbleMonError):
    """A Store call failed: transport error or non-2xx response."""

    def __init__(
        self,
        message: str,
        collection: str = "",
        status: Optional[int] = None,
        body: Any = None,
    ):
        super().__init__(message)
        self.collection = collection
        self.status = status
        self.body = body


class DecodeError(StoreError):
    """The Store answered with a body that is not valid JSON."""


class NotificationError(BubbleMonError):
    """The enrichment webhook call failed."""
