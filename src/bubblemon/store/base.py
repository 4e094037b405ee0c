"""Abstract Store interface.

Every persistence backend implements this contract. The interface is
resource-oriented: named collections, equality filters, and five
operations (select, insert, update, count, increment). Backends do NOT
interpret rows; grouping, sampling and dedup decisions live in the
ingest pipeline.

Every failure surfaces as StoreError (or DecodeError for unparseable
responses). Backends never retry.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger("bubblemon.store")


class Collection(str, Enum):
    """Logical collections the ingest pipeline reads and writes."""
    APPS = "apps"
    GROUPS = "groups"
    GROUP_SESSIONS = "group_sessions"
    DAILY_STATS = "daily_stats"
    SAMPLES = "samples"
    ERROR_CONTEXTS = "error_contexts"
    BREADCRUMBS = "breadcrumbs"


class StoreState(str, Enum):
    """Store connection states."""
    READY = "ready"
    DEGRADED = "degraded"
    CLOSED = "closed"


@dataclass
class StoreHealth:
    """Health snapshot for a Store backend."""
    state: StoreState = StoreState.READY
    backend: str = ""
    endpoint: str = ""
    requests: int = 0
    errors: int = 0
    last_error: str = ""
    checked_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )


class Store(ABC):
    """Abstract base for Store backends.

    Filters are plain ``{column: value}`` dicts matched by equality.
    Rows are JSON-compatible dicts.
    """

    def __init__(self) -> None:
        self._state = StoreState.READY
        self._requests = 0
        self._errors = 0
        self._last_error = ""

    @property
    @abstractmethod
    def backend(self) -> str:
        """Return the backend identifier (e.g. 'rest', 'memory')."""
        ...

    @abstractmethod
    async def select(
        self,
        collection: Collection,
        filters: dict[str, Any],
        columns: str = "*",
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """Return rows of ``collection`` matching every filter."""
        ...

    @abstractmethod
    async def insert(
        self,
        collection: Collection,
        rows: list[dict[str, Any]],
        returning: bool = False,
        ignore_duplicates: bool = False,
    ) -> list[dict[str, Any]]:
        """Insert rows.

        With ``returning`` the stored rows (including generated ids) are
        returned, otherwise an empty list. With ``ignore_duplicates`` a
        row colliding with a unique key is silently skipped.
        """
        ...

    @abstractmethod
    async def update(
        self,
        collection: Collection,
        filters: dict[str, Any],
        values: dict[str, Any],
    ) -> None:
        """Set ``values`` on every row matching the filters."""
        ...

    @abstractmethod
    async def count(self, collection: Collection, filters: dict[str, Any]) -> int:
        """Exact number of rows matching the filters."""
        ...

    @abstractmethod
    async def increment(
        self,
        collection: Collection,
        key: dict[str, Any],
        field: str,
        amount: int,
    ) -> None:
        """Additive upsert: insert ``key + {field: amount}`` or add to it."""
        ...

    async def close(self) -> None:
        """Release resources. Override when the backend holds any."""
        self._state = StoreState.CLOSED

    def health(self) -> StoreHealth:
        return StoreHealth(
            state=self._state,
            backend=self.backend,
            endpoint=self.endpoint,
            requests=self._requests,
            errors=self._errors,
            last_error=self._last_error,
        )

    @property
    def endpoint(self) -> str:
        return ""

    def _record_request(self) -> None:
        """Track request volume. State reflects the most recent request."""
        self._requests += 1
        if self._state != StoreState.CLOSED:
            self._state = StoreState.READY

    def _record_error(self, msg: str) -> None:
        self._errors += 1
        self._last_error = msg
        self._state = StoreState.DEGRADED
        logger.warning("Store %s error: %s", self.backend, msg)
