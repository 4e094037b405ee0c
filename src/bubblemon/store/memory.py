"""In-process Store backend.

Keeps every collection as a list of dicts. Used for local development
(BUBBLEMON_STORE_BACKEND=memory) and throughout the test suite. Unique
keys mirror the database constraints the pipeline relies on: one row
per (group_id, session_id) and per (group_id, date).

Faults can be injected per (operation, collection) to exercise the
pipeline's failure handling.
"""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Any, Optional

from bubblemon.errors import StoreError
from bubblemon.store.base import Collection, Store

logger = logging.getLogger("bubblemon.store.memory")

UNIQUE_KEYS: dict[Collection, tuple[str, ...]] = {
    Collection.APPS: ("public_key",),
    Collection.GROUP_SESSIONS: ("group_id", "session_id"),
    Collection.DAILY_STATS: ("group_id", "date"),
}


def _matches(row: dict[str, Any], filters: dict[str, Any]) -> bool:
    return all(str(row.get(col)) == str(value) for col, value in filters.items())


def _project(row: dict[str, Any], columns: str) -> dict[str, Any]:
    if columns.strip() == "*":
        return copy.deepcopy(row)
    wanted = [c.strip() for c in columns.split(",") if c.strip()]
    return {c: copy.deepcopy(row.get(c)) for c in wanted}


class MemoryStore(Store):
    """Dict-backed Store.

    ``fail_on`` holds (operation, collection) pairs that raise
    StoreError instead of running, e.g. ``("insert", Collection.SAMPLES)``.
    """

    def __init__(self, fail_on: set[tuple[str, Collection]] | None = None):
        super().__init__()
        self.tables: dict[Collection, list[dict[str, Any]]] = {
            c: [] for c in Collection
        }
        self.fail_on: set[tuple[str, Collection]] = set(fail_on or ())

    @property
    def backend(self) -> str:
        return "memory"

    def rows(self, collection: Collection) -> list[dict[str, Any]]:
        """Direct read access for inspection."""
        return self.tables[collection]

    def seed(self, collection: Collection, row: dict[str, Any]) -> dict[str, Any]:
        """Insert a row bypassing fault injection and return it."""
        stored = {"id": str(uuid.uuid4()), **row}
        self.tables[collection].append(stored)
        return stored

    async def select(
        self,
        collection: Collection,
        filters: dict[str, Any],
        columns: str = "*",
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        self._check("select", collection)
        found = [
            _project(row, columns)
            for row in self.tables[collection]
            if _matches(row, filters)
        ]
        return found[:limit] if limit is not None else found

    async def insert(
        self,
        collection: Collection,
        rows: list[dict[str, Any]],
        returning: bool = False,
        ignore_duplicates: bool = False,
    ) -> list[dict[str, Any]]:
        self._check("insert", collection)
        stored: list[dict[str, Any]] = []
        for row in rows:
            if self._find_duplicate(collection, row) is not None:
                if ignore_duplicates:
                    continue
                self._record_error(f"duplicate key in {collection.value}")
                raise StoreError(
                    f"duplicate key violates unique constraint on {collection.value}",
                    collection=collection.value,
                    status=409,
                    body=row,
                )
            new_row = {"id": str(uuid.uuid4()), **copy.deepcopy(row)}
            self.tables[collection].append(new_row)
            stored.append(copy.deepcopy(new_row))
        return stored if returning else []

    async def update(
        self,
        collection: Collection,
        filters: dict[str, Any],
        values: dict[str, Any],
    ) -> None:
        self._check("update", collection)
        for row in self.tables[collection]:
            if _matches(row, filters):
                row.update(copy.deepcopy(values))

    async def count(self, collection: Collection, filters: dict[str, Any]) -> int:
        self._check("count", collection)
        return sum(1 for row in self.tables[collection] if _matches(row, filters))

    async def increment(
        self,
        collection: Collection,
        key: dict[str, Any],
        field: str,
        amount: int,
    ) -> None:
        self._check("increment", collection)
        for row in self.tables[collection]:
            if _matches(row, key):
                row[field] = row.get(field, 0) + amount
                return
        self.tables[collection].append(
            {"id": str(uuid.uuid4()), **key, field: amount}
        )

    def _find_duplicate(
        self, collection: Collection, row: dict[str, Any]
    ) -> Optional[dict[str, Any]]:
        unique = UNIQUE_KEYS.get(collection)
        if not unique:
            return None
        key = {col: row.get(col) for col in unique}
        for existing in self.tables[collection]:
            if _matches(existing, key):
                return existing
        return None

    def _check(self, operation: str, collection: Collection) -> None:
        self._record_request()
        if (operation, collection) in self.fail_on:
            self._record_error(f"injected {operation} failure on {collection.value}")
            raise StoreError(
                f"{operation} on {collection.value} failed",
                collection=collection.value,
                status=503,
            )
