"""Per-day occurrence counters for trend charts."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from bubblemon.store.base import Collection, Store

logger = logging.getLogger("bubblemon.ingest.stats")


def stat_date(now: datetime) -> str:
    """UTC calendar date (YYYY-MM-DD) of a processing timestamp."""
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.date().isoformat()


async def record_daily_stat(
    store: Store, group_id: str, now: datetime, count: int
) -> None:
    """Add ``count`` to the group's counter for the UTC day of ``now``.

    Additive upsert on (group_id, date); raises StoreError on failure.
    """
    day = stat_date(now)
    await store.increment(
        Collection.DAILY_STATS,
        {"group_id": group_id, "date": day},
        "count",
        count,
    )
    logger.debug("Daily stat group_id=%s date=%s +%d", group_id, day, count)
