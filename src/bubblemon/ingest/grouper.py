"""Fingerprint grouping.

Each occurrence belongs to exactly one group per (app, fingerprint).
The group is looked up first and created only when missing. This is a
read-then-write sequence, not an atomic upsert: two batches racing on
the same brand-new fingerprint can both insert, producing duplicate
groups. That race is tolerated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from bubblemon.ingest.notifier import EnrichmentNotifier
from bubblemon.models.occurrence import Occurrence
from bubblemon.models.records import GroupRecord
from bubblemon.store.base import Collection, Store

logger = logging.getLogger("bubblemon.ingest.grouper")


@dataclass
class GroupResolution:
    """Outcome of resolving an occurrence to its group."""
    group_id: Optional[str]
    created: bool


async def resolve_group(
    store: Store,
    notifier: EnrichmentNotifier,
    app_id: str,
    occ: Occurrence,
    now: datetime,
    enhanced: bool,
) -> GroupResolution:
    """Find-or-create the group for ``occ`` and bump its counters.

    An existing group gets ``count += occ.count`` and ``last_seen = now``.
    A new group starts at ``occ.count`` with no affected users, and the
    enrichment notifier fires once for it.

    ``group_id`` is None only when the insert succeeded without
    returning an id; the caller skips the rest of the occurrence.

    Raises:
        StoreError: the lookup, update or insert failed.
    """
    existing = await store.select(
        Collection.GROUPS,
        {"app_id": app_id, "fingerprint": occ.fingerprint},
        columns="id,count",
        limit=1,
    )

    if existing:
        current = existing[0]
        group_id = str(current["id"])
        await store.update(
            Collection.GROUPS,
            {"id": group_id},
            {
                "count": int(current.get("count") or 0) + occ.count,
                "last_seen": now.isoformat(),
            },
        )
        return GroupResolution(group_id=group_id, created=False)

    record = GroupRecord.from_occurrence(app_id, occ, now)
    inserted = await store.insert(Collection.GROUPS, [record.to_row()], returning=True)
    new_id = inserted[0].get("id") if inserted else None

    if new_id is None:
        logger.warning(
            "Group insert for fingerprint %s returned no id, skipping enrichment trigger",
            occ.fingerprint,
        )
        return GroupResolution(group_id=None, created=True)

    group_id = str(new_id)
    logger.info("New group %s for fingerprint %s", group_id, occ.fingerprint)
    notifier.notify(new_id, enhanced)
    return GroupResolution(group_id=group_id, created=True)
