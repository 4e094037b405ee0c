"""Sample retention policy.

Full-detail samples are kept for occurrences that name a user:

- the first occurrence of a user within a group is always kept, so
  every affected user has at least one sample;
- later occurrences are kept with probability ``rate`` (one uniform
  draw per occurrence), which bounds storage for noisy repeats.
"""

from __future__ import annotations

import json
import logging
import random
from datetime import datetime
from typing import Optional

from bubblemon.errors import StoreError
from bubblemon.models.occurrence import Occurrence
from bubblemon.models.records import SampleRecord
from bubblemon.store.base import Collection, Store

logger = logging.getLogger("bubblemon.ingest.sampling")

DEFAULT_SAMPLE_RATE = 0.1


async def should_retain(
    store: Store,
    group_id: str,
    user_id: str,
    rng: random.Random,
    rate: float = DEFAULT_SAMPLE_RATE,
) -> bool:
    """Decide whether this occurrence gets a full sample.

    The random draw happens only when the user already has a sample in
    this group. Raises StoreError if the lookup fails.
    """
    already = await store.select(
        Collection.SAMPLES,
        {"group_id": group_id, "user_id": user_id},
        columns="id",
        limit=1,
    )
    if not already:
        return True
    return rng.random() < rate


async def create_sample(
    store: Store,
    group_id: str,
    occ: Occurrence,
    session_id: str,
    now: datetime,
    enhanced: bool,
) -> Optional[str]:
    """Persist a sample and return its id.

    The effective session id is folded into ``metadata``; the samples
    table has no session column. Returns None, after logging the
    attempted row, when the insert fails or comes back without an id.
    """
    record = SampleRecord.from_occurrence(group_id, occ, session_id, now, enhanced)
    row = record.to_row()
    try:
        inserted = await store.insert(Collection.SAMPLES, [row], returning=True)
    except StoreError as e:
        logger.error(
            "Sample insert failed (status=%s body=%s): %s; sample data attempted: %s",
            e.status, e.body, e, json.dumps(row, default=str),
        )
        return None

    sample_id = inserted[0].get("id") if inserted else None
    if sample_id is None:
        logger.error("Sample insert succeeded but no id returned: %s", inserted)
        return None

    logger.info("Sample created: %s for group: %s", sample_id, group_id)
    return str(sample_id)
