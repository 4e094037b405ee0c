"""Distinct-session tracking per group.

A group's affected_user_count is the number of distinct sessions
recorded against it. Sessions are inserted with ignore-duplicates
semantics, then the group is recounted on every occurrence, so the
stored value converges to the distinct count under concurrent writers.
"""

from __future__ import annotations

import logging
import random
import string
import time
from datetime import datetime
from typing import Optional

from bubblemon.errors import StoreError
from bubblemon.models.records import GroupSessionRecord
from bubblemon.store.base import Collection, Store

logger = logging.getLogger("bubblemon.ingest.sessions")

_BASE36 = string.digits + string.ascii_lowercase


def generate_session_id(rng: random.Random | None = None) -> str:
    """Session id for occurrences that arrive without one.

    Format: ``sess_<epoch-ms>_<9 base36 chars>``.
    """
    rng = rng or random.Random()
    suffix = "".join(rng.choices(_BASE36, k=9))
    return f"sess_{int(time.time() * 1000)}_{suffix}"


async def track_session(
    store: Store,
    group_id: str,
    session_id: str,
    now: datetime,
) -> Optional[int]:
    """Record ``session_id`` for the group and refresh its user count.

    Returns the recounted affected_user_count, or None when any Store
    call failed. Failures are logged and swallowed.
    """
    record = GroupSessionRecord(group_id=group_id, session_id=session_id, first_seen=now)
    try:
        await store.insert(
            Collection.GROUP_SESSIONS, [record.to_row()], ignore_duplicates=True
        )
        user_count = await store.count(Collection.GROUP_SESSIONS, {"group_id": group_id})
        await store.update(
            Collection.GROUPS, {"id": group_id}, {"affected_user_count": user_count}
        )
    except StoreError as e:
        logger.error(
            "Session tracking failed for group %s session %s: %s",
            group_id, session_id, e,
        )
        return None

    logger.debug(
        "Session tracking: group_id=%s, session_id=%s, total_users=%d",
        group_id, session_id, user_count,
    )
    return user_count
