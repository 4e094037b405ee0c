"""Enhanced diagnostic context archiving.

Enhanced occurrences (SDK schema v2+) carry browser, memory, network
and performance snapshots plus a breadcrumb trail. For a retained
sample these are stored alongside it: one context row when any snapshot
is present, and breadcrumb rows in fixed-size batches to bound request
size. Batches are independent; a failed batch is logged and does not
undo the batches already written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from bubblemon.errors import StoreError
from bubblemon.models.occurrence import Occurrence
from bubblemon.models.records import BreadcrumbRecord, ErrorContextRecord
from bubblemon.store.base import Collection, Store

logger = logging.getLogger("bubblemon.ingest.context")

DEFAULT_BREADCRUMB_BATCH_SIZE = 10


@dataclass
class ArchiveResult:
    """What was stored for one sample."""
    context_written: bool = False
    breadcrumbs_written: int = 0
    failed_batches: int = 0


async def archive_context(
    store: Store,
    sample_id: str,
    occ: Occurrence,
    batch_size: int = DEFAULT_BREADCRUMB_BATCH_SIZE,
) -> ArchiveResult:
    """Store the diagnostic context and breadcrumbs of ``occ``."""
    result = ArchiveResult()

    if occ.has_diagnostics():
        record = ErrorContextRecord.from_occurrence(sample_id, occ)
        try:
            await store.insert(Collection.ERROR_CONTEXTS, [record.to_row()])
            result.context_written = True
        except StoreError as e:
            logger.error("Error context insert failed for sample %s: %s", sample_id, e)

    rows = [
        BreadcrumbRecord.from_breadcrumb(sample_id, crumb).to_row()
        for crumb in occ.breadcrumbs
    ]
    for start in range(0, len(rows), batch_size):
        batch = rows[start:start + batch_size]
        try:
            await store.insert(Collection.BREADCRUMBS, batch)
            result.breadcrumbs_written += len(batch)
        except StoreError as e:
            result.failed_batches += 1
            logger.error(
                "Breadcrumb batch %d-%d failed for sample %s: %s",
                start, start + len(batch) - 1, sample_id, e,
            )

    logger.info(
        "Enhanced error processed: %d/%d breadcrumbs, sample_id: %s",
        result.breadcrumbs_written, len(rows), sample_id,
    )
    return result
