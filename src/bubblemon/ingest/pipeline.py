"""Batch processing pipeline.

This module is the conductor of the ingest path. It takes an
authenticated, decoded Batch and drives each occurrence, in array
order, through the full sequence:
group -> track session -> daily stat -> sample -> enhanced context.

Occurrences are independent. A Store failure abandons the remaining
steps of the occurrence it happened in and processing moves on to the
next one; the batch as a whole always completes.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone

from bubblemon.errors import StoreError
from bubblemon.ingest.context import DEFAULT_BREADCRUMB_BATCH_SIZE, archive_context
from bubblemon.ingest.grouper import resolve_group
from bubblemon.ingest.notifier import EnrichmentNotifier
from bubblemon.ingest.sampling import DEFAULT_SAMPLE_RATE, create_sample, should_retain
from bubblemon.ingest.sessions import generate_session_id, track_session
from bubblemon.ingest.stats import record_daily_stat
from bubblemon.models.occurrence import Batch, Occurrence
from bubblemon.models.records import App
from bubblemon.store.base import Store

logger = logging.getLogger("bubblemon.ingest.pipeline")


@dataclass
class BatchReport:
    """Per-batch processing summary, for logs only."""
    received: int = 0
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    groups_created: int = 0
    samples_created: int = 0
    breadcrumbs_written: int = 0


class IngestPipeline:
    """Runs batches against a Store.

    Args:
        store: Persistence backend.
        notifier: Enrichment notifier for newly created groups.
        sample_rate: Retention probability for repeat occurrences.
        breadcrumb_batch_size: Breadcrumb rows per Store write.
        rng: Random source for sampling and generated session ids.
    """

    def __init__(
        self,
        store: Store,
        notifier: EnrichmentNotifier,
        sample_rate: float = DEFAULT_SAMPLE_RATE,
        breadcrumb_batch_size: int = DEFAULT_BREADCRUMB_BATCH_SIZE,
        rng: random.Random | None = None,
    ):
        self.store = store
        self.notifier = notifier
        self.sample_rate = sample_rate
        self.breadcrumb_batch_size = breadcrumb_batch_size
        self.rng = rng or random.Random()

    async def process_batch(
        self, app: App, batch: Batch, now: datetime | None = None
    ) -> BatchReport:
        """Process every occurrence of ``batch`` sequentially.

        One timestamp is used for the whole batch so every row written
        for it shares the same last_seen/created_at and stat date.
        """
        now = now or datetime.now(timezone.utc)
        report = BatchReport(received=batch.received)
        report.skipped = batch.received - batch.size

        for index, occ in enumerate(batch.occurrences):
            if not occ.fingerprint:
                logger.warning("Skipping occurrence %d: no fingerprint", index)
                report.skipped += 1
                continue
            try:
                await self._process_occurrence(app, batch.version, occ, now, report)
            except StoreError as e:
                report.failed += 1
                logger.error(
                    "Occurrence %d (fingerprint %s) abandoned: %s (collection=%s status=%s body=%s)",
                    index, occ.fingerprint, e, e.collection, e.status, e.body,
                )
                continue
            report.processed += 1

        logger.info(
            "Batch for app %s: %d received, %d processed, %d skipped, %d failed, "
            "%d new groups, %d samples",
            app.id, report.received, report.processed, report.skipped,
            report.failed, report.groups_created, report.samples_created,
        )
        return report

    async def _process_occurrence(
        self,
        app: App,
        version: int,
        occ: Occurrence,
        now: datetime,
        report: BatchReport,
    ) -> None:
        enhanced = occ.is_enhanced(version)
        session_id = occ.session_id or generate_session_id(self.rng)

        # Stage 1: group
        resolution = await resolve_group(
            self.store, self.notifier, app.id, occ, now, enhanced
        )
        if resolution.created:
            report.groups_created += 1
        if resolution.group_id is None:
            logger.warning(
                "No group id for fingerprint %s, skipping remaining steps",
                occ.fingerprint,
            )
            return
        group_id = resolution.group_id

        # Stage 2: distinct sessions (never raises)
        await track_session(self.store, group_id, session_id, now)

        # Stage 3: daily trend counter
        try:
            await record_daily_stat(self.store, group_id, now, occ.count)
        except StoreError as e:
            logger.error("Daily stat update failed for group %s: %s", group_id, e)

        # Stage 4: sampling
        if not occ.user_id:
            return
        if not await should_retain(
            self.store, group_id, occ.user_id, self.rng, self.sample_rate
        ):
            return
        sample_id = await create_sample(
            self.store, group_id, occ, session_id, now, enhanced
        )
        if sample_id is None:
            return
        report.samples_created += 1

        # Stage 5: enhanced context
        if enhanced:
            archived = await archive_context(
                self.store, sample_id, occ, self.breadcrumb_batch_size
            )
            report.breadcrumbs_written += archived.breadcrumbs_written
