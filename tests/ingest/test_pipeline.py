"""End-to-end tests for batch processing against the in-memory store."""

import random
from datetime import datetime, timezone

import pytest

from bubblemon.errors import StoreError
from bubblemon.ingest.pipeline import IngestPipeline
from bubblemon.models.occurrence import Batch, Occurrence
from bubblemon.store.base import Collection
from bubblemon.store.memory import MemoryStore
from conftest import FixedRandom, RecordingNotifier

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _batch(occurrences: list[dict], version: int = 1) -> Batch:
    occs = [Occurrence.model_validate(o) for o in occurrences]
    return Batch(version=version, occurrences=occs, received=len(occs))


def _pipeline(store, notifier, draw: float = 0.99) -> IngestPipeline:
    return IngestPipeline(store, notifier, rng=FixedRandom(draw))


class TestProcessBatch:
    """Verify the full per-occurrence sequence."""

    @pytest.mark.asyncio
    async def test_enhanced_example(self, store, notifier, app_record):
        batch = _batch([{
            "fp": "f1", "code": "E1", "msg": "boom", "level": "error",
            "user_id": "u1", "enhanced_version": 2,
            "performance_info": {"lcp": 1200},
            "breadcrumbs": [{"type": "click", "timestamp": 100}],
        }], version=2)
        report = await _pipeline(store, notifier).process_batch(app_record, batch, NOW)

        groups = store.rows(Collection.GROUPS)
        assert len(groups) == 1
        assert groups[0]["fingerprint"] == "f1"
        assert groups[0]["count"] == 1
        assert groups[0]["affected_user_count"] == 1
        assert len(store.rows(Collection.GROUP_SESSIONS)) == 1
        stats = store.rows(Collection.DAILY_STATS)
        assert [(s["date"], s["count"]) for s in stats] == [("2026-03-01", 1)]
        samples = store.rows(Collection.SAMPLES)
        assert len(samples) == 1
        assert samples[0]["is_enhanced"] is True
        assert samples[0]["metadata"]["session_id"].startswith("sess_")
        assert len(store.rows(Collection.ERROR_CONTEXTS)) == 1
        assert len(store.rows(Collection.BREADCRUMBS)) == 1
        assert notifier.calls == [(groups[0]["id"], True)]
        assert report.processed == 1
        assert report.groups_created == 1
        assert report.samples_created == 1
        assert report.breadcrumbs_written == 1

    @pytest.mark.asyncio
    async def test_no_context_for_version_one_envelope(self, store, notifier, app_record):
        batch = _batch([{
            "fp": "f1", "user_id": "u1", "enhanced_version": 2,
            "browser_state": {"url": "/"}, "breadcrumbs": [{"type": "click"}],
        }], version=1)
        await _pipeline(store, notifier).process_batch(app_record, batch, NOW)
        assert store.rows(Collection.SAMPLES)[0]["is_enhanced"] is False
        assert store.rows(Collection.ERROR_CONTEXTS) == []
        assert store.rows(Collection.BREADCRUMBS) == []
        assert notifier.calls[0][1] is False

    @pytest.mark.asyncio
    async def test_repeated_fingerprint(self, store, notifier, app_record):
        batch = _batch([
            {"fp": "f1", "count": 2, "session_id": "s1", "user_id": "u1"},
            {"fp": "f1", "count": 3, "session_id": "s2", "user_id": "u1"},
            {"fp": "f1", "count": 1, "session_id": "s1", "user_id": "u2"},
        ])
        await _pipeline(store, notifier, draw=0.99).process_batch(app_record, batch, NOW)

        group = store.rows(Collection.GROUPS)
        assert len(group) == 1
        assert group[0]["count"] == 6
        assert group[0]["affected_user_count"] == 2
        assert store.rows(Collection.DAILY_STATS)[0]["count"] == 6
        # u1 first occurrence kept, u1 repeat dropped by the draw, u2 first kept
        assert sorted(s["user_id"] for s in store.rows(Collection.SAMPLES)) == ["u1", "u2"]
        assert len(notifier.calls) == 1

    @pytest.mark.asyncio
    async def test_zero_count_adds_nothing(self, store, notifier, app_record):
        """Group and daily totals equal the sum of the counts sent."""
        batch = _batch([{"fp": "f1", "count": 3}, {"fp": "f1", "count": 0}])
        await _pipeline(store, notifier).process_batch(app_record, batch, NOW)

        assert store.rows(Collection.GROUPS)[0]["count"] == 3
        assert store.rows(Collection.DAILY_STATS)[0]["count"] == 3

    @pytest.mark.asyncio
    async def test_repeat_kept_when_draw_succeeds(self, store, notifier, app_record):
        batch = _batch([
            {"fp": "f1", "session_id": "s1", "user_id": "u1"},
            {"fp": "f1", "session_id": "s1", "user_id": "u1"},
        ])
        await _pipeline(store, notifier, draw=0.0).process_batch(app_record, batch, NOW)
        assert len(store.rows(Collection.SAMPLES)) == 2

    @pytest.mark.asyncio
    async def test_no_sample_without_user(self, store, notifier, app_record):
        await _pipeline(store, notifier).process_batch(app_record, _batch([{"fp": "f1"}]), NOW)
        assert store.rows(Collection.SAMPLES) == []
        assert len(store.rows(Collection.GROUP_SESSIONS)) == 1

    @pytest.mark.asyncio
    async def test_missing_fingerprint_skipped(self, store, notifier, app_record):
        report = await _pipeline(store, notifier).process_batch(
            app_record, _batch([{"code": "E1"}, {"fp": "f2"}]), NOW
        )
        assert report.skipped == 1
        assert report.processed == 1
        assert [g["fingerprint"] for g in store.rows(Collection.GROUPS)] == ["f2"]

    @pytest.mark.asyncio
    async def test_group_failure_abandons_only_that_occurrence(self, notifier, app_record):
        class FailOnce(MemoryStore):
            async def select(self, collection, filters, columns="*", limit=None):
                if collection == Collection.GROUPS and filters.get("fingerprint") == "bad":
                    raise StoreError("lookup failed", collection=collection.value, status=500)
                return await super().select(collection, filters, columns, limit)

        store = FailOnce()
        report = await _pipeline(store, notifier).process_batch(
            app_record, _batch([{"fp": "bad", "user_id": "u"}, {"fp": "good", "user_id": "u"}]), NOW
        )
        assert report.failed == 1
        assert report.processed == 1
        assert [g["fingerprint"] for g in store.rows(Collection.GROUPS)] == ["good"]
        assert len(store.rows(Collection.SAMPLES)) == 1

    @pytest.mark.asyncio
    async def test_session_and_stat_failures_do_not_stop_sampling(self, notifier, app_record):
        store = MemoryStore(fail_on={
            ("insert", Collection.GROUP_SESSIONS),
            ("increment", Collection.DAILY_STATS),
        })
        report = await _pipeline(store, notifier).process_batch(
            app_record, _batch([{"fp": "f1", "user_id": "u1"}]), NOW
        )
        assert report.processed == 1
        assert store.rows(Collection.GROUPS)[0]["count"] == 1
        assert len(store.rows(Collection.SAMPLES)) == 1

    @pytest.mark.asyncio
    async def test_sample_failure_skips_context(self, notifier, app_record):
        store = MemoryStore(fail_on={("insert", Collection.SAMPLES)})
        batch = _batch([
            {"fp": "f1", "user_id": "u1", "enhanced_version": 2, "breadcrumbs": [{"type": "x"}]},
            {"fp": "f2"},
        ], version=2)
        report = await _pipeline(store, notifier).process_batch(app_record, batch, NOW)
        assert store.rows(Collection.BREADCRUMBS) == []
        assert report.samples_created == 0
        assert len(store.rows(Collection.GROUPS)) == 2

    @pytest.mark.asyncio
    async def test_generated_sessions_are_distinct(self, app_record):
        store = MemoryStore()
        pipeline = IngestPipeline(store, RecordingNotifier(), rng=random.Random(3))
        await pipeline.process_batch(app_record, _batch([{"fp": "f1"}, {"fp": "f1"}]), NOW)
        assert store.rows(Collection.GROUPS)[0]["affected_user_count"] == 2
