"""Tests for the in-memory Store backend."""

import pytest

from bubblemon.errors import StoreError
from bubblemon.store.base import Collection, StoreState
from bubblemon.store.memory import MemoryStore


class TestMemoryStore:

    @pytest.mark.asyncio
    async def test_insert_assigns_ids(self, store):
        rows = await store.insert(Collection.GROUPS, [{"fingerprint": "a"}], returning=True)
        assert rows[0]["id"]
        assert await store.insert(Collection.GROUPS, [{"fingerprint": "b"}]) == []
        assert len(store.rows(Collection.GROUPS)) == 2

    @pytest.mark.asyncio
    async def test_select_filters_and_projects(self, store):
        await store.insert(Collection.GROUPS, [
            {"app_id": "a", "fingerprint": "f1", "count": 1},
            {"app_id": "a", "fingerprint": "f2", "count": 2},
        ])
        rows = await store.select(Collection.GROUPS, {"app_id": "a", "fingerprint": "f2"}, columns="id,count")
        assert len(rows) == 1
        assert set(rows[0]) == {"id", "count"}
        assert rows[0]["count"] == 2
        assert len(await store.select(Collection.GROUPS, {"app_id": "a"}, limit=1)) == 1

    @pytest.mark.asyncio
    async def test_unique_key_conflict(self, store):
        row = {"group_id": "g", "session_id": "s"}
        await store.insert(Collection.GROUP_SESSIONS, [row])
        await store.insert(Collection.GROUP_SESSIONS, [row], ignore_duplicates=True)
        assert await store.count(Collection.GROUP_SESSIONS, {"group_id": "g"}) == 1
        with pytest.raises(StoreError) as exc:
            await store.insert(Collection.GROUP_SESSIONS, [row])
        assert exc.value.status == 409

    @pytest.mark.asyncio
    async def test_update(self, store):
        row = store.seed(Collection.GROUPS, {"count": 1})
        await store.update(Collection.GROUPS, {"id": row["id"]}, {"count": 9})
        assert store.rows(Collection.GROUPS)[0]["count"] == 9

    @pytest.mark.asyncio
    async def test_returned_rows_are_copies(self, store):
        rows = await store.insert(Collection.SAMPLES, [{"metadata": {"a": 1}}], returning=True)
        rows[0]["metadata"]["a"] = 2
        assert store.rows(Collection.SAMPLES)[0]["metadata"] == {"a": 1}

    @pytest.mark.asyncio
    async def test_fault_injection_and_health(self):
        store = MemoryStore(fail_on={("update", Collection.GROUPS)})
        with pytest.raises(StoreError):
            await store.update(Collection.GROUPS, {"id": "x"}, {"count": 1})
        health = store.health()
        assert health.backend == "memory"
        assert health.errors == 1
        assert health.state == StoreState.DEGRADED
        await store.close()
        assert store.health().state == StoreState.CLOSED
