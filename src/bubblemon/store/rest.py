"""PostgREST Store backend.

Talks to a PostgREST-compatible API (``{base}/rest/v1/{table}``) with a
service key. Filters map to ``column=eq.value`` query parameters; write
behaviour is selected through ``Prefer`` headers:

    return=representation      insert returns the stored rows
    resolution=ignore-duplicates  unique-key collisions are skipped
    count=exact                total row count in Content-Range

Additive upserts go through an RPC function ``increment_{table}`` that
receives the key columns plus ``amount``; PostgREST's own upsert can
only replace values, not add to them. The daily-stat function must
exist in the database before the service starts:

    create or replace function public.increment_monitor_log_group_stats(
        group_id uuid,
        date date,
        amount integer
    ) returns void
    language sql
    as $$
        insert into public.monitor_log_group_stats (group_id, date, count)
        values ($1, $2, $3)
        on conflict (group_id, date)
        do update set count = monitor_log_group_stats.count + excluded.count;
    $$;

    grant execute on function public.increment_monitor_log_group_stats(uuid, date, integer)
        to service_role;

Call ``notify pgrst, 'reload schema'`` afterwards so PostgREST picks it up.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from bubblemon.errors import DecodeError, StoreError
from bubblemon.store.base import Collection, Store, StoreState

logger = logging.getLogger("bubblemon.store.rest")

TABLES: dict[Collection, str] = {
    Collection.APPS: "apps",
    Collection.GROUPS: "monitor_log_groups",
    Collection.GROUP_SESSIONS: "monitor_group_sessions",
    Collection.DAILY_STATS: "monitor_log_group_stats",
    Collection.SAMPLES: "monitor_log_samples",
    Collection.ERROR_CONTEXTS: "monitor_error_context",
    Collection.BREADCRUMBS: "monitor_error_breadcrumbs",
}


def _eq_params(filters: dict[str, Any]) -> dict[str, str]:
    return {col: f"eq.{value}" for col, value in filters.items()}


def parse_content_range(header: Optional[str]) -> int:
    """Extract the total from a Content-Range header ('0-24/573', '*/0')."""
    if not header or "/" not in header:
        return 0
    total = header.rsplit("/", 1)[1]
    try:
        return int(total)
    except ValueError:
        return 0


class RestStore(Store):
    """Store backend over a PostgREST HTTP API.

    Args:
        base_url: Project URL, e.g. https://abc.supabase.co
        service_key: Service role key sent as ``apikey`` and bearer token.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests use MockTransport).
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__()
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=f"{self._base_url}/rest/v1",
            headers={
                "apikey": service_key,
                "Authorization": f"Bearer {service_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @property
    def backend(self) -> str:
        return "rest"

    @property
    def endpoint(self) -> str:
        return self._base_url

    async def select(
        self,
        collection: Collection,
        filters: dict[str, Any],
        columns: str = "*",
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        params = {"select": columns, **_eq_params(filters)}
        if limit is not None:
            params["limit"] = str(limit)
        resp = await self._request("GET", collection, params=params)
        return self._json_rows(collection, resp)

    async def insert(
        self,
        collection: Collection,
        rows: list[dict[str, Any]],
        returning: bool = False,
        ignore_duplicates: bool = False,
    ) -> list[dict[str, Any]]:
        prefer = ["return=representation" if returning else "return=minimal"]
        if ignore_duplicates:
            prefer.append("resolution=ignore-duplicates")
        resp = await self._request(
            "POST", collection, json=rows, headers={"Prefer": ",".join(prefer)}
        )
        if not returning:
            return []
        return self._json_rows(collection, resp)

    async def update(
        self,
        collection: Collection,
        filters: dict[str, Any],
        values: dict[str, Any],
    ) -> None:
        await self._request(
            "PATCH", collection, params=_eq_params(filters), json=values
        )

    async def count(self, collection: Collection, filters: dict[str, Any]) -> int:
        resp = await self._request(
            "HEAD",
            collection,
            params={"select": "*", **_eq_params(filters)},
            headers={"Prefer": "count=exact"},
        )
        return parse_content_range(resp.headers.get("content-range"))

    async def increment(
        self,
        collection: Collection,
        key: dict[str, Any],
        field: str,
        amount: int,
    ) -> None:
        path = f"/rpc/increment_{TABLES[collection]}"
        await self._send("POST", path, collection, json={**key, "amount": amount})

    async def close(self) -> None:
        await self._client.aclose()
        self._state = StoreState.CLOSED
        logger.info("REST store [%s] closed", self._base_url)

    async def _request(
        self, method: str, collection: Collection, **kwargs: Any
    ) -> httpx.Response:
        return await self._send(method, f"/{TABLES[collection]}", collection, **kwargs)

    async def _send(
        self, method: str, path: str, collection: Collection, **kwargs: Any
    ) -> httpx.Response:
        self._record_request()
        try:
            resp = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            self._record_error(f"{method} {path} failed: {e}")
            raise StoreError(
                f"{method} {path} failed: {e}", collection=collection.value
            ) from e

        if resp.is_error:
            self._record_error(f"{method} {path} -> HTTP {resp.status_code}")
            raise StoreError(
                f"{method} {path} returned HTTP {resp.status_code}",
                collection=collection.value,
                status=resp.status_code,
                body=resp.text,
            )
        return resp

    def _json_rows(
        self, collection: Collection, resp: httpx.Response
    ) -> list[dict[str, Any]]:
        try:
            data = resp.json()
        except ValueError as e:
            self._record_error(f"Non-JSON response from {collection.value}")
            raise DecodeError(
                f"Non-JSON response from {collection.value}",
                collection=collection.value,
                status=resp.status_code,
                body=resp.text,
            ) from e
        if isinstance(data, dict):
            return [data]
        if not isinstance(data, list):
            raise DecodeError(
                f"Unexpected response shape from {collection.value}",
                collection=collection.value,
                status=resp.status_code,
                body=resp.text,
            )
        return data
