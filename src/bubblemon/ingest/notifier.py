"""Enrichment webhook notifier.

When a new error group appears, the downstream enrichment worker is
told about it once. The call is detached from the request: ``notify``
schedules a background task and returns immediately. Failures are
logged and never reach the caller.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from bubblemon.errors import NotificationError

logger = logging.getLogger("bubblemon.ingest.notifier")

KEY_HEADER = "X-N8N-Key"


class EnrichmentNotifier:
    """Fire-and-forget POST of ``{group_id, enhanced}`` to a webhook.

    Pending tasks are held in a set so they are not garbage-collected
    mid-flight; ``drain`` waits for them on shutdown.
    """

    def __init__(
        self,
        url: str,
        key: str = "",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self._client = httpx.AsyncClient(
            headers={"Content-Type": "application/json", KEY_HEADER: key},
            timeout=timeout,
            transport=transport,
        )
        self._pending: set[asyncio.Task] = set()
        self.sent = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        return len(self._pending)

    def notify(self, group_id: Any, enhanced: bool) -> None:
        """Schedule the notification and return without waiting."""
        if not self.url:
            logger.warning(
                "No enrichment webhook configured, skipping group %s", group_id
            )
            return
        task = asyncio.get_running_loop().create_task(
            self._deliver(group_id, enhanced)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, group_id: Any, enhanced: bool) -> None:
        try:
            await self._post(group_id, enhanced)
        except NotificationError as e:
            self.failed += 1
            logger.error("Enrichment trigger failed for group %s: %s", group_id, e)

    async def _post(self, group_id: Any, enhanced: bool) -> None:
        try:
            resp = await self._client.post(
                self.url, json={"group_id": group_id, "enhanced": enhanced}
            )
        except httpx.HTTPError as e:
            raise NotificationError(str(e)) from e
        if resp.is_error:
            raise NotificationError(f"HTTP {resp.status_code}: {resp.text}")
        self.sent += 1
        logger.info(
            "Enrichment webhook status for group %s: %d %s",
            group_id, resp.status_code, resp.text,
        )

    async def drain(self) -> None:
        """Wait for every in-flight notification to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        await self._client.aclose()
