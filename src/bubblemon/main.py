"""Bubble Monitor application entrypoint."""

from __future__ import annotations

import logging
import random
from contextlib import asynccontextmanager

from fastapi import FastAPI, Header, Request
from fastapi.responses import PlainTextResponse, Response

from bubblemon.config import Settings
from bubblemon.errors import AuthError, StoreError, ValidationError
from bubblemon.ingest.auth import authenticate
from bubblemon.ingest.decoder import decode_batch
from bubblemon.ingest.notifier import EnrichmentNotifier
from bubblemon.ingest.pipeline import IngestPipeline
from bubblemon.store.base import Store
from bubblemon.store.memory import MemoryStore
from bubblemon.store.rest import RestStore
from bubblemon.utils.logging import configure_logging

logger = logging.getLogger("bubblemon")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, X-BM-Key, X-BM-Signature, X-N8N-Key",
}


def build_store(settings: Settings) -> Store:
    """Instantiate the configured Store backend."""
    if settings.store_backend == "memory":
        logger.warning("Using in-memory store: data is lost on restart")
        return MemoryStore()
    if not settings.store_url:
        logger.warning("BUBBLEMON_STORE_URL is not set, store calls will fail")
    return RestStore(
        settings.store_url,
        settings.store_service_key,
        timeout=settings.store_timeout,
    )


def create_app(
    settings: Settings,
    store: Store | None = None,
    notifier: EnrichmentNotifier | None = None,
    rng: random.Random | None = None,
) -> FastAPI:
    """Wire components from ``settings`` into a FastAPI application."""
    store = store or build_store(settings)
    notifier = notifier or EnrichmentNotifier(
        settings.enrich_webhook_url,
        settings.enrich_webhook_key,
    )
    pipeline = IngestPipeline(
        store,
        notifier,
        sample_rate=settings.sample_rate,
        breadcrumb_batch_size=settings.breadcrumb_batch_size,
        rng=rng,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Bubble Monitor v%s starting", settings.version)
        logger.info("Log level: %s", settings.log_level)
        logger.info("Store: %s %s", store.backend, store.endpoint)
        logger.info(
            "Enrichment webhook: %s", settings.enrich_webhook_url or "disabled"
        )
        yield
        await notifier.close()
        await store.close()
        logger.info("Bubble Monitor stopped")

    app = FastAPI(
        title="Bubble Monitor",
        description="Error event ingestion with fingerprint grouping and sampling",
        version=settings.version,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.notifier = notifier
    app.state.pipeline = pipeline

    @app.exception_handler(AuthError)
    async def auth_error(request: Request, exc: AuthError):
        return PlainTextResponse("Unauthorized", status_code=401, headers=CORS_HEADERS)

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        logger.warning("Rejected batch: %s", exc)
        return PlainTextResponse("Invalid payload", status_code=400, headers=CORS_HEADERS)

    @app.exception_handler(StoreError)
    async def store_error(request: Request, exc: StoreError):
        logger.error("Store unavailable during authentication: %s", exc)
        return PlainTextResponse("Store unavailable", status_code=503, headers=CORS_HEADERS)

    @app.options("/")
    async def preflight():
        return Response(status_code=204, headers=CORS_HEADERS)

    @app.post("/")
    async def ingest(
        request: Request,
        x_bm_key: str | None = Header(None, alias="X-BM-Key"),
        x_bm_signature: str | None = Header(None, alias="X-BM-Signature"),
    ):
        raw_body = await request.body()
        app_record = await authenticate(store, x_bm_key, x_bm_signature, raw_body)
        batch = decode_batch(raw_body, settings.max_batch_size)
        await pipeline.process_batch(app_record, batch)
        return PlainTextResponse("OK", status_code=200, headers=CORS_HEADERS)

    @app.get("/health")
    async def health():
        store_health = store.health()
        return {
            "status": "ok",
            "version": settings.version,
            "store": {
                "backend": store_health.backend,
                "state": store_health.state.value,
                "requests": store_health.requests,
                "errors": store_health.errors,
            },
            "notifications_pending": notifier.pending,
        }

    return app


def run() -> None:
    """Console entrypoint: serve the app with uvicorn."""
    import uvicorn

    settings = Settings()
    configure_logging(settings.log_level)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.api_port)


if __name__ == "__main__":
    run()
