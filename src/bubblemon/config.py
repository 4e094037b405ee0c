"""Bubble Monitor configuration via environment variables.

Settings are read once at process start and handed to each component
explicitly. Nothing below the application entrypoint reads the
environment on its own.
"""

import os
import logging

logger = logging.getLogger("bubblemon.config")

STORE_BACKENDS = ("rest", "memory")


class Settings:
    """All configuration sourced from environment."""

    def __init__(self, environ: dict[str, str] | None = None):
        env = os.environ if environ is None else environ

        # Core
        self.version = "0.1.0"
        self.log_level = env.get("BUBBLEMON_LOG_LEVEL", "info")
        self.api_port = int(env.get("BUBBLEMON_API_PORT", "8000"))

        # Store
        self.store_backend = env.get("BUBBLEMON_STORE_BACKEND", "rest").lower()
        if self.store_backend not in STORE_BACKENDS:
            logger.warning(
                "Unknown store backend '%s', falling back to 'rest'",
                self.store_backend,
            )
            self.store_backend = "rest"
        self.store_url = env.get("BUBBLEMON_STORE_URL", "").rstrip("/")
        self.store_service_key = env.get("BUBBLEMON_STORE_SERVICE_KEY", "")
        self.store_timeout = float(env.get("BUBBLEMON_STORE_TIMEOUT", "30"))

        # Enrichment webhook
        self.enrich_webhook_url = env.get("BUBBLEMON_ENRICH_WEBHOOK_URL", "")
        self.enrich_webhook_key = env.get("BUBBLEMON_ENRICH_WEBHOOK_KEY", "")

        # Ingest limits and sampling
        self.max_batch_size = int(env.get("BUBBLEMON_MAX_BATCH_SIZE", "50"))
        self.sample_rate = float(env.get("BUBBLEMON_SAMPLE_RATE", "0.1"))
        self.breadcrumb_batch_size = int(
            env.get("BUBBLEMON_BREADCRUMB_BATCH_SIZE", "10")
        )

        if not 0.0 <= self.sample_rate <= 1.0:
            raise ValueError(
                f"BUBBLEMON_SAMPLE_RATE must be within [0, 1], got {self.sample_rate}"
            )
        if self.max_batch_size < 1 or self.breadcrumb_batch_size < 1:
            raise ValueError("Batch sizes must be positive")
