"""Pytest configuration for the Bubble Monitor test suite."""

import os
import random
from typing import Any

import pytest

# Ensure test environment variables are set before any imports
os.environ.setdefault("BUBBLEMON_LOG_LEVEL", "warning")
os.environ.setdefault("BUBBLEMON_STORE_BACKEND", "memory")

from bubblemon.ingest.auth import sign  # noqa: E402
from bubblemon.models.records import App  # noqa: E402
from bubblemon.store.base import Collection  # noqa: E402
from bubblemon.store.memory import MemoryStore  # noqa: E402

APP_KEY = "pk_test_123"
APP_SECRET = "s3cret"


class RecordingNotifier:
    """Stands in for EnrichmentNotifier and records every trigger."""

    def __init__(self):
        self.calls: list[tuple[Any, bool]] = []
        self.pending = 0

    def notify(self, group_id: Any, enhanced: bool) -> None:
        self.calls.append((group_id, enhanced))

    async def close(self) -> None:
        pass


class FixedRandom(random.Random):
    """Random source whose draws always return ``value``."""

    def __init__(self, value: float):
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def app_record(store: MemoryStore) -> App:
    row = store.seed(
        Collection.APPS, {"public_key": APP_KEY, "secret": APP_SECRET}
    )
    return App.model_validate(row)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def signer():
    return lambda body: sign(APP_SECRET, body)
