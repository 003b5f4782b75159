"""
VaultFlow Test Suite — Shared fixtures and configuration.

Run:  pytest tests/ -v
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from vaultflow.catalog.catalog import Catalog
from vaultflow.catalog.store import InMemoryMetadataStore
from vaultflow.documents.intents import IntentLog
from vaultflow.documents.service import MutationCoordinator
from vaultflow.documents.versioning import VersioningService
from vaultflow.engine.config import QuotaConfig, VaultConfig
from vaultflow.storage.base import UploadSource
from vaultflow.storage.memory import InMemoryBlobStore

ACCOUNT = "uid_test"


# ---------------------------------------------------------------------------
# Global singletons
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolate_config():
    """Reset the config and log-queue singletons between tests."""
    import vaultflow.engine.config as cfg_mod
    import vaultflow.engine.logging as log_mod

    cfg_mod._config = VaultConfig()
    log_mod._global_queue = None
    yield
    if log_mod._global_queue is not None:
        log_mod._global_queue.stop(timeout=1.0)
        log_mod._global_queue = None
    cfg_mod._config = None


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

class StepClock:
    """Deterministic clock: every call advances one second."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, tzinfo=timezone.utc)):
        self._now = start

    def __call__(self) -> datetime:
        self._now = self._now + timedelta(seconds=1)
        return self._now


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return StepClock()


# ---------------------------------------------------------------------------
# Stores and services
# ---------------------------------------------------------------------------

@pytest.fixture
def store():
    return InMemoryMetadataStore()


@pytest.fixture
def blobs():
    return InMemoryBlobStore(chunk_size=4)


@pytest.fixture
def catalog(store):
    return Catalog(store, ACCOUNT)


@pytest.fixture
def intents():
    return IntentLog()


@pytest.fixture
def coordinator(catalog, blobs, intents, clock):
    return MutationCoordinator(catalog, blobs, intents=intents, quota=QuotaConfig(max_files=5), clock=clock)


@pytest.fixture
def versions(coordinator):
    return VersioningService(coordinator)


@pytest.fixture
def pdf_source():
    return UploadSource("report.pdf", b"%PDF-1.4 report body", content_type="application/pdf")
