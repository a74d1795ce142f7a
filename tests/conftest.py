"""Shared fixtures for SiteLock tests.

Provides a controllable clock and the in-memory platform capabilities
every component is wired against.
"""
from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from sitelock.core.config import SiteLockConfig
from sitelock.core.interfaces import (
    InMemoryNotifier,
    InMemoryScheduler,
    InMemorySiteStore,
    InMemoryTabController,
)
from sitelock.unlock.ledger import UnlockLedger

START = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


# ---------------------------------------------------------------------------
# Capability fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def config() -> SiteLockConfig:
    return SiteLockConfig()


@pytest.fixture
def store() -> InMemorySiteStore:
    return InMemorySiteStore()


@pytest.fixture
def tabs() -> InMemoryTabController:
    return InMemoryTabController()


@pytest.fixture
def notifier() -> InMemoryNotifier:
    return InMemoryNotifier()


@pytest.fixture
def scheduler() -> InMemoryScheduler:
    return InMemoryScheduler()


@pytest.fixture
def ledger(
    scheduler: InMemoryScheduler,
    tabs: InMemoryTabController,
    config: SiteLockConfig,
    clock: FakeClock,
) -> UnlockLedger:
    return UnlockLedger(scheduler, tabs, config, clock)
