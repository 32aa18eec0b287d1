"""Pytest configuration and shared fixtures.

This module provides a controllable clock, session stores and a fully
wired command dispatcher for tests.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from workday_bot.commands import WorkdayCommands
from workday_bot.dispatcher import CommandDispatcher
from workday_bot.metrics import Metrics
from workday_bot.models import WorkSession
from workday_bot.registry import CommandRegistry
from workday_bot.store import InMemorySessionStore
from workday_bot.workday import WorkdayManager

OWNER_ID = "U0OWNER"
USER_ID = "U123"
PUBLIC_CHANNEL = "C100"
DIRECT_CHANNEL = "D200"


# ==============================================================================
# Clock and Store Helpers
# ==============================================================================


class FakeClock:
    """Clock returning a fixed time until advanced."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, minutes: float = 0, hours: float = 0) -> datetime:
        self.current += timedelta(minutes=minutes, hours=hours)
        return self.current


class YieldingSessionStore(InMemorySessionStore):
    """In-memory store that yields to the event loop on every call.

    Gives concurrent coroutines a chance to interleave between the read
    and the write of a read-modify-write cycle.
    """

    async def find_last_session_by_owner(self, owner_id: str) -> WorkSession | None:
        await asyncio.sleep(0)
        return await super().find_last_session_by_owner(owner_id)

    async def is_last_session_ended(self, owner_id: str) -> bool:
        await asyncio.sleep(0)
        return await super().is_last_session_ended(owner_id)

    async def save(self, session: WorkSession) -> None:
        await asyncio.sleep(0)
        await super().save(session)


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def clock() -> FakeClock:
    """Fixture providing a controllable clock."""
    return FakeClock()


@pytest.fixture
def store() -> InMemorySessionStore:
    """Fixture providing an empty in-memory store."""
    return InMemorySessionStore()


@pytest.fixture
def manager(store: InMemorySessionStore, clock: FakeClock) -> WorkdayManager:
    """Fixture providing a workday manager over the in-memory store."""
    return WorkdayManager(store, clock=clock)


@pytest.fixture
def send() -> AsyncMock:
    """Fixture providing a mock reply primitive taking (text, channel)."""
    return AsyncMock()


@pytest.fixture
def fresh_metrics() -> Metrics:
    """Fixture providing an empty metrics instance."""
    return Metrics()


@pytest.fixture
def registry(
    manager: WorkdayManager,
    send: AsyncMock,
    fresh_metrics: Metrics,
) -> CommandRegistry:
    """Fixture providing a registry with the built-in commands."""
    registry = CommandRegistry()
    WorkdayCommands(manager, send, metrics=fresh_metrics, owner_id=OWNER_ID).register(registry)
    return registry


@pytest.fixture
def dispatcher(
    registry: CommandRegistry,
    send: AsyncMock,
    fresh_metrics: Metrics,
) -> CommandDispatcher:
    """Fixture providing a dispatcher wired to the built-in commands."""
    return CommandDispatcher(
        registry,
        send,
        bot_id="workday_bot",
        owner_id=OWNER_ID,
        metrics=fresh_metrics,
    )
