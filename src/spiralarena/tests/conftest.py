"""Shared fixtures for arena tests."""

from __future__ import annotations

import pytest

from spiralarena.arena_server.core.arena import Arena
from spiralarena.tests.helpers import ORACLE, OWNER, FakeClock, ScriptedOracle
from spiralarena.utils.config import ArenaSettings


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def oracle() -> ScriptedOracle:
    return ScriptedOracle()


@pytest.fixture
def settings() -> ArenaSettings:
    return ArenaSettings(owner_id=OWNER, oracle_id=ORACLE, event_log_enabled=False)


@pytest.fixture
def arena(settings, oracle, clock) -> Arena:
    return Arena(settings, oracle=oracle, clock=clock)
