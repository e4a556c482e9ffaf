"""
ShieldBot - Test Fixtures
=========================

Shared fixtures for all tests.
"""

import os
import tempfile

import pytest
from unittest.mock import MagicMock

# Set up test environment before importing modules
os.environ.setdefault("SHIELD_LOGS_DIR", tempfile.mkdtemp(prefix="shield-logs-"))
os.environ.setdefault("DISCORD_TOKEN", "test-token")

from src.services.antinuke.alerts import Notifier
from src.services.antinuke.counters import RateGuard
from src.services.antinuke.executor import MitigationExecutor
from src.services.antinuke.models import (
    EventCategory,
    EventDiff,
    Identity,
    SecurityEvent,
    Target,
)
from src.services.antinuke.platform import AuditResolver, PlatformActions
from src.services.antinuke.service import AntiNukeService
from src.services.antinuke.state import StateStore


# =============================================================================
# Test IDs
# =============================================================================

GUILD_ID = 100000000000000001
OTHER_GUILD_ID = 100000000000000002
OWNER_ID = 200000000000000001
SELF_ID = 300000000000000001
TRUSTED_BOT_ID = 400000000000000001
ATTACKER_ID = 500000000000000001
MOD_ID = 600000000000000001
MOD_ROLE_ID = 700000000000000001
START_TIME = 1_700_000_000.0


# =============================================================================
# Clock
# =============================================================================

class FakeClock:
    """Manually advanced clock for deterministic windows."""

    def __init__(self, start: float = START_TIME) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


# =============================================================================
# Collaborator Mocks
# =============================================================================

@pytest.fixture
def mock_platform():
    """PlatformActions mock; every method is an AsyncMock."""
    platform = MagicMock(spec=PlatformActions)
    platform.list_invites.return_value = []
    platform.strip_dangerous_roles.return_value = 0
    return platform


@pytest.fixture
def mock_resolver():
    """AuditResolver mock that cannot resolve anyone by default."""
    resolver = MagicMock(spec=AuditResolver)
    resolver.resolve_executor.return_value = None
    return resolver


@pytest.fixture
def mock_notifier():
    return MagicMock(spec=Notifier)


# =============================================================================
# Engine Fixtures
# =============================================================================

@pytest.fixture
def store(clock):
    store = StateStore(clock=clock)
    store.get(GUILD_ID).owner_id = OWNER_ID
    return store


@pytest.fixture
def executor(store, mock_platform, clock):
    return MitigationExecutor(store, mock_platform, RateGuard(clock=clock), clock=clock)


@pytest.fixture
def service(mock_platform, mock_resolver, mock_notifier, clock):
    """Engine with one synced guild and one pre-existing whitelisted bot."""
    service = AntiNukeService(
        mock_platform,
        mock_resolver,
        mock_notifier,
        self_id=SELF_ID,
        clock=clock,
    )
    service.sync_guild(GUILD_ID, OWNER_ID, [TRUSTED_BOT_ID])
    return service


# =============================================================================
# Identities & Events
# =============================================================================

@pytest.fixture
def attacker():
    return Identity(id=ATTACKER_ID, tag="attacker#0001")


@pytest.fixture
def moderator():
    """Member holding the whitelisted moderator role."""
    return Identity(id=MOD_ID, tag="mod#0001", role_ids=frozenset({MOD_ROLE_ID}))


@pytest.fixture
def owner():
    return Identity(id=OWNER_ID, tag="owner#0001")


@pytest.fixture
def make_event(clock):
    """Factory for SecurityEvents in the test guild."""

    def _make(
        category: EventCategory,
        actor=None,
        target_id: int = 900000000000000001,
        name: str = "general-chat",
        diff: EventDiff = None,
        timestamp: float = None,
        guild_id: int = GUILD_ID,
        **target_kwargs,
    ) -> SecurityEvent:
        return SecurityEvent(
            category=category,
            guild_id=guild_id,
            owner_id=OWNER_ID,
            timestamp=clock.now if timestamp is None else timestamp,
            actor=actor,
            target=Target(id=target_id, name=name, **target_kwargs),
            diff=diff or EventDiff(),
        )

    return _make
