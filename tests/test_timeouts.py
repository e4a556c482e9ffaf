"""
ShieldBot - Timeout Enforcement Tests
=====================================

Tests for timeout expiry and bypass re-enforcement.
"""

import pytest

from src.services.antinuke.errors import ActionFailure
from src.services.antinuke.models import Identity, TimeoutRecord
from src.services.antinuke.timeouts import TimeoutEnforcer

from tests.conftest import ATTACKER_ID, GUILD_ID, OWNER_ID


VICTIM = Identity(id=ATTACKER_ID, tag="attacker#0001")
HELPER = Identity(id=123456789, tag="helper#0001")


@pytest.fixture
def enforcer(store, mock_platform, mock_resolver, clock):
    return TimeoutEnforcer(store, mock_platform, mock_resolver, clock=clock)


@pytest.fixture
def tracked(store, clock):
    """An active timeout releasing one hour from now."""
    record = TimeoutRecord(reason="channel modification", started_at=clock.now, release_at=clock.now + 3600)
    store.get(GUILD_ID).active_timeouts[ATTACKER_ID] = record
    return record


# =============================================================================
# Bypass Tests
# =============================================================================

class TestTimeoutBypass:
    """Tests for handle_member_update()."""

    @pytest.mark.asyncio
    async def test_bypass_reapplied(self, enforcer, tracked, store, mock_platform, mock_resolver, clock):
        """Non-owner lift is re-applied for the remaining time; release_at is kept."""
        mock_resolver.resolve_executor.return_value = HELPER
        clock.advance(600)

        outcome = await enforcer.handle_member_update(GUILD_ID, VICTIM, timed_out=False)

        assert outcome == "reapplied"
        mock_platform.timeout.assert_awaited_once()
        guild_id, user_id, remaining, reason = mock_platform.timeout.await_args.args
        assert (guild_id, user_id) == (GUILD_ID, ATTACKER_ID)
        assert remaining == pytest.approx(3000.0)
        assert "TIMEOUT BYPASS BLOCKED" in reason
        assert store.get(GUILD_ID).active_timeouts[ATTACKER_ID].release_at == tracked.release_at

    @pytest.mark.asyncio
    async def test_unknown_lifter_reapplied(self, enforcer, tracked, mock_platform):
        outcome = await enforcer.handle_member_update(GUILD_ID, VICTIM, timed_out=False)

        assert outcome == "reapplied"
        mock_platform.timeout.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_bypass_logged(self, enforcer, tracked, store, mock_resolver):
        mock_resolver.resolve_executor.return_value = HELPER

        await enforcer.handle_member_update(GUILD_ID, VICTIM, timed_out=False)

        entry = store.get(GUILD_ID).activity_log.recent(1)[0]
        assert entry.type == "TIMEOUT_BYPASS_BLOCKED"
        assert entry.executor == HELPER

    @pytest.mark.asyncio
    async def test_reapply_failure_keeps_record(self, enforcer, tracked, store, mock_platform):
        mock_platform.timeout.side_effect = ActionFailure("Missing Permissions", GUILD_ID, "Timeout")

        outcome = await enforcer.handle_member_update(GUILD_ID, VICTIM, timed_out=False)

        assert outcome == "reapplied"
        assert ATTACKER_ID in store.get(GUILD_ID).active_timeouts

    @pytest.mark.asyncio
    async def test_owner_lift_removes_record(self, enforcer, tracked, store, mock_platform, mock_resolver):
        mock_resolver.resolve_executor.return_value = Identity(id=OWNER_ID)

        outcome = await enforcer.handle_member_update(GUILD_ID, VICTIM, timed_out=False)

        assert outcome == "removed"
        assert ATTACKER_ID not in store.get(GUILD_ID).active_timeouts
        mock_platform.timeout.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_still_timed_out_ignored(self, enforcer, tracked, mock_resolver):
        assert await enforcer.handle_member_update(GUILD_ID, VICTIM, timed_out=True) is None
        mock_resolver.resolve_executor.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_untracked_member_ignored(self, enforcer, tracked):
        assert await enforcer.handle_member_update(GUILD_ID, HELPER, timed_out=False) is None

    @pytest.mark.asyncio
    async def test_after_release_completed(self, enforcer, tracked, store, mock_platform, clock):
        clock.advance(3600)

        outcome = await enforcer.handle_member_update(GUILD_ID, VICTIM, timed_out=False)

        assert outcome == "completed"
        assert ATTACKER_ID not in store.get(GUILD_ID).active_timeouts
        mock_platform.timeout.assert_not_awaited()


# =============================================================================
# Expiry Tests
# =============================================================================

class TestTimeoutExpiry:
    """Tests for expire_due()."""

    def test_expire_due(self, enforcer, tracked, store, clock):
        assert enforcer.expire_due() == 0

        clock.advance(3600)

        assert enforcer.expire_due() == 1
        state = store.get(GUILD_ID)
        assert state.active_timeouts == {}
        assert state.activity_log.recent(1)[0].type == "TIMEOUT_COMPLETED"
