"""
ShieldBot - Raid Tests
======================

Tests for the per-guild raid state machine and raid lockdown flow.
"""

import pytest

from src.services.antinuke.errors import ActionFailure
from src.services.antinuke.models import ActionKind, CounterKey, Identity, RaidTransition
from src.services.antinuke.platform import InviteInfo
from src.services.antinuke.raid import RaidMonitor

from tests.conftest import GUILD_ID, OTHER_GUILD_ID, OWNER_ID, START_TIME, FakeClock


def _joins(monitor, guild_id, times):
    return [monitor.record_join(guild_id, START_TIME + t) for t in times]


# =============================================================================
# Raid Monitor Tests
# =============================================================================

class TestRaidActivation:
    """IDLE -> ACTIVE transitions."""

    def test_five_joins_within_window_activate(self):
        """5 joins within 9 seconds start a raid on the fifth."""
        monitor = RaidMonitor(clock=FakeClock())

        results = _joins(monitor, GUILD_ID, [0, 2, 4, 6, 8])

        assert results[:4] == [RaidTransition.NONE] * 4
        assert results[4] == RaidTransition.ACTIVATED
        assert monitor.is_active(GUILD_ID) is True
        assert monitor.get(GUILD_ID).expires_at == START_TIME + 8 + 3600

    def test_spread_joins_do_not_activate(self):
        monitor = RaidMonitor(clock=FakeClock())

        results = _joins(monitor, GUILD_ID, [0, 3, 6, 9, 12, 15])

        assert RaidTransition.ACTIVATED not in results
        assert monitor.is_active(GUILD_ID) is False

    def test_join_during_raid_observed(self):
        """A later join neither re-activates nor extends the raid."""
        monitor = RaidMonitor(clock=FakeClock())
        _joins(monitor, GUILD_ID, [0, 2, 4, 6, 8])
        expires_at = monitor.get(GUILD_ID).expires_at

        assert monitor.record_join(GUILD_ID, START_TIME + 38) == RaidTransition.OBSERVED
        assert monitor.get(GUILD_ID).expires_at == expires_at


class TestRaidExpiry:
    """ACTIVE -> IDLE transitions."""

    def test_expire_due(self):
        monitor = RaidMonitor(duration=60.0, clock=FakeClock())
        _joins(monitor, GUILD_ID, [0, 1, 2, 3, 4])

        assert monitor.expire_due(START_TIME + 30) == []
        assert monitor.expire_due(START_TIME + 65) == [GUILD_ID]
        assert monitor.is_active(GUILD_ID) is False

    def test_join_after_expiry_reports_expired(self):
        monitor = RaidMonitor(duration=60.0, clock=FakeClock())
        _joins(monitor, GUILD_ID, [0, 1, 2, 3, 4])

        assert monitor.record_join(GUILD_ID, START_TIME + 100) == RaidTransition.EXPIRED
        assert monitor.is_active(GUILD_ID) is False

    def test_release(self):
        monitor = RaidMonitor(clock=FakeClock())
        assert monitor.release(GUILD_ID) is False

        _joins(monitor, GUILD_ID, [0, 1, 2, 3, 4])

        assert monitor.release(GUILD_ID) is True
        assert monitor.is_active(GUILD_ID) is False
        assert monitor.joins.count(CounterKey(GUILD_ID, ActionKind.MEMBER_JOIN), START_TIME + 4) == 0

    def test_release_starts_a_fresh_window(self):
        """Joins counted before a release never count toward the next raid."""
        monitor = RaidMonitor(clock=FakeClock())
        _joins(monitor, GUILD_ID, [0, 1, 2, 3, 4])
        monitor.release(GUILD_ID)

        results = _joins(monitor, GUILD_ID, [5, 6, 7, 8])

        assert results == [RaidTransition.NONE] * 4
        assert monitor.is_active(GUILD_ID) is False


class TestRaidIsolation:
    """Raid state is strictly per guild."""

    def test_other_guild_unaffected(self):
        monitor = RaidMonitor(clock=FakeClock())
        _joins(monitor, GUILD_ID, [0, 1, 2, 3, 4])

        assert monitor.is_active(OTHER_GUILD_ID) is False
        assert monitor.record_join(OTHER_GUILD_ID, START_TIME + 5) == RaidTransition.NONE
        assert monitor.any_active() is True
        assert monitor.active_guilds() == [GUILD_ID]

    def test_any_active_derived(self):
        monitor = RaidMonitor(clock=FakeClock())
        assert monitor.any_active() is False

        _joins(monitor, GUILD_ID, [0, 1, 2, 3, 4])
        monitor.release(GUILD_ID)

        assert monitor.any_active() is False


# =============================================================================
# Raid Lockdown Flow Tests
# =============================================================================

class TestRaidLockdown:
    """Raid activation through AntiNukeService."""

    async def _raid(self, service, times):
        member = Identity(id=1, tag="joiner")
        return [
            await service.handle_member_join(GUILD_ID, member, owner_id=OWNER_ID, timestamp=START_TIME + t)
            for t in times
        ]

    @pytest.mark.asyncio
    async def test_invites_deleted_once(self, service, mock_platform):
        """Activation lists invites once; a 6th join 30s later does not re-trigger."""
        mock_platform.list_invites.return_value = [
            InviteInfo(code="temp1", max_age=86400),
            InviteInfo(code="perm", max_age=0),
            InviteInfo(code="temp2", max_age=3600),
        ]

        results = await self._raid(service, [0, 2, 4, 6, 8])
        sixth = await service.handle_member_join(GUILD_ID, Identity(id=2), timestamp=START_TIME + 38)

        assert results[-1] == RaidTransition.ACTIVATED
        assert sixth == RaidTransition.OBSERVED
        mock_platform.list_invites.assert_awaited_once_with(GUILD_ID)
        deleted = [c.args[1] for c in mock_platform.delete_invite.await_args_list]
        assert deleted == ["temp1", "temp2"]

    @pytest.mark.asyncio
    async def test_activation_side_effects(self, service, mock_notifier):
        await self._raid(service, [0, 1, 2, 3, 4])
        state = service.store.get(GUILD_ID)

        assert state.emergency_mode is True
        assert service.store.global_stats.raids_detected == 1
        assert state.activity_log.recent(1)[0].type == "MASS_JOIN_RAID_ACTIVATED"
        mock_notifier.raid_activated.assert_awaited_once()
        assert mock_notifier.raid_activated.await_args.args[:2] == (GUILD_ID, OWNER_ID)

    @pytest.mark.asyncio
    async def test_invite_failures_do_not_escape(self, service, mock_platform):
        mock_platform.list_invites.side_effect = ActionFailure("Forbidden", GUILD_ID, "List Invites")

        results = await self._raid(service, [0, 1, 2, 3, 4])

        assert results[-1] == RaidTransition.ACTIVATED
        mock_platform.delete_invite.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_release_raid_control(self, service):
        await self._raid(service, [0, 1, 2, 3, 4])

        denied = service.release_raid(GUILD_ID, requester_id=12345)
        released = service.release_raid(GUILD_ID, requester_id=OWNER_ID)
        again = service.release_raid(GUILD_ID, requester_id=OWNER_ID)

        assert denied.success is False
        assert released.success is True
        assert again == (False, "No active raid lockdown.")
        assert service.any_raid_active() is False

    @pytest.mark.asyncio
    async def test_raid_is_per_guild(self, service):
        await self._raid(service, [0, 1, 2, 3, 4])

        assert service.snapshot(GUILD_ID).raid_active is True
        assert service.snapshot(OTHER_GUILD_ID).raid_active is False
        assert service.any_raid_active() is True

    @pytest.mark.asyncio
    async def test_emergency_relaxes_while_raid_active(self, service):
        """Five quiet minutes end emergency mode even though the raid lockdown continues."""
        await self._raid(service, [0, 1, 2, 3, 4])

        service.sweep(START_TIME + 100)
        assert service.store.get(GUILD_ID).emergency_mode is True

        service.sweep(START_TIME + 400)
        assert service.raids.is_active(GUILD_ID) is True
        assert service.store.get(GUILD_ID).emergency_mode is False
