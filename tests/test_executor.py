"""
ShieldBot - Mitigation Executor Tests
=====================================

Tests for step ordering, failure isolation and dedup.
"""

import pytest

from src.services.antinuke.constants import BAN_REASON_PREFIX, KICK_REASON_PREFIX, MAX_TIMEOUT_SECONDS
from src.services.antinuke.errors import ActionFailure
from src.services.antinuke.models import Decision, EventCategory, EventDiff, Identity, Verdict

from tests.conftest import ATTACKER_ID, GUILD_ID


BOT_ID = 800000000000000001
ROLE_ID = 900000000000000009


def _record_calls(platform, calls):
    """Make each platform method append its name when awaited."""
    for name in ("ban", "kick", "timeout", "revert_role", "delete_entity", "strip_dangerous_roles"):
        getattr(platform, name).side_effect = (lambda n: lambda *args, **kwargs: calls.append(n))(name)


# =============================================================================
# Ordering Tests
# =============================================================================

class TestStepOrder:
    """Remove bot, then revert, then sanction."""

    @pytest.mark.asyncio
    async def test_bot_removed_before_sanction(self, executor, mock_platform, make_event, attacker):
        calls = []
        _record_calls(mock_platform, calls)
        event = make_event(EventCategory.BOT_ADD, attacker, target_id=BOT_ID, name="EvilBot", is_bot=True)

        result = await executor.execute(event, Decision(Verdict.BAN, "bot", remove_bot=True))

        assert calls == ["kick", "ban"]
        assert mock_platform.kick.await_args.args[1] == BOT_ID
        assert result.bot_removed is True
        assert result.sanctioned is True

    @pytest.mark.asyncio
    async def test_revert_before_sanction(self, executor, mock_platform, make_event, attacker):
        calls = []
        _record_calls(mock_platform, calls)
        event = make_event(EventCategory.CHANNEL_CREATE, attacker, target_id=42)

        await executor.execute(event, Decision(Verdict.BAN, "channel", revert=True))

        assert calls == ["delete_entity", "ban"]
        assert mock_platform.delete_entity.await_args.args[:3] == (GUILD_ID, "channel", 42)

    @pytest.mark.asyncio
    async def test_role_update_restores_prior_state(self, executor, mock_platform, make_event, attacker):
        """Role reverts restore the prior permission value and name."""
        event = make_event(EventCategory.ROLE_UPDATE, attacker, target_id=ROLE_ID, name="Owners", diff=EventDiff(
            old_name="Helpers", new_name="Owners", old_permissions_value=1024,
            new_dangerous=frozenset({"administrator"}),
        ))

        result = await executor.execute(event, Decision(Verdict.KICK, "role", revert=True))

        args = mock_platform.revert_role.await_args.args
        assert args[:4] == (GUILD_ID, ROLE_ID, 1024, "Helpers")
        assert result.reverted is True
        mock_platform.kick.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_noop_decision_does_nothing(self, executor, mock_platform, make_event, attacker):
        result = await executor.execute(make_event(EventCategory.CHANNEL_CREATE, attacker), Decision(Verdict.ALLOW))

        assert result.failures == []
        mock_platform.ban.assert_not_awaited()
        mock_platform.delete_entity.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_early_bot_removal_not_repeated(self, executor, store, mock_platform, make_event, attacker):
        event = make_event(EventCategory.BOT_ADD, attacker, target_id=BOT_ID, name="EvilBot", is_bot=True)

        assert await executor.remove_bot_now(GUILD_ID, event.target) is True
        result = await executor.execute(event, Decision(Verdict.BAN, "bot", remove_bot=True))
        state = store.get(GUILD_ID)

        mock_platform.kick.assert_awaited_once()
        assert result.bot_removed is True
        assert state.stats.blocked_bots == 1
        types = [entry.type for entry in state.activity_log.recent()]
        assert types.count("UNAUTHORIZED_BOT_BLOCKED") == 1

    @pytest.mark.asyncio
    async def test_failed_early_removal_reported(self, executor, mock_platform, make_event, attacker):
        mock_platform.kick.side_effect = ActionFailure("Missing Permissions", GUILD_ID, "Kick")
        event = make_event(EventCategory.BOT_ADD, attacker, target_id=BOT_ID, is_bot=True)

        assert await executor.remove_bot_now(GUILD_ID, event.target) is False
        result = await executor.execute(event, Decision(Verdict.BAN, "bot", remove_bot=True))

        mock_platform.kick.assert_awaited_once()
        assert result.bot_removed is False
        assert "Remove Bot" in result.failures


# =============================================================================
# Failure Isolation Tests
# =============================================================================

class TestFailureIsolation:
    """A failed step never blocks the next one."""

    @pytest.mark.asyncio
    async def test_revert_failure_still_sanctions(self, executor, mock_platform, make_event, attacker):
        mock_platform.delete_entity.side_effect = ActionFailure("Missing Access", GUILD_ID, "Delete")
        event = make_event(EventCategory.CHANNEL_CREATE, attacker)

        result = await executor.execute(event, Decision(Verdict.BAN, "channel", revert=True))

        assert result.failures == ["Revert"]
        assert result.reverted is False
        assert result.sanctioned is True
        mock_platform.ban.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_ban_failure_still_counted(self, executor, store, mock_platform, make_event, attacker):
        mock_platform.ban.side_effect = ActionFailure("Missing Permissions", GUILD_ID, "Ban")

        result = await executor.execute(make_event(EventCategory.CHANNEL_DELETE, attacker), Decision(Verdict.BAN, "x"))

        assert result.sanctioned is False
        assert result.failures == ["Ban"]
        assert store.get(GUILD_ID).stats.bans == 1

    @pytest.mark.asyncio
    async def test_role_update_without_prior_permissions(self, executor, mock_platform, make_event, attacker):
        event = make_event(EventCategory.ROLE_UPDATE, attacker, target_id=ROLE_ID)

        result = await executor.execute(event, Decision(Verdict.BAN, "role", revert=True))

        assert result.failures == ["Revert"]
        mock_platform.revert_role.assert_not_awaited()
        mock_platform.ban.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_deletion_cannot_be_reverted(self, executor, mock_platform, make_event):
        """Unresolved deletions log a warning and call nothing."""
        event = make_event(EventCategory.CHANNEL_DELETE, None)

        result = await executor.execute(event, Decision(Verdict.REVERT, "deleted", revert=True))

        assert result.reverted is False
        assert result.failures == []
        mock_platform.delete_entity.assert_not_awaited()
        mock_platform.ban.assert_not_awaited()


# =============================================================================
# Sanction Tests
# =============================================================================

class TestSanctions:
    """BAN / KICK / TIMEOUT details."""

    @pytest.mark.asyncio
    async def test_ban_reason_prefix(self, executor, store, mock_platform, make_event, attacker):
        await executor.execute(make_event(EventCategory.CHANNEL_DELETE, attacker), Decision(Verdict.BAN, "deleted"))

        guild_id, user_id, reason = mock_platform.ban.await_args.args
        assert (guild_id, user_id) == (GUILD_ID, ATTACKER_ID)
        assert reason == f"{BAN_REASON_PREFIX}deleted"
        mock_platform.strip_dangerous_roles.assert_not_awaited()
        assert store.get(GUILD_ID).activity_log.recent(1)[0].type == "BAN"

    @pytest.mark.asyncio
    async def test_ban_strips_dangerous_roles_first(self, executor, mock_platform, make_event):
        calls = []
        _record_calls(mock_platform, calls)
        actor = Identity(id=ATTACKER_ID, has_dangerous_roles=True)

        await executor.execute(make_event(EventCategory.CHANNEL_DELETE, actor), Decision(Verdict.BAN, "x"))

        assert calls == ["strip_dangerous_roles", "ban"]

    @pytest.mark.asyncio
    async def test_kick_logged(self, executor, store, mock_platform, make_event, moderator):
        decision = Decision(Verdict.KICK, "x", whitelisted_role=True)
        await executor.execute(make_event(EventCategory.CHANNEL_DELETE, moderator), decision)

        state = store.get(GUILD_ID)
        entry = state.activity_log.recent(1)[0]
        assert mock_platform.kick.await_args.args[2].startswith(KICK_REASON_PREFIX)
        assert entry.type == "KICK"
        assert entry.executor == moderator
        assert state.stats.kicks == 1

    @pytest.mark.asyncio
    async def test_severity_kick_uses_protection_prefix(self, executor, store, mock_platform, make_event, attacker):
        """A KICK from the channel-modify severity is not a whitelisted-user kick."""
        await executor.execute(make_event(EventCategory.CHANNEL_UPDATE, attacker), Decision(Verdict.KICK, "moved"))

        reason = mock_platform.kick.await_args.args[2]
        assert reason == f"{BAN_REASON_PREFIX}moved"
        assert store.get(GUILD_ID).activity_log.recent(1)[0].description == reason

    @pytest.mark.asyncio
    async def test_timeout_tracked(self, executor, store, mock_platform, make_event, attacker, clock):
        await executor.execute(make_event(EventCategory.CHANNEL_UPDATE, attacker), Decision(Verdict.TIMEOUT, "moved"))

        state = store.get(GUILD_ID)
        record = state.active_timeouts[ATTACKER_ID]
        assert record.release_at == clock.now + MAX_TIMEOUT_SECONDS
        assert mock_platform.timeout.await_args.args[2] == float(MAX_TIMEOUT_SECONDS)
        mock_platform.strip_dangerous_roles.assert_awaited_once()
        assert state.stats.timeouts == 1


# =============================================================================
# Idempotence Tests
# =============================================================================

class TestDedup:
    """Duplicate deliveries produce one platform call."""

    @pytest.mark.asyncio
    async def test_same_event_twice(self, executor, mock_platform, make_event, attacker):
        event = make_event(EventCategory.CHANNEL_CREATE, attacker)
        decision = Decision(Verdict.BAN, "channel", revert=True)

        first = await executor.execute(event, decision)
        second = await executor.execute(event, decision)

        assert first.suppressed is False
        assert second.suppressed is True
        mock_platform.ban.assert_awaited_once()
        mock_platform.delete_entity.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_dedup_window_expires(self, executor, mock_platform, make_event, attacker, clock):
        event = make_event(EventCategory.CHANNEL_DELETE, attacker)

        await executor.execute(event, Decision(Verdict.BAN, "x"))
        clock.advance(1.0)
        await executor.execute(event, Decision(Verdict.BAN, "x"))

        assert mock_platform.ban.await_count == 2

    @pytest.mark.asyncio
    async def test_rate_guard_caps_distinct_events(self, executor, mock_platform, make_event, attacker):
        """Five different deletions by one actor in the same instant produce three bans."""
        events = [make_event(EventCategory.CHANNEL_DELETE, attacker, target_id=1000 + i) for i in range(5)]

        results = [await executor.execute(e, Decision(Verdict.BAN, "x")) for e in events]

        assert mock_platform.ban.await_count == 3
        assert [r.rate_limited for r in results] == [False, False, False, True, True]

    @pytest.mark.asyncio
    async def test_rate_guard_sees_duplicate_deliveries(self, executor, mock_platform, make_event, attacker):
        event = make_event(EventCategory.CHANNEL_DELETE, attacker)

        results = [await executor.execute(event, Decision(Verdict.BAN, "x")) for _ in range(5)]

        assert mock_platform.ban.await_count == 1
        assert [r.suppressed for r in results] == [False, True, True, True, True]
        assert [r.rate_limited for r in results] == [False, False, False, True, True]

    @pytest.mark.asyncio
    async def test_rate_guard_window_slides(self, executor, mock_platform, make_event, attacker, clock):
        ban = Decision(Verdict.BAN, "x")
        for i in range(4):
            await executor.execute(make_event(EventCategory.CHANNEL_DELETE, attacker, target_id=2000 + i), ban)
        clock.advance(1.0)
        result = await executor.execute(make_event(EventCategory.CHANNEL_DELETE, attacker, target_id=3000), ban)

        assert result.rate_limited is False
        assert mock_platform.ban.await_count == 4

    def test_prune(self, executor, clock):
        executor._is_duplicate(("k",), clock.now)
        executor.prune(clock.now + 1.0)

        assert executor._is_duplicate(("k",), clock.now) is False
