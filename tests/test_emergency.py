"""
ShieldBot - Emergency Mode Tests
================================

Tests for escalation and relaxation.
"""

from src.services.antinuke import emergency
from src.services.antinuke.state import GuildState

from tests.conftest import GUILD_ID


class TestEscalate:
    """Tests for escalate()."""

    def test_enters_emergency(self):
        state = GuildState(guild_id=GUILD_ID)

        assert emergency.escalate(state, "test") is True
        assert state.emergency_mode is True

    def test_already_in_emergency(self):
        state = GuildState(guild_id=GUILD_ID, emergency_mode=True)
        assert emergency.escalate(state, "test") is False


class TestMaybeRelax:
    """Tests for maybe_relax()."""

    def test_relaxes_after_quiet_period(self):
        """Escalated at t=0 by a blocked nuke, normal again at t=301."""
        state = GuildState(guild_id=GUILD_ID)
        state.log("NUKE_ATTEMPT_BLOCKED", "ban", 0.0)
        emergency.escalate(state, "ban")

        assert emergency.maybe_relax(state, 301.0) is True
        assert state.emergency_mode is False

    def test_stays_during_quiet_period(self):
        state = GuildState(guild_id=GUILD_ID)
        state.log("NUKE_ATTEMPT_BLOCKED", "ban", 0.0)
        emergency.escalate(state, "ban")

        assert emergency.maybe_relax(state, 200.0) is False
        assert state.emergency_mode is True

    def test_recent_mass_or_blocked_entries_block_relax(self):
        state = GuildState(guild_id=GUILD_ID, emergency_mode=True)
        state.log("MASS_ACTION_DETECTED", "x", 100.0)

        assert emergency.maybe_relax(state, 301.0) is False

        state = GuildState(guild_id=GUILD_ID, emergency_mode=True)
        state.log("UNAUTHORIZED_BOT_BLOCKED", "x", 100.0)

        assert emergency.maybe_relax(state, 301.0) is False

    def test_unrelated_entries_ignored(self):
        """Only nuke/mass/blocked entries hold emergency mode."""
        state = GuildState(guild_id=GUILD_ID, emergency_mode=True)
        state.log("REVERTED", "x", 290.0)
        state.log("BOT_WHITELISTED", "x", 300.0)

        assert emergency.maybe_relax(state, 301.0) is True

    def test_empty_log_relaxes(self):
        state = GuildState(guild_id=GUILD_ID, emergency_mode=True)
        assert emergency.maybe_relax(state, 10_000.0) is True

    def test_normal_mode_noop(self):
        state = GuildState(guild_id=GUILD_ID)
        assert emergency.maybe_relax(state, 10_000.0) is False
