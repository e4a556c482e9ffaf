"""
ShieldBot - Counter Tests
=========================

Tests for SlidingWindowCounter and RateGuard.
"""

import pytest

from src.services.antinuke.constants import MASS_ACTION_LIMITS, SIGNAL_LIMITS
from src.services.antinuke.counters import RateGuard, SlidingWindowCounter
from src.services.antinuke.models import ActionKind, CounterKey, Verdict

from tests.conftest import ATTACKER_ID, FakeClock


# =============================================================================
# Sliding-Window Counter Tests
# =============================================================================

class TestSlidingWindowRecord:
    """Tests for record() and count()."""

    def test_counts_within_window(self):
        """Entries inside the window are all counted."""
        counter = SlidingWindowCounter(SIGNAL_LIMITS)
        key = CounterKey(ATTACKER_ID, ActionKind.ROLE_DELETE)

        assert counter.record(key, 0.0) == 1
        assert counter.record(key, 1.0) == 2
        assert counter.record(key, 2.0) == 3

    def test_drops_entries_outside_window(self):
        """Entries at or before timestamp - window are pruned on record."""
        counter = SlidingWindowCounter(SIGNAL_LIMITS)
        key = CounterKey(ATTACKER_ID, ActionKind.ROLE_DELETE)  # 5s window

        counter.record(key, 0.0)
        counter.record(key, 1.0)
        counter.record(key, 2.0)

        # 6.0 - 5.0 = 1.0, so 0.0 and 1.0 age out
        assert counter.record(key, 6.0) == 2

    def test_never_counts_stale_entries(self):
        """Returned count always matches the entries inside the trailing window."""
        counter = SlidingWindowCounter(MASS_ACTION_LIMITS)
        key = CounterKey(ATTACKER_ID, ActionKind.MEMBER_KICK)
        window = MASS_ACTION_LIMITS[ActionKind.MEMBER_KICK].window

        seen = []
        timestamp = 0.0
        for step in [0.5, 3.0, 0.1, 7.0, 15.0, 0.2, 0.2, 14.9, 1.0, 30.0]:
            timestamp += step
            seen.append(timestamp)
            expected = len([t for t in seen if t > timestamp - window])
            assert counter.record(key, timestamp) == expected

    def test_out_of_order_timestamps(self):
        """Late deliveries are inserted in order."""
        counter = SlidingWindowCounter(SIGNAL_LIMITS)
        key = CounterKey(ATTACKER_ID, ActionKind.ROLE_DELETE)

        counter.record(key, 10.0)
        counter.record(key, 8.0)

        assert counter.count(key, 10.0) == 2
        assert counter.count(key, 13.5) == 1

    def test_count_does_not_record(self):
        """count() is read-only."""
        counter = SlidingWindowCounter(SIGNAL_LIMITS)
        key = CounterKey(ATTACKER_ID, ActionKind.MEMBER_BAN)

        assert counter.count(key, 0.0) == 0
        counter.record(key, 0.0)
        assert counter.count(key, 0.0) == 1
        assert counter.count(key, 0.0) == 1

    def test_keys_are_independent(self):
        """Different scopes and kinds never share entries."""
        counter = SlidingWindowCounter(MASS_ACTION_LIMITS)
        counter.record(CounterKey(1, ActionKind.MEMBER_BAN), 0.0)
        counter.record(CounterKey(2, ActionKind.MEMBER_BAN), 0.0)
        counter.record(CounterKey(1, ActionKind.MEMBER_KICK), 0.0)

        assert counter.count(CounterKey(1, ActionKind.MEMBER_BAN), 0.0) == 1
        assert len(counter) == 3

    def test_unknown_kind_raises(self):
        """Kinds without a configured window are rejected."""
        counter = SlidingWindowCounter(SIGNAL_LIMITS)
        with pytest.raises(ValueError):
            counter.record(CounterKey(ATTACKER_ID, ActionKind.BOT_ADD), 0.0)


class TestSlidingWindowExceeded:
    """Tests for exceeded()."""

    def test_threshold_reached(self):
        """CHANNEL_CREATE trips on the second creation inside 5s."""
        counter = SlidingWindowCounter(MASS_ACTION_LIMITS)
        key = CounterKey(ATTACKER_ID, ActionKind.CHANNEL_CREATE)

        assert counter.exceeded(key, 0.0) is False
        assert counter.exceeded(key, 4.0) is True

    def test_threshold_not_reached_across_windows(self):
        """Spread-out actions never trip."""
        counter = SlidingWindowCounter(MASS_ACTION_LIMITS)
        key = CounterKey(ATTACKER_ID, ActionKind.CHANNEL_CREATE)

        assert counter.exceeded(key, 0.0) is False
        assert counter.exceeded(key, 6.0) is False
        assert counter.exceeded(key, 12.0) is False

    def test_single_action_limits(self):
        """Threshold-1 kinds trip on the first occurrence."""
        counter = SlidingWindowCounter(MASS_ACTION_LIMITS)
        assert counter.exceeded(CounterKey(ATTACKER_ID, ActionKind.ROLE_DELETE), 0.0) is True
        assert counter.exceeded(CounterKey(ATTACKER_ID, ActionKind.BOT_ADD), 0.0) is True


class TestSlidingWindowSweep:
    """Tests for sweep()."""

    def test_sweep_removes_empty_keys(self):
        """Keys whose entries all aged out are removed."""
        counter = SlidingWindowCounter(MASS_ACTION_LIMITS)
        counter.record(CounterKey(1, ActionKind.MEMBER_BAN), 0.0)
        counter.record(CounterKey(2, ActionKind.MEMBER_BAN), 25.0)

        removed = counter.sweep(30.0)

        assert removed == 1
        assert len(counter) == 1
        assert counter.count(CounterKey(2, ActionKind.MEMBER_BAN), 30.0) == 1

    def test_sweep_uses_max_age(self):
        """Entries younger than max_age survive the sweep."""
        counter = SlidingWindowCounter(MASS_ACTION_LIMITS)
        counter.record(CounterKey(1, ActionKind.MEMBER_KICK), 0.0)

        assert counter.sweep(9.0) == 0
        assert counter.sweep(10.0) == 1

    def test_reset_forgets_one_key(self):
        counter = SlidingWindowCounter(MASS_ACTION_LIMITS)
        counter.record(CounterKey(1, ActionKind.MEMBER_JOIN), 0.0)
        counter.record(CounterKey(2, ActionKind.MEMBER_JOIN), 0.0)

        counter.reset(CounterKey(1, ActionKind.MEMBER_JOIN))

        assert counter.count(CounterKey(1, ActionKind.MEMBER_JOIN), 1.0) == 0
        assert counter.count(CounterKey(2, ActionKind.MEMBER_JOIN), 1.0) == 1


# =============================================================================
# Rate Guard Tests
# =============================================================================

class TestRateGuard:
    """Tests for RateGuard suppression."""

    def test_allows_up_to_limit(self):
        """Three calls per second pass, the fourth is suppressed."""
        clock = FakeClock()
        guard = RateGuard(clock=clock)

        results = [guard.should_suppress(ATTACKER_ID, Verdict.BAN) for _ in range(4)]

        assert results == [False, False, False, True]

    def test_window_slides(self):
        """Calls older than the window no longer count."""
        clock = FakeClock()
        guard = RateGuard(clock=clock)
        for _ in range(3):
            guard.should_suppress(ATTACKER_ID, Verdict.BAN)

        clock.advance(1.0)

        assert guard.should_suppress(ATTACKER_ID, Verdict.BAN) is False

    def test_suppressed_calls_not_recorded(self):
        """A suppressed call does not extend the block."""
        clock = FakeClock()
        guard = RateGuard(limit=1, window=1.0, clock=clock)

        assert guard.should_suppress(ATTACKER_ID, Verdict.BAN) is False
        clock.advance(0.5)
        assert guard.should_suppress(ATTACKER_ID, Verdict.BAN) is True
        clock.advance(0.5)
        assert guard.should_suppress(ATTACKER_ID, Verdict.BAN) is False

    def test_actions_are_independent(self):
        """Each (subject, action) pair has its own budget."""
        clock = FakeClock()
        guard = RateGuard(limit=1, clock=clock)

        assert guard.should_suppress(ATTACKER_ID, Verdict.BAN) is False
        assert guard.should_suppress(ATTACKER_ID, Verdict.KICK) is False
        assert guard.should_suppress(ATTACKER_ID + 1, Verdict.BAN) is False
        assert guard.should_suppress(ATTACKER_ID, Verdict.BAN) is True

    def test_clear(self):
        """clear() forgets every subject."""
        clock = FakeClock()
        guard = RateGuard(limit=1, clock=clock)
        guard.should_suppress(ATTACKER_ID, Verdict.BAN)

        guard.clear()

        assert len(guard) == 0
        assert guard.should_suppress(ATTACKER_ID, Verdict.BAN) is False
