"""
ShieldBot - Sliding-Window Counters
===================================

Per-key occurrence tracking over trailing time windows.

DESIGN:
    Each key keeps a sorted list of timestamps. record() inserts and
    prunes in one step, so a returned count never includes an entry
    older than the key's window. Keys whose entries all age out are only
    removed by sweep(), which the service runs every 30 seconds.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import time
from bisect import bisect_right, insort
from collections import defaultdict
from typing import Callable, Dict, Hashable, List, Tuple

from .constants import COUNTER_MAX_AGE, RATE_GUARD_LIMIT, RATE_GUARD_WINDOW
from .models import ActionKind, ActionLimit, CounterKey


# =============================================================================
# Sliding-Window Counter
# =============================================================================

class SlidingWindowCounter:
    """
    Counts occurrences per (scope, kind) key within each kind's window.

    Attributes:
        limits: Threshold and window per ActionKind.
    """

    def __init__(self, limits: Dict[ActionKind, ActionLimit]) -> None:
        self.limits = dict(limits)
        self._entries: Dict[CounterKey, List[float]] = {}

    def _limit(self, key: CounterKey) -> ActionLimit:
        try:
            return self.limits[key.kind]
        except KeyError:
            raise ValueError(f"No window configured for {key.kind}") from None

    def _prune(self, entries: List[float], now: float, window: float) -> None:
        cutoff = bisect_right(entries, now - window)
        if cutoff:
            del entries[:cutoff]

    def record(self, key: CounterKey, timestamp: float) -> int:
        """
        Record an occurrence and return the count inside the window.

        Entries at or before timestamp - window are dropped first.
        """
        limit = self._limit(key)
        entries = self._entries.setdefault(key, [])
        insort(entries, timestamp)
        self._prune(entries, timestamp, limit.window)
        return len(entries)

    def count(self, key: CounterKey, now: float) -> int:
        """Count occurrences inside the window without recording."""
        limit = self._limit(key)
        entries = self._entries.get(key)
        if not entries:
            return 0
        start = bisect_right(entries, now - limit.window)
        return len(entries) - start

    def exceeded(self, key: CounterKey, timestamp: float) -> bool:
        """Record an occurrence and report whether the threshold was reached."""
        return self.record(key, timestamp) >= self._limit(key).threshold

    def reset(self, key: CounterKey) -> None:
        """Forget every occurrence recorded for one key."""
        self._entries.pop(key, None)

    def sweep(self, now: float, max_age: float = COUNTER_MAX_AGE) -> int:
        """
        Drop every entry older than max_age and remove empty keys.

        Returns:
            Number of keys removed.
        """
        removed = 0
        for key in list(self._entries):
            entries = self._entries[key]
            self._prune(entries, now, max_age)
            if not entries:
                del self._entries[key]
                removed += 1
        return removed

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# Rate Guard
# =============================================================================

class RateGuard:
    """
    Suppresses rapid repeated mitigation calls against one subject.

    At most `limit` calls per (subject, action) are let through in any
    trailing `window` seconds. Suppressed calls are not recorded.
    """

    def __init__(
        self,
        limit: int = RATE_GUARD_LIMIT,
        window: float = RATE_GUARD_WINDOW,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.limit = limit
        self.window = window
        self._clock = clock
        self._calls: Dict[Tuple[int, Hashable], List[float]] = defaultdict(list)

    def should_suppress(self, subject_id: int, action_kind: Hashable) -> bool:
        now = self._clock()
        calls = self._calls[(subject_id, action_kind)]
        calls[:] = [t for t in calls if now - t < self.window]
        if len(calls) >= self.limit:
            return True
        calls.append(now)
        return False

    def clear(self) -> None:
        """Forget every recorded call."""
        self._calls.clear()

    def __len__(self) -> int:
        return len(self._calls)


__all__ = [
    "SlidingWindowCounter",
    "RateGuard",
]
