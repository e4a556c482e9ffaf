"""
ShieldBot - Raid State Machine
==============================

Per-guild mass-join detection with timed expiry.

DESIGN:
    IDLE -> ACTIVE when 5 joins land inside 10 seconds. ACTIVE -> IDLE
    on operator release or once expires_at has passed, which is checked
    on every join and on the background sweep. A second breach while
    active changes nothing and does not extend the expiry.

    Raid state is strictly per guild. "Is any guild raided" is answered
    by scanning, never stored.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .constants import MASS_ACTION_LIMITS, RAID_DURATION
from .counters import SlidingWindowCounter
from .models import ActionKind, ActionLimit, CounterKey, RaidTransition


# =============================================================================
# Raid State
# =============================================================================

@dataclass
class RaidState:
    """Activation window for one guild."""

    active: bool = False
    activated_at: Optional[float] = None
    expires_at: Optional[float] = None

    def activate(self, now: float, duration: float) -> None:
        self.active = True
        self.activated_at = now
        self.expires_at = now + duration

    def reset(self) -> None:
        self.active = False
        self.activated_at = None
        self.expires_at = None

    def is_expired(self, now: float) -> bool:
        return self.active and self.expires_at is not None and now > self.expires_at


# =============================================================================
# Raid Monitor
# =============================================================================

class RaidMonitor:
    """Tracks raid state for every guild that has seen a join."""

    def __init__(
        self,
        limit: ActionLimit = MASS_ACTION_LIMITS[ActionKind.MEMBER_JOIN],
        duration: float = RAID_DURATION,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.limit = limit
        self.duration = duration
        self._clock = clock
        self._raids: Dict[int, RaidState] = {}
        self.joins = SlidingWindowCounter({ActionKind.MEMBER_JOIN: limit})

    def get(self, guild_id: int) -> Optional[RaidState]:
        return self._raids.get(guild_id)

    def _reset(self, guild_id: int, raid: RaidState) -> None:
        raid.reset()
        self.joins.reset(CounterKey(guild_id, ActionKind.MEMBER_JOIN))

    def record_join(self, guild_id: int, now: Optional[float] = None) -> RaidTransition:
        """
        Record a member join and advance the state machine.

        Returns:
            ACTIVATED on the breach that starts a raid, OBSERVED for joins
            during an active raid, EXPIRED if this join closed a finished
            raid without starting a new one, NONE otherwise.
        """
        now = self._clock() if now is None else now
        raid = self._raids.setdefault(guild_id, RaidState())

        expired = False
        if raid.is_expired(now):
            self._reset(guild_id, raid)
            expired = True

        breached = self.joins.exceeded(CounterKey(guild_id, ActionKind.MEMBER_JOIN), now)

        if raid.active:
            return RaidTransition.OBSERVED

        if breached:
            raid.activate(now, self.duration)
            return RaidTransition.ACTIVATED

        return RaidTransition.EXPIRED if expired else RaidTransition.NONE

    def expire_due(self, now: Optional[float] = None) -> List[int]:
        """Close every raid past its expiry. Returns the affected guild ids."""
        now = self._clock() if now is None else now
        expired = []
        for guild_id, raid in self._raids.items():
            if raid.is_expired(now):
                self._reset(guild_id, raid)
                expired.append(guild_id)
        self.joins.sweep(now)
        return expired

    def release(self, guild_id: int) -> bool:
        """Operator release. Returns False if no raid was active."""
        raid = self._raids.get(guild_id)
        if raid is None or not raid.active:
            return False
        self._reset(guild_id, raid)
        return True

    def is_active(self, guild_id: int) -> bool:
        raid = self._raids.get(guild_id)
        return raid is not None and raid.active

    def any_active(self) -> bool:
        return any(raid.active for raid in self._raids.values())

    def active_guilds(self) -> List[int]:
        return [guild_id for guild_id, raid in self._raids.items() if raid.active]


__all__ = [
    "RaidState",
    "RaidMonitor",
]
