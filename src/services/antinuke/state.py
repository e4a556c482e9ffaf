"""
ShieldBot - Guild State Store
=============================

In-memory per-guild state: whitelists, timeouts, activity, counters.

DESIGN:
    GuildState is created on first reference and lives for the whole
    process. It is only mutated by the engine between awaits, so no
    locking is needed. Nothing is persisted; whitelists are rebuilt from
    the bots present in each guild on startup.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Iterable, Iterator, List, Optional, Set

from .constants import ACTIVITY_LOG_CAPACITY, MASS_ACTION_LIMITS, SIGNAL_LIMITS
from .counters import SlidingWindowCounter
from .models import GlobalStats, GuildStats, Identity, LogEntry, TimeoutRecord


# =============================================================================
# Activity Log
# =============================================================================

class ActivityLog:
    """Fixed-capacity log, newest entry first. Oldest entries are evicted."""

    def __init__(self, capacity: int = ACTIVITY_LOG_CAPACITY) -> None:
        self._entries: Deque[LogEntry] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def append(self, entry: LogEntry) -> None:
        self._entries.appendleft(entry)

    def recent(self, limit: int = 10) -> List[LogEntry]:
        return list(self._entries)[:limit]

    def has_tagged_since(self, tags: Iterable[str], since: float) -> bool:
        """True if any entry newer than `since` has a type containing a tag."""
        tags = tuple(tags)
        for entry in self._entries:
            if entry.timestamp <= since:
                continue
            if any(tag in entry.type for tag in tags):
                return True
        return False

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# Guild State
# =============================================================================

@dataclass
class GuildState:
    """Everything the engine knows about one guild."""

    guild_id: int
    owner_id: int = 0
    whitelisted_bot_ids: Set[int] = field(default_factory=set)
    whitelisted_role_ids: Set[int] = field(default_factory=set)
    flagged_bot_ids: Set[int] = field(default_factory=set)
    active_timeouts: Dict[int, TimeoutRecord] = field(default_factory=dict)
    activity_log: ActivityLog = field(default_factory=ActivityLog)
    mass_actions: SlidingWindowCounter = field(
        default_factory=lambda: SlidingWindowCounter(MASS_ACTION_LIMITS)
    )
    signals: SlidingWindowCounter = field(
        default_factory=lambda: SlidingWindowCounter(SIGNAL_LIMITS)
    )
    stats: GuildStats = field(default_factory=GuildStats)
    emergency_mode: bool = False
    monitoring: bool = True
    last_status_refresh: float = 0.0

    def log(
        self,
        entry_type: str,
        description: str,
        timestamp: float,
        executor: Optional[Identity] = None,
        target: Optional[Identity] = None,
    ) -> LogEntry:
        entry = LogEntry(
            type=entry_type,
            description=description,
            executor=executor,
            target=target,
            timestamp=timestamp,
        )
        self.activity_log.append(entry)
        return entry


# =============================================================================
# State Store
# =============================================================================

class StateStore:
    """
    Owns every GuildState plus the process-wide aggregates.

    Attributes:
        global_stats: Aggregates across guilds (observability only).
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._guilds: Dict[int, GuildState] = {}
        self.global_stats = GlobalStats()

    def now(self) -> float:
        return self._clock()

    def get(self, guild_id: int) -> GuildState:
        """Get the state for a guild, creating it on first reference."""
        state = self._guilds.get(guild_id)
        if state is None:
            state = GuildState(guild_id=guild_id)
            self._guilds[guild_id] = state
        return state

    def peek(self, guild_id: int) -> Optional[GuildState]:
        return self._guilds.get(guild_id)

    def __iter__(self) -> Iterator[GuildState]:
        return iter(list(self._guilds.values()))

    def __len__(self) -> int:
        return len(self._guilds)

    def __contains__(self, guild_id: object) -> bool:
        return guild_id in self._guilds


__all__ = [
    "ActivityLog",
    "GuildState",
    "StateStore",
]
