"""
ShieldBot - Anti-Nuke Models
============================

Event, verdict and record types shared by the anti-nuke engine.

DESIGN:
    Every administrative event is normalized into one SecurityEvent
    before it reaches the policy, so owner/whitelist precedence is
    decided in exactly one place. Identities are plain snapshots with
    no discord.py objects inside, which keeps the policy pure.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, NamedTuple, Optional


# =============================================================================
# Enums
# =============================================================================

class EventCategory(str, Enum):
    """Administrative event categories routed through the policy."""

    CHANNEL_CREATE = "channel_create"
    CHANNEL_DELETE = "channel_delete"
    CHANNEL_UPDATE = "channel_update"
    ROLE_CREATE = "role_create"
    ROLE_DELETE = "role_delete"
    ROLE_UPDATE = "role_update"
    WEBHOOK_CREATE = "webhook_create"
    BOT_ADD = "bot_add"
    MEMBER_BAN = "member_ban"


class ActionKind(str, Enum):
    """Counted action kinds for the sliding-window counters."""

    ROLE_CREATE = "role_create"
    ROLE_DELETE = "role_delete"
    CHANNEL_CREATE = "channel_create"
    CHANNEL_DELETE = "channel_delete"
    MEMBER_BAN = "member_ban"
    MEMBER_KICK = "member_kick"
    MEMBER_REMOVE = "member_remove"
    MEMBER_JOIN = "member_join"
    BOT_ADD = "bot_add"


class Verdict(str, Enum):
    """Policy outcome."""

    ALLOW = "allow"
    REVERT = "revert"
    KICK = "kick"
    BAN = "ban"
    TIMEOUT = "timeout"


class RaidTransition(str, Enum):
    """Result of recording a join against the raid state machine."""

    NONE = "none"
    ACTIVATED = "activated"
    OBSERVED = "observed"
    EXPIRED = "expired"


# Maps a policy category to the counted kind (if any) for per-actor tracking
CATEGORY_ACTION_KINDS: Dict[EventCategory, ActionKind] = {
    EventCategory.CHANNEL_CREATE: ActionKind.CHANNEL_CREATE,
    EventCategory.CHANNEL_DELETE: ActionKind.CHANNEL_DELETE,
    EventCategory.ROLE_CREATE: ActionKind.ROLE_CREATE,
    EventCategory.ROLE_DELETE: ActionKind.ROLE_DELETE,
    EventCategory.BOT_ADD: ActionKind.BOT_ADD,
    EventCategory.MEMBER_BAN: ActionKind.MEMBER_BAN,
}


# =============================================================================
# Counter Keys
# =============================================================================

class ActionLimit(NamedTuple):
    """Threshold and trailing window (seconds) for one action kind."""

    threshold: int
    window: float


class CounterKey(NamedTuple):
    """Scope (actor id, or guild id for "any actor") plus action kind."""

    scope: int
    kind: ActionKind


# =============================================================================
# Identities & Events
# =============================================================================

@dataclass(frozen=True)
class Identity:
    """Snapshot of a resolved actor or target user."""

    id: int
    tag: str = ""
    is_bot: bool = False
    role_ids: FrozenSet[int] = frozenset()
    has_dangerous_roles: bool = False

    def __str__(self) -> str:
        return f"{self.tag} ({self.id})" if self.tag else str(self.id)


@dataclass(frozen=True)
class Target:
    """The entity an event touched (channel, role, webhook, member)."""

    id: int
    name: str = ""
    channel_name: Optional[str] = None
    is_bot: bool = False


@dataclass(frozen=True)
class EventDiff:
    """Before/after details for update and create events."""

    old_name: Optional[str] = None
    new_name: Optional[str] = None
    name_changed: bool = False
    position_changed: bool = False
    overwrites_changed: bool = False
    old_dangerous: FrozenSet[str] = frozenset()
    new_dangerous: FrozenSet[str] = frozenset()
    old_permissions_value: Optional[int] = None

    @property
    def added_dangerous(self) -> FrozenSet[str]:
        return self.new_dangerous - self.old_dangerous


@dataclass(frozen=True)
class SecurityEvent:
    """
    One administrative event, normalized for the policy.

    burst_count is filled in by the service from the signal counters
    before evaluation; the policy itself never counts anything.
    """

    category: EventCategory
    guild_id: int
    owner_id: int
    timestamp: float
    actor: Optional[Identity]
    target: Target
    diff: EventDiff = field(default_factory=EventDiff)
    burst_count: int = 0


@dataclass(frozen=True)
class Decision:
    """Policy output: a verdict plus the ordered side-effect flags."""

    verdict: Verdict
    reason: str = ""
    revert: bool = False
    remove_bot: bool = False
    whitelisted_role: bool = False

    @property
    def is_sanction(self) -> bool:
        return self.verdict in (Verdict.BAN, Verdict.KICK, Verdict.TIMEOUT)

    @property
    def is_noop(self) -> bool:
        return self.verdict == Verdict.ALLOW and not self.revert and not self.remove_bot


@dataclass(frozen=True)
class PolicySnapshot:
    """Read-only view of guild whitelist state handed to the policy."""

    owner_id: int
    self_id: int
    whitelisted_bot_ids: FrozenSet[int] = frozenset()
    whitelisted_role_ids: FrozenSet[int] = frozenset()
    role_keywords: FrozenSet[str] = frozenset()
    channel_keywords: FrozenSet[str] = frozenset()
    channel_modify_verdict: Verdict = Verdict.BAN


# =============================================================================
# Records
# =============================================================================

@dataclass(frozen=True)
class TimeoutRecord:
    """An engine-imposed timeout tracked until its release time."""

    reason: str
    started_at: float
    release_at: float

    def __post_init__(self) -> None:
        if self.release_at <= self.started_at:
            raise ValueError("release_at must be after started_at")

    def remaining(self, now: float) -> float:
        return max(0.0, self.release_at - now)


@dataclass(frozen=True)
class LogEntry:
    """One activity log line."""

    type: str
    description: str
    executor: Optional[Identity] = None
    target: Optional[Identity] = None
    timestamp: float = 0.0


@dataclass
class GuildStats:
    """Per-guild monotonic counters."""

    timeouts: int = 0
    bans: int = 0
    kicks: int = 0
    blocked_bots: int = 0
    nuke_attempts: int = 0


@dataclass
class GlobalStats:
    """Process-wide aggregates, for observability only."""

    timeouts: int = 0
    bans: int = 0
    kicks: int = 0
    blocked_bots: int = 0
    nuke_attempts: int = 0
    raids_detected: int = 0
    events_processed: int = 0


# =============================================================================
# Results
# =============================================================================

class ControlResult(NamedTuple):
    """Outcome of an operator control, shown to the requester."""

    success: bool
    message: str


@dataclass(frozen=True)
class GuildSnapshot:
    """Status view of one guild for widgets and the status endpoint."""

    guild_id: int
    stats: GuildStats
    emergency_mode: bool
    raid_active: bool
    raid_expires_at: Optional[float]
    active_timeout_count: int
    whitelisted_bots: int
    whitelisted_roles: int
    monitoring: bool

    def to_dict(self) -> Dict[str, object]:
        return {
            "guild_id": str(self.guild_id),
            "stats": {
                "timeouts": self.stats.timeouts,
                "bans": self.stats.bans,
                "kicks": self.stats.kicks,
                "blocked_bots": self.stats.blocked_bots,
                "nuke_attempts": self.stats.nuke_attempts,
            },
            "emergency_mode": self.emergency_mode,
            "raid_active": self.raid_active,
            "raid_expires_at": self.raid_expires_at,
            "active_timeouts": self.active_timeout_count,
            "whitelist_sizes": {
                "bots": self.whitelisted_bots,
                "roles": self.whitelisted_roles,
            },
            "monitoring": self.monitoring,
        }


__all__ = [
    "EventCategory",
    "ActionKind",
    "Verdict",
    "RaidTransition",
    "CATEGORY_ACTION_KINDS",
    "ActionLimit",
    "CounterKey",
    "Identity",
    "Target",
    "EventDiff",
    "SecurityEvent",
    "Decision",
    "PolicySnapshot",
    "TimeoutRecord",
    "LogEntry",
    "GuildStats",
    "GlobalStats",
    "ControlResult",
    "GuildSnapshot",
]
