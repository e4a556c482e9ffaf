"""
ShieldBot - Anti-Nuke Constants
===============================

Thresholds, keyword lists and permission sets for nuke/raid detection.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from typing import Dict, FrozenSet

from .models import ActionKind, ActionLimit


# =============================================================================
# Mass-Action Thresholds (per actor)
# =============================================================================

MASS_ACTION_LIMITS: Dict[ActionKind, ActionLimit] = {
    ActionKind.ROLE_DELETE: ActionLimit(threshold=1, window=5.0),
    ActionKind.CHANNEL_DELETE: ActionLimit(threshold=1, window=3.0),
    ActionKind.CHANNEL_CREATE: ActionLimit(threshold=2, window=5.0),
    ActionKind.MEMBER_BAN: ActionLimit(threshold=2, window=10.0),
    ActionKind.MEMBER_KICK: ActionLimit(threshold=3, window=15.0),
    ActionKind.BOT_ADD: ActionLimit(threshold=1, window=10.0),
    ActionKind.MEMBER_JOIN: ActionLimit(threshold=5, window=10.0),
}

# =============================================================================
# Burst Signals (used by the policy)
# =============================================================================

SIGNAL_LIMITS: Dict[ActionKind, ActionLimit] = {
    ActionKind.ROLE_CREATE: ActionLimit(threshold=2, window=5.0),    # per actor
    ActionKind.ROLE_DELETE: ActionLimit(threshold=2, window=5.0),    # any actor
    ActionKind.MEMBER_BAN: ActionLimit(threshold=3, window=10.0),    # any actor
    ActionKind.MEMBER_REMOVE: ActionLimit(threshold=3, window=10.0),  # any member
}

# =============================================================================
# Timing
# =============================================================================

COUNTER_MAX_AGE = 10.0
"""Sweep drops counter entries older than this, whatever their window."""

RATE_GUARD_LIMIT = 3
RATE_GUARD_WINDOW = 1.0

SANCTION_DEDUP_WINDOW = 1.0
"""Repeat deliveries of one event within this window get a single sanction."""

EMERGENCY_QUIET_PERIOD = 300.0
EMERGENCY_TAGS = ("NUKE", "MASS", "BLOCKED")

RAID_DURATION = 3600.0

MAX_TIMEOUT_SECONDS = 28 * 24 * 3600
"""Platform cap on a single timeout."""

STATUS_REFRESH_THROTTLE = 1.0

ACTIVITY_LOG_CAPACITY = 100

AUDIT_ATTEMPTS = 5
AUDIT_BACKOFF = 0.2
AUDIT_STALENESS = 10.0
DEPARTURE_AUDIT_ATTEMPTS = 3
"""Kick lookups on member departure, most of which are voluntary leaves."""

# =============================================================================
# Keyword Lists
# =============================================================================

ROLE_SUSPICIOUS_KEYWORDS: FrozenSet[str] = frozenset({
    "nuke", "raid", "hack", "destroy", "kill",
    "delete", "spam", "admin", "owner", "mod",
})

CHANNEL_SUSPICIOUS_KEYWORDS: FrozenSet[str] = ROLE_SUSPICIOUS_KEYWORDS - {"admin", "owner", "mod"}

# =============================================================================
# Permissions
# =============================================================================

DANGEROUS_PERMISSIONS: FrozenSet[str] = frozenset({
    "administrator",
    "manage_guild",
    "manage_roles",
    "manage_channels",
    "ban_members",
    "kick_members",
    "manage_webhooks",
})

# =============================================================================
# Reason Prefixes
# =============================================================================

BAN_REASON_PREFIX = "🚨 ANTI-NUKE PROTECTION - "
KICK_REASON_PREFIX = "🚫 WHITELISTED USER - "


__all__ = [
    "MASS_ACTION_LIMITS",
    "SIGNAL_LIMITS",
    "COUNTER_MAX_AGE",
    "RATE_GUARD_LIMIT",
    "RATE_GUARD_WINDOW",
    "SANCTION_DEDUP_WINDOW",
    "EMERGENCY_QUIET_PERIOD",
    "EMERGENCY_TAGS",
    "RAID_DURATION",
    "MAX_TIMEOUT_SECONDS",
    "STATUS_REFRESH_THROTTLE",
    "ACTIVITY_LOG_CAPACITY",
    "AUDIT_ATTEMPTS",
    "AUDIT_BACKOFF",
    "AUDIT_STALENESS",
    "DEPARTURE_AUDIT_ATTEMPTS",
    "ROLE_SUSPICIOUS_KEYWORDS",
    "CHANNEL_SUSPICIOUS_KEYWORDS",
    "DANGEROUS_PERMISSIONS",
    "BAN_REASON_PREFIX",
    "KICK_REASON_PREFIX",
]
