"""
ShieldBot - Anti-Nuke Package
=============================

Detection-and-mitigation engine for nukes and raids.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from .alerts import AlertService, Notifier, setup_alert_views
from .counters import RateGuard, SlidingWindowCounter
from .errors import ActionFailure, AntiNukeError, ResolutionFailure, StateInconsistency
from .executor import MitigationExecutor
from .models import (
    ControlResult,
    Decision,
    EventCategory,
    EventDiff,
    GuildSnapshot,
    Identity,
    SecurityEvent,
    Target,
    Verdict,
)
from .platform import AuditResolver, DiscordAuditResolver, DiscordPlatform, PlatformActions
from .policy import evaluate
from .raid import RaidMonitor
from .service import AntiNukeService
from .state import GuildState, StateStore
from .timeouts import TimeoutEnforcer


__all__ = [
    "AntiNukeService",
    "AlertService",
    "Notifier",
    "setup_alert_views",
    "SlidingWindowCounter",
    "RateGuard",
    "AntiNukeError",
    "ActionFailure",
    "ResolutionFailure",
    "StateInconsistency",
    "MitigationExecutor",
    "ControlResult",
    "Decision",
    "EventCategory",
    "EventDiff",
    "GuildSnapshot",
    "Identity",
    "SecurityEvent",
    "Target",
    "Verdict",
    "AuditResolver",
    "DiscordAuditResolver",
    "DiscordPlatform",
    "PlatformActions",
    "evaluate",
    "RaidMonitor",
    "GuildState",
    "StateStore",
    "TimeoutEnforcer",
]
