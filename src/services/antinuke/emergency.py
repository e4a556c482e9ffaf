"""
ShieldBot - Emergency Mode
==========================

Per-guild NORMAL / EMERGENCY state machine.

Any confirmed attack signal escalates. Only the periodic sweep relaxes,
once the activity log has been quiet for the whole quiet period. Raid
state is tracked separately and does not hold emergency mode.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from src.core.logger import logger

from .constants import EMERGENCY_QUIET_PERIOD, EMERGENCY_TAGS
from .state import GuildState


def escalate(state: GuildState, cause: str) -> bool:
    """
    Enter emergency mode.

    Returns:
        True if the guild was in normal mode before.
    """
    if state.emergency_mode:
        return False

    state.emergency_mode = True
    logger.tree("EMERGENCY MODE ACTIVATED", [
        ("Guild", str(state.guild_id)),
        ("Cause", cause[:100]),
    ], emoji="🚨")
    return True


def is_quiet(state: GuildState, now: float) -> bool:
    """True if no nuke/mass/blocked entry is newer than the quiet period."""
    return not state.activity_log.has_tagged_since(EMERGENCY_TAGS, now - EMERGENCY_QUIET_PERIOD)


def maybe_relax(state: GuildState, now: float) -> bool:
    """
    Return to normal mode if the guild has been quiet.

    Returns:
        True if the guild left emergency mode.
    """
    if not state.emergency_mode:
        return False
    if not is_quiet(state, now):
        return False

    state.emergency_mode = False
    logger.tree("Emergency Mode Relaxed", [
        ("Guild", str(state.guild_id)),
        ("Quiet For", f"{int(EMERGENCY_QUIET_PERIOD)}s"),
    ], emoji="🟢")
    return True


__all__ = [
    "escalate",
    "is_quiet",
    "maybe_relax",
]
