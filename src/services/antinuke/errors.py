"""
ShieldBot - Anti-Nuke Errors
============================

Exception types for the anti-nuke engine.

None of these ever reach the event dispatch loop. They are raised by
collaborators and caught at the call site, where they become log lines.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from typing import Optional


class AntiNukeError(Exception):
    """Base error for the anti-nuke engine."""

    def __init__(self, message: str, guild_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.guild_id = guild_id


class ResolutionFailure(AntiNukeError):
    """The audit log never produced a recent enough entry for an event."""

    def __init__(self, message: str, guild_id: Optional[int] = None, attempts: int = 0) -> None:
        super().__init__(message, guild_id)
        self.attempts = attempts


class ActionFailure(AntiNukeError):
    """A platform mitigation call failed. Never retried."""

    def __init__(
        self,
        message: str,
        guild_id: Optional[int] = None,
        action: str = "",
        target_id: Optional[int] = None,
    ) -> None:
        super().__init__(message, guild_id)
        self.action = action
        self.target_id = target_id


class StateInconsistency(AntiNukeError):
    """An operation referenced state that is not tracked."""

    pass


__all__ = [
    "AntiNukeError",
    "ResolutionFailure",
    "ActionFailure",
    "StateInconsistency",
]
