"""
ShieldBot - Timeout Enforcement
===============================

Keeps engine-imposed timeouts in force until their release time.

DESIGN:
    The platform lifts timeouts on its own schedule, so the periodic
    loop is only bookkeeping: records past release_at are dropped and
    logged as completed.

    The real work happens on member updates. If a tracked member's
    timeout disappears early, the audit log decides: the guild owner may
    lift it (record deleted); anyone else is a bypass and the timeout is
    re-applied for the remaining time, keeping the recorded release_at.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import asyncio
import time
from typing import Callable, Optional

import discord

from src.core.logger import logger

from .constants import MAX_TIMEOUT_SECONDS
from .errors import ActionFailure
from .models import Identity
from .platform import AuditResolver, PlatformActions
from .state import StateStore


# =============================================================================
# Timeout Enforcer
# =============================================================================

class TimeoutEnforcer:
    """
    Expires and re-enforces tracked timeouts.

    Attributes:
        task: Background loop task, if started.
        running: Whether the loop is active.
    """

    def __init__(
        self,
        store: StateStore,
        platform: PlatformActions,
        resolver: AuditResolver,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.platform = platform
        self.resolver = resolver
        self._clock = clock
        self.task: Optional[asyncio.Task] = None
        self.running: bool = False

    # =========================================================================
    # Lifecycle Management
    # =========================================================================

    async def start(self, interval: float = 30.0) -> None:
        if self.task and not self.task.done():
            self.task.cancel()

        self.running = True
        self.task = asyncio.create_task(self._loop(interval))

        logger.tree("Timeout Enforcer Started", [
            ("Check Interval", f"{int(interval)} seconds"),
            ("Status", "Running"),
        ], emoji="⏰")

    async def stop(self) -> None:
        self.running = False

        if self.task and not self.task.done():
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass

        logger.info("Timeout Enforcer Stopped")

    async def _loop(self, interval: float) -> None:
        while self.running:
            try:
                self.expire_due()
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Timeout Enforcer Error", [
                    ("Error", str(e)[:100]),
                    ("Type", type(e).__name__),
                ])
                await asyncio.sleep(interval)

    # =========================================================================
    # Expiry
    # =========================================================================

    def expire_due(self, now: Optional[float] = None) -> int:
        """Drop every record whose release time has passed."""
        now = self._clock() if now is None else now
        completed = 0

        for state in self.store:
            for user_id, record in list(state.active_timeouts.items()):
                if record.release_at > now:
                    continue
                del state.active_timeouts[user_id]
                state.log(
                    "TIMEOUT_COMPLETED",
                    f"Timeout completed ({record.reason[:80]})",
                    now,
                    target=Identity(id=user_id),
                )
                completed += 1

        if completed:
            logger.info("Timeouts Completed", [("Count", str(completed))])
        return completed

    # =========================================================================
    # Bypass Detection
    # =========================================================================

    async def handle_member_update(
        self,
        guild_id: int,
        member: Identity,
        timed_out: bool,
    ) -> Optional[str]:
        """
        React to a member update for a possibly tracked member.

        Args:
            guild_id: Guild the update happened in.
            member: The updated member.
            timed_out: Whether the member is still timed out after the update.

        Returns:
            "completed", "removed", "reapplied" or None if nothing applied.
        """
        state = self.store.peek(guild_id)
        if state is None:
            return None
        record = state.active_timeouts.get(member.id)
        if record is None or timed_out:
            return None

        now = self._clock()
        if record.release_at <= now:
            del state.active_timeouts[member.id]
            state.log("TIMEOUT_COMPLETED", "Timeout completed", now, target=member)
            return "completed"

        executor = await self.resolver.resolve_executor(
            guild_id, discord.AuditLogAction.member_update, target_id=member.id,
        )

        # Record may have been released while we were resolving
        if member.id not in state.active_timeouts:
            return None

        if executor is not None and executor.id == state.owner_id:
            del state.active_timeouts[member.id]
            state.log("TIMEOUT_REMOVED", "Timeout lifted by the guild owner", now,
                      executor=executor, target=member)
            logger.tree("Timeout Removed By Owner", [
                ("Guild", str(guild_id)),
                ("Member", str(member)),
            ], emoji="🔓")
            return "removed"

        remaining = min(record.release_at - now, MAX_TIMEOUT_SECONDS)
        lifted_by = str(executor) if executor else "unknown"
        try:
            await self.platform.timeout(
                guild_id, member.id, remaining,
                f"🚨 TIMEOUT BYPASS BLOCKED - lifted by {lifted_by}",
            )
        except ActionFailure as e:
            logger.warning("Timeout Re-apply Failed", [
                ("Guild", str(guild_id)),
                ("Member", str(member)),
                ("Error", e.message),
            ])

        state.log(
            "TIMEOUT_BYPASS_BLOCKED",
            f"Timeout lifted early by {lifted_by}, re-applied for {int(remaining)}s",
            now,
            executor=executor,
            target=member,
        )
        logger.tree("TIMEOUT BYPASS BLOCKED", [
            ("Guild", str(guild_id)),
            ("Member", str(member)),
            ("Lifted By", lifted_by),
            ("Remaining", f"{int(remaining)}s"),
        ], emoji="⛔")
        return "reapplied"


__all__ = [
    "TimeoutEnforcer",
]
