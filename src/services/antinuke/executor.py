"""
ShieldBot - Mitigation Executor
===============================

Turns a Decision into platform calls and state updates.

DESIGN:
    Three ordered steps, each caught and logged on its own:
        1. Remove the unauthorized bot (if flagged, and not already
           kicked by remove_bot_now on join)
        2. Revert the structural change (if flagged)
        3. Sanction the actor (BAN / KICK / TIMEOUT)

    A failed step never blocks the next one and is never retried.
    Stats count the attempt regardless of outcome. Every sanction attempt
    first passes the Rate Guard (3 per actor and verdict per second), then
    a 1 second per-event dedup, so duplicate gateway deliveries of one
    event produce a single platform call.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Hashable, List, Optional, Tuple

from src.core.logger import logger

from .constants import (
    AUDIT_STALENESS,
    BAN_REASON_PREFIX,
    KICK_REASON_PREFIX,
    MAX_TIMEOUT_SECONDS,
    SANCTION_DEDUP_WINDOW,
)
from .counters import RateGuard
from .errors import ActionFailure
from .models import (
    Decision,
    EventCategory,
    Identity,
    SecurityEvent,
    Target,
    TimeoutRecord,
    Verdict,
)
from .platform import PlatformActions
from .state import GuildState, StateStore


# Entity kind deleted to undo a creation
REVERT_DELETES: Dict[EventCategory, str] = {
    EventCategory.CHANNEL_CREATE: "channel",
    EventCategory.ROLE_CREATE: "role",
    EventCategory.WEBHOOK_CREATE: "webhook",
}


# =============================================================================
# Result
# =============================================================================

@dataclass
class ExecutionResult:
    """What the executor actually did for one decision."""

    bot_removed: bool = False
    reverted: bool = False
    sanctioned: bool = False
    suppressed: bool = False
    rate_limited: bool = False
    failures: List[str] = field(default_factory=list)


# =============================================================================
# Mitigation Executor
# =============================================================================

class MitigationExecutor:
    """Applies decisions through PlatformActions."""

    def __init__(
        self,
        store: StateStore,
        platform: PlatformActions,
        rate_guard: Optional[RateGuard] = None,
        clock: Callable[[], float] = time.time,
        dedup_window: float = SANCTION_DEDUP_WINDOW,
    ) -> None:
        self.store = store
        self.platform = platform
        self.rate_guard = rate_guard or RateGuard(clock=clock)
        self.dedup_window = dedup_window
        self._clock = clock
        self._recent: Dict[Tuple[Hashable, ...], float] = {}
        self._early_removals: Dict[Tuple[int, int], Tuple[bool, float]] = {}

    # =========================================================================
    # Dedup
    # =========================================================================

    def _is_duplicate(self, key: Tuple[Hashable, ...], now: float) -> bool:
        """True if the same step ran for the same key within the dedup window."""
        last = self._recent.get(key)
        if last is not None and now - last < self.dedup_window:
            return True
        self._recent[key] = now
        return False

    def prune(self, now: Optional[float] = None) -> None:
        """Forget dedup markers older than the window."""
        now = self._clock() if now is None else now
        for key in [k for k, t in self._recent.items() if now - t >= self.dedup_window]:
            del self._recent[key]
        for key in [k for k, (_, t) in self._early_removals.items() if now - t >= AUDIT_STALENESS]:
            del self._early_removals[key]

    # =========================================================================
    # Entry Point
    # =========================================================================

    async def execute(self, event: SecurityEvent, decision: Decision) -> ExecutionResult:
        """Run the ordered side effects of a decision. Never raises ActionFailure."""
        result = ExecutionResult()
        if decision.is_noop:
            return result

        state = self.store.get(event.guild_id)
        now = self._clock()

        if decision.remove_bot:
            await self._remove_bot(state, event, now, result)

        if decision.revert:
            await self._revert(state, event, decision, now, result)

        if decision.is_sanction and event.actor is not None:
            await self._sanction(state, event, decision, now, result)

        return result

    # =========================================================================
    # Step 1: Unauthorized Bot
    # =========================================================================

    async def remove_bot_now(self, guild_id: int, bot: Target) -> bool:
        """
        Kick an unauthorized bot before its adder has been resolved.

        The outcome is held for the BOT_ADD decision that follows, whose
        removal step then records it without kicking a second time.

        Returns:
            True if the bot was kicked.
        """
        state = self.store.get(guild_id)
        now = self._clock()
        if self._is_duplicate((guild_id, "remove_bot", bot.id), now):
            return False

        result = ExecutionResult()
        await self._kick_bot(state, bot, result)
        self._early_removals[(guild_id, bot.id)] = (result.bot_removed, now)
        return result.bot_removed

    async def _kick_bot(self, state: GuildState, bot: Target, result: ExecutionResult) -> None:
        state.flagged_bot_ids.add(bot.id)
        try:
            await self.platform.kick(
                state.guild_id, bot.id, f'🚫 UNAUTHORIZED BOT - "{bot.name}" is not whitelisted'
            )
            result.bot_removed = True
        except ActionFailure as e:
            self._log_failure(state, "Remove Bot", bot.id, e, result)

    async def _remove_bot(
        self, state: GuildState, event: SecurityEvent, now: float, result: ExecutionResult
    ) -> None:
        bot_id = event.target.id
        early = self._early_removals.pop((state.guild_id, bot_id), None)
        if early is not None:
            result.bot_removed = early[0]
            if not result.bot_removed:
                result.failures.append("Remove Bot")
        elif self._is_duplicate((state.guild_id, "remove_bot", bot_id), now):
            return
        else:
            await self._kick_bot(state, event.target, result)

        state.stats.blocked_bots += 1
        self.store.global_stats.blocked_bots += 1
        adder = str(event.actor) if event.actor else "unknown"
        state.log(
            "UNAUTHORIZED_BOT_BLOCKED",
            f'Bot "{event.target.name}" added by {adder} was removed',
            now,
            executor=event.actor,
            target=Identity(id=bot_id, tag=event.target.name, is_bot=True),
        )
        logger.tree("UNAUTHORIZED BOT BLOCKED", [
            ("Guild", str(state.guild_id)),
            ("Bot", f"{event.target.name} ({bot_id})"),
            ("Added By", adder),
            ("Removed", "Yes" if result.bot_removed else "Failed"),
        ], emoji="🤖")

    # =========================================================================
    # Step 2: Revert
    # =========================================================================

    async def _revert(
        self,
        state: GuildState,
        event: SecurityEvent,
        decision: Decision,
        now: float,
        result: ExecutionResult,
    ) -> None:
        target = event.target
        if self._is_duplicate((state.guild_id, "revert", event.category, target.id), now):
            return

        reason = f"🛡️ ANTI-NUKE REVERT - {decision.reason}"
        try:
            if event.category == EventCategory.ROLE_UPDATE:
                if event.diff.old_permissions_value is None:
                    raise ActionFailure("Prior permissions unknown", state.guild_id, "Revert Role", target.id)
                await self.platform.revert_role(
                    state.guild_id, target.id,
                    event.diff.old_permissions_value,
                    event.diff.old_name or target.name,
                    reason,
                )
            elif event.category in REVERT_DELETES:
                await self.platform.delete_entity(
                    state.guild_id, REVERT_DELETES[event.category], target.id, reason
                )
            else:
                logger.warning("Change Cannot Be Reverted", [
                    ("Guild", str(state.guild_id)),
                    ("Category", event.category.value),
                    ("Target", f"{target.name} ({target.id})"),
                ])
                return
            result.reverted = True
        except ActionFailure as e:
            self._log_failure(state, "Revert", target.id, e, result)
            return

        state.log(
            "REVERTED",
            f"{event.category.value}: {target.name} reverted",
            now,
            executor=event.actor,
        )
        logger.tree("Change Reverted", [
            ("Guild", str(state.guild_id)),
            ("Category", event.category.value),
            ("Target", f"{target.name} ({target.id})"),
        ], emoji="↩️")

    # =========================================================================
    # Step 3: Sanction
    # =========================================================================

    async def _sanction(
        self,
        state: GuildState,
        event: SecurityEvent,
        decision: Decision,
        now: float,
        result: ExecutionResult,
    ) -> None:
        actor = event.actor
        verdict = decision.verdict

        if self.rate_guard.should_suppress(actor.id, verdict):
            result.suppressed = True
            result.rate_limited = True
            logger.debug("Sanction Rate Limited", [
                ("Actor", str(actor)),
                ("Verdict", verdict.value),
            ])
            return

        event_key = (state.guild_id, "sanction", event.category, event.target.id, verdict, actor.id)
        if self._is_duplicate(event_key, now):
            result.suppressed = True
            logger.debug("Duplicate Sanction Dropped", [
                ("Actor", str(actor)),
                ("Verdict", verdict.value),
            ])
            return

        if verdict == Verdict.BAN:
            await self._ban(state, actor, decision.reason, now, result)
        elif verdict == Verdict.KICK:
            await self._kick(state, actor, decision, now, result)
        elif verdict == Verdict.TIMEOUT:
            await self._timeout(state, actor, decision.reason, now, result)

    async def _strip(self, state: GuildState, actor: Identity, reason: str, result: ExecutionResult) -> None:
        try:
            await self.platform.strip_dangerous_roles(state.guild_id, actor.id, reason)
        except ActionFailure as e:
            self._log_failure(state, "Strip Roles", actor.id, e, result)

    async def _ban(
        self, state: GuildState, actor: Identity, reason: str, now: float, result: ExecutionResult
    ) -> None:
        if actor.has_dangerous_roles:
            await self._strip(state, actor, f"{BAN_REASON_PREFIX}{reason}", result)

        try:
            await self.platform.ban(state.guild_id, actor.id, f"{BAN_REASON_PREFIX}{reason}")
            result.sanctioned = True
        except ActionFailure as e:
            self._log_failure(state, "Ban", actor.id, e, result)

        state.stats.bans += 1
        self.store.global_stats.bans += 1
        state.log("BAN", reason, now, executor=actor, target=actor)
        self._log_sanction("USER BANNED", state, actor, reason, result, "🔨")

    async def _kick(
        self, state: GuildState, actor: Identity, decision: Decision, now: float, result: ExecutionResult
    ) -> None:
        reason = decision.reason
        if decision.whitelisted_role:
            prefix, title = KICK_REASON_PREFIX, "WHITELISTED USER KICKED"
        else:
            prefix, title = BAN_REASON_PREFIX, "USER KICKED"

        try:
            await self.platform.kick(state.guild_id, actor.id, f"{prefix}{reason}")
            result.sanctioned = True
        except ActionFailure as e:
            self._log_failure(state, "Kick", actor.id, e, result)

        state.stats.kicks += 1
        self.store.global_stats.kicks += 1
        state.log("KICK", f"{prefix}{reason}", now, executor=actor, target=actor)
        self._log_sanction(title, state, actor, reason, result, "👢")

    async def _timeout(
        self, state: GuildState, actor: Identity, reason: str, now: float, result: ExecutionResult
    ) -> None:
        await self._strip(state, actor, reason, result)

        duration = float(MAX_TIMEOUT_SECONDS)
        try:
            await self.platform.timeout(state.guild_id, actor.id, duration, f"{BAN_REASON_PREFIX}{reason}")
            result.sanctioned = True
        except ActionFailure as e:
            self._log_failure(state, "Timeout", actor.id, e, result)

        state.active_timeouts[actor.id] = TimeoutRecord(
            reason=reason, started_at=now, release_at=now + duration
        )
        state.stats.timeouts += 1
        self.store.global_stats.timeouts += 1
        state.log("TIMEOUT", reason, now, executor=actor, target=actor)
        self._log_sanction("USER TIMED OUT", state, actor, reason, result, "⏳")

    # =========================================================================
    # Logging
    # =========================================================================

    def _log_sanction(
        self,
        title: str,
        state: GuildState,
        actor: Identity,
        reason: str,
        result: ExecutionResult,
        emoji: str,
    ) -> None:
        logger.tree(title, [
            ("Guild", str(state.guild_id)),
            ("Actor", str(actor)),
            ("Reason", reason[:100]),
            ("Applied", "Yes" if result.sanctioned else "Failed"),
        ], emoji=emoji)

    def _log_failure(
        self,
        state: GuildState,
        step: str,
        target_id: int,
        error: ActionFailure,
        result: ExecutionResult,
    ) -> None:
        result.failures.append(step)
        logger.warning("Mitigation Step Failed", [
            ("Guild", str(state.guild_id)),
            ("Step", step),
            ("Target", str(target_id)),
            ("Error", error.message[:100]),
        ])


__all__ = [
    "ExecutionResult",
    "MitigationExecutor",
    "REVERT_DELETES",
]
