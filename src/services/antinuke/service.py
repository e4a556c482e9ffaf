"""
ShieldBot - Anti-Nuke Service
=============================

Engine facade: routes events through counters, policy and executor,
runs the maintenance loops and exposes operator controls.

DESIGN:
    Data flow for an administrative event:
        SecurityEvent -> burst signal counters -> evaluate() -> Decision
        -> MitigationExecutor -> GuildState / emergency -> Notifier

    Member joins, removals and updates have their own entry points since
    they feed the raid monitor, the mass-removal signal and the timeout
    enforcer rather than the policy.

    All state changes happen synchronously between awaits. The only
    awaits are collaborator calls, and every collaborator failure is
    caught here or in the executor.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import asyncio
import dataclasses
import time
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

import discord

from src.core.logger import logger

from . import emergency
from .alerts import Notifier
from .constants import (
    CHANNEL_SUSPICIOUS_KEYWORDS,
    RAID_DURATION,
    ROLE_SUSPICIOUS_KEYWORDS,
    STATUS_REFRESH_THROTTLE,
)
from .counters import RateGuard
from .errors import ActionFailure, StateInconsistency
from .executor import ExecutionResult, MitigationExecutor
from .models import (
    CATEGORY_ACTION_KINDS,
    ActionKind,
    ControlResult,
    CounterKey,
    Decision,
    EventCategory,
    GuildSnapshot,
    Identity,
    PolicySnapshot,
    RaidTransition,
    SecurityEvent,
    Target,
    TimeoutRecord,
    Verdict,
)
from .platform import AuditResolver, PlatformActions
from .policy import evaluate
from .raid import RaidMonitor
from .state import GuildState, StateStore
from .timeouts import TimeoutEnforcer


CHANNEL_MODIFY_VERDICTS = {
    "ban": Verdict.BAN,
    "kick": Verdict.KICK,
    "timeout": Verdict.TIMEOUT,
}


# =============================================================================
# Anti-Nuke Service
# =============================================================================

class AntiNukeService:
    """
    Detects and stops nukes and raids.

    Features:
        - Zero-tolerance channel/webhook protection
        - Role creation/modification checks with revert
        - Unauthorized bot blocking
        - Mass ban / mass removal / mass join detection
        - Timeout bypass re-enforcement
    """

    def __init__(
        self,
        platform: PlatformActions,
        resolver: AuditResolver,
        notifier: Optional[Notifier] = None,
        *,
        self_id: int = 0,
        clock: Callable[[], float] = time.time,
        channel_modify_action: str = "ban",
        extra_keywords: FrozenSet[str] = frozenset(),
        raid_duration: float = RAID_DURATION,
    ) -> None:
        self.platform = platform
        self.resolver = resolver
        self.notifier = notifier
        self.self_id = self_id
        self._clock = clock

        self.store = StateStore(clock=clock)
        self.rate_guard = RateGuard(clock=clock)
        self.executor = MitigationExecutor(self.store, platform, self.rate_guard, clock=clock)
        self.raids = RaidMonitor(duration=raid_duration, clock=clock)
        self.timeouts = TimeoutEnforcer(self.store, platform, resolver, clock=clock)

        self.role_keywords = ROLE_SUSPICIOUS_KEYWORDS | extra_keywords
        self.channel_keywords = CHANNEL_SUSPICIOUS_KEYWORDS | extra_keywords
        self.channel_modify_verdict = CHANNEL_MODIFY_VERDICTS[channel_modify_action]

        self.task: Optional[asyncio.Task] = None
        self.running: bool = False

        logger.tree("Anti-Nuke Service Loaded", [
            ("Channels", "Zero tolerance (create/delete/modify)"),
            ("Channel Modify Action", channel_modify_action.upper()),
            ("Roles", "Keyword + permission + burst checks"),
            ("Bots", "Whitelist only"),
            ("Raid", "5 joins / 10s"),
            ("Raid Lockdown", f"{int(raid_duration)}s"),
        ], emoji="🛡️")

    # =========================================================================
    # Guild Sync
    # =========================================================================

    def sync_guild(self, guild_id: int, owner_id: int, bot_ids: Iterable[int] = ()) -> GuildState:
        """
        Refresh the owner and whitelist every bot already in the guild.

        Called on startup and when the bot joins a guild, since no state
        survives a restart.
        """
        state = self.store.get(guild_id)
        state.owner_id = owner_id

        added = 0
        for bot_id in bot_ids:
            if bot_id not in state.whitelisted_bot_ids:
                state.whitelisted_bot_ids.add(bot_id)
                added += 1

        if added:
            state.log("BOTS_WHITELISTED", f"{added} existing bots whitelisted on startup", self._clock())
        logger.tree("Guild Synced", [
            ("Guild", str(guild_id)),
            ("Owner", str(owner_id)),
            ("Bots Whitelisted", str(added)),
        ], emoji="🔄")
        return state

    def policy_snapshot(self, state: GuildState) -> PolicySnapshot:
        return PolicySnapshot(
            owner_id=state.owner_id,
            self_id=self.self_id,
            whitelisted_bot_ids=frozenset(state.whitelisted_bot_ids),
            whitelisted_role_ids=frozenset(state.whitelisted_role_ids),
            role_keywords=self.role_keywords,
            channel_keywords=self.channel_keywords,
            channel_modify_verdict=self.channel_modify_verdict,
        )

    def _is_trusted(self, state: GuildState, actor: Optional[Identity]) -> bool:
        """Owner, the bot itself, or a whitelisted bot."""
        if actor is None:
            return False
        return actor.id in (state.owner_id, self.self_id) or actor.id in state.whitelisted_bot_ids

    # =========================================================================
    # Signals
    # =========================================================================

    def _burst_count(self, state: GuildState, event: SecurityEvent) -> int:
        """Record the event against its burst signal and return the count."""
        now = event.timestamp
        if event.actor is not None and event.actor.id == self.self_id:
            return 0
        if event.category == EventCategory.ROLE_CREATE:
            scope = event.actor.id if event.actor else 0
            return state.signals.record(CounterKey(scope, ActionKind.ROLE_CREATE), now)
        if event.category == EventCategory.ROLE_DELETE:
            return state.signals.record(CounterKey(state.guild_id, ActionKind.ROLE_DELETE), now)
        if event.category == EventCategory.MEMBER_BAN:
            return state.signals.record(CounterKey(state.guild_id, ActionKind.MEMBER_BAN), now)
        return 0

    def _track_mass_action(
        self, state: GuildState, actor: Optional[Identity], kind: ActionKind, now: float
    ) -> bool:
        """Record a per-actor action. Crossing its threshold escalates."""
        if actor is None or self._is_trusted(state, actor):
            return False
        if not state.mass_actions.exceeded(CounterKey(actor.id, kind), now):
            return False

        state.log(
            "MASS_ACTION_DETECTED",
            f"{kind.value} threshold reached by {actor}",
            now,
            executor=actor,
        )
        logger.tree("MASS ACTION DETECTED", [
            ("Guild", str(state.guild_id)),
            ("Actor", str(actor)),
            ("Action", kind.value),
        ], emoji="⚠️")
        emergency.escalate(state, f"Mass {kind.value} by {actor}")
        return True

    # =========================================================================
    # Administrative Events
    # =========================================================================

    async def handle_event(self, event: SecurityEvent) -> Decision:
        """
        Evaluate and mitigate one administrative event.

        Returns:
            The decision taken, for callers and tests.
        """
        state = self.store.get(event.guild_id)
        if event.owner_id:
            state.owner_id = event.owner_id
        self.store.global_stats.events_processed += 1

        event = dataclasses.replace(event, burst_count=self._burst_count(state, event))

        kind = CATEGORY_ACTION_KINDS.get(event.category)
        if kind is not None and kind in state.mass_actions.limits:
            self._track_mass_action(state, event.actor, kind, event.timestamp)

        decision = evaluate(event, self.policy_snapshot(state))

        if decision.is_noop:
            logger.debug("Event Allowed", [
                ("Guild", str(event.guild_id)),
                ("Category", event.category.value),
                ("Actor", str(event.actor) if event.actor else "unknown"),
                ("Reason", decision.reason),
            ])
            return decision

        result = await self.executor.execute(event, decision)

        if decision.is_sanction and not result.suppressed:
            self._record_nuke_attempt(state, event, decision)

        logger.tree("Security Decision", [
            ("Guild", str(event.guild_id)),
            ("Category", event.category.value),
            ("Actor", str(event.actor) if event.actor else "unknown"),
            ("Verdict", decision.verdict.value.upper()),
            ("Reason", decision.reason[:100]),
            ("Failures", ", ".join(result.failures) or "None"),
        ], emoji="🛡️")

        if not result.suppressed:
            await self._notify_incident(event, decision, result)
        await self._maybe_refresh(event.guild_id)
        return decision

    def _record_nuke_attempt(self, state: GuildState, event: SecurityEvent, decision: Decision) -> None:
        state.stats.nuke_attempts += 1
        self.store.global_stats.nuke_attempts += 1
        state.log(
            "NUKE_ATTEMPT_BLOCKED",
            decision.reason,
            event.timestamp,
            executor=event.actor,
        )
        emergency.escalate(state, decision.reason)

    # =========================================================================
    # Member Events
    # =========================================================================

    async def handle_bot_join(self, guild_id: int, bot: Target, owner_id: int = 0) -> Decision:
        """
        Handle a bot joining the guild.

        A bot that is not whitelisted is kicked before the audit lookup.
        The adder is resolved afterwards and judged like any BOT_ADD.
        """
        state = self.store.get(guild_id)
        if owner_id:
            state.owner_id = owner_id

        if bot.id not in state.whitelisted_bot_ids:
            await self.executor.remove_bot_now(guild_id, bot)

        actor = await self.resolver.resolve_executor(
            guild_id, discord.AuditLogAction.bot_add, target_id=bot.id,
        )
        return await self.handle_event(SecurityEvent(
            category=EventCategory.BOT_ADD,
            guild_id=guild_id,
            owner_id=state.owner_id,
            timestamp=self._clock(),
            actor=actor,
            target=bot,
        ))

    async def handle_member_join(
        self,
        guild_id: int,
        member: Identity,
        owner_id: int = 0,
        timestamp: Optional[float] = None,
    ) -> RaidTransition:
        """Feed a human join into the raid monitor."""
        state = self.store.get(guild_id)
        if owner_id:
            state.owner_id = owner_id
        now = self._clock() if timestamp is None else timestamp

        transition = self.raids.record_join(guild_id, now)

        if transition == RaidTransition.ACTIVATED:
            await self._activate_raid(state, now)
        elif transition == RaidTransition.OBSERVED:
            state.log("RAID_JOIN_OBSERVED", f"{member} joined during raid lockdown", now, target=member)
            logger.tree("Raid Join Observed", [
                ("Guild", str(guild_id)),
                ("Member", str(member)),
            ], emoji="👀")
        elif transition == RaidTransition.EXPIRED:
            self._log_raid_expired(state, now)

        return transition

    async def _activate_raid(self, state: GuildState, now: float) -> None:
        guild_id = state.guild_id
        raid = self.raids.get(guild_id)
        expires_at = raid.expires_at if raid and raid.expires_at else now + self.raids.duration

        deleted = 0
        try:
            invites = await self.platform.list_invites(guild_id)
        except ActionFailure as e:
            logger.warning("Invite List Failed", [("Guild", str(guild_id)), ("Error", e.message)])
            invites = []

        for invite in invites:
            if invite.max_age <= 0:
                continue
            try:
                await self.platform.delete_invite(guild_id, invite.code, "🚨 ANTI-RAID PROTECTION - Mass join detected")
                deleted += 1
            except ActionFailure as e:
                logger.warning("Invite Delete Failed", [
                    ("Guild", str(guild_id)),
                    ("Invite", invite.code),
                    ("Error", e.message),
                ])

        self.store.global_stats.raids_detected += 1
        state.log(
            "MASS_JOIN_RAID_ACTIVATED",
            f"Mass join detected, {deleted} invites deleted",
            now,
        )
        emergency.escalate(state, "Mass join raid")
        logger.tree("RAID LOCKDOWN ACTIVATED", [
            ("Guild", str(guild_id)),
            ("Invites Deleted", str(deleted)),
            ("Expires In", f"{int(expires_at - now)}s"),
        ], emoji="🚨")

        if self.notifier is not None:
            try:
                await self.notifier.raid_activated(guild_id, state.owner_id, expires_at, deleted)
            except Exception as e:
                logger.error("Raid Alert Failed", [
                    ("Guild", str(guild_id)),
                    ("Error", str(e)[:100]),
                    ("Type", type(e).__name__),
                ])
        await self._maybe_refresh(guild_id)

    def _log_raid_expired(self, state: GuildState, now: float) -> None:
        state.log("RAID_EXPIRED", "Raid lockdown expired", now)
        logger.tree("Raid Lockdown Expired", [("Guild", str(state.guild_id))], emoji="⌛")

    async def handle_member_remove(
        self,
        guild_id: int,
        member: Identity,
        kicked_by: Optional[Identity] = None,
        timestamp: Optional[float] = None,
    ) -> bool:
        """
        Track a member leaving.

        Kicks attributed through the audit log count against the kicker.
        Unattributed human departures feed the guild-wide mass-removal
        signal.

        Returns:
            True if a mass removal was detected.
        """
        state = self.store.get(guild_id)
        now = self._clock() if timestamp is None else timestamp

        if kicked_by is not None:
            self._track_mass_action(state, kicked_by, ActionKind.MEMBER_KICK, now)
            return False
        if member.is_bot:
            return False

        count = state.signals.record(CounterKey(guild_id, ActionKind.MEMBER_REMOVE), now)
        if count < state.signals.limits[ActionKind.MEMBER_REMOVE].threshold:
            return False

        state.log("MASS_REMOVAL_DETECTED", f"{count} members left within 10s", now, target=member)
        logger.tree("MASS REMOVAL DETECTED", [
            ("Guild", str(guild_id)),
            ("Departures", str(count)),
        ], emoji="⚠️")
        emergency.escalate(state, "Mass member removal")
        await self._maybe_refresh(guild_id)
        return True

    async def handle_member_update(
        self,
        guild_id: int,
        member: Identity,
        timed_out: bool,
    ) -> Optional[str]:
        """Re-enforce a tracked timeout that was lifted early."""
        outcome = await self.timeouts.handle_member_update(guild_id, member, timed_out)
        if outcome is not None:
            await self._maybe_refresh(guild_id)
        return outcome

    # =========================================================================
    # Maintenance
    # =========================================================================

    def sweep(self, now: Optional[float] = None) -> None:
        """
        Periodic maintenance.

        Prunes counters and dedup markers, expires raids and relaxes
        emergency mode for guilds that have been quiet.
        """
        now = self._clock() if now is None else now

        self.rate_guard.clear()
        self.executor.prune(now)

        for guild_id in self.raids.expire_due(now):
            self._log_raid_expired(self.store.get(guild_id), now)

        for state in self.store:
            state.mass_actions.sweep(now)
            state.signals.sweep(now)
            emergency.maybe_relax(state, now)

    async def start(self, sweep_interval: float = 30.0, timeout_interval: float = 30.0) -> None:
        if self.task and not self.task.done():
            self.task.cancel()

        self.running = True
        self.task = asyncio.create_task(self._sweep_loop(sweep_interval))
        await self.timeouts.start(timeout_interval)

        logger.tree("Anti-Nuke Maintenance Started", [
            ("Sweep Interval", f"{int(sweep_interval)}s"),
            ("Timeout Interval", f"{int(timeout_interval)}s"),
        ], emoji="⏰")

    async def stop(self) -> None:
        self.running = False
        if self.task and not self.task.done():
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
        await self.timeouts.stop()
        logger.info("Anti-Nuke Maintenance Stopped")

    async def _sweep_loop(self, interval: float) -> None:
        while self.running:
            try:
                await asyncio.sleep(interval)
                self.sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Anti-Nuke Sweep Error", [
                    ("Error", str(e)[:100]),
                    ("Type", type(e).__name__),
                ])

    # =========================================================================
    # Operator Controls
    # =========================================================================

    def _deny(self, state: GuildState, requester_id: int) -> Optional[ControlResult]:
        if requester_id != state.owner_id:
            logger.warning("Control Denied", [
                ("Guild", str(state.guild_id)),
                ("Requester", str(requester_id)),
            ])
            return ControlResult(False, "Only the server owner can use this.")
        return None

    def toggle_monitoring(self, guild_id: int, requester_id: int) -> ControlResult:
        state = self.store.get(guild_id)
        denied = self._deny(state, requester_id)
        if denied:
            return denied

        state.monitoring = not state.monitoring
        status = "enabled" if state.monitoring else "disabled"
        state.log("MONITORING_TOGGLED", f"24/7 monitoring {status}", self._clock())
        logger.tree("24/7 Monitoring Toggled", [
            ("Guild", str(guild_id)),
            ("Status", status),
        ], emoji="📡")
        return ControlResult(True, f"24/7 monitoring {status}.")

    def add_bot_to_whitelist(self, guild_id: int, requester_id: int, bot_id: int) -> ControlResult:
        state = self.store.get(guild_id)
        denied = self._deny(state, requester_id)
        if denied:
            return denied

        if bot_id in state.whitelisted_bot_ids:
            return ControlResult(True, f"Bot {bot_id} is already whitelisted.")

        state.whitelisted_bot_ids.add(bot_id)
        state.flagged_bot_ids.discard(bot_id)
        state.log("BOT_WHITELISTED", f"Bot {bot_id} whitelisted", self._clock(), target=Identity(id=bot_id, is_bot=True))
        logger.tree("Bot Whitelisted", [("Guild", str(guild_id)), ("Bot", str(bot_id))], emoji="🤖")
        return ControlResult(True, f"Bot {bot_id} whitelisted.")

    async def remove_bot_from_whitelist(self, guild_id: int, requester_id: int, bot_id: int) -> ControlResult:
        """Drop a bot from the whitelist and remove it from the guild."""
        state = self.store.get(guild_id)
        denied = self._deny(state, requester_id)
        if denied:
            return denied

        if bot_id not in state.whitelisted_bot_ids:
            return ControlResult(False, f"Bot {bot_id} is not whitelisted.")

        state.whitelisted_bot_ids.discard(bot_id)
        state.log("BOT_UNWHITELISTED", f"Bot {bot_id} removed from whitelist", self._clock(),
                  target=Identity(id=bot_id, is_bot=True))

        removed = True
        try:
            await self.platform.kick(guild_id, bot_id, "🚫 Removed from bot whitelist")
        except ActionFailure as e:
            removed = False
            logger.warning("Whitelist Bot Removal Failed", [
                ("Guild", str(guild_id)),
                ("Bot", str(bot_id)),
                ("Error", e.message),
            ])

        logger.tree("Bot Removed From Whitelist", [
            ("Guild", str(guild_id)),
            ("Bot", str(bot_id)),
            ("Kicked", "Yes" if removed else "No"),
        ], emoji="🤖")
        suffix = " and removed from the server" if removed else ""
        return ControlResult(True, f"Bot {bot_id} removed from whitelist{suffix}.")

    def add_role_to_whitelist(self, guild_id: int, requester_id: int, role_id: int) -> ControlResult:
        state = self.store.get(guild_id)
        denied = self._deny(state, requester_id)
        if denied:
            return denied

        if role_id in state.whitelisted_role_ids:
            return ControlResult(True, f"Role {role_id} is already whitelisted.")

        state.whitelisted_role_ids.add(role_id)
        state.log("ROLE_WHITELISTED", f"Role {role_id} whitelisted (kick instead of ban)", self._clock())
        return ControlResult(True, f"Role {role_id} whitelisted. Members with it are kicked instead of banned.")

    def remove_role_from_whitelist(self, guild_id: int, requester_id: int, role_id: int) -> ControlResult:
        state = self.store.get(guild_id)
        denied = self._deny(state, requester_id)
        if denied:
            return denied

        if role_id not in state.whitelisted_role_ids:
            return ControlResult(False, f"Role {role_id} is not whitelisted.")

        state.whitelisted_role_ids.discard(role_id)
        state.log("ROLE_UNWHITELISTED", f"Role {role_id} removed from whitelist", self._clock())
        return ControlResult(True, f"Role {role_id} removed from whitelist.")

    def _require_timeout(self, state: GuildState, user_id: int) -> TimeoutRecord:
        record = state.active_timeouts.get(user_id)
        if record is None:
            raise StateInconsistency(f"User {user_id} has no active timeout", state.guild_id)
        return record

    async def release_timeout(self, guild_id: int, requester_id: int, user_id: int) -> ControlResult:
        """Lift an engine-imposed timeout. The record goes first so the lift is not seen as a bypass."""
        state = self.store.get(guild_id)
        denied = self._deny(state, requester_id)
        if denied:
            return denied

        try:
            self._require_timeout(state, user_id)
        except StateInconsistency as e:
            return ControlResult(False, e.message)

        del state.active_timeouts[user_id]
        try:
            await self.platform.timeout(guild_id, user_id, None, "✅ Timeout released by server owner")
        except ActionFailure as e:
            logger.warning("Timeout Release Failed", [
                ("Guild", str(guild_id)),
                ("User", str(user_id)),
                ("Error", e.message),
            ])

        state.log("TIMEOUT_RELEASED", f"Timeout released for {user_id}", self._clock(),
                  executor=Identity(id=requester_id), target=Identity(id=user_id))
        logger.tree("Timeout Released", [("Guild", str(guild_id)), ("User", str(user_id))], emoji="🔓")
        return ControlResult(True, f"Timeout released for <@{user_id}>.")

    def release_raid(self, guild_id: int, requester_id: int) -> ControlResult:
        state = self.store.get(guild_id)
        denied = self._deny(state, requester_id)
        if denied:
            return denied

        if not self.raids.release(guild_id):
            return ControlResult(False, "No active raid lockdown.")

        state.log("INVITES_RELEASED", "Raid lockdown released by server owner", self._clock(),
                  executor=Identity(id=requester_id))
        logger.tree("Raid Lockdown Released", [
            ("Guild", str(guild_id)),
            ("By", str(requester_id)),
        ], emoji="🔓")
        return ControlResult(True, "Raid lockdown released. New invites can be created again.")

    # =========================================================================
    # Observability
    # =========================================================================

    def snapshot(self, guild_id: int) -> GuildSnapshot:
        state = self.store.get(guild_id)
        raid = self.raids.get(guild_id)
        return GuildSnapshot(
            guild_id=guild_id,
            stats=dataclasses.replace(state.stats),
            emergency_mode=state.emergency_mode,
            raid_active=bool(raid and raid.active),
            raid_expires_at=raid.expires_at if raid and raid.active else None,
            active_timeout_count=len(state.active_timeouts),
            whitelisted_bots=len(state.whitelisted_bot_ids),
            whitelisted_roles=len(state.whitelisted_role_ids),
            monitoring=state.monitoring,
        )

    def global_snapshot(self) -> Dict[str, Any]:
        stats = self.store.global_stats
        return {
            "guilds": len(self.store),
            "raid_active_guilds": [str(g) for g in self.raids.active_guilds()],
            "emergency_guilds": [str(s.guild_id) for s in self.store if s.emergency_mode],
            "stats": dataclasses.asdict(stats),
        }

    def any_raid_active(self) -> bool:
        return self.raids.any_active()

    def monitored_guilds(self) -> List[int]:
        return [state.guild_id for state in self.store if state.monitoring]

    def should_refresh_status(self, guild_id: int, now: Optional[float] = None) -> bool:
        """At most one status refresh per guild per second."""
        state = self.store.get(guild_id)
        now = self._clock() if now is None else now
        if now - state.last_status_refresh < STATUS_REFRESH_THROTTLE:
            return False
        state.last_status_refresh = now
        return True

    # =========================================================================
    # Notifications
    # =========================================================================

    async def _notify_incident(self, event: SecurityEvent, decision: Decision, result: ExecutionResult) -> None:
        if self.notifier is None:
            return
        try:
            await self.notifier.incident(event, decision, result)
        except Exception as e:
            logger.error("Incident Alert Failed", [
                ("Guild", str(event.guild_id)),
                ("Error", str(e)[:100]),
                ("Type", type(e).__name__),
            ])

    async def _maybe_refresh(self, guild_id: int) -> None:
        if self.notifier is None or not self.should_refresh_status(guild_id):
            return
        try:
            await self.notifier.refresh_status(guild_id)
        except Exception as e:
            logger.error("Status Refresh Failed", [
                ("Guild", str(guild_id)),
                ("Error", str(e)[:100]),
                ("Type", type(e).__name__),
            ])


__all__ = [
    "AntiNukeService",
    "CHANNEL_MODIFY_VERDICTS",
]
