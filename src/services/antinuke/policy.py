"""
ShieldBot - Policy Evaluator
============================

Pure decision function: one SecurityEvent in, one Decision out.

DESIGN:
    Precedence is fixed and shared by every category:
        owner / self > unknown actor > whitelisted bot
        > category trigger > whitelisted role (KICK) > BAN

    The category rules only answer "does this trigger, and why". The
    ladder decides what to do about it. No I/O happens here; burst
    counts arrive pre-computed on the event.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from typing import Callable, Dict, FrozenSet, NamedTuple

from .constants import SIGNAL_LIMITS
from .models import (
    ActionKind,
    Decision,
    EventCategory,
    PolicySnapshot,
    SecurityEvent,
    Verdict,
)


# =============================================================================
# Trigger Result
# =============================================================================

class Trigger(NamedTuple):
    """Category rule outcome."""

    fired: bool
    reason: str = ""
    revert: bool = False


NO_TRIGGER = Trigger(False)

# Categories whose change is undone when the actor cannot be resolved
DESTRUCTIVE_CATEGORIES = frozenset({
    EventCategory.CHANNEL_CREATE,
    EventCategory.CHANNEL_DELETE,
    EventCategory.ROLE_CREATE,
    EventCategory.ROLE_DELETE,
    EventCategory.ROLE_UPDATE,
})


# =============================================================================
# Helpers
# =============================================================================

def matches_keyword(name: str, keywords: FrozenSet[str]) -> bool:
    """Case-insensitive substring match against a keyword set."""
    lowered = (name or "").lower()
    return any(keyword in lowered for keyword in keywords)


def _fmt_perms(perms: FrozenSet[str]) -> str:
    return ", ".join(sorted(perms))


# =============================================================================
# Category Rules
# =============================================================================

def _channel_create(event: SecurityEvent, snapshot: PolicySnapshot) -> Trigger:
    reason = f'UNAUTHORIZED CHANNEL CREATION: "{event.target.name}"'
    if matches_keyword(event.target.name, snapshot.channel_keywords):
        reason += " (suspicious name)"
    return Trigger(True, reason, revert=True)


def _channel_delete(event: SecurityEvent, snapshot: PolicySnapshot) -> Trigger:
    return Trigger(True, f'UNAUTHORIZED CHANNEL DELETION: Deleted "{event.target.name}"', revert=True)


def _channel_update(event: SecurityEvent, snapshot: PolicySnapshot) -> Trigger:
    diff = event.diff
    if not (diff.name_changed or diff.position_changed or diff.overwrites_changed):
        return NO_TRIGGER

    if diff.name_changed:
        return Trigger(True, f"UNAUTHORIZED CHANNEL MODIFICATION: #{diff.old_name} → #{diff.new_name}")

    changes = []
    if diff.position_changed:
        changes.append("position")
    if diff.overwrites_changed:
        changes.append("permissions")
    return Trigger(
        True,
        f"UNAUTHORIZED CHANNEL MODIFICATION: #{event.target.name} ({', '.join(changes)})",
    )


def _webhook_create(event: SecurityEvent, snapshot: PolicySnapshot) -> Trigger:
    channel = event.target.channel_name or "unknown"
    return Trigger(True, f"UNAUTHORIZED WEBHOOK CREATION IN: #{channel}", revert=True)


def _role_create(event: SecurityEvent, snapshot: PolicySnapshot) -> Trigger:
    name = event.target.name
    reasons = []
    if matches_keyword(name, snapshot.role_keywords):
        reasons.append("suspicious name")
    if event.diff.new_dangerous:
        reasons.append(f"dangerous permissions: {_fmt_perms(event.diff.new_dangerous)}")
    if event.burst_count >= SIGNAL_LIMITS[ActionKind.ROLE_CREATE].threshold:
        reasons.append(f"{event.burst_count} roles created rapidly")

    if not reasons:
        return NO_TRIGGER
    return Trigger(True, f'MALICIOUS ROLE CREATION: "{name}" ({"; ".join(reasons)})', revert=True)


def _role_update(event: SecurityEvent, snapshot: PolicySnapshot) -> Trigger:
    diff = event.diff
    added = diff.added_dangerous
    renamed_suspicious = (
        matches_keyword(diff.new_name or "", snapshot.role_keywords)
        and not matches_keyword(diff.old_name or "", snapshot.role_keywords)
    )
    if not added and not renamed_suspicious:
        return NO_TRIGGER

    reason = f"MALICIOUS ROLE MODIFICATION: {diff.old_name} → {diff.new_name}"
    if added:
        reason += f" (added {_fmt_perms(added)})"
    return Trigger(True, reason, revert=True)


def _role_delete(event: SecurityEvent, snapshot: PolicySnapshot) -> Trigger:
    if event.burst_count < SIGNAL_LIMITS[ActionKind.ROLE_DELETE].threshold:
        return NO_TRIGGER
    return Trigger(
        True,
        f'ROLE MASS DELETION: "{event.target.name}" ({event.burst_count} roles deleted in 5s)',
        revert=True,
    )


def _bot_add(event: SecurityEvent, snapshot: PolicySnapshot) -> Trigger:
    if event.target.id in snapshot.whitelisted_bot_ids:
        return NO_TRIGGER
    return Trigger(True, f'UNAUTHORIZED BOT ADDITION: Added bot "{event.target.name}"')


def _member_ban(event: SecurityEvent, snapshot: PolicySnapshot) -> Trigger:
    if event.burst_count < SIGNAL_LIMITS[ActionKind.MEMBER_BAN].threshold:
        return NO_TRIGGER
    return Trigger(True, f"MASS BAN ATTEMPT: {event.burst_count} bans in 10s")


RULES: Dict[EventCategory, Callable[[SecurityEvent, PolicySnapshot], Trigger]] = {
    EventCategory.CHANNEL_CREATE: _channel_create,
    EventCategory.CHANNEL_DELETE: _channel_delete,
    EventCategory.CHANNEL_UPDATE: _channel_update,
    EventCategory.WEBHOOK_CREATE: _webhook_create,
    EventCategory.ROLE_CREATE: _role_create,
    EventCategory.ROLE_UPDATE: _role_update,
    EventCategory.ROLE_DELETE: _role_delete,
    EventCategory.BOT_ADD: _bot_add,
    EventCategory.MEMBER_BAN: _member_ban,
}


# =============================================================================
# Rule Ladder
# =============================================================================

def evaluate(event: SecurityEvent, snapshot: PolicySnapshot) -> Decision:
    """
    Decide what to do about one event.

    Args:
        event: The normalized event, with burst_count filled in.
        snapshot: Whitelist state of the guild at evaluation time.

    Returns:
        Decision with the verdict, a reason, and whether to revert the
        change and/or remove an unauthorized bot first.
    """
    remove_bot = (
        event.category == EventCategory.BOT_ADD
        and event.target.id not in snapshot.whitelisted_bot_ids
    )
    actor = event.actor

    # 1. Owner and the bot itself are never sanctioned
    if actor is not None and actor.id in (snapshot.owner_id, snapshot.self_id):
        return Decision(Verdict.ALLOW, "trusted actor", remove_bot=remove_bot)

    trigger = RULES[event.category](event, snapshot)

    # 2. Unknown actor: undo destructive changes, sanction nobody
    if actor is None:
        if trigger.fired and event.category in DESTRUCTIVE_CATEGORIES:
            return Decision(Verdict.REVERT, trigger.reason, revert=True, remove_bot=remove_bot)
        return Decision(Verdict.ALLOW, "unknown executor", remove_bot=remove_bot)

    # 3. Whitelisted bots
    if actor.id in snapshot.whitelisted_bot_ids:
        return Decision(Verdict.ALLOW, "whitelisted bot", remove_bot=remove_bot)

    # 4. Category rule
    if not trigger.fired:
        return Decision(Verdict.ALLOW, "no trigger", remove_bot=remove_bot)

    severity = Verdict.BAN
    if event.category == EventCategory.CHANNEL_UPDATE:
        severity = snapshot.channel_modify_verdict

    # 5. Whitelisted role: removal, never a ban
    if actor.role_ids & snapshot.whitelisted_role_ids:
        verdict = Verdict.TIMEOUT if severity == Verdict.TIMEOUT else Verdict.KICK
        return Decision(
            verdict, trigger.reason, revert=trigger.revert, remove_bot=remove_bot, whitelisted_role=True,
        )

    # 6. Everyone else
    return Decision(severity, trigger.reason, revert=trigger.revert, remove_bot=remove_bot)


__all__ = [
    "Trigger",
    "RULES",
    "DESTRUCTIVE_CATEGORIES",
    "matches_keyword",
    "evaluate",
]
