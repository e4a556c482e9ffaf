"""
ShieldBot - Platform Collaborators
==================================

Interfaces the engine calls for audit resolution and mitigation, plus
their discord.py implementations.

DESIGN:
    The engine only talks to PlatformActions and AuditResolver, so it
    can be driven by mocks in tests. The Discord implementations log
    HTTP failures through log_http_error and re-raise them as
    ActionFailure. Nothing here retries a destructive call.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Awaitable, List, NamedTuple, Optional, TypeVar

import discord

from src.core.logger import logger
from src.utils.discord_rate_limit import log_http_error

from .constants import (
    AUDIT_ATTEMPTS,
    AUDIT_BACKOFF,
    AUDIT_STALENESS,
    DANGEROUS_PERMISSIONS,
    MAX_TIMEOUT_SECONDS,
)
from .errors import ActionFailure, ResolutionFailure
from .models import Identity

if TYPE_CHECKING:
    from src.bot import ShieldBot

T = TypeVar("T")


# =============================================================================
# Helpers
# =============================================================================

class InviteInfo(NamedTuple):
    """Minimal invite view used for raid lockdown."""

    code: str
    max_age: int


def dangerous_permission_names(permissions: discord.Permissions) -> frozenset:
    """Names of the dangerous permissions set on a permission value."""
    return frozenset(name for name in DANGEROUS_PERMISSIONS if getattr(permissions, name, False))


def role_is_dangerous(role: discord.Role) -> bool:
    return bool(dangerous_permission_names(role.permissions))


def identity_from_user(user: discord.abc.User, guild: Optional[discord.Guild] = None) -> Identity:
    """
    Snapshot a user or member into an Identity.

    Role information is only available for members, so a plain User is
    looked up in the guild first.
    """
    member = user
    if guild is not None and not isinstance(user, discord.Member):
        member = guild.get_member(user.id) or user

    roles = [r for r in getattr(member, "roles", []) if not r.is_default()]
    return Identity(
        id=user.id,
        tag=str(user),
        is_bot=bool(getattr(user, "bot", False)),
        role_ids=frozenset(r.id for r in roles),
        has_dangerous_roles=any(role_is_dangerous(r) for r in roles),
    )


# =============================================================================
# Interfaces
# =============================================================================

class AuditResolver(ABC):
    """Answers "who did this" for a recent administrative event."""

    @abstractmethod
    async def resolve_executor(
        self,
        guild_id: int,
        action: discord.AuditLogAction,
        within: float = AUDIT_STALENESS,
        target_id: Optional[int] = None,
    ) -> Optional[Identity]:
        """Return the executor, or None when it cannot be resolved."""


class PlatformActions(ABC):
    """Mitigation calls against the platform. Failures raise ActionFailure."""

    @abstractmethod
    async def ban(self, guild_id: int, user_id: int, reason: str) -> None: ...

    @abstractmethod
    async def kick(self, guild_id: int, user_id: int, reason: str) -> None: ...

    @abstractmethod
    async def timeout(
        self, guild_id: int, user_id: int, duration: Optional[float], reason: str
    ) -> None:
        """Time out for `duration` seconds; None lifts an existing timeout."""

    @abstractmethod
    async def revert_role(
        self, guild_id: int, role_id: int, prior_permissions: int, prior_name: str, reason: str
    ) -> None: ...

    @abstractmethod
    async def delete_entity(self, guild_id: int, kind: str, entity_id: int, reason: str) -> None:
        """Delete a channel, role or webhook by id."""

    @abstractmethod
    async def list_invites(self, guild_id: int) -> List[InviteInfo]: ...

    @abstractmethod
    async def delete_invite(self, guild_id: int, code: str, reason: str) -> None: ...

    @abstractmethod
    async def strip_dangerous_roles(self, guild_id: int, user_id: int, reason: str) -> int:
        """Remove every dangerous role from a member. Returns the count."""


# =============================================================================
# Discord Audit Resolver
# =============================================================================

class DiscordAuditResolver(AuditResolver):
    """
    Audit-log lookup with a short fixed-backoff retry.

    Discord writes the audit entry slightly after dispatching the gateway
    event, so the first read often misses it.
    """

    def __init__(
        self,
        bot: "ShieldBot",
        attempts: int = AUDIT_ATTEMPTS,
        backoff: float = AUDIT_BACKOFF,
    ) -> None:
        self.bot = bot
        self.attempts = attempts
        self.backoff = backoff

    async def resolve_executor(
        self,
        guild_id: int,
        action: discord.AuditLogAction,
        within: float = AUDIT_STALENESS,
        target_id: Optional[int] = None,
    ) -> Optional[Identity]:
        try:
            return await self._lookup(guild_id, action, within, target_id)
        except ResolutionFailure as e:
            logger.debug("Executor Unresolved", [
                ("Guild", str(guild_id)),
                ("Action", action.name),
                ("Attempts", str(e.attempts)),
                ("Reason", e.message),
            ])
            return None

    async def _lookup(
        self,
        guild_id: int,
        action: discord.AuditLogAction,
        within: float,
        target_id: Optional[int],
    ) -> Identity:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            raise ResolutionFailure("Guild not cached", guild_id)

        for attempt in range(1, self.attempts + 1):
            try:
                async for entry in guild.audit_logs(limit=10, action=action):
                    age = (datetime.now(timezone.utc) - entry.created_at).total_seconds()
                    if age > within:
                        break
                    if target_id is not None and getattr(entry.target, "id", None) != target_id:
                        continue
                    if entry.user is None:
                        continue
                    return identity_from_user(entry.user, guild)
            except discord.Forbidden:
                raise ResolutionFailure("Missing View Audit Log permission", guild_id, attempt)
            except discord.HTTPException as e:
                log_http_error(e, "Audit Log Fetch", [
                    ("Guild", str(guild_id)),
                    ("Attempt", f"{attempt}/{self.attempts}"),
                ])

            if attempt < self.attempts:
                await asyncio.sleep(self.backoff)

        raise ResolutionFailure("No recent audit entry", guild_id, self.attempts)


# =============================================================================
# Discord Platform Actions
# =============================================================================

class DiscordPlatform(PlatformActions):
    """PlatformActions backed by the discord.py REST client."""

    def __init__(self, bot: "ShieldBot") -> None:
        self.bot = bot

    def _guild(self, guild_id: int) -> discord.Guild:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            raise ActionFailure("Guild not cached", guild_id)
        return guild

    async def _call(self, operation: str, guild_id: int, target_id: int, coro: Awaitable[T]) -> T:
        try:
            return await coro
        except discord.HTTPException as e:
            log_http_error(e, operation, [
                ("Guild", str(guild_id)),
                ("Target", str(target_id)),
            ])
            raise ActionFailure(f"{operation}: {e.status}", guild_id, operation, target_id) from e

    async def ban(self, guild_id: int, user_id: int, reason: str) -> None:
        guild = self._guild(guild_id)
        await self._call("Ban", guild_id, user_id, guild.ban(
            discord.Object(id=user_id),
            reason=reason[:512],
            delete_message_seconds=7 * 86400,
        ))

    async def kick(self, guild_id: int, user_id: int, reason: str) -> None:
        guild = self._guild(guild_id)
        await self._call("Kick", guild_id, user_id, guild.kick(discord.Object(id=user_id), reason=reason[:512]))

    async def timeout(
        self, guild_id: int, user_id: int, duration: Optional[float], reason: str
    ) -> None:
        guild = self._guild(guild_id)
        member = guild.get_member(user_id)
        if member is None:
            raise ActionFailure("Member not in guild", guild_id, "Timeout", user_id)

        until = None
        if duration is not None:
            until = timedelta(seconds=min(duration, MAX_TIMEOUT_SECONDS))
        await self._call("Timeout", guild_id, user_id, member.timeout(until, reason=reason[:512]))

    async def revert_role(
        self, guild_id: int, role_id: int, prior_permissions: int, prior_name: str, reason: str
    ) -> None:
        guild = self._guild(guild_id)
        role = guild.get_role(role_id)
        if role is None:
            raise ActionFailure("Role no longer exists", guild_id, "Revert Role", role_id)
        await self._call("Revert Role", guild_id, role_id, role.edit(
            name=prior_name,
            permissions=discord.Permissions(prior_permissions),
            reason=reason[:512],
        ))

    async def delete_entity(self, guild_id: int, kind: str, entity_id: int, reason: str) -> None:
        guild = self._guild(guild_id)
        entity = None
        if kind == "channel":
            entity = guild.get_channel(entity_id)
        elif kind == "role":
            entity = guild.get_role(entity_id)
        elif kind == "webhook":
            entity = await self._call(
                "Fetch Webhook", guild_id, entity_id, self.bot.fetch_webhook(entity_id)
            )

        if entity is None:
            raise ActionFailure(f"{kind} not found", guild_id, "Delete", entity_id)
        await self._call(f"Delete {kind.title()}", guild_id, entity_id, entity.delete(reason=reason[:512]))

    async def list_invites(self, guild_id: int) -> List[InviteInfo]:
        guild = self._guild(guild_id)
        invites = await self._call("List Invites", guild_id, guild_id, guild.invites())
        return [InviteInfo(code=i.code, max_age=i.max_age or 0) for i in invites]

    async def delete_invite(self, guild_id: int, code: str, reason: str) -> None:
        await self._call(
            "Delete Invite", guild_id, guild_id,
            self.bot.http.delete_invite(code, reason=reason[:512]),
        )

    async def strip_dangerous_roles(self, guild_id: int, user_id: int, reason: str) -> int:
        guild = self._guild(guild_id)
        member = guild.get_member(user_id)
        if member is None:
            return 0

        me = guild.me
        roles = [
            r for r in member.roles
            if not r.is_default() and role_is_dangerous(r) and (me is None or r < me.top_role)
        ]
        if not roles:
            return 0

        await self._call("Strip Roles", guild_id, user_id, member.remove_roles(*roles, reason=reason[:512]))
        logger.tree("Dangerous Roles Stripped", [
            ("User", f"{member} ({member.id})"),
            ("Roles", ", ".join(r.name for r in roles)[:100]),
        ], emoji="🔓")
        return len(roles)


__all__ = [
    "InviteInfo",
    "AuditResolver",
    "PlatformActions",
    "DiscordAuditResolver",
    "DiscordPlatform",
    "dangerous_permission_names",
    "role_is_dangerous",
    "identity_from_user",
]
