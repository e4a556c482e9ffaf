"""
ShieldBot - Guard Events Cog
============================

Routes Discord gateway events into the anti-nuke engine.

DESIGN:
    Each listener builds a SecurityEvent (resolving the executor through
    the audit log first) and hands it to AntiNukeService. Listeners
    never act on their own and never let an exception escape into the
    gateway dispatcher.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import time
from typing import TYPE_CHECKING, Optional

import discord
from discord.ext import commands

from src.core.logger import logger
from src.core.config import get_config
from src.utils.discord_rate_limit import log_http_error
from src.services.antinuke.constants import DEPARTURE_AUDIT_ATTEMPTS
from src.services.antinuke.models import EventCategory, EventDiff, SecurityEvent, Target
from src.services.antinuke.platform import (
    DiscordAuditResolver,
    dangerous_permission_names,
    identity_from_user,
)

if TYPE_CHECKING:
    from src.bot import ShieldBot
    from src.services.antinuke import AntiNukeService


WEBHOOK_FRESHNESS = 10.0


def _overwrite_action(
    before: discord.abc.GuildChannel, after: discord.abc.GuildChannel
) -> discord.AuditLogAction:
    """Pick the audit action matching an overwrite change."""
    if len(after.overwrites) > len(before.overwrites):
        return discord.AuditLogAction.overwrite_create
    if len(after.overwrites) < len(before.overwrites):
        return discord.AuditLogAction.overwrite_delete
    return discord.AuditLogAction.overwrite_update


class GuardEvents(commands.Cog):
    """Anti-nuke event routing."""

    def __init__(self, bot: "ShieldBot") -> None:
        self.bot = bot
        self.config = get_config()
        self.departure_resolver = DiscordAuditResolver(bot, attempts=DEPARTURE_AUDIT_ATTEMPTS)

    @property
    def service(self) -> Optional["AntiNukeService"]:
        return getattr(self.bot, "antinuke", None)

    # =========================================================================
    # Dispatch Helper
    # =========================================================================

    async def _dispatch(
        self,
        guild: discord.Guild,
        category: EventCategory,
        action: discord.AuditLogAction,
        target: Target,
        diff: Optional[EventDiff] = None,
    ) -> None:
        service = self.service
        if service is None:
            return

        try:
            actor = await service.resolver.resolve_executor(guild.id, action, target_id=target.id or None)
            event = SecurityEvent(
                category=category,
                guild_id=guild.id,
                owner_id=guild.owner_id or 0,
                timestamp=time.time(),
                actor=actor,
                target=target,
                diff=diff or EventDiff(),
            )
            await service.handle_event(event)
        except Exception as e:
            logger.error("Guard Event Failed", [
                ("Guild", f"{guild.name} ({guild.id})"),
                ("Category", category.value),
                ("Target", f"{target.name} ({target.id})"),
                ("Error", str(e)[:100]),
                ("Type", type(e).__name__),
            ])

    # =========================================================================
    # Guild Lifecycle
    # =========================================================================

    @commands.Cog.listener()
    async def on_guild_join(self, guild: discord.Guild) -> None:
        if self.service is None:
            return
        bot_ids = [m.id for m in guild.members if m.bot]
        self.service.sync_guild(guild.id, guild.owner_id or 0, bot_ids)

    @commands.Cog.listener()
    async def on_guild_update(self, before: discord.Guild, after: discord.Guild) -> None:
        if self.service is None or before.owner_id == after.owner_id:
            return
        self.service.store.get(after.id).owner_id = after.owner_id or 0
        logger.tree("Guild Owner Changed", [
            ("Guild", f"{after.name} ({after.id})"),
            ("Owner", str(after.owner_id)),
        ], emoji="👑")

    # =========================================================================
    # Channels
    # =========================================================================

    @commands.Cog.listener()
    async def on_guild_channel_create(self, channel: discord.abc.GuildChannel) -> None:
        await self._dispatch(
            channel.guild,
            EventCategory.CHANNEL_CREATE,
            discord.AuditLogAction.channel_create,
            Target(id=channel.id, name=channel.name),
        )

    @commands.Cog.listener()
    async def on_guild_channel_delete(self, channel: discord.abc.GuildChannel) -> None:
        await self._dispatch(
            channel.guild,
            EventCategory.CHANNEL_DELETE,
            discord.AuditLogAction.channel_delete,
            Target(id=channel.id, name=channel.name),
        )

    @commands.Cog.listener()
    async def on_guild_channel_update(
        self, before: discord.abc.GuildChannel, after: discord.abc.GuildChannel
    ) -> None:
        diff = EventDiff(
            old_name=before.name,
            new_name=after.name,
            name_changed=before.name != after.name,
            position_changed=before.position != after.position,
            overwrites_changed=before.overwrites != after.overwrites,
        )
        if not (diff.name_changed or diff.position_changed or diff.overwrites_changed):
            return

        action = discord.AuditLogAction.channel_update
        if diff.overwrites_changed and not (diff.name_changed or diff.position_changed):
            action = _overwrite_action(before, after)

        await self._dispatch(
            after.guild,
            EventCategory.CHANNEL_UPDATE,
            action,
            Target(id=after.id, name=after.name),
            diff,
        )

    # =========================================================================
    # Webhooks
    # =========================================================================

    @commands.Cog.listener()
    async def on_webhooks_update(self, channel: discord.abc.GuildChannel) -> None:
        """Gateway only says "something changed", so find the newest webhook."""
        try:
            webhooks = await channel.webhooks()
        except discord.HTTPException as e:
            log_http_error(e, "Fetch Webhooks", [("Channel", f"#{channel.name} ({channel.id})")])
            return

        now = discord.utils.utcnow()
        fresh = [w for w in webhooks if (now - w.created_at).total_seconds() <= WEBHOOK_FRESHNESS]
        if not fresh:
            return

        newest = max(fresh, key=lambda w: w.created_at)
        await self._dispatch(
            channel.guild,
            EventCategory.WEBHOOK_CREATE,
            discord.AuditLogAction.webhook_create,
            Target(id=newest.id, name=newest.name or "unnamed", channel_name=channel.name),
        )

    # =========================================================================
    # Roles
    # =========================================================================

    @commands.Cog.listener()
    async def on_guild_role_create(self, role: discord.Role) -> None:
        await self._dispatch(
            role.guild,
            EventCategory.ROLE_CREATE,
            discord.AuditLogAction.role_create,
            Target(id=role.id, name=role.name),
            EventDiff(new_name=role.name, new_dangerous=dangerous_permission_names(role.permissions)),
        )

    @commands.Cog.listener()
    async def on_guild_role_delete(self, role: discord.Role) -> None:
        await self._dispatch(
            role.guild,
            EventCategory.ROLE_DELETE,
            discord.AuditLogAction.role_delete,
            Target(id=role.id, name=role.name),
        )

    @commands.Cog.listener()
    async def on_guild_role_update(self, before: discord.Role, after: discord.Role) -> None:
        if before.name == after.name and before.permissions == after.permissions:
            return

        await self._dispatch(
            after.guild,
            EventCategory.ROLE_UPDATE,
            discord.AuditLogAction.role_update,
            Target(id=after.id, name=after.name),
            EventDiff(
                old_name=before.name,
                new_name=after.name,
                name_changed=before.name != after.name,
                old_dangerous=dangerous_permission_names(before.permissions),
                new_dangerous=dangerous_permission_names(after.permissions),
                old_permissions_value=before.permissions.value,
            ),
        )

    # =========================================================================
    # Members
    # =========================================================================

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        service = self.service
        if service is None:
            return

        try:
            if member.bot:
                await service.handle_bot_join(
                    member.guild.id,
                    Target(id=member.id, name=str(member), is_bot=True),
                    owner_id=member.guild.owner_id or 0,
                )
                return

            await service.handle_member_join(
                member.guild.id,
                identity_from_user(member),
                owner_id=member.guild.owner_id or 0,
            )
        except Exception as e:
            logger.error("Member Join Handling Failed", [
                ("Guild", str(member.guild.id)),
                ("Member", f"{member} ({member.id})"),
                ("Error", str(e)[:100]),
                ("Type", type(e).__name__),
            ])

    @commands.Cog.listener()
    async def on_member_remove(self, member: discord.Member) -> None:
        service = self.service
        if service is None or (self.bot.user and member.id == self.bot.user.id):
            return

        try:
            kicked_by = await self.departure_resolver.resolve_executor(
                member.guild.id, discord.AuditLogAction.kick, target_id=member.id,
            )
            await service.handle_member_remove(member.guild.id, identity_from_user(member), kicked_by)
        except Exception as e:
            logger.error("Member Remove Handling Failed", [
                ("Guild", str(member.guild.id)),
                ("Member", f"{member} ({member.id})"),
                ("Error", str(e)[:100]),
                ("Type", type(e).__name__),
            ])

    @commands.Cog.listener()
    async def on_member_ban(self, guild: discord.Guild, user: discord.User) -> None:
        await self._dispatch(
            guild,
            EventCategory.MEMBER_BAN,
            discord.AuditLogAction.ban,
            Target(id=user.id, name=str(user)),
        )

    @commands.Cog.listener()
    async def on_member_update(self, before: discord.Member, after: discord.Member) -> None:
        service = self.service
        if service is None or before.timed_out_until == after.timed_out_until:
            return

        try:
            await service.handle_member_update(
                after.guild.id, identity_from_user(after), after.is_timed_out(),
            )
        except Exception as e:
            logger.error("Member Update Handling Failed", [
                ("Guild", str(after.guild.id)),
                ("Member", f"{after} ({after.id})"),
                ("Error", str(e)[:100]),
                ("Type", type(e).__name__),
            ])


__all__ = ["GuardEvents"]
