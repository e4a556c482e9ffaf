"""
ShieldBot - Alerts & Status Widget
==================================

Posts incident alerts, raid alerts and the live status widget to each
guild's #security-logs channel.

DESIGN:
    The engine only knows the Notifier interface. AlertService is the
    discord.py implementation: it finds or creates a hidden log channel
    per guild, keeps one status message per guild that it edits in place,
    and refreshes it every minute for guilds with 24/7 monitoring on.

    Raid alerts carry a persistent "Release Invites" button that only
    the guild owner can use.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional

import discord

from src.core.logger import logger
from src.core.config import get_config, EmbedColors, NY_TZ
from src.utils.discord_rate_limit import log_http_error

from .models import Decision, GuildSnapshot, LogEntry, SecurityEvent, TimeoutRecord, Verdict

if TYPE_CHECKING:
    from src.bot import ShieldBot
    from .executor import ExecutionResult


# =============================================================================
# Notifier Interface
# =============================================================================

class Notifier(ABC):
    """Alert collaborator the engine calls after acting."""

    @abstractmethod
    async def incident(
        self, event: SecurityEvent, decision: Decision, result: "ExecutionResult"
    ) -> None: ...

    @abstractmethod
    async def raid_activated(
        self, guild_id: int, owner_id: int, expires_at: float, invites_deleted: int
    ) -> None: ...

    @abstractmethod
    async def refresh_status(self, guild_id: int) -> None: ...


# =============================================================================
# Embed Builders
# =============================================================================

VERDICT_COLORS = {
    Verdict.BAN: EmbedColors.RED,
    Verdict.KICK: EmbedColors.ORANGE,
    Verdict.TIMEOUT: EmbedColors.ORANGE,
    Verdict.REVERT: EmbedColors.GOLD,
    Verdict.ALLOW: EmbedColors.BLUE,
}


def _ts(timestamp: float) -> str:
    return f"<t:{int(timestamp)}:R>"


def build_incident_embed(
    event: SecurityEvent, decision: Decision, result: "ExecutionResult"
) -> discord.Embed:
    """Embed describing one blocked incident."""
    title = "🚨 NUKE ATTEMPT BLOCKED" if decision.is_sanction else "🛡️ SECURITY ACTION"
    embed = discord.Embed(
        title=title,
        description=decision.reason[:4000] or "No reason",
        color=VERDICT_COLORS.get(decision.verdict, EmbedColors.RED),
        timestamp=datetime.now(NY_TZ),
    )
    actor = f"<@{event.actor.id}> ({event.actor.tag})" if event.actor else "Unknown executor"
    embed.add_field(name="Actor", value=actor, inline=True)
    embed.add_field(name="Action", value=decision.verdict.value.upper(), inline=True)
    embed.add_field(name="Category", value=event.category.value, inline=True)

    steps = []
    if decision.remove_bot:
        steps.append(f"Bot removed: {'✅' if result.bot_removed else '❌'}")
    if decision.revert:
        steps.append(f"Change reverted: {'✅' if result.reverted else '❌'}")
    if decision.is_sanction:
        steps.append(f"Sanction applied: {'✅' if result.sanctioned else '❌'}")
    if steps:
        embed.add_field(name="Response", value="\n".join(steps), inline=False)
    return embed


def build_status_embed(snapshot: GuildSnapshot, guild_name: str = "") -> discord.Embed:
    """The live status widget."""
    if snapshot.raid_active:
        color, mode = EmbedColors.RED, "🚨 RAID LOCKDOWN"
    elif snapshot.emergency_mode:
        color, mode = EmbedColors.ORANGE, "⚠️ EMERGENCY"
    else:
        color, mode = EmbedColors.GREEN, "🟢 NORMAL"

    embed = discord.Embed(
        title=f"🛡️ Security Status{f' - {guild_name}' if guild_name else ''}",
        color=color,
        timestamp=datetime.now(NY_TZ),
    )
    embed.add_field(name="Mode", value=mode, inline=True)
    embed.add_field(name="24/7 Monitoring", value="On" if snapshot.monitoring else "Off", inline=True)
    embed.add_field(name="Active Timeouts", value=str(snapshot.active_timeout_count), inline=True)

    stats = snapshot.stats
    embed.add_field(
        name="Stats",
        value=(
            f"Bans: `{stats.bans}` · Kicks: `{stats.kicks}` · Timeouts: `{stats.timeouts}`\n"
            f"Blocked Bots: `{stats.blocked_bots}` · Nuke Attempts: `{stats.nuke_attempts}`"
        ),
        inline=False,
    )
    embed.add_field(
        name="Whitelist",
        value=f"Bots: `{snapshot.whitelisted_bots}` · Roles: `{snapshot.whitelisted_roles}`",
        inline=False,
    )
    if snapshot.raid_active and snapshot.raid_expires_at:
        embed.add_field(name="Raid Expires", value=_ts(snapshot.raid_expires_at), inline=False)
    return embed


def build_activity_embed(entries: List[LogEntry]) -> discord.Embed:
    embed = discord.Embed(
        title="📜 Recent Security Activity",
        color=EmbedColors.INFO,
        timestamp=datetime.now(NY_TZ),
    )
    if not entries:
        embed.description = "No activity recorded."
        return embed

    lines = []
    for entry in entries:
        who = f" · by {entry.executor.tag or entry.executor.id}" if entry.executor else ""
        lines.append(f"`{entry.type}` {_ts(entry.timestamp)}{who}\n{entry.description[:150]}")
    embed.description = "\n\n".join(lines)[:4000]
    return embed


def build_timeouts_embed(records: Dict[int, TimeoutRecord]) -> discord.Embed:
    embed = discord.Embed(
        title="⏳ Active Timeouts",
        color=EmbedColors.WARNING,
        timestamp=datetime.now(NY_TZ),
    )
    if not records:
        embed.description = "No active timeouts."
        return embed

    embed.description = "\n".join(
        f"<@{user_id}> · releases {_ts(record.release_at)}\n{record.reason[:100]}"
        for user_id, record in records.items()
    )[:4000]
    return embed


# =============================================================================
# Release Invites Button (Persistent)
# =============================================================================

class ReleaseInvitesButton(
    discord.ui.DynamicItem[discord.ui.Button],
    template=r"release_invites:(?P<guild_id>[0-9]+)",
):
    """Owner-only button that ends an active raid lockdown."""

    def __init__(self, guild_id: int):
        super().__init__(
            discord.ui.Button(
                label="Release Invites",
                style=discord.ButtonStyle.danger,
                custom_id=f"release_invites:{guild_id}",
                emoji="🔓",
            )
        )
        self.guild_id = guild_id

    @classmethod
    async def from_custom_id(
        cls,
        interaction: discord.Interaction,
        item: discord.ui.Button,
        match,
    ) -> "ReleaseInvitesButton":
        return cls(int(match.group("guild_id")))

    async def callback(self, interaction: discord.Interaction) -> None:
        service = getattr(interaction.client, "antinuke", None)
        if service is None:
            await interaction.response.send_message("❌ Protection service not ready.", ephemeral=True)
            return

        result = service.release_raid(self.guild_id, interaction.user.id)
        logger.tree("Release Invites Button Clicked", [
            ("User", f"{interaction.user} ({interaction.user.id})"),
            ("Guild", str(self.guild_id)),
            ("Result", result.message),
        ], emoji="🔓")

        prefix = "✅" if result.success else "❌"
        await interaction.response.send_message(f"{prefix} {result.message}", ephemeral=True)


class RaidAlertView(discord.ui.View):
    """View attached to raid alerts."""

    def __init__(self, guild_id: int):
        super().__init__(timeout=None)
        self.add_item(ReleaseInvitesButton(guild_id))


def setup_alert_views(bot: "ShieldBot") -> None:
    """Register persistent alert components."""
    bot.add_dynamic_items(ReleaseInvitesButton)


# =============================================================================
# Alert Service
# =============================================================================

class AlertService(Notifier):
    """
    Discord-backed Notifier.

    Attributes:
        bot: Main bot instance.
        task: Status refresh loop task.
    """

    def __init__(self, bot: "ShieldBot") -> None:
        self.bot = bot
        self.config = get_config()
        self._channels: Dict[int, discord.TextChannel] = {}
        self._status_messages: Dict[int, discord.Message] = {}
        self.task: Optional[asyncio.Task] = None
        self.running: bool = False

    # =========================================================================
    # Log Channel
    # =========================================================================

    async def get_log_channel(self, guild: discord.Guild) -> Optional[discord.TextChannel]:
        """Find the security log channel, creating a hidden one if missing."""
        cached = self._channels.get(guild.id)
        if cached is not None and guild.get_channel(cached.id) is not None:
            return cached

        name = self.config.log_channel_name
        channel = discord.utils.get(guild.text_channels, name=name)
        if channel is None:
            overwrites = {
                guild.default_role: discord.PermissionOverwrite(view_channel=False),
                guild.me: discord.PermissionOverwrite(
                    view_channel=True, send_messages=True, embed_links=True,
                ),
            }
            try:
                channel = await guild.create_text_channel(
                    name, overwrites=overwrites, reason="ShieldBot security log channel",
                )
                logger.tree("Security Log Channel Created", [
                    ("Guild", f"{guild.name} ({guild.id})"),
                    ("Channel", f"#{name}"),
                ], emoji="📋")
            except discord.HTTPException as e:
                log_http_error(e, "Create Log Channel", [("Guild", str(guild.id))])
                return None

        self._channels[guild.id] = channel
        return channel

    async def _send(
        self,
        guild_id: int,
        embed: discord.Embed,
        view: Optional[discord.ui.View] = None,
        content: Optional[str] = None,
    ) -> Optional[discord.Message]:
        guild = self.bot.get_guild(guild_id)
        if guild is None:
            return None
        channel = await self.get_log_channel(guild)
        if channel is None:
            return None
        try:
            if view is not None:
                return await channel.send(content=content, embed=embed, view=view)
            return await channel.send(content=content, embed=embed)
        except discord.HTTPException as e:
            log_http_error(e, "Security Alert", [("Guild", str(guild_id))])
            return None

    # =========================================================================
    # Notifier
    # =========================================================================

    async def incident(
        self, event: SecurityEvent, decision: Decision, result: "ExecutionResult"
    ) -> None:
        content = None
        if decision.is_sanction and self.config.developer_id:
            content = f"<@{self.config.developer_id}>"
        await self._send(event.guild_id, build_incident_embed(event, decision, result), content=content)

    async def raid_activated(
        self, guild_id: int, owner_id: int, expires_at: float, invites_deleted: int
    ) -> None:
        embed = discord.Embed(
            title="🚨 MASS JOIN RAID DETECTED",
            description=(
                "Anti-raid lockdown is active. Temporary invites were deleted.\n"
                "New joins are logged but not removed."
            ),
            color=EmbedColors.RED,
            timestamp=datetime.now(NY_TZ),
        )
        embed.add_field(name="Invites Deleted", value=str(invites_deleted), inline=True)
        embed.add_field(name="Expires", value=_ts(expires_at), inline=True)

        await self._send(guild_id, embed, view=RaidAlertView(guild_id), content=f"<@{owner_id}>")

        owner = self.bot.get_user(owner_id)
        if owner is None:
            return
        try:
            await owner.send(embed=embed, view=RaidAlertView(guild_id))
        except discord.Forbidden:
            logger.debug("Owner DMs Closed", [("Owner", str(owner_id))])
        except discord.HTTPException as e:
            log_http_error(e, "Raid Owner DM", [("Owner", str(owner_id))])

    async def refresh_status(self, guild_id: int) -> None:
        """Edit the guild's status widget in place, or post a new one."""
        service = getattr(self.bot, "antinuke", None)
        guild = self.bot.get_guild(guild_id)
        if service is None or guild is None:
            return

        embed = build_status_embed(service.snapshot(guild_id), guild.name)
        message = self._status_messages.get(guild_id)
        if message is not None:
            try:
                await message.edit(embed=embed)
                return
            except discord.NotFound:
                self._status_messages.pop(guild_id, None)
            except discord.HTTPException as e:
                log_http_error(e, "Status Widget Edit", [("Guild", str(guild_id))])
                return

        message = await self._send(guild_id, embed)
        if message is not None:
            self._status_messages[guild_id] = message

    # =========================================================================
    # Periodic Refresh
    # =========================================================================

    async def start(self) -> None:
        if self.task and not self.task.done():
            self.task.cancel()

        self.running = True
        self.task = asyncio.create_task(self._refresh_loop())

        logger.tree("Status Widget Loop Started", [
            ("Interval", f"{self.config.status_refresh_interval}s"),
            ("Channel", f"#{self.config.log_channel_name}"),
        ], emoji="📊")

    async def stop(self) -> None:
        self.running = False
        if self.task and not self.task.done():
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass

    async def _refresh_loop(self) -> None:
        await self.bot.wait_until_ready()

        while self.running:
            try:
                await asyncio.sleep(self.config.status_refresh_interval)
                service = getattr(self.bot, "antinuke", None)
                if service is None:
                    continue
                for guild_id in service.monitored_guilds():
                    if service.should_refresh_status(guild_id):
                        await self.refresh_status(guild_id)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Status Widget Loop Error", [
                    ("Error", str(e)[:100]),
                    ("Type", type(e).__name__),
                ])


__all__ = [
    "Notifier",
    "AlertService",
    "RaidAlertView",
    "ReleaseInvitesButton",
    "setup_alert_views",
    "build_incident_embed",
    "build_status_embed",
    "build_activity_embed",
    "build_timeouts_embed",
]
