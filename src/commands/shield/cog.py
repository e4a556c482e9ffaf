"""
ShieldBot - Shield Command Cog
==============================

Operator controls for the anti-nuke engine.

DESIGN:
    Every subcommand is a thin wrapper around an AntiNukeService control
    or observability call. Ownership checks live in the service, so the
    cog only refreshes the guild owner id before each call and renders
    the ControlResult as "✅ msg" or "❌ msg".

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from typing import TYPE_CHECKING, Optional

import discord
from discord import app_commands
from discord.ext import commands

from src.core.logger import logger
from src.core.config import get_config
from src.services.antinuke.alerts import (
    build_activity_embed,
    build_status_embed,
    build_timeouts_embed,
)
from src.services.antinuke.models import ControlResult

if TYPE_CHECKING:
    from src.bot import ShieldBot
    from src.services.antinuke import AntiNukeService


REPLY_LIFETIME = 5
ACTIVITY_LIMIT = 10


# =============================================================================
# Shield Cog
# =============================================================================

class ShieldCog(commands.Cog):
    """Cog for anti-nuke operator commands."""

    def __init__(self, bot: "ShieldBot") -> None:
        self.bot = bot
        self.config = get_config()

    # =========================================================================
    # Command Group
    # =========================================================================

    shield_group = app_commands.Group(
        name="shield",
        description="Anti-nuke protection controls",
        default_permissions=discord.Permissions(administrator=True),
        guild_only=True,
    )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _service_for(self, interaction: discord.Interaction) -> Optional["AntiNukeService"]:
        """Return the engine with the guild owner refreshed, or None."""
        service = getattr(self.bot, "antinuke", None)
        if service is None or interaction.guild is None:
            return None
        service.store.get(interaction.guild.id).owner_id = interaction.guild.owner_id or 0
        return service

    async def _not_ready(self, interaction: discord.Interaction) -> None:
        await interaction.response.send_message(
            "❌ Protection is still starting up. Try again in a moment.",
            ephemeral=True,
            delete_after=REPLY_LIFETIME,
        )

    async def _reply(self, interaction: discord.Interaction, command: str, result: ControlResult) -> None:
        prefix = "✅" if result.success else "❌"
        await interaction.response.send_message(
            f"{prefix} {result.message}",
            ephemeral=True,
            delete_after=REPLY_LIFETIME,
        )
        logger.tree(f"Shield /{command}", [
            ("User", f"{interaction.user} ({interaction.user.id})"),
            ("Guild", str(interaction.guild_id)),
            ("Success", "Yes" if result.success else "No"),
            ("Result", result.message[:80]),
        ], emoji="🛡️")

    # =========================================================================
    # Controls
    # =========================================================================

    @shield_group.command(name="monitor", description="Toggle the 24/7 status widget")
    async def monitor(self, interaction: discord.Interaction) -> None:
        service = self._service_for(interaction)
        if service is None:
            await self._not_ready(interaction)
            return
        result = service.toggle_monitoring(interaction.guild.id, interaction.user.id)
        await self._reply(interaction, "monitor", result)

    @shield_group.command(name="addbot", description="Whitelist a bot so it is never removed")
    @app_commands.describe(bot="The bot to whitelist")
    async def addbot(self, interaction: discord.Interaction, bot: discord.User) -> None:
        service = self._service_for(interaction)
        if service is None:
            await self._not_ready(interaction)
            return
        if not bot.bot:
            await self._reply(interaction, "addbot", ControlResult(False, f"{bot} is not a bot."))
            return
        result = service.add_bot_to_whitelist(interaction.guild.id, interaction.user.id, bot.id)
        await self._reply(interaction, "addbot", result)

    @shield_group.command(name="removebot", description="Remove a bot from the whitelist and the server")
    @app_commands.describe(bot="The bot to remove")
    async def removebot(self, interaction: discord.Interaction, bot: discord.User) -> None:
        service = self._service_for(interaction)
        if service is None:
            await self._not_ready(interaction)
            return
        result = await service.remove_bot_from_whitelist(interaction.guild.id, interaction.user.id, bot.id)
        await self._reply(interaction, "removebot", result)

    @shield_group.command(name="addrole", description="Members with this role are kicked instead of banned")
    @app_commands.describe(role="The role to whitelist")
    async def addrole(self, interaction: discord.Interaction, role: discord.Role) -> None:
        service = self._service_for(interaction)
        if service is None:
            await self._not_ready(interaction)
            return
        result = service.add_role_to_whitelist(interaction.guild.id, interaction.user.id, role.id)
        await self._reply(interaction, "addrole", result)

    @shield_group.command(name="removerole", description="Remove a role from the whitelist")
    @app_commands.describe(role="The role to remove")
    async def removerole(self, interaction: discord.Interaction, role: discord.Role) -> None:
        service = self._service_for(interaction)
        if service is None:
            await self._not_ready(interaction)
            return
        result = service.remove_role_from_whitelist(interaction.guild.id, interaction.user.id, role.id)
        await self._reply(interaction, "removerole", result)

    @shield_group.command(name="release", description="Release a member from an anti-nuke timeout")
    @app_commands.describe(user="The member to release")
    async def release(self, interaction: discord.Interaction, user: discord.User) -> None:
        service = self._service_for(interaction)
        if service is None:
            await self._not_ready(interaction)
            return
        result = await service.release_timeout(interaction.guild.id, interaction.user.id, user.id)
        await self._reply(interaction, "release", result)

    @shield_group.command(name="releaseraid", description="End the raid lockdown early")
    async def releaseraid(self, interaction: discord.Interaction) -> None:
        service = self._service_for(interaction)
        if service is None:
            await self._not_ready(interaction)
            return
        result = service.release_raid(interaction.guild.id, interaction.user.id)
        await self._reply(interaction, "releaseraid", result)

    # =========================================================================
    # Views
    # =========================================================================

    @shield_group.command(name="status", description="Show the protection status")
    async def status(self, interaction: discord.Interaction) -> None:
        service = self._service_for(interaction)
        if service is None:
            await self._not_ready(interaction)
            return
        embed = build_status_embed(service.snapshot(interaction.guild.id), interaction.guild.name)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @shield_group.command(name="activity", description="Show recent security activity")
    async def activity(self, interaction: discord.Interaction) -> None:
        service = self._service_for(interaction)
        if service is None:
            await self._not_ready(interaction)
            return
        state = service.store.get(interaction.guild.id)
        embed = build_activity_embed(state.activity_log.recent(ACTIVITY_LIMIT))
        await interaction.response.send_message(embed=embed, ephemeral=True)

    @shield_group.command(name="timeouts", description="Show members under an anti-nuke timeout")
    async def timeouts(self, interaction: discord.Interaction) -> None:
        service = self._service_for(interaction)
        if service is None:
            await self._not_ready(interaction)
            return
        state = service.store.get(interaction.guild.id)
        embed = build_timeouts_embed(dict(state.active_timeouts))
        await interaction.response.send_message(embed=embed, ephemeral=True)


__all__ = ["ShieldCog"]
