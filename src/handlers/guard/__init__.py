"""
ShieldBot - Guard Events Package
================================

Anti-nuke routing for channel, role, webhook and member events.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from typing import TYPE_CHECKING

from src.core.logger import logger

from .cog import GuardEvents

if TYPE_CHECKING:
    from src.bot import ShieldBot


async def setup(bot: "ShieldBot") -> None:
    """Add the guard events cog to the bot."""
    await bot.add_cog(GuardEvents(bot))
    logger.tree("Guard Events Loaded", [
        ("Events", "channels, roles, webhooks, members, bans"),
        ("Features", "audit resolution, nuke/raid routing"),
    ], emoji="🛡️")


__all__ = ["GuardEvents", "setup"]
