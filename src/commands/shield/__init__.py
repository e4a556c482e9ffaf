"""
ShieldBot - Shield Command Package
==================================

Owner-only controls for the anti-nuke engine.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from typing import TYPE_CHECKING

from src.core.logger import logger

from .cog import ShieldCog

if TYPE_CHECKING:
    from src.bot import ShieldBot


async def setup(bot: "ShieldBot") -> None:
    """Load the Shield cog."""
    await bot.add_cog(ShieldCog(bot))
    logger.tree("Shield Cog Loaded", [
        ("Commands", "/shield monitor, addbot, removebot, addrole, removerole"),
        ("Release", "/shield release, releaseraid"),
        ("Views", "/shield status, activity, timeouts"),
    ], emoji="🛡️")


__all__ = ["ShieldCog", "setup"]
