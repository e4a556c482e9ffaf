"""
ShieldBot - Handlers Package
============================

Event cogs that feed gateway events into the anti-nuke engine.

DESIGN:
    Each handler package exposes setup(bot) and is loaded by the bot
    with load_extension(). Add new event cogs to EVENT_COGS.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

# =============================================================================
# Event Cog Registry
# =============================================================================

EVENT_COGS = [
    "src.handlers.guard",
]
"""List of event cog module paths for dynamic loading."""


__all__ = [
    "EVENT_COGS",
]
