"""
ShieldBot - Commands Package
============================

Slash command implementations for ShieldBot.
Commands are implemented as discord.py Cogs for modularity.

DESIGN:
    Each command package contains a Cog class and an async setup(bot).
    Cogs are loaded dynamically by the bot using load_extension().
    Add new command cogs to the COMMAND_COGS list below.

Available Commands:
    /shield monitor: Toggle the 24/7 status widget (owner)
    /shield addbot, removebot: Manage the bot whitelist (owner)
    /shield addrole, removerole: Manage the role whitelist (owner)
    /shield release: Release an anti-nuke timeout (owner)
    /shield releaseraid: End a raid lockdown early (owner)
    /shield status, activity, timeouts: Read-only views

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

# =============================================================================
# Command Cog Registry
# =============================================================================

COMMAND_COGS = [
    "src.commands.shield",
]
"""List of command cog module paths for dynamic loading."""


# =============================================================================
# Module Export
# =============================================================================

__all__ = [
    "COMMAND_COGS",
]
