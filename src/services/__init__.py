"""
ShieldBot - Services Package
============================

Long-lived services owned by the bot.

Available Services:
    AntiNukeService: Nuke/raid detection and mitigation engine
    AlertService: Security log channel, alerts and status widget

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from .antinuke import AntiNukeService, AlertService


__all__ = [
    "AntiNukeService",
    "AlertService",
]
