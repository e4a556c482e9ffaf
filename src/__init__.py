"""
ShieldBot - Source Package
==========================

Anti-nuke and anti-raid protection bot for discord.gg/syria.

Package Structure:
- bot.py: ShieldBot class, service wiring and lifecycle
- commands/: /shield slash command group
- core/: Config, logging and health server
- handlers/: Gateway event cogs
- services/: Anti-nuke engine and alerts
- utils/: Discord HTTP error helpers

Author: حَـــــنَّـــــا
Server: discord.gg/syria
Version: v1.0.0
"""
