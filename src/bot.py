"""
ShieldBot - Main Bot Class
==========================

Core Discord client that wires the anti-nuke engine to the gateway.

Features:
- Anti-nuke protection for channels, roles, webhooks and bots
- Mass ban / mass kick / mass join (raid) detection
- Timeout bypass re-enforcement
- #security-logs alerts and live status widget
- Health check HTTP endpoint

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from datetime import datetime

import discord
from discord.ext import commands

from src.core.logger import logger
from src.core.config import get_config


# =============================================================================
# ShieldBot Class
# =============================================================================

class ShieldBot(commands.Bot):
    """
    Main Discord bot class for ShieldBot.

    DESIGN: Central orchestrator that:
    - Loads the guard event cog and the /shield command cog
    - Holds the anti-nuke engine and its Discord collaborators
    - Manages bot lifecycle (startup, shutdown)

    SERVICE INITIALIZATION ORDER:
    1. setup_hook (before on_ready):
       - Command cog loading
       - Event cog loading
       - Persistent view registration
       - Command tree syncing

    2. on_ready:
       - Alert Service (security-logs channel, status widget)
       - Anti-Nuke Service (engine, sweep and timeout loops)
       - Guild sync (owners, bot whitelist)
       - Health Check Server
    """

    # =========================================================================
    # Initialization
    # =========================================================================

    def __init__(self) -> None:
        self.config = get_config()

        intents = discord.Intents.default()
        intents.members = True

        super().__init__(
            command_prefix="!",
            intents=intents,
            help_command=None,
        )

        self.start_time: datetime = datetime.now()

        # Service placeholders
        self.antinuke = None
        self.alerts = None
        self.health_server = None

        # Ready state guard
        self._ready_initialized: bool = False

        logger.info("Bot Instance Created")

    # =========================================================================
    # Setup Hook
    # =========================================================================

    async def setup_hook(self) -> None:
        """Load cogs and sync commands before on_ready."""
        from src.commands import COMMAND_COGS
        for cog in COMMAND_COGS:
            try:
                await self.load_extension(cog)
                logger.info(f"Cog Loaded: {cog.split('.')[-1]}")
            except Exception as e:
                logger.error("Failed to Load Cog", [("Cog", cog), ("Error", str(e))])

        from src.handlers import EVENT_COGS
        for cog in EVENT_COGS:
            try:
                await self.load_extension(cog)
                logger.debug(f"Event Cog Loaded: {cog.split('.')[-1]}")
            except Exception as e:
                logger.error("Failed to Load Event Cog", [("Cog", cog), ("Error", str(e))])

        # Register persistent views
        from src.services.antinuke.alerts import setup_alert_views
        setup_alert_views(self)

        try:
            synced = await self.tree.sync()
            logger.tree("Commands Synced", [("Count", str(len(synced)))], emoji="✅")
        except Exception as e:
            logger.error("Command Sync Failed", [("Error", str(e))])

    # =========================================================================
    # On Ready
    # =========================================================================

    async def on_ready(self) -> None:
        """Initialize services when bot is ready."""
        if self._ready_initialized:
            logger.info("Bot Reconnected (skipping re-initialization)")
            return

        self._ready_initialized = True

        if not self.user:
            return

        logger.tree("BOT ONLINE", [
            ("Name", self.user.name),
            ("ID", str(self.user.id)),
            ("Guilds", str(len(self.guilds))),
        ], emoji="🚀")

        if self.config.error_webhook_url:
            logger.set_webhook(self.config.error_webhook_url)

        await self._init_services()

        logger.tree("SHIELD READY", [
            ("Anti-Nuke", "Running" if self.antinuke and self.antinuke.running else "Stopped"),
            ("Status Widget", "Running" if self.alerts and self.alerts.running else "Stopped"),
            ("Health Server", "Running" if self.health_server else "Stopped"),
            ("Protected Guilds", str(len(self.guilds))),
        ], emoji="🛡️")

    # =========================================================================
    # Service Initialization
    # =========================================================================

    async def _init_services(self) -> None:
        """Initialize all services after Discord connection."""
        try:
            from src.services.antinuke import AntiNukeService, AlertService
            from src.services.antinuke.platform import DiscordAuditResolver, DiscordPlatform

            self.alerts = AlertService(self)
            self.antinuke = AntiNukeService(
                DiscordPlatform(self),
                DiscordAuditResolver(self),
                self.alerts,
                self_id=self.user.id,
                channel_modify_action=self.config.channel_modify_action,
                extra_keywords=self.config.extra_suspicious_keywords,
                raid_duration=float(self.config.raid_duration_seconds),
            )

            for guild in self.guilds:
                bot_ids = [m.id for m in guild.members if m.bot]
                self.antinuke.sync_guild(guild.id, guild.owner_id or 0, bot_ids)

            await self.antinuke.start(
                sweep_interval=self.config.sweep_interval,
                timeout_interval=self.config.timeout_check_interval,
            )
            await self.alerts.start()

            from src.core.health import HealthCheckServer
            self.health_server = HealthCheckServer(self, port=self.config.health_port)
            await self.health_server.start()

            logger.tree("ALL SERVICES INITIALIZED", [
                ("Anti-Nuke", "✓ Running"),
                ("Alerts", f"✓ #{self.config.log_channel_name}"),
                ("Guilds Synced", str(len(self.guilds))),
                ("Health Port", str(self.config.health_port)),
            ], emoji="🚀")

        except Exception as e:
            logger.error("Service Initialization Failed", [
                ("Error", str(e)[:100]),
                ("Type", type(e).__name__),
            ])

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def shutdown(self) -> None:
        """Graceful shutdown with proper cleanup."""
        logger.info("Initiating Graceful Shutdown")

        if self.alerts:
            await self.alerts.stop()

        if self.antinuke:
            await self.antinuke.stop()

        if self.health_server:
            await self.health_server.stop()

        await super().close()

        logger.tree("SHUTDOWN COMPLETE", [
            ("Uptime", str(datetime.now() - self.start_time)),
        ], emoji="🛑")

    async def close(self) -> None:
        """Override close to ensure proper shutdown."""
        await self.shutdown()


# =============================================================================
# Module Export
# =============================================================================

__all__ = ["ShieldBot"]
