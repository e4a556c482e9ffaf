"""
ShieldBot - Health & Status Server
==================================

HTTP endpoints for external monitoring.

DESIGN:
    /health answers "is the bot connected". /status adds the anti-nuke
    aggregates and one snapshot per guild, without user data.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from aiohttp import web

from src.core.logger import logger
from src.core.config import NY_TZ

if TYPE_CHECKING:
    from src.bot import ShieldBot


# =============================================================================
# Health Check Server
# =============================================================================

class HealthCheckServer:
    """
    Lightweight aiohttp server bound to the bot's event loop.

    Attributes:
        bot: Main bot instance.
        port: Port number for the HTTP server.
        app: aiohttp Application instance.
        runner: AppRunner for lifecycle management.
    """

    def __init__(self, bot: "ShieldBot", port: int = 8080) -> None:
        self.bot = bot
        self.port = port
        self.app = web.Application()
        self.runner: Optional[web.AppRunner] = None

        self.app.router.add_get("/health", self.health_handler)
        self.app.router.add_get("/status", self.status_handler)
        self.app.router.add_get("/", self.health_handler)

    # =========================================================================
    # Request Handlers
    # =========================================================================

    async def health_handler(self, request: web.Request) -> web.Response:
        """Connection status. "starting" until the gateway is ready."""
        is_connected = self.bot.is_ready()
        status = {
            "status": "healthy" if is_connected else "starting",
            "bot": "ShieldBot",
            "connected": is_connected,
            "guilds": len(self.bot.guilds),
            "timestamp": datetime.now(NY_TZ).isoformat(),
        }
        logger.debug(f"Health check: {status['status']}")
        return web.json_response(status)

    async def status_handler(self, request: web.Request) -> web.Response:
        """Anti-nuke aggregates plus one snapshot per known guild."""
        service = getattr(self.bot, "antinuke", None)
        if service is None:
            return web.json_response({"status": "starting"}, status=503)

        try:
            payload = service.global_snapshot()
            payload["any_raid_active"] = service.any_raid_active()
            payload["guild_snapshots"] = [
                service.snapshot(state.guild_id).to_dict() for state in service.store
            ]
            payload["timestamp"] = datetime.now(NY_TZ).isoformat()
            return web.json_response(payload)
        except Exception as e:
            logger.error("Status Endpoint Error", [
                ("Error", str(e)[:100]),
                ("Type", type(e).__name__),
            ])
            return web.json_response({"status": "error", "error": str(e)}, status=500)

    # =========================================================================
    # Lifecycle Management
    # =========================================================================

    async def start(self) -> None:
        try:
            self.runner = web.AppRunner(self.app)
            await self.runner.setup()
            site = web.TCPSite(self.runner, "0.0.0.0", self.port)
            await site.start()

            logger.tree("Health Server Started", [
                ("Port", str(self.port)),
                ("Endpoints", "/health, /status"),
            ], emoji="🏥")
        except OSError as e:
            logger.error("Health Server Startup Failed", [
                ("Port", str(self.port)),
                ("Error", str(e)[:100]),
            ])

    async def stop(self) -> None:
        """Safe to call even if the server never started."""
        if self.runner:
            await self.runner.cleanup()
            logger.info("Health check server stopped")


__all__ = ["HealthCheckServer"]
