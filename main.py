#!/usr/bin/env python3
"""
ShieldBot - Entry Point
=======================

Anti-nuke and anti-raid protection bot for Discord servers.

Features:
- Channel, role, webhook and bot protection
- Mass ban / kick / join detection with raid lockdown
- Owner-only /shield controls
- Single instance enforcement
- Graceful error handling

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import asyncio
import fcntl
import os
import sys
import traceback

from dotenv import load_dotenv

from src.core.logger import logger


_lock_handle = None


def check_running_instance(pid_file: str) -> bool:
    """
    Check if another ShieldBot instance is already running.

    Holds an exclusive flock on the PID file for the life of the process.

    Returns:
        True if lock acquired successfully, False if another instance is running
    """
    global _lock_handle
    current_pid = os.getpid()

    try:
        if os.path.exists(pid_file):
            try:
                with open(pid_file, "r") as f:
                    old_pid = int(f.read().strip())

                try:
                    os.kill(old_pid, 0)
                    logger.error("Lock File Held By Running Process", [
                        ("PID", str(old_pid)),
                        ("Lock File", pid_file),
                    ])
                    return False
                except OSError:
                    logger.warning("Removing Stale Lock File", [("Dead PID", str(old_pid))])
                    os.remove(pid_file)
            except (ValueError, IOError):
                os.remove(pid_file)

        fp = open(pid_file, "w")
        fcntl.flock(fp.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        fp.write(str(current_pid))
        fp.flush()
        _lock_handle = fp

        logger.info("Instance Lock Acquired", [
            ("PID", str(current_pid)),
            ("Lock File", pid_file),
        ])
        return True

    except IOError as e:
        logger.error("Failed To Acquire Lock File", [
            ("Lock File", pid_file),
            ("Error", str(e)),
        ])
        return False


async def main() -> None:
    """
    Main entry point for ShieldBot.

    Handles the complete bot lifecycle:
    1. Validates configuration
    2. Initializes bot instance with proper intents
    3. Establishes connection to Discord API
    4. Handles graceful shutdown on interruption
    """
    from src.core.config import get_config
    from src.bot import ShieldBot

    config = get_config()

    logger.tree("SHIELD STARTING", [
        ("Server", "discord.gg/syria"),
        ("Log Channel", f"#{config.log_channel_name}"),
        ("Commands", "/shield"),
    ], emoji="🛡️")

    bot = ShieldBot()
    async with bot:
        await bot.start(config.discord_token)


if __name__ == "__main__":
    load_dotenv()

    from src.core.config import ConfigValidationError, get_config

    try:
        pid_file = get_config().pid_file
    except ConfigValidationError as e:
        logger.error("Configuration Invalid", [("Error", str(e))])
        sys.exit(1)

    if not check_running_instance(pid_file):
        logger.error("Startup Aborted", [("Reason", "another instance is already running")])
        sys.exit(1)

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot Stopped By User (Ctrl+C)")
    except Exception as e:
        logger.critical(f"Fatal Error: {type(e).__name__}: {e}")
        logger.error("Fatal Traceback", [("Traceback", traceback.format_exc()[-500:])])
        sys.exit(1)
