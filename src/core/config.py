"""
ShieldBot - Configuration Module
================================

Centralized configuration loaded from environment variables.

DESIGN:
    A single Config dataclass is built once by get_config(). Only the
    bot token is required; every protection knob has a default matching
    the zero-tolerance behaviour the bot ships with.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import os
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Set

from .logger import NY_TZ


# =============================================================================
# Channel Modification Severity
# =============================================================================

CHANNEL_MODIFY_ACTIONS = ("ban", "kick", "timeout")


# =============================================================================
# Configuration Dataclass
# =============================================================================

@dataclass
class Config:
    """
    Bot configuration loaded from environment variables.

    Attributes:
        discord_token: Discord bot authentication token.
        developer_id: Optional user ID pinged on critical alerts.
        log_channel_name: Name of the per-guild security log channel.
        channel_modify_action: Sanction for channel modifications.
        extra_suspicious_keywords: Keywords added to both name lists.
    """

    # -------------------------------------------------------------------------
    # Required: Discord
    # -------------------------------------------------------------------------

    discord_token: str

    # -------------------------------------------------------------------------
    # Optional: Identity
    # -------------------------------------------------------------------------

    developer_id: Optional[int] = None

    # -------------------------------------------------------------------------
    # Optional: Channels
    # -------------------------------------------------------------------------

    log_channel_name: str = "security-logs"

    # -------------------------------------------------------------------------
    # Optional: Policy
    # -------------------------------------------------------------------------

    channel_modify_action: str = "ban"
    extra_suspicious_keywords: FrozenSet[str] = field(default_factory=frozenset)
    raid_duration_seconds: int = 3600

    # -------------------------------------------------------------------------
    # Optional: Scheduler Intervals (seconds)
    # -------------------------------------------------------------------------

    sweep_interval: int = 30
    timeout_check_interval: int = 30
    status_refresh_interval: int = 60

    # -------------------------------------------------------------------------
    # Optional: Process
    # -------------------------------------------------------------------------

    health_port: int = 8080
    pid_file: str = "/tmp/shieldbot.pid"
    error_webhook_url: Optional[str] = None


# =============================================================================
# Embed Colors
# =============================================================================

class EmbedColors:
    """Color palette for alert and status embeds."""

    RED = 0xFF0000      # Bans, nuke attempts
    ORANGE = 0xFF6600   # Kicks of whitelisted users, active timeouts
    GREEN = 0x00FF00    # Normal mode, releases
    BLUE = 0x0099FF     # Activity views
    GOLD = 0xFFD700     # Raid observations

    SUCCESS = GREEN
    DANGER = RED
    WARNING = ORANGE
    INFO = BLUE


# =============================================================================
# Validation
# =============================================================================

class ConfigValidationError(Exception):
    """Raised when required configuration is missing or invalid."""

    pass


def _parse_int_optional(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_keywords(value: Optional[str]) -> FrozenSet[str]:
    """Parse a comma-separated keyword list, lower-cased."""
    if not value:
        return frozenset()
    return frozenset(part.strip().lower() for part in value.split(",") if part.strip())


def _parse_int_with_default(
    value: Optional[str],
    default: int,
    name: str,
    min_val: Optional[int] = None,
    max_val: Optional[int] = None,
) -> int:
    """
    Parse optional integer with default and range clamping.

    Args:
        value: String value from environment variable.
        default: Default value if not set or invalid.
        name: Variable name for warning messages.
        min_val: Minimum allowed value (inclusive).
        max_val: Maximum allowed value (inclusive).
    """
    if not value:
        return default
    from .logger import logger
    try:
        parsed = int(value)
    except ValueError:
        logger.warning(f"Config {name}='{value}' invalid, using default {default}")
        return default
    if min_val is not None and parsed < min_val:
        logger.warning(f"Config {name}={parsed} below min {min_val}, using {min_val}")
        return min_val
    if max_val is not None and parsed > max_val:
        logger.warning(f"Config {name}={parsed} above max {max_val}, using {max_val}")
        return max_val
    return parsed


def _parse_channel_action(value: Optional[str]) -> str:
    if not value:
        return "ban"
    action = value.strip().lower()
    if action not in CHANNEL_MODIFY_ACTIONS:
        raise ConfigValidationError(
            f"Invalid CHANNEL_MODIFY_ACTION: {value} (expected one of {', '.join(CHANNEL_MODIFY_ACTIONS)})"
        )
    return action


def _validate_url(value: Optional[str], name: str) -> Optional[str]:
    if not value:
        return None
    if not value.startswith(("https://", "http://")):
        from .logger import logger
        logger.warning(f"Config {name} invalid URL format, ignoring")
        return None
    return value


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config() -> Config:
    """
    Load and validate configuration from environment variables.

    Raises:
        ConfigValidationError: If DISCORD_TOKEN is missing or a value is invalid.
    """
    discord_token = os.getenv("DISCORD_TOKEN") or os.getenv("DISCORD_BOT_TOKEN")
    if not discord_token:
        raise ConfigValidationError("Missing required environment variables: DISCORD_TOKEN")

    return Config(
        discord_token=discord_token,
        developer_id=_parse_int_optional(os.getenv("DEVELOPER_ID")),
        log_channel_name=os.getenv("LOG_CHANNEL_NAME", "security-logs"),
        channel_modify_action=_parse_channel_action(os.getenv("CHANNEL_MODIFY_ACTION")),
        extra_suspicious_keywords=_parse_keywords(os.getenv("EXTRA_SUSPICIOUS_KEYWORDS")),
        raid_duration_seconds=_parse_int_with_default(
            os.getenv("RAID_DURATION_SECONDS"), 3600, "RAID_DURATION_SECONDS", min_val=60, max_val=86400
        ),
        sweep_interval=_parse_int_with_default(
            os.getenv("SWEEP_INTERVAL"), 30, "SWEEP_INTERVAL", min_val=5, max_val=300
        ),
        timeout_check_interval=_parse_int_with_default(
            os.getenv("TIMEOUT_CHECK_INTERVAL"), 30, "TIMEOUT_CHECK_INTERVAL", min_val=5, max_val=300
        ),
        status_refresh_interval=_parse_int_with_default(
            os.getenv("STATUS_REFRESH_INTERVAL"), 60, "STATUS_REFRESH_INTERVAL", min_val=10, max_val=3600
        ),
        health_port=_parse_int_with_default(
            os.getenv("HEALTH_PORT"), 8080, "HEALTH_PORT", min_val=1, max_val=65535
        ),
        pid_file=os.getenv("PID_FILE", "/tmp/shieldbot.pid"),
        error_webhook_url=_validate_url(os.getenv("ERROR_WEBHOOK_URL"), "ERROR_WEBHOOK_URL"),
    )


# =============================================================================
# Global Config Instance
# =============================================================================

_config: Optional[Config] = None


def get_config() -> Config:
    """
    Get the global configuration instance, loading if needed.

    Raises:
        ConfigValidationError: On first call if config is invalid.
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


__all__ = [
    "Config",
    "ConfigValidationError",
    "EmbedColors",
    "CHANNEL_MODIFY_ACTIONS",
    "NY_TZ",
    "get_config",
    "load_config",
]
