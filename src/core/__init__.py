"""
ShieldBot - Core Package
========================

Configuration, logging and health monitoring.

DESIGN:
    Core modules are singletons or global instances so every module
    shares the same state:
    - get_config() returns the same Config instance
    - logger is a global TreeLogger instance

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

# =============================================================================
# Core Imports
# =============================================================================

from .config import (
    Config,
    ConfigValidationError,
    EmbedColors,
    NY_TZ,
    get_config,
)

from .logger import logger, TreeLogger

from .health import HealthCheckServer


# =============================================================================
# Module Export
# =============================================================================

__all__ = [
    # Config
    "Config",
    "ConfigValidationError",
    "EmbedColors",
    "NY_TZ",
    "get_config",
    # Logger
    "logger",
    "TreeLogger",
    # Health
    "HealthCheckServer",
]
