"""
ShieldBot - Utils Package
=========================

Stateless helpers shared across the codebase.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from .discord_rate_limit import HTTP_STATUS_DESCRIPTIONS, log_http_error


__all__ = [
    "HTTP_STATUS_DESCRIPTIONS",
    "log_http_error",
]
