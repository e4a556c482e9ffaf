"""
ShieldBot - Discord HTTP Error Logging
======================================

Consistent logging for failed Discord API calls.

Usage:
    from src.utils.discord_rate_limit import log_http_error

    try:
        await guild.ban(user, reason=reason)
    except discord.HTTPException as e:
        log_http_error(e, "Ban", [("User", str(user.id))])

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

from typing import List, Optional, Tuple

import discord

from src.core.logger import logger


# HTTP status code descriptions for logging
HTTP_STATUS_DESCRIPTIONS = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    429: "Rate Limited",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}


def log_http_error(
    e: discord.HTTPException,
    operation: str,
    context: Optional[List[Tuple[str, str]]] = None,
) -> None:
    """
    Log a Discord HTTPException with status details.

    Rate limits, missing permissions and missing targets are warnings,
    since anti-nuke actions routinely race the attacker. Everything else
    is an error.

    Args:
        e: The HTTPException that occurred.
        operation: What was being attempted.
        context: Extra (key, value) pairs for the log tree.
    """
    status_desc = HTTP_STATUS_DESCRIPTIONS.get(e.status, "Unknown")
    retry_after = getattr(e, "retry_after", None)

    log_items = [
        ("Status", f"{e.status} ({status_desc})"),
        ("Error", str(e.text) if getattr(e, "text", None) else str(e)),
    ]
    if retry_after:
        log_items.append(("Retry After", f"{retry_after:.1f}s"))
    if context:
        log_items.extend(context)

    if e.status == 429:
        logger.warning(f"🚦 {operation} Rate Limited", log_items)
    elif e.status == 403:
        logger.warning(f"🚫 {operation} Forbidden", log_items)
    elif e.status == 404:
        logger.warning(f"❓ {operation} Not Found", log_items)
    else:
        logger.error(f"❌ {operation} Failed", log_items)


__all__ = [
    "HTTP_STATUS_DESCRIPTIONS",
    "log_http_error",
]
