"""
Logging helpers.
"""
import logging


def sanitize_url_for_logging(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    if "://" not in url:
        return url
    try:
        protocol, rest = url.split("://", 1)
        if "@" in rest:
            rest = rest.split("@", 1)[1]
            return f"{protocol}://***:***@{rest}"
        return url
    except (ValueError, IndexError):
        return url


def log_refresh_summary(logger: logging.Logger, name: str, count: int, previous: int | None) -> None:
    """Log the outcome of a successful refresh cycle."""
    if previous is None:
        logger.info("%s loaded: %s entries", name, count)
    else:
        logger.info("%s refreshed: %s entries (previously %s)", name, count, previous)
