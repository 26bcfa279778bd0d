"""
Structured logging helpers for consistent log formatting.

Also hosts the masking helpers used whenever URLs or secrets reach the logs.
"""
import logging


def log_section_start(logger: logging.Logger, section_name: str) -> None:
    """
    Log the start of a processing section.

    Args:
        logger: Logger instance
        section_name: Name of the section being started
    """
    logger.info(f"Starting: {section_name}")


def log_section_end(logger: logging.Logger, section_name: str) -> None:
    """
    Log the end of a processing section.

    Args:
        logger: Logger instance
        section_name: Name of the section being ended
    """
    logger.info(f"Completed: {section_name}")


def log_merge_summary(
    logger: logging.Logger,
    total_channels: int,
    added: int,
    updated: int
) -> None:
    """
    Log playlist merge summary.

    Args:
        logger: Logger instance
        total_channels: Size of the merged channel set
        added: Channels that only exist in the playlist
        updated: Guide channels that received playlist fields
    """
    logger.info(f"Merge summary - Channels: {total_channels} (added: {added}, updated: {updated})")


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


def obfuscate(value: str, full: bool = False) -> str:
    """
    Mask a secret for display in logs.

    Args:
        value: The string to mask
        full: Mask every character instead of leaving the last 4 visible

    Returns:
        Masked string (empty input stays empty)
    """
    if not value:
        return ""
    hidden = len(value) if full else max(len(value) - 4, 0)
    return "*" * hidden + value[hidden:]
