"""
Structured logging helpers for consistent log formatting.

Provides utilities for structured, clean logging without excessive decorative separators.
"""
import logging
from datetime import datetime, timezone


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


def log_source_processing(logger: logging.Logger, idx: int, total: int, name: str) -> None:
    """
    Log source processing header.

    Args:
        logger: Logger instance
        idx: Current source index (1-based)
        total: Total number of sources
        name: Name of the source being processed
    """
    logger.info(f"Processing source {idx}/{total}: {name}")


def log_run_start(logger: logging.Logger) -> None:
    """Log refresh run start."""
    logger.info(f"Refresh started at {datetime.now(timezone.utc).isoformat()}")


def log_run_end(logger: logging.Logger) -> None:
    """Log refresh run end."""
    logger.info(f"Refresh completed at {datetime.now(timezone.utc).isoformat()}")


def log_run_summary(
    logger: logging.Logger,
    sources_succeeded: int,
    sources_failed: int,
    playlists_written: int
) -> None:
    """
    Log refresh run summary.

    Args:
        logger: Logger instance
        sources_succeeded: Number of sources processed without error
        sources_failed: Number of sources with at least one failed step
        playlists_written: Number of playlist files written
    """
    logger.info(
        f"Run summary - Sources OK: {sources_succeeded}, Failed: {sources_failed}, "
        f"Playlists written: {playlists_written}"
    )


def sanitize_url_for_logging(url: str) -> str:
    """Remove credentials from URL for safe logging."""
    if "://" not in url:
        return url
    try:
        protocol, rest = url.split("://", 1)
        if "@" in rest.split("/", 1)[0]:
            rest = rest.split("@", 1)[1]
            return f"{protocol}://***:***@{rest}"
        return url
    except (ValueError, IndexError):
        return url
