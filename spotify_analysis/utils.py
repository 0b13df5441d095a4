"""
Utility functions and classes for Spotify Analysis.
"""

from typing import Optional


class Colors:
    """ANSI color codes for terminal output."""

    HEADER = "\033[95m"
    OKBLUE = "\033[94m"
    OKCYAN = "\033[96m"
    OKGREEN = "\033[92m"
    WARNING = "\033[93m"
    FAIL = "\033[91m"
    ENDC = "\033[0m"
    BOLD = "\033[1m"


def format_duration_ms(ms: Optional[int]) -> str:
    """
    Format a played duration in milliseconds.

    Examples:
        >>> format_duration_ms(45_000)
        '45s'
        >>> format_duration_ms(150_000)
        '2.5m'
        >>> format_duration_ms(5_400_000)
        '1.5h'
    """
    if not ms:
        return "0s"
    seconds = ms / 1000
    if seconds < 60:
        return f"{seconds:.0f}s"
    if seconds < 3600:
        return f"{seconds / 60:.1f}m"
    return f"{seconds / 3600:.1f}h"


def format_count(count: int) -> str:
    """
    Format a row count with appropriate units.

    Args:
        count: Number of rows.

    Returns:
        Formatted string (e.g., "999", "1.2K" or "3.4M").
    """
    if count < 1000:
        return str(count)
    elif count < 1_000_000:
        return f"{count / 1000:.1f}K"
    else:
        return f"{count / 1_000_000:.1f}M"


def truncate_text(text: Optional[str], max_length: int = 50) -> str:
    """
    Shorten text for terminal display, adding an ellipsis.

    Args:
        text: Text to shorten (None becomes "").
        max_length: Maximum length including the ellipsis.
    """
    if not text:
        return ""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
