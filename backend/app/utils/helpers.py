"""
Helper utilities for the application.
"""
import zlib


def format_currency(value: float) -> str:
    """
    Format currency value with appropriate suffix.

    Args:
        value: Numeric value

    Returns:
        Formatted string (e.g., "1.5M", "250K")
    """
    if value >= 1_000_000:
        return f"{value / 1_000_000:.2f}M"
    elif value >= 1_000:
        return f"{value / 1_000:.0f}K"
    else:
        return f"{value:.2f}"


def stable_score(*parts: str) -> float:
    """
    Deterministic 0-100 score for a combination of labels.

    Used for comparison tables so the same request always yields the same
    ranking.
    """
    key = "|".join(p.lower() for p in parts).encode("utf-8")
    return round((zlib.crc32(key) % 10000) / 100, 1)
