"""
Logging utilities for the sign-in service.

Provides a consistent logging format plus helpers for keeping credentials out
of log lines.
"""

import logging
import sys
from typing import Optional


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with the service's line format."""
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )
    # httpx logs full request URLs at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def mask_secret(value: Optional[str], visible: int = 6) -> str:
    """Return a truncated, log-safe rendering of a token or secret."""
    if not value:
        return "<missing>"
    if len(value) <= visible * 2:
        return "***"
    return f"{value[:visible]}...({len(value)} chars)"


__all__ = ["configure_logging", "mask_secret"]
