"""Utility functions for Automaker."""

from automaker.utils.logging import configure_logging, get_logger
from automaker.utils.time import elapsed_ms, utc_now_iso

__all__ = [
    "configure_logging",
    "elapsed_ms",
    "get_logger",
    "utc_now_iso",
]
