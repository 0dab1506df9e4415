"""
Datetime utility functions.
Timestamps in rotation state are integer epoch milliseconds.
"""

from datetime import datetime

import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def now_ms() -> int:
    """Current time as integer epoch milliseconds."""
    return int(utcnow().timestamp() * 1000)
