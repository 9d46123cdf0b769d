"""
Clock utilities for realtime-reporter.

This module centralizes all time-related helpers used by the reporter so
that every record of a test shares the same time origin. Two flavours are
provided:

- epoch milliseconds (``int``), used for the ``at`` / ``duration`` fields
  of step records and for ``startedAt`` stamps;
- timezone-aware UTC datetimes, used for transport timestamps.

Functions
---------
now_ms()
    Return the current time as integer milliseconds since the epoch.
elapsed_ms(since)
    Milliseconds elapsed since an epoch-ms stamp.
elapsed_seconds(since)
    Seconds elapsed since an epoch-ms stamp.
now_utc()
    Return the current UTC time with timezone info attached.
"""

from __future__ import annotations
import time
from datetime import datetime, timezone as tz


# ---------------------------------------------------------------------------
# Epoch milliseconds
# ---------------------------------------------------------------------------

def now_ms() -> int:
    """
    Return the current wall-clock time in epoch milliseconds.

    Returns
    -------
    int
        Milliseconds since 1970-01-01 UTC.

    Examples
    --------
    >>> from realtime_reporter.clocks import now_ms
    >>> now_ms() > 1_600_000_000_000
    True
    """
    return int(time.time() * 1000)


def elapsed_ms(since: int | float) -> int:
    """
    Milliseconds elapsed since ``since`` (epoch ms), clamped at zero.

    Parameters
    ----------
    since : int or float
        Start stamp in epoch milliseconds.

    Returns
    -------
    int
    """
    return max(now_ms() - int(since), 0)


def elapsed_seconds(since: int | float) -> float:
    """Seconds elapsed since ``since`` (epoch ms), rounded to 3 decimals."""
    return round(elapsed_ms(since) / 1000.0, 3)


# ---------------------------------------------------------------------------
# Datetimes
# ---------------------------------------------------------------------------

def now_utc() -> datetime:
    """
    Return the current UTC time.

    Returns
    -------
    datetime.datetime
        Timezone-aware datetime in UTC.
    """
    return datetime.now(tz.utc)
