"""
Durations — the one place elapsed time is computed.

The manager, both aggregators and the report all go through these helpers so
rounding and timezone handling cannot drift apart. Durations are whole
milliseconds (floor of the exact timedelta).
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from taskpulse.data.models import TimeEntry

_ONE_MS = timedelta(milliseconds=1)
MS_PER_HOUR = 1000 * 60 * 60


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_ms(delta: timedelta) -> int:
    return delta // _ONE_MS


def ms_to_hours(ms: float) -> float:
    return ms / MS_PER_HOUR


def entry_duration_ms(entry: "TimeEntry", now: Optional[datetime] = None) -> int:
    """
    end_time - start_time for a closed entry.

    For a running entry this is the elapsed-so-far against `now`; callers that
    must exclude running entries (the aggregators) filter them out first.
    """
    if entry.start_time is None:
        return 0
    end = entry.end_time
    if end is None:
        end = now or utc_now()
    return max(to_ms(end - entry.start_time), 0)


def total_duration_ms(entries: Iterable["TimeEntry"]) -> int:
    """Sum of closed-entry durations. Running entries contribute nothing."""
    return sum(entry_duration_ms(e) for e in entries if e.end_time is not None)
