"""
Productivity Streak Calculator — day-level completion metrics.

A streak is a run of consecutive calendar days with at least one completed
task. Completion time is the task's updated_at when its status is completed.
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, tzinfo
from typing import Callable, Iterable, Optional

import numpy as np

from taskpulse.data.models import ProductivityMetrics, Window
from taskpulse.data.repository import Repository
from taskpulse.services.durations import utc_now

logger = logging.getLogger(__name__)


def compute_streaks(
    completion_times: Iterable[datetime], today: date, tz: tzinfo
) -> ProductivityMetrics:
    """
    Group completions by calendar date and walk the sorted dates.

    The running streak grows by one when the gap to the previous date is
    exactly one day and resets to 1 otherwise. longest_streak is the largest
    running value, the first date included. current_streak is the final
    running value only when the last date is today or yesterday.
    """
    per_day = Counter(ts.astimezone(tz).date() for ts in completion_times)
    if not per_day:
        return ProductivityMetrics()

    dates = sorted(per_day)
    ordinals = np.array([d.toordinal() for d in dates], dtype=np.int64)
    gaps = np.diff(ordinals)

    running = 1
    longest = 1
    for gap in gaps:
        running = running + 1 if gap == 1 else 1
        longest = max(longest, running)

    current = running if (today - dates[-1]).days <= 1 else 0
    total = sum(per_day.values())

    return ProductivityMetrics(
        total_completed_tasks=total,
        tasks_per_day={d.isoformat(): per_day[d] for d in dates},
        average_tasks_per_day=total / len(dates),
        current_streak=current,
        longest_streak=longest,
    )


class ProductivityStreakCalculator:
    def __init__(
        self, repo: Repository, tz: tzinfo, clock: Callable[[], datetime] = utc_now
    ) -> None:
        self.repo = repo
        self.tz = tz
        self.clock = clock

    def metrics(self, user_id: str, window: Optional[Window] = None) -> ProductivityMetrics:
        completed = self.repo.list_completed_tasks(user_id, window)
        today = self.clock().astimezone(self.tz).date()
        result = compute_streaks((t.updated_at for t in completed), today, self.tz)
        logger.info("Productivity metrics retrieved: user %s", user_id)
        return result
