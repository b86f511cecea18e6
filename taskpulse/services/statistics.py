"""
Statistics Aggregator — completion and time-distribution summaries.

Pure computation over rows fetched from the Repository; nothing is stored.
summarize_tasks() and summarize_time() hold the arithmetic and take plain
lists so they can be tested without a database.
"""

from __future__ import annotations

import logging
from datetime import tzinfo
from typing import Dict, Iterable, List, Optional

import numpy as np

from taskpulse.data.models import (
    ClosedEntry,
    StatisticsSnapshot,
    Task,
    TaskPriority,
    TaskStatus,
    TimeSnapshot,
    Window,
)
from taskpulse.data.repository import Repository
from taskpulse.errors import StoreFailure
from taskpulse.realtime.broadcaster import STATISTICS_UPDATED, Scope
from taskpulse.services.durations import entry_duration_ms

logger = logging.getLogger(__name__)

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def _rate(part: int, whole: int) -> float:
    return part / whole if whole > 0 else 0.0


def summarize_tasks(tasks: Iterable[Task]) -> StatisticsSnapshot:
    """Counts by status and priority plus completion rates, in one pass."""
    by_status: Dict[str, int] = {s: 0 for s in TaskStatus.ALL}
    by_priority: Dict[str, int] = {p: 0 for p in TaskPriority.ALL}
    completed_by_priority: Dict[str, int] = {p: 0 for p in TaskPriority.ALL}
    total = 0

    for task in tasks:
        total += 1
        by_status[task.status] = by_status.get(task.status, 0) + 1
        by_priority[task.priority] = by_priority.get(task.priority, 0) + 1
        if task.status == TaskStatus.COMPLETED:
            completed_by_priority[task.priority] = completed_by_priority.get(task.priority, 0) + 1

    completed = by_status[TaskStatus.COMPLETED]
    return StatisticsSnapshot(
        total_tasks=total,
        completed_tasks=completed,
        in_progress_tasks=by_status[TaskStatus.IN_PROGRESS],
        pending_tasks=by_status[TaskStatus.PENDING],
        completion_rate=_rate(completed, total),
        tasks_by_priority=by_priority,
        completion_rate_by_priority={
            p: _rate(completed_by_priority.get(p, 0), count) for p, count in by_priority.items()
        },
    )


def summarize_time(entries: List[ClosedEntry], tz: tzinfo) -> TimeSnapshot:
    """
    Total, per-priority, per-weekday and per-task averages of closed entries.

    Weekday buckets use the weekday name of start_time in `tz`, across the
    whole window (all Mondays together, and so on). Running entries are
    ignored.
    """
    closed = [c for c in entries if c.entry.end_time is not None]
    if not closed:
        return TimeSnapshot(
            time_by_priority={p: 0 for p in TaskPriority.ALL},
        )

    durations = np.array([entry_duration_ms(c.entry) for c in closed], dtype=np.int64)
    priorities = np.array([c.task_priority for c in closed])
    weekdays = np.array([c.entry.start_time.astimezone(tz).weekday() for c in closed])
    task_ids = np.array([c.entry.task_id for c in closed])

    total = int(durations.sum())
    time_by_priority = {p: int(durations[priorities == p].sum()) for p in TaskPriority.ALL}
    time_by_day = {
        WEEKDAYS[day]: int(durations[weekdays == day].sum())
        for day in np.unique(weekdays)
    }
    distinct_tasks = len(np.unique(task_ids))

    return TimeSnapshot(
        total_time_ms=total,
        time_by_priority=time_by_priority,
        time_by_day=time_by_day,
        average_time_per_task_ms=total / distinct_tasks,
    )


class StatisticsAggregator:
    """Builds StatisticsSnapshot / TimeSnapshot for one user and announces updates."""

    def __init__(self, repo: Repository, broadcaster, tz: tzinfo) -> None:
        self.repo = repo
        self.broadcaster = broadcaster
        self.tz = tz

    def task_statistics(self, user_id: str, window: Optional[Window] = None) -> StatisticsSnapshot:
        """Completion summary of tasks created in the window. Also pushed to the user's clients."""
        snapshot = summarize_tasks(self.repo.list_tasks(user_id, window))
        self.broadcaster.publish(STATISTICS_UPDATED, snapshot.to_dict(), Scope.for_user(user_id))
        logger.info("Task statistics retrieved: user %s", user_id)
        return snapshot

    def time_statistics(self, user_id: str, window: Optional[Window] = None) -> TimeSnapshot:
        snapshot = summarize_time(self.repo.list_closed_entries(user_id, window), self.tz)
        logger.info("Time statistics retrieved: user %s", user_id)
        return snapshot

    def publish_update(self, user_id: str) -> None:
        """
        Recompute the user's overall task statistics and push them.

        Wired as the on_change hook of the mutating services. A store failure
        here is logged and does not undo the mutation that triggered it.
        """
        try:
            snapshot = summarize_tasks(self.repo.list_tasks(user_id))
        except StoreFailure:
            logger.exception("Skipped statistics:updated for user %s", user_id)
            return
        self.broadcaster.publish(STATISTICS_UPDATED, snapshot.to_dict(), Scope.for_user(user_id))


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Turns a user's tasks and finished time entries into the numbers shown on
#   the statistics page.
#
# Key points:
#   - Every rate goes through _rate(), which returns 0.0 for an empty bucket.
#   - summarize_time() builds parallel numpy arrays (duration, priority,
#     weekday, task id) and sums under boolean masks, one mask per bucket.
#   - Snapshots are point-in-time and may trail an in-flight stop();
#     clients converge through the statistics:updated event.
