"""
Time Tracking Manager — the start/stop state machine for task timers.

Per (task, user) a timer is Idle or Running. start() moves Idle -> Running by
inserting an open entry; stop() moves Running -> Idle by closing it. Whether
the timer is already running is decided by the store's conditional write, not
by any in-process state, so several server processes can share one database.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from taskpulse.data.models import TimeEntry, TimeEntryView, TimeReport, Window
from taskpulse.data.repository import Repository
from taskpulse.errors import AlreadyOpenError, ConflictError, NotFoundError
from taskpulse.realtime.broadcaster import TIME_STARTED, TIME_STOPPED, Scope
from taskpulse.services.durations import entry_duration_ms, total_duration_ms, utc_now

logger = logging.getLogger(__name__)


class TimeTrackingManager:
    """
    Starts and stops timers and lists their history.

    Timers on different tasks of the same user are independent; only one
    running entry per task is enforced.
    """

    def __init__(
        self,
        repo: Repository,
        broadcaster,
        clock: Callable[[], datetime] = utc_now,
        on_change: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.repo = repo
        self.broadcaster = broadcaster
        self.clock = clock
        # Called with the user id after a successful start/stop
        self.on_change = on_change

    # ── State transitions ───────────────────────────────────────────────────

    def start(self, task_id: str, user_id: str) -> TimeEntry:
        """Begin timing a task. Raises NotFoundError or ConflictError."""
        task = self.repo.find_task_owned_by(task_id, user_id)
        if task is None:
            raise NotFoundError("Task not found", {"task_id": task_id})

        try:
            entry = self.repo.create_open_entry(task_id, user_id, self.clock())
        except AlreadyOpenError:
            logger.info("Start refused, timer already running: task %s user %s", task_id, user_id)
            raise ConflictError(
                "Time tracking already started for this task", {"task_id": task_id}
            ) from None

        logger.info("Time tracking started: task %s user %s", task_id, user_id)
        self._announce(TIME_STARTED, entry)
        return entry

    def stop(self, task_id: str, user_id: str) -> TimeEntry:
        """Stop the running timer of a task. Raises NotFoundError if none is running."""
        open_entry = self.repo.find_open_entry(task_id, user_id)
        if open_entry is None:
            raise NotFoundError(
                "No active time tracking found for this task", {"task_id": task_id}
            )

        entry = self.repo.close_entry(open_entry.id, self.clock())
        if entry is None:
            # A concurrent stop closed it between our read and our write
            raise NotFoundError(
                "No active time tracking found for this task", {"task_id": task_id}
            )

        logger.info("Time tracking stopped: task %s user %s (%d ms)",
                    task_id, user_id, entry_duration_ms(entry))
        self._announce(TIME_STOPPED, entry)
        return entry

    # ── Reads ───────────────────────────────────────────────────────────────

    def list_entries(
        self, task_id: str, user_id: str, window: Optional[Window] = None
    ) -> List[TimeEntryView]:
        """Entries of one task, newest first. Running entries show elapsed-so-far."""
        if self.repo.find_task_owned_by(task_id, user_id) is None:
            raise NotFoundError("Task not found", {"task_id": task_id})
        now = self.clock()
        entries = self.repo.list_entries(task_id, user_id, window)
        logger.info("Time entries retrieved: task %s user %s count %d",
                    task_id, user_id, len(entries))
        return [TimeEntryView(entry=e, duration_ms=entry_duration_ms(e, now)) for e in entries]

    def report(self, user_id: str, window: Optional[Window] = None) -> TimeReport:
        """Closed entries in the window with their summed duration."""
        closed = self.repo.list_closed_entries(user_id, window)
        total = total_duration_ms(c.entry for c in closed)
        logger.info("Time report generated: user %s entries %d", user_id, len(closed))
        return TimeReport(entries=closed, total_time_ms=total)

    # ── Helpers ─────────────────────────────────────────────────────────────

    def _announce(self, event_name: str, entry: TimeEntry) -> None:
        self.broadcaster.publish(event_name, entry.to_dict(), Scope.for_user(entry.user_id))
        if self.on_change:
            self.on_change(entry.user_id)


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Owns the timer lifecycle. start() checks ownership, then relies on
#   Repository.create_open_entry() to atomically refuse a second running
#   entry; the store's AlreadyOpenError becomes ConflictError here.
#
# Data flow:
#   Api -> TimeTrackingManager.start() -> Repository.create_open_entry()
#   -> broadcaster.publish("time:started") -> on_change(user_id)
#   -> StatisticsAggregator.publish_update() -> "statistics:updated"
#
# Notes:
#   - A caller that timed out does not know whether its write committed and
#     must re-read (list_entries) before retrying start/stop.
