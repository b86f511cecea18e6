"""
Repository — the single place where SQL lives.

Every other module talks to Repository, never to raw SQL. All queries are
row-filtered by owner. sqlite errors are logged here with their context and
re-raised as StoreFailure so no driver detail reaches a caller.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, List, Optional

from taskpulse.errors import AlreadyOpenError, StoreFailure

from .models import ClosedEntry, Task, TaskStatus, TimeEntry, Window

logger = logging.getLogger(__name__)

# Stored timestamps share one fixed-width UTC format so that string order in
# SQL equals time order.
_DT_FORMAT = "%Y-%m-%dT%H:%M:%S.%f+00:00"

# helper: parse ISO datetime strings from SQLite
_parse_dt = lambda s: datetime.fromisoformat(s) if s else None

# Columns a task update may touch
_UPDATABLE_TASK_FIELDS = ("title", "description", "priority", "due_date")


def _fmt_dt(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(_DT_FORMAT)


def new_id() -> str:
    return str(uuid.uuid4())


def _is_open_entry_conflict(exc: sqlite3.IntegrityError) -> bool:
    return "UNIQUE" in str(exc) and "time_entries" in str(exc)


class Repository:
    """Data-access layer wrapping a sqlite3 connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    # ── Tasks ───────────────────────────────────────────────────────────────

    def create_task(
        self,
        user_id: str,
        title: str,
        description: str = "",
        priority: str = "medium",
        due_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Task:
        now = now or datetime.now(timezone.utc)
        task_id = new_id()
        with self._guard("create_task", user_id=user_id):
            self.conn.execute(
                "INSERT INTO tasks (id, user_id, title, description, status, priority, "
                "due_date, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (task_id, user_id, title, description, TaskStatus.PENDING, priority,
                 _fmt_dt(due_date), _fmt_dt(now), _fmt_dt(now)),
            )
            self.conn.commit()
        return self.find_task_owned_by(task_id, user_id)

    def find_task_owned_by(self, task_id: str, user_id: str) -> Optional[Task]:
        with self._guard("find_task_owned_by", task_id=task_id, user_id=user_id):
            row = self.conn.execute(
                "SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)
            ).fetchone()
        return self._row_to_task(row) if row else None

    def list_tasks(self, user_id: str, window: Optional[Window] = None) -> List[Task]:
        """All of a user's tasks, newest first; the window applies to created_at."""
        query = "SELECT * FROM tasks WHERE user_id = ?"
        params: list = [user_id]
        query, params = self._apply_window(query, params, window, "created_at", "created_at")
        query += " ORDER BY created_at DESC"
        with self._guard("list_tasks", user_id=user_id):
            rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_task(r) for r in rows]

    def list_completed_tasks(self, user_id: str, window: Optional[Window] = None) -> List[Task]:
        """Completed tasks; the window applies to updated_at (the completion time)."""
        query = "SELECT * FROM tasks WHERE user_id = ? AND status = ?"
        params: list = [user_id, TaskStatus.COMPLETED]
        query, params = self._apply_window(query, params, window, "updated_at", "updated_at")
        query += " ORDER BY updated_at"
        with self._guard("list_completed_tasks", user_id=user_id):
            rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_task(r) for r in rows]

    def update_task(
        self, task_id: str, user_id: str, fields: dict, now: Optional[datetime] = None
    ) -> Optional[Task]:
        """Update title/description/priority/due_date. Returns None if not owned."""
        columns = [c for c in _UPDATABLE_TASK_FIELDS if c in fields]
        values = [
            _fmt_dt(fields[c]) if c == "due_date" else fields[c] for c in columns
        ]
        return self._update_task_columns(task_id, user_id, columns, values, now)

    def update_task_status(
        self, task_id: str, user_id: str, status: str, now: Optional[datetime] = None
    ) -> Optional[Task]:
        return self._update_task_columns(task_id, user_id, ["status"], [status], now)

    def delete_task(self, task_id: str, user_id: str) -> bool:
        """Delete a task and, by cascade, its time entries."""
        with self._guard("delete_task", task_id=task_id, user_id=user_id):
            cur = self.conn.execute(
                "DELETE FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)
            )
            self.conn.commit()
        if cur.rowcount:
            logger.debug("Deleted task %s", task_id)
        return cur.rowcount > 0

    def _update_task_columns(
        self,
        task_id: str,
        user_id: str,
        columns: List[str],
        values: list,
        now: Optional[datetime],
    ) -> Optional[Task]:
        now = now or datetime.now(timezone.utc)
        assignments = ", ".join(f"{c} = ?" for c in columns + ["updated_at"])
        with self._guard("update_task", task_id=task_id, user_id=user_id):
            cur = self.conn.execute(
                f"UPDATE tasks SET {assignments} WHERE id = ? AND user_id = ?",
                (*values, _fmt_dt(now), task_id, user_id),
            )
            self.conn.commit()
        if cur.rowcount == 0:
            return None
        return self.find_task_owned_by(task_id, user_id)

    # ── Time entries ────────────────────────────────────────────────────────

    def find_open_entry(self, task_id: str, user_id: str) -> Optional[TimeEntry]:
        with self._guard("find_open_entry", task_id=task_id, user_id=user_id):
            row = self.conn.execute(
                "SELECT * FROM time_entries "
                "WHERE task_id = ? AND user_id = ? AND end_time IS NULL",
                (task_id, user_id),
            ).fetchone()
        return self._row_to_entry(row) if row else None

    def create_open_entry(self, task_id: str, user_id: str, start_time: datetime) -> TimeEntry:
        """
        Insert a running entry.

        The partial unique index on (task_id WHERE end_time IS NULL) makes the
        "no open entry" check and the insert one atomic step. A losing writer
        gets AlreadyOpenError.
        """
        entry_id = new_id()
        with self._guard("create_open_entry", task_id=task_id, user_id=user_id):
            try:
                self.conn.execute(
                    "INSERT INTO time_entries (id, task_id, user_id, start_time, end_time) "
                    "VALUES (?, ?, ?, ?, NULL)",
                    (entry_id, task_id, user_id, _fmt_dt(start_time)),
                )
                self.conn.commit()
            except sqlite3.IntegrityError as exc:
                if not _is_open_entry_conflict(exc):
                    raise
                self.conn.rollback()
                raise AlreadyOpenError(task_id) from exc
        return TimeEntry(id=entry_id, task_id=task_id, user_id=user_id,
                         start_time=_parse_dt(_fmt_dt(start_time)))

    def close_entry(self, entry_id: str, end_time: datetime) -> Optional[TimeEntry]:
        """Set end_time on a running entry. None if it was already closed."""
        with self._guard("close_entry", entry_id=entry_id):
            cur = self.conn.execute(
                "UPDATE time_entries SET end_time = ? WHERE id = ? AND end_time IS NULL",
                (_fmt_dt(end_time), entry_id),
            )
            self.conn.commit()
            if cur.rowcount == 0:
                return None
            row = self.conn.execute(
                "SELECT * FROM time_entries WHERE id = ?", (entry_id,)
            ).fetchone()
        return self._row_to_entry(row)

    def list_entries(
        self, task_id: str, user_id: str, window: Optional[Window] = None
    ) -> List[TimeEntry]:
        """A task's entries, running ones included, newest start first."""
        query = "SELECT * FROM time_entries WHERE task_id = ? AND user_id = ?"
        params: list = [task_id, user_id]
        query, params = self._apply_window(query, params, window, "start_time", "start_time")
        query += " ORDER BY start_time DESC, id"
        with self._guard("list_entries", task_id=task_id, user_id=user_id):
            rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_entry(r) for r in rows]

    def list_closed_entries(
        self, user_id: str, window: Optional[Window] = None
    ) -> List[ClosedEntry]:
        """
        Finished entries joined with their task's title and priority.

        Window: start_time >= start and end_time <= end.
        """
        query = (
            "SELECT e.*, t.title AS task_title, t.priority AS task_priority "
            "FROM time_entries e JOIN tasks t ON e.task_id = t.id "
            "WHERE e.user_id = ? AND e.end_time IS NOT NULL"
        )
        params: list = [user_id]
        query, params = self._apply_window(query, params, window, "e.start_time", "e.end_time")
        query += " ORDER BY e.start_time DESC, e.id"
        with self._guard("list_closed_entries", user_id=user_id):
            rows = self.conn.execute(query, params).fetchall()
        return [
            ClosedEntry(entry=self._row_to_entry(r), task_title=r["task_title"],
                        task_priority=r["task_priority"])
            for r in rows
        ]

    # ── Helpers ─────────────────────────────────────────────────────────────

    @staticmethod
    def _apply_window(
        query: str, params: list, window: Optional[Window], start_col: str, end_col: str
    ):
        if window is None:
            return query, params
        if window.start is not None:
            query += f" AND {start_col} >= ?"
            params.append(_fmt_dt(window.start))
        if window.end is not None:
            query += f" AND {end_col} <= ?"
            params.append(_fmt_dt(window.end))
        return query, params

    @contextmanager
    def _guard(self, operation: str, **context) -> Iterator[None]:
        """Translate sqlite errors into StoreFailure, logging the full context."""
        try:
            yield
        except sqlite3.Error as exc:
            try:
                if self.conn.in_transaction:
                    self.conn.rollback()
            except sqlite3.Error:
                logger.debug("Rollback after failed %s did not run", operation)
            logger.error("Store operation %s failed %s", operation, context, exc_info=True)
            raise StoreFailure("Storage operation failed", {"operation": operation}) from exc

    # ── Row mappers ─────────────────────────────────────────────────────────

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=row["id"], user_id=row["user_id"],
            title=row["title"], description=row["description"],
            status=row["status"], priority=row["priority"],
            due_date=_parse_dt(row["due_date"]),
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> TimeEntry:
        return TimeEntry(
            id=row["id"], task_id=row["task_id"], user_id=row["user_id"],
            start_time=_parse_dt(row["start_time"]),
            end_time=_parse_dt(row["end_time"]),
        )


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   The Repository is the ONLY place raw SQL queries live. Every query filters
#   by the owning user, so one user's rows never leak into another's reports.
#
# Key methods:
#   - create_open_entry / close_entry: the two conditional writes behind the
#     timer. Both are single statements whose WHERE clause or unique index
#     decides the race, so no in-process lock is involved.
#   - list_closed_entries: the joined read behind the time report and the
#     time distribution.
#
# Data flow:
#   Service layer -> Repository.method() -> SQL -> sqlite3.Row -> dataclass
