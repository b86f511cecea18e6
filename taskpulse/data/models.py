"""
Data models for TaskPulse.

These are plain dataclasses that represent database rows and the reports
computed from them. Every layer speaks in these types; only the Repository
knows about sqlite rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from taskpulse.services.durations import entry_duration_ms, ms_to_hours


class TaskStatus:
    """Allowed values for Task.status."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    ALL = (PENDING, IN_PROGRESS, COMPLETED)


class TaskPriority:
    """Allowed values for Task.priority."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    ALL = (HIGH, MEDIUM, LOW)


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


@dataclass
class Task:
    """A unit of work owned by exactly one user."""
    id: Optional[str] = None
    user_id: Optional[str] = None
    title: str = ""
    description: str = ""
    status: str = TaskStatus.PENDING
    priority: str = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "due_date": _iso(self.due_date),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class TimeEntry:
    """
    One timer run against a task.

    end_time is None while the timer is running. Duration is never stored;
    see services.durations.
    """
    id: Optional[str] = None
    task_id: Optional[str] = None
    user_id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def is_running(self) -> bool:
        return self.end_time is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
        }


@dataclass
class ClosedEntry:
    """A finished TimeEntry joined with the fields of its task that reports need."""
    entry: TimeEntry
    task_title: str = ""
    task_priority: str = TaskPriority.MEDIUM


@dataclass
class Window:
    """Optional [start, end] range used to scope queries. Either side may be open."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None


# ── Ephemeral reports (recomputed per request, never persisted) ─────────────


@dataclass
class TimeEntryView:
    """An entry as shown in listings: running entries report elapsed-so-far."""
    entry: TimeEntry
    duration_ms: int = 0

    def to_dict(self) -> dict:
        d = self.entry.to_dict()
        d["duration_ms"] = self.duration_ms
        d["is_running"] = self.entry.is_running
        return d


@dataclass
class StatisticsSnapshot:
    total_tasks: int = 0
    completed_tasks: int = 0
    in_progress_tasks: int = 0
    pending_tasks: int = 0
    completion_rate: float = 0.0
    tasks_by_priority: Dict[str, int] = field(default_factory=dict)
    completion_rate_by_priority: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "in_progress_tasks": self.in_progress_tasks,
            "pending_tasks": self.pending_tasks,
            "completion_rate": self.completion_rate,
            "tasks_by_priority": dict(self.tasks_by_priority),
            "completion_rate_by_priority": dict(self.completion_rate_by_priority),
        }


@dataclass
class TimeSnapshot:
    total_time_ms: int = 0
    time_by_priority: Dict[str, int] = field(default_factory=dict)
    time_by_day: Dict[str, int] = field(default_factory=dict)
    average_time_per_task_ms: float = 0.0

    def to_dict(self) -> dict:
        return {
            "total_time_ms": self.total_time_ms,
            "total_time_hours": ms_to_hours(self.total_time_ms),
            "time_by_priority": dict(self.time_by_priority),
            "time_by_day": dict(self.time_by_day),
            "average_time_per_task_ms": self.average_time_per_task_ms,
            "average_time_per_task_hours": ms_to_hours(self.average_time_per_task_ms),
        }


@dataclass
class ProductivityMetrics:
    total_completed_tasks: int = 0
    tasks_per_day: Dict[str, int] = field(default_factory=dict)  # ISO date -> count
    average_tasks_per_day: float = 0.0
    current_streak: int = 0
    longest_streak: int = 0

    def to_dict(self) -> dict:
        return {
            "total_completed_tasks": self.total_completed_tasks,
            "tasks_per_day": dict(self.tasks_per_day),
            "average_tasks_per_day": self.average_tasks_per_day,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
        }


@dataclass
class TimeReport:
    """Closed entries in a window plus their total."""
    entries: List[ClosedEntry] = field(default_factory=list)
    total_time_ms: int = 0

    def to_dict(self) -> dict:
        rows = []
        for closed in self.entries:
            d = closed.entry.to_dict()
            d["duration_ms"] = entry_duration_ms(closed.entry)
            d["task"] = {"id": closed.entry.task_id, "title": closed.task_title}
            rows.append(d)
        return {
            "time_entries": rows,
            "total_time_ms": self.total_time_ms,
            "total_time_hours": ms_to_hours(self.total_time_ms),
        }


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Defines the shape of every object in the system. Task and TimeEntry
#   mirror table rows; the snapshot classes are computed on demand by the
#   services and serialized with to_dict() at the boundary.
#
# Key points:
#   - TimeEntry has no duration column. The only place a duration is
#     computed is services/durations.py.
#   - Rates in StatisticsSnapshot are fractions in [0, 1].
#   - TaskStatus / TaskPriority are constant holders. ALL drives validation
#     and the bucket order of the reports (high first).
