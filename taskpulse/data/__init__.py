from .database import Database
from .models import (
    ClosedEntry,
    ProductivityMetrics,
    StatisticsSnapshot,
    Task,
    TaskPriority,
    TaskStatus,
    TimeEntry,
    TimeEntryView,
    TimeReport,
    TimeSnapshot,
    Window,
)
from .repository import Repository

__all__ = [
    "Database", "Repository", "Task", "TaskStatus", "TaskPriority", "TimeEntry",
    "TimeEntryView", "ClosedEntry", "Window", "StatisticsSnapshot", "TimeSnapshot",
    "ProductivityMetrics", "TimeReport",
]
