"""
Task Service — task CRUD with live notifications.

Validates input, delegates persistence to the Repository and announces every
successful mutation through the broadcaster.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from taskpulse.data.models import Task, TaskPriority, TaskStatus
from taskpulse.data.repository import Repository
from taskpulse.errors import NotFoundError, ValidationError
from taskpulse.realtime.broadcaster import TASK_CREATED, TASK_DELETED, TASK_UPDATED, Scope
from taskpulse.services.durations import utc_now

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 200


class TaskService:
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
        self.on_change = on_change

    # ── Reads ───────────────────────────────────────────────────────────────

    def get_task(self, task_id: str, user_id: str) -> Task:
        task = self.repo.find_task_owned_by(task_id, user_id)
        if task is None:
            raise NotFoundError(f"Task with ID {task_id} not found")
        return task

    def list_tasks(self, user_id: str) -> List[Task]:
        tasks = self.repo.list_tasks(user_id)
        logger.info("Tasks retrieved: user %s count %d", user_id, len(tasks))
        return tasks

    # ── Mutations ───────────────────────────────────────────────────────────

    def create_task(
        self,
        user_id: str,
        title: str,
        description: str = "",
        priority: str = TaskPriority.MEDIUM,
        due_date: Optional[datetime] = None,
    ) -> Task:
        self._check_title(title)
        self._check_priority(priority)
        task = self.repo.create_task(
            user_id, title.strip(), description or "", priority, due_date, now=self.clock()
        )
        logger.info("Task created: %s user %s", task.id, user_id)
        self.broadcaster.publish(TASK_CREATED, task.to_dict(), Scope.for_user(user_id))
        self._changed(user_id)
        return task

    def update_task(self, task_id: str, user_id: str, **fields) -> Task:
        """Change any of title, description, priority, due_date."""
        unknown = set(fields) - {"title", "description", "priority", "due_date"}
        if unknown:
            raise ValidationError("Unknown task fields", {"fields": sorted(unknown)})
        if "title" in fields:
            self._check_title(fields["title"])
            fields["title"] = fields["title"].strip()
        if "priority" in fields:
            self._check_priority(fields["priority"])
        if "description" in fields:
            fields["description"] = fields["description"] or ""

        task = self.repo.update_task(task_id, user_id, fields, now=self.clock())
        if task is None:
            raise NotFoundError(f"Task with ID {task_id} not found")
        logger.info("Task updated: %s user %s", task_id, user_id)
        self.broadcaster.publish(TASK_UPDATED, task.to_dict(), Scope.for_user(user_id))
        self._changed(user_id)
        return task

    def update_status(self, task_id: str, user_id: str, status: str) -> Task:
        if status not in TaskStatus.ALL:
            raise ValidationError(
                "Invalid status value",
                {"status": status, "allowedValues": list(TaskStatus.ALL)},
            )
        task = self.repo.update_task_status(task_id, user_id, status, now=self.clock())
        if task is None:
            raise NotFoundError(f"Task with ID {task_id} not found")
        logger.info("Task status updated: %s user %s -> %s", task_id, user_id, status)
        self.broadcaster.publish(TASK_UPDATED, task.to_dict(), Scope.for_user(user_id))
        self._changed(user_id)
        return task

    def delete_task(self, task_id: str, user_id: str) -> None:
        if not self.repo.delete_task(task_id, user_id):
            raise NotFoundError(f"Task with ID {task_id} not found")
        logger.info("Task deleted: %s user %s", task_id, user_id)
        # Deletion is announced to every connection
        self.broadcaster.publish(TASK_DELETED, {"taskId": task_id}, Scope.everyone())
        self._changed(user_id)

    # ── Helpers ─────────────────────────────────────────────────────────────

    def _changed(self, user_id: str) -> None:
        if self.on_change:
            self.on_change(user_id)

    @staticmethod
    def _check_title(title) -> None:
        if not isinstance(title, str) or not title.strip():
            raise ValidationError("Title is required")
        if len(title.strip()) > MAX_TITLE_LENGTH:
            raise ValidationError(f"Title must be at most {MAX_TITLE_LENGTH} characters")

    @staticmethod
    def _check_priority(priority) -> None:
        if priority not in TaskPriority.ALL:
            raise ValidationError(
                "Invalid priority value",
                {"priority": priority, "allowedValues": list(TaskPriority.ALL)},
            )
