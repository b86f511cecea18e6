"""
Seed Data Generator — creates realistic fake data for development and testing.

Run: python scripts/seed_data.py [user_id]
"""

import random
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from taskpulse.config import load_config
from taskpulse.data.database import Database
from taskpulse.data.models import TaskPriority, TaskStatus
from taskpulse.data.repository import Repository

DEMO_USER = "demo-user"


def seed(user_id: str = DEMO_USER, num_days: int = 30) -> None:
    config = load_config()
    db = Database(Path(config["db_path"]))
    repo = Repository(db.connect())

    # ── Tasks ───────────────────────────────────────────────────────────
    titles = [
        "Frontend React", "Backend API", "Bug Fixing", "Code Review",
        "Blog Post", "Documentation", "Research Paper",
        "UI Mockups", "Wireframes", "Weekly Planning",
    ]
    base_date = datetime.now(timezone.utc) - timedelta(days=num_days)

    tasks = []
    for i, title in enumerate(titles):
        created = base_date + timedelta(days=i, hours=random.randint(8, 12))
        task = repo.create_task(
            user_id, title, description=f"Seeded task {i + 1}",
            priority=random.choice(TaskPriority.ALL), now=created,
        )
        tasks.append(task)

    # ── Time entries ────────────────────────────────────────────────────
    entry_count = 0
    for day in range(num_days):
        if random.random() < 0.2:
            continue  # leave gaps so streaks break now and then
        for _ in range(random.randint(1, 3)):
            task = random.choice(tasks)
            start = base_date + timedelta(days=day, hours=random.randint(8, 18),
                                          minutes=random.randint(0, 59))
            entry = repo.create_open_entry(task.id, user_id, start)
            repo.close_entry(entry.id, start + timedelta(minutes=random.randint(10, 120)))
            entry_count += 1

    # ── Completions ─────────────────────────────────────────────────────
    completed = 0
    for i, task in enumerate(tasks):
        if random.random() < 0.6:
            done_at = base_date + timedelta(days=min(num_days, i * 3 + random.randint(0, 3)))
            repo.update_task_status(task.id, user_id, TaskStatus.COMPLETED, now=done_at)
            completed += 1
        elif random.random() < 0.5:
            repo.update_task_status(task.id, user_id, TaskStatus.IN_PROGRESS)

    print(f"Seeded {len(tasks)} tasks, {entry_count} time entries, "
          f"{completed} completions for user {user_id!r}.")
    db.close()


if __name__ == "__main__":
    seed(sys.argv[1] if len(sys.argv) > 1 else DEMO_USER)
