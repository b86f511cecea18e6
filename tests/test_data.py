"""Unit tests for the data layer (database, repository, models)."""

import pytest
from datetime import datetime, timedelta, timezone

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from taskpulse.data.database import SCHEMA_SQL, Database, open_connection
from taskpulse.data.models import TaskStatus, Window
from taskpulse.data.repository import Repository
from taskpulse.errors import AlreadyOpenError, StoreFailure

USER = "user-1"
OTHER = "user-2"
T0 = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def repo():
    """Create an in-memory database for testing."""
    conn = open_connection(":memory:")
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    return Repository(conn)


def _open_count(repo: Repository, task_id: str) -> int:
    return repo.conn.execute(
        "SELECT COUNT(*) FROM time_entries WHERE task_id = ? AND end_time IS NULL",
        (task_id,),
    ).fetchone()[0]


class TestTask:
    def test_create_task(self, repo: Repository):
        task = repo.create_task(USER, "Write report", priority="high", now=T0)
        assert task.id is not None
        assert task.title == "Write report"
        assert task.status == TaskStatus.PENDING
        assert task.priority == "high"
        assert task.created_at == T0
        assert task.updated_at == T0

    def test_find_task_is_owner_filtered(self, repo: Repository):
        task = repo.create_task(USER, "Mine")
        assert repo.find_task_owned_by(task.id, USER) is not None
        assert repo.find_task_owned_by(task.id, OTHER) is None

    def test_update_status_bumps_updated_at(self, repo: Repository):
        task = repo.create_task(USER, "T", now=T0)
        done_at = T0 + timedelta(days=2)
        updated = repo.update_task_status(task.id, USER, TaskStatus.COMPLETED, now=done_at)
        assert updated.status == TaskStatus.COMPLETED
        assert updated.updated_at == done_at
        assert updated.created_at == T0

    def test_update_other_users_task(self, repo: Repository):
        task = repo.create_task(USER, "T")
        assert repo.update_task(task.id, OTHER, {"title": "Hijacked"}) is None
        assert repo.find_task_owned_by(task.id, USER).title == "T"

    def test_list_tasks_window_on_created_at(self, repo: Repository):
        for i in range(3):
            repo.create_task(USER, f"T{i}", now=T0 + timedelta(days=i))
        repo.create_task(OTHER, "Not mine", now=T0)

        assert len(repo.list_tasks(USER)) == 3
        window = Window(start=T0 + timedelta(days=1), end=T0 + timedelta(days=1, hours=1))
        tasks = repo.list_tasks(USER, window)
        assert [t.title for t in tasks] == ["T1"]

    def test_list_completed_tasks(self, repo: Repository):
        done = repo.create_task(USER, "Done", now=T0)
        repo.create_task(USER, "Open", now=T0)
        repo.update_task_status(done.id, USER, TaskStatus.COMPLETED, now=T0 + timedelta(days=1))

        completed = repo.list_completed_tasks(USER)
        assert [t.title for t in completed] == ["Done"]
        assert repo.list_completed_tasks(USER, Window(end=T0)) == []

    def test_delete_task_removes_entries(self, repo: Repository):
        task = repo.create_task(USER, "T")
        entry = repo.create_open_entry(task.id, USER, T0)
        repo.close_entry(entry.id, T0 + timedelta(minutes=5))

        assert repo.delete_task(task.id, USER) is True
        assert repo.find_task_owned_by(task.id, USER) is None
        assert repo.list_entries(task.id, USER) == []
        assert repo.delete_task(task.id, USER) is False


class TestTimeEntries:
    def test_create_open_entry(self, repo: Repository):
        task = repo.create_task(USER, "T")
        entry = repo.create_open_entry(task.id, USER, T0)
        assert entry.is_running
        assert entry.start_time == T0
        assert repo.find_open_entry(task.id, USER).id == entry.id

    def test_second_open_entry_is_rejected(self, repo: Repository):
        task = repo.create_task(USER, "T")
        repo.create_open_entry(task.id, USER, T0)
        with pytest.raises(AlreadyOpenError):
            repo.create_open_entry(task.id, USER, T0 + timedelta(seconds=1))
        assert _open_count(repo, task.id) == 1

    def test_open_entries_on_different_tasks(self, repo: Repository):
        a = repo.create_task(USER, "A")
        b = repo.create_task(USER, "B")
        repo.create_open_entry(a.id, USER, T0)
        repo.create_open_entry(b.id, USER, T0)
        assert _open_count(repo, a.id) == 1
        assert _open_count(repo, b.id) == 1

    def test_invariant_holds_across_connections(self, tmp_path):
        """Two connections to one file behave like two server processes."""
        db_path = tmp_path / "shared.db"
        first = Repository(Database(db_path).connect())
        second = Repository(Database(db_path).connect())

        task = first.create_task(USER, "Shared")
        # Both see no running entry before writing
        assert first.find_open_entry(task.id, USER) is None
        assert second.find_open_entry(task.id, USER) is None

        first.create_open_entry(task.id, USER, T0)
        with pytest.raises(AlreadyOpenError):
            second.create_open_entry(task.id, USER, T0)
        assert _open_count(first, task.id) == 1

    def test_close_entry_once(self, repo: Repository):
        task = repo.create_task(USER, "T")
        entry = repo.create_open_entry(task.id, USER, T0)
        end = T0 + timedelta(minutes=30)

        closed = repo.close_entry(entry.id, end)
        assert closed.end_time == end
        assert repo.close_entry(entry.id, end + timedelta(minutes=1)) is None
        assert repo.find_open_entry(task.id, USER) is None

    def test_restart_after_close(self, repo: Repository):
        task = repo.create_task(USER, "T")
        entry = repo.create_open_entry(task.id, USER, T0)
        repo.close_entry(entry.id, T0 + timedelta(minutes=1))
        again = repo.create_open_entry(task.id, USER, T0 + timedelta(minutes=2))
        assert again.id != entry.id

    def test_list_entries_newest_first(self, repo: Repository):
        task = repo.create_task(USER, "T")
        for i in range(3):
            e = repo.create_open_entry(task.id, USER, T0 + timedelta(hours=i))
            repo.close_entry(e.id, T0 + timedelta(hours=i, minutes=10))

        entries = repo.list_entries(task.id, USER)
        starts = [e.start_time for e in entries]
        assert starts == sorted(starts, reverse=True)
        assert repo.list_entries(task.id, OTHER) == []

    def test_list_closed_entries_joins_task(self, repo: Repository):
        task = repo.create_task(USER, "Deep work", priority="high")
        done = repo.create_open_entry(task.id, USER, T0)
        repo.close_entry(done.id, T0 + timedelta(hours=1))
        other = repo.create_task(USER, "Other")
        repo.create_open_entry(other.id, USER, T0)  # still running

        closed = repo.list_closed_entries(USER)
        assert len(closed) == 1
        assert closed[0].task_title == "Deep work"
        assert closed[0].task_priority == "high"

    def test_list_closed_entries_window(self, repo: Repository):
        task = repo.create_task(USER, "T")
        for day in range(3):
            start = T0 + timedelta(days=day)
            e = repo.create_open_entry(task.id, USER, start)
            repo.close_entry(e.id, start + timedelta(hours=1))

        window = Window(start=T0 + timedelta(days=1), end=T0 + timedelta(days=1, hours=2))
        closed = repo.list_closed_entries(USER, window)
        assert len(closed) == 1
        assert closed[0].entry.start_time == T0 + timedelta(days=1)


class TestStoreFailure:
    def test_sqlite_errors_become_store_failure(self, repo: Repository):
        task = repo.create_task(USER, "T")
        repo.conn.execute("DROP TABLE time_entries")
        with pytest.raises(StoreFailure) as info:
            repo.find_open_entry(task.id, USER)
        assert "time_entries" not in info.value.message


class TestModels:
    def test_time_entry_to_dict(self, repo: Repository):
        task = repo.create_task(USER, "T")
        entry = repo.create_open_entry(task.id, USER, T0)
        d = entry.to_dict()
        assert d["end_time"] is None
        assert d["start_time"].startswith("2024-01-01T09:00:00")
        assert d["task_id"] == task.id
