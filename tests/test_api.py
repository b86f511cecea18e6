"""Tests for the HTTP boundary: routing, status codes and error bodies."""

import json
import pytest
from datetime import datetime, timedelta, timezone

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fastapi.testclient import TestClient
from pydantic import ValidationError as PydanticValidationError

from taskpulse.api import Services, create_app
from taskpulse.api.schemas import WindowQuery
from taskpulse.data.database import SCHEMA_SQL, open_connection
from taskpulse.data.repository import Repository
from taskpulse.realtime.broadcaster import EventBroadcaster
from taskpulse.realtime.tokens import JoinTokenSigner
from taskpulse.services.productivity import ProductivityStreakCalculator
from taskpulse.services.statistics import StatisticsAggregator
from taskpulse.services.tasks import TaskService
from taskpulse.services.time_tracking import TimeTrackingManager

USER = "user-1"
OTHER = "user-2"
MISSING = "00000000-0000-4000-8000-000000000000"
AS_USER = {"X-User-Id": USER}
AS_OTHER = {"X-User-Id": OTHER}


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeConnection:
    def __init__(self, conn_id: str) -> None:
        self.id = conn_id
        self.sent = []

    def send(self, text: str) -> None:
        self.sent.append(json.loads(text))


@pytest.fixture
def repo():
    conn = open_connection(":memory:")
    conn.executescript(SCHEMA_SQL)
    conn.commit()
    return Repository(conn)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def broadcaster():
    return EventBroadcaster()


@pytest.fixture
def services(repo, broadcaster, clock):
    statistics = StatisticsAggregator(repo, broadcaster, timezone.utc)
    return Services(
        tasks=TaskService(repo, broadcaster, clock=clock, on_change=statistics.publish_update),
        time_tracking=TimeTrackingManager(
            repo, broadcaster, clock=clock, on_change=statistics.publish_update
        ),
        statistics=statistics,
        productivity=ProductivityStreakCalculator(repo, timezone.utc, clock=clock),
        join_tokens=JoinTokenSigner("s3cret"),
    )


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


def _create(client, title="Write tests", **extra):
    res = client.post("/tasks", json={"title": title, **extra}, headers=AS_USER)
    assert res.status_code == 201
    return res.json()["id"]


class TestWindowQuery:
    def test_timestamp_with_z(self):
        window = WindowQuery(start_date="2024-01-01T10:00:00Z").to_window()
        assert window.start == datetime(2024, 1, 1, 10, tzinfo=timezone.utc)
        assert window.end is None

    def test_naive_is_utc(self):
        window = WindowQuery(start_date="2024-01-01T10:00:00").to_window()
        assert window.start.tzinfo is not None

    def test_date_only_end_covers_day(self):
        end = WindowQuery(end_date="2024-01-01").to_window().end
        assert end.date().isoformat() == "2024-01-01"
        assert end.hour == 23 and end.minute == 59

    def test_bad_timestamp(self):
        with pytest.raises(PydanticValidationError):
            WindowQuery(start_date="yesterday")

    def test_inverted_window(self):
        with pytest.raises(PydanticValidationError):
            WindowQuery(start_date="2024-02-01", end_date="2024-01-01")

    def test_empty_strings_mean_open(self):
        window = WindowQuery(start_date="", end_date="").to_window()
        assert window.start is None and window.end is None


class TestTimeRoutes:
    def test_start_stop(self, client, clock):
        task_id = _create(client)
        res = client.post(f"/time/tasks/{task_id}/start", headers=AS_USER)
        assert res.status_code == 200
        assert res.json()["end_time"] is None

        clock.now += timedelta(minutes=20)
        res = client.post(f"/time/tasks/{task_id}/stop", headers=AS_USER)
        assert res.status_code == 200
        assert res.json()["end_time"] is not None

        res = client.get(f"/time/tasks/{task_id}/entries", headers=AS_USER)
        assert res.status_code == 200
        assert res.json()[0]["duration_ms"] == 20 * 60 * 1000
        assert res.json()[0]["is_running"] is False

    def test_double_start_is_400(self, client):
        task_id = _create(client)
        client.post(f"/time/tasks/{task_id}/start", headers=AS_USER)
        res = client.post(f"/time/tasks/{task_id}/start", headers=AS_USER)
        assert res.status_code == 400
        assert res.json()["status"] == "error"
        assert res.json()["message"] == "Time tracking already started for this task"

    def test_stop_without_start_is_404(self, client):
        task_id = _create(client)
        res = client.post(f"/time/tasks/{task_id}/stop", headers=AS_USER)
        assert res.status_code == 404
        assert res.json()["message"] == "No active time tracking found for this task"

    def test_start_unknown_task(self, client):
        res = client.post(f"/time/tasks/{MISSING}/start", headers=AS_USER)
        assert res.status_code == 404
        assert res.json()["message"] == "Task not found"

    def test_start_other_users_task(self, client):
        task_id = _create(client)
        assert client.post(f"/time/tasks/{task_id}/start", headers=AS_OTHER).status_code == 404

    def test_malformed_task_id(self, client):
        res = client.post("/time/tasks/not-a-uuid/start", headers=AS_USER)
        assert res.status_code == 400
        assert res.json()["status"] == "error"
        assert res.json()["details"]["errors"][0]["field"] == "task_id"

    def test_report_with_window(self, client, clock):
        task_id = _create(client)
        client.post(f"/time/tasks/{task_id}/start", headers=AS_USER)
        clock.now += timedelta(hours=1)
        client.post(f"/time/tasks/{task_id}/stop", headers=AS_USER)

        res = client.get("/time/report", headers=AS_USER,
                         params={"start_date": "2024-01-01", "end_date": "2024-01-01"})
        assert res.status_code == 200
        assert res.json()["total_time_hours"] == 1.0
        assert len(res.json()["time_entries"]) == 1

        res = client.get("/time/report", headers=AS_USER, params={"start_date": "2024-01-02"})
        assert res.json()["total_time_ms"] == 0

    def test_report_bad_dates(self, client):
        res = client.get("/time/report", headers=AS_USER, params={"start_date": "soon"})
        assert res.status_code == 400

    def test_report_inverted_window(self, client):
        res = client.get("/time/report", headers=AS_USER,
                         params={"start_date": "2024-02-01", "end_date": "2024-01-01"})
        assert res.status_code == 400
        assert res.json()["message"] == "Invalid date range"


class TestStatisticsRoutes:
    def test_task_statistics(self, client):
        task_id = _create(client)
        _create(client, "Second")
        client.patch(f"/tasks/{task_id}/status", json={"status": "completed"}, headers=AS_USER)

        res = client.get("/statistics/tasks", headers=AS_USER)
        assert res.status_code == 200
        assert res.json()["total_tasks"] == 2
        assert res.json()["completion_rate"] == 0.5

    def test_empty_statistics(self, client):
        res = client.get("/statistics/time", headers=AS_USER)
        assert res.status_code == 200
        assert res.json()["total_time_ms"] == 0
        assert res.json()["average_time_per_task_ms"] == 0

    def test_productivity(self, client):
        task_id = _create(client)
        client.patch(f"/tasks/{task_id}/status", json={"status": "completed"}, headers=AS_USER)
        res = client.get("/statistics/productivity", headers=AS_USER)
        assert res.status_code == 200
        assert res.json()["current_streak"] == 1
        assert res.json()["tasks_per_day"] == {"2024-01-01": 1}

    def test_mutations_push_statistics(self, client, broadcaster):
        conn = FakeConnection("c")
        broadcaster.join(USER, conn)
        task_id = _create(client)
        client.post(f"/time/tasks/{task_id}/start", headers=AS_USER)

        events = [m["event"] for m in conn.sent]
        assert events == ["task:created", "statistics:updated", "time:started", "statistics:updated"]


class TestTaskRoutes:
    def test_crud(self, client):
        task_id = _create(client, priority="high")
        res = client.get(f"/tasks/{task_id}", headers=AS_USER)
        assert res.json()["priority"] == "high"

        res = client.put(f"/tasks/{task_id}", json={"title": "Renamed"}, headers=AS_USER)
        assert res.status_code == 200
        assert res.json()["title"] == "Renamed"
        assert res.json()["priority"] == "high"

        assert len(client.get("/tasks", headers=AS_USER).json()) == 1

        res = client.delete(f"/tasks/{task_id}", headers=AS_USER)
        assert res.status_code == 200
        assert res.json() == {"message": "Task deleted successfully"}
        assert client.get(f"/tasks/{task_id}", headers=AS_USER).status_code == 404

    def test_create_without_title(self, client):
        res = client.post("/tasks", json={}, headers=AS_USER)
        assert res.status_code == 400

    def test_create_with_blank_title(self, client):
        res = client.post("/tasks", json={"title": "   "}, headers=AS_USER)
        assert res.status_code == 400
        assert res.json()["message"] == "Title is required"

    def test_invalid_status(self, client):
        task_id = _create(client)
        res = client.patch(f"/tasks/{task_id}/status", json={"status": "done"}, headers=AS_USER)
        assert res.status_code == 400
        assert "completed" in res.json()["details"]["allowedValues"]

    def test_delete_reaches_every_connection(self, client, broadcaster):
        watcher = FakeConnection("w")
        broadcaster.register(watcher)
        task_id = _create(client)
        client.delete(f"/tasks/{task_id}", headers=AS_USER)
        assert {"event": "task:deleted", "data": {"taskId": task_id}} in watcher.sent


class TestBoundary:
    def test_unknown_route(self, client):
        res = client.get("/nowhere", headers=AS_USER)
        assert res.status_code == 404
        assert res.json()["status"] == "error"

    def test_missing_user_is_401(self, client):
        res = client.get("/tasks")
        assert res.status_code == 401
        assert res.json()["message"] == "Authentication required"

    def test_store_failure_is_generic_500(self, client, repo):
        task_id = _create(client)
        repo.conn.execute("DROP TABLE time_entries")
        res = client.post(f"/time/tasks/{task_id}/start", headers=AS_USER)
        assert res.status_code == 500
        assert res.json() == {"status": "error", "message": "Internal server error"}


class TestJoinTokenRoute:
    def test_issue(self, client, services):
        res = client.post("/realtime/token", headers=AS_USER)
        assert res.status_code == 200
        assert services.join_tokens.verify(res.json()["token"]) == USER
        assert res.json()["expires_in"] == 300

    def test_token_joins_the_realtime_channel(self, client, broadcaster, services):
        from taskpulse.realtime.server import ClientMessageHandler

        token = client.post("/realtime/token", headers=AS_USER).json()["token"]
        conn = FakeConnection("browser")
        handler = ClientMessageHandler(broadcaster, services.join_tokens.verify)
        assert handler.handle(conn, json.dumps({"type": "join", "token": token})) == USER

        _create(client)
        assert "task:created" in [m["event"] for m in conn.sent]

    def test_unconfigured(self, client, services):
        services.join_tokens = None
        assert client.post("/realtime/token", headers=AS_USER).status_code == 404
