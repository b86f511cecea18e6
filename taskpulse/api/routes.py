"""
HTTP routes, one APIRouter per resource.

Handlers are async so that requests run one at a time on the server's event
loop thread, which is the only thread that touches the sqlite connection.
"""

from __future__ import annotations

import logging
import uuid

from fastapi import APIRouter, Depends

from taskpulse.data.models import Window
from taskpulse.errors import NotFoundError

from .deps import Services, current_user, get_services, window_query
from .schemas import StatusUpdate, TaskCreate, TaskUpdate

logger = logging.getLogger(__name__)

time_router = APIRouter(prefix="/time", tags=["time"])
statistics_router = APIRouter(prefix="/statistics", tags=["statistics"])
tasks_router = APIRouter(prefix="/tasks", tags=["tasks"])
realtime_router = APIRouter(prefix="/realtime", tags=["realtime"])


# ── Time tracking ───────────────────────────────────────────────────────────


@time_router.post("/tasks/{task_id}/start")
async def start_timer(
    task_id: uuid.UUID,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    return services.time_tracking.start(str(task_id), user_id).to_dict()


@time_router.post("/tasks/{task_id}/stop")
async def stop_timer(
    task_id: uuid.UUID,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    return services.time_tracking.stop(str(task_id), user_id).to_dict()


@time_router.get("/tasks/{task_id}/entries")
async def list_time_entries(
    task_id: uuid.UUID,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> list:
    views = services.time_tracking.list_entries(str(task_id), user_id)
    return [v.to_dict() for v in views]


@time_router.get("/report")
async def time_report(
    window: Window = Depends(window_query),
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    return services.time_tracking.report(user_id, window).to_dict()


# ── Statistics ──────────────────────────────────────────────────────────────


@statistics_router.get("/tasks")
async def task_statistics(
    window: Window = Depends(window_query),
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    return services.statistics.task_statistics(user_id, window).to_dict()


@statistics_router.get("/time")
async def time_statistics(
    window: Window = Depends(window_query),
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    return services.statistics.time_statistics(user_id, window).to_dict()


@statistics_router.get("/productivity")
async def productivity_metrics(
    window: Window = Depends(window_query),
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    return services.productivity.metrics(user_id, window).to_dict()


# ── Tasks ───────────────────────────────────────────────────────────────────


@tasks_router.get("")
async def list_tasks(
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> list:
    return [t.to_dict() for t in services.tasks.list_tasks(user_id)]


@tasks_router.post("", status_code=201)
async def create_task(
    body: TaskCreate,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    task = services.tasks.create_task(
        user_id,
        title=body.title,
        description=body.description or "",
        priority=body.priority,
        due_date=body.due_date,
    )
    return task.to_dict()


@tasks_router.get("/{task_id}")
async def get_task(
    task_id: uuid.UUID,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    return services.tasks.get_task(str(task_id), user_id).to_dict()


@tasks_router.put("/{task_id}")
async def update_task(
    task_id: uuid.UUID,
    body: TaskUpdate,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    fields = body.model_dump(exclude_unset=True)
    return services.tasks.update_task(str(task_id), user_id, **fields).to_dict()


@tasks_router.patch("/{task_id}/status")
async def update_task_status(
    task_id: uuid.UUID,
    body: StatusUpdate,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    return services.tasks.update_status(str(task_id), user_id, body.status).to_dict()


@tasks_router.delete("/{task_id}")
async def delete_task(
    task_id: uuid.UUID,
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    services.tasks.delete_task(str(task_id), user_id)
    return {"message": "Task deleted successfully"}


# ── Realtime ────────────────────────────────────────────────────────────────


@realtime_router.post("/token")
async def issue_join_token(
    user_id: str = Depends(current_user),
    services: Services = Depends(get_services),
) -> dict:
    """Short-lived token the websocket client sends in its join message."""
    if services.join_tokens is None:
        raise NotFoundError("Realtime channel is not configured")
    logger.info("Join token issued: user %s", user_id)
    return {
        "token": services.join_tokens.issue(user_id),
        "expires_in": services.join_tokens.ttl_s,
    }
