"""
Route dependencies: the service container, the caller's identity and the
query window.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import Header, Query, Request
from pydantic import ValidationError as PydanticValidationError

from taskpulse.data.models import Window
from taskpulse.errors import AuthenticationError, ValidationError
from taskpulse.realtime.tokens import JoinTokenSigner
from taskpulse.services.productivity import ProductivityStreakCalculator
from taskpulse.services.statistics import StatisticsAggregator
from taskpulse.services.tasks import TaskService
from taskpulse.services.time_tracking import TimeTrackingManager

from .schemas import WindowQuery


@dataclass
class Services:
    """Everything a route handler may call, built once in main.build_services()."""
    tasks: TaskService
    time_tracking: TimeTrackingManager
    statistics: StatisticsAggregator
    productivity: ProductivityStreakCalculator
    join_tokens: Optional[JoinTokenSigner] = None


def get_services(request: Request) -> Services:
    return request.app.state.services


def current_user(x_user_id: Optional[str] = Header(None)) -> str:
    """The authenticating proxy in front of the app sets X-User-Id."""
    if not x_user_id or not x_user_id.strip():
        raise AuthenticationError("Authentication required")
    return x_user_id.strip()


def window_query(
    start_date: Optional[str] = Query(None),
    end_date: Optional[str] = Query(None),
) -> Window:
    try:
        return WindowQuery(start_date=start_date, end_date=end_date).to_window()
    except PydanticValidationError as exc:
        raise ValidationError(
            "Invalid date range", {"errors": error_list(exc.errors())}
        ) from None


def error_list(errors) -> List[Dict[str, Any]]:
    """Flatten pydantic errors to JSON-safe {field, message} pairs."""
    return [
        {
            "field": ".".join(str(p) for p in e.get("loc", ()) if p not in ("body", "query", "path")),
            "message": e["msg"],
        }
        for e in errors
    ]
