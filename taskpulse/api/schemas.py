"""
Request models for the HTTP boundary.

Query windows and request bodies are parsed by pydantic. Anything that fails
here is answered with 400 by the handler in api/app.py.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from taskpulse.data.models import TaskPriority, Window

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class WindowQuery(BaseModel):
    """`?start_date=&end_date=`. ISO dates or timestamps; naive values are UTC."""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        return None if value == "" else value

    @field_validator("end_date", mode="before")
    @classmethod
    def _date_covers_whole_day(cls, value):
        # A bare date as the end of a range means "through that day"
        if isinstance(value, str) and _DATE_ONLY.match(value.strip()):
            return datetime.combine(date.fromisoformat(value.strip()), time.max)
        return value

    @field_validator("start_date", "end_date")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)

    @model_validator(mode="after")
    def _ordered(self) -> "WindowQuery":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self

    def to_window(self) -> Window:
        return Window(start=self.start_date, end=self.end_date)


class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = ""
    priority: str = TaskPriority.MEDIUM
    due_date: Optional[datetime] = None

    @field_validator("due_date")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class TaskUpdate(BaseModel):
    """Only the fields present in the body are changed."""
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[datetime] = None

    @field_validator("due_date")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(value)


class StatusUpdate(BaseModel):
    status: str = Field(..., description="pending, in_progress or completed")
