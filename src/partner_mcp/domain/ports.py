from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional, Protocol, runtime_checkable

from .models import CalendarEvent, Task


@runtime_checkable
class Transport(Protocol):
    """
    Something that can carry one JSON-RPC call and hand back the decoded `result`.
    StdioTransport is the only production implementation; tests use in-memory fakes.
    """
    async def call(self, method: str, params: Optional[dict] = None, *, timeout: Optional[float] = None) -> Any:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class TaskProvider(Protocol):
    """The seam the tasks pane is written against."""
    async def get_today(self) -> List[Task]:
        ...

    async def get_inbox(self) -> List[Task]:
        ...

    async def get_upcoming(self) -> List[Task]:
        ...

    async def get_anytime(self) -> List[Task]:
        ...

    async def search_todos(self, query: str) -> List[Task]:
        ...

    async def mark_complete(self, todo_id: str) -> None:
        ...

    async def close(self) -> None:
        ...


@runtime_checkable
class CalendarProvider(Protocol):
    """The seam the calendar pane is written against."""
    async def get_today_events(self) -> List[CalendarEvent]:
        ...

    async def get_upcoming_events(self, days: int) -> List[CalendarEvent]:
        ...

    async def get_events_in_range(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        ...

    async def close(self) -> None:
        ...
