from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, List, Optional

from partner_common.errors import ToolCallError
from partner_common.tooling import instrument_provider_call
from partner_mcp.client import MCPClient
from partner_mcp.decoders.gcal import parse_events
from partner_mcp.domain.models import CalendarEvent

LIST_EVENTS_TOOL = "list-events"

# the server reads these as local wall-clock time
TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


class GCalProvider:
    """Google Calendar events through the google-calendar MCP server."""

    def __init__(
        self,
        client: MCPClient,
        *,
        calendar_id: str = "primary",
        clock: Callable[[], datetime] = datetime.now,
        timeout: Optional[float] = None,
    ) -> None:
        self.client = client
        self.calendar_id = calendar_id
        self.clock = clock
        self.timeout = timeout

    def _midnight(self) -> datetime:
        return self.clock().replace(hour=0, minute=0, second=0, microsecond=0)

    async def _list_events(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        args = {
            "calendarId": self.calendar_id,
            "timeMin": start.strftime(TIME_FORMAT),
            "timeMax": end.strftime(TIME_FORMAT),
        }
        result = await self.client.call_tool(LIST_EVENTS_TOOL, args, timeout=self.timeout)
        if result.is_error:
            raise ToolCallError(LIST_EVENTS_TOOL, "\n".join(result.texts()))
        return parse_events(result)

    @instrument_provider_call("get_today_events")
    async def get_today_events(self) -> List[CalendarEvent]:
        start = self._midnight()
        return await self._list_events(start, start + timedelta(days=1))

    @instrument_provider_call("get_upcoming_events")
    async def get_upcoming_events(self, days: int) -> List[CalendarEvent]:
        start = self._midnight()
        return await self._list_events(start, start + timedelta(days=days))

    @instrument_provider_call("get_events_in_range")
    async def get_events_in_range(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        return await self._list_events(start, end)

    async def close(self) -> None:
        await self.client.close()
