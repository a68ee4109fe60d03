from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from partner_common.errors import SpawnError, TransportIOError, TransportTimeoutError
from partner_common.tooling import instrument_provider_call
from partner_mcp.decoders.icalbuddy import FIELD_SEPARATOR, parse_icalbuddy_output
from partner_mcp.domain.models import CalendarEvent

logger = logging.getLogger(__name__)

ICALBUDDY_ARGS = (
    "-f", "-nc", "-nrd", "-npn", "-b", "",
    "-ps", FIELD_SEPARATOR,
    "-po", "datetime,title,location",
    "-tf", "%H:%M",
    "-df", "",
    "eventsToday",
)


class AppleCalendarProvider:
    """
    Local Apple Calendar through the ``icalBuddy`` command (brew install ical-buddy).

    icalBuddy is asked for today's events only; wider ranges are answered from
    that same list, filtered by start time.
    """

    def __init__(
        self,
        *,
        command: str = "icalBuddy",
        clock: Callable[[], datetime] = datetime.now,
        timeout: Optional[float] = None,
    ) -> None:
        self.command = command
        self.clock = clock
        self.timeout = timeout

    async def _run(self, args: Sequence[str]) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.command,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SpawnError(f"failed to start {self.command}: {e}") from e

        try:
            out, err = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise TransportTimeoutError(f"{self.command} timed out after {self.timeout}s") from e
        finally:
            # timed out or cancelled: the child must not outlive the call
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()

        if proc.returncode != 0:
            msg = err.decode("utf-8", errors="replace").strip()
            raise TransportIOError(f"{self.command} exited with status {proc.returncode}: {msg}")
        return out.decode("utf-8", errors="replace")

    async def _today(self) -> List[CalendarEvent]:
        output = await self._run(ICALBUDDY_ARGS)
        events = parse_icalbuddy_output(output, self.clock().date())
        logger.debug("icalBuddy returned %d event(s)", len(events))
        return events

    @instrument_provider_call("get_today_events")
    async def get_today_events(self) -> List[CalendarEvent]:
        return await self._today()

    @instrument_provider_call("get_upcoming_events")
    async def get_upcoming_events(self, days: int) -> List[CalendarEvent]:
        start = self.clock().replace(hour=0, minute=0, second=0, microsecond=0)
        return self._within(await self._today(), start, start + timedelta(days=days))

    @instrument_provider_call("get_events_in_range")
    async def get_events_in_range(self, start: datetime, end: datetime) -> List[CalendarEvent]:
        return self._within(await self._today(), start, end)

    @staticmethod
    def _within(events: List[CalendarEvent], start: datetime, end: datetime) -> List[CalendarEvent]:
        lo, hi = start.astimezone(), end.astimezone()
        return [ev for ev in events if lo <= ev.start < hi]

    async def close(self) -> None:
        return None
