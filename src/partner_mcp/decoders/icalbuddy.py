from __future__ import annotations

from datetime import date, datetime, time
from typing import List, Optional

from partner_mcp.domain.models import CalendarEvent

FIELD_SEPARATOR = "|"


def _clock(value: str) -> Optional[time]:
    value = value.strip()
    if len(value) != 5 or ":" not in value:
        return None
    try:
        return datetime.strptime(value, "%H:%M").time()
    except ValueError:
        return None


def parse_icalbuddy_output(output: str, day: date, *, calendar: str = "Calendar") -> List[CalendarEvent]:
    """
    Parse ``icalBuddy -ps "|" -po datetime,title,location`` output for one day.

    Lines look like ``HH:MM|Title|Location`` for timed events and
    ``Title|Location`` for all-day ones. Lines without a title are dropped.
    """
    events: List[CalendarEvent] = []
    for raw in output.splitlines():
        line = raw.strip()
        if not line:
            continue
        parts = line.split(FIELD_SEPARATOR, 2)
        if len(parts) < 2:
            continue

        at = _clock(parts[0])
        if at is not None:
            title = parts[1].strip()
            location = parts[2].strip() if len(parts) > 2 else ""
            start = datetime.combine(day, at)
            all_day = False
        else:
            title = parts[0].strip()
            location = parts[1].strip()
            start = datetime.combine(day, time())
            all_day = True

        if not title:
            continue

        events.append(
            CalendarEvent(
                id=f"{len(events)}-{parts[0].strip()}",
                title=title,
                start=start,
                all_day=all_day,
                location=location or None,
                calendar=calendar,
            )
        )
    return events
