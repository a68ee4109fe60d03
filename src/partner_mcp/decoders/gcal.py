"""
Decoder for the Google Calendar MCP server.

The server answers with JSON inside the first text block: either a bare array
of Google Calendar event resources or an object wrapping that array under
``events``. Timed events carry ``start.dateTime``; all-day events carry
``start.date`` only.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from partner_common.errors import DecodeError
from partner_mcp.domain.models import CalendarEvent, ToolResult

logger = logging.getLogger(__name__)

INTEGRATION = "google-calendar"
DEFAULT_CALENDAR_LABEL = "Primary"
UNTITLED = "(untitled)"

_WRAPPER_KEYS = ("events", "items")


def parse_google_datetime(value: str) -> datetime:
    """RFC 3339 -> aware datetime in local wall-clock time."""
    normalized = value.strip()
    if normalized.endswith("Z"):
        normalized = f"{normalized[:-1]}+00:00"
    parsed = datetime.fromisoformat(normalized)
    return parsed.astimezone()


def local_midnight(d: date) -> datetime:
    return datetime.combine(d, time()).astimezone()


def _boundary(payload: Any) -> tuple[Optional[datetime], bool]:
    """Resolve a start/end object. Returns (instant, all_day); instant is None when unusable."""
    if not isinstance(payload, dict):
        return None, False

    dt = payload.get("dateTime")
    if isinstance(dt, str) and dt.strip():
        try:
            return parse_google_datetime(dt), False
        except (ValueError, OverflowError, OSError):
            return None, False

    d = payload.get("date")
    if isinstance(d, str) and d.strip():
        try:
            return local_midnight(date.fromisoformat(d.strip())), True
        except (ValueError, OverflowError, OSError):
            return None, True

    return None, False


def _text(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def calendar_label(organizer: Any) -> str:
    if isinstance(organizer, dict):
        name = _text(organizer.get("displayName"))
        if name:
            return name
        email = _text(organizer.get("email"))
        if email:
            return email.split("@", 1)[0]
    return DEFAULT_CALENDAR_LABEL


def event_from_google(payload: Dict[str, Any]) -> Optional[CalendarEvent]:
    """One Google event resource -> CalendarEvent, or None if it is cancelled or has no start."""
    status = payload.get("status")
    if isinstance(status, str) and status.lower() == "cancelled":
        return None

    start, all_day = _boundary(payload.get("start"))
    if start is None:
        return None
    end, _ = _boundary(payload.get("end"))

    event_id = payload.get("id")
    fields = {
        "id": event_id if isinstance(event_id, str) else "",
        "title": _text(payload.get("summary")) or UNTITLED,
        "start": start,
        "end": end,
        "all_day": all_day,
        "location": _text(payload.get("location")),
        "notes": _text(payload.get("description")),
        "calendar": calendar_label(payload.get("organizer")),
    }
    try:
        return CalendarEvent.model_validate(fields)
    except ValidationError as e:
        logger.debug("dropping calendar event %r: %s", fields["id"], e)
        return None


def _event_list(text: str) -> List[Any]:
    try:
        data = json.loads(text)
    except (ValueError, RecursionError) as e:
        raise DecodeError(INTEGRATION, f"failed to parse calendar events: {e}", text) from e

    if isinstance(data, list):
        return data

    if isinstance(data, dict):
        for key in _WRAPPER_KEYS:
            wrapped = data.get(key)
            if isinstance(wrapped, list):
                return wrapped

    raise DecodeError(INTEGRATION, "failed to parse calendar events: expected an array of events", text)


def parse_events(result: ToolResult) -> List[CalendarEvent]:
    """
    Decode the first text block into events.

    Raises DecodeError (with a bounded excerpt) when the text is not an event
    array in either accepted shape. Individual bad records are skipped.
    """
    texts = result.texts()
    if not texts or not texts[0].strip():
        return []

    events: List[CalendarEvent] = []
    for raw in _event_list(texts[0].strip()):
        if not isinstance(raw, dict):
            continue
        ev = event_from_google(raw)
        if ev is not None:
            events.append(ev)
    return events
