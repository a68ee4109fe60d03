from __future__ import annotations

import json
from datetime import date, datetime, timezone

import pytest

from partner_common.errors import DecodeError
from partner_mcp.decoders.gcal import (
    calendar_label,
    event_from_google,
    parse_events,
    parse_google_datetime,
)
from partner_mcp.domain.models import ToolResult


def _result(text: str) -> ToolResult:
    return ToolResult(content=[{"type": "text", "text": text}])


EVENTS = [
    {
        "id": "e1",
        "summary": "Standup",
        "start": {"dateTime": "2025-03-10T09:00:00Z"},
        "end": {"dateTime": "2025-03-10T09:15:00Z"},
        "location": "Room 4",
        "description": "daily",
        "organizer": {"email": "team@example.com", "displayName": "Team"},
    },
    {
        "id": "e2",
        "summary": "Offsite",
        "start": {"date": "2025-03-10"},
        "end": {"date": "2025-03-11"},
        "organizer": {"email": "alice@example.com"},
    },
]


def test_all_day_event_starts_at_local_midnight():
    events = parse_events(_result(json.dumps(EVENTS)))
    offsite = events[1]
    assert offsite.all_day is True
    assert offsite.start == datetime(2025, 3, 10).astimezone()
    assert (offsite.start.date(), offsite.start.hour, offsite.start.minute) == (date(2025, 3, 10), 0, 0)
    assert offsite.calendar == "alice"


def test_timed_event_is_converted_to_local_time():
    standup = parse_events(_result(json.dumps(EVENTS)))[0]
    assert standup.all_day is False
    assert standup.start == datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)
    assert standup.start.utcoffset() == datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc).astimezone().utcoffset()
    assert standup.end == datetime(2025, 3, 10, 9, 15, tzinfo=timezone.utc)
    assert standup.location == "Room 4"
    assert standup.notes == "daily"
    assert standup.calendar == "Team"


def test_wrapped_events_decode_like_top_level_array():
    bare = parse_events(_result(json.dumps(EVENTS)))
    wrapped = parse_events(_result(json.dumps({"events": EVENTS})))
    items = parse_events(_result(json.dumps({"kind": "calendar#events", "items": EVENTS})))
    assert wrapped == bare
    assert items == bare


def test_undecodable_text_raises_bounded_decode_error():
    text = "Error: " + "x" * 500
    with pytest.raises(DecodeError) as ei:
        parse_events(_result(text))
    err = ei.value
    assert err.integration == "google-calendar"
    assert err.excerpt == text[:200] + "..."
    assert "google-calendar" in str(err)


def test_object_without_event_array_is_decode_error():
    with pytest.raises(DecodeError):
        parse_events(_result('{"message": "ok"}'))
    with pytest.raises(DecodeError):
        parse_events(_result('"just a string"'))


def test_empty_or_missing_text_is_no_events():
    assert parse_events(ToolResult()) == []
    assert parse_events(_result("   ")) == []


def test_bad_records_are_skipped():
    records = [
        "not an object",
        {"id": "no-start", "summary": "x"},
        {"id": "bad-start", "start": {"dateTime": "yesterday"}},
        {"id": "gone", "status": "cancelled", "start": {"date": "2025-03-10"}},
        {"id": "ok", "start": {"date": "2025-03-12"}},
    ]
    events = parse_events(_result(json.dumps(records)))
    assert [e.id for e in events] == ["ok"]
    assert events[0].title == "(untitled)"
    assert events[0].calendar == "Primary"


def test_offset_datetime_and_missing_end():
    ev = event_from_google({"id": "x", "summary": "Call", "start": {"dateTime": "2025-06-01T15:30:00+02:00"}})
    assert ev is not None
    assert ev.start == datetime(2025, 6, 1, 13, 30, tzinfo=timezone.utc)
    assert ev.end is None


def test_parse_google_datetime_accepts_zulu():
    assert parse_google_datetime("2025-01-01T00:00:00Z") == datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "organizer, expected",
    [
        ({"displayName": "Family"}, "Family"),
        ({"displayName": "  ", "email": "bob@example.com"}, "bob"),
        ({"email": ""}, "Primary"),
        (None, "Primary"),
        ("weird", "Primary"),
    ],
)
def test_calendar_label_fallbacks(organizer, expected):
    assert calendar_label(organizer) == expected


@pytest.mark.parametrize("junk", ["[", "{}", "[[[[", "[1, 2, null]", "[" * 5000 + "]" * 5000, "\x00"])
def test_decoder_is_total(junk):
    try:
        events = parse_events(_result(junk))
    except DecodeError:
        return
    assert events == []
