from __future__ import annotations

import json
from datetime import datetime

import pytest

import partner_mcp.cli as cli
from partner_common.errors import SpawnError
from partner_mcp.domain.models import CalendarEvent, Task
from partner_mcp.providers.apple_calendar import AppleCalendarProvider
from partner_mcp.providers.gcal import GCalProvider
from partner_mcp.providers.things import ThingsProvider


class FakeTasks:
    def __init__(self, result):
        self.result = result
        self.closed = False

    async def get_today(self):
        if isinstance(self.result, Exception):
            raise self.result.with_operation("get_today")
        return self.result

    async def close(self):
        self.closed = True


class FakeCalendar:
    def __init__(self, events):
        self.events = events
        self.calls = []

    async def get_today_events(self):
        self.calls.append(("today",))
        return self.events

    async def get_upcoming_events(self, days):
        self.calls.append(("upcoming", days))
        return self.events

    async def close(self):
        pass


@pytest.fixture(autouse=True)
def _no_runtime_init(monkeypatch):
    monkeypatch.setattr(cli, "init_runtime", lambda: None)


def test_version(capsys):
    assert cli.main(["--version"]) == 0
    assert capsys.readouterr().out.strip() == "partner v0.4.0"


def test_json_tasks_pane(monkeypatch, capsys):
    fake = FakeTasks([Task(uuid="1", title="Buy milk")])
    monkeypatch.setattr(cli, "build_task_provider", lambda: fake)

    assert cli.main(["--json", "--pane", "tasks"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["pane"] == "tasks"
    assert out["data"][0]["title"] == "Buy milk"
    assert out["data"][0]["status"] == "incomplete"
    assert fake.closed


def test_json_calendar_pane_with_days(monkeypatch, capsys):
    fake = FakeCalendar([CalendarEvent(id="e", title="Standup", start=datetime(2025, 3, 10, 9, 0))])
    monkeypatch.setattr(cli, "build_calendar_provider", lambda: fake)

    assert cli.main(["--json", "--pane", "calendar", "--days", "7"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert fake.calls == [("upcoming", 7)]
    assert out["data"][0]["title"] == "Standup"
    assert out["data"][0]["start"].startswith("2025-03-10T09:00:00")


def test_error_is_typed_envelope_with_exit_1(monkeypatch, capsys):
    fake = FakeTasks(SpawnError("failed to start MCP server 'uvx': not found"))
    monkeypatch.setattr(cli, "build_task_provider", lambda: fake)

    assert cli.main(["--json"]) == 1
    out = json.loads(capsys.readouterr().out)
    assert out["pane"] == "tasks"
    assert out["error"]["code"] == "spawn_failed"
    assert out["error"]["message"].startswith("get_today failed: ")
    assert fake.closed


def test_plain_listing(monkeypatch, capsys):
    monkeypatch.setattr(cli, "build_task_provider", lambda: FakeTasks([Task(title="A", project_title="Home")]))
    assert cli.main([]) == 0
    assert capsys.readouterr().out.strip() == "[ ] A  (Home)"

    monkeypatch.setattr(cli, "build_calendar_provider", lambda: FakeCalendar([]))
    assert cli.main(["--pane", "calendar"]) == 0
    assert "(no calendar items)" in capsys.readouterr().out


def test_plain_error_goes_to_stderr(monkeypatch, capsys):
    monkeypatch.setattr(cli, "build_task_provider", lambda: FakeTasks(SpawnError("boom")))
    assert cli.main([]) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "get_today failed: boom" in captured.err


def test_unknown_pane_is_usage_error():
    with pytest.raises(SystemExit) as ei:
        cli.main(["--pane", "email"])
    assert ei.value.code == 2


def test_builders_follow_settings(monkeypatch):
    assert isinstance(cli.build_task_provider(), ThingsProvider)
    assert isinstance(cli.build_calendar_provider(), GCalProvider)
    monkeypatch.setenv("PARTNER_CALENDAR_BACKEND", "apple")
    assert isinstance(cli.build_calendar_provider(), AppleCalendarProvider)


@pytest.mark.asyncio
async def test_build_task_provider_uses_configured_command(monkeypatch):
    monkeypatch.setenv("PARTNER_THINGS_COMMAND", "/nonexistent/things-server")
    monkeypatch.setenv("PARTNER_CALL_TIMEOUT", "3")
    provider = cli.build_task_provider()
    assert provider.timeout == 3.0
    with pytest.raises(SpawnError) as ei:
        await provider.get_today()
    assert ei.value.operation == "get_today"
    await provider.close()
