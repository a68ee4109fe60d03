"""
Headless entrypoint: fetch one pane's data and print it.

    partner --json --pane tasks
    partner --json --pane calendar --days 7
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, List, Optional, Sequence

from partner_common.errors import PartnerError
from partner_config.settings import (
    ServerConfig,
    calendar_backend,
    call_timeout,
    gcal_server,
    init_runtime,
    things_server,
)
from partner_mcp import __version__
from partner_mcp.client import MCPClient
from partner_mcp.domain.models import CalendarEvent, Task
from partner_mcp.domain.ports import CalendarProvider, TaskProvider
from partner_mcp.providers.apple_calendar import AppleCalendarProvider
from partner_mcp.providers.gcal import GCalProvider
from partner_mcp.providers.things import ThingsProvider
from partner_mcp.transport import StdioTransport

PANES = ("tasks", "calendar")


def _client(cfg: ServerConfig, server_id: str) -> MCPClient:
    transport = StdioTransport(cfg.command, cfg.args, env=cfg.env, handshake_timeout=call_timeout())
    return MCPClient(transport, server_id)


def build_task_provider() -> TaskProvider:
    return ThingsProvider(_client(things_server(), "things"), timeout=call_timeout())


def build_calendar_provider() -> CalendarProvider:
    if calendar_backend() == "apple":
        return AppleCalendarProvider(timeout=call_timeout())
    return GCalProvider(_client(gcal_server(), "google-calendar"), timeout=call_timeout())


async def fetch_pane(pane: str, days: Optional[int] = None) -> List[Any]:
    if pane == "tasks":
        tasks = build_task_provider()
        try:
            return await tasks.get_today()
        finally:
            await tasks.close()

    calendar = build_calendar_provider()
    try:
        if days:
            return await calendar.get_upcoming_events(days)
        return await calendar.get_today_events()
    finally:
        await calendar.close()


def _line(item: Any) -> str:
    if isinstance(item, Task):
        mark = "x" if item.status.value == "completed" else " "
        suffix = f"  ({item.project_title})" if item.project_title else ""
        return f"[{mark}] {item.title}{suffix}"
    if isinstance(item, CalendarEvent):
        when = "all day" if item.all_day else item.start.strftime("%a %H:%M")
        where = f" @ {item.location}" if item.location else ""
        return f"{when:>10}  {item.title}{where}"
    return str(item)


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="partner", description="Fetch task or calendar data from MCP tool servers.")
    ap.add_argument("--json", action="store_true", help="Output in JSON format (headless mode)")
    ap.add_argument("--pane", choices=PANES, default="tasks", help="Pane whose data to fetch")
    ap.add_argument("--days", type=int, default=None, help="Calendar only: next N days instead of today")
    ap.add_argument("--version", action="store_true", help="Show version")
    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.version:
        print(f"partner v{__version__}")
        return 0

    init_runtime()

    try:
        items = asyncio.run(fetch_pane(args.pane, args.days))
    except PartnerError as e:
        if args.json:
            print(json.dumps(e.to_dict(pane=args.pane), indent=2, ensure_ascii=False))
        else:
            print(f"error: {e}", file=sys.stderr)
        return 1

    if args.json:
        data = [item.model_dump(mode="json") for item in items]
        print(json.dumps({"pane": args.pane, "data": data}, indent=2, ensure_ascii=False))
    elif not items:
        print(f"(no {args.pane} items)")
    else:
        for item in items:
            print(_line(item))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
