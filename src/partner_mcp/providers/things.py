from __future__ import annotations

from typing import Any, Dict, List, Optional

from partner_common.errors import PartnerError, ToolCallError
from partner_common.tooling import instrument_provider_call
from partner_mcp.client import MCPClient
from partner_mcp.decoders.things import parse_areas, parse_projects, parse_tasks
from partner_mcp.domain.models import Area, Project, Task, ToolResult

_PREVIEW_LIMIT = 1000


class ThingsProvider:
    """
    Things 3 tasks through the Things MCP server.

    Knows tool names and argument shapes only; the text format lives in
    partner_mcp.decoders.things.
    """

    def __init__(self, client: MCPClient, *, timeout: Optional[float] = None) -> None:
        self.client = client
        self.timeout = timeout

    async def _call(self, tool: str, args: Optional[Dict[str, Any]] = None) -> ToolResult:
        result = await self.client.call_tool(tool, args or {}, timeout=self.timeout)
        if result.is_error:
            raise ToolCallError(tool, "\n".join(result.texts()))
        return result

    @instrument_provider_call("get_today")
    async def get_today(self) -> List[Task]:
        return parse_tasks(await self._call("get_today"))

    @instrument_provider_call("get_inbox")
    async def get_inbox(self) -> List[Task]:
        return parse_tasks(await self._call("get_inbox"))

    @instrument_provider_call("get_upcoming")
    async def get_upcoming(self) -> List[Task]:
        return parse_tasks(await self._call("get_upcoming"))

    @instrument_provider_call("get_anytime")
    async def get_anytime(self) -> List[Task]:
        return parse_tasks(await self._call("get_anytime"))

    @instrument_provider_call("search_todos")
    async def search_todos(self, query: str) -> List[Task]:
        return parse_tasks(await self._call("search_todos", {"query": query}))

    @instrument_provider_call("get_projects")
    async def get_projects(self, include_items: bool = False) -> List[Project]:
        return parse_projects(await self._call("get_projects", {"include_items": include_items}))

    @instrument_provider_call("get_areas")
    async def get_areas(self, include_items: bool = False) -> List[Area]:
        return parse_areas(await self._call("get_areas", {"include_items": include_items}))

    @instrument_provider_call("update_todo")
    async def update_todo(self, todo_id: str, **updates: Any) -> None:
        await self._call("update_todo", {**updates, "id": todo_id})

    @instrument_provider_call("mark_complete")
    async def mark_complete(self, todo_id: str) -> None:
        await self._call("update_todo", {"id": todo_id, "completed": True})

    async def get_today_debug(self) -> Dict[str, Any]:
        """
        Raw view of the get_today exchange for troubleshooting the text format.
        Errors are reported in the payload instead of raised.
        """
        try:
            result = await self.client.call_tool("get_today", {}, timeout=self.timeout)
        except PartnerError as e:
            return e.with_operation("get_today").to_dict()

        debug: Dict[str, Any] = {
            "content_count": len(result.content),
            "is_error": result.is_error,
        }
        if result.content:
            first = result.content[0]
            text = first.text or ""
            debug["first_content_type"] = first.type
            debug["first_content_text_len"] = len(text)
            debug["first_content_preview"] = text[:_PREVIEW_LIMIT]

        tasks = parse_tasks(result)
        debug["parsed_task_count"] = len(tasks)
        if tasks:
            debug["first_task_title"] = tasks[0].title
        return debug

    async def close(self) -> None:
        await self.client.close()
