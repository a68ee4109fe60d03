"""FastMCP stand-in for the Things 3 MCP server (same tool names, canned text)."""

from __future__ import annotations

from mcp.server.fastmcp import FastMCP

mcp = FastMCP(
    name="stub-things",
    instructions="Canned Things 3 answers for partner integration tests.",
)

TODAY = """Title: Write quarterly review
UUID: T-1
Status: incomplete
Project: Work
Tags: writing, q3
Deadline: 2025-03-14
Notes: Outline first
then fill in numbers: revenue, churn
Checklist:
  □ outline
  ☑ gather numbers
---
Title: Water plants
UUID: T-2
Status: completed
"""

COMPLETED: list[str] = []


@mcp.tool(name="get_today")
async def get_today() -> str:
    return TODAY


@mcp.tool(name="get_inbox")
async def get_inbox() -> str:
    return ""


@mcp.tool(name="search_todos")
async def search_todos(query: str) -> str:
    blocks = [b for b in TODAY.split("---") if query.lower() in b.lower()]
    return "---".join(blocks)


@mcp.tool(name="update_todo")
async def update_todo(id: str, completed: bool = False) -> str:
    if completed:
        COMPLETED.append(id)
    return f"Updated {id} (completed={completed}, total completed={len(COMPLETED)})"


if __name__ == "__main__":
    mcp.run(transport="stdio")
