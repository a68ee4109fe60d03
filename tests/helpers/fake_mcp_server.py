"""Scripted line-JSON MCP server for transport tests.

Run as ``python -u fake_mcp_server.py [--fail-initialize] [--stderr-spam]``.
Speaks just enough of the protocol for StdioTransport: initialize,
tools/list and tools/call with a handful of tools whose behavior the
tests rely on.
"""

from __future__ import annotations

import json
import sys
import time

THINGS_TODAY = (
    "Title: Buy milk\n"
    "UUID: abc\n"
    "Status: incomplete\n"
    "---\n"
    "Title: \n"
    "UUID: xyz\n"
)

TOOLS = [
    {"name": "echo", "description": "Echo arguments back", "inputSchema": {"type": "object"}},
    {"name": "noisy", "description": "Echo, with junk before the answer", "inputSchema": {"type": "object"}},
    {"name": "fail", "description": "Always a JSON-RPC error", "inputSchema": {"type": "object"}},
    {"name": "slow", "description": "Sleep, then answer", "inputSchema": {"type": "object"}},
    {"name": "exit", "description": "Exit without answering", "inputSchema": {"type": "object"}},
    {"name": "handshake_count", "description": None, "inputSchema": {"type": "object"}},
    {"name": "things_today", "description": "Things-style text", "inputSchema": {"type": "object"}},
    {"name": "big", "description": "A very long line", "inputSchema": {"type": "object"}},
]


def send(msg: dict) -> None:
    sys.stdout.write(json.dumps(msg) + "\n")
    sys.stdout.flush()


def text_result(req_id, text: str, *, is_error: bool = False) -> None:
    result = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["isError"] = True
    send({"jsonrpc": "2.0", "id": req_id, "result": result})


def main(argv: list[str]) -> int:
    fail_initialize = "--fail-initialize" in argv
    if "--stderr-spam" in argv:
        # well past any pipe buffer; blocks here unless the client drains stderr
        for i in range(20000):
            sys.stderr.write(f"diagnostic line {i} " + "x" * 80 + "\n")
        sys.stderr.flush()

    initialize_count = 0
    initialized_notes = 0

    while True:
        line = sys.stdin.readline()
        if not line:
            return 0
        line = line.strip()
        if not line:
            continue
        msg = json.loads(line)
        method = msg.get("method")
        req_id = msg.get("id")

        if method == "initialize":
            initialize_count += 1
            if fail_initialize:
                send({"jsonrpc": "2.0", "id": req_id, "error": {"code": -32600, "message": "not today"}})
                continue
            send({
                "jsonrpc": "2.0",
                "id": req_id,
                "result": {
                    "protocolVersion": msg["params"]["protocolVersion"],
                    "capabilities": {"tools": {}},
                    "serverInfo": {"name": "fake", "version": "1.0"},
                    "clientInfo": msg["params"]["clientInfo"],
                },
            })
        elif method == "notifications/initialized":
            initialized_notes += 1
        elif method == "tools/list":
            send({"jsonrpc": "2.0", "id": req_id, "result": {"tools": TOOLS}})
        elif method == "tools/call":
            params = msg.get("params") or {}
            name = params.get("name")
            args = params.get("arguments") or {}

            if name == "echo":
                text_result(req_id, json.dumps(args, sort_keys=True))
            elif name == "noisy":
                sys.stdout.write("this is not json\n")
                sys.stdout.write("[1, 2, 3]\n")
                send({"jsonrpc": "2.0", "method": "notifications/message", "params": {"level": "info"}})
                send({"jsonrpc": "2.0", "id": 99, "method": "sampling/createMessage", "params": {}})
                send({"jsonrpc": "2.0", "id": req_id + 1000, "result": {"content": []}})
                send({"jsonrpc": "2.0", "id": True, "result": {"content": []}})
                text_result(req_id, json.dumps(args, sort_keys=True))
            elif name == "fail":
                send({
                    "jsonrpc": "2.0",
                    "id": req_id,
                    "error": {"code": -32001, "message": "tool exploded", "data": {"hint": "x"}},
                })
            elif name == "slow":
                time.sleep(float(args.get("seconds", 5)))
                text_result(req_id, "finally")
            elif name == "exit":
                return 3
            elif name == "handshake_count":
                text_result(req_id, json.dumps({"initialize": initialize_count, "initialized": initialized_notes}))
            elif name == "things_today":
                text_result(req_id, THINGS_TODAY)
            elif name == "big":
                text_result(req_id, "y" * 200_000)
            else:
                text_result(req_id, f"unknown tool {name}", is_error=True)
        elif req_id is not None:
            send({"jsonrpc": "2.0", "id": req_id, "error": {"code": -32601, "message": f"method not found: {method}"}})


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
