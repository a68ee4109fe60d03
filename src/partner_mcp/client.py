from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from partner_common.context import get_request_id
from partner_common.errors import DecodeError, PartnerError
from partner_common.telemetry import log_event
from partner_mcp.domain.models import ToolInfo, ToolResult
from partner_mcp.domain.ports import Transport

logger = logging.getLogger(__name__)


def _payload_text(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return repr(value)


class MCPClient:
    """
    Tool semantics (tools/list, tools/call) on top of a Transport.

    Holds no state beyond the transport itself, so one client may be shared by
    any number of concurrent callers; the transport does the serializing.
    """

    def __init__(self, transport: Transport, server_id: str) -> None:
        self.transport = transport
        self.server_id = server_id

    def __repr__(self) -> str:
        return f"MCPClient({self.server_id!r})"

    async def list_tools(self, *, timeout: Optional[float] = None) -> List[ToolInfo]:
        result = await self.transport.call("tools/list", None, timeout=timeout)

        tools = result.get("tools") if isinstance(result, dict) else None
        if not isinstance(tools, list):
            raise DecodeError(self.server_id, "tools/list result has no tools array", _payload_text(result))
        try:
            return [ToolInfo.model_validate(t) for t in tools]
        except ValidationError as e:
            raise DecodeError(self.server_id, f"invalid tool descriptor: {e.error_count()} error(s)", _payload_text(result)) from e

    async def call_tool(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> ToolResult:
        """
        Invoke one tool and return its envelope. Transport errors propagate unchanged.
        """
        args = dict(arguments or {})
        params = {"name": name, "arguments": args}

        t0 = time.perf_counter()
        try:
            raw = await self.transport.call("tools/call", params, timeout=timeout)
            if not isinstance(raw, dict):
                raise DecodeError(self.server_id, f"{name} returned a non-object result", _payload_text(raw))
            try:
                result = ToolResult.model_validate(raw)
            except ValidationError as e:
                raise DecodeError(self.server_id, f"{name} returned an invalid tool result", _payload_text(raw)) from e
        except PartnerError as e:
            self._log(name, args, ok=False, t0=t0, error={"code": e.code, "message": e.message})
            raise

        if result.is_error:
            logger.info("%s tool %s reported isError", self.server_id, name)
        self._log(name, args, ok=not result.is_error, t0=t0)
        return result

    def _log(self, name: str, args: dict, *, ok: bool, t0: float, error: dict | None = None) -> None:
        log_event(
            "tool_call",
            name,
            args,
            ok=ok,
            ms=int((time.perf_counter() - t0) * 1000),
            server_id=self.server_id,
            corr_id=get_request_id(),
            error=error,
        )

    async def close(self) -> None:
        await self.transport.close()

    async def __aenter__(self) -> "MCPClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
