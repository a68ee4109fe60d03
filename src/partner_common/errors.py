"""
Error taxonomy for the MCP core.

Callers branch on the class (or on ``code`` once serialized):

- SpawnError / HandshakeError: the transport never became usable.
- TransportIOError: the pipe broke mid-call; the transport is retired.
  TransportTimeoutError and TransportClosedError refine it so a UI can tell
  "retry" apart from "reconnect".
- ProtocolError: the server answered with a JSON-RPC error object; the
  transport is still fine.
- ToolCallError: the tool ran and flagged its result with isError.
- DecodeError: the tool call succeeded but its output could not be read.
"""

from __future__ import annotations

from typing import Any

REDACT_TOKEN = "***redacted***"

EXCERPT_LIMIT = 200


def typed_error(code: str, message: str, *, details: dict | None = None, **extra: Any) -> dict:
    """
    Standard error envelope:
      {"error": {"code": code, "message": message, "details": {...}}, ...extra}
    """
    err: dict[str, Any] = {"error": {"code": code, "message": message}}
    if details:
        err["error"]["details"] = details
    if extra:
        err.update(extra)
    return err


def excerpt(text: str, limit: int = EXCERPT_LIMIT) -> str:
    """Bounded preview of a payload for error messages."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class PartnerError(Exception):
    code = "internal"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
        self.operation: str | None = None

    def with_operation(self, operation: str) -> "PartnerError":
        """Record the failing operation; the innermost annotation wins."""
        if self.operation is None:
            self.operation = operation
        return self

    def __str__(self) -> str:
        if self.operation:
            return f"{self.operation} failed: {self.message}"
        return self.message

    def details(self) -> dict[str, Any]:
        return {}

    def to_dict(self, **extra: Any) -> dict:
        d = self.details()
        if self.operation:
            d["operation"] = self.operation
        return typed_error(self.code, str(self), details=d or None, **extra)


class MCPError(PartnerError):
    code = "mcp_error"


class SpawnError(MCPError):
    code = "spawn_failed"


class HandshakeError(MCPError):
    code = "handshake_failed"


class TransportIOError(MCPError):
    code = "transport_io"


class TransportTimeoutError(TransportIOError):
    code = "timeout"


class TransportClosedError(TransportIOError):
    code = "transport_closed"


class ProtocolError(MCPError):
    """A JSON-RPC error object returned by the server, code and message unmodified."""

    code = "protocol_error"

    def __init__(self, rpc_code: int, rpc_message: str, data: Any = None) -> None:
        super().__init__(f"JSON-RPC error {rpc_code}: {rpc_message}")
        self.rpc_code = rpc_code
        self.rpc_message = rpc_message
        self.data = data

    def details(self) -> dict[str, Any]:
        d: dict[str, Any] = {"rpc_code": self.rpc_code, "rpc_message": self.rpc_message}
        if self.data is not None:
            d["data"] = self.data
        return d


class ToolCallError(MCPError):
    """The tool ran but flagged its own result as an error (isError)."""

    code = "tool_error"

    def __init__(self, tool: str, text: str = "") -> None:
        self.tool = tool
        self.excerpt = excerpt(text)
        super().__init__(f"tool {tool} reported an error" + (f": {self.excerpt}" if text else ""))

    def details(self) -> dict[str, Any]:
        return {"tool": self.tool, "excerpt": self.excerpt}


class DecodeError(MCPError):
    code = "decode_error"

    def __init__(self, integration: str, reason: str, payload: str = "") -> None:
        self.integration = integration
        self.reason = reason
        self.excerpt = excerpt(payload)
        msg = f"{integration}: {reason}"
        if payload:
            msg += f" (text: {self.excerpt})"
        super().__init__(msg)

    def details(self) -> dict[str, Any]:
        return {"integration": self.integration, "excerpt": self.excerpt}


class AssistantError(PartnerError):
    code = "assistant_error"
