"""
Stdio JSON-RPC transport for MCP tool servers.

One StdioTransport owns one child process. Requests are newline-delimited
JSON-RPC 2.0 objects written to the child's stdin; responses are read from its
stdout. The child's stderr is drained in the background and only logged.

Key behavior:
- Spawns the process once (lazily, on the first call) and performs the MCP
  initialize handshake before any other call goes out.
- Serializes calls through a lock held for the whole write+read cycle
  (stdio is a single shared channel).
- Never respawns. A broken pipe, EOF or timeout retires the transport and
  later calls fail fast with TransportClosedError.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import os
from typing import Any, Mapping, Optional, Sequence

from partner_common.errors import (
    HandshakeError,
    MCPError,
    ProtocolError,
    SpawnError,
    TransportClosedError,
    TransportIOError,
    TransportTimeoutError,
)

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
CLIENT_NAME = "partner"
CLIENT_VERSION = "0.4.0"

_CLOSE_GRACE_S = 2.0


async def read_line_unbounded(stream: asyncio.StreamReader) -> bytes:
    """Read a full line from *stream* with no size limit.

    Unlike ``StreamReader.readline()`` this never raises ``LimitOverrunError``:
    when the buffer fills before a newline shows up, the buffered bytes are
    drained and accumulation continues. Returns ``b""`` at EOF.
    """
    chunks: list[bytes] = []
    while True:
        try:
            chunk = await stream.readuntil(b"\n")
            chunks.append(chunk)
            return b"".join(chunks)
        except asyncio.LimitOverrunError as exc:
            chunks.append(await stream.read(exc.consumed))
        except asyncio.IncompleteReadError as exc:
            chunks.append(exc.partial)
            return b"".join(chunks)


def _is_request_id(value: Any) -> bool:
    # bool is an int subclass; `true` must never match id 1
    return isinstance(value, int) and not isinstance(value, bool)


class StdioTransport:
    def __init__(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        env: Optional[Mapping[str, str]] = None,
        client_name: str = CLIENT_NAME,
        client_version: str = CLIENT_VERSION,
        handshake_timeout: Optional[float] = None,
    ) -> None:
        self._command = command
        self._args = list(args)
        self._extra_env = dict(env or {})
        self._client_name = client_name
        self._client_version = client_version
        self._handshake_timeout = handshake_timeout

        self._process: Optional[asyncio.subprocess.Process] = None
        self._stdin: Optional[asyncio.StreamWriter] = None
        self._stdout: Optional[asyncio.StreamReader] = None
        self._stderr_task: Optional[asyncio.Task] = None

        self._ids = itertools.count(1)

        # Concurrency / lifecycle
        self._start_lock = asyncio.Lock()
        self._io_lock = asyncio.Lock()
        self._ready = False
        self._start_error: Optional[MCPError] = None
        self._retired: Optional[str] = None
        self._closed = False

        self.server_info: dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"StdioTransport({self._command!r}, {self._args!r})"

    @property
    def started(self) -> bool:
        return self._ready

    @property
    def usable(self) -> bool:
        return self._ready and self._retired is None and not self._closed

    # ---- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        """
        Spawn the server and run the initialize handshake, exactly once.
        Later calls return the first outcome (re-raising its error).
        """
        if self._ready:
            return
        if self._start_error is not None:
            raise self._start_error

        async with self._start_lock:
            if self._ready:
                return
            if self._start_error is not None:
                raise self._start_error
            if self._closed:
                raise TransportClosedError("transport closed before start")

            try:
                await self._spawn()
                await self._initialize()
            except MCPError as e:
                self._fail_start(e)
                raise
            except asyncio.CancelledError:
                self._fail_start(HandshakeError("start was cancelled"))
                raise
            self._ready = True

    def _fail_start(self, err: MCPError) -> None:
        self._start_error = err
        self._retire(str(err))

    async def _spawn(self) -> None:
        env = None
        if self._extra_env:
            env = dict(os.environ)
            env.update(self._extra_env)

        try:
            self._process = await asyncio.create_subprocess_exec(
                self._command,
                *self._args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            raise SpawnError(f"failed to start MCP server {self._command!r}: {e}") from e

        if self._process.stdin is None or self._process.stdout is None or self._process.stderr is None:
            raise SpawnError(f"failed to create pipes for MCP server {self._command!r}")

        self._stdin = self._process.stdin
        self._stdout = self._process.stdout
        self._stderr_task = asyncio.create_task(
            self._drain_stderr(self._process.stderr),
            name=f"mcp-stderr-{self._process.pid}",
        )
        logger.info("started MCP server %s (pid %s)", self._command, self._process.pid)

    async def _drain_stderr(self, stream: asyncio.StreamReader) -> None:
        """Keep the child's stderr pipe empty so it never blocks on diagnostics."""
        while True:
            try:
                line = await read_line_unbounded(stream)
            except (OSError, ValueError):
                return
            if not line:
                return
            logger.debug("%s stderr: %s", self._command, line.decode("utf-8", errors="replace").rstrip())

    async def _initialize(self) -> None:
        params = {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {},
            "clientInfo": {"name": self._client_name, "version": self._client_version},
        }
        try:
            result = await self._call_started("initialize", params, timeout=self._handshake_timeout)
        except MCPError as e:
            raise HandshakeError(f"initialize failed: {e}") from e

        if isinstance(result, dict):
            self.server_info = result

        try:
            async with self._io_lock:
                await self._write({"jsonrpc": "2.0", "method": "notifications/initialized"})
        except MCPError as e:
            raise HandshakeError(f"initialized notification failed: {e}") from e

    async def close(self) -> None:
        """Close stdin, terminate the child and stop the stderr drain. Idempotent."""
        if self._closed:
            return
        self._closed = True

        proc = self._process
        if proc is None:
            return

        if self._stdin is not None and not self._stdin.is_closing():
            self._stdin.close()

        if proc.returncode is None:
            try:
                proc.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(proc.wait(), timeout=_CLOSE_GRACE_S)
            except asyncio.TimeoutError:
                self._kill()
                await proc.wait()

        if self._stderr_task is not None:
            self._stderr_task.cancel()
            try:
                await self._stderr_task
            except asyncio.CancelledError:
                pass

        logger.info("closed MCP server %s (exit %s)", self._command, proc.returncode)

    async def __aenter__(self) -> "StdioTransport":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _kill(self) -> None:
        proc = self._process
        if proc is not None and proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass

    def _retire(self, reason: str) -> None:
        if self._retired is None:
            logger.warning("retiring MCP transport %s: %s", self._command, reason)
            self._retired = reason
        self._kill()

    # ---- calls -------------------------------------------------------------

    async def call(self, method: str, params: Optional[dict] = None, *, timeout: Optional[float] = None) -> Any:
        """
        Send one request and wait for its response.

        Returns the decoded `result` value verbatim. Raises ProtocolError for a
        JSON-RPC error object, TransportTimeoutError when `timeout` seconds
        pass, TransportIOError/TransportClosedError when the channel is gone.
        The deadline covers the lazy start as well as the exchange.
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        if not self._ready:
            try:
                await asyncio.wait_for(self.start(), timeout=timeout)
            except asyncio.TimeoutError:
                raise TransportTimeoutError(f"{method} timed out after {timeout}s during start") from None
        remaining = None if deadline is None else max(0.0, deadline - loop.time())
        return await self._call_started(method, params, timeout=remaining, label=timeout)

    async def _call_started(
        self,
        method: str,
        params: Optional[dict],
        *,
        timeout: Optional[float],
        label: Optional[float] = None,
    ) -> Any:
        try:
            return await asyncio.wait_for(self._exchange(method, params), timeout=timeout)
        except asyncio.TimeoutError:
            shown = timeout if label is None else label
            raise TransportTimeoutError(f"{method} timed out after {shown}s") from None

    async def _exchange(self, method: str, params: Optional[dict]) -> Any:
        async with self._io_lock:
            self._ensure_usable()
            req_id = next(self._ids)
            req: dict[str, Any] = {"jsonrpc": "2.0", "id": req_id, "method": method}
            if params is not None:
                req["params"] = params

            try:
                await self._write(req)
                return await self._read_response(req_id)
            except asyncio.CancelledError:
                # The response to req_id may still arrive; nothing can pair it now.
                self._retire(f"{method} (id {req_id}) was cancelled mid-flight")
                raise

    def _ensure_usable(self) -> None:
        if self._closed:
            raise TransportClosedError("transport is closed")
        if self._retired is not None:
            raise TransportClosedError(f"transport retired: {self._retired}")
        if self._stdin is None or self._stdout is None:
            raise TransportClosedError("transport not started")

    async def _write(self, message: dict) -> None:
        assert self._stdin is not None
        data = json.dumps(message, separators=(",", ":"), ensure_ascii=False).encode("utf-8") + b"\n"
        try:
            self._stdin.write(data)
            await self._stdin.drain()
        except (OSError, RuntimeError) as e:
            # BrokenPipeError / ConnectionResetError, or writing to a closed transport
            reason = f"failed to write request: {e}"
            self._retire(reason)
            if self._closed:
                raise TransportClosedError(reason) from e
            raise TransportIOError(reason) from e

    async def _read_response(self, req_id: int) -> Any:
        assert self._stdout is not None
        while True:
            try:
                line = await read_line_unbounded(self._stdout)
            except (OSError, ValueError) as e:
                self._retire(f"failed to read response: {e}")
                raise TransportIOError(f"failed to read response: {e}") from e

            if not line:
                reason = "server closed its output stream"
                if self._process is not None and self._process.returncode is not None:
                    reason += f" (exit code {self._process.returncode})"
                self._retire(reason)
                if self._closed:
                    raise TransportClosedError(reason)
                raise TransportIOError(f"failed to read response: {reason}")

            msg = self._parse_line(line)
            if msg is None:
                continue

            if "method" in msg:
                # server-initiated request or notification
                logger.debug("skipping server message %s", msg.get("method"))
                continue

            msg_id = msg.get("id")
            if msg_id is None and "result" not in msg and "error" not in msg:
                continue
            if not _is_request_id(msg_id) or msg_id != req_id:
                logger.debug("skipping response for id %r while waiting for %s", msg_id, req_id)
                continue

            err = msg.get("error")
            if err is not None:
                raise self._protocol_error(err)
            return msg.get("result")

    @staticmethod
    def _parse_line(line: bytes) -> Optional[dict]:
        text = line.decode("utf-8", errors="replace").strip()
        if not text:
            return None
        try:
            msg = json.loads(text)
        except json.JSONDecodeError:
            logger.debug("skipping non-JSON line: %.200s", text)
            return None
        if not isinstance(msg, dict):
            return None
        return msg

    @staticmethod
    def _protocol_error(err: Any) -> ProtocolError:
        if isinstance(err, dict):
            code = err.get("code")
            if not _is_request_id(code):
                code = -32603
            message = err.get("message")
            return ProtocolError(code, message if isinstance(message, str) else str(message), err.get("data"))
        return ProtocolError(-32603, str(err))
