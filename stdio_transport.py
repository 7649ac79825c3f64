"""
stdio transport for the MCP server.

Same shape as the transport bundled with the mcp package (newline-delimited
JSON-RPC on stdin/stdout, bridged to the server through memory streams), with
one addition: a line that is not a valid JSON-RPC message is answered
directly with a JSON-RPC error instead of being dropped.

Error responses always carry an id. When the request id cannot be recovered
a placeholder "error_<16 hex chars>" is generated, because some MCP clients
reject "id": null even though JSON-RPC 2.0 allows it.
"""
from __future__ import annotations

import json
import secrets
import sys
from contextlib import asynccontextmanager
from io import TextIOWrapper
from typing import Any, AsyncIterator

import anyio
import structlog
from mcp import types
from mcp.server.fastmcp import FastMCP
from mcp.shared.message import SessionMessage
from pydantic import ValidationError

log = structlog.get_logger(__name__)


def placeholder_id() -> str:
    return f"error_{secrets.token_hex(8)}"


def error_response(
    code: int,
    message: str,
    request_id: str | int | None = None,
) -> types.JSONRPCMessage:
    """Build a JSON-RPC error message; a missing id is replaced by a placeholder."""
    if request_id is None:
        request_id = placeholder_id()
    return types.JSONRPCMessage(
        types.JSONRPCError(
            jsonrpc="2.0",
            id=request_id,
            error=types.ErrorData(code=code, message=message),
        )
    )


def reject_line(line: str) -> types.JSONRPCMessage:
    """Error response for a line that failed JSON-RPC validation."""
    try:
        payload: Any = json.loads(line)
    except json.JSONDecodeError:
        return error_response(types.PARSE_ERROR, "Parse error")

    request_id = payload.get("id") if isinstance(payload, dict) else None
    if isinstance(request_id, bool) or not isinstance(request_id, (str, int)):
        request_id = None
    return error_response(types.INVALID_REQUEST, "Invalid Request", request_id)


def _serialize(message: types.JSONRPCMessage) -> str:
    return message.model_dump_json(by_alias=True, exclude_none=True) + "\n"


@asynccontextmanager
async def stdio_transport(
    stdin: anyio.AsyncFile[str] | None = None,
    stdout: anyio.AsyncFile[str] | None = None,
) -> AsyncIterator[tuple[Any, Any]]:
    """
    Yield (read_stream, write_stream) for a low-level MCP server session.

    stdin/stdout default to the process streams, decoded as UTF-8.
    """
    if stdin is None:
        stdin = anyio.wrap_file(TextIOWrapper(sys.stdin.buffer, encoding="utf-8"))
    if stdout is None:
        stdout = anyio.wrap_file(TextIOWrapper(sys.stdout.buffer, encoding="utf-8"))

    read_stream_writer, read_stream = anyio.create_memory_object_stream(0)
    write_stream, write_stream_reader = anyio.create_memory_object_stream(0)
    write_lock = anyio.Lock()

    async def emit(message: types.JSONRPCMessage) -> None:
        async with write_lock:
            await stdout.write(_serialize(message))
            await stdout.flush()

    async def stdin_reader() -> None:
        async with read_stream_writer:
            async for line in stdin:
                if not line.strip():
                    continue
                try:
                    message = types.JSONRPCMessage.model_validate_json(line)
                except ValidationError:
                    log.warning("transport.invalid_message", length=len(line))
                    await emit(reject_line(line))
                    continue
                await read_stream_writer.send(SessionMessage(message))

    async def stdout_writer() -> None:
        async with write_stream_reader:
            async for session_message in write_stream_reader:
                await emit(session_message.message)

    async with anyio.create_task_group() as tg:
        tg.start_soon(stdin_reader)
        tg.start_soon(stdout_writer)
        yield read_stream, write_stream


async def run_stdio(server: FastMCP) -> None:
    """Serve one MCP session over stdin/stdout until stdin closes."""
    # Same low-level server FastMCP.run_stdio_async drives (mcp 1.x)
    lowlevel = server._mcp_server
    async with stdio_transport() as (read_stream, write_stream):
        await lowlevel.run(
            read_stream,
            write_stream,
            lowlevel.create_initialization_options(),
        )
