"""Nooterra MCP bridge server — JSON-RPC 2.0 over stdio.

Exposes Nooterra agent capabilities as MCP tools.
Transport: stdio (line-delimited JSON-RPC). Requests are handled as
independent tasks so several tool calls can be in flight at once.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import httpx
from dotenv import load_dotenv

from . import __version__
from .cache import CapabilityCache
from .clients import CoordinatorClient, RegistryClient
from .config import BridgeConfig
from .dispatcher import ToolDispatcher
from .logging_config import configure_logging
from .telemetry import TelemetryConfig, configure_tracing, get_tracer
from .workflow import WorkflowInvoker

logger = logging.getLogger(__name__)

SERVER_NAME = "nooterra"
_MCP_PROTOCOL_VERSION = "2024-11-05"

# Upper bound for one JSON-RPC line; tool inputs can be large.
MAX_LINE_BYTES = 16 * 1024 * 1024

_JSONRPC_PARSE_ERROR = -32700
_JSONRPC_INVALID_REQUEST = -32600
_JSONRPC_METHOD_NOT_FOUND = -32601
_JSONRPC_INVALID_PARAMS = -32602
_JSONRPC_INTERNAL_ERROR = -32603


def _error_response(req_id: Any, code: int, message: str) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": req_id,
        "error": {"code": code, "message": message},
    }


def _result_response(req_id: Any, result: Any) -> dict[str, Any]:
    return {
        "jsonrpc": "2.0",
        "id": req_id,
        "result": result,
    }


def build_dispatcher(config: BridgeConfig, http: httpx.AsyncClient) -> ToolDispatcher:
    """Wire clients, cache and invoker into a dispatcher sharing *http*."""
    coordinator = CoordinatorClient.from_config(http, config)
    return ToolDispatcher(
        cache=CapabilityCache(coordinator),
        invoker=WorkflowInvoker(coordinator),
        registry=RegistryClient.from_config(http, config),
    )


class McpBridgeServer:
    """Bridge MCP server — handles JSON-RPC messages."""

    def __init__(self, dispatcher: ToolDispatcher) -> None:
        self._dispatcher = dispatcher

    async def handle_message(self, line: str) -> str | None:
        """Parse a JSON-RPC message, route it, return the JSON response.

        Notifications (messages without ``id``) return ``None``.
        """
        try:
            msg = json.loads(line)
        except json.JSONDecodeError:
            return json.dumps(_error_response(None, _JSONRPC_PARSE_ERROR, "Parse error"))

        if not isinstance(msg, dict):
            return json.dumps(
                _error_response(None, _JSONRPC_INVALID_REQUEST, "Invalid Request")
            )

        method = msg.get("method", "")
        params = msg.get("params") or {}
        if "id" not in msg:
            logger.debug("Notification received: %s", method)
            return None
        req_id = msg["id"]

        try:
            response = await self._dispatch(req_id, method, params)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error in %s", method)
            response = _error_response(req_id, _JSONRPC_INTERNAL_ERROR, str(exc))
        return json.dumps(response)

    async def _dispatch(self, req_id: Any, method: str, params: Any) -> dict[str, Any]:
        if method == "initialize":
            return self._handle_initialize(req_id)
        if method == "ping":
            return _result_response(req_id, {})
        if method == "tools/list":
            return await self._handle_tools_list(req_id)
        if method == "tools/call":
            return await self._handle_tools_call(req_id, params)
        return _error_response(req_id, _JSONRPC_METHOD_NOT_FOUND, f"Unknown method: {method}")

    def _handle_initialize(self, req_id: Any) -> dict[str, Any]:
        return _result_response(req_id, {
            "protocolVersion": _MCP_PROTOCOL_VERSION,
            "capabilities": {"tools": {}},
            "serverInfo": {
                "name": SERVER_NAME,
                "version": __version__,
            },
        })

    async def _handle_tools_list(self, req_id: Any) -> dict[str, Any]:
        tools = await self._dispatcher.list_tools()
        return _result_response(req_id, {"tools": [t.to_wire() for t in tools]})

    async def _handle_tools_call(self, req_id: Any, params: Any) -> dict[str, Any]:
        tool_name = params.get("name") if isinstance(params, dict) else None
        if not tool_name or not isinstance(tool_name, str):
            return _error_response(req_id, _JSONRPC_INVALID_PARAMS, "Missing tool name")
        result = await self._dispatcher.call_tool(tool_name, params.get("arguments"))
        return _result_response(req_id, result.to_wire())

    async def run_stdio(self, reader: asyncio.StreamReader | None = None) -> None:
        """Read requests line-by-line and answer each one on stdout.

        *reader* defaults to stdin. Returns once the input reaches EOF and
        every in-flight request has been answered.
        """
        if reader is None:
            reader = await _open_stdin()

        pending: set[asyncio.Task[None]] = set()
        while True:
            try:
                line = await reader.readline()
            except ValueError as exc:
                # The oversized line has already been dropped from the buffer.
                logger.warning("Discarding request line: %s", exc)
                self._write(
                    json.dumps(
                        _error_response(
                            None,
                            _JSONRPC_INVALID_REQUEST,
                            "Request line too long",
                        )
                    )
                )
                continue
            if not line:
                break
            text = line.decode(errors="replace").strip()
            if not text:
                continue
            task = asyncio.create_task(self._respond(text))
            pending.add(task)
            task.add_done_callback(pending.discard)

        if pending:
            await asyncio.gather(*pending)

    async def _respond(self, line: str) -> None:
        response = await self.handle_message(line)
        if response is not None:
            self._write(response)

    @staticmethod
    def _write(response: str) -> None:
        sys.stdout.write(response + "\n")
        sys.stdout.flush()


async def _open_stdin() -> asyncio.StreamReader:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=MAX_LINE_BYTES)
    protocol = asyncio.StreamReaderProtocol(reader)
    await loop.connect_read_pipe(lambda: protocol, sys.stdin)
    return reader


async def serve(config: BridgeConfig) -> None:
    async with httpx.AsyncClient(timeout=config.http_timeout) as http:
        server = McpBridgeServer(build_dispatcher(config, http))
        logger.info(
            "Nooterra MCP bridge started (coordinator=%s, registry=%s)",
            config.coordinator_url,
            config.registry_url,
        )
        await server.run_stdio()


def main() -> None:
    """Entry point for the nooterra-mcp-bridge CLI."""
    load_dotenv()
    config = BridgeConfig.from_env()
    configure_logging(config.log_level)
    configure_tracing(TelemetryConfig(exporter=config.otel_exporter))
    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        pass
    finally:
        get_tracer().shutdown()


if __name__ == "__main__":
    main()
