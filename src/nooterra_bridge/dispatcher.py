"""Protocol-facing tool enumeration and dispatch.

Two meta-tools are always present:

- ``search``: free-text capability search against the registry.
- ``call``: invoke any capability by explicit id.

They are followed by a slice of discovered capabilities, each exposed under
its encoded tool name. :meth:`ToolDispatcher.call_tool` never raises; every
failure comes back as an error-flagged :class:`ToolResult`.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from . import naming
from .cache import CapabilityCache
from .clients import RegistryClient
from .models import Capability, SearchHit, ToolDescriptor, ToolResult, format_reputation
from .telemetry import trace_registry_search, trace_tool_call
from .workflow import WorkflowInvoker

logger = logging.getLogger(__name__)

SEARCH_TOOL = "search"
CALL_TOOL = "call"
MAX_LISTED_CAPABILITIES = 20
SEARCH_LIMIT = 10

_SEARCH_FAILED_TEXT = "Search failed. Try again later."
_NO_RESULTS_TEXT = "No agents found for that query."

# ---------------------------------------------------------------------------
# Tool schemas
# ---------------------------------------------------------------------------

_META_TOOLS = [
    ToolDescriptor(
        name=SEARCH_TOOL,
        description="Search for AI agents on the Nooterra network by capability or description",
        input_schema={
            "type": "object",
            "properties": {
                "query": {
                    "type": "string",
                    "description": "What capability are you looking for?",
                },
            },
            "required": ["query"],
        },
    ),
    ToolDescriptor(
        name=CALL_TOOL,
        description="Call any Nooterra agent by capability ID",
        input_schema={
            "type": "object",
            "properties": {
                "capabilityId": {
                    "type": "string",
                    "description": "The capability ID to call (e.g., cap.weather.forecast.v1)",
                },
                "inputs": {
                    "type": "object",
                    "description": "Inputs to pass to the agent",
                },
            },
            "required": ["capabilityId"],
        },
    ),
]

_CAPABILITY_INPUT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "query": {
            "type": "string",
            "description": "The input/query for this capability",
        },
        "data": {
            "type": "object",
            "description": "Additional structured data to pass to the agent",
        },
    },
    "required": ["query"],
}


class SearchFailed(Exception):
    """Registry search was unreachable or answered with an error."""


class UnknownToolError(Exception):
    """No meta-tool or cached capability matches the requested tool name."""

    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(
            f"Unknown tool: {tool_name}. Use {SEARCH_TOOL} to find available agents."
        )


def capability_to_tool(cap: Capability) -> ToolDescriptor:
    return ToolDescriptor(
        name=naming.encode(cap.capability_id),
        description=(
            f"{cap.description}\n\n"
            f"Agent: {cap.agent_id}\n"
            f"Reputation: {format_reputation(cap.reputation)}"
        ),
        input_schema=_CAPABILITY_INPUT_SCHEMA,
    )


class ToolDispatcher:
    """Routes ``tools/list`` and ``tools/call`` onto the cache and the invoker."""

    def __init__(
        self,
        cache: CapabilityCache,
        invoker: WorkflowInvoker,
        registry: RegistryClient,
        max_listed: int = MAX_LISTED_CAPABILITIES,
    ) -> None:
        self._cache = cache
        self._invoker = invoker
        self._registry = registry
        self._max_listed = max_listed
        self._reported_collisions: set[str] = set()

    async def list_tools(self) -> list[ToolDescriptor]:
        """Meta-tools first, then up to ``max_listed`` capabilities in cache order."""
        capabilities = await self._cache.get()
        self._report_collisions(capabilities)
        return [
            *_META_TOOLS,
            *(capability_to_tool(cap) for cap in capabilities[: self._max_listed]),
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any] | None) -> ToolResult:
        """Dispatch one tool call. Never raises; failures are error-flagged results."""
        args = arguments if isinstance(arguments, dict) else {}
        with trace_tool_call(name) as span:
            try:
                if name == SEARCH_TOOL:
                    return await self._search(args)
                if name == CALL_TOOL:
                    return await self._call(args)
                return await self._call_capability(name, args)
            except UnknownToolError as exc:
                span.set_attribute("mcp.error", "UnknownToolError")
                return ToolResult.error(str(exc))
            except Exception as exc:  # noqa: BLE001
                logger.info("Tool %s failed: %s", name, exc)
                span.set_attribute("mcp.error", type(exc).__name__)
                return ToolResult.error(f"Error: {exc}")

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _search(self, args: dict[str, Any]) -> ToolResult:
        query = str(args.get("query") or "")
        try:
            hits = await self.search(query)
        except SearchFailed as exc:
            logger.warning("Registry search failed: %s", exc)
            return ToolResult.text(_SEARCH_FAILED_TEXT)

        if not hits:
            return ToolResult.text(_NO_RESULTS_TEXT)
        lines = [
            f"• {hit.capability_id}: {hit.description} "
            f"(rep: {format_reputation(hit.reputation)})"
            for hit in hits
        ]
        return ToolResult.text("\n".join(lines))

    async def search(self, query: str) -> list[SearchHit]:
        """Query the registry.

        Raises:
            SearchFailed: On transport errors, non-success responses or an
                unreadable body.
        """
        with trace_registry_search(query):
            try:
                resp = await self._registry.search(query, SEARCH_LIMIT)
            except httpx.HTTPError as e:
                raise SearchFailed(f"transport error: {e}") from e
            if not resp.is_success:
                raise SearchFailed(f"HTTP {resp.status_code}: {resp.text}")
            try:
                results = resp.json().get("results") or []
            except (ValueError, AttributeError) as e:
                raise SearchFailed(f"unreadable response: {e}") from e
            if not isinstance(results, list):
                raise SearchFailed("unreadable response: results is not a list")
            return _parse_hits(results)

    async def _call(self, args: dict[str, Any]) -> ToolResult:
        capability_id = args.get("capabilityId")
        if not capability_id or not isinstance(capability_id, str):
            return ToolResult.error("Error: capabilityId is required")
        inputs = args.get("inputs")
        if not isinstance(inputs, dict):
            inputs = {}
        result = await self._invoker.invoke(capability_id, inputs)
        return ToolResult.text(_render(result))

    async def _call_capability(self, name: str, args: dict[str, Any]) -> ToolResult:
        capabilities = await self._cache.get()
        cap = naming.resolve(name, capabilities)
        if cap is None:
            raise UnknownToolError(name)

        payload: dict[str, Any] = {}
        if args.get("query") is not None:
            payload["query"] = args["query"]
        data = args.get("data")
        if isinstance(data, dict):
            payload.update(data)

        result = await self._invoker.invoke(cap.capability_id, payload)
        return ToolResult.text(_render(result))

    def _report_collisions(self, capabilities: tuple[Capability, ...]) -> None:
        for tool_name, ids in naming.find_collisions(capabilities).items():
            if tool_name in self._reported_collisions:
                continue
            self._reported_collisions.add(tool_name)
            logger.warning(
                "Tool name %s is shared by %s; calls resolve to %s",
                tool_name,
                ", ".join(ids),
                ids[0],
            )


def _parse_hits(results: list[Any]) -> list[SearchHit]:
    hits: list[SearchHit] = []
    for entry in results:
        if not isinstance(entry, dict):
            continue
        try:
            hits.append(SearchHit.from_registry(entry))
        except ValidationError:
            logger.warning("Skipping malformed search hit %r", entry.get("capabilityId"))
    return hits


def _render(result: Any) -> str:
    return json.dumps(result, indent=2, ensure_ascii=False)
