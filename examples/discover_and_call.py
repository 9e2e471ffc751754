#!/usr/bin/env python3
"""discover_and_call.py — drive the bridge's tool layer without an MCP host.

Walks through what an assistant host does over MCP:
  1. List tools (two meta-tools plus discovered capabilities)
  2. Search the registry
  3. Call a capability through its tool name

Endpoints and the API key come from the same NOOTERRA_* environment
variables the server reads (a .env file is honoured).

Usage:
    python examples/discover_and_call.py "weather in NYC"
"""

from __future__ import annotations

import asyncio
import sys

import httpx
from dotenv import load_dotenv

from nooterra_bridge import BridgeConfig, build_dispatcher


async def main(query: str) -> None:
    config = BridgeConfig.from_env()
    print("=== Nooterra MCP Bridge Demo ===")
    print(f"coordinator: {config.coordinator_url}")
    print(f"registry:    {config.registry_url}")
    print()

    async with httpx.AsyncClient(timeout=config.http_timeout) as http:
        dispatcher = build_dispatcher(config, http)

        # --------------------------------------------------------------
        # 1. tools/list
        # --------------------------------------------------------------
        tools = await dispatcher.list_tools()
        print(f"Available tools ({len(tools)}):")
        for tool in tools:
            summary = tool.description.splitlines()[0]
            print(f"  - {tool.name}: {summary}")
        print()

        # --------------------------------------------------------------
        # 2. search meta-tool
        # --------------------------------------------------------------
        result = await dispatcher.call_tool("search", {"query": query})
        print(f"Search results for {query!r}:")
        print(result.joined_text)
        print()

        # --------------------------------------------------------------
        # 3. Call the first discovered capability, if any.
        # --------------------------------------------------------------
        capability_tools = tools[2:]
        if not capability_tools:
            print("No capabilities discovered; nothing to call.")
            return

        name = capability_tools[0].name
        print(f"Calling {name} (this polls for up to 60s)...")
        result = await dispatcher.call_tool(name, {"query": query})
        label = "ERROR" if result.is_error else "OK"
        print(f"[{label}] {result.joined_text}")


if __name__ == "__main__":
    load_dotenv()
    try:
        asyncio.run(main(" ".join(sys.argv[1:]) or "weather"))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(130)
