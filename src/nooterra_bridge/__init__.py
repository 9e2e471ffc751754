"""Nooterra MCP bridge — Nooterra agent capabilities as MCP tools."""

from __future__ import annotations

__version__ = "0.1.0"

from .cache import CapabilityCache, DiscoveryFetchFailed
from .clients import CoordinatorClient, RegistryClient
from .config import BridgeConfig
from .dispatcher import SearchFailed, ToolDispatcher, UnknownToolError
from .fsm import InvocationPhase, InvocationState
from .mcp_server import McpBridgeServer, build_dispatcher
from .models import (
    Capability,
    SearchHit,
    TextContent,
    ToolDescriptor,
    ToolResult,
    WorkflowNode,
    WorkflowStatus,
)
from .naming import decode, encode, find_collisions, resolve
from .telemetry import BridgeTracer, TelemetryConfig
from .workflow import (
    WorkflowError,
    WorkflowExecutionFailed,
    WorkflowInvoker,
    WorkflowSubmissionFailed,
    WorkflowTimedOut,
)

__all__ = [
    "BridgeConfig",
    "BridgeTracer",
    "Capability",
    "CapabilityCache",
    "CoordinatorClient",
    "DiscoveryFetchFailed",
    "InvocationPhase",
    "InvocationState",
    "McpBridgeServer",
    "RegistryClient",
    "SearchFailed",
    "SearchHit",
    "TelemetryConfig",
    "TextContent",
    "ToolDescriptor",
    "ToolDispatcher",
    "ToolResult",
    "UnknownToolError",
    "WorkflowError",
    "WorkflowExecutionFailed",
    "WorkflowInvoker",
    "WorkflowNode",
    "WorkflowStatus",
    "WorkflowSubmissionFailed",
    "WorkflowTimedOut",
    "build_dispatcher",
    "decode",
    "encode",
    "find_collisions",
    "resolve",
]
