"""Data types shared by the cache, the invoker and the dispatcher."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Remote data
# ---------------------------------------------------------------------------


class Capability(BaseModel):
    """A remotely owned unit of agent functionality.

    ``capability_id`` is the only field used for identity and routing.
    """

    model_config = ConfigDict(frozen=True)

    agent_id: str = ""
    capability_id: str = Field(min_length=1)
    description: str = ""
    endpoint: str | None = None
    reputation: float = 0.0

    @classmethod
    def from_discovery(cls, entry: dict[str, Any]) -> Capability:
        """Build from one ``/v1/discover`` result entry."""
        capability_id = entry.get("capabilityId")
        return cls(
            agent_id=entry.get("did") or "",
            capability_id=capability_id,
            description=entry.get("description") or capability_id or "",
            endpoint=entry.get("endpoint"),
            reputation=entry.get("reputation") or 0.0,
        )


class SearchHit(BaseModel):
    """One result from the registry's free-text discovery endpoint."""

    capability_id: str
    description: str = ""
    reputation: float = 0.0

    @classmethod
    def from_registry(cls, entry: dict[str, Any]) -> SearchHit:
        capability_id = entry.get("capabilityId") or ""
        return cls(
            capability_id=capability_id,
            description=entry.get("description") or capability_id,
            reputation=entry.get("reputation") or 0.0,
        )


class WorkflowNode(BaseModel):
    name: str = ""
    result_payload: Any = None


class WorkflowStatus(BaseModel):
    """Parsed ``GET /v1/workflows/{id}`` response."""

    status: str = "unknown"
    nodes: list[WorkflowNode] = Field(default_factory=list)

    @classmethod
    def from_response(cls, body: dict[str, Any]) -> WorkflowStatus:
        """Parse leniently: the workflow status decides the outcome, so a
        malformed node is dropped instead of failing the whole poll."""
        workflow = body.get("workflow")
        if not isinstance(workflow, dict):
            workflow = {}
        status = workflow.get("status")
        nodes = body.get("nodes")
        return cls(
            status=status if isinstance(status, str) and status else "unknown",
            nodes=_parse_nodes(nodes if isinstance(nodes, list) else []),
        )

    def node(self, name: str) -> WorkflowNode | None:
        for n in self.nodes:
            if n.name == name:
                return n
        return None


def _parse_nodes(raw_nodes: list[Any]) -> list[WorkflowNode]:
    nodes: list[WorkflowNode] = []
    for raw in raw_nodes:
        if not isinstance(raw, dict):
            continue
        try:
            nodes.append(WorkflowNode.model_validate(raw))
        except ValidationError:
            logger.debug("Skipping malformed workflow node %r", raw.get("name"))
    return nodes


# ---------------------------------------------------------------------------
# MCP surface
# ---------------------------------------------------------------------------


def format_reputation(reputation: float) -> str:
    """Render a ``[0, 1]`` reputation as a whole percentage, e.g. ``87%``.

    Halves round up (``0.125`` → ``13%``).
    """
    percent = Decimal(reputation * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return f"{percent}%"


class ToolDescriptor(BaseModel):
    """Entry in the ``tools/list`` response."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str
    input_schema: dict[str, Any] = Field(alias="inputSchema")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolResult(BaseModel):
    """Result of a ``tools/call``; ``is_error`` flags a failed invocation."""

    model_config = ConfigDict(populate_by_name=True)

    content: list[TextContent] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")

    @classmethod
    def text(cls, text: str) -> ToolResult:
        return cls(content=[TextContent(text=text)])

    @classmethod
    def error(cls, text: str) -> ToolResult:
        return cls(content=[TextContent(text=text)], is_error=True)

    @property
    def joined_text(self) -> str:
        return "\n".join(item.text for item in self.content)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
