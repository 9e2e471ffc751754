"""Mapping between capability ids and MCP tool names.

Tool names must match ``[A-Za-z0-9_]{1,64}``. The encoding is lossy, so the
reverse direction is a lookup against known capabilities rather than a
string transform.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from .models import Capability

MAX_TOOL_NAME_LENGTH = 64

_ILLEGAL_CHARS = re.compile(r"[^A-Za-z0-9_]")


def encode(capability_id: str) -> str:
    """Return the tool name for *capability_id*.

    ``cap.weather.forecast.v1`` becomes ``cap_weather_forecast_v1``.
    """
    name = capability_id.replace(".", "_")
    name = _ILLEGAL_CHARS.sub("", name)
    return name[:MAX_TOOL_NAME_LENGTH]


def decode(tool_name: str) -> str:
    """Best-effort guess at the capability id behind *tool_name*.

    Not an inverse of :func:`encode`; use :func:`resolve` to route calls.
    """
    return tool_name.replace("_", ".")


def resolve(tool_name: str, capabilities: Iterable[Capability]) -> Capability | None:
    """Find the capability whose encoded id equals *tool_name*.

    Ordered scan, first match wins when several ids encode to the same name.
    """
    for cap in capabilities:
        if encode(cap.capability_id) == tool_name:
            return cap
    return None


def find_collisions(capabilities: Iterable[Capability]) -> dict[str, list[str]]:
    """Return ``{tool_name: [capability_id, ...]}`` for names shared by several ids."""
    by_name: dict[str, list[str]] = {}
    for cap in capabilities:
        ids = by_name.setdefault(encode(cap.capability_id), [])
        if cap.capability_id not in ids:
            ids.append(cap.capability_id)
    return {name: ids for name, ids in by_name.items() if len(ids) > 1}
