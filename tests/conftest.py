"""Shared fakes: a manual clock and an in-process coordinator/registry."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from nooterra_bridge.cache import CapabilityCache
from nooterra_bridge.clients import CoordinatorClient, RegistryClient
from nooterra_bridge.dispatcher import ToolDispatcher
from nooterra_bridge.workflow import WorkflowInvoker

COORD_URL = "http://coord.test"
REGISTRY_URL = "http://registry.test"


class FakeClock:
    """Monotonic clock that only moves when ``sleep`` is awaited or ``advance`` is called."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        # Yield so concurrent invocations interleave.
        await asyncio.sleep(0)


class FakeNooterra:
    """Scriptable stand-in for the coordinator and registry HTTP APIs.

    Every request is recorded in ``requests``. Handlers can be swapped per test.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.capabilities: list[dict[str, Any]] = []
        self.discover_status = 200
        self.search_results: list[dict[str, Any]] = []
        self.search_status = 200
        self.publish_status = 200
        self.publish_body: dict[str, Any] = {"workflowId": "wf-1"}
        # When set, publish n (1-based) answers with workflow id ``wf-<n>``.
        self.distinct_workflow_ids = False
        # Returns the status body for the n-th poll (1-based).
        self.status_for_poll: Callable[[int], tuple[int, dict[str, Any]]] = (
            lambda n: (200, {"workflow": {"status": "pending"}, "nodes": []})
        )
        # When set, takes precedence: (workflow id, n-th poll of that workflow).
        self.status_for_workflow: Callable[[str, int], tuple[int, dict[str, Any]]] | None = None
        self.raise_on: set[str] = set()
        self.polls = 0
        self.publishes = 0
        self.workflow_capabilities: dict[str, str] = {}
        self.workflow_polls: dict[str, int] = {}

    # -- request accounting -------------------------------------------------

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def count(self, path_prefix: str) -> int:
        return sum(1 for p in self.paths() if p.startswith(path_prefix))

    def published(self) -> list[dict[str, Any]]:
        return [
            json.loads(r.content)
            for r in self.requests
            if r.url.path == "/v1/workflows/publish"
        ]

    # -- transport ------------------------------------------------------------

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        for prefix in self.raise_on:
            if path.startswith(prefix):
                raise httpx.ConnectError("connection refused", request=request)

        if path == "/v1/discover":
            return httpx.Response(self.discover_status, json={"results": self.capabilities})
        if path == "/v1/agent/discovery":
            return httpx.Response(self.search_status, json={"results": self.search_results})
        if path == "/v1/workflows/publish":
            self.publishes += 1
            body = self.publish_body
            if self.distinct_workflow_ids:
                body = {"workflowId": f"wf-{self.publishes}"}
                capability_id = json.loads(request.content)["nodes"]["main"]["capabilityId"]
                self.workflow_capabilities[body["workflowId"]] = capability_id
            return httpx.Response(self.publish_status, json=body)
        if path.startswith("/v1/workflows/"):
            self.polls += 1
            workflow_id = path.rsplit("/", 1)[-1]
            self.workflow_polls[workflow_id] = self.workflow_polls.get(workflow_id, 0) + 1
            if self.status_for_workflow is not None:
                status_code, body = self.status_for_workflow(
                    workflow_id, self.workflow_polls[workflow_id]
                )
            else:
                status_code, body = self.status_for_poll(self.polls)
            return httpx.Response(status_code, json=body)
        return httpx.Response(404, text="not found")

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def nooterra() -> FakeNooterra:
    return FakeNooterra()


@pytest.fixture
def coordinator(nooterra: FakeNooterra) -> CoordinatorClient:
    return CoordinatorClient(nooterra.client(), COORD_URL, api_key="test-key")


@pytest.fixture
def registry(nooterra: FakeNooterra) -> RegistryClient:
    return RegistryClient(nooterra.client(), REGISTRY_URL)


@pytest.fixture
def cache(coordinator: CoordinatorClient, clock: FakeClock) -> CapabilityCache:
    return CapabilityCache(coordinator, clock=clock)


@pytest.fixture
def invoker(coordinator: CoordinatorClient, clock: FakeClock) -> WorkflowInvoker:
    return WorkflowInvoker(coordinator, clock=clock, sleep=clock.sleep)


@pytest.fixture
def dispatcher(
    cache: CapabilityCache, invoker: WorkflowInvoker, registry: RegistryClient
) -> ToolDispatcher:
    return ToolDispatcher(cache=cache, invoker=invoker, registry=registry)
