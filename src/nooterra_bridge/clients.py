"""Thin async HTTP clients for the Nooterra coordinator and registry.

Both wrap a shared :class:`httpx.AsyncClient` and return the raw
:class:`httpx.Response`; interpreting status codes is left to the caller.
Transport failures surface as :class:`httpx.HTTPError`.
"""

from __future__ import annotations

from typing import Any

import httpx

from .config import BridgeConfig


class CoordinatorClient:
    """Discovery and workflow endpoints. Sends ``x-api-key`` when configured."""

    def __init__(self, http: httpx.AsyncClient, base_url: str, api_key: str = "") -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._headers = {"x-api-key": api_key} if api_key else {}

    @classmethod
    def from_config(cls, http: httpx.AsyncClient, config: BridgeConfig) -> CoordinatorClient:
        return cls(http, config.coordinator_url, config.api_key)

    async def discover(self, limit: int) -> httpx.Response:
        return await self._http.get(
            f"{self._base_url}/v1/discover",
            params={"limit": limit},
            headers=self._headers,
        )

    async def publish_workflow(self, body: dict[str, Any]) -> httpx.Response:
        return await self._http.post(
            f"{self._base_url}/v1/workflows/publish",
            json=body,
            headers=self._headers,
        )

    async def get_workflow(self, workflow_id: str) -> httpx.Response:
        return await self._http.get(
            f"{self._base_url}/v1/workflows/{workflow_id}",
            headers=self._headers,
        )


class RegistryClient:
    """Free-text capability search. Never sends credentials."""

    def __init__(self, http: httpx.AsyncClient, base_url: str) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")

    @classmethod
    def from_config(cls, http: httpx.AsyncClient, config: BridgeConfig) -> RegistryClient:
        return cls(http, config.registry_url)

    async def search(self, query: str, limit: int) -> httpx.Response:
        return await self._http.post(
            f"{self._base_url}/v1/agent/discovery",
            json={"query": query, "limit": limit},
        )
