"""Bridge configuration read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_COORDINATOR_URL = "https://coord.nooterra.ai"
DEFAULT_REGISTRY_URL = "https://registry.nooterra.ai"
_DEFAULT_HTTP_TIMEOUT = 30.0


@dataclass
class BridgeConfig:
    """Endpoints, credentials and process settings for the bridge.

    Environment variables:
        - ``NOOTERRA_COORDINATOR_URL``: workflow coordinator base URL
        - ``NOOTERRA_REGISTRY_URL``: registry (search) base URL
        - ``NOOTERRA_API_KEY``: sent as ``x-api-key`` to the coordinator only
        - ``NOOTERRA_HTTP_TIMEOUT_SEC``: per-request HTTP timeout (default 30)
        - ``NOOTERRA_LOG_LEVEL``: log level name (default ``INFO``)
        - ``NOOTERRA_OTEL_EXPORTER``: ``none`` | ``stdout`` | ``otlp``
    """

    coordinator_url: str = DEFAULT_COORDINATOR_URL
    registry_url: str = DEFAULT_REGISTRY_URL
    api_key: str = ""
    http_timeout: float = _DEFAULT_HTTP_TIMEOUT
    log_level: str = "INFO"
    otel_exporter: str = "none"

    def __post_init__(self) -> None:
        self.coordinator_url = self.coordinator_url.rstrip("/")
        self.registry_url = self.registry_url.rstrip("/")
        if self.http_timeout <= 0:
            msg = f"HTTP timeout must be positive, got {self.http_timeout}"
            raise ValueError(msg)

    @classmethod
    def from_env(cls) -> BridgeConfig:
        raw_timeout = os.environ.get("NOOTERRA_HTTP_TIMEOUT_SEC", str(_DEFAULT_HTTP_TIMEOUT))
        try:
            timeout = float(raw_timeout)
        except ValueError as e:
            msg = f"NOOTERRA_HTTP_TIMEOUT_SEC must be a number, got {raw_timeout!r}"
            raise ValueError(msg) from e

        return cls(
            coordinator_url=os.environ.get("NOOTERRA_COORDINATOR_URL") or DEFAULT_COORDINATOR_URL,
            registry_url=os.environ.get("NOOTERRA_REGISTRY_URL") or DEFAULT_REGISTRY_URL,
            api_key=os.environ.get("NOOTERRA_API_KEY", ""),
            http_timeout=timeout,
            log_level=os.environ.get("NOOTERRA_LOG_LEVEL", "INFO").strip().upper() or "INFO",
            otel_exporter=os.environ.get("NOOTERRA_OTEL_EXPORTER", "none").strip().lower(),
        )
