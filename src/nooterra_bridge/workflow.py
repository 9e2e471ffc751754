"""Run one capability as a single-node coordinator workflow.

An invocation submits a workflow whose only node is ``main``, then polls its
status on a fixed interval until the workflow succeeds, fails, or the global
deadline passes. See :class:`~nooterra_bridge.fsm.InvocationPhase`.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from pydantic import ValidationError

from .clients import CoordinatorClient
from .fsm import InvocationPhase, InvocationState
from .models import WorkflowStatus
from .telemetry import get_tracer, trace_workflow_invoke

logger = logging.getLogger(__name__)

MAIN_NODE = "main"
MAX_CENTS = 100
POLL_INTERVAL_SECONDS = 1.0
TIMEOUT_SECONDS = 60.0

_COMPLETED_PAYLOAD: dict[str, Any] = {"message": "Completed"}


class WorkflowError(Exception):
    """Base class for invocation errors surfaced to the tool caller."""


class WorkflowSubmissionFailed(WorkflowError):
    """The coordinator rejected or never received the workflow."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class WorkflowExecutionFailed(WorkflowError):
    """The workflow ran and reported ``failed``."""

    def __init__(self, message: str, workflow_id: str) -> None:
        self.workflow_id = workflow_id
        super().__init__(message)


class WorkflowTimedOut(WorkflowError):
    """No terminal status before the deadline; the outcome is unknown."""

    def __init__(self, workflow_id: str, timeout: float) -> None:
        self.workflow_id = workflow_id
        self.timeout = timeout
        super().__init__(f"Workflow timed out after {timeout:g}s (workflow {workflow_id})")


class WorkflowInvoker:
    """Submits single-capability workflows and waits for their result.

    ``clock`` and ``sleep`` are injectable so tests can run the poll loop
    without real delays.
    """

    def __init__(
        self,
        coordinator: CoordinatorClient,
        *,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        timeout: float = TIMEOUT_SECONDS,
        max_cents: int = MAX_CENTS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._coordinator = coordinator
        self._poll_interval = poll_interval
        self._timeout = timeout
        self._max_cents = max_cents
        self._clock = clock
        self._sleep = sleep

    async def invoke(self, capability_id: str, payload: dict[str, Any]) -> Any:
        """Run *capability_id* with *payload* and return the ``main`` node result.

        Raises:
            WorkflowSubmissionFailed: Submission was rejected or unreachable.
            WorkflowExecutionFailed: The workflow reported ``failed``.
            WorkflowTimedOut: No terminal status within the deadline.
        """
        state = InvocationState(capability_id=capability_id)
        with trace_workflow_invoke(capability_id) as span:
            try:
                workflow_id = await self._submit(capability_id, payload)
            except WorkflowSubmissionFailed:
                state.advance(InvocationPhase.FAILED)
                span.set_attribute("workflow.phase", str(state.phase))
                raise

            state.workflow_id = workflow_id
            state.advance(InvocationPhase.POLLING)
            span.set_attribute("workflow.id", workflow_id)
            try:
                return await self._poll(state)
            finally:
                span.set_attribute("workflow.polls", state.polls)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def _submit(self, capability_id: str, payload: dict[str, Any]) -> str:
        body = {
            "intent": f"MCP call: {capability_id}",
            "maxCents": self._max_cents,
            "nodes": {
                MAIN_NODE: {
                    "capabilityId": capability_id,
                    "payload": payload,
                },
            },
        }
        try:
            resp = await self._coordinator.publish_workflow(body)
        except httpx.HTTPError as e:
            raise WorkflowSubmissionFailed(f"Workflow failed: {e}") from e

        if not resp.is_success:
            raise WorkflowSubmissionFailed(
                f"Workflow failed: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        try:
            workflow_id = resp.json().get("workflowId")
        except (ValueError, AttributeError):
            workflow_id = None
        if not workflow_id:
            raise WorkflowSubmissionFailed(
                f"Workflow failed: no workflowId in response: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

        logger.debug("Submitted workflow %s for %s", workflow_id, capability_id)
        return str(workflow_id)

    async def _poll(self, state: InvocationState) -> Any:
        workflow_id = state.workflow_id or ""
        started = self._clock()

        while self._clock() - started < self._timeout:
            await self._sleep(self._poll_interval)
            state.polls += 1

            status = await self._fetch_status(workflow_id)
            if status is None:
                continue

            if status.status == "success":
                state.advance(InvocationPhase.SUCCEEDED)
                logger.info(
                    "Workflow %s succeeded after %d polls", workflow_id, state.polls
                )
                node = status.node(MAIN_NODE)
                if node is None or node.result_payload is None:
                    return dict(_COMPLETED_PAYLOAD)
                return node.result_payload

            if status.status == "failed":
                state.advance(InvocationPhase.FAILED)
                message = _failure_message(status)
                logger.info("Workflow %s failed: %s", workflow_id, message)
                raise WorkflowExecutionFailed(message, workflow_id)

        state.advance(InvocationPhase.TIMED_OUT)
        logger.warning(
            "Workflow %s timed out after %d polls", workflow_id, state.polls
        )
        raise WorkflowTimedOut(workflow_id, self._timeout)

    async def _fetch_status(self, workflow_id: str) -> WorkflowStatus | None:
        """One status poll. Transient failures return ``None`` and are not raised."""
        try:
            resp = await self._coordinator.get_workflow(workflow_id)
        except httpx.HTTPError as e:
            logger.debug("Poll of workflow %s failed: %s", workflow_id, e)
            get_tracer().record_event("workflow/poll_error", {"error": str(e)})
            return None

        if not resp.is_success:
            logger.debug("Poll of workflow %s returned HTTP %d", workflow_id, resp.status_code)
            return None

        try:
            body = resp.json()
        except ValueError:
            logger.debug("Poll of workflow %s returned non-JSON body", workflow_id)
            return None
        if not isinstance(body, dict):
            return None
        try:
            return WorkflowStatus.from_response(body)
        except ValidationError:
            logger.debug("Poll of workflow %s returned an unexpected shape", workflow_id)
            return None


def _failure_message(status: WorkflowStatus) -> str:
    node = status.node(MAIN_NODE)
    if node is not None and isinstance(node.result_payload, dict):
        error = node.result_payload.get("error")
        if error:
            return str(error)
    return "Workflow failed"
