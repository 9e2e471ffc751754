"""Finite State Machine for a single workflow invocation."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class InvocationPhase(StrEnum):
    SUBMITTING = "submitting"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


# Valid phase transitions; terminal phases have none.
_TRANSITIONS: dict[InvocationPhase, list[InvocationPhase]] = {
    InvocationPhase.SUBMITTING: [InvocationPhase.POLLING, InvocationPhase.FAILED],
    InvocationPhase.POLLING: [
        InvocationPhase.SUCCEEDED,
        InvocationPhase.FAILED,
        InvocationPhase.TIMED_OUT,
    ],
    InvocationPhase.SUCCEEDED: [],
    InvocationPhase.FAILED: [],
    InvocationPhase.TIMED_OUT: [],
}


class InvocationState(BaseModel):
    phase: InvocationPhase = InvocationPhase.SUBMITTING
    capability_id: str = ""
    workflow_id: str | None = None
    polls: int = 0

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.phase]

    def can_transition(self, target: InvocationPhase) -> bool:
        return target in _TRANSITIONS.get(self.phase, [])

    def advance(self, target: InvocationPhase) -> None:
        if not self.can_transition(target):
            raise ValueError(f"Invalid transition: {self.phase} -> {target}")
        self.phase = target
