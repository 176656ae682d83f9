"""
Core data models for the seller agent.
Mirrors the job/memo state owned by the agent-commerce protocol client.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


# ──────────────────────────────────────────────────────────────
#  Enums
# ──────────────────────────────────────────────────────────────

class JobPhase(int, Enum):
    """Lifecycle position of a job, numbered as the protocol numbers them."""
    REQUEST = 0
    NEGOTIATION = 1
    TRANSACTION = 2
    EVALUATION = 3
    COMPLETED = 4
    REJECTED = 5
    EXPIRED = 6

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_PHASES


TERMINAL_PHASES = frozenset({JobPhase.COMPLETED, JobPhase.REJECTED, JobPhase.EXPIRED})


def phase_label(phase: Optional[JobPhase]) -> str:
    return "unknown" if phase is None else phase.name


class JobAction(str, Enum):
    RESPOND = "respond"
    DELIVER = "deliver"


# ──────────────────────────────────────────────────────────────
#  Job & Memo — snapshots pushed by the protocol client
# ──────────────────────────────────────────────────────────────

class Memo(BaseModel):
    """A counterparty note, optionally announcing the phase it proposes next."""
    id: int
    next_phase: Optional[JobPhase] = None
    content: str = ""


class Job(BaseModel):
    id: int
    phase: JobPhase
    price: float = 0.0
    memos: list[Memo] = []

    @property
    def latest_memo(self) -> Optional[Memo]:
        return self.memos[-1] if self.memos else None


class JobNotification(BaseModel):
    """Inbound webhook body: the job snapshot and the memo that triggered it."""
    job: Job
    memo: Optional[Memo] = None


# ──────────────────────────────────────────────────────────────
#  Progress — which one-time actions already succeeded
# ──────────────────────────────────────────────────────────────

class JobProgress(BaseModel):
    responded: bool = False
    delivered: bool = False

    def succeeded(self, action: JobAction) -> bool:
        if action == JobAction.RESPOND:
            return self.responded
        return self.delivered

    def mark(self, action: JobAction) -> None:
        if action == JobAction.RESPOND:
            self.responded = True
        else:
            self.delivered = True


class Deliverable(BaseModel):
    type: str = "object"
    value: dict[str, Any] = Field(default_factory=dict)
