"""Maps a job's phase transition to the one-time action it calls for."""
from __future__ import annotations

from typing import Optional

from models.schemas import JobAction, JobPhase

_TRANSITIONS: dict[tuple[JobPhase, JobPhase], JobAction] = {
    (JobPhase.REQUEST, JobPhase.NEGOTIATION): JobAction.RESPOND,
    (JobPhase.TRANSACTION, JobPhase.EVALUATION): JobAction.DELIVER,
}


def resolve_action(phase: JobPhase, next_phase: Optional[JobPhase]) -> Optional[JobAction]:
    """Return the action implied by ``phase -> next_phase``, or None."""
    if next_phase is None:
        return None
    return _TRANSITIONS.get((phase, next_phase))
