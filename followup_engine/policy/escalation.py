"""
Escalation Arc
How many unanswered follow-ups a lead may receive, and at what cadence

    1 normal -> 2 shorter -> 3 urgent_nudge -> 4 final_try -> 5 stopped

Advance moves one step (never skips) after a follow-up goes unanswered;
a reply resets to 1. Position 5 is terminal until reset.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional

from ..domain.models import ArcPosition, EscalationArc

# position -> (description, timing multiplier, can send)
ARC_TABLE = {
    ArcPosition.NORMAL: ("normal", 1.0, True),
    ArcPosition.SHORTER: ("shorter", 0.5, True),
    ArcPosition.URGENT_NUDGE: ("urgent_nudge", 0.3, True),
    ArcPosition.FINAL_TRY: ("final_try", 0.3, True),
    ArcPosition.STOPPED: ("stopped", 0.0, False),
}


def to_arc_position(position: Optional[int]) -> ArcPosition:
    """Clamp any stored integer into the 1-5 range"""
    if position is None:
        return ArcPosition.NORMAL
    return ArcPosition(max(ArcPosition.NORMAL, min(ArcPosition.STOPPED, int(position))))


def get_escalation_arc(position: Optional[int]) -> EscalationArc:
    arc_position = to_arc_position(position)
    description, multiplier, can_send = ARC_TABLE[arc_position]
    return EscalationArc(
        position=arc_position,
        description=description,
        timing_multiplier=multiplier,
        can_send=can_send,
    )


def next_position(position: ArcPosition) -> ArcPosition:
    return to_arc_position(position + 1)


@dataclass(frozen=True)
class EscalationState:
    """Persisted per-lead escalation state"""
    position: ArcPosition = ArcPosition.NORMAL
    consecutive_no_response: int = 0
    sequence_started_at: Optional[datetime] = None
    disengagement_signals: Optional[Dict[str, Any]] = None

    def advanced(self, now: datetime) -> "EscalationState":
        """A follow-up was sent and not answered"""
        return replace(
            self,
            position=next_position(self.position),
            consecutive_no_response=self.consecutive_no_response + 1,
            sequence_started_at=self.sequence_started_at or now,
        )

    def reset(self) -> "EscalationState":
        """The lead replied; the disengagement record starts empty"""
        return EscalationState(disengagement_signals={})

    @property
    def arc(self) -> EscalationArc:
        return get_escalation_arc(self.position)
