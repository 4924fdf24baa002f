"""
Domain types for the follow-up decision engine
Snapshots in, decision out: everything here is a plain value object
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ScoreInterpretation(str, Enum):
    WAIT = "wait"
    CAREFUL = "careful"
    ACCEPTABLE = "acceptable"


class ArcPosition(IntEnum):
    """Position in the escalation arc; 5 is terminal until reset"""
    NORMAL = 1
    SHORTER = 2
    URGENT_NUDGE = 3
    FINAL_TRY = 4
    STOPPED = 5


class SpamSignalType(str, Enum):
    URGENCY = "urgency"                # acceptable
    CARE = "care"                      # acceptable
    RESPONSIBILITY = "responsibility"  # acceptable
    ANXIETY = "anxiety"                # bad
    AUTOMATION = "automation"          # bad
    DESPERATION = "desperation"        # bad


@dataclass(frozen=True)
class ConversationMessage:
    """One message of the conversation, oldest first in a history"""
    role: MessageRole
    content: str
    created_at: Optional[datetime] = None

    @property
    def is_user(self) -> bool:
        return self.role == MessageRole.USER

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationMessage":
        return cls(
            role=MessageRole(data.get("role", "user")),
            content=data.get("content") or "",
            created_at=data.get("created_at"),
        )


@dataclass(frozen=True)
class LeadContext:
    """Read-only snapshot of a lead taken from the lead store"""
    id: str
    sender_id: str
    name: Optional[str] = None
    pipeline_stage: Optional[str] = None
    message_count: int = 0
    last_message_at: Optional[datetime] = None
    last_ai_followup_at: Optional[datetime] = None
    escalation_arc_position: int = 1
    consecutive_followups_no_response: int = 0
    disengagement_signals: Dict[str, Any] = field(default_factory=dict)


class FollowupSettings(BaseModel):
    """Externally configured decision settings"""
    aggressiveness: int = Field(default=5, ge=1, le=10)

    model_config = {"frozen": True}


@dataclass(frozen=True)
class ScoreBreakdown:
    stakes: int          # 0-25
    warmth: int          # 0-20
    channel_norms: int   # 0-15
    time_pressure: int   # 0-15
    engagement: int      # 0-15
    silence_ambiguity: int  # 0-10

    def total(self) -> int:
        return (
            self.stakes + self.warmth + self.channel_norms
            + self.time_pressure + self.engagement + self.silence_ambiguity
        )


@dataclass(frozen=True)
class SpamToleranceScore:
    total: int  # 0-100
    breakdown: ScoreBreakdown
    interpretation: ScoreInterpretation


@dataclass(frozen=True)
class JustificationConditions:
    high_stakes: bool
    ambiguous_silence: bool
    tolerant_channel: bool
    asymmetric_value: bool

    def active_names(self) -> List[str]:
        return [name for name, value in asdict(self).items() if value]


@dataclass(frozen=True)
class SpamJustification:
    conditions: JustificationConditions
    active_count: int
    reasons: List[str]


@dataclass(frozen=True)
class EscalationArc:
    position: ArcPosition
    description: str
    timing_multiplier: float
    can_send: bool


@dataclass(frozen=True)
class HardLimitCheck:
    rapid_fire: bool
    late_night: bool
    session_limit: bool
    guilt_language: bool
    blocked: bool
    reason: Optional[str]


@dataclass(frozen=True)
class DisengagementSignals:
    read_no_reply: bool
    shorter_replies: bool
    slower_replies: bool
    explicit_disengage: bool
    multiple_no_response: bool
    should_stop: bool
    confidence: int  # 0-100


@dataclass(frozen=True)
class SessionState:
    in_live_session: bool
    minutes_since_activity: Optional[int]  # None when there was never any activity
    session_break_occurred: bool


@dataclass(frozen=True)
class TimingRelaxation:
    can_send_same_day: bool
    min_interval_minutes: int
    ignores_fresh_day: bool
    session_break_minutes: int
    description: str


@dataclass(frozen=True)
class SpamSignalAnalysis:
    primary_signal: SpamSignalType
    is_acceptable: bool
    confidence: int  # 50-100
    indicators: List[str]


def _plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


@dataclass(frozen=True)
class SpamLogicDecision:
    """Composite follow-up decision with every intermediate result"""
    should_follow_up: bool
    score: SpamToleranceScore
    justification: SpamJustification
    arc: EscalationArc
    hard_limits: HardLimitCheck
    disengagement: DisengagementSignals
    regret_test_passed: bool
    reasoning: str
    timing_relaxation: TimingRelaxation
    session_state: SessionState
    internal_thought: str
    blocked_by: Optional[str] = None
    evaluated_at: Optional[datetime] = None
    message_signal: Optional[SpamSignalAnalysis] = None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation for audit logs"""
        return _plain(asdict(self))
