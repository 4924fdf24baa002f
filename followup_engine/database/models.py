"""
SQLAlchemy models for the lead store and decision audit log
"""

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Column, String, Integer, DateTime, Boolean, Text, JSON,
    ForeignKey, Index, CheckConstraint
)
from sqlalchemy.orm import declarative_base, relationship

from ..domain.models import LeadContext


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


Base = declarative_base()


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps"""
    created_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        nullable=False,
        index=True
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False
    )


class Lead(Base, TimestampMixin):
    """Messenger lead with follow-up escalation state"""
    __tablename__ = "leads"

    id = Column(String(36), primary_key=True, default=_new_id)
    sender_id = Column(String(100), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=True)
    pipeline_stage = Column(String(100), nullable=True)
    message_count = Column(Integer, default=0, nullable=False)
    bot_disabled = Column(Boolean, default=False, nullable=False)

    last_message_at = Column(DateTime(timezone=True), nullable=True, index=True)
    last_ai_followup_at = Column(DateTime(timezone=True), nullable=True)

    # Escalation arc: 1=normal, 2=shorter, 3=urgent, 4=final, 5=stopped
    escalation_arc_position = Column(Integer, default=1, nullable=False)
    consecutive_followups_no_response = Column(Integer, default=0, nullable=False)
    follow_up_sequence_started_at = Column(DateTime(timezone=True), nullable=True)
    disengagement_signals = Column(JSON, default=dict, nullable=False)

    decisions = relationship("FollowupDecisionLog", back_populates="lead")

    __table_args__ = (
        CheckConstraint(
            "escalation_arc_position >= 1 AND escalation_arc_position <= 5",
            name="leads_escalation_arc_range"
        ),
        CheckConstraint(
            "consecutive_followups_no_response >= 0",
            name="leads_no_response_non_negative"
        ),
        Index("idx_leads_escalation_arc", "escalation_arc_position"),
    )

    def to_context(self) -> LeadContext:
        """Read-only snapshot for the decision engine"""
        return LeadContext(
            id=self.id,
            sender_id=self.sender_id,
            name=self.name,
            pipeline_stage=self.pipeline_stage,
            message_count=self.message_count or 0,
            last_message_at=self.last_message_at,
            last_ai_followup_at=self.last_ai_followup_at,
            escalation_arc_position=self.escalation_arc_position or 1,
            consecutive_followups_no_response=self.consecutive_followups_no_response or 0,
            disengagement_signals=dict(self.disengagement_signals or {}),
        )


class FollowupDecisionLog(Base):
    """One row per evaluation: the decision and why"""
    __tablename__ = "followup_decisions"

    id = Column(String(36), primary_key=True, default=_new_id)
    lead_id = Column(String(36), ForeignKey("leads.id"), nullable=False, index=True)
    should_follow_up = Column(Boolean, nullable=False)
    blocked_by = Column(String(50), nullable=True)

    spam_tolerance_score = Column(Integer, nullable=False)
    interpretation = Column(String(20), nullable=False)
    score_breakdown = Column(JSON, nullable=True)
    justification_conditions = Column(JSON, default=list)
    regret_test_passed = Column(Boolean, nullable=True)
    escalation_position = Column(Integer, nullable=False)
    hard_limit_reason = Column(Text, nullable=True)

    reasoning = Column(Text, nullable=False)
    internal_thought = Column(Text, nullable=True)
    proposed_message = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)

    evaluated_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False, index=True)

    lead = relationship("Lead", back_populates="decisions")

    __table_args__ = (
        Index("idx_followup_decisions_lead_time", "lead_id", "evaluated_at"),
    )
