"""
CRUD operations for the lead store and decision audit log
Escalation mutations are single conditional UPDATEs (optimistic concurrency)
"""

import asyncio
from dataclasses import asdict
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, update, and_, or_, desc
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import OperationalError

from ..domain.models import ArcPosition, LeadContext, SpamLogicDecision
from ..exceptions import LeadNotFoundError, StaleEscalationStateError
from ..policy.escalation import EscalationState, to_arc_position
from ..utils.helpers import ensure_utc, utc_now
from .models import Lead, FollowupDecisionLog


async def retry_on_lock(func, *args, session=None, max_retries=5, initial_delay=0.1, **kwargs):
    """Retry function on database lock with exponential backoff"""
    from sqlalchemy.exc import PendingRollbackError

    for attempt in range(max_retries):
        try:
            return await func(*args, **kwargs)
        except (OperationalError, PendingRollbackError) as e:
            error_str = str(e)
            if ("database is locked" in error_str or "PendingRollbackError" in error_str) and attempt < max_retries - 1:
                if session:
                    await session.rollback()
                delay = initial_delay * (2 ** attempt)
                await asyncio.sleep(delay)
                continue
            raise


def _utc_or_none(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


class LeadCRUD:
    """CRUD operations for Lead model"""

    @staticmethod
    async def create_lead(
        session: AsyncSession,
        sender_id: str,
        name: Optional[str] = None,
        pipeline_stage: Optional[str] = None,
        message_count: int = 0,
        last_message_at: Optional[datetime] = None,
        last_ai_followup_at: Optional[datetime] = None,
        escalation_arc_position: int = 1,
        consecutive_followups_no_response: int = 0,
    ) -> Lead:
        """Create a new lead record"""
        lead = Lead(
            sender_id=sender_id,
            name=name,
            pipeline_stage=pipeline_stage,
            message_count=message_count,
            last_message_at=_utc_or_none(last_message_at),
            last_ai_followup_at=_utc_or_none(last_ai_followup_at),
            escalation_arc_position=int(to_arc_position(escalation_arc_position)),
            consecutive_followups_no_response=max(0, consecutive_followups_no_response),
            disengagement_signals={},
        )
        session.add(lead)
        await retry_on_lock(session.commit, session=session)
        await session.refresh(lead)
        return lead

    @staticmethod
    async def get_lead(session: AsyncSession, lead_id: str) -> Optional[Lead]:
        result = await session.execute(select(Lead).where(Lead.id == lead_id))
        return result.scalar_one_or_none()

    @staticmethod
    async def get_lead_context(session: AsyncSession, lead_id: str) -> LeadContext:
        """Snapshot of a lead for one evaluation"""
        lead = await LeadCRUD.get_lead(session, lead_id)
        if lead is None:
            raise LeadNotFoundError(lead_id)
        return lead.to_context()

    @staticmethod
    async def get_leads_for_evaluation(
        session: AsyncSession,
        stale_threshold_hours: float,
        cooldown_hours: float,
        limit: int = 20,
        now: Optional[datetime] = None,
    ) -> List[Lead]:
        """
        Leads with a stale conversation that have not been followed up recently

        Excludes leads with automation disabled, with a single message or less,
        and leads whose escalation arc is stopped. Oldest conversations first.
        """
        now = ensure_utc(now or utc_now())
        stale_before = now - timedelta(hours=stale_threshold_hours)
        cooldown_before = now - timedelta(hours=cooldown_hours)

        result = await session.execute(
            select(Lead)
            .where(
                and_(
                    Lead.bot_disabled.is_(False),
                    Lead.last_message_at.is_not(None),
                    Lead.last_message_at < stale_before,
                    or_(
                        Lead.last_ai_followup_at.is_(None),
                        Lead.last_ai_followup_at < cooldown_before
                    ),
                    Lead.message_count > 1,
                    Lead.escalation_arc_position < int(ArcPosition.STOPPED)
                )
            )
            .order_by(Lead.last_message_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def _read_escalation_state(session: AsyncSession, lead_id: str) -> EscalationState:
        result = await session.execute(
            select(
                Lead.escalation_arc_position,
                Lead.consecutive_followups_no_response,
                Lead.follow_up_sequence_started_at,
                Lead.disengagement_signals
            ).where(Lead.id == lead_id)
        )
        row = result.one_or_none()
        if row is None:
            raise LeadNotFoundError(lead_id)

        return EscalationState(
            position=to_arc_position(row.escalation_arc_position),
            consecutive_no_response=row.consecutive_followups_no_response or 0,
            sequence_started_at=_utc_or_none(row.follow_up_sequence_started_at),
            disengagement_signals=row.disengagement_signals,
        )

    @staticmethod
    async def get_escalation_state(session: AsyncSession, lead_id: str) -> EscalationState:
        return await LeadCRUD._read_escalation_state(session, lead_id)

    @staticmethod
    async def advance_escalation_arc(
        session: AsyncSession,
        lead_id: str,
        expected_position: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> EscalationState:
        """
        Move one step along the escalation arc and count one more unanswered follow-up

        The UPDATE only applies if position and counter still hold the values
        just read, so two racing evaluations cannot double-advance.

        Raises:
            LeadNotFoundError: lead does not exist
            StaleEscalationStateError: position differs from expected_position,
                or another writer changed the state in between
        """
        now = ensure_utc(now or utc_now())
        current = await LeadCRUD._read_escalation_state(session, lead_id)

        if expected_position is not None and int(current.position) != int(expected_position):
            raise StaleEscalationStateError(lead_id, int(expected_position), int(current.position))

        advanced = current.advanced(now)

        result = await session.execute(
            update(Lead)
            .where(
                and_(
                    Lead.id == lead_id,
                    Lead.escalation_arc_position == int(current.position),
                    Lead.consecutive_followups_no_response == current.consecutive_no_response
                )
            )
            .values(
                escalation_arc_position=int(advanced.position),
                consecutive_followups_no_response=advanced.consecutive_no_response,
                follow_up_sequence_started_at=advanced.sequence_started_at,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            await session.rollback()
            latest = await LeadCRUD._read_escalation_state(session, lead_id)
            raise StaleEscalationStateError(lead_id, int(current.position), int(latest.position))

        await retry_on_lock(session.commit, session=session)
        return advanced

    @staticmethod
    async def reset_escalation_arc(session: AsyncSession, lead_id: str) -> EscalationState:
        """Lead replied: back to position 1, counter and disengagement record cleared"""
        reset = EscalationState().reset()

        result = await session.execute(
            update(Lead)
            .where(Lead.id == lead_id)
            .values(
                escalation_arc_position=int(reset.position),
                consecutive_followups_no_response=reset.consecutive_no_response,
                follow_up_sequence_started_at=reset.sequence_started_at,
                disengagement_signals=reset.disengagement_signals,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            raise LeadNotFoundError(lead_id)

        await retry_on_lock(session.commit, session=session)
        return reset

    @staticmethod
    async def mark_followup_sent(
        session: AsyncSession,
        lead_id: str,
        sent_at: Optional[datetime] = None
    ) -> bool:
        result = await session.execute(
            update(Lead)
            .where(Lead.id == lead_id)
            .values(last_ai_followup_at=ensure_utc(sent_at or utc_now()))
            .execution_options(synchronize_session=False)
        )
        await retry_on_lock(session.commit, session=session)
        return result.rowcount > 0

    @staticmethod
    async def mark_inbound_message(
        session: AsyncSession,
        lead_id: str,
        received_at: Optional[datetime] = None
    ) -> bool:
        result = await session.execute(
            update(Lead)
            .where(Lead.id == lead_id)
            .values(
                last_message_at=ensure_utc(received_at or utc_now()),
                message_count=Lead.message_count + 1,
            )
            .execution_options(synchronize_session=False)
        )
        await retry_on_lock(session.commit, session=session)
        return result.rowcount > 0

    @staticmethod
    async def update_disengagement_signals(
        session: AsyncSession,
        lead_id: str,
        signals: dict
    ) -> bool:
        result = await session.execute(
            update(Lead)
            .where(Lead.id == lead_id)
            .values(disengagement_signals=signals)
            .execution_options(synchronize_session=False)
        )
        await retry_on_lock(session.commit, session=session)
        return result.rowcount > 0


class FollowupDecisionCRUD:
    """CRUD operations for FollowupDecisionLog model"""

    @staticmethod
    async def record_decision(
        session: AsyncSession,
        lead_id: str,
        decision: SpamLogicDecision,
        proposed_message: Optional[str] = None,
    ) -> FollowupDecisionLog:
        record = FollowupDecisionLog(
            lead_id=lead_id,
            should_follow_up=decision.should_follow_up,
            blocked_by=decision.blocked_by,
            spam_tolerance_score=decision.score.total,
            interpretation=decision.score.interpretation.value,
            score_breakdown=asdict(decision.score.breakdown),
            justification_conditions=decision.justification.conditions.active_names(),
            regret_test_passed=decision.regret_test_passed,
            escalation_position=int(decision.arc.position),
            hard_limit_reason=decision.hard_limits.reason,
            reasoning=decision.reasoning,
            internal_thought=decision.internal_thought,
            proposed_message=proposed_message,
            details=decision.to_dict(),
            evaluated_at=ensure_utc(decision.evaluated_at or utc_now()),
        )
        session.add(record)
        await retry_on_lock(session.commit, session=session)
        await session.refresh(record)
        return record

    @staticmethod
    async def get_recent_decisions(
        session: AsyncSession,
        lead_id: str,
        limit: int = 10
    ) -> List[FollowupDecisionLog]:
        result = await session.execute(
            select(FollowupDecisionLog)
            .where(FollowupDecisionLog.lead_id == lead_id)
            .order_by(desc(FollowupDecisionLog.evaluated_at))
            .limit(limit)
        )
        return list(result.scalars().all())
