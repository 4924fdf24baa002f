"""
Follow-up evaluation service
Runs one evaluation cycle per lead: snapshot -> decision -> audit row,
and applies the escalation mutations the caller requests afterwards
"""

from dataclasses import asdict
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from ..config import Settings, get_settings
from ..database.crud import FollowupDecisionCRUD, LeadCRUD
from ..database.init_db import DatabaseManager
from ..decision import make_spam_logic_decision
from ..domain.models import ConversationMessage, LeadContext, SpamLogicDecision
from ..exceptions import EscalationPersistenceError
from ..phrases import PhraseBook, get_phrase_book
from ..policy.escalation import EscalationState
from ..utils.helpers import retry_async, utc_now
from ..utils.runtime_settings import RuntimeSettingsManager

logger = structlog.get_logger("followup.service")

HistoryLoader = Callable[[LeadContext], Awaitable[Sequence[ConversationMessage]]]


class FollowupEvaluationService:
    """Evaluates leads and keeps their escalation state in the lead store"""

    def __init__(
        self,
        db_manager: DatabaseManager,
        runtime_settings: Optional[RuntimeSettingsManager] = None,
        settings: Optional[Settings] = None,
        phrases: Optional[PhraseBook] = None,
    ):
        self.db_manager = db_manager
        self.settings = settings or get_settings()
        self.runtime_settings = runtime_settings or RuntimeSettingsManager(
            storage_path=self.settings.runtime_settings_path,
            default_aggressiveness=self.settings.default_aggressiveness,
        )
        self.phrases = phrases or get_phrase_book()

    async def evaluate_lead(
        self,
        lead_id: str,
        history: Sequence[ConversationMessage],
        proposed_message: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SpamLogicDecision:
        """
        Decide whether a follow-up may go to this lead now

        Raises:
            LeadNotFoundError: lead does not exist
        """
        async with self.db_manager.get_session() as session:
            lead = await LeadCRUD.get_lead_context(session, lead_id)

        return await self._evaluate(lead, history, proposed_message, now)

    async def _evaluate(
        self,
        lead: LeadContext,
        history: Sequence[ConversationMessage],
        proposed_message: Optional[str],
        now: Optional[datetime],
    ) -> SpamLogicDecision:
        followup_settings = await self.runtime_settings.get_followup_settings()

        decision = make_spam_logic_decision(
            lead,
            history,
            followup_settings,
            proposed_message=proposed_message,
            now=now or utc_now(),
            tz_name=self.settings.quiet_hours_timezone,
            phrases=self.phrases,
        )

        await self._record_decision(lead.id, decision, proposed_message)
        return decision

    async def _record_decision(
        self,
        lead_id: str,
        decision: SpamLogicDecision,
        proposed_message: Optional[str]
    ) -> None:
        # The audit trail must never change the decision already made
        try:
            async with self.db_manager.get_session() as session:
                await FollowupDecisionCRUD.record_decision(session, lead_id, decision, proposed_message)
                await LeadCRUD.update_disengagement_signals(
                    session, lead_id, asdict(decision.disengagement)
                )
        except SQLAlchemyError as e:
            logger.error("Failed to record follow-up decision", lead_id=lead_id, error=str(e))

    async def evaluate_pending_leads(
        self,
        history_loader: HistoryLoader,
        limit: int = 20,
        now: Optional[datetime] = None,
    ) -> List[Tuple[str, SpamLogicDecision]]:
        """Evaluate every lead with a stale conversation that is out of cooldown"""
        now = now or utc_now()

        async with self.db_manager.get_session() as session:
            leads = await LeadCRUD.get_leads_for_evaluation(
                session,
                stale_threshold_hours=self.settings.stale_threshold_hours,
                cooldown_hours=self.settings.cooldown_hours,
                limit=limit,
                now=now,
            )
            contexts = [lead.to_context() for lead in leads]

        logger.info("Evaluating pending leads", count=len(contexts))

        results = []
        for lead in contexts:
            try:
                history = await history_loader(lead)
                decision = await self._evaluate(lead, history, None, now)
            except Exception as e:
                logger.error("Error evaluating lead", lead_id=lead.id, error=str(e))
                continue
            results.append((lead.id, decision))

        approved = sum(1 for _, d in results if d.should_follow_up)
        logger.info("Evaluation cycle complete", evaluated=len(results), approved=approved)
        return results

    async def _persist(self, lead_id: str, operation: str, func):
        """Run an escalation mutation with retries; sustained failure is an operational alert"""
        async def _attempt():
            async with self.db_manager.get_session() as session:
                return await func(session)

        try:
            return await retry_async(
                _attempt,
                max_retries=self.settings.persistence_max_retries,
                delay=self.settings.persistence_retry_delay,
                exceptions=(OperationalError,),
            )
        except OperationalError as e:
            logger.error(
                f"Escalation {operation} failed after retries",
                lead_id=lead_id,
                error=str(e),
                alert=True
            )
            raise EscalationPersistenceError(lead_id, operation, e) from e

    async def advance_escalation_arc(
        self,
        lead_id: str,
        expected_position: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> EscalationState:
        """
        A follow-up was sent and went unanswered

        Pass the arc position from the decision as expected_position so a
        concurrent cycle cannot advance the same lead twice.
        """
        state = await self._persist(
            lead_id,
            "advance",
            lambda session: LeadCRUD.advance_escalation_arc(
                session, lead_id, expected_position=expected_position, now=now
            ),
        )
        logger.info(
            "Escalation arc advanced",
            lead_id=lead_id,
            position=int(state.position),
            no_response=state.consecutive_no_response
        )
        return state

    async def reset_escalation_arc(self, lead_id: str) -> EscalationState:
        """The lead replied"""
        state = await self._persist(
            lead_id,
            "reset",
            lambda session: LeadCRUD.reset_escalation_arc(session, lead_id),
        )
        logger.info("Escalation arc reset", lead_id=lead_id)
        return state

    async def record_followup_sent(self, lead_id: str, sent_at: Optional[datetime] = None) -> bool:
        return await self._persist(
            lead_id,
            "mark_sent",
            lambda session: LeadCRUD.mark_followup_sent(session, lead_id, sent_at),
        )

    async def record_lead_reply(self, lead_id: str, received_at: Optional[datetime] = None) -> EscalationState:
        """Inbound message observed: bump activity and reset the arc"""
        await self._persist(
            lead_id,
            "mark_inbound",
            lambda session: LeadCRUD.mark_inbound_message(session, lead_id, received_at),
        )
        return await self.reset_escalation_arc(lead_id)
