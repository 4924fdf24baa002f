"""
Tests for lead store persistence
"""

from datetime import timedelta

import pytest

from followup_engine.database.crud import FollowupDecisionCRUD, LeadCRUD
from followup_engine.decision import make_spam_logic_decision
from followup_engine.domain.models import ArcPosition
from followup_engine.exceptions import LeadNotFoundError, StaleEscalationStateError
from followup_engine.phrases import DEFAULT_PHRASES

from factories import user


async def _create(db_manager, sender_id="psid-1", **kwargs):
    async with db_manager.get_session() as session:
        lead = await LeadCRUD.create_lead(session, sender_id, **kwargs)
        return lead.id


class TestLeadCRUD:

    @pytest.mark.asyncio
    async def test_create_and_snapshot(self, db_manager, now):
        lead_id = await _create(
            db_manager, name="Jordan", pipeline_stage="qualified",
            message_count=4, last_message_at=now - timedelta(hours=2),
        )

        async with db_manager.get_session() as session:
            context = await LeadCRUD.get_lead_context(session, lead_id)

        assert context.id == lead_id
        assert context.name == "Jordan"
        assert context.message_count == 4
        assert context.escalation_arc_position == 1
        assert context.consecutive_followups_no_response == 0

    @pytest.mark.asyncio
    async def test_out_of_range_position_clamped_on_create(self, db_manager):
        lead_id = await _create(db_manager, escalation_arc_position=9)

        async with db_manager.get_session() as session:
            state = await LeadCRUD.get_escalation_state(session, lead_id)

        assert state.position == ArcPosition.STOPPED

    @pytest.mark.asyncio
    async def test_missing_lead(self, db_manager):
        async with db_manager.get_session() as session:
            with pytest.raises(LeadNotFoundError):
                await LeadCRUD.get_lead_context(session, "missing")

    @pytest.mark.asyncio
    async def test_leads_for_evaluation(self, db_manager, now):
        stale = now - timedelta(hours=3)
        ready_old = await _create(db_manager, "a", message_count=4, last_message_at=now - timedelta(hours=8))
        ready_new = await _create(db_manager, "b", message_count=4, last_message_at=stale,
                                  last_ai_followup_at=now - timedelta(hours=6))
        await _create(db_manager, "fresh", message_count=4, last_message_at=now - timedelta(minutes=20))
        await _create(db_manager, "cooldown", message_count=4, last_message_at=stale,
                      last_ai_followup_at=now - timedelta(hours=1))
        await _create(db_manager, "single", message_count=1, last_message_at=stale)
        await _create(db_manager, "stopped", message_count=4, last_message_at=stale, escalation_arc_position=5)
        await _create(db_manager, "silent", message_count=4)

        async with db_manager.get_session() as session:
            leads = await LeadCRUD.get_leads_for_evaluation(
                session, stale_threshold_hours=1, cooldown_hours=4, now=now
            )

        assert [lead.id for lead in leads] == [ready_old, ready_new]

    @pytest.mark.asyncio
    async def test_leads_for_evaluation_limit(self, db_manager, now):
        for i in range(3):
            await _create(db_manager, f"psid-{i}", message_count=3,
                          last_message_at=now - timedelta(hours=5 + i))

        async with db_manager.get_session() as session:
            leads = await LeadCRUD.get_leads_for_evaluation(
                session, stale_threshold_hours=1, cooldown_hours=4, limit=2, now=now
            )

        assert len(leads) == 2


class TestEscalationPersistence:

    @pytest.mark.asyncio
    async def test_advance_twice(self, db_manager, now):
        lead_id = await _create(db_manager)

        async with db_manager.get_session() as session:
            await LeadCRUD.advance_escalation_arc(session, lead_id, now=now)
        async with db_manager.get_session() as session:
            await LeadCRUD.advance_escalation_arc(session, lead_id, now=now + timedelta(hours=1))
        async with db_manager.get_session() as session:
            state = await LeadCRUD.get_escalation_state(session, lead_id)

        assert state.position == ArcPosition.URGENT_NUDGE
        assert state.consecutive_no_response == 2
        assert state.sequence_started_at == now

    @pytest.mark.asyncio
    async def test_advance_caps_at_stopped(self, db_manager, now):
        lead_id = await _create(db_manager)

        for _ in range(6):
            async with db_manager.get_session() as session:
                state = await LeadCRUD.advance_escalation_arc(session, lead_id, now=now)

        assert state.position == ArcPosition.STOPPED
        assert state.consecutive_no_response == 6

    @pytest.mark.asyncio
    async def test_stale_expected_position(self, db_manager, now):
        lead_id = await _create(db_manager)

        async with db_manager.get_session() as session:
            await LeadCRUD.advance_escalation_arc(session, lead_id, expected_position=1, now=now)

        with pytest.raises(StaleEscalationStateError) as exc_info:
            async with db_manager.get_session() as session:
                await LeadCRUD.advance_escalation_arc(session, lead_id, expected_position=1, now=now)

        assert exc_info.value.expected_position == 1
        assert exc_info.value.actual_position == 2

        async with db_manager.get_session() as session:
            state = await LeadCRUD.get_escalation_state(session, lead_id)
        assert state.position == ArcPosition.SHORTER
        assert state.consecutive_no_response == 1

    @pytest.mark.asyncio
    async def test_reset(self, db_manager, now):
        lead_id = await _create(db_manager)

        async with db_manager.get_session() as session:
            await LeadCRUD.advance_escalation_arc(session, lead_id, now=now)
        async with db_manager.get_session() as session:
            await LeadCRUD.update_disengagement_signals(session, lead_id, {"shorter_replies": True})
        async with db_manager.get_session() as session:
            await LeadCRUD.reset_escalation_arc(session, lead_id)
        async with db_manager.get_session() as session:
            state = await LeadCRUD.get_escalation_state(session, lead_id)

        assert state.position == ArcPosition.NORMAL
        assert state.consecutive_no_response == 0
        assert state.sequence_started_at is None
        assert state.disengagement_signals == {}

    @pytest.mark.asyncio
    async def test_reset_missing_lead(self, db_manager):
        with pytest.raises(LeadNotFoundError):
            async with db_manager.get_session() as session:
                await LeadCRUD.reset_escalation_arc(session, "missing")

    @pytest.mark.asyncio
    async def test_mark_inbound_message(self, db_manager, now):
        lead_id = await _create(db_manager, message_count=2)

        async with db_manager.get_session() as session:
            assert await LeadCRUD.mark_inbound_message(session, lead_id, now) is True
        async with db_manager.get_session() as session:
            context = await LeadCRUD.get_lead_context(session, lead_id)

        assert context.message_count == 3
        assert context.last_message_at.replace(tzinfo=None) == now.replace(tzinfo=None)


class TestDecisionLog:

    @pytest.mark.asyncio
    async def test_record_decision(self, db_manager, now, default_settings):
        lead_id = await _create(db_manager, message_count=1, last_message_at=now - timedelta(days=3))
        async with db_manager.get_session() as session:
            lead = await LeadCRUD.get_lead_context(session, lead_id)

        decision = make_spam_logic_decision(
            lead, [user("please remove me from this list")], default_settings,
            now=now, phrases=DEFAULT_PHRASES,
        )

        async with db_manager.get_session() as session:
            await FollowupDecisionCRUD.record_decision(session, lead_id, decision)
        async with db_manager.get_session() as session:
            records = await FollowupDecisionCRUD.get_recent_decisions(session, lead_id)

        assert len(records) == 1
        record = records[0]
        assert record.should_follow_up is False
        assert record.blocked_by == "regret_test"
        assert record.spam_tolerance_score == decision.score.total
        assert record.interpretation == "careful"
        assert record.justification_conditions == ["tolerant_channel"]
        assert record.escalation_position == 1
        assert record.details["reasoning"] == decision.reasoning
