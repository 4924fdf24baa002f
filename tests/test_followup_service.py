"""
Tests for the follow-up evaluation service
"""

from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from followup_engine.database.crud import FollowupDecisionCRUD, LeadCRUD
from followup_engine.domain.models import ArcPosition
from followup_engine.exceptions import EscalationPersistenceError, LeadNotFoundError
from followup_engine.phrases import DEFAULT_PHRASES
from followup_engine.services.followup_service import FollowupEvaluationService

from factories import user, assistant


def _locked(*args, **kwargs):
    raise OperationalError("UPDATE leads", {}, Exception("database is locked"))


@pytest.fixture
def service(db_manager, runtime_settings, engine_settings):
    return FollowupEvaluationService(
        db_manager,
        runtime_settings=runtime_settings,
        settings=engine_settings,
        phrases=DEFAULT_PHRASES,
    )


async def _create(db_manager, sender_id="psid-1", **kwargs):
    async with db_manager.get_session() as session:
        lead = await LeadCRUD.create_lead(session, sender_id, **kwargs)
        return lead.id


class TestEvaluation:

    @pytest.mark.asyncio
    async def test_evaluate_records_audit_row(self, service, db_manager, engaged_history, now):
        lead_id = await _create(
            db_manager, name="Jordan", pipeline_stage="qualified",
            message_count=10, last_message_at=now - timedelta(hours=2),
        )

        decision = await service.evaluate_lead(lead_id, engaged_history, now=now)

        assert decision.should_follow_up is True
        async with db_manager.get_session() as session:
            records = await FollowupDecisionCRUD.get_recent_decisions(session, lead_id)
        assert len(records) == 1
        assert records[0].should_follow_up is True
        assert records[0].spam_tolerance_score == decision.score.total

    @pytest.mark.asyncio
    async def test_runtime_aggressiveness_applied(self, service, runtime_settings, db_manager, now):
        lead_id = await _create(db_manager)

        baseline = await service.evaluate_lead(lead_id, [], now=now)
        await runtime_settings.set_aggressiveness(10)
        boosted = await service.evaluate_lead(lead_id, [], now=now)

        assert baseline.score.total == 35
        assert boosted.score.total == 42

    @pytest.mark.asyncio
    async def test_missing_lead(self, service):
        with pytest.raises(LeadNotFoundError):
            await service.evaluate_lead("missing", [])

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_change_decision(self, service, db_manager, monkeypatch, now):
        lead_id = await _create(db_manager)
        monkeypatch.setattr(FollowupDecisionCRUD, "record_decision", _async(_locked))

        decision = await service.evaluate_lead(lead_id, [], now=now)

        assert decision.should_follow_up is True

    @pytest.mark.asyncio
    async def test_audit_integrity_error_does_not_change_decision(
        self, service, db_manager, monkeypatch, now
    ):
        lead_id = await _create(db_manager)

        async def lead_deleted(*args, **kwargs):
            raise IntegrityError("INSERT INTO followup_decisions", {}, Exception("FOREIGN KEY constraint failed"))

        monkeypatch.setattr(FollowupDecisionCRUD, "record_decision", lead_deleted)

        decision = await service.evaluate_lead(lead_id, [], now=now)

        assert decision.should_follow_up is True

    @pytest.mark.asyncio
    async def test_disengagement_record_saved(self, service, db_manager, now):
        lead_id = await _create(db_manager, consecutive_followups_no_response=3)

        await service.evaluate_lead(lead_id, [user("busy, maybe later")], now=now)

        async with db_manager.get_session() as session:
            context = await LeadCRUD.get_lead_context(session, lead_id)
        assert context.disengagement_signals["explicit_disengage"] is True
        assert context.disengagement_signals["multiple_no_response"] is True
        assert context.disengagement_signals["should_stop"] is True

    @pytest.mark.asyncio
    async def test_evaluate_pending_leads(self, service, db_manager, now):
        due = await _create(db_manager, "a", message_count=4, last_message_at=now - timedelta(hours=6))
        await _create(db_manager, "b", message_count=4, last_message_at=now - timedelta(minutes=10))
        loaded = []

        async def load_history(lead):
            loaded.append(lead.id)
            return [user("Is delivery included?"), assistant("Yes, within the city.")]

        results = await service.evaluate_pending_leads(load_history, now=now)

        assert loaded == [due]
        assert [lead_id for lead_id, _ in results] == [due]

    @pytest.mark.asyncio
    async def test_one_failing_lead_does_not_abort_cycle(self, service, db_manager, now):
        broken = await _create(db_manager, "a", message_count=4, last_message_at=now - timedelta(hours=8))
        healthy = await _create(db_manager, "b", message_count=4, last_message_at=now - timedelta(hours=6))

        async def load_history(lead):
            if lead.id == broken:
                raise ValueError("'system' is not a valid MessageRole")
            return [user("Is delivery included?")]

        results = await service.evaluate_pending_leads(load_history, now=now)

        assert [lead_id for lead_id, _ in results] == [healthy]
        async with db_manager.get_session() as session:
            assert await FollowupDecisionCRUD.get_recent_decisions(session, broken) == []
            assert len(await FollowupDecisionCRUD.get_recent_decisions(session, healthy)) == 1


class TestEscalationMutations:

    @pytest.mark.asyncio
    async def test_advance_and_reply(self, service, db_manager, now):
        lead_id = await _create(db_manager, message_count=3)

        first = await service.advance_escalation_arc(lead_id, expected_position=1, now=now)
        second = await service.advance_escalation_arc(lead_id, expected_position=2, now=now)

        assert first.position == ArcPosition.SHORTER
        assert second.position == ArcPosition.URGENT_NUDGE
        assert second.consecutive_no_response == 2

        state = await service.record_lead_reply(lead_id, received_at=now)

        assert state.position == ArcPosition.NORMAL
        async with db_manager.get_session() as session:
            context = await LeadCRUD.get_lead_context(session, lead_id)
        assert context.escalation_arc_position == 1
        assert context.consecutive_followups_no_response == 0
        assert context.message_count == 4

    @pytest.mark.asyncio
    async def test_record_followup_sent_starts_cooldown(self, service, db_manager, now):
        lead_id = await _create(db_manager, message_count=3)

        assert await service.record_followup_sent(lead_id, sent_at=now) is True

        decision = await service.evaluate_lead(lead_id, [], now=now + timedelta(minutes=1))
        assert decision.hard_limits.rapid_fire is True

    @pytest.mark.asyncio
    async def test_persistent_lock_raises_after_retries(self, service, db_manager, monkeypatch):
        lead_id = await _create(db_manager)
        calls = []

        async def locked_reset(session, lead_id):
            calls.append(lead_id)
            _locked()

        monkeypatch.setattr(LeadCRUD, "reset_escalation_arc", locked_reset)

        with pytest.raises(EscalationPersistenceError) as exc_info:
            await service.reset_escalation_arc(lead_id)

        assert exc_info.value.operation == "reset"
        # initial attempt plus persistence_max_retries
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_transient_lock_recovers(self, service, db_manager, monkeypatch):
        lead_id = await _create(db_manager)
        original = LeadCRUD.reset_escalation_arc
        calls = []

        async def flaky_reset(session, lead_id):
            calls.append(lead_id)
            if len(calls) == 1:
                _locked()
            return await original(session, lead_id)

        monkeypatch.setattr(LeadCRUD, "reset_escalation_arc", flaky_reset)

        state = await service.reset_escalation_arc(lead_id)

        assert state.position == ArcPosition.NORMAL
        assert len(calls) == 2


def _async(func):
    async def wrapper(*args, **kwargs):
        return func(*args, **kwargs)
    return wrapper
