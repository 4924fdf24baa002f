"""
Follow-up Decision
Composes score, justification, escalation arc, hard limits, session state and
disengagement into one gated, auditable decision.

Guards run in priority order; the first one that rejects ends the evaluation.
Every rejection still carries all intermediate results so callers can audit why.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Sequence, Tuple

import structlog

from .analysis.disengagement import detect_disengagement_signals
from .analysis.justification import check_justification_conditions
from .analysis.scoring import ACCEPTABLE_FROM, WAIT_BELOW, compute_spam_tolerance_score
from .analysis.session import detect_session_state
from .analysis.signals import classify_spam_signal
from .domain.models import (
    ArcPosition, ConversationMessage, DisengagementSignals, EscalationArc,
    FollowupSettings, HardLimitCheck, LeadContext, ScoreInterpretation, SessionState,
    SpamJustification, SpamLogicDecision, SpamToleranceScore, TimingRelaxation
)
from .phrases import PhraseBook, get_phrase_book
from .policy.escalation import get_escalation_arc
from .policy.hard_limits import check_hard_limits
from .policy.timing import get_timing_relaxation
from .utils.helpers import utc_now

logger = structlog.get_logger("followup.decision")

LIVE_SESSION_SCORE_FLOOR = 70
LIVE_SESSION_MIN_JUSTIFICATIONS = 2


@dataclass(frozen=True)
class DecisionInputs:
    """Everything computed once per evaluation, shared by all guards"""
    lead: LeadContext
    score: SpamToleranceScore
    justification: SpamJustification
    arc: EscalationArc
    hard_limits: HardLimitCheck
    disengagement: DisengagementSignals
    timing_relaxation: TimingRelaxation
    session_state: SessionState


# A rejection is (reasoning, internal thought)
Rejection = Tuple[str, str]


@dataclass(frozen=True)
class DecisionGuard:
    name: str
    check: Callable[[DecisionInputs], Optional[Rejection]]


def passes_regret_test(
    score: SpamToleranceScore,
    justification: SpamJustification,
    arc: EscalationArc,
) -> bool:
    """Would losing this opportunity feel worse than annoying them?"""
    if score.total >= ACCEPTABLE_FROM:
        return True

    if justification.active_count == 0:
        return False

    # Final try gets the benefit of the doubt regardless of score
    if arc.position == ArcPosition.FINAL_TRY:
        return True

    if WAIT_BELOW <= score.total < ACCEPTABLE_FROM:
        return justification.active_count >= 2

    return justification.active_count >= 3


def _hard_limit_guard(inputs: DecisionInputs) -> Optional[Rejection]:
    if not inputs.hard_limits.blocked:
        return None
    reason = inputs.hard_limits.reason
    return (
        f"Blocked by hard limit: {reason}",
        f"Even if I really want to send this, {reason}. That's a line I won't cross.",
    )


def _disengagement_guard(inputs: DecisionInputs) -> Optional[Rejection]:
    if not inputs.disengagement.should_stop:
        return None
    return (
        "Lead is disengaging - stopping to prevent relationship damage",
        "They're showing signs of disengaging. Pushing more won't help, it will just damage the relationship.",
    )


def _escalation_arc_guard(inputs: DecisionInputs) -> Optional[Rejection]:
    if inputs.arc.can_send:
        return None
    return (
        "Escalation arc complete (position 5) - no more follow-ups",
        "I've already tried 4 times without a response. It's time to stop and respect their silence.",
    )


def _live_session_guard(inputs: DecisionInputs) -> Optional[Rejection]:
    session = inputs.session_state
    if not session.in_live_session:
        return None
    if inputs.score.total >= LIVE_SESSION_SCORE_FLOOR:
        return None
    if inputs.justification.active_count >= LIVE_SESSION_MIN_JUSTIFICATIONS:
        return None
    minutes = session.minutes_since_activity
    return (
        f"In live session ({minutes}min ago) - waiting for session break",
        f"It's only been {minutes} minutes. I should wait for a natural break before following up.",
    )


def _low_score_guard(inputs: DecisionInputs) -> Optional[Rejection]:
    if inputs.score.interpretation != ScoreInterpretation.WAIT:
        return None
    if inputs.justification.active_count != 0:
        return None
    return (
        f"Score too low ({inputs.score.total}) with no justifying conditions",
        "The expected value doesn't justify the annoyance cost right now. Better to wait.",
    )


def _regret_test_guard(inputs: DecisionInputs) -> Optional[Rejection]:
    if inputs.score.interpretation != ScoreInterpretation.CAREFUL:
        return None
    if passes_regret_test(inputs.score, inputs.justification, inputs.arc):
        return None
    return (
        "Borderline score - regret test failed",
        "It's borderline. Would I regret not sending this? Probably not. I'll wait.",
    )


DECISION_GUARDS = (
    DecisionGuard("hard_limit", _hard_limit_guard),
    DecisionGuard("disengagement", _disengagement_guard),
    DecisionGuard("escalation_arc", _escalation_arc_guard),
    DecisionGuard("live_session", _live_session_guard),
    DecisionGuard("low_score", _low_score_guard),
    DecisionGuard("regret_test", _regret_test_guard),
)


def build_follow_up_reasoning(
    score: SpamToleranceScore,
    justification: SpamJustification,
    arc: EscalationArc,
    timing: TimingRelaxation,
) -> str:
    parts = [
        f"Score: {score.total}/100 ({score.interpretation.value})",
        f"Arc: {int(arc.position)}/5 ({arc.description})",
        f"Justifications: {justification.active_count}/4",
        f"Timing: {timing.description}",
    ]
    if justification.reasons:
        parts.append(f"Why: {justification.reasons[0]}")
    return " | ".join(parts)


def build_internal_thought(
    score: SpamToleranceScore,
    justification: SpamJustification,
    arc: EscalationArc,
    session: SessionState,
) -> str:
    """Narrative of the decision, framed as intent rather than anxiety"""
    parts = []

    if score.total >= 70:
        parts.append("Yes, this might annoy them.")
        parts.append("But the cost of silence is higher than the cost of interruption.")
    elif score.total >= 50:
        parts.append("This is a judgment call.")
        parts.append("The potential value outweighs the small risk of interruption.")
    else:
        parts.append("I'm being careful here.")
        parts.append("But there's enough justification to proceed.")

    parts.append("Messenger tolerates some noise.")

    if session.session_break_occurred:
        if session.minutes_since_activity is None:
            parts.append("There's no recent activity, so it's a clean time to reach out.")
        else:
            parts.append(f"It's been {session.minutes_since_activity} minutes, a good time to check in.")

    if arc.position >= ArcPosition.URGENT_NUDGE:
        parts.append(f"This is attempt {int(arc.position)}, so I'll keep it brief and valuable.")

    if justification.active_count >= 2:
        parts.append("Multiple factors justify reaching out:")
        parts.append("; ".join(justification.reasons[:2]))

    parts.append("I'll send, but I'll keep it clean and brief.")

    return " ".join(parts)


def make_spam_logic_decision(
    lead: LeadContext,
    history: Sequence[ConversationMessage],
    settings: FollowupSettings,
    proposed_message: Optional[str] = None,
    now: Optional[datetime] = None,
    tz_name: Optional[str] = None,
    phrases: Optional[PhraseBook] = None,
) -> SpamLogicDecision:
    """
    Decide whether a follow-up may be sent to this lead right now

    Args:
        lead: Lead snapshot
        history: Conversation, oldest first
        settings: Aggressiveness dial
        proposed_message: Candidate outgoing text, checked for guilt language
        now: Evaluation instant; identical inputs give identical decisions
        tz_name: Timezone for the late-night limit
        phrases: Phrase lists; defaults to the configured phrase book

    Returns:
        Fully populated decision, positive or negative
    """
    now = now or utc_now()
    phrases = phrases or get_phrase_book()
    history = list(history)

    score = compute_spam_tolerance_score(lead, history, settings, now=now, phrases=phrases)
    inputs = DecisionInputs(
        lead=lead,
        score=score,
        justification=check_justification_conditions(lead, history, phrases),
        arc=get_escalation_arc(lead.escalation_arc_position),
        hard_limits=check_hard_limits(lead, now, proposed_message, tz_name=tz_name, phrases=phrases),
        disengagement=detect_disengagement_signals(lead, history, phrases),
        timing_relaxation=get_timing_relaxation(score.total),
        session_state=detect_session_state(lead.last_message_at, lead.last_ai_followup_at, now),
    )
    message_signal = classify_spam_signal(proposed_message, phrases) if proposed_message else None

    def _decision(should_follow_up, regret_passed, reasoning, thought, blocked_by=None):
        return SpamLogicDecision(
            should_follow_up=should_follow_up,
            score=inputs.score,
            justification=inputs.justification,
            arc=inputs.arc,
            hard_limits=inputs.hard_limits,
            disengagement=inputs.disengagement,
            regret_test_passed=regret_passed,
            reasoning=reasoning,
            timing_relaxation=inputs.timing_relaxation,
            session_state=inputs.session_state,
            internal_thought=thought,
            blocked_by=blocked_by,
            evaluated_at=now,
            message_signal=message_signal,
        )

    for guard in DECISION_GUARDS:
        rejection = guard.check(inputs)
        if rejection is not None:
            reasoning, thought = rejection
            logger.info(
                "Follow-up rejected",
                lead_id=lead.id,
                guard=guard.name,
                score=score.total,
                reasoning=reasoning
            )
            return _decision(False, False, reasoning, thought, blocked_by=guard.name)

    regret_passed = passes_regret_test(inputs.score, inputs.justification, inputs.arc)
    reasoning = build_follow_up_reasoning(
        inputs.score, inputs.justification, inputs.arc, inputs.timing_relaxation
    )
    thought = build_internal_thought(
        inputs.score, inputs.justification, inputs.arc, inputs.session_state
    )

    logger.info(
        "Follow-up approved",
        lead_id=lead.id,
        score=score.total,
        arc_position=int(inputs.arc.position),
        justifications=inputs.justification.active_count
    )
    return _decision(True, regret_passed, reasoning, thought)
