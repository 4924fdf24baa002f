"""
Spam Tolerance Scoring
Composite 0-100 measure of how acceptable a proactive follow-up is right now

Each factor is an independent rule with its own cap; the total is the capped sum
scaled by the aggressiveness dial.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional, Sequence

from ..domain.models import (
    ConversationMessage, FollowupSettings, LeadContext, ScoreBreakdown,
    ScoreInterpretation, SpamToleranceScore
)
from ..phrases import PhraseBook, get_phrase_book, contains_any, find_phrases
from ..utils.helpers import clamp, hours_since, round_half_up, utc_now

# Interpretation tiers
WAIT_BELOW = 30
ACCEPTABLE_FROM = 60

# Aggressiveness 5 is neutral; each step moves the total by 4%
NEUTRAL_AGGRESSIVENESS = 5
AGGRESSIVENESS_STEP = 0.04

CHANNEL_NORMS_SCORE = 12  # messenger tolerates noise

RuleFunc = Callable[[LeadContext, Sequence[ConversationMessage], datetime, PhraseBook], int]


@dataclass(frozen=True)
class ScoringRule:
    """One factor of the spam tolerance score"""
    name: str
    cap: int
    compute: RuleFunc

    def apply(
        self,
        lead: LeadContext,
        history: Sequence[ConversationMessage],
        now: datetime,
        phrases: PhraseBook,
    ) -> int:
        return clamp(self.compute(lead, history, now, phrases), 0, self.cap)


def _user_messages(history: Sequence[ConversationMessage]):
    return [m for m in history if m.is_user]


def _last_user_message(history: Sequence[ConversationMessage]) -> Optional[ConversationMessage]:
    for message in reversed(history):
        if message.is_user:
            return message
    return None


def stage_matches(stage: Optional[str], stages: Sequence[str]) -> bool:
    """Stage label contains any of the given stage names (case-insensitive)"""
    return contains_any(stage, stages)


def stakes_score(lead, history, now, phrases) -> int:
    """Invested, qualified, recently active leads are worth more"""
    score = 5

    if lead.message_count >= 10:
        score += 8
    elif lead.message_count >= 5:
        score += 5
    elif lead.message_count >= 2:
        score += 2

    if stage_matches(lead.pipeline_stage, phrases.high_value_stages):
        score += 7

    hours = hours_since(lead.last_message_at, now)
    if hours is not None:
        if hours < 4:
            score += 5
        elif hours < 24:
            score += 3

    return score


def warmth_score(lead, history, now, phrases) -> int:
    score = 5

    if len(history) >= 10:
        score += 8
    elif len(history) >= 5:
        score += 5
    elif len(history) >= 2:
        score += 3

    user_count = len(_user_messages(history))
    if user_count >= 5:
        score += 4
    elif user_count >= 2:
        score += 2

    if lead.name:
        score += 3

    return score


def channel_norms_score(lead, history, now, phrases) -> int:
    return CHANNEL_NORMS_SCORE


def time_pressure_score(lead, history, now, phrases) -> int:
    """Urgency keywords in the last 5 messages, plus staleness past 48h"""
    score = 3

    recent_content = " ".join(m.content for m in history[-5:])
    matched = find_phrases(recent_content, phrases.urgency_keywords)
    score += min(8, len(matched) * 3)

    hours = hours_since(lead.last_message_at, now)
    if hours is not None and hours > 48:
        score += 4

    return score


def engagement_score(lead, history, now, phrases) -> int:
    score = 2

    user_messages = _user_messages(history)
    if user_messages:
        score += 5

    questions = sum(1 for m in user_messages if "?" in m.content)
    score += min(5, questions * 2)

    if lead.consecutive_followups_no_response == 0:
        score += 3

    return score


def silence_ambiguity_score(lead, history, now, phrases) -> int:
    """Silence without a clear "no" is ambiguous; an open question makes it more so"""
    score = 5

    last_user = _last_user_message(history)
    if last_user is None:
        return score

    if contains_any(last_user.content, phrases.disengagement):
        return 0

    if "?" in last_user.content:
        score += 5

    return score


SCORING_RULES = (
    ScoringRule("stakes", 25, stakes_score),
    ScoringRule("warmth", 20, warmth_score),
    ScoringRule("channel_norms", 15, channel_norms_score),
    ScoringRule("time_pressure", 15, time_pressure_score),
    ScoringRule("engagement", 15, engagement_score),
    ScoringRule("silence_ambiguity", 10, silence_ambiguity_score),
)


def aggressiveness_modifier(aggressiveness: int) -> float:
    """1.0 at 5, 0.84 at 1, 1.2 at 10"""
    return 1 + (aggressiveness - NEUTRAL_AGGRESSIVENESS) * AGGRESSIVENESS_STEP


def interpret_score(total: int) -> ScoreInterpretation:
    if total < WAIT_BELOW:
        return ScoreInterpretation.WAIT
    if total < ACCEPTABLE_FROM:
        return ScoreInterpretation.CAREFUL
    return ScoreInterpretation.ACCEPTABLE


def compute_spam_tolerance_score(
    lead: LeadContext,
    history: Sequence[ConversationMessage],
    settings: FollowupSettings,
    now: Optional[datetime] = None,
    phrases: Optional[PhraseBook] = None,
) -> SpamToleranceScore:
    """Higher score = more acceptable to follow up"""
    now = now or utc_now()
    phrases = phrases or get_phrase_book()

    parts: Dict[str, int] = {
        rule.name: rule.apply(lead, history, now, phrases) for rule in SCORING_RULES
    }
    breakdown = ScoreBreakdown(**parts)

    scaled = breakdown.total() * aggressiveness_modifier(settings.aggressiveness)
    total = clamp(round_half_up(scaled), 0, 100)

    return SpamToleranceScore(
        total=total,
        breakdown=breakdown,
        interpretation=interpret_score(total),
    )
