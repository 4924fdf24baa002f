"""
Justification Evaluator
Four independent conditions that argue in favour of proactive contact
"""

from typing import Optional, Sequence

from ..domain.models import (
    ConversationMessage, JustificationConditions, LeadContext, SpamJustification
)
from ..phrases import PhraseBook, get_phrase_book, contains_any

HIGH_STAKES_MESSAGE_COUNT = 5
ASYMMETRIC_VALUE_MESSAGE_COUNT = 3

REASONS = {
    "high_stakes": "Stakes are high - opportunity worth pursuing",
    "ambiguous_silence": "Silence is ambiguous - no clear rejection",
    "tolerant_channel": "Messenger channel tolerates multiple messages",
    "asymmetric_value": "Value to them is high, interruption cost is low",
}


def check_high_stakes(lead: LeadContext, phrases: PhraseBook) -> bool:
    if lead.message_count >= HIGH_STAKES_MESSAGE_COUNT:
        return True
    return contains_any(lead.pipeline_stage, phrases.justifying_stages)


def check_ambiguous_silence(history: Sequence[ConversationMessage], phrases: PhraseBook) -> bool:
    """False only when the last user message is an explicit "no" """
    last_user = next((m for m in reversed(history) if m.is_user), None)
    if last_user is None:
        return True
    return not contains_any(last_user.content, phrases.explicit_no)


def check_asymmetric_value(lead: LeadContext, history: Sequence[ConversationMessage]) -> bool:
    """They asked something we can answer, or they have engaged enough"""
    if any(m.is_user and "?" in m.content for m in history):
        return True
    return lead.message_count >= ASYMMETRIC_VALUE_MESSAGE_COUNT


def check_justification_conditions(
    lead: LeadContext,
    history: Sequence[ConversationMessage],
    phrases: Optional[PhraseBook] = None,
) -> SpamJustification:
    phrases = phrases or get_phrase_book()

    conditions = JustificationConditions(
        high_stakes=check_high_stakes(lead, phrases),
        ambiguous_silence=check_ambiguous_silence(history, phrases),
        tolerant_channel=True,
        asymmetric_value=check_asymmetric_value(lead, history),
    )
    active = conditions.active_names()

    return SpamJustification(
        conditions=conditions,
        active_count=len(active),
        reasons=[REASONS[name] for name in active],
    )
