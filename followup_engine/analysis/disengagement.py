"""
Disengagement Detector
Heuristics over the conversation tail that suggest the lead is withdrawing
"""

from typing import List, Optional, Sequence

from ..domain.models import ConversationMessage, DisengagementSignals, LeadContext
from ..phrases import PhraseBook, get_phrase_book, contains_any

MAX_NO_RESPONSE_COUNT = 3
RECENT_REPLIES = 3
SHORTER_REPLY_RATIO = 0.5
CONFIDENCE_PER_SIGNAL = 25


def _user_messages(history: Sequence[ConversationMessage]) -> List[ConversationMessage]:
    return [m for m in history if m.is_user]


def detect_shorter_replies(history: Sequence[ConversationMessage]) -> bool:
    """Last 3 user replies average under half the length of the earlier ones"""
    user_messages = _user_messages(history)
    if len(user_messages) < RECENT_REPLIES:
        return False

    recent = user_messages[-RECENT_REPLIES:]
    older = user_messages[:-RECENT_REPLIES]
    if not older:
        return False

    avg_recent = sum(len(m.content) for m in recent) / len(recent)
    avg_older = sum(len(m.content) for m in older) / len(older)

    return avg_recent < avg_older * SHORTER_REPLY_RATIO


def detect_slower_replies(history: Sequence[ConversationMessage]) -> bool:
    # TODO: compare gaps between assistant messages and the following user reply once
    # history timestamps are reliably populated
    return False


def detect_explicit_disengage(
    history: Sequence[ConversationMessage],
    phrases: Optional[PhraseBook] = None,
) -> bool:
    """Any of the last 3 user messages contains a disengagement phrase"""
    phrases = phrases or get_phrase_book()
    recent = _user_messages(history)[-RECENT_REPLIES:]
    return any(contains_any(m.content, phrases.disengagement) for m in recent)


def detect_disengagement_signals(
    lead: LeadContext,
    history: Sequence[ConversationMessage],
    phrases: Optional[PhraseBook] = None,
) -> DisengagementSignals:
    read_no_reply = False  # no read receipts on this channel
    shorter = detect_shorter_replies(history)
    slower = detect_slower_replies(history)
    explicit = detect_explicit_disengage(history, phrases)
    multiple_no_response = lead.consecutive_followups_no_response >= MAX_NO_RESPONSE_COUNT

    active = sum([read_no_reply, shorter, slower, explicit, multiple_no_response])

    return DisengagementSignals(
        read_no_reply=read_no_reply,
        shorter_replies=shorter,
        slower_replies=slower,
        explicit_disengage=explicit,
        multiple_no_response=multiple_no_response,
        should_stop=active >= 2 or explicit or multiple_no_response,
        confidence=min(100, active * CONFIDENCE_PER_SIGNAL),
    )
