"""
Hard Limits
Absolute constraints that block sending regardless of score, justification or arc
"""

from datetime import datetime
from typing import Optional

from ..domain.models import HardLimitCheck, LeadContext
from ..phrases import PhraseBook, contains_any, get_phrase_book
from ..utils.helpers import local_hour, minutes_since

RAPID_FIRE_MINUTES = 3
LATE_NIGHT_START = 22  # 10 PM
LATE_NIGHT_END = 7     # 7 AM
SESSION_LIMIT = 3

# Priority order: only the first active limit is reported
LIMIT_REASONS = (
    ("rapid_fire", f"Too soon since last message (< {RAPID_FIRE_MINUTES} min)"),
    ("late_night", "Late night hours (10PM - 7AM)"),
    ("session_limit", f"Session limit reached ({SESSION_LIMIT} messages without response)"),
    ("guilt_language", "Message contains guilt-inducing language"),
)


def check_rapid_fire(last_followup_at: Optional[datetime], now: datetime) -> bool:
    minutes = minutes_since(last_followup_at, now)
    return minutes is not None and minutes < RAPID_FIRE_MINUTES


def check_late_night(now: datetime, tz_name: Optional[str] = None) -> bool:
    hour = local_hour(now, tz_name)
    return hour >= LATE_NIGHT_START or hour < LATE_NIGHT_END


def check_guilt_language(message: Optional[str], phrases: Optional[PhraseBook] = None) -> bool:
    return contains_any(message, (phrases or get_phrase_book()).guilt_language)


def check_hard_limits(
    lead: LeadContext,
    now: datetime,
    proposed_message: Optional[str] = None,
    tz_name: Optional[str] = None,
    phrases: Optional[PhraseBook] = None,
) -> HardLimitCheck:
    limits = {
        "rapid_fire": check_rapid_fire(lead.last_ai_followup_at, now),
        "late_night": check_late_night(now, tz_name),
        "session_limit": lead.consecutive_followups_no_response >= SESSION_LIMIT,
        "guilt_language": check_guilt_language(proposed_message, phrases),
    }

    reason = next((text for name, text in LIMIT_REASONS if limits[name]), None)

    return HardLimitCheck(
        blocked=any(limits.values()),
        reason=reason,
        **limits,
    )
