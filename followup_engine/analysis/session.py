"""
Session State Detector
On messenger channels a follow-up is easier to accept after a natural break in the conversation
"""

from datetime import datetime
from typing import Optional

from ..domain.models import SessionState
from ..utils.helpers import minutes_since, round_half_up

SESSION_BREAK_MINUTES = 35


def detect_session_state(
    last_message_at: Optional[datetime],
    last_ai_followup_at: Optional[datetime],
    now: datetime,
) -> SessionState:
    """Live session if the latest activity (inbound or follow-up) is under 35 minutes old"""
    elapsed = [
        m for m in (minutes_since(last_message_at, now), minutes_since(last_ai_followup_at, now))
        if m is not None
    ]

    if not elapsed:
        # No prior activity: clean slate
        return SessionState(
            in_live_session=False,
            minutes_since_activity=None,
            session_break_occurred=True,
        )

    minutes = min(elapsed)
    in_live_session = minutes < SESSION_BREAK_MINUTES

    return SessionState(
        in_live_session=in_live_session,
        minutes_since_activity=round_half_up(max(minutes, 0.0)),
        session_break_occurred=not in_live_session,
    )
