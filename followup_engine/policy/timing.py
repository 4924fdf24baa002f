"""
Timing Relaxation
Higher spam tolerance allows shorter intervals; hard limits still apply on top
"""

from ..domain.models import TimingRelaxation

# (score below, relaxation); the last tier has no upper bound
TIMING_TIERS = (
    (30, TimingRelaxation(
        can_send_same_day=False,
        min_interval_minutes=60,
        ignores_fresh_day=False,
        session_break_minutes=60,
        description="Conservative: Standard timing rules apply",
    )),
    (60, TimingRelaxation(
        can_send_same_day=True,
        min_interval_minutes=45,
        ignores_fresh_day=False,
        session_break_minutes=45,
        description="Moderate: Can send same day, slightly shorter intervals",
    )),
    (80, TimingRelaxation(
        can_send_same_day=True,
        min_interval_minutes=30,
        ignores_fresh_day=True,
        session_break_minutes=30,
        description="Relaxed: Shorter intervals allowed, can reuse time windows",
    )),
)

MAX_RELAXATION = TimingRelaxation(
    can_send_same_day=True,
    min_interval_minutes=15,
    ignores_fresh_day=True,
    session_break_minutes=15,
    description="Aggressive: Minimal timing restrictions (hard limits still apply)",
)


def get_timing_relaxation(score: int) -> TimingRelaxation:
    for upper, relaxation in TIMING_TIERS:
        if score < upper:
            return relaxation
    return MAX_RELAXATION
