"""
Caller-side services built on the decision engine

Import directly:
    from followup_engine.services.followup_service import FollowupEvaluationService
"""
