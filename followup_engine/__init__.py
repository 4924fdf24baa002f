"""
Follow-up decision engine
Decides whether an automated re-engagement message may be sent to a lead right now

Import the public entry points directly:
    from followup_engine.decision import make_spam_logic_decision
    from followup_engine.services.followup_service import FollowupEvaluationService
"""

__version__ = "1.0.0"
