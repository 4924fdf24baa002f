"""
Lead and message analysis: scoring, justification, disengagement, session state, spam signals

Import directly:
    from followup_engine.analysis.scoring import compute_spam_tolerance_score
    from followup_engine.analysis.signals import classify_spam_signal
"""
