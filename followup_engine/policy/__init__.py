"""
Sending policy: escalation arc, hard limits, timing relaxation
"""
