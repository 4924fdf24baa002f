"""
Exceptions raised by the follow-up engine persistence layer
Decision functions never raise on missing data
"""

from typing import Optional


class FollowupEngineError(Exception):
    """Base error for the follow-up engine"""


class LeadNotFoundError(FollowupEngineError):
    """Lead does not exist in the lead store"""

    def __init__(self, lead_id: str):
        self.lead_id = lead_id
        super().__init__(f"Lead not found: {lead_id}")


class StaleEscalationStateError(FollowupEngineError):
    """Escalation position changed since it was read (optimistic concurrency conflict)"""

    def __init__(self, lead_id: str, expected_position: int, actual_position: Optional[int] = None):
        self.lead_id = lead_id
        self.expected_position = expected_position
        self.actual_position = actual_position
        super().__init__(
            f"Escalation position for lead {lead_id} is {actual_position}, expected {expected_position}"
        )


class EscalationPersistenceError(FollowupEngineError):
    """Advance/reset could not be persisted after retries"""

    def __init__(self, lead_id: str, operation: str, cause: Optional[Exception] = None):
        self.lead_id = lead_id
        self.operation = operation
        self.cause = cause
        super().__init__(f"Failed to {operation} escalation arc for lead {lead_id}: {cause}")
