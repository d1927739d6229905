"""
Lifecycle error taxonomy.

Raised inside the lifecycle and snapshot services; every public service
method catches these and returns a structured result instead.
"""
from typing import Optional


class AssessmentLifecycleError(Exception):
    """Base class. `kind` is the stable name surfaced as `error_kind`."""

    kind = "lifecycle"
    retryable = False

    def __init__(self, message: str, affected_count: int = 0):
        super().__init__(message)
        self.message = message
        self.affected_count = affected_count


class ValidationError(AssessmentLifecycleError):
    """Unknown assessment type or malformed input. 400-class, never retried."""
    kind = "validation"


class NotFoundError(AssessmentLifecycleError):
    """No matching record in an actionable state. Never retried."""
    kind = "not_found"


class GracePeriodExpiredError(AssessmentLifecycleError):
    """Restore attempted after the grace window closed. Never retried."""
    kind = "grace_period_expired"


class TransientStoreError(AssessmentLifecycleError):
    """Timeout or connectivity failure at the store. Safe to retry."""
    kind = "transient_store"
    retryable = True

    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message, affected_count=0)
        self.original = original


class PartialFailureError(AssessmentLifecycleError):
    """Bulk operation moved fewer records than intended."""
    kind = "partial_failure"

    def __init__(self, message: str, affected_count: int, intended_count: int):
        super().__init__(message, affected_count=affected_count)
        self.intended_count = intended_count


class StoreError(AssessmentLifecycleError):
    """Non-transient store failure (constraint violation, bad SQL). Not retried."""
    kind = "store_error"
