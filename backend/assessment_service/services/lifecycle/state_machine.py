"""
Assessment Lifecycle State Machine

Deterministic state machine for assessment records.

    ACTIVE --soft delete--> SOFT_DELETED --purge--> PERMANENTLY_DELETED
      |                        |
      |                        +--restore (within grace period)--> ACTIVE
      +--permanent delete--> PERMANENTLY_DELETED

PERMANENTLY_DELETED is terminal and never persisted: the row is removed.
Transitions are applied through the store's compare-and-swap, so the state
read at commit time is authoritative, not the state read at request start.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from ...config import GRACE_PERIOD_DAYS
from ...models.db_models import AssessmentRecordDB, LifecycleState
from .store import AssessmentStore


# =============================================================================
# STATE CONFIGURATION
# =============================================================================

STATE_CONFIG = {
    LifecycleState.ACTIVE: {
        "description": "Record counts toward the profile and snapshot",
        "allowed_transitions": [
            LifecycleState.SOFT_DELETED,
            LifecycleState.PERMANENTLY_DELETED,
        ],
        "terminal": False,
        "visible_to_snapshot": True,
    },
    LifecycleState.SOFT_DELETED: {
        "description": "Hidden from aggregation, restorable within the grace period",
        "allowed_transitions": [
            LifecycleState.ACTIVE,
            LifecycleState.PERMANENTLY_DELETED,
        ],
        "terminal": False,
        "visible_to_snapshot": False,
    },
    LifecycleState.PERMANENTLY_DELETED: {
        "description": "Irreversibly removed",
        "allowed_transitions": [],  # Terminal state
        "terminal": True,
        "visible_to_snapshot": False,
    },
}


def snapshot_visible_states() -> List[LifecycleState]:
    """States whose records feed aggregation (profile, rollup, snapshot)."""
    return [state for state, config in STATE_CONFIG.items() if config["visible_to_snapshot"]]


class LifecycleStateMachine:
    """
    Applies lifecycle transitions to assessment records.

    The grace period is fixed per instance (GRACE_PERIOD_DAYS by default).
    """

    def __init__(self, store: AssessmentStore, grace_period_days: int = GRACE_PERIOD_DAYS):
        self.store = store
        self.grace_period = timedelta(days=grace_period_days)

    def get_state_config(self, state: LifecycleState) -> Dict[str, Any]:
        return STATE_CONFIG.get(state, {})

    def can_transition(
        self,
        from_state: LifecycleState,
        to_state: LifecycleState,
    ) -> Tuple[bool, str]:
        """
        Check if a state transition is allowed.

        Returns (allowed, reason)
        """
        allowed_transitions = self.get_state_config(from_state).get("allowed_transitions", [])
        if to_state in allowed_transitions:
            return True, "Transition allowed"
        return False, f"Cannot transition from {from_state.value} to {to_state.value}"

    def is_terminal_state(self, state: LifecycleState) -> bool:
        return self.get_state_config(state).get("terminal", False)

    def get_next_states(self, state: LifecycleState) -> List[LifecycleState]:
        return self.get_state_config(state).get("allowed_transitions", [])

    # =========================================================================
    # GRACE PERIOD
    # =========================================================================

    def restore_deadline(self, record: AssessmentRecordDB) -> Optional[datetime]:
        if record.deleted_at is None:
            return None
        return record.deleted_at + self.grace_period

    def within_grace_period(self, record: AssessmentRecordDB, now: datetime) -> bool:
        """now - deleted_at <= grace period, for soft-deleted records only."""
        if record.lifecycle_state != LifecycleState.SOFT_DELETED or record.deleted_at is None:
            return False
        return now - record.deleted_at <= self.grace_period

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def transition(
        self,
        record: AssessmentRecordDB,
        to_state: LifecycleState,
        now: datetime,
        reason: Optional[str] = None,
    ) -> Tuple[bool, str]:
        """
        Execute a state transition.

        Returns (success, message). A False result with no change in storage
        means either the transition is illegal or the record moved since it
        was read.
        """
        from_state = record.lifecycle_state
        allowed, message = self.can_transition(from_state, to_state)
        if not allowed:
            return False, message

        if to_state == LifecycleState.PERMANENTLY_DELETED:
            applied = self.store.delete_record(record)
        elif to_state == LifecycleState.SOFT_DELETED:
            applied = self.store.transition_record(record, to_state, deleted_at=now, deletion_reason=reason)
        else:
            if not self.within_grace_period(record, now):
                return False, "Grace period expired"
            applied = self.store.transition_record(record, to_state, deleted_at=None, deletion_reason=None)

        if not applied:
            return False, f"Record changed concurrently; {from_state.value} precondition no longer holds"
        return True, f"Transitioned to {to_state.value}"
