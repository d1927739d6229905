"""
Lifecycle Services

Soft delete / restore / purge state machine for assessment records and the
derived per-user aggregates.

- AssessmentStore: the only path to the assessment tables
- LifecycleStateMachine: transition rules and grace-period checks
- ProfileService: profile and overall-rollup recomputation
- AssessmentLifecycleManager: user-authorized lifecycle operations
- GracePeriodSweeper: system purge of expired soft deletes
"""

from .store import AssessmentStore
from .state_machine import LifecycleStateMachine, STATE_CONFIG
from .profile_service import ProfileService
from .lifecycle_manager import AssessmentLifecycleManager
from .grace_period import GracePeriodSweeper

__all__ = [
    'AssessmentStore',
    'LifecycleStateMachine',
    'STATE_CONFIG',
    'ProfileService',
    'AssessmentLifecycleManager',
    'GracePeriodSweeper',
]
