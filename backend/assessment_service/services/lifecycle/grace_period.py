"""
Grace Period Sweeper

AUTHORITY: SYSTEM
Purges soft-deleted records whose grace period has expired. Called by the
scheduler; safe to run while users are restoring or deleting, because each
purge is conditional on the record still being SOFT_DELETED at the version
the sweep read. A record restored in between is skipped.
"""
import logging
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict

from sqlalchemy.orm import Session

from ...config import GRACE_PERIOD_DAYS
from ...errors import AssessmentLifecycleError
from ...models.db_models import DeletionAction, LifecycleState, utcnow
from ..snapshot.snapshot_cache import SnapshotCache
from .profile_service import ProfileService
from .state_machine import LifecycleStateMachine
from .store import AssessmentStore


logger = logging.getLogger(__name__)


class GracePeriodSweeper:
    """
    Usage:
        sweeper = GracePeriodSweeper(db)
        result = sweeper.run()
    """

    def __init__(
        self,
        db: Session,
        grace_period_days: int = GRACE_PERIOD_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = AssessmentStore(db)
        self.state_machine = LifecycleStateMachine(self.store, grace_period_days=grace_period_days)
        self.profiles = ProfileService(self.store)
        self.snapshot_cache = SnapshotCache(self.store)
        self.grace_period = timedelta(days=grace_period_days)
        self.clock = clock

    def run(self, batch_size: int = 500) -> Dict[str, Any]:
        """Purge one batch of expired soft-deleted records."""
        now = self.clock()
        result = {
            "task": "grace_period_sweep",
            "run_date": now.isoformat(),
            "purged_count": 0,
            "users_affected": 0,
            "skipped": 0,
        }

        try:
            expired = self.store.list_expired_soft_deleted(now - self.grace_period, limit=batch_size)
            purged_by_user = defaultdict(list)
            for record in expired:
                user_id, assessment_type, record_id = record.user_id, record.assessment_type, record.id
                applied, message = self.state_machine.transition(record, LifecycleState.PERMANENTLY_DELETED, now)
                if applied:
                    purged_by_user[user_id].append({"record_id": record_id, "assessment_type": assessment_type})
                else:
                    result["skipped"] += 1
                    logger.info(f"Sweep skipped record {record_id}: {message}")

            for user_id, purged in purged_by_user.items():
                # Purged records were already excluded from aggregation; the
                # profile is recomputed only to keep it derived from one rule.
                self.profiles.recompute_profile(user_id, now)
                self.snapshot_cache.invalidate(user_id)
                self.store.append_event(
                    user_id,
                    DeletionAction.PURGED,
                    permanent=True,
                    affected_count=len(purged),
                    reason="grace period expired",
                    metadata={"records": purged},
                    created_at=now,
                )

            self.store.commit()
            result["purged_count"] = sum(len(p) for p in purged_by_user.values())
            result["users_affected"] = len(purged_by_user)
            result["status"] = "success"
            logger.info(f"Grace period sweep complete: {result}")
        except AssessmentLifecycleError as e:
            result["status"] = "error"
            result["error"] = e.message
            result["retryable"] = e.retryable
            logger.error(f"Grace period sweep failed: {e.message}")

        return result
