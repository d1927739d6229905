"""
Assessment Lifecycle Manager

Owns soft delete, restore and permanent deletion of a user's assessment
records, and keeps the derived aggregates consistent with them.

Every mutation, in one transaction:
1. Moves records through the state machine (compare-and-swap per record)
2. Recomputes the user profile (and, on cascade, the overall rollup)
3. Invalidates the user's cached snapshot
4. Appends a deletion_events audit row
5. Commits

Public methods never raise. Logical failures (validation, not found, grace
period expired, partial bulk failure) and store failures come back as a
structured result with success=False and the true affected count.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ...config import BULK_DELETE_CONFIRMATION, GRACE_PERIOD_DAYS
from ...errors import (
    AssessmentLifecycleError, GracePeriodExpiredError, NotFoundError,
    PartialFailureError, ValidationError,
)
from ...models.catalog import validate_assessment_type
from ...models.db_models import (
    AssessmentRecordDB, DeletionAction, DeletionEventDB, LifecycleState, utcnow,
)
from ...models.lifecycle import DeletionResult, RestoreResult
from ..snapshot.snapshot_cache import SnapshotCache
from .profile_service import ProfileService
from .state_machine import LifecycleStateMachine
from .store import AssessmentStore


logger = logging.getLogger(__name__)


class AssessmentLifecycleManager:
    """
    Lifecycle operations for one request. Stateless beyond the session.

    Usage:
        manager = AssessmentLifecycleManager(db)
        result = manager.delete_individual(user_id, "phq9", cascade=True)
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
        self.grace_period_days = grace_period_days
        self.clock = clock

    # =========================================================================
    # DELETE ONE ASSESSMENT TYPE
    # =========================================================================

    def delete_individual(
        self,
        user_id: str,
        assessment_type: str,
        cascade: bool = False,
        permanent: bool = False,
        reason: Optional[str] = None,
    ) -> DeletionResult:
        """
        Soft delete (default) or permanently delete a user's records of one type.

        Soft delete moves every ACTIVE record of the type to SOFT_DELETED.
        Permanent delete also purges SOFT_DELETED records of the type.
        cascade=True additionally recomputes the overall-assessment rollup.
        Records that moved stay committed when some retakes could not be moved;
        the result is then a partial failure with the true affected count.
        """
        try:
            validate_assessment_type(assessment_type)
            return self._delete_individual(user_id, assessment_type, cascade, permanent, reason)
        except AssessmentLifecycleError as e:
            self._log_failure("delete_individual", user_id, e)
            return DeletionResult.from_error(e)

    def _delete_individual(
        self,
        user_id: str,
        assessment_type: str,
        cascade: bool,
        permanent: bool,
        reason: Optional[str],
    ) -> DeletionResult:
        now = self.clock()
        if permanent:
            states = [LifecycleState.ACTIVE, LifecycleState.SOFT_DELETED]
            to_state = LifecycleState.PERMANENTLY_DELETED
        else:
            states = [LifecycleState.ACTIVE]
            to_state = LifecycleState.SOFT_DELETED

        candidates = self.store.list_records(user_id, assessment_type=assessment_type, states=states)
        if not candidates:
            if not permanent and self._already_soft_deleted(user_id, assessment_type, reason):
                return DeletionResult(
                    success=True,
                    affected_count=0,
                    message=(
                        f"Soft deleted {assessment_type} assessment (already soft deleted; "
                        f"restorable within {self.grace_period_days} days)"
                    ),
                )
            raise NotFoundError(f"Assessment {assessment_type} not found or already deleted")

        moved = self._transition_all(candidates, to_state, now, reason)
        if moved == 0:
            self.store.rollback()
            raise NotFoundError(f"Assessment {assessment_type} not found or already deleted (changed concurrently)")

        profile_touched = self.profiles.recompute_profile(user_id, now)
        overall_touched = self.profiles.recompute_overall(user_id, now) if cascade else 0
        self.snapshot_cache.invalidate(user_id)
        self.store.append_event(
            user_id,
            DeletionAction.PERMANENTLY_DELETED if permanent else DeletionAction.SOFT_DELETED,
            assessment_type=assessment_type,
            reason=reason,
            permanent=permanent,
            affected_count=moved,
            metadata={"cascade": cascade, "intended_count": len(candidates)},
            created_at=now,
        )
        self.store.commit()

        if moved < len(candidates):
            raise PartialFailureError(
                f"Partially deleted {moved} of {len(candidates)} {assessment_type} records; re-run to finish",
                affected_count=moved,
                intended_count=len(candidates),
            )

        if permanent:
            message = f"Permanently deleted {assessment_type} assessment ({moved} record(s))"
        else:
            message = (
                f"Soft deleted {assessment_type} assessment ({moved} record(s)); "
                f"restorable within {self.grace_period_days} days"
            )
        logger.info(f"{message} for user {user_id}")

        return DeletionResult(
            success=True,
            affected_count=moved,
            message=message,
            affected_data={
                "assessment_results": moved,
                "user_profile": profile_touched,
                "overall_assessments": overall_touched,
            },
        )

    def _already_soft_deleted(self, user_id: str, assessment_type: str, reason: Optional[str]) -> bool:
        """A retried soft delete with the same reason is a no-op success."""
        soft_deleted = self.store.list_records(
            user_id, assessment_type=assessment_type, states=[LifecycleState.SOFT_DELETED]
        )
        if not soft_deleted:
            return False
        most_recent = max(soft_deleted, key=lambda r: r.deleted_at)
        return most_recent.deletion_reason == reason

    # =========================================================================
    # DELETE ALL
    # =========================================================================

    def delete_all(
        self,
        user_id: str,
        permanent: bool = False,
        reason: Optional[str] = None,
        confirmation_token: Optional[str] = None,
    ) -> DeletionResult:
        """
        Soft delete every ACTIVE record, or (permanent) purge every ACTIVE and
        SOFT_DELETED record. Soft bulk deletion requires the confirmation token.

        If some records could not be moved, the moved ones stay committed and
        the result reports success=False with the true affected count.
        """
        try:
            if not permanent and confirmation_token != BULK_DELETE_CONFIRMATION:
                raise ValidationError(
                    f'Bulk soft deletion requires confirmation: "{BULK_DELETE_CONFIRMATION}"'
                )
            return self._delete_all(user_id, permanent, reason)
        except AssessmentLifecycleError as e:
            self._log_failure("delete_all", user_id, e)
            return DeletionResult.from_error(e)

    def _delete_all(self, user_id: str, permanent: bool, reason: Optional[str]) -> DeletionResult:
        now = self.clock()
        if permanent:
            states = [LifecycleState.ACTIVE, LifecycleState.SOFT_DELETED]
            to_state = LifecycleState.PERMANENTLY_DELETED
        else:
            states = [LifecycleState.ACTIVE]
            to_state = LifecycleState.SOFT_DELETED

        candidates = self.store.list_records(user_id, states=states)
        if not candidates:
            label = "Permanently deleted" if permanent else "Soft deleted"
            return DeletionResult(success=True, affected_count=0, message=f"{label} all assessments (nothing to delete)")

        intended = len(candidates)
        moved = self._transition_all(candidates, to_state, now, reason)

        profile_touched = self.profiles.recompute_profile(user_id, now)
        overall_touched = self.profiles.recompute_overall(user_id, now)
        self.snapshot_cache.invalidate(user_id)
        self.store.append_event(
            user_id,
            DeletionAction.BULK_PERMANENTLY_DELETED if permanent else DeletionAction.BULK_SOFT_DELETED,
            reason=reason,
            permanent=permanent,
            affected_count=moved,
            metadata={"intended_count": intended},
            created_at=now,
        )
        self.store.commit()

        if moved < intended:
            raise PartialFailureError(
                f"Partially deleted {moved} of {intended} assessments; re-run to finish",
                affected_count=moved,
                intended_count=intended,
            )

        if permanent:
            message = f"Permanently deleted all assessments ({moved} record(s))"
        else:
            message = (
                f"Soft deleted all assessments ({moved} record(s)); "
                f"restorable within {self.grace_period_days} days"
            )
        logger.info(f"{message} for user {user_id}")

        return DeletionResult(
            success=True,
            affected_count=moved,
            message=message,
            affected_data={
                "assessment_results": moved,
                "user_profile": profile_touched,
                "overall_assessments": overall_touched,
            },
        )

    # =========================================================================
    # RESTORE
    # =========================================================================

    def restore(self, user_id: str, assessment_type: str) -> RestoreResult:
        """
        Restore the most recent (by taken_at) soft-deleted record of a type,
        if its deletion is still inside the grace period. Older soft-deleted
        retakes stay deleted.
        """
        try:
            validate_assessment_type(assessment_type)
            return self._restore(user_id, assessment_type)
        except AssessmentLifecycleError as e:
            self._log_failure("restore", user_id, e)
            return RestoreResult.from_error(e)

    def _restore(self, user_id: str, assessment_type: str) -> RestoreResult:
        now = self.clock()
        record = self._restore_candidate(user_id, assessment_type)
        if record is None:
            raise NotFoundError(f"No soft-deleted {assessment_type} assessment found to restore")

        if not self.state_machine.within_grace_period(record, now):
            deadline = self.state_machine.restore_deadline(record)
            raise GracePeriodExpiredError(
                f"Cannot restore {assessment_type}: the {self.grace_period_days}-day grace period "
                f"ended {deadline.isoformat()}"
            )

        record_id = record.id
        applied, message = self.state_machine.transition(record, LifecycleState.ACTIVE, now)
        if not applied:
            self.store.rollback()
            raise NotFoundError(f"Assessment {assessment_type} not found in a restorable state: {message}")

        self.profiles.recompute_profile(user_id, now)
        self.profiles.recompute_overall(user_id, now)
        self.snapshot_cache.invalidate(user_id)
        self.store.append_event(
            user_id,
            DeletionAction.RESTORED,
            assessment_type=assessment_type,
            affected_count=1,
            metadata={"record_id": record_id},
            created_at=now,
        )
        self.store.commit()

        logger.info(f"Restored {assessment_type} record {record_id} for user {user_id}")
        return RestoreResult(
            success=True,
            restored_count=1,
            message=f"Successfully restored {assessment_type} assessment",
        )

    def can_restore(self, user_id: str, assessment_type: str) -> bool:
        """True iff restore() would currently succeed for this type."""
        try:
            validate_assessment_type(assessment_type)
            record = self._restore_candidate(user_id, assessment_type)
            return record is not None and self.state_machine.within_grace_period(record, self.clock())
        except AssessmentLifecycleError as e:
            self._log_failure("can_restore", user_id, e)
            return False

    def _restore_candidate(self, user_id: str, assessment_type: str) -> Optional[AssessmentRecordDB]:
        soft_deleted = self.store.list_records(
            user_id, assessment_type=assessment_type, states=[LifecycleState.SOFT_DELETED]
        )
        return soft_deleted[0] if soft_deleted else None

    # =========================================================================
    # READ-ONLY VIEWS
    # =========================================================================

    def get_summary(self, user_id: str, include_deleted: bool = False) -> Dict[str, Any]:
        """
        Current lifecycle view, read straight from the store.

        include_deleted adds the deletion history.
        """
        try:
            now = self.clock()
            records = self.store.list_records(user_id)
            profile = self.store.get_profile(user_id)
            overall = self.store.list_overall_assessments(user_id)

            summary = {
                "success": True,
                "active_assessments": [
                    self._active_view(r) for r in records if r.lifecycle_state == LifecycleState.ACTIVE
                ],
                "deleted_assessments": [
                    self._deleted_view(r, now) for r in records if r.lifecycle_state == LifecycleState.SOFT_DELETED
                ],
                "user_profile": self._profile_view(profile) if profile else None,
                "overall_assessments": [self._overall_view(o) for o in overall],
            }
            if include_deleted:
                summary["deletion_history"] = [self._event_view(e) for e in self.store.list_events(user_id)]
            return summary
        except AssessmentLifecycleError as e:
            self._log_failure("get_summary", user_id, e)
            return {
                "success": False,
                "error_kind": e.kind,
                "retryable": e.retryable,
                "message": e.message,
                "active_assessments": [],
                "deleted_assessments": [],
                "user_profile": None,
                "overall_assessments": [],
            }

    def get_deletion_history(self, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Audit trail, newest first. Empty on store failure."""
        try:
            return [self._event_view(e) for e in self.store.list_events(user_id, limit=limit)]
        except AssessmentLifecycleError as e:
            self._log_failure("get_deletion_history", user_id, e)
            return []

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _transition_all(
        self,
        records: List[AssessmentRecordDB],
        to_state: LifecycleState,
        now: datetime,
        reason: Optional[str],
    ) -> int:
        moved = 0
        for record in records:
            record_id = record.id
            applied, message = self.state_machine.transition(record, to_state, now, reason=reason)
            if applied:
                moved += 1
            else:
                logger.warning(f"Skipped record {record_id}: {message}")
        return moved

    def _log_failure(self, operation: str, user_id: str, error: AssessmentLifecycleError):
        if error.retryable:
            logger.error(f"{operation} failed for user {user_id} (retryable): {error.message}")
        else:
            logger.warning(f"{operation} rejected for user {user_id} [{error.kind}]: {error.message}")

    def _active_view(self, record: AssessmentRecordDB) -> Dict[str, Any]:
        return {
            "id": record.id,
            "assessment_type": record.assessment_type,
            "title": record.title,
            "score": record.score,
            "severity_band": record.severity_band,
            "taken_at": record.taken_at.isoformat(),
        }

    def _deleted_view(self, record: AssessmentRecordDB, now: datetime) -> Dict[str, Any]:
        deadline = self.state_machine.restore_deadline(record)
        return {
            "id": record.id,
            "assessment_type": record.assessment_type,
            "title": record.title,
            "taken_at": record.taken_at.isoformat(),
            "deleted_at": record.deleted_at.isoformat() if record.deleted_at else None,
            "deletion_reason": record.deletion_reason,
            "restorable_until": deadline.isoformat() if deadline else None,
            "within_grace_period": self.state_machine.within_grace_period(record, now),
        }

    def _profile_view(self, profile) -> Dict[str, Any]:
        return {
            "id": profile.id,
            "last_assessed_at": profile.last_assessed_at.isoformat() if profile.last_assessed_at else None,
            "risk_level": profile.risk_level,
            "primary_concerns": profile.primary_concerns or [],
            "therapeutic_approaches": profile.therapeutic_approaches or [],
            "profile_data": profile.profile_data or {},
        }

    def _overall_view(self, rollup) -> Dict[str, Any]:
        return {
            "id": rollup.id,
            "included_assessments": rollup.included_assessments or [],
            "risk_level": rollup.risk_level,
            "analysis": rollup.analysis or {},
            "generated_at": rollup.generated_at.isoformat() if rollup.generated_at else None,
        }

    def _event_view(self, event: DeletionEventDB) -> Dict[str, Any]:
        return {
            "id": event.id,
            "action": event.action.value,
            "assessment_type": event.assessment_type,
            "reason": event.reason,
            "permanent": event.permanent,
            "affected_count": event.affected_count,
            "created_at": event.created_at.isoformat() if event.created_at else None,
            "metadata": event.event_metadata or {},
        }
