"""
Assessment Store

Narrow repository between the lifecycle/snapshot services and SQLAlchemy.
Nothing else reads or writes the assessment tables.

Transitions are compare-and-swap: the UPDATE/DELETE only matches when the
row is still in the state and version the caller read, so a transition whose
precondition no longer holds at commit time fails cleanly.

Timeouts and connectivity failures surface as TransientStoreError after the
session has been rolled back.
"""
import functools
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from ...errors import StoreError, TransientStoreError
from ...models.db_models import (
    AssessmentRecordDB, UserAssessmentProfileDB, OverallAssessmentDB,
    DeletionEventDB, SnapshotCacheDB, LifecycleState, DeletionAction,
    new_id, utcnow,
)


logger = logging.getLogger(__name__)


def store_call(method):
    """Translate store-level transient failures into TransientStoreError."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except (OperationalError, PoolTimeoutError) as e:
            self._rollback_after_failure()
            logger.error(f"Store call {method.__name__} failed: {e}")
            raise TransientStoreError(f"Storage temporarily unavailable ({method.__name__}); retry the request", original=e) from e
        except DBAPIError as e:
            self._rollback_after_failure()
            if e.connection_invalidated:
                logger.error(f"Store connection lost during {method.__name__}: {e}")
                raise TransientStoreError(f"Storage connection lost ({method.__name__}); retry the request", original=e) from e
            logger.error(f"Store call {method.__name__} rejected: {e}")
            raise StoreError(f"Storage rejected {method.__name__}: {e.orig}") from e
        except SQLAlchemyError as e:
            self._rollback_after_failure()
            logger.error(f"Store call {method.__name__} failed: {e}")
            raise StoreError(f"Storage error during {method.__name__}: {e}") from e

    return wrapper


class AssessmentStore:
    """
    Filtered CRUD over the assessment tables.

    Usage:
        store = AssessmentStore(db)
        records = store.list_records(user_id, states=[LifecycleState.ACTIVE])
    """

    def __init__(self, db: Session):
        self.db = db

    def _rollback_after_failure(self):
        try:
            self.db.rollback()
        except SQLAlchemyError as e:
            logger.warning(f"Rollback after store failure also failed: {e}")

    # =========================================================================
    # TRANSACTION CONTROL
    # =========================================================================

    @store_call
    def commit(self):
        self.db.commit()

    @store_call
    def rollback(self):
        self.db.rollback()

    # =========================================================================
    # ASSESSMENT RECORDS
    # =========================================================================

    @store_call
    def add_record(
        self,
        user_id: str,
        assessment_type: str,
        title: str,
        score: int,
        severity_band: Optional[str],
        taken_at: datetime,
        responses: Optional[Dict[str, Any]] = None,
        structured_result: Optional[Dict[str, Any]] = None,
    ) -> AssessmentRecordDB:
        """Insert a completed assessment (assessment-taking flow, seed tooling)."""
        record = AssessmentRecordDB(
            id=new_id(),
            user_id=user_id,
            assessment_type=assessment_type,
            title=title,
            score=score,
            severity_band=severity_band,
            responses=responses or {},
            structured_result=structured_result or {},
            taken_at=taken_at,
            lifecycle_state=LifecycleState.ACTIVE,
            version=1,
        )
        self.db.add(record)
        self.db.flush()
        return record

    @store_call
    def get_record(self, record_id: str) -> Optional[AssessmentRecordDB]:
        return self.db.query(AssessmentRecordDB).filter(AssessmentRecordDB.id == record_id).first()

    @store_call
    def list_records(
        self,
        user_id: str,
        assessment_type: Optional[str] = None,
        states: Optional[Iterable[LifecycleState]] = None,
    ) -> List[AssessmentRecordDB]:
        """Records for a user, newest taken_at first."""
        query = self.db.query(AssessmentRecordDB).filter(AssessmentRecordDB.user_id == user_id)
        if assessment_type is not None:
            query = query.filter(AssessmentRecordDB.assessment_type == assessment_type)
        if states is not None:
            query = query.filter(AssessmentRecordDB.lifecycle_state.in_(list(states)))
        return query.order_by(AssessmentRecordDB.taken_at.desc()).all()

    @store_call
    def list_expired_soft_deleted(self, cutoff: datetime, limit: int = 500) -> List[AssessmentRecordDB]:
        """Soft-deleted records whose deleted_at is older than cutoff."""
        return self.db.query(AssessmentRecordDB).filter(
            AssessmentRecordDB.lifecycle_state == LifecycleState.SOFT_DELETED,
            AssessmentRecordDB.deleted_at < cutoff,
        ).order_by(AssessmentRecordDB.deleted_at.asc()).limit(limit).all()

    @store_call
    def transition_record(
        self,
        record: AssessmentRecordDB,
        to_state: LifecycleState,
        deleted_at: Optional[datetime] = None,
        deletion_reason: Optional[str] = None,
    ) -> bool:
        """
        Move a record to ACTIVE or SOFT_DELETED if it is still in the state and
        version it was read with. Returns False when the row changed underneath.
        """
        matched = self.db.query(AssessmentRecordDB).filter(
            AssessmentRecordDB.id == record.id,
            AssessmentRecordDB.lifecycle_state == record.lifecycle_state,
            AssessmentRecordDB.version == record.version,
        ).update(
            {
                AssessmentRecordDB.lifecycle_state: to_state,
                AssessmentRecordDB.deleted_at: deleted_at,
                AssessmentRecordDB.deletion_reason: deletion_reason,
                AssessmentRecordDB.version: AssessmentRecordDB.version + 1,
                AssessmentRecordDB.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
        if matched:
            self.db.expire(record)
        return matched == 1

    @store_call
    def delete_record(self, record: AssessmentRecordDB) -> bool:
        """Physically remove a record if its state and version are unchanged."""
        matched = self.db.query(AssessmentRecordDB).filter(
            AssessmentRecordDB.id == record.id,
            AssessmentRecordDB.lifecycle_state == record.lifecycle_state,
            AssessmentRecordDB.version == record.version,
        ).delete(synchronize_session=False)
        if matched:
            self.db.expunge(record)
        return matched == 1

    # =========================================================================
    # USER PROFILE
    # =========================================================================

    @store_call
    def get_profile(self, user_id: str) -> Optional[UserAssessmentProfileDB]:
        return self.db.query(UserAssessmentProfileDB).filter(
            UserAssessmentProfileDB.user_id == user_id
        ).first()

    @store_call
    def upsert_profile(self, user_id: str, **fields) -> UserAssessmentProfileDB:
        profile = self.get_profile(user_id)
        if profile is None:
            profile = UserAssessmentProfileDB(id=new_id(), user_id=user_id)
            self.db.add(profile)
        for name, value in fields.items():
            setattr(profile, name, value)
        profile.updated_at = utcnow()
        self.db.flush()
        return profile

    @store_call
    def delete_profile(self, user_id: str) -> bool:
        return self.db.query(UserAssessmentProfileDB).filter(
            UserAssessmentProfileDB.user_id == user_id
        ).delete(synchronize_session=False) > 0

    # =========================================================================
    # OVERALL ASSESSMENT ROLLUPS
    # =========================================================================

    @store_call
    def list_overall_assessments(self, user_id: str) -> List[OverallAssessmentDB]:
        return self.db.query(OverallAssessmentDB).filter(
            OverallAssessmentDB.user_id == user_id
        ).order_by(OverallAssessmentDB.generated_at.desc()).all()

    @store_call
    def upsert_overall_assessment(self, user_id: str, **fields) -> OverallAssessmentDB:
        rollup = self.db.query(OverallAssessmentDB).filter(
            OverallAssessmentDB.user_id == user_id
        ).first()
        if rollup is None:
            rollup = OverallAssessmentDB(id=new_id(), user_id=user_id)
            self.db.add(rollup)
        for name, value in fields.items():
            setattr(rollup, name, value)
        self.db.flush()
        return rollup

    @store_call
    def delete_overall_assessments(self, user_id: str) -> int:
        return self.db.query(OverallAssessmentDB).filter(
            OverallAssessmentDB.user_id == user_id
        ).delete(synchronize_session=False)

    # =========================================================================
    # DELETION AUDIT LOG
    # =========================================================================

    @store_call
    def append_event(
        self,
        user_id: str,
        action: DeletionAction,
        assessment_type: Optional[str] = None,
        reason: Optional[str] = None,
        permanent: bool = False,
        affected_count: int = 0,
        metadata: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> DeletionEventDB:
        event = DeletionEventDB(
            id=new_id(),
            user_id=user_id,
            action=action,
            assessment_type=assessment_type,
            reason=reason,
            permanent=permanent,
            affected_count=affected_count,
            event_metadata=metadata or {},
            created_at=created_at or utcnow(),
        )
        self.db.add(event)
        return event

    @store_call
    def list_events(self, user_id: str, limit: int = 50) -> List[DeletionEventDB]:
        return self.db.query(DeletionEventDB).filter(
            DeletionEventDB.user_id == user_id
        ).order_by(DeletionEventDB.created_at.desc()).limit(limit).all()

    # =========================================================================
    # SNAPSHOT CACHE
    # =========================================================================

    @store_call
    def get_cached_snapshot(self, user_id: str) -> Optional[SnapshotCacheDB]:
        return self.db.query(SnapshotCacheDB).filter(SnapshotCacheDB.user_id == user_id).first()

    @store_call
    def put_cached_snapshot(self, user_id: str, payload: Dict[str, Any], computed_at: datetime, expires_at: datetime):
        entry = self.db.query(SnapshotCacheDB).filter(SnapshotCacheDB.user_id == user_id).first()
        if entry is None:
            entry = SnapshotCacheDB(user_id=user_id)
            self.db.add(entry)
        entry.payload = payload
        entry.computed_at = computed_at
        entry.expires_at = expires_at

    @store_call
    def invalidate_cached_snapshot(self, user_id: str) -> bool:
        return self.db.query(SnapshotCacheDB).filter(
            SnapshotCacheDB.user_id == user_id
        ).delete(synchronize_session=False) > 0
