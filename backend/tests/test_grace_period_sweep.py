"""
Tests for the grace period sweep (system purge of expired soft deletes).
"""
from datetime import timedelta
from unittest.mock import MagicMock, patch

from sqlalchemy.exc import OperationalError

from assessment_service.models.db_models import AssessmentRecordDB, DeletionEventDB, DeletionAction, LifecycleState
from assessment_service.services.lifecycle import AssessmentLifecycleManager, GracePeriodSweeper

from .conftest import NOW, OTHER_USER_ID, USER_ID


def soft_delete_at(db_session, moment, assessment_type, user_id=USER_ID):
    manager = AssessmentLifecycleManager(db_session, grace_period_days=30, clock=lambda: moment)
    return manager.delete_individual(user_id, assessment_type)


class TestGracePeriodSweeper:

    def test_purges_only_expired_soft_deletes(self, db_session, store, make_record, fixed_clock):
        expired_id = make_record("phq9", 12, days_ago=60)
        recent_id = make_record("gad7", 8, days_ago=10)
        active_id = make_record("who5", 15, days_ago=5)
        soft_delete_at(db_session, NOW - timedelta(days=40), "phq9")
        soft_delete_at(db_session, NOW - timedelta(days=5), "gad7")

        result = GracePeriodSweeper(db_session, grace_period_days=30, clock=fixed_clock).run()

        assert result["status"] == "success"
        assert result["purged_count"] == 1
        assert result["users_affected"] == 1
        assert result["skipped"] == 0
        assert store.get_record(expired_id) is None
        assert store.get_record(recent_id).lifecycle_state == LifecycleState.SOFT_DELETED
        assert store.get_record(active_id).lifecycle_state == LifecycleState.ACTIVE

    def test_purge_is_audited_per_user(self, db_session, make_record, fixed_clock):
        make_record("phq9", 12, days_ago=60)
        make_record("phq9", 20, days_ago=60, user_id=OTHER_USER_ID)
        soft_delete_at(db_session, NOW - timedelta(days=45), "phq9")
        soft_delete_at(db_session, NOW - timedelta(days=45), "phq9", user_id=OTHER_USER_ID)

        result = GracePeriodSweeper(db_session, clock=fixed_clock).run()

        assert result["purged_count"] == 2
        assert result["users_affected"] == 2
        purged = db_session.query(DeletionEventDB).filter(DeletionEventDB.action == DeletionAction.PURGED).all()
        assert sorted(e.user_id for e in purged) == [USER_ID, OTHER_USER_ID]
        assert all(e.permanent and e.reason == "grace period expired" for e in purged)

    def test_record_changed_since_read_is_skipped(self, db_session, store, make_record, fixed_clock):
        record_id = make_record("phq9", 12, days_ago=60)
        soft_delete_at(db_session, NOW - timedelta(days=40), "phq9")
        sweeper = GracePeriodSweeper(db_session, clock=fixed_clock)
        expired = store.list_expired_soft_deleted(NOW - timedelta(days=30))

        # A restore/re-delete committed between the sweep's read and its purge
        db_session.query(AssessmentRecordDB).filter(AssessmentRecordDB.id == record_id).update(
            {AssessmentRecordDB.version: AssessmentRecordDB.version + 1},
            synchronize_session=False,
        )
        with patch.object(sweeper.store, "list_expired_soft_deleted", return_value=expired):
            result = sweeper.run()

        assert result["status"] == "success"
        assert result["purged_count"] == 0
        assert result["skipped"] == 1
        db_session.expire_all()
        assert store.get_record(record_id) is not None

    def test_nothing_to_purge(self, db_session, fixed_clock):
        result = GracePeriodSweeper(db_session, clock=fixed_clock).run()
        assert result["status"] == "success"
        assert result["purged_count"] == 0

    def test_store_failure_is_reported(self):
        mock_db = MagicMock()
        mock_db.query.side_effect = OperationalError("SELECT", {}, Exception("timeout"))

        result = GracePeriodSweeper(mock_db).run()

        assert result["status"] == "error"
        assert result["retryable"] is True
        assert result["purged_count"] == 0
