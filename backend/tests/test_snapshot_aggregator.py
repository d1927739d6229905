"""
Tests for the Snapshot Aggregator.

build_snapshot() is exercised with plain record stand-ins; the cache and
store paths use an in-memory database.
"""
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import MagicMock

from sqlalchemy.exc import OperationalError

from assessment_service.models.db_models import LifecycleState, SnapshotCacheDB
from assessment_service.models.lifecycle import SNAPSHOT_NOTES
from assessment_service.services.lifecycle import AssessmentLifecycleManager
from assessment_service.services.snapshot import SnapshotAggregator, build_snapshot, compute_confidence

from .conftest import NOW, USER_ID


def record(assessment_type, score, severity_band, days_ago=1, state=LifecycleState.ACTIVE):
    return SimpleNamespace(
        assessment_type=assessment_type,
        score=score,
        severity_band=severity_band,
        taken_at=NOW - timedelta(days=days_ago),
        lifecycle_state=state,
    )


# =============================================================================
# TEST: PURE DERIVATION
# =============================================================================

class TestBuildSnapshot:

    def test_depression_and_anxiety_snapshot(self):
        snapshot = build_snapshot(
            [record("phq9", 12, "moderate", days_ago=3), record("gad7", 8, "mild", days_ago=3)],
            NOW,
        )

        dimensions = {d.key: d for d in snapshot.dimensions}
        assert dimensions["depression"].level == "moderate"
        assert dimensions["depression"].evidence == ["PHQ-9:12/27"]
        assert dimensions["anxiety"].level == "mild"
        assert dimensions["anxiety"].evidence == ["GAD-7:8/21"]
        assert snapshot.confidence == "medium"
        assert sorted(snapshot.assessments_used) == ["GAD-7", "PHQ-9"]
        assert snapshot.notes == SNAPSHOT_NOTES
        assert snapshot.as_of == NOW

    def test_no_records_means_no_snapshot(self):
        assert build_snapshot([], NOW) is None

    def test_only_soft_deleted_records_means_no_snapshot(self):
        records = [record("phq9", 12, "moderate", state=LifecycleState.SOFT_DELETED)]
        assert build_snapshot(records, NOW) is None

    def test_unknown_types_alone_mean_no_snapshot(self):
        assert build_snapshot([record("mmpi", 50, "severe")], NOW) is None

    def test_latest_retake_wins(self):
        snapshot = build_snapshot(
            [record("phq9", 22, "critical", days_ago=40), record("phq9", 6, "mild", days_ago=2)],
            NOW,
        )

        assert len(snapshot.dimensions) == 1
        assert snapshot.dimensions[0].level == "mild"
        assert snapshot.dimensions[0].evidence == ["PHQ-9:6/27"]

    def test_dimension_order_is_fixed(self):
        snapshot = build_snapshot(
            [
                record("cd-risc", 25, "moderate"),
                record("phq9", 12, "moderate"),
                record("who5", 10, "moderate"),
                record("gad7", 8, "mild"),
                record("pss10", 20, "moderate"),
            ],
            NOW,
        )
        assert [d.key for d in snapshot.dimensions] == [
            "anxiety", "depression", "stress", "wellbeing", "resilience",
        ]
        assert snapshot.assessments_used == ["GAD-7", "PHQ-9", "PSS-10", "WHO-5", "CD-RISC"]

    def test_ace_takes_trauma_dimension_over_pcl5(self):
        snapshot = build_snapshot([record("pcl5", 40, "severe"), record("ace", 2, "mild")], NOW)

        assert len(snapshot.dimensions) == 1
        trauma = snapshot.dimensions[0]
        assert trauma.key == "trauma_exposure"
        assert trauma.evidence == ["ACE:2/10"]
        assert snapshot.assessments_used == ["ACE"]

    def test_pcl5_feeds_trauma_when_ace_absent(self):
        snapshot = build_snapshot([record("pcl5", 40, "severe")], NOW)
        assert snapshot.dimensions[0].key == "trauma_exposure"
        assert snapshot.dimensions[0].level == "high"
        assert snapshot.dimensions[0].evidence == ["PCL-5:40/80"]

    def test_unknown_band_uses_instrument_fallback(self):
        snapshot = build_snapshot(
            [record("who5", 11, "unlabelled"), record("ace", 5, None), record("phq9", 12, "MODERATE")],
            NOW,
        )
        levels = {d.key: d.level for d in snapshot.dimensions}
        assert levels["wellbeing"] == "moderate_low"
        assert levels["trauma_exposure"] == "high"
        assert levels["depression"] == "moderate"

    def test_explainability_block(self):
        snapshot = build_snapshot([record("phq9", 12, "moderate")], NOW)
        data = snapshot.to_dict()
        assert data["explainability"] == {
            "assessments_used": ["PHQ-9"],
            "last_updated": NOW.isoformat(),
        }


class TestConfidence:

    def test_single_dimension_is_low(self):
        assert compute_confidence([NOW], NOW) == "low"

    def test_four_fresh_dimensions_is_high(self):
        taken = [NOW - timedelta(days=d) for d in (1, 5, 10, 29)]
        assert compute_confidence(taken, NOW) == "high"

    def test_four_dimensions_with_one_older_than_fresh_window_is_medium(self):
        taken = [NOW - timedelta(days=d) for d in (1, 5, 10, 45)]
        assert compute_confidence(taken, NOW) == "medium"

    def test_all_stale_is_low(self):
        taken = [NOW - timedelta(days=d) for d in (100, 120, 200)]
        assert compute_confidence(taken, NOW) == "low"

    def test_one_recent_among_stale_is_medium(self):
        taken = [NOW - timedelta(days=d) for d in (5, 120)]
        assert compute_confidence(taken, NOW) == "medium"


# =============================================================================
# TEST: STORE AND CACHE
# =============================================================================

class TestSnapshotAggregator:

    def test_none_when_nothing_assessed(self, db_session):
        lookup = SnapshotAggregator(db_session).get_snapshot(USER_ID, NOW)

        assert lookup.status == "none"
        assert lookup.snapshot is None
        assert lookup.to_dict()["snapshot"] is None

    def test_snapshot_is_cached_until_mutation(self, db_session, make_record, fixed_clock):
        make_record("phq9", 12, days_ago=3)
        make_record("gad7", 8, days_ago=3)
        aggregator = SnapshotAggregator(db_session, cache_ttl_seconds=300)

        first = aggregator.get_snapshot(USER_ID, NOW)
        second = aggregator.get_snapshot(USER_ID, NOW + timedelta(seconds=30))

        assert first.status == "available"
        assert second.message == "Snapshot served from cache"
        assert second.snapshot.to_dict() == first.snapshot.to_dict()

        AssessmentLifecycleManager(db_session, clock=fixed_clock).delete_individual(USER_ID, "phq9")
        assert db_session.query(SnapshotCacheDB).filter(SnapshotCacheDB.user_id == USER_ID).first() is None

        third = aggregator.get_snapshot(USER_ID, NOW + timedelta(seconds=60))
        assert third.message == "Snapshot computed"
        assert third.snapshot.assessments_used == ["GAD-7"]

    def test_expired_cache_entry_is_recomputed(self, db_session, make_record):
        make_record("phq9", 12)
        aggregator = SnapshotAggregator(db_session, cache_ttl_seconds=60)

        aggregator.get_snapshot(USER_ID, NOW)
        later = aggregator.get_snapshot(USER_ID, NOW + timedelta(seconds=61))

        assert later.message == "Snapshot computed"
        assert later.snapshot.as_of == NOW + timedelta(seconds=61)

    def test_store_failure_is_unavailable_not_raised(self):
        mock_db = MagicMock()
        mock_db.query.side_effect = OperationalError("SELECT", {}, Exception("timeout"))

        lookup = SnapshotAggregator(mock_db).get_snapshot(USER_ID, NOW)

        assert lookup.status == "unavailable"
        assert lookup.retryable is True
