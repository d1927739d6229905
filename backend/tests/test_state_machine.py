"""
Tests for the assessment lifecycle state machine.

1. Transition table (allowed / illegal / terminal)
2. Grace period boundary
3. Compare-and-swap: a record changed since it was read is not transitioned
4. Permanent deletion removes the row
"""
from datetime import timedelta
from unittest.mock import patch

import pytest

from assessment_service.models.db_models import AssessmentRecordDB, LifecycleState
from assessment_service.services.lifecycle import LifecycleStateMachine, STATE_CONFIG
from assessment_service.services.lifecycle.state_machine import snapshot_visible_states
from assessment_service.services.snapshot import build_snapshot

from .conftest import NOW, USER_ID


@pytest.fixture
def machine(store):
    return LifecycleStateMachine(store, grace_period_days=30)


class TestTransitionTable:

    def test_active_can_be_soft_or_permanently_deleted(self, machine):
        assert machine.can_transition(LifecycleState.ACTIVE, LifecycleState.SOFT_DELETED)[0]
        assert machine.can_transition(LifecycleState.ACTIVE, LifecycleState.PERMANENTLY_DELETED)[0]

    def test_soft_deleted_can_be_restored_or_purged(self, machine):
        assert machine.get_next_states(LifecycleState.SOFT_DELETED) == [
            LifecycleState.ACTIVE,
            LifecycleState.PERMANENTLY_DELETED,
        ]

    def test_permanently_deleted_is_terminal(self, machine):
        assert machine.is_terminal_state(LifecycleState.PERMANENTLY_DELETED)
        allowed, reason = machine.can_transition(LifecycleState.PERMANENTLY_DELETED, LifecycleState.ACTIVE)
        assert allowed is False
        assert "PERMANENTLY_DELETED" in reason

    def test_active_to_active_is_rejected(self, machine):
        allowed, _ = machine.can_transition(LifecycleState.ACTIVE, LifecycleState.ACTIVE)
        assert allowed is False

    def test_only_active_records_feed_the_snapshot(self):
        assert snapshot_visible_states() == [LifecycleState.ACTIVE]

    def test_snapshot_filters_on_state_config(self, store, make_record):
        make_record("phq9", 12)
        make_record("gad7", 8)
        records = store.list_records(USER_ID)
        hidden = {**STATE_CONFIG[LifecycleState.ACTIVE], "visible_to_snapshot": False}

        with patch.dict(STATE_CONFIG, {LifecycleState.ACTIVE: hidden}):
            assert snapshot_visible_states() == []
            assert build_snapshot(records, NOW) is None

        assert len(build_snapshot(records, NOW).dimensions) == 2

    def test_terminal_flag_matches_transition_table(self):
        for state, config in STATE_CONFIG.items():
            assert config["terminal"] == (config["allowed_transitions"] == [])


class TestGracePeriod:

    def test_boundary_is_inclusive(self, machine, store, make_record):
        record = store.get_record(make_record("phq9", 12))
        machine.transition(record, LifecycleState.SOFT_DELETED, NOW)
        record = store.get_record(record.id)

        assert machine.within_grace_period(record, NOW + timedelta(days=30))
        assert not machine.within_grace_period(record, NOW + timedelta(days=30, seconds=1))
        assert machine.restore_deadline(record) == NOW + timedelta(days=30)

    def test_active_record_is_never_within_grace(self, machine, store, make_record):
        record = store.get_record(make_record("phq9", 12))
        assert machine.within_grace_period(record, NOW) is False
        assert machine.restore_deadline(record) is None

    def test_restore_after_grace_is_refused(self, machine, store, make_record):
        record = store.get_record(make_record("gad7", 8))
        machine.transition(record, LifecycleState.SOFT_DELETED, NOW - timedelta(days=31))
        record = store.get_record(record.id)

        applied, message = machine.transition(record, LifecycleState.ACTIVE, NOW)

        assert applied is False
        assert message == "Grace period expired"
        assert store.get_record(record.id).lifecycle_state == LifecycleState.SOFT_DELETED


class TestTransitions:

    def test_soft_delete_sets_markers_and_bumps_version(self, machine, store, make_record):
        record = store.get_record(make_record("phq9", 12))

        applied, _ = machine.transition(record, LifecycleState.SOFT_DELETED, NOW, reason="retaking")

        assert applied is True
        record = store.get_record(record.id)
        assert record.lifecycle_state == LifecycleState.SOFT_DELETED
        assert record.deleted_at == NOW
        assert record.deletion_reason == "retaking"
        assert record.version == 2

    def test_restore_clears_markers(self, machine, store, make_record):
        record = store.get_record(make_record("phq9", 12))
        machine.transition(record, LifecycleState.SOFT_DELETED, NOW, reason="oops")
        record = store.get_record(record.id)

        applied, _ = machine.transition(record, LifecycleState.ACTIVE, NOW + timedelta(days=1))

        assert applied is True
        record = store.get_record(record.id)
        assert record.lifecycle_state == LifecycleState.ACTIVE
        assert record.deleted_at is None
        assert record.deletion_reason is None
        assert record.version == 3

    def test_permanent_delete_removes_row(self, machine, store, make_record):
        record_id = make_record("phq9", 12)
        record = store.get_record(record_id)

        applied, _ = machine.transition(record, LifecycleState.PERMANENTLY_DELETED, NOW)

        assert applied is True
        assert store.get_record(record_id) is None

    def test_stale_version_is_not_transitioned(self, machine, store, db_session, make_record):
        record_id = make_record("phq9", 12)
        record = store.get_record(record_id)

        # Another writer moved the row after we read it
        db_session.query(AssessmentRecordDB).filter(AssessmentRecordDB.id == record_id).update(
            {AssessmentRecordDB.version: AssessmentRecordDB.version + 1},
            synchronize_session=False,
        )

        applied, message = machine.transition(record, LifecycleState.SOFT_DELETED, NOW)

        assert applied is False
        assert "changed concurrently" in message
        db_session.expire_all()
        assert store.get_record(record_id).lifecycle_state == LifecycleState.ACTIVE
