"""
Snapshot Aggregator

Derives an explainable wellness snapshot from a user's active assessment
records:

1. Keep the latest record (by taken_at) per assessment type.
2. Map each severity band to a dimension level (critical/severe -> high,
   moderate -> moderate, mild -> mild, normal -> low; unknown bands use the
   instrument's fallback level).
3. One dimension per instrument dimension, with evidence
   "<display>:<score>/<instrument max>".
4. Confidence from coverage and recency.
5. assessments_used lists the contributing instruments, one per dimension.
6. No active records -> no snapshot (None), never an empty snapshot.

build_snapshot() is pure. SnapshotAggregator adds store access and caching.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ...config import FRESH_WITHIN_DAYS, STALE_AFTER_DAYS, SNAPSHOT_CACHE_TTL_SECONDS
from ...errors import AssessmentLifecycleError
from ...models.catalog import get_instrument, instrument_max_score
from ...models.db_models import AssessmentRecordDB, utcnow
from ...models.lifecycle import Snapshot, SnapshotDimension
from ..lifecycle.state_machine import snapshot_visible_states
from ..lifecycle.store import AssessmentStore
from ..mapping import band_to_level, latest_by_type, select_dimension_sources
from .snapshot_cache import SnapshotCache


logger = logging.getLogger(__name__)

HIGH_CONFIDENCE_MIN_DIMENSIONS = 4
LOW_CONFIDENCE_MAX_DIMENSIONS = 1


def evidence_string(record: AssessmentRecordDB) -> str:
    instrument = get_instrument(record.assessment_type)
    return f"{instrument.display_name}:{record.score}/{instrument_max_score(record.assessment_type)}"


def compute_confidence(
    taken_ats: list,
    now: datetime,
    fresh_within_days: int = FRESH_WITHIN_DAYS,
    stale_after_days: int = STALE_AFTER_DAYS,
) -> str:
    """
    high: at least 4 dimensions, all younger than the fresh window.
    low: fewer than 2 dimensions, or every contributing record is stale.
    medium: everything else.
    """
    ages = [now - taken_at for taken_at in taken_ats]
    if len(ages) <= LOW_CONFIDENCE_MAX_DIMENSIONS:
        return "low"
    if all(age > timedelta(days=stale_after_days) for age in ages):
        return "low"
    if len(ages) >= HIGH_CONFIDENCE_MIN_DIMENSIONS and all(age < timedelta(days=fresh_within_days) for age in ages):
        return "high"
    return "medium"


def build_snapshot(
    records: Iterable[AssessmentRecordDB],
    now: datetime,
    fresh_within_days: int = FRESH_WITHIN_DAYS,
    stale_after_days: int = STALE_AFTER_DAYS,
) -> Optional[Snapshot]:
    """Pure snapshot derivation. Non-active records in the input are ignored."""
    visible = snapshot_visible_states()
    active = [r for r in records if r.lifecycle_state in visible]
    if not active:
        return None

    sources = select_dimension_sources(latest_by_type(active))
    if not sources:
        return None

    dimensions = []
    assessments_used = []
    taken_ats = []
    for dimension, record in sources:
        instrument = get_instrument(record.assessment_type)
        dimensions.append(SnapshotDimension(
            key=dimension,
            level=band_to_level(record.severity_band, instrument.fallback_level),
            evidence=[evidence_string(record)],
        ))
        assessments_used.append(instrument.display_name)
        taken_ats.append(record.taken_at)

    return Snapshot(
        as_of=now,
        dimensions=dimensions,
        confidence=compute_confidence(taken_ats, now, fresh_within_days, stale_after_days),
        assessments_used=assessments_used,
    )


@dataclass
class SnapshotLookup:
    """Outcome of a snapshot request: available, none (nothing assessed) or unavailable."""
    status: str
    snapshot: Optional[Snapshot] = None
    message: str = ""
    retryable: bool = False

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "snapshot": self.snapshot.to_dict() if self.snapshot else None,
            "message": self.message,
            "retryable": self.retryable,
        }


class SnapshotAggregator:
    """
    Usage:
        aggregator = SnapshotAggregator(db)
        lookup = aggregator.get_snapshot(user_id)
    """

    def __init__(self, db: Session, cache_ttl_seconds: int = SNAPSHOT_CACHE_TTL_SECONDS):
        self.store = AssessmentStore(db)
        self.cache = SnapshotCache(self.store, ttl_seconds=cache_ttl_seconds)

    def compute_snapshot(self, user_id: str, now: Optional[datetime] = None) -> Optional[Snapshot]:
        """Always read the store, never the cache."""
        now = now or utcnow()
        records = self.store.list_records(user_id, states=snapshot_visible_states())
        return build_snapshot(records, now)

    def get_snapshot(self, user_id: str, now: Optional[datetime] = None) -> SnapshotLookup:
        now = now or utcnow()
        try:
            cached = self.cache.get(user_id, now)
            if cached is not None:
                return SnapshotLookup(status="available", snapshot=cached, message="Snapshot served from cache")

            snapshot = self.compute_snapshot(user_id, now)
            if snapshot is None:
                return SnapshotLookup(status="none", message="No snapshot available: no active assessments")

            self.cache.put(user_id, snapshot, now)
            self.store.commit()
            logger.info(f"Computed snapshot for user {user_id}: {len(snapshot.dimensions)} dimensions, confidence={snapshot.confidence}")
            return SnapshotLookup(status="available", snapshot=snapshot, message="Snapshot computed")
        except AssessmentLifecycleError as e:
            logger.error(f"Snapshot unavailable for user {user_id}: {e.message}")
            return SnapshotLookup(status="unavailable", message=e.message, retryable=e.retryable)
