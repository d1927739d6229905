"""
Profile Service

Rebuilds the derived aggregates (user assessment profile and the overall
assessment rollup) from the currently active records. Both aggregates are
overwritten in place; there is no history of previous versions.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from ...models.catalog import get_instrument
from ...models.db_models import AssessmentRecordDB
from ..mapping import SEVERITY_RANK, band_to_level, latest_by_type, select_dimension_sources
from .state_machine import snapshot_visible_states
from .store import AssessmentStore


logger = logging.getLogger(__name__)


RISK_BY_RANK = {
    4: "critical",
    3: "high",
    2: "moderate",
    1: "low",
    0: "low",
}

# (assessment type, predicate on score, approaches)
APPROACH_RULES = [
    ("phq9", lambda score: score >= 10, ["cbt", "behavioral_activation"]),
    ("gad7", lambda score: score >= 10, ["mindfulness", "exposure_therapy"]),
    ("pss10", lambda score: score >= 27, ["stress_management", "relaxation_training"]),
    ("who5", lambda score: score < 13, ["positive_psychology", "wellbeing_coaching"]),
    ("pcl5", lambda score: score >= 34, ["trauma_focused"]),
    ("ace", lambda score: score >= 4, ["trauma_focused"]),
]


def derive_risk_level(latest: Dict[str, AssessmentRecordDB]) -> Optional[str]:
    if not latest:
        return None
    ranks = [SEVERITY_RANK.get((r.severity_band or "").lower(), 0) for r in latest.values()]
    return RISK_BY_RANK[max(ranks)]


def derive_primary_concerns(latest: Dict[str, AssessmentRecordDB]) -> List[str]:
    """Dimensions at high or moderate level, most severe first."""
    concerns = []
    for order, (dimension, record) in enumerate(select_dimension_sources(latest)):
        instrument = get_instrument(record.assessment_type)
        level = band_to_level(record.severity_band, instrument.fallback_level)
        if level in ("high", "moderate"):
            rank = SEVERITY_RANK.get((record.severity_band or "").lower(), 2)
            concerns.append((-rank, order, dimension))
    return [dimension for _, _, dimension in sorted(concerns)]


def derive_therapeutic_approaches(latest: Dict[str, AssessmentRecordDB]) -> List[str]:
    approaches: List[str] = []
    for assessment_type, predicate, hints in APPROACH_RULES:
        record = latest.get(assessment_type)
        if record is None or not predicate(record.score):
            continue
        for hint in hints:
            if hint not in approaches:
                approaches.append(hint)
    return approaches


class ProfileService:
    """
    Usage:
        service = ProfileService(store)
        service.recompute_profile(user_id, now)
        service.recompute_overall(user_id, now)
    """

    def __init__(self, store: AssessmentStore):
        self.store = store

    def _latest_active(self, user_id: str) -> Dict[str, AssessmentRecordDB]:
        return latest_by_type(self.store.list_records(user_id, states=snapshot_visible_states()))

    def recompute_profile(self, user_id: str, now: datetime) -> bool:
        """
        Rebuild the profile from the active set, or clear it on full reset.

        last_assessed_at never moves backwards while any record is active.
        Returns True when a profile row was written or removed.
        """
        latest = self._latest_active(user_id)
        if not latest:
            cleared = self.store.delete_profile(user_id)
            if cleared:
                logger.info(f"Cleared assessment profile for user {user_id}: no active assessments")
            return cleared

        previous = self.store.get_profile(user_id)
        newest_taken_at = max(r.taken_at for r in latest.values())
        last_assessed_at = newest_taken_at
        if previous is not None and previous.last_assessed_at and previous.last_assessed_at > newest_taken_at:
            last_assessed_at = previous.last_assessed_at

        profile_data = {}
        for dimension, record in select_dimension_sources(latest):
            instrument = get_instrument(record.assessment_type)
            profile_data[dimension] = {
                "assessment_type": record.assessment_type,
                "level": band_to_level(record.severity_band, instrument.fallback_level),
                "score": record.score,
                "max_score": instrument.max_score,
            }

        self.store.upsert_profile(
            user_id,
            last_assessed_at=last_assessed_at,
            risk_level=derive_risk_level(latest),
            primary_concerns=derive_primary_concerns(latest),
            therapeutic_approaches=derive_therapeutic_approaches(latest),
            profile_data=profile_data,
        )
        return True

    def recompute_overall(self, user_id: str, now: datetime) -> int:
        """Overwrite the overall rollup from the active set. Returns rows touched."""
        latest = self._latest_active(user_id)
        if not latest:
            return self.store.delete_overall_assessments(user_id)

        analysis = {
            assessment_type: {
                "score": record.score,
                "severity_band": record.severity_band,
                "taken_at": record.taken_at.isoformat(),
            }
            for assessment_type, record in sorted(latest.items())
        }
        self.store.upsert_overall_assessment(
            user_id,
            included_assessments=sorted(latest),
            risk_level=derive_risk_level(latest),
            analysis=analysis,
            generated_at=now,
        )
        return 1
