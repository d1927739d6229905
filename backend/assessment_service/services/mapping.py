"""
Shared selection and mapping helpers for the profile and snapshot services.
"""
from typing import Dict, Iterable, List, Optional, Tuple

from ..models.catalog import DIMENSION_ORDER, is_known_assessment_type
from ..models.db_models import AssessmentRecordDB, SeverityBand


# Severity band -> normalized dimension level
BAND_TO_LEVEL = {
    SeverityBand.CRITICAL.value: "high",
    SeverityBand.SEVERE.value: "high",
    SeverityBand.MODERATE.value: "moderate",
    SeverityBand.MILD.value: "mild",
    SeverityBand.NORMAL.value: "low",
}

SEVERITY_RANK = {
    SeverityBand.NORMAL.value: 0,
    SeverityBand.MILD.value: 1,
    SeverityBand.MODERATE.value: 2,
    SeverityBand.SEVERE.value: 3,
    SeverityBand.CRITICAL.value: 4,
}


def band_to_level(severity_band: Optional[str], fallback: str) -> str:
    """Map a severity band to a level; unknown or missing bands use the fallback."""
    if not severity_band:
        return fallback
    return BAND_TO_LEVEL.get(severity_band.lower(), fallback)


def latest_by_type(records: Iterable[AssessmentRecordDB]) -> Dict[str, AssessmentRecordDB]:
    """Keep the record with the greatest taken_at per assessment type."""
    latest: Dict[str, AssessmentRecordDB] = {}
    for record in records:
        current = latest.get(record.assessment_type)
        if current is None or record.taken_at > current.taken_at:
            latest[record.assessment_type] = record
    return latest


def select_dimension_sources(latest: Dict[str, AssessmentRecordDB]) -> List[Tuple[str, AssessmentRecordDB]]:
    """
    One (dimension, record) pair per dimension, in snapshot order.

    Where several instruments feed the same dimension the first one present
    in DIMENSION_ORDER wins. Types outside the catalog never contribute.
    """
    sources = []
    for dimension, candidates in DIMENSION_ORDER:
        for assessment_type in candidates:
            record = latest.get(assessment_type)
            if record is not None and is_known_assessment_type(assessment_type):
                sources.append((dimension, record))
                break
    return sources
