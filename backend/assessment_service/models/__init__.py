"""Assessment Lifecycle Service - Data Models"""
from .db_models import (
    # Enums
    LifecycleState, SeverityBand, DeletionAction,
    # Tables
    AssessmentRecordDB, UserAssessmentProfileDB, OverallAssessmentDB,
    DeletionEventDB, SnapshotCacheDB,
)
from .lifecycle import DeletionResult, RestoreResult, SnapshotDimension, Snapshot
from .catalog import (
    InstrumentDefinition, ScoreRange, INSTRUMENTS, DIMENSION_ORDER,
    get_instrument, is_known_assessment_type, validate_assessment_type,
    instrument_max_score, severity_for_score,
)

__all__ = [
    "LifecycleState", "SeverityBand", "DeletionAction",
    "AssessmentRecordDB", "UserAssessmentProfileDB", "OverallAssessmentDB",
    "DeletionEventDB", "SnapshotCacheDB",
    "DeletionResult", "RestoreResult", "SnapshotDimension", "Snapshot",
    "InstrumentDefinition", "ScoreRange", "INSTRUMENTS", "DIMENSION_ORDER",
    "get_instrument", "is_known_assessment_type", "validate_assessment_type",
    "instrument_max_score", "severity_for_score",
]
