"""
Lifecycle and snapshot result types.

Every public lifecycle operation returns one of these instead of raising;
`success` plus the count field tells success apart from each failure kind.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..errors import AssessmentLifecycleError


SNAPSHOT_NOTES = "Non-diagnostic. For support, consider professional care."


@dataclass
class DeletionResult:
    success: bool
    affected_count: int
    message: str
    error_kind: Optional[str] = None
    retryable: bool = False
    affected_data: Dict[str, Any] = field(default_factory=lambda: {
        "assessment_results": 0,
        "user_profile": False,
        "overall_assessments": 0,
    })

    @classmethod
    def from_error(cls, error: AssessmentLifecycleError) -> "DeletionResult":
        result = cls(
            success=False,
            affected_count=error.affected_count,
            message=error.message,
            error_kind=error.kind,
            retryable=error.retryable,
        )
        result.affected_data["assessment_results"] = error.affected_count
        return result

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RestoreResult:
    success: bool
    restored_count: int
    message: str
    error_kind: Optional[str] = None
    retryable: bool = False

    @classmethod
    def from_error(cls, error: AssessmentLifecycleError) -> "RestoreResult":
        return cls(
            success=False,
            restored_count=0,
            message=error.message,
            error_kind=error.kind,
            retryable=error.retryable,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SnapshotDimension:
    key: str
    level: str
    evidence: List[str]


@dataclass
class Snapshot:
    """Derived, disposable summary of a user's active assessment state."""
    as_of: datetime
    dimensions: List[SnapshotDimension]
    confidence: str  # low | medium | high
    assessments_used: List[str]
    notes: str = SNAPSHOT_NOTES

    def to_dict(self) -> Dict[str, Any]:
        as_of = self.as_of.isoformat()
        return {
            "as_of": as_of,
            "dimensions": [asdict(d) for d in self.dimensions],
            "confidence": self.confidence,
            "assessments_used": list(self.assessments_used),
            "notes": self.notes,
            "explainability": {
                "assessments_used": list(self.assessments_used),
                "last_updated": as_of,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        return cls(
            as_of=datetime.fromisoformat(data["as_of"]),
            dimensions=[SnapshotDimension(**d) for d in data["dimensions"]],
            confidence=data["confidence"],
            assessments_used=list(data["assessments_used"]),
            notes=data.get("notes", SNAPSHOT_NOTES),
        )
