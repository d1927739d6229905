"""
Assessment Lifecycle Service - SQLAlchemy ORM Models
Persistent storage for assessment records, derived aggregates and the deletion audit log
"""
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4
from sqlalchemy import (
    Column, String, Integer, DateTime, JSON, Boolean, Index, CheckConstraint,
    Enum as SQLEnum,
)
from ..database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid4())


# =============================================================================
# ENUMS FOR THE LIFECYCLE SYSTEM
# =============================================================================

class LifecycleState(str, Enum):
    """States in the assessment record lifecycle."""
    ACTIVE = "ACTIVE"
    SOFT_DELETED = "SOFT_DELETED"
    PERMANENTLY_DELETED = "PERMANENTLY_DELETED"


class SeverityBand(str, Enum):
    """Instrument-defined categorical result."""
    NORMAL = "normal"
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"
    CRITICAL = "critical"


class DeletionAction(str, Enum):
    """Audit log actions."""
    SOFT_DELETED = "soft_deleted"
    PERMANENTLY_DELETED = "permanently_deleted"
    BULK_SOFT_DELETED = "bulk_soft_deleted"
    BULK_PERMANENTLY_DELETED = "bulk_permanently_deleted"
    RESTORED = "restored"
    PURGED = "purged"


# =============================================================================
# ASSESSMENT RECORDS
# =============================================================================

class AssessmentRecordDB(Base):
    """
    One completed assessment instance.

    score, responses and taken_at are write-once; only the lifecycle columns
    change after creation, and only through the lifecycle state machine.
    A permanently deleted record is physically removed, so rows are only ever
    ACTIVE or SOFT_DELETED.
    """
    __tablename__ = "assessment_records"
    __table_args__ = (
        Index("idx_assessment_records_user_type_state", "user_id", "assessment_type", "lifecycle_state"),
        CheckConstraint(
            "(lifecycle_state = 'ACTIVE' AND deleted_at IS NULL AND deletion_reason IS NULL)"
            " OR (lifecycle_state <> 'ACTIVE' AND deleted_at IS NOT NULL)",
            name="ck_assessment_records_deletion_markers",
        ),
    )

    id = Column(String(36), primary_key=True, default=new_id)  # UUID
    user_id = Column(String(36), nullable=False, index=True)
    assessment_type = Column(String(20), nullable=False, index=True)  # catalog id, e.g. phq9
    title = Column(String(255), nullable=False)

    score = Column(Integer, nullable=False)
    severity_band = Column(String(20), nullable=True)  # SeverityBand value; unknown values tolerated
    responses = Column(JSON, nullable=False, default=dict)  # question id -> answer
    # description, recommendations, insights, next_steps, manifestations
    structured_result = Column(JSON, nullable=False, default=dict)
    taken_at = Column(DateTime, nullable=False, index=True)

    lifecycle_state = Column(SQLEnum(LifecycleState), nullable=False, default=LifecycleState.ACTIVE, index=True)
    deleted_at = Column(DateTime, nullable=True)
    deletion_reason = Column(String(500), nullable=True)

    # Optimistic concurrency: every transition is update-where-version-matches
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# =============================================================================
# DERIVED AGGREGATES (owned by the lifecycle services, never user-editable)
# =============================================================================

class UserAssessmentProfileDB(Base):
    """Per-user aggregate profile derived from the active record set."""
    __tablename__ = "user_assessment_profiles"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), unique=True, nullable=False, index=True)

    last_assessed_at = Column(DateTime, nullable=True)
    risk_level = Column(String(20), nullable=True)  # low, moderate, high, critical
    primary_concerns = Column(JSON, nullable=False, default=list)  # dimension keys, most severe first
    therapeutic_approaches = Column(JSON, nullable=False, default=list)
    profile_data = Column(JSON, nullable=False, default=dict)  # dimension -> {level, score, assessment_type}

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class OverallAssessmentDB(Base):
    """Overall-assessment rollup. One row per user, overwritten on recompute."""
    __tablename__ = "overall_assessments"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), unique=True, nullable=False, index=True)

    included_assessments = Column(JSON, nullable=False, default=list)
    risk_level = Column(String(20), nullable=True)
    analysis = Column(JSON, nullable=False, default=dict)  # type -> {score, severity_band, taken_at}

    generated_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# =============================================================================
# AUDIT LOG (append-only)
# =============================================================================

class DeletionEventDB(Base):
    """Immutable record of every lifecycle mutation."""
    __tablename__ = "deletion_events"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    action = Column(SQLEnum(DeletionAction), nullable=False)
    assessment_type = Column(String(20), nullable=True)  # NULL for bulk operations
    reason = Column(String(500), nullable=True)
    permanent = Column(Boolean, nullable=False, default=False)
    affected_count = Column(Integer, nullable=False, default=0)
    event_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)


# =============================================================================
# SNAPSHOT CACHE
# =============================================================================

class SnapshotCacheDB(Base):
    """
    Short-lived cache of a user's computed snapshot.

    Deleted inside the same transaction as any lifecycle mutation for the
    user, so a committed mutation is never followed by a stale read.
    """
    __tablename__ = "snapshot_cache"

    user_id = Column(String(36), primary_key=True)
    payload = Column(JSON, nullable=False)
    computed_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)
