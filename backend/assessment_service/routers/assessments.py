"""
Assessment Lifecycle API Routes

Delete, restore and inspect the caller's own assessment records, and read
the derived wellness snapshot. The caller identity comes from the bearer
token; every operation is scoped to that user.
"""
from typing import Optional, List
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user_id
from ..database import get_db
from ..errors import ValidationError
from ..models.catalog import validate_assessment_type
from ..models.lifecycle import DeletionResult, RestoreResult
from ..services.lifecycle import AssessmentLifecycleManager
from ..services.snapshot import SnapshotAggregator


router = APIRouter(prefix="/assessments", tags=["assessments"])


# error_kind -> HTTP status
ERROR_STATUS = {
    "validation": 400,
    "grace_period_expired": 400,
    "not_found": 404,
    "partial_failure": 409,
    "store_error": 500,
    "transient_store": 503,
}


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class DeleteAllRequest(BaseModel):
    """Body for bulk deletion. Soft bulk deletion must carry the confirmation value."""
    confirmation: Optional[str] = Field(None, description='Must equal "DELETE_ALL_ASSESSMENTS" unless permanent=true')


class DeletionResponse(BaseModel):
    success: bool
    affected_count: int
    message: str
    affected_data: dict


class RestoreResponse(BaseModel):
    success: bool
    restored_count: int
    message: str


class CanRestoreResponse(BaseModel):
    assessment_type: str
    can_restore: bool


class DeletionEventResponse(BaseModel):
    id: str
    action: str
    assessment_type: Optional[str]
    reason: Optional[str]
    permanent: bool
    affected_count: int
    created_at: Optional[str]
    metadata: Optional[dict]


def raise_for_failure(result, overrides: Optional[dict] = None):
    """Turn a failed lifecycle result into the matching HTTP error."""
    if result.success:
        return
    status_map = {**ERROR_STATUS, **(overrides or {})}
    raise HTTPException(
        status_code=status_map.get(result.error_kind, 400),
        detail=result.to_dict(),
    )


def require_known_type(assessment_type: str):
    try:
        validate_assessment_type(assessment_type)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.message)


# =============================================================================
# USER-AUTHORIZED ENDPOINTS
# =============================================================================

@router.delete("/all", response_model=DeletionResponse)
async def delete_all_assessments(
    request: Optional[DeleteAllRequest] = None,
    permanent: bool = Query(False, description="Permanently delete instead of soft delete"),
    reason: Optional[str] = Query(None, max_length=500, description="Reason recorded in the audit log"),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """
    Delete all of the caller's assessments.

    Soft deletion requires confirmation "DELETE_ALL_ASSESSMENTS" in the body.
    A partial failure answers 409 with the number of records actually moved.
    """
    manager = AssessmentLifecycleManager(db)
    result: DeletionResult = manager.delete_all(
        user_id,
        permanent=permanent,
        reason=reason,
        confirmation_token=request.confirmation if request else None,
    )
    raise_for_failure(result)
    return result.to_dict()


@router.delete("/{assessment_type}", response_model=DeletionResponse)
async def delete_assessment(
    assessment_type: str,
    cascade: bool = Query(False, description="Also recompute overall-assessment rollups"),
    permanent: bool = Query(False, description="Permanently delete instead of soft delete"),
    reason: Optional[str] = Query(None, max_length=500, description="Reason recorded in the audit log"),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """
    Delete the caller's records of one assessment type.

    Soft deletes are restorable within the grace period.
    """
    manager = AssessmentLifecycleManager(db)
    result: DeletionResult = manager.delete_individual(
        user_id,
        assessment_type,
        cascade=cascade,
        permanent=permanent,
        reason=reason,
    )
    raise_for_failure(result)
    return result.to_dict()


@router.post("/{assessment_type}/restore", response_model=RestoreResponse)
async def restore_assessment(
    assessment_type: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Restore the most recent soft-deleted record of a type."""
    manager = AssessmentLifecycleManager(db)
    result: RestoreResult = manager.restore(user_id, assessment_type)
    # Nothing restorable is a bad request here, not a missing resource
    raise_for_failure(result, overrides={"not_found": 400})
    return result.to_dict()


@router.get("/{assessment_type}/can-restore", response_model=CanRestoreResponse)
async def can_restore_assessment(
    assessment_type: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    require_known_type(assessment_type)
    manager = AssessmentLifecycleManager(db)
    return {
        "assessment_type": assessment_type,
        "can_restore": manager.can_restore(user_id, assessment_type),
    }


# =============================================================================
# READ-ONLY ENDPOINTS
# =============================================================================

@router.get("/summary", response_model=dict)
async def get_assessment_summary(
    include_deleted: bool = Query(False, description="Include the deletion history"),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Active and soft-deleted assessments, profile and rollups, read fresh."""
    manager = AssessmentLifecycleManager(db)
    summary = manager.get_summary(user_id, include_deleted=include_deleted)
    if not summary["success"]:
        raise HTTPException(status_code=ERROR_STATUS.get(summary["error_kind"], 500), detail=summary["message"])
    return summary


@router.get("/deletion-history", response_model=List[DeletionEventResponse])
async def get_deletion_history(
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Deletion and restore audit trail, newest first."""
    manager = AssessmentLifecycleManager(db)
    return manager.get_deletion_history(user_id, limit=limit)


@router.get("/snapshot", response_model=dict)
async def get_snapshot(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """
    Wellness snapshot derived from the latest active record of each type.

    Returns status "none" with a null snapshot when nothing is assessed yet.
    """
    lookup = SnapshotAggregator(db).get_snapshot(user_id)
    if lookup.status == "unavailable":
        raise HTTPException(status_code=503, detail=lookup.message)
    return lookup.to_dict()
