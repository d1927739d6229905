"""
Scheduler API Routes

Internal endpoints for system-automatic tasks.
Grace period sweep of expired soft deletes.
"""
from fastapi import APIRouter, Depends, HTTPException, Header
from sqlalchemy.orm import Session

from ..config import INTERNAL_API_KEY
from ..database import get_db
from ..services.lifecycle import GracePeriodSweeper


router = APIRouter(prefix="/internal", tags=["scheduler"])


async def verify_internal_key(x_internal_key: str = Header(...)):
    """Verify internal API key for scheduler endpoints."""
    if x_internal_key != INTERNAL_API_KEY:
        raise HTTPException(status_code=403, detail="Invalid internal API key")
    return True


@router.post("/grace-period-sweep", response_model=dict)
async def run_grace_period_sweep(
    batch_size: int = 500,
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """
    Purge soft-deleted assessments whose grace period has expired.

    System-automatic - no user confirmation required.
    """
    result = GracePeriodSweeper(db).run(batch_size=batch_size)
    if result.get("status") == "error":
        raise HTTPException(status_code=503 if result.get("retryable") else 500, detail=result)
    return result
