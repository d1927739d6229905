"""
Assessment Lifecycle Service - FastAPI Application

Main entry point for the assessment lifecycle backend.

Architecture:
- AssessmentStore → the only reader/writer of the assessment tables
- LifecycleStateMachine → ACTIVE / SOFT_DELETED / PERMANENTLY_DELETED
- AssessmentLifecycleManager → delete, restore, summaries (user requests)
- GracePeriodSweeper → purge of expired soft deletes (scheduler)
- SnapshotAggregator → derived wellness snapshot over ACTIVE records
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import GRACE_PERIOD_DAYS, LOG_LEVEL
from .routers import assessments_router, scheduler_router
from .database import init_db


logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    init_db()
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title="Assessment Lifecycle Service",
    description="""
    Assessment Lifecycle Service - Deletion, Restore and Snapshot API

    Users can soft delete, restore or permanently delete their completed
    self-report assessments. Derived aggregates (profile, overall rollup,
    snapshot) always reflect ACTIVE records only.

    ## Lifecycle
    1. **Soft delete**: hidden from aggregation, restorable for the grace period
    2. **Restore**: back to ACTIVE while the grace period is open
    3. **Permanent delete / purge**: irreversible

    ## Key Principles
    - Every mutation recomputes aggregates in the same transaction
    - Every mutation is written to the deletion audit log
    - Snapshots are non-diagnostic and explain which assessments they used
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(assessments_router)
app.include_router(scheduler_router)


@app.get("/")
async def root():
    """Root endpoint - API information."""
    return {
        "name": "Assessment Lifecycle Service",
        "version": "1.0.0",
        "docs": "/docs",
        "lifecycle": {
            "states": ["ACTIVE", "SOFT_DELETED", "PERMANENTLY_DELETED"],
            "grace_period_days": GRACE_PERIOD_DAYS,
        }
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": "1.0.0"}


# For running with: python -m assessment_service.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
