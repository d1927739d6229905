"""Assessment Lifecycle Service - API Routers"""
from .assessments import router as assessments_router
from .scheduler import router as scheduler_router

__all__ = [
    "assessments_router",
    "scheduler_router",
]
