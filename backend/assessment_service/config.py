"""
Assessment Lifecycle Service - Configuration

All tunables are read from the environment once, at import time.
"""
import os

# Database URL - local PostgreSQL by default, SQLite accepted for dev/tests
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/assessments"
)

# Every persistence round-trip is bounded by this timeout
STORE_TIMEOUT_SECONDS = float(os.getenv("STORE_TIMEOUT_SECONDS", "5"))

# Lifecycle windows
GRACE_PERIOD_DAYS = int(os.getenv("GRACE_PERIOD_DAYS", "30"))

# Snapshot confidence windows
FRESH_WITHIN_DAYS = int(os.getenv("FRESH_WITHIN_DAYS", "30"))
STALE_AFTER_DAYS = int(os.getenv("STALE_AFTER_DAYS", "90"))

# Snapshot cache TTL (bounded staleness)
SNAPSHOT_CACHE_TTL_SECONDS = int(os.getenv("SNAPSHOT_CACHE_TTL_SECONDS", "300"))

# Auth
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "assessment-service-secret-key-change-in-production")
INTERNAL_API_KEY = os.getenv("INTERNAL_API_KEY", "scheduler-internal-key-change-in-production")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Required body value for bulk soft deletion
BULK_DELETE_CONFIRMATION = "DELETE_ALL_ASSESSMENTS"
