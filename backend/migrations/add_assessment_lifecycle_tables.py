"""
Migration: Add assessment lifecycle tables.

Creates 5 tables:
1. assessment_records - Completed assessments with lifecycle state + version
2. user_assessment_profiles - Derived per-user profile
3. overall_assessments - Derived overall rollup (one row per user)
4. deletion_events - Append-only audit log of lifecycle mutations
5. snapshot_cache - Short-TTL snapshot cache, invalidated by mutations

Permanently deleted records are removed, so assessment_records only ever
holds ACTIVE and SOFT_DELETED rows.
"""
from sqlalchemy import create_engine, text
import os

# Use same DB URL pattern as main app
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/assessments"
)


def table_exists(conn, table_name: str) -> bool:
    """Check if a table exists in the database."""
    result = conn.execute(text("""
        SELECT EXISTS (
            SELECT FROM information_schema.tables
            WHERE table_name = :table_name
        )
    """), {"table_name": table_name})
    return result.fetchone()[0]


def run_migration():
    """Create all assessment lifecycle tables."""
    engine = create_engine(DATABASE_URL)

    with engine.connect() as conn:
        # =================================================================
        # TABLE 1: assessment_records
        # =================================================================
        if table_exists(conn, "assessment_records"):
            print("assessment_records table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE assessment_records (
                    id VARCHAR(36) PRIMARY KEY,
                    user_id VARCHAR(36) NOT NULL,
                    assessment_type VARCHAR(20) NOT NULL,
                    title VARCHAR(255) NOT NULL,
                    score INTEGER NOT NULL,
                    severity_band VARCHAR(20),
                    responses JSON NOT NULL DEFAULT '{}',
                    structured_result JSON NOT NULL DEFAULT '{}',
                    taken_at TIMESTAMP NOT NULL,
                    lifecycle_state VARCHAR(19) NOT NULL DEFAULT 'ACTIVE',
                    deleted_at TIMESTAMP,
                    deletion_reason VARCHAR(500),
                    version INTEGER NOT NULL DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    CONSTRAINT ck_assessment_records_state CHECK (
                        lifecycle_state IN ('ACTIVE', 'SOFT_DELETED', 'PERMANENTLY_DELETED')
                    ),
                    CONSTRAINT ck_assessment_records_deletion_markers CHECK (
                        (lifecycle_state = 'ACTIVE' AND deleted_at IS NULL AND deletion_reason IS NULL)
                        OR (lifecycle_state <> 'ACTIVE' AND deleted_at IS NOT NULL)
                    )
                )
            """))
            conn.execute(text("""
                CREATE INDEX idx_assessment_records_user_type_state
                ON assessment_records(user_id, assessment_type, lifecycle_state)
            """))
            conn.execute(text("""
                CREATE INDEX idx_assessment_records_taken_at ON assessment_records(taken_at)
            """))
            conn.execute(text("""
                CREATE INDEX idx_assessment_records_soft_deleted
                ON assessment_records(deleted_at) WHERE lifecycle_state = 'SOFT_DELETED'
            """))
            print("Created assessment_records table")

        # =================================================================
        # TABLE 2: user_assessment_profiles
        # =================================================================
        if table_exists(conn, "user_assessment_profiles"):
            print("user_assessment_profiles table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE user_assessment_profiles (
                    id VARCHAR(36) PRIMARY KEY,
                    user_id VARCHAR(36) NOT NULL UNIQUE,
                    last_assessed_at TIMESTAMP,
                    risk_level VARCHAR(20),
                    primary_concerns JSON NOT NULL DEFAULT '[]',
                    therapeutic_approaches JSON NOT NULL DEFAULT '[]',
                    profile_data JSON NOT NULL DEFAULT '{}',
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            print("Created user_assessment_profiles table")

        # =================================================================
        # TABLE 3: overall_assessments
        # =================================================================
        if table_exists(conn, "overall_assessments"):
            print("overall_assessments table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE overall_assessments (
                    id VARCHAR(36) PRIMARY KEY,
                    user_id VARCHAR(36) NOT NULL UNIQUE,
                    included_assessments JSON NOT NULL DEFAULT '[]',
                    risk_level VARCHAR(20),
                    analysis JSON NOT NULL DEFAULT '{}',
                    generated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            print("Created overall_assessments table")

        # =================================================================
        # TABLE 4: deletion_events (append-only)
        # =================================================================
        if table_exists(conn, "deletion_events"):
            print("deletion_events table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE deletion_events (
                    id VARCHAR(36) PRIMARY KEY,
                    user_id VARCHAR(36) NOT NULL,
                    action VARCHAR(24) NOT NULL,
                    assessment_type VARCHAR(20),
                    reason VARCHAR(500),
                    permanent BOOLEAN NOT NULL DEFAULT FALSE,
                    affected_count INTEGER NOT NULL DEFAULT 0,
                    event_metadata JSON,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """))
            conn.execute(text("""
                CREATE INDEX idx_deletion_events_user_created ON deletion_events(user_id, created_at)
            """))
            print("Created deletion_events table")

        # =================================================================
        # TABLE 5: snapshot_cache
        # =================================================================
        if table_exists(conn, "snapshot_cache"):
            print("snapshot_cache table already exists")
        else:
            conn.execute(text("""
                CREATE TABLE snapshot_cache (
                    user_id VARCHAR(36) PRIMARY KEY,
                    payload JSON NOT NULL,
                    computed_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
                    expires_at TIMESTAMP NOT NULL
                )
            """))
            print("Created snapshot_cache table")

        conn.commit()
        print("Migration complete: assessment lifecycle tables")


if __name__ == "__main__":
    run_migration()
