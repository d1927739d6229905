#!/usr/bin/env python3
"""
Assessment Seed Script
Creates a realistic set of completed assessments for one user, for local
development of the lifecycle and snapshot endpoints.

Usage:
    python -m scripts.seed_assessments <user_id> [days_ago]

Example:
    python -m scripts.seed_assessments 7b7f7c1e-0000-4000-8000-000000000001 10
"""
import sys
import os
from datetime import timedelta

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from assessment_service.database import SessionLocal, engine, Base
from assessment_service.errors import AssessmentLifecycleError
from assessment_service.models import db_models  # noqa: F401
from assessment_service.models.catalog import get_instrument, severity_for_score
from assessment_service.models.db_models import utcnow
from assessment_service.services.lifecycle import AssessmentStore, ProfileService


# (assessment type, score, age offset in days relative to days_ago)
SEED_ASSESSMENTS = [
    ("phq9", 12, 0),
    ("gad7", 8, 0),
    ("pss10", 22, 2),
    ("who5", 11, 5),
    ("cd-risc", 27, 7),
]


def seed_assessments(user_id: str, days_ago: int) -> bool:
    """Insert the seed assessments and rebuild the user's profile."""
    # Ensure tables exist
    Base.metadata.create_all(bind=engine)

    db: Session = SessionLocal()
    store = AssessmentStore(db)
    try:
        now = utcnow()
        for assessment_type, score, offset in SEED_ASSESSMENTS:
            instrument = get_instrument(assessment_type)
            store.add_record(
                user_id=user_id,
                assessment_type=assessment_type,
                title=instrument.title,
                score=score,
                severity_band=severity_for_score(assessment_type, score),
                taken_at=now - timedelta(days=days_ago + offset),
                structured_result={"description": f"Seeded {instrument.display_name} result"},
            )
            print(f"  {instrument.display_name}: {score}/{instrument.max_score}")

        ProfileService(store).recompute_profile(user_id, now)
        store.commit()

        print(f"Seeded {len(SEED_ASSESSMENTS)} assessments for user {user_id}")
        return True

    except AssessmentLifecycleError as e:
        print(f"Error seeding assessments: {e.message}")
        return False
    finally:
        db.close()


def main():
    if len(sys.argv) not in (2, 3):
        print(__doc__)
        sys.exit(1)

    user_id = sys.argv[1]
    days_ago = int(sys.argv[2]) if len(sys.argv) == 3 else 3

    if days_ago < 0:
        print("Error: days_ago must not be negative.")
        sys.exit(1)

    success = seed_assessments(user_id, days_ago)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
