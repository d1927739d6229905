"""
Shared fixtures: in-memory SQLite sessions, a fixed clock and a record factory.
"""
import os

# The application engine is created at import time; keep it off PostgreSQL.
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from assessment_service.database import Base
from assessment_service.models import db_models  # noqa: F401
from assessment_service.models.catalog import get_instrument, severity_for_score
from assessment_service.services.lifecycle import AssessmentStore


NOW = datetime(2026, 3, 1, 12, 0, 0)
USER_ID = "user-0001"
OTHER_USER_ID = "user-0002"

# Sentinel: label the score with the catalog's ranges
CATALOG_BAND = object()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSession = sessionmaker(autoflush=False, bind=engine)
    session = TestingSession()
    yield session
    session.close()


@pytest.fixture
def store(db_session):
    return AssessmentStore(db_session)


@pytest.fixture
def fixed_clock():
    return lambda: NOW


@pytest.fixture
def make_record(db_session, store):
    """Insert and commit one ACTIVE assessment record; returns its id."""

    def _make(
        assessment_type: str,
        score: int,
        days_ago: float = 1,
        user_id: str = USER_ID,
        severity_band=CATALOG_BAND,
        now: datetime = NOW,
        responses: dict = None,
        structured_result: dict = None,
    ) -> str:
        if severity_band is CATALOG_BAND:
            severity_band = severity_for_score(assessment_type, score)
        instrument = get_instrument(assessment_type)
        record = store.add_record(
            user_id=user_id,
            assessment_type=assessment_type,
            title=instrument.title if instrument else assessment_type,
            score=score,
            severity_band=severity_band,
            taken_at=now - timedelta(days=days_ago),
            responses=responses,
            structured_result=structured_result,
        )
        record_id = record.id
        db_session.commit()
        return record_id

    return _make
