"""
Assessment Lifecycle Service - Database Configuration
SQLAlchemy engine, session factory and declarative base
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import DATABASE_URL, STORE_TIMEOUT_SECONDS


def build_connect_args(database_url: str, timeout_seconds: float) -> dict:
    """Driver-level timeouts so no persistence call can block unbounded."""
    if database_url.startswith("sqlite"):
        return {"timeout": timeout_seconds, "check_same_thread": False}
    if database_url.startswith("postgresql"):
        timeout_ms = int(timeout_seconds * 1000)
        return {
            "connect_timeout": max(1, int(timeout_seconds)),
            "options": f"-c statement_timeout={timeout_ms}",
        }
    return {}


def create_db_engine(database_url: str = DATABASE_URL, timeout_seconds: float = STORE_TIMEOUT_SECONDS):
    """Create an engine with bounded connect, statement and pool checkout timeouts."""
    kwargs = {
        "echo": False,
        "pool_pre_ping": True,
        "connect_args": build_connect_args(database_url, timeout_seconds),
    }
    if not database_url.startswith("sqlite"):
        kwargs["pool_timeout"] = timeout_seconds
    return create_engine(database_url, **kwargs)


# Create engine
engine = create_db_engine()

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for ORM models
Base = declarative_base()


def get_db():
    """Dependency for FastAPI - yields database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Initialize database - create all tables."""
    from .models import db_models  # noqa: F401  (registers tables on Base)
    Base.metadata.create_all(bind=engine)
