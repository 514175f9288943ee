"""
SQLAlchemy declarative base and shared utilities for all models.

Convention:
    - Each table lives in its own file under `silver/db/models/`
    - Every model file imports `Base` from here
    - The `__init__.py` re-exports all models so `init_models()` sees them
"""

from datetime import datetime, timezone

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


# ─── Shared helpers ───────────────────────────
def utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


# JSONB on Postgres, plain JSON elsewhere (sqlite for local runs and tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")
