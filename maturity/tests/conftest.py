from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from maturity.config import Settings
from maturity.db import seed_catalog
from maturity.models import Base

# ---------------------------------------------------------------------------
# Fixtures: in-memory SQLite database
# ---------------------------------------------------------------------------


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session(engine):
    """Session over a database seeded with the default categories and questions."""
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    sess = SessionLocal()
    seed_catalog(sess)
    sess.commit()
    try:
        yield sess
    finally:
        sess.close()


@pytest.fixture()
def settings(tmp_path):
    return Settings(database_path=tmp_path / "test.db")
