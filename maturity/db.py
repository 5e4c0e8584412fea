from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from maturity.catalog import CATEGORIES, DEFAULT_QUESTIONS
from maturity.config import DATA_DIR
from maturity.models import Base, Category, Question

log = logging.getLogger(__name__)

_lock = threading.Lock()
_engine: Engine | None = None
_SessionLocal = None


def init_db(db_path: str | Path | None = None) -> None:
    """Create (or reopen) the database, create tables and seed the catalog."""
    global _engine, _SessionLocal
    with _lock:
        if _engine is not None:
            _engine.dispose()
        if db_path is None:
            db_path = DATA_DIR / "maturity.db"
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        url = f"sqlite:///{db_path}"
        _engine = create_engine(url, connect_args={"check_same_thread": False})
        Base.metadata.create_all(_engine)
        _SessionLocal = sessionmaker(bind=_engine, autoflush=False, expire_on_commit=False)
    with session_scope() as session:
        seed_catalog(session)
        session.commit()


def seed_catalog(session: Session) -> int:
    """Seed categories and default questions into empty tables. Returns questions added."""
    if not session.execute(select(func.count()).select_from(Category)).scalar():
        for c in CATEGORIES:
            session.add(Category(id=c.id, key=c.key, title=c.title))
        session.flush()
    if session.execute(select(func.count()).select_from(Question)).scalar():
        return 0
    ids = {c.key: c.id for c in session.execute(select(Category)).scalars()}
    added = 0
    for q in DEFAULT_QUESTIONS:
        if q.category_key not in ids:
            continue
        session.add(Question(id=q.id, category_id=ids[q.category_key], question=q.text, weight=q.weight))
        added += 1
    session.flush()
    log.info("Seeded %d default questions", added)
    return added


def get_session() -> Session:
    with _lock:
        if _SessionLocal is None:
            raise RuntimeError("init_db() has not been called")
        factory = _SessionLocal
    return factory()  # type: ignore[misc]


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Context manager providing a session that rolls back on error.

    Usage (CLI, scripts, etc.)::

        with session_scope() as session:
            ...
            session.commit()
    """
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
