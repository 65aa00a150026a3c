"""
Database session management.
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy.orm import Session, sessionmaker

from .engine import get_engine

# Bound to the global engine on first use
SessionLocal = sessionmaker(
    autoflush=False,
    expire_on_commit=False,
)


def _default_factory() -> sessionmaker:
    if SessionLocal.kw.get("bind") is None:
        SessionLocal.configure(bind=get_engine())
    return SessionLocal


@contextmanager
def get_db(session_factory: Optional[sessionmaker] = None) -> Generator[Session, None, None]:
    """
    Get database session context manager.

    Commits when the block exits cleanly, rolls back otherwise.

    Args:
        session_factory: Session factory to use instead of ``SessionLocal``

    Yields:
        SQLAlchemy Session instance
    """
    factory = session_factory or _default_factory()
    db: Optional[Session] = None
    try:
        db = factory()
        yield db
        db.commit()
    except Exception:
        if db:
            db.rollback()
        raise
    finally:
        if db:
            db.close()
