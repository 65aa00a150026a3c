"""
Transaction scope shared by the gamification services.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Generator, Optional

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from wanderlist.core.constants import ErrorMessages
from wanderlist.core.exceptions import (
    ConcurrencyConflict,
    DatabaseError,
    ExternalDependencyError,
)
from wanderlist.db.models import UserProgress
from wanderlist.db.repositories import UserProgressRepository
from wanderlist.db.session import get_db

logger = logging.getLogger(__name__)


@contextmanager
def transaction(
    session_factory: Optional[sessionmaker] = None,
    operation: str = "transaction",
) -> Generator[Session, None, None]:
    """
    Open a session, commit on success and translate persistence errors.

    Raises:
        ConcurrencyConflict: A versioned row changed since it was read
        ExternalDependencyError: The database could not be reached
        DatabaseError: Any other SQLAlchemy failure
    """
    try:
        with get_db(session_factory) as db:
            yield db
    except StaleDataError as e:
        logger.info(f"{operation}: stale progress record, another writer won", extra={"operation": operation})
        raise ConcurrencyConflict(
            message=ErrorMessages.CONCURRENT_UPDATE,
            details={"operation": operation},
        ) from e
    except OperationalError as e:
        logger.error(f"{operation}: database unreachable: {e}", extra={"operation": operation})
        raise ExternalDependencyError(
            message=ErrorMessages.STORE_UNREACHABLE,
            dependency="database",
        ) from e
    except SQLAlchemyError as e:
        logger.error(f"{operation}: database error: {e}", extra={"operation": operation})
        raise DatabaseError(
            message=ErrorMessages.STORE_FAILURE,
            operation=operation,
        ) from e


def load_or_create_progress(session: Session, user_id: str, now: datetime) -> UserProgress:
    """
    Load a user's progress, creating an empty record on first use.

    Raises:
        ConcurrencyConflict: Another writer created the record first
    """
    progress = UserProgressRepository(session).get_for_user(user_id)
    if progress is not None:
        return progress

    progress = UserProgress(
        user_id=user_id,
        points=0,
        level=1,
        created_at=now,
        updated_at=now,
    )
    session.add(progress)
    try:
        session.flush()
    except IntegrityError as e:
        raise ConcurrencyConflict(
            message=ErrorMessages.CONCURRENT_UPDATE,
            resource_type="user_progress",
            resource_id=user_id,
        ) from e

    logger.info(f"Created progress record for user {user_id}", extra={"user_id": user_id})
    return progress


def touch(progress: UserProgress, now: datetime) -> None:
    """
    Mark the progress row dirty so the UPDATE, and its version check,
    is issued even when only child rows changed.
    """
    progress.last_activity_at = now
    progress.updated_at = now
    flag_modified(progress, "last_activity_at")
