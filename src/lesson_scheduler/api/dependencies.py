"""
FastAPI dependency injection providers.

Provides database sessions, the calling user and the scheduling services.
"""

import logging
from typing import Generator, Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from lesson_scheduler.database import get_db
from lesson_scheduler.repositories import (
    SQLAlchemyLessonRepository,
    SQLAlchemyOccurrenceExceptionRepository,
)
from lesson_scheduler.services import LessonExceptionService, PeriodQueryService

logger = logging.getLogger(__name__)


def get_db_session() -> Generator[Session, None, None]:
    """
    Dependency injection for database session.

    Yields a request-scoped session; committed on success, rolled back on error.
    """
    yield from get_db()


def get_user_id(
    x_user_id: Optional[str] = Header(None, description="ID of the calling user"),
) -> UUID:
    """
    Extract the calling user from the X-User-ID header.

    Raises:
        HTTPException: 401 if the header is missing, 400 if it is not a UUID
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-ID header")
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid X-User-ID header: {x_user_id}")


def get_period_query_service(
    db: Session = Depends(get_db_session),
) -> PeriodQueryService:
    return PeriodQueryService(
        SQLAlchemyLessonRepository(db),
        SQLAlchemyOccurrenceExceptionRepository(db),
    )


def get_lesson_exception_service(
    db: Session = Depends(get_db_session),
) -> LessonExceptionService:
    return LessonExceptionService(
        SQLAlchemyLessonRepository(db),
        SQLAlchemyOccurrenceExceptionRepository(db),
    )
