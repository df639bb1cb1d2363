"""
Pytest configuration and fixtures for Lesson Scheduler tests.

Provides database session fixtures and sample lessons for testing.
"""

import uuid
from datetime import datetime, timedelta
from typing import Generator

import pytest
import sqlalchemy as sa
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from lesson_scheduler.models.base import Base
from lesson_scheduler.models.lessons import Lesson
from lesson_scheduler.services.recurrence import RecurrencePattern, Weekday


# Configure SQLite to enforce foreign key constraints in tests
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable foreign key constraints for SQLite connections."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# Monday
ANCHOR = datetime(2024, 1, 1, 10, 0)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """
    Create a clean database session for each test.

    Uses an in-memory SQLite database that is torn down after each test.

    Yields:
        Session: SQLAlchemy session for database operations
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False}
    )

    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.rollback()
        session.close()
        with engine.begin() as connection:
            connection.execute(sa.text("PRAGMA foreign_keys=OFF"))
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def teacher_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def pupil_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def make_lesson(teacher_id, pupil_id):
    """
    Factory for unsaved lessons.

    Defaults to a one-hour lesson at ANCHOR taught by `teacher_id`,
    with an ID already assigned so it can be expanded without a session.
    """

    def _make(
        title: str = "Piano",
        start_time: datetime = ANCHOR,
        duration: timedelta = timedelta(hours=1),
        recurrence_pattern=None,
        teacher_ids=None,
        pupil_ids=None,
        **kwargs,
    ) -> Lesson:
        kwargs.setdefault("id", uuid.uuid4())
        return Lesson(
            title=title,
            start_time=start_time,
            end_time=start_time + duration,
            recurrence_pattern=recurrence_pattern,
            teacher_ids=[teacher_id] if teacher_ids is None else teacher_ids,
            pupil_ids=[pupil_id] if pupil_ids is None else pupil_ids,
            **kwargs,
        )

    return _make


@pytest.fixture
def weekly_lesson(db_session: Session, make_lesson) -> Lesson:
    """
    A persisted lesson every Monday at 10:00, starting 2024-01-01.

    Returns:
        Lesson: Recurring lesson with one teacher and one pupil
    """
    lesson = make_lesson(
        title="Weekly Piano",
        recurrence_pattern=RecurrencePattern.weekly((Weekday.MONDAY,)),
    )
    db_session.add(lesson)
    db_session.commit()
    db_session.refresh(lesson)
    return lesson


@pytest.fixture
def one_off_lesson(db_session: Session, make_lesson) -> Lesson:
    """A persisted non-recurring lesson on 2024-01-03 at 14:00."""
    lesson = make_lesson(title="Trial Lesson", start_time=datetime(2024, 1, 3, 14, 0))
    db_session.add(lesson)
    db_session.commit()
    db_session.refresh(lesson)
    return lesson
