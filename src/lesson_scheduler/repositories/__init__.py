"""
Storage layer for lessons and occurrence exceptions.

Exports the repository protocols and their SQLAlchemy implementations.
"""

from lesson_scheduler.repositories.base import (
    LessonRepository,
    OccurrenceExceptionRepository,
)
from lesson_scheduler.repositories.sql_repository import (
    SQLAlchemyLessonRepository,
    SQLAlchemyOccurrenceExceptionRepository,
)

__all__ = [
    "LessonRepository",
    "OccurrenceExceptionRepository",
    "SQLAlchemyLessonRepository",
    "SQLAlchemyOccurrenceExceptionRepository",
]
