"""
SQLAlchemy models for Lesson Scheduler.

This module exports all database models for easy importing and
ensures Alembic can discover them for migrations.
"""

from lesson_scheduler.models.base import Base, BaseModel, GUID, get_json_type
from lesson_scheduler.models.lessons import (
    Lesson,
    LessonParticipant,
    LessonException,
    TEACHER_ROLE,
    PUPIL_ROLE,
)

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    "GUID",
    "get_json_type",
    # Lesson models
    "Lesson",
    "LessonParticipant",
    "LessonException",
    "TEACHER_ROLE",
    "PUPIL_ROLE",
]
