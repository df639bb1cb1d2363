"""
FastAPI application for Lesson Scheduler.

This is the main entry point for the HTTP API, providing:
- Occurrence queries for a period
- Occurrence-level changes (skip, reschedule, modify, restore)
- Lesson edits
- Health endpoint
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from uuid import UUID

from fastapi import FastAPI, Depends, HTTPException, Query, Response
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lesson_scheduler import __version__
from lesson_scheduler.api.dependencies import (
    get_db_session,
    get_lesson_exception_service,
    get_period_query_service,
    get_user_id,
)
from lesson_scheduler.api.middleware import (
    RequestLoggingMiddleware,
    get_request_id,
    get_request_user,
)
from lesson_scheduler.api.models import (
    EditLessonRequest,
    ErrorResponse,
    ExceptionResponse,
    HealthResponse,
    LessonResponse,
    ModifyOccurrenceRequest,
    OccurrenceListResponse,
    OccurrenceResponse,
    RescheduleOccurrenceRequest,
    SkipOccurrenceRequest,
    to_naive_utc,
)
from lesson_scheduler.config import get_settings
from lesson_scheduler.errors import (
    ExceptionNotFoundError,
    InvalidExceptionError,
    InvalidLessonError,
    InvalidPeriodError,
    InvalidRecurrencePatternError,
    LessonExceptionAlreadyExistsError,
    LessonNotFoundError,
    LessonNotRecurringError,
    SchedulingError,
)
from lesson_scheduler.services import LessonExceptionService, PeriodQueryService

logger = logging.getLogger(__name__)

# Domain error -> (HTTP status, error_type). Subclasses inherit their parent's entry.
ERROR_STATUS = {
    LessonNotFoundError: (404, "lesson_not_found"),
    ExceptionNotFoundError: (404, "exception_not_found"),
    LessonExceptionAlreadyExistsError: (409, "exception_already_exists"),
    LessonNotRecurringError: (422, "lesson_not_recurring"),
    InvalidExceptionError: (422, "invalid_exception"),
    InvalidRecurrencePatternError: (422, "invalid_recurrence_pattern"),
    InvalidLessonError: (422, "invalid_lesson"),
    InvalidPeriodError: (422, "invalid_period"),
}


def error_status(exc: SchedulingError) -> tuple[int, str]:
    """Look up the HTTP status and error type for a domain error."""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 400, "scheduling_error"


# =============================================================================
# Application Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info(f"Starting Lesson Scheduler API ({settings.python_env})")

    yield

    logger.info("Shutting down Lesson Scheduler API")


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="Lesson Scheduler API",
    description="""
# Lesson Scheduler API

Recurring lessons with per-occurrence exceptions.

A recurring lesson stores its pattern once. Single occurrences can be
skipped, rescheduled or modified without touching the series; occurrences
are expanded on demand for the requested period.

## Error Handling

- **400** - Invalid header
- **401** - Missing X-User-ID header
- **404** - Lesson or exception not found
- **409** - Occurrence already has an exception
- **422** - Validation error (invalid pattern, period, lesson or exception)
- **500** - Server error
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(RequestLoggingMiddleware)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request, exc: SchedulingError):
    """Map domain errors to their HTTP status."""
    status_code, error_type = error_status(exc)
    logger.info(
        f"[{get_request_id()}] user={get_request_user()} "
        f"{request.method} {request.url.path} rejected: {exc.message}"
    )
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error_type=error_type,
            message=exc.message,
            retryable=exc.retryable,
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_type": "http_error",
            "message": exc.detail,
            "retryable": exc.status_code >= 500,
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error_type": "internal_error",
            "message": "An unexpected error occurred",
            "retryable": True,
        },
    )


# =============================================================================
# Health Endpoint
# =============================================================================


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    tags=["System"],
)
def health_check(db: Session = Depends(get_db_session)):
    """Check API health and database connectivity."""
    try:
        db.execute(text("SELECT 1"))
        database_connected = True
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {e}")
        database_connected = False

    return HealthResponse(
        status="healthy" if database_connected else "unhealthy",
        version=__version__,
        database_connected=database_connected,
    )


# =============================================================================
# Occurrence Endpoints
# =============================================================================


@app.get(
    "/lessons/occurrences",
    response_model=OccurrenceListResponse,
    summary="List occurrences in a period",
    description="Occurrences of every lesson the caller teaches, sorted by start time.",
    tags=["Occurrences"],
)
def list_occurrences(
    start: datetime = Query(..., description="Period start (ISO 8601, inclusive)"),
    end: datetime = Query(..., description="Period end (ISO 8601, inclusive)"),
    user_id: UUID = Depends(get_user_id),
    service: PeriodQueryService = Depends(get_period_query_service),
) -> OccurrenceListResponse:
    start, end = to_naive_utc(start), to_naive_utc(end)
    occurrences = service.occurrences_for_period(user_id, start, end)
    return OccurrenceListResponse(
        occurrences=[OccurrenceResponse.from_domain(o) for o in occurrences],
        total=len(occurrences),
        start=start,
        end=end,
    )


@app.post(
    "/lessons/{lesson_id}/occurrences/skip",
    response_model=ExceptionResponse,
    status_code=201,
    summary="Skip one occurrence",
    responses={
        404: {"model": ErrorResponse, "description": "Lesson not found"},
        409: {"model": ErrorResponse, "description": "Occurrence already has an exception"},
        422: {"model": ErrorResponse, "description": "Lesson is not recurring"},
    },
    tags=["Occurrences"],
)
def skip_occurrence(
    lesson_id: UUID,
    request: SkipOccurrenceRequest,
    user_id: UUID = Depends(get_user_id),
    service: LessonExceptionService = Depends(get_lesson_exception_service),
) -> ExceptionResponse:
    logger.info(f"User {user_id} skipping lesson {lesson_id} at {request.occurrence_date}")
    exception = service.skip(lesson_id, request.occurrence_date)
    return ExceptionResponse.from_domain(exception)


@app.post(
    "/lessons/{lesson_id}/occurrences/reschedule",
    response_model=ExceptionResponse,
    status_code=201,
    summary="Move one occurrence",
    responses={
        404: {"model": ErrorResponse, "description": "Lesson not found"},
        409: {"model": ErrorResponse, "description": "Occurrence already has an exception"},
        422: {"model": ErrorResponse, "description": "Lesson is not recurring or dates are equal"},
    },
    tags=["Occurrences"],
)
def reschedule_occurrence(
    lesson_id: UUID,
    request: RescheduleOccurrenceRequest,
    user_id: UUID = Depends(get_user_id),
    service: LessonExceptionService = Depends(get_lesson_exception_service),
) -> ExceptionResponse:
    logger.info(
        f"User {user_id} rescheduling lesson {lesson_id} "
        f"from {request.original_date} to {request.new_date}"
    )
    exception = service.reschedule(lesson_id, request.original_date, request.new_date)
    return ExceptionResponse.from_domain(exception)


@app.post(
    "/lessons/{lesson_id}/occurrences/modify",
    response_model=ExceptionResponse,
    status_code=201,
    summary="Override fields of one occurrence",
    responses={
        404: {"model": ErrorResponse, "description": "Lesson not found"},
        409: {"model": ErrorResponse, "description": "Occurrence already has an exception"},
        422: {"model": ErrorResponse, "description": "Lesson is not recurring or nothing changes"},
    },
    tags=["Occurrences"],
)
def modify_occurrence(
    lesson_id: UUID,
    request: ModifyOccurrenceRequest,
    user_id: UUID = Depends(get_user_id),
    service: LessonExceptionService = Depends(get_lesson_exception_service),
) -> ExceptionResponse:
    logger.info(f"User {user_id} modifying lesson {lesson_id} at {request.original_date}")
    exception = service.modify(lesson_id, request.original_date, request.to_modifications())
    return ExceptionResponse.from_domain(exception)


@app.delete(
    "/lessons/{lesson_id}/exceptions/{exception_id}",
    status_code=204,
    summary="Restore an occurrence",
    description="Delete one exception so the occurrence follows the pattern again.",
    responses={
        404: {"model": ErrorResponse, "description": "Lesson or exception not found"},
    },
    tags=["Occurrences"],
)
def restore_occurrence(
    lesson_id: UUID,
    exception_id: UUID,
    user_id: UUID = Depends(get_user_id),
    service: LessonExceptionService = Depends(get_lesson_exception_service),
) -> Response:
    logger.info(f"User {user_id} restoring exception {exception_id} of lesson {lesson_id}")
    service.restore(lesson_id, exception_id)
    return Response(status_code=204)


# =============================================================================
# Lesson Endpoints
# =============================================================================


@app.put(
    "/lessons/{lesson_id}",
    response_model=LessonResponse,
    summary="Edit a lesson",
    description="""
Replace a lesson's fields.

Changing the recurrence pattern, or moving the start of a recurring
lesson, deletes all of the lesson's occurrence exceptions.
    """,
    responses={
        404: {"model": ErrorResponse, "description": "Lesson not found"},
        422: {"model": ErrorResponse, "description": "Invalid lesson or pattern"},
    },
    tags=["Lessons"],
)
def edit_lesson(
    lesson_id: UUID,
    request: EditLessonRequest,
    user_id: UUID = Depends(get_user_id),
    service: LessonExceptionService = Depends(get_lesson_exception_service),
) -> LessonResponse:
    logger.info(f"User {user_id} editing lesson {lesson_id}")
    lesson = service.edit_lesson(lesson_id, request.to_edit())
    return LessonResponse.from_model(lesson)


# =============================================================================
# Run with Uvicorn
# =============================================================================


def run_server(host: str = "0.0.0.0", port: int = 8000, reload: bool = False):
    """Run the API server with Uvicorn."""
    import uvicorn

    uvicorn.run(
        "lesson_scheduler.api.main:app",
        host=host,
        port=port,
        reload=reload,
    )


if __name__ == "__main__":
    settings = get_settings()
    run_server(host=settings.api_host, port=settings.api_port, reload=settings.is_development)
