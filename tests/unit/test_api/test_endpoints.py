"""
Unit tests for API endpoints.

Tests endpoint behavior using FastAPI TestClient over an in-memory database.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lesson_scheduler.api.dependencies import get_db_session
from lesson_scheduler.api.main import app, error_status
from lesson_scheduler.api.models import to_naive_utc
from lesson_scheduler.errors import (
    ExceptionNotFoundError,
    InvalidPeriodError,
    LessonExceptionAlreadyExistsError,
    SameDateRescheduleError,
)
from lesson_scheduler.models import Base, Lesson
from lesson_scheduler.services.recurrence import RecurrencePattern


@pytest.fixture
def session_factory():
    """Session factory bound to one shared in-memory database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def client(session_factory):
    """Create test client using the in-memory database."""

    def override_get_db_session():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db_session] = override_get_db_session
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def headers(teacher_id):
    return {"X-User-ID": str(teacher_id)}


@pytest.fixture
def store(session_factory):
    """Persist a lesson and return its ID."""

    def _store(lesson: Lesson) -> uuid.UUID:
        with session_factory() as db:
            db.add(lesson)
            db.commit()
            return lesson.id

    return _store


@pytest.fixture
def weekly_id(store, make_lesson):
    """Mondays 10:00-11:00 from 2024-01-01."""
    return store(make_lesson(title="Weekly Piano", recurrence_pattern=RecurrencePattern.weekly()))


@pytest.fixture
def one_off_id(store, make_lesson):
    return store(make_lesson(title="Trial", start_time=datetime(2024, 1, 3, 14, 0)))


def list_january(client, headers):
    return client.get(
        "/lessons/occurrences",
        params={"start": "2024-01-01T00:00:00", "end": "2024-01-31T23:59:00"},
        headers=headers,
    )


class TestHealthEndpoint:
    """Test /health endpoint."""

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database_connected"] is True
        assert data["version"] == "0.1.0"

    def test_health_check_has_request_id(self, client):
        response = client.get("/health")

        assert "X-Request-ID" in response.headers


class TestRequestLogging:
    """Test request logging tags."""

    def test_log_lines_carry_caller(self, client, headers, teacher_id, caplog):
        caplog.set_level(logging.INFO, logger="lesson_scheduler.api.middleware")

        response = list_january(client, headers)

        req_id = response.headers["X-Request-ID"]
        lines = [r.getMessage() for r in caplog.records if r.name == "lesson_scheduler.api.middleware"]
        assert f"[{req_id}] user={teacher_id} GET /lessons/occurrences" in lines
        assert f"[{req_id}] user={teacher_id} 200" in " ".join(lines)
        assert all(
            r.user_id == str(teacher_id)
            for r in caplog.records
            if r.name == "lesson_scheduler.api.middleware"
        )

    def test_anonymous_caller(self, client, caplog):
        caplog.set_level(logging.INFO, logger="lesson_scheduler.api.middleware")

        client.get("/health")

        assert any("user=- GET /health" in r.getMessage() for r in caplog.records)

    def test_rejections_carry_caller(self, client, headers, teacher_id, one_off_id, caplog):
        caplog.set_level(logging.INFO, logger="lesson_scheduler.api.main")

        response = client.post(
            f"/lessons/{one_off_id}/occurrences/skip",
            json={"occurrence_date": "2024-01-03T14:00:00"},
            headers=headers,
        )

        req_id = response.headers["X-Request-ID"]
        assert any(
            r.getMessage().startswith(f"[{req_id}] user={teacher_id} POST")
            for r in caplog.records
            if r.name == "lesson_scheduler.api.main"
        )


class TestListOccurrences:
    """Test GET /lessons/occurrences."""

    def test_missing_user_header(self, client):
        response = client.get(
            "/lessons/occurrences",
            params={"start": "2024-01-01T00:00:00", "end": "2024-01-31T00:00:00"},
        )

        assert response.status_code == 401
        assert response.json()["error_type"] == "http_error"

    def test_invalid_user_header(self, client):
        response = list_january(client, {"X-User-ID": "not-a-uuid"})

        assert response.status_code == 400

    def test_lists_sorted_occurrences(self, client, headers, weekly_id, one_off_id):
        response = list_january(client, headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 6
        assert [o["start_time"] for o in data["occurrences"]] == [
            "2024-01-01T10:00:00",
            "2024-01-03T14:00:00",
            "2024-01-08T10:00:00",
            "2024-01-15T10:00:00",
            "2024-01-22T10:00:00",
            "2024-01-29T10:00:00",
        ]
        assert data["occurrences"][1]["lesson_id"] == str(one_off_id)
        assert data["occurrences"][0]["exception_type"] is None

    def test_other_teacher_sees_nothing(self, client, weekly_id):
        response = list_january(client, {"X-User-ID": str(uuid.uuid4())})

        assert response.status_code == 200
        assert response.json()["occurrences"] == []

    def test_utc_designator_in_period(self, client, headers, weekly_id):
        response = client.get(
            "/lessons/occurrences",
            params={"start": "2024-01-01T00:00:00Z", "end": "2024-01-31T00:00:00Z"},
            headers=headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 5
        assert data["start"] == "2024-01-01T00:00:00"

    def test_offset_period_converted_to_utc(self, client, headers, weekly_id):
        # 12:00+02:00 is 10:00 UTC, the Monday lesson start
        response = client.get(
            "/lessons/occurrences",
            params={"start": "2024-01-08T12:00:00+02:00", "end": "2024-01-08T12:00:00+02:00"},
            headers=headers,
        )

        assert response.status_code == 200
        assert [o["start_time"] for o in response.json()["occurrences"]] == ["2024-01-08T10:00:00"]

    def test_inverted_period(self, client, headers):
        response = client.get(
            "/lessons/occurrences",
            params={"start": "2024-02-01T00:00:00", "end": "2024-01-01T00:00:00"},
            headers=headers,
        )

        assert response.status_code == 422
        assert response.json()["error_type"] == "invalid_period"


class TestSkipEndpoint:
    """Test POST /lessons/{id}/occurrences/skip."""

    def test_skip(self, client, headers, weekly_id):
        response = client.post(
            f"/lessons/{weekly_id}/occurrences/skip",
            json={"occurrence_date": "2024-01-08T10:00:00"},
            headers=headers,
        )

        assert response.status_code == 201
        data = response.json()
        assert data["type"] == "SKIP"
        assert data["lesson_id"] == str(weekly_id)
        assert data["new_date"] is None

        starts = [o["start_time"] for o in list_january(client, headers).json()["occurrences"]]
        assert "2024-01-08T10:00:00" not in starts
        assert len(starts) == 4

    def test_skip_with_offset_date(self, client, headers, weekly_id):
        response = client.post(
            f"/lessons/{weekly_id}/occurrences/skip",
            json={"occurrence_date": "2024-01-08T11:00:00+01:00"},
            headers=headers,
        )

        assert response.status_code == 201
        assert response.json()["original_date"] == "2024-01-08T10:00:00"
        starts = [o["start_time"] for o in list_january(client, headers).json()["occurrences"]]
        assert "2024-01-08T10:00:00" not in starts

    def test_skip_twice_conflicts(self, client, headers, weekly_id):
        body = {"occurrence_date": "2024-01-08T10:00:00"}
        client.post(f"/lessons/{weekly_id}/occurrences/skip", json=body, headers=headers)

        response = client.post(f"/lessons/{weekly_id}/occurrences/skip", json=body, headers=headers)

        assert response.status_code == 409
        assert response.json()["error_type"] == "exception_already_exists"
        assert response.json()["retryable"] is False

    def test_unknown_lesson(self, client, headers):
        response = client.post(
            f"/lessons/{uuid.uuid4()}/occurrences/skip",
            json={"occurrence_date": "2024-01-08T10:00:00"},
            headers=headers,
        )

        assert response.status_code == 404
        assert response.json()["error_type"] == "lesson_not_found"

    def test_one_off_lesson(self, client, headers, one_off_id):
        response = client.post(
            f"/lessons/{one_off_id}/occurrences/skip",
            json={"occurrence_date": "2024-01-03T14:00:00"},
            headers=headers,
        )

        assert response.status_code == 422
        assert response.json()["error_type"] == "lesson_not_recurring"


class TestRescheduleEndpoint:
    """Test POST /lessons/{id}/occurrences/reschedule."""

    def test_reschedule(self, client, headers, weekly_id):
        response = client.post(
            f"/lessons/{weekly_id}/occurrences/reschedule",
            json={"original_date": "2024-01-15T10:00:00", "new_date": "2024-01-17T16:00:00"},
            headers=headers,
        )

        assert response.status_code == 201
        assert response.json()["new_date"] == "2024-01-17T16:00:00"

        occurrences = list_january(client, headers).json()["occurrences"]
        moved = next(o for o in occurrences if o["exception_type"] == "RESCHEDULE")
        assert moved["start_time"] == "2024-01-17T16:00:00"
        assert moved["end_time"] == "2024-01-17T17:00:00"
        assert moved["original_start"] == "2024-01-15T10:00:00"

    def test_same_date(self, client, headers, weekly_id):
        response = client.post(
            f"/lessons/{weekly_id}/occurrences/reschedule",
            json={"original_date": "2024-01-15T10:00:00", "new_date": "2024-01-15T10:00:00"},
            headers=headers,
        )

        assert response.status_code == 422
        assert response.json()["error_type"] == "invalid_exception"


class TestModifyEndpoint:
    """Test POST /lessons/{id}/occurrences/modify."""

    def test_modify(self, client, headers, weekly_id):
        response = client.post(
            f"/lessons/{weekly_id}/occurrences/modify",
            json={"original_date": "2024-01-22T10:00:00", "title": "Exam"},
            headers=headers,
        )

        assert response.status_code == 201
        assert response.json()["modifications"] == {"title": "Exam"}

        occurrences = list_january(client, headers).json()["occurrences"]
        assert [o["title"] for o in occurrences if o["start_time"] == "2024-01-22T10:00:00"] == ["Exam"]

    def test_nothing_modified(self, client, headers, weekly_id):
        response = client.post(
            f"/lessons/{weekly_id}/occurrences/modify",
            json={"original_date": "2024-01-22T10:00:00"},
            headers=headers,
        )

        assert response.status_code == 422


class TestRestoreEndpoint:
    """Test DELETE /lessons/{id}/exceptions/{exception_id}."""

    def test_restore(self, client, headers, weekly_id):
        created = client.post(
            f"/lessons/{weekly_id}/occurrences/skip",
            json={"occurrence_date": "2024-01-08T10:00:00"},
            headers=headers,
        ).json()

        response = client.delete(f"/lessons/{weekly_id}/exceptions/{created['id']}", headers=headers)

        assert response.status_code == 204
        assert list_january(client, headers).json()["total"] == 5

    def test_unknown_exception(self, client, headers, weekly_id):
        response = client.delete(f"/lessons/{weekly_id}/exceptions/{uuid.uuid4()}", headers=headers)

        assert response.status_code == 404
        assert response.json()["error_type"] == "exception_not_found"


class TestEditLessonEndpoint:
    """Test PUT /lessons/{id}."""

    def edit_body(self, teacher_id, pupil_id, **changes):
        body = {
            "title": "Weekly Piano",
            "start_time": "2024-01-01T10:00:00",
            "end_time": "2024-01-01T11:00:00",
            "teacher_ids": [str(teacher_id)],
            "pupil_ids": [str(pupil_id)],
            "recurrence": {"frequency": "WEEKLY"},
        }
        body.update(changes)
        return body

    def test_pattern_change_clears_exceptions(self, client, headers, weekly_id, teacher_id, pupil_id):
        client.post(
            f"/lessons/{weekly_id}/occurrences/skip",
            json={"occurrence_date": "2024-01-08T10:00:00"},
            headers=headers,
        )

        response = client.put(
            f"/lessons/{weekly_id}",
            json=self.edit_body(
                teacher_id, pupil_id, recurrence={"frequency": "WEEKLY", "days_of_week": [0, 3]}
            ),
            headers=headers,
        )

        assert response.status_code == 200
        assert response.json()["recurrence"]["days_of_week"] == [0, 3]
        starts = [o["start_time"] for o in list_january(client, headers).json()["occurrences"]]
        assert "2024-01-08T10:00:00" in starts
        assert len(starts) == 9

    def test_title_change_keeps_exceptions(self, client, headers, weekly_id, teacher_id, pupil_id):
        client.post(
            f"/lessons/{weekly_id}/occurrences/skip",
            json={"occurrence_date": "2024-01-08T10:00:00"},
            headers=headers,
        )

        response = client.put(
            f"/lessons/{weekly_id}",
            json=self.edit_body(teacher_id, pupil_id, title="Advanced Piano"),
            headers=headers,
        )

        assert response.status_code == 200
        assert response.json()["title"] == "Advanced Piano"
        occurrences = list_january(client, headers).json()["occurrences"]
        assert len(occurrences) == 4
        assert {o["title"] for o in occurrences} == {"Advanced Piano"}

    def test_end_before_start(self, client, headers, weekly_id, teacher_id, pupil_id):
        response = client.put(
            f"/lessons/{weekly_id}",
            json=self.edit_body(teacher_id, pupil_id, end_time="2024-01-01T09:00:00"),
            headers=headers,
        )

        assert response.status_code == 422
        assert response.json()["error_type"] == "invalid_lesson"

    def test_invalid_pattern(self, client, headers, weekly_id, teacher_id, pupil_id):
        response = client.put(
            f"/lessons/{weekly_id}",
            json=self.edit_body(
                teacher_id, pupil_id, recurrence={"frequency": "DAILY", "days_of_week": [1]}
            ),
            headers=headers,
        )

        assert response.status_code == 422
        assert response.json()["error_type"] == "invalid_recurrence_pattern"

    def test_unknown_lesson(self, client, headers, teacher_id, pupil_id):
        response = client.put(
            f"/lessons/{uuid.uuid4()}",
            json=self.edit_body(teacher_id, pupil_id),
            headers=headers,
        )

        assert response.status_code == 404


class TestErrorStatus:
    """Test the domain error to HTTP status mapping."""

    def test_mapping(self):
        assert error_status(ExceptionNotFoundError(uuid.uuid4()))[0] == 404
        assert error_status(LessonExceptionAlreadyExistsError(uuid.uuid4(), datetime(2024, 1, 1)))[0] == 409
        assert error_status(InvalidPeriodError("bad"))[0] == 422

    def test_subclass_uses_parent_entry(self):
        assert error_status(SameDateRescheduleError(datetime(2024, 1, 1))) == (422, "invalid_exception")


class TestToNaiveUTC:
    """Test timestamp normalization at the API boundary."""

    def test_aware_converted_to_utc(self):
        value = datetime(2024, 1, 8, 12, 0, tzinfo=timezone(timedelta(hours=2)))

        assert to_naive_utc(value) == datetime(2024, 1, 8, 10, 0)

    def test_naive_and_none_unchanged(self):
        value = datetime(2024, 1, 8, 10, 0)

        assert to_naive_utc(value) is value
        assert to_naive_utc(None) is None
