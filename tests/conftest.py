# tests/conftest.py
import os

# Must be set before coursetrack is imported: Settings reads the environment at import time
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("TEACHER_EMAIL_ALLOWLIST", "guest.lecturer@gmail.com")

from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from coursetrack.database import Base
from coursetrack.models import Document  # noqa: F401
from coursetrack.services.attendance_service import AttendanceService
from coursetrack.services.class_test_service import ClassTestService
from coursetrack.services.course_service import CourseService
from coursetrack.services.enrollment_service import EnrollmentService, roster_cache
from coursetrack.services.grading import GradingService
from coursetrack.services.membership_service import MembershipService
from coursetrack.services.report_service import ReportService
from coursetrack.services.user_service import UserService
from coursetrack.utils.document_store import DocumentStore

OWNER = "owner@cuet.ac.bd"
CO_TEACHER = "co.teacher@cuet.ac.bd"
OUTSIDER = "outsider@cuet.ac.bd"
DAY = date(2025, 1, 10)


def student_email(student_id: int) -> str:
    return f"u{student_id}@students.cuet.ac.bd"


# ==============================================================
# Store
# ==============================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def store(engine):
    roster_cache.clear()
    return DocumentStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))


# ==============================================================
# Services
# ==============================================================

@pytest.fixture
def memberships(store):
    return MembershipService(store)


@pytest.fixture
def enrollments(store, memberships):
    return EnrollmentService(store, memberships)


@pytest.fixture
def courses(store, memberships, enrollments):
    return CourseService(store, memberships=memberships, enrollments=enrollments)


@pytest.fixture
def attendance(store, enrollments, memberships):
    return AttendanceService(store, enrollments, memberships)


@pytest.fixture
def class_tests(store, enrollments, memberships):
    return ClassTestService(store, enrollments, memberships)


@pytest.fixture
def grading(attendance, class_tests):
    return GradingService(attendance, class_tests)


@pytest.fixture
def reports(attendance, class_tests):
    return ReportService(attendance, class_tests)


@pytest.fixture
def users(store):
    return UserService(store)


# ==============================================================
# Data
# ==============================================================

@pytest.fixture
def course(courses):
    return courses.create_course("CSE-101", OWNER, name="Structured Programming", credit=3.0)


@pytest.fixture
def enrolled_course(course, enrollments):
    """CSE-101 with 2101001-2101005 in section A and 2101006-2101008 in section B."""
    enrollments.add_range(course.id, 2101001, 2101005, "A", added_by=OWNER)
    enrollments.add_range(course.id, 2101006, 2101008, "B", added_by=OWNER)
    return course


def all_present(student_ids):
    return {str(sid): "present" for sid in student_ids}


# ==============================================================
# HTTP client
# ==============================================================

@pytest.fixture
def client(store):
    from coursetrack.main import create_app
    from coursetrack.utils.database import get_store

    app = create_app(init_db=False)
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def as_user(email: str) -> dict:
    return {"X-User-Email": email}
