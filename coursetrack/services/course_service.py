# ==============================================================================
# services/course_service.py - Course business logic service
# ==============================================================================

import logging
import re
from typing import Any, Dict, List, Optional

from coursetrack.config.settings import Settings
from coursetrack.domain import (
    ATTENDANCE_SESSIONS,
    CLASS_TESTS,
    COURSE_CODES,
    COURSES,
    ENROLLMENTS,
    ENROLLMENT_VERSIONS,
    INACTIVE_COURSES,
    INVITATIONS,
    MARKS,
    MEMBERSHIPS,
    Course,
    new_id,
    utcnow,
)
from coursetrack.exceptions import (
    CourseNotFoundError,
    DuplicateDocumentError,
    RequiredFieldError,
    ValidationError,
)
from coursetrack.services.enrollment_service import EnrollmentService
from coursetrack.services.membership_service import MembershipService
from coursetrack.utils.document_store import Create, Delete, DocumentStore, Put

logger = logging.getLogger(__name__)

UNSET: Any = object()


def inactive_document_id(student_email: str, course_id: str) -> str:
    return f"{student_email.lower()}_{course_id}"


class CourseService:
    """Service class for course-related business logic"""

    def __init__(self, store: DocumentStore, settings: Settings = None,
                 memberships: MembershipService = None, enrollments: EnrollmentService = None):
        self.store = store
        self.settings = settings or Settings()
        self.memberships = memberships or MembershipService(store)
        self.enrollments = enrollments or EnrollmentService(store, self.memberships, settings=self.settings)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate_code(self, code: str) -> str:
        if not code or not code.strip():
            raise RequiredFieldError("code", "Course")
        code = code.strip().upper()
        if not re.match(self.settings.COURSE_CODE_PATTERN, code):
            raise ValidationError(f"Invalid course code format: {code}", field="code", value=code)
        return code

    def _validate_credit(self, credit) -> float:
        try:
            credit = float(credit)
        except (TypeError, ValueError):
            raise ValidationError("Credit must be a number", field="credit", value=credit)
        if credit <= 0 or credit > self.settings.MAX_COURSE_CREDIT:
            raise ValidationError(
                f"Credit must be greater than 0 and at most {self.settings.MAX_COURSE_CREDIT}",
                field="credit", value=credit,
            )
        return credit

    @staticmethod
    def _validate_best_ct_count(best_ct_count) -> Optional[int]:
        if best_ct_count is None:
            return None
        if isinstance(best_ct_count, bool) or not isinstance(best_ct_count, int) or best_ct_count < 1:
            raise ValidationError("Best CT count must be a positive integer",
                                  field="best_ct_count", value=best_ct_count)
        return int(best_ct_count)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_course(self, code: str, owner_email: str, name: str = None, batch: int = None,
                      credit: float = 3.0, is_sessional: bool = False,
                      best_ct_count: int = None) -> Course:
        """Create a course and its owner membership. Course codes are unique."""
        code = self._validate_code(code)
        if not owner_email:
            raise RequiredFieldError("owner_email", "Course")
        course = Course(
            id=new_id(),
            code=code,
            name=(name or "").strip() or code,
            credit=self._validate_credit(credit),
            owner_email=owner_email.lower(),
            batch=batch,
            is_sessional=bool(is_sessional),
            best_ct_count=self._validate_best_ct_count(best_ct_count),
            created_at=utcnow(),
        )
        owner = self.memberships.owner_membership(course.id, owner_email)

        try:
            self.store.batch_write([
                Create(COURSE_CODES, code, {"course_id": course.id}),
                Put(COURSES, course.id, course.to_record()),
                Put(MEMBERSHIPS, owner.id, owner.to_record()),
            ])
        except DuplicateDocumentError:
            logger.warning(f"Rejected duplicate course code {code}")
            raise ValidationError(f"Course code {code} already exists", field="code", value=code)

        logger.info(f"Created course {code} ({course.id}) owned by {owner_email}")
        return course

    def get_course(self, course_id: str) -> Course:
        record = self.store.get(COURSES, course_id)
        if not record:
            raise CourseNotFoundError(course_id)
        return Course.from_record(record)

    def get_course_by_code(self, code: str) -> Optional[Course]:
        index = self.store.get(COURSE_CODES, (code or "").strip().upper())
        if not index:
            return None
        record = self.store.get(COURSES, index["course_id"])
        return Course.from_record(record) if record else None

    def get_teacher_courses(self, teacher_email: str, active_only: bool = False) -> List[Course]:
        """Courses the teacher owns or joined, newest first."""
        courses = []
        for membership in self.memberships.get_teacher_memberships(teacher_email):
            if active_only and not membership.is_active:
                continue
            record = self.store.get(COURSES, membership.course_id)
            if record:
                courses.append(Course.from_record(record))
        return sorted(courses, key=lambda c: c.created_at.isoformat() if c.created_at else "", reverse=True)

    def update_course(self, course_id: str, actor_email: str, name: str = None, batch: int = UNSET,
                      credit: float = None, is_sessional: bool = None,
                      best_ct_count: Optional[int] = UNSET) -> Course:
        """Partial update; ``best_ct_count=None`` resets to counting every CT."""
        self.memberships.require_teacher(course_id, actor_email, "update the course")
        fields: Dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise ValidationError("Course name cannot be empty", field="name", value=name)
            fields["name"] = name.strip()
        if batch is not UNSET:
            fields["batch"] = batch
        if credit is not None:
            fields["credit"] = self._validate_credit(credit)
        if is_sessional is not None:
            fields["is_sessional"] = bool(is_sessional)
        if best_ct_count is not UNSET:
            fields["best_ct_count"] = self._validate_best_ct_count(best_ct_count)

        if fields:
            self.store.update(COURSES, course_id, fields)
            logger.info(f"Updated course {course_id}: {sorted(fields)}")
        return self.get_course(course_id)

    def update_best_ct_count(self, course_id: str, best_ct_count: Optional[int], actor_email: str) -> Course:
        return self.update_course(course_id, actor_email, best_ct_count=best_ct_count)

    def delete_course(self, course_id: str, actor_email: str) -> None:
        """Owner only. Removes the course and everything scoped to it in one batch."""
        course = self.memberships.require_owner(course_id, actor_email, "delete the course")

        operations = [Delete(COURSES, course_id), Delete(COURSE_CODES, course.code),
                      Delete(ENROLLMENT_VERSIONS, course_id)]
        for collection in (ENROLLMENTS, ATTENDANCE_SESSIONS, CLASS_TESTS, MARKS,
                           MEMBERSHIPS, INVITATIONS, INACTIVE_COURSES):
            operations.extend(
                Delete(collection, record["id"])
                for record in self.store.query(collection, course_id=course_id)
            )
        self.store.batch_write(operations)
        logger.info(f"Deleted course {course.code} ({course_id}) and {len(operations) - 3} dependent records")

    # ------------------------------------------------------------------
    # Stats and student views
    # ------------------------------------------------------------------

    def get_course_stats(self, course_id: str) -> Dict[str, Any]:
        course = self.get_course(course_id)
        roster = self.enrollments.get_roster(course_id)
        sections: Dict[str, int] = {}
        for entry in roster:
            sections[entry.section] = sections.get(entry.section, 0) + 1
        return {
            "course_id": course_id,
            "code": course.code,
            "total_students": len(roster),
            "students_per_section": dict(sorted(sections.items())),
            "total_teachers": len(self.memberships.get_course_memberships(course_id)),
            "total_class_tests": len(self.store.query(CLASS_TESTS, course_id=course_id)),
        }

    def get_student_courses(self, student_email: str, student_id: int, active_only: bool = False) -> List[Course]:
        """Courses whose enrollment ranges contain the student's ID."""
        inactive = set(self.get_student_inactive_course_ids(student_email))
        courses = []
        for course_id in self.enrollments.enrolled_course_ids(student_id):
            if active_only and course_id in inactive:
                continue
            record = self.store.get(COURSES, course_id)
            if record:
                courses.append(Course.from_record(record))
        return sorted(courses, key=lambda c: c.code)

    def get_student_inactive_course_ids(self, student_email: str) -> List[str]:
        return [r["course_id"] for r in self.store.query(INACTIVE_COURSES, student_email=student_email.lower())]

    def set_student_course_active(self, student_email: str, course_id: str, is_active: bool) -> None:
        self.get_course(course_id)
        doc_id = inactive_document_id(student_email, course_id)
        if is_active:
            self.store.delete(INACTIVE_COURSES, doc_id)
        else:
            self.store.put(INACTIVE_COURSES, doc_id, {
                "student_email": student_email.lower(),
                "course_id": course_id,
                "marked_at": utcnow().isoformat(),
            })
        logger.info(f"Course {course_id} marked {'active' if is_active else 'inactive'} for {student_email}")

    def set_teacher_course_active(self, course_id: str, teacher_email: str, is_active: bool):
        return self.memberships.set_teacher_course_active(course_id, teacher_email, is_active)
