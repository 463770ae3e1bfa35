# ==============================================================================
# services/class_test_service.py - Class test and marks business logic
# ==============================================================================

import logging
import math
from datetime import datetime
from statistics import mean
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from coursetrack.config.settings import Settings
from coursetrack.domain import (
    ABSENT,
    CLASS_TESTS,
    MARKS,
    PRESENT,
    STATUSES,
    ClassTest,
    Mark,
    MarkInput,
    mark_document_id,
    new_id,
    to_datetime,
    utcnow,
)
from coursetrack.exceptions import (
    ClassTestNotFoundError,
    RequiredFieldError,
    RosterMismatchError,
    ValidationError,
)
from coursetrack.services.enrollment_service import EnrollmentService
from coursetrack.services.grading import mark_percentage
from coursetrack.services.membership_service import MembershipService
from coursetrack.utils.document_store import Delete, DocumentStore, Put, Update
from coursetrack.utils.retry import optimistic_write

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "description", "total_marks", "is_published", "date")


def clamp_marks(marks_obtained: float, total_marks: float) -> float:
    return max(0, min(total_marks, marks_obtained))


def _validate_total_marks(total_marks) -> int:
    if isinstance(total_marks, bool) or not isinstance(total_marks, (int, float)):
        raise ValidationError("Total marks must be a number", field="total_marks", value=total_marks)
    if not math.isfinite(total_marks):
        raise ValidationError("Total marks must be a finite number", field="total_marks", value=str(total_marks))
    if total_marks <= 0:
        raise ValidationError("Total marks must be greater than 0", field="total_marks", value=total_marks)
    if int(total_marks) != total_marks:
        raise ValidationError("Total marks must be a whole number", field="total_marks", value=total_marks)
    return int(total_marks)


def _validate_name(name) -> str:
    if name is None or not str(name).strip():
        raise RequiredFieldError("name", "ClassTest")
    return str(name).strip()


def _to_mark_input(record: Union[MarkInput, Mapping[str, Any]]) -> MarkInput:
    if isinstance(record, MarkInput):
        return record
    try:
        student_id = int(record["student_id"])
    except (KeyError, TypeError, ValueError):
        raise ValidationError("Each mark record needs a numeric student_id", field="student_id",
                              value=record.get("student_id") if isinstance(record, Mapping) else record)
    return MarkInput(
        student_id=student_id,
        status=record.get("status", PRESENT),
        marks_obtained=record.get("marks_obtained"),
        student_email=record.get("student_email"),
        feedback=record.get("feedback"),
    )


class ClassTestService:
    """Service class for class tests and their marks"""

    def __init__(self, store: DocumentStore, enrollments: EnrollmentService = None,
                 memberships: MembershipService = None, settings: Settings = None):
        self.store = store
        self.settings = settings or Settings()
        self.memberships = memberships or MembershipService(store)
        self.enrollments = enrollments or EnrollmentService(store, self.memberships, settings=self.settings)

    # ------------------------------------------------------------------
    # Class tests
    # ------------------------------------------------------------------

    def create_class_test(self, course_id: str, name: str, total_marks: int, created_by: str,
                          date: Any = None, description: str = None) -> ClassTest:
        """Create an unpublished class test."""
        name = _validate_name(name)
        total_marks = _validate_total_marks(total_marks)
        self.memberships.require_teacher(course_id, created_by, "create class tests")

        class_test = ClassTest(
            id=new_id(),
            course_id=course_id,
            name=name,
            total_marks=total_marks,
            date=to_datetime(date) if date is not None else utcnow(),
            created_by=created_by,
            is_published=False,
            description=description,
            created_at=utcnow(),
        )
        self.store.create(CLASS_TESTS, class_test.id, class_test.to_record())
        logger.info(f"Created class test '{name}' ({class_test.id}) for course {course_id}")
        return class_test

    def get_class_test(self, ct_id: str) -> ClassTest:
        record = self.store.get(CLASS_TESTS, ct_id)
        if not record:
            raise ClassTestNotFoundError(ct_id)
        return ClassTest.from_record(record)

    def get_course_class_tests(self, course_id: str, published_only: bool = False) -> List[ClassTest]:
        """Class tests of a course ordered by date."""
        class_tests = [ClassTest.from_record(r) for r in self.store.query(CLASS_TESTS, course_id=course_id)]
        if published_only:
            class_tests = [ct for ct in class_tests if ct.is_published]
        return sorted(class_tests, key=lambda ct: (ct.date, ct.name))

    def get_upcoming_class_tests(self, course_id: str, now: datetime = None) -> List[ClassTest]:
        now = to_datetime(now) if now is not None else utcnow()
        return [ct for ct in self.get_course_class_tests(course_id, published_only=True) if ct.date > now]

    def update_class_test(self, ct_id: str, updated_by: str = None, **fields: Any) -> ClassTest:
        """
        Partially update a class test.

        Lowering ``total_marks`` re-clamps every stored mark above the new
        maximum in the same batch write as the class test change.
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update fields: {sorted(unknown)}", field="fields", value=sorted(unknown))

        for attempt in optimistic_write(self.settings.WRITE_RETRIES, logger):
            with attempt:
                current, changes, reclamped = self._write_class_test_update(ct_id, updated_by, fields)
        if not changes:
            return current

        if reclamped:
            logger.info(f"Re-clamped {reclamped} marks of class test {ct_id} to {changes['total_marks']}")
        logger.info(f"Updated class test {ct_id}: {sorted(changes)}")
        return self.get_class_test(ct_id)

    def _write_class_test_update(self, ct_id: str, updated_by: Optional[str], fields: Dict[str, Any]):
        """One read-then-write pass of ``update_class_test``; returns (current, changes, reclamped)."""
        record = self.store.get(CLASS_TESTS, ct_id)
        if not record:
            raise ClassTestNotFoundError(ct_id)
        current = ClassTest.from_record(record)
        if updated_by is not None:
            self.memberships.require_teacher(current.course_id, updated_by, "update class tests")

        # None means "leave unchanged" for every field except description
        changes: Dict[str, Any] = {}
        if fields.get("name") is not None:
            changes["name"] = _validate_name(fields["name"])
        if "description" in fields:
            changes["description"] = fields["description"]
        if fields.get("is_published") is not None:
            changes["is_published"] = bool(fields["is_published"])
        if fields.get("date") is not None:
            changes["date"] = to_datetime(fields["date"]).isoformat()
        if fields.get("total_marks") is not None:
            changes["total_marks"] = _validate_total_marks(fields["total_marks"])
        if not changes:
            return current, changes, 0

        operations = [Update(CLASS_TESTS, ct_id, changes, expected_version=record["_version"])]
        new_total = changes.get("total_marks", current.total_marks)
        reclamped = 0
        if new_total < current.total_marks:
            now = utcnow().isoformat()
            for mark in self.get_class_test_marks(ct_id):
                if mark.marks_obtained is not None and mark.marks_obtained > new_total:
                    operations.append(Update(MARKS, mark.id, {
                        "marks_obtained": clamp_marks(mark.marks_obtained, new_total),
                        "updated_at": now,
                    }))
                    reclamped += 1
        self.store.batch_write(operations)
        return current, changes, reclamped

    def publish_class_test(self, ct_id: str, updated_by: str = None) -> ClassTest:
        return self.update_class_test(ct_id, updated_by, is_published=True)

    def unpublish_class_test(self, ct_id: str, updated_by: str = None) -> ClassTest:
        return self.update_class_test(ct_id, updated_by, is_published=False)

    def delete_class_test(self, ct_id: str, deleted_by: str = None) -> None:
        """Delete a class test and all of its marks in one batch."""
        class_test = self.get_class_test(ct_id)
        if deleted_by is not None:
            self.memberships.require_teacher(class_test.course_id, deleted_by, "delete class tests")
        operations = [Delete(CLASS_TESTS, ct_id)]
        operations.extend(Delete(MARKS, r["id"]) for r in self.store.query(MARKS, ct_id=ct_id))
        self.store.batch_write(operations)
        logger.info(f"Deleted class test {ct_id} and {len(operations) - 1} marks")

    # ------------------------------------------------------------------
    # Marks
    # ------------------------------------------------------------------

    def batch_update_marks(self, ct_id: str, course_id: str,
                           records: Iterable[Union[MarkInput, Mapping[str, Any]]],
                           updated_by: str = None) -> List[Mark]:
        """
        Replace every mark of a class test with ``records``.

        Present marks are clamped into [0, total_marks]; marks sent with an
        absent status are dropped. Students that had a mark but are missing
        from ``records`` lose it. All writes land in one batch.
        """
        inputs = [_to_mark_input(r) for r in records]
        if not inputs:
            raise ValidationError("No mark records to save", field="records")

        seen, duplicates = set(), set()
        for item in inputs:
            if item.student_id in seen:
                duplicates.add(item.student_id)
            seen.add(item.student_id)
            if item.status not in STATUSES:
                raise ValidationError(f"Invalid mark status for {item.student_id}: {item.status}",
                                      field="status", value=item.status)
            if item.marks_obtained is not None and (
                    isinstance(item.marks_obtained, bool) or not isinstance(item.marks_obtained, (int, float))):
                raise ValidationError(f"Marks for {item.student_id} must be a number",
                                      field="marks_obtained", value=item.marks_obtained)
            if item.marks_obtained is not None and not math.isfinite(item.marks_obtained):
                raise ValidationError(f"Marks for {item.student_id} must be a finite number",
                                      field="marks_obtained", value=str(item.marks_obtained))
        if updated_by is not None:
            self.memberships.require_teacher(course_id, updated_by, "enter marks")
        enrolled = {entry.student_id for entry in self.enrollments.get_roster(course_id)}
        unknown = seen - enrolled
        if duplicates or unknown:
            raise RosterMismatchError(unknown=unknown, duplicates=duplicates)

        for attempt in optimistic_write(self.settings.WRITE_RETRIES, logger):
            with attempt:
                marks, removed = self._replace_marks(ct_id, course_id, inputs, seen)

        absent = sum(1 for mark in marks if mark.status == ABSENT)
        logger.info(f"Saved {len(marks)} marks for class test {ct_id} ({absent} absent, {removed} removed)")
        return marks

    def _replace_marks(self, ct_id: str, course_id: str, inputs: List[MarkInput], seen: set):
        """One read-then-write pass of ``batch_update_marks``; returns (marks, removed count)."""
        record = self.store.get(CLASS_TESTS, ct_id)
        if not record:
            raise ClassTestNotFoundError(ct_id)
        class_test = ClassTest.from_record(record)
        if class_test.course_id != course_id:
            raise ValidationError(f"Class test {ct_id} does not belong to course {course_id}",
                                  field="course_id", value=course_id)
        existing = {mark.student_id: mark for mark in self.get_class_test_marks(ct_id)}
        now = utcnow()
        marks = []
        for item in inputs:
            marks_obtained = None
            if item.status == PRESENT and item.marks_obtained is not None:
                marks_obtained = clamp_marks(float(item.marks_obtained), class_test.total_marks)
            prior = existing.get(item.student_id)
            marks.append(Mark(
                ct_id=ct_id,
                course_id=course_id,
                student_id=item.student_id,
                status=item.status,
                marks_obtained=marks_obtained,
                student_email=item.student_email or (prior.student_email if prior else None),
                feedback=item.feedback,
                created_at=prior.created_at if prior and prior.created_at else now,
                updated_at=now,
            ))

        removed = sorted(set(existing) - seen)
        operations = [
            # Bumping the class test version serialises concurrent replaces.
            Update(CLASS_TESTS, ct_id, {"marks_updated_at": now.isoformat()},
                   expected_version=record["_version"]),
        ]
        operations.extend(Put(MARKS, mark.id, mark.to_record()) for mark in marks)
        operations.extend(Delete(MARKS, mark_document_id(ct_id, student_id)) for student_id in removed)
        self.store.batch_write(operations)
        return sorted(marks, key=lambda m: m.student_id), len(removed)

    def get_class_test_marks(self, ct_id: str) -> List[Mark]:
        return sorted((Mark.from_record(r) for r in self.store.query(MARKS, ct_id=ct_id)),
                      key=lambda m: m.student_id)

    def get_student_mark(self, ct_id: str, student_id: int) -> Optional[Mark]:
        record = self.store.get(MARKS, mark_document_id(ct_id, student_id))
        return Mark.from_record(record) if record else None

    def get_student_course_marks(self, course_id: str, student_id: int) -> List[Mark]:
        return [Mark.from_record(r) for r in self.store.query(MARKS, course_id=course_id, student_id=int(student_id))]

    def class_test_stats(self, ct_id: str) -> Dict[str, Any]:
        class_test = self.get_class_test(ct_id)
        marks = self.get_class_test_marks(ct_id)
        graded = [mark.marks_obtained for mark in marks if mark.is_graded]
        return {
            "ct_id": ct_id,
            "name": class_test.name,
            "total_marks": class_test.total_marks,
            "total_students": len(marks),
            "present": sum(1 for mark in marks if mark.status == PRESENT),
            "absent": sum(1 for mark in marks if mark.status == ABSENT),
            "graded": len(graded),
            "average": round(mean(graded), 2) if graded else 0.0,
            "highest": max(graded) if graded else 0.0,
            "lowest": min(graded) if graded else 0.0,
            "average_percentage": round(mark_percentage(mean(graded), class_test.total_marks), 2) if graded else 0.0,
        }
