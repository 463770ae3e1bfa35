# tests/test_class_test_service.py
from datetime import datetime, timedelta, timezone

import pydantic
import pytest

from conftest import OUTSIDER, OWNER
from coursetrack.exceptions import (
    ClassTestNotFoundError,
    ConcurrentModificationError,
    PermissionDeniedError,
    RosterMismatchError,
    ValidationError,
)
from coursetrack.schemas import MarkRecord


@pytest.fixture
def ct(enrolled_course, class_tests):
    return class_tests.create_class_test(enrolled_course.id, "CT 1", 20, OWNER,
                                         date=datetime(2025, 2, 1, 10, tzinfo=timezone.utc))


class TestClassTests:

    def test_created_unpublished(self, ct):
        assert ct.is_published is False
        assert ct.total_marks == 20

    @pytest.mark.parametrize("total", [0, -5, float("nan"), float("inf")])
    def test_non_positive_total_is_rejected(self, enrolled_course, class_tests, total):
        with pytest.raises(ValidationError):
            class_tests.create_class_test(enrolled_course.id, "CT", total, OWNER)

    def test_empty_name_is_rejected(self, enrolled_course, class_tests):
        with pytest.raises(ValidationError):
            class_tests.create_class_test(enrolled_course.id, "  ", 10, OWNER)

    def test_outsider_cannot_create(self, enrolled_course, class_tests):
        with pytest.raises(PermissionDeniedError):
            class_tests.create_class_test(enrolled_course.id, "CT", 10, OUTSIDER)

    def test_publish_and_list(self, enrolled_course, class_tests, ct):
        later = class_tests.create_class_test(enrolled_course.id, "CT 2", 10, OWNER,
                                              date=datetime(2025, 3, 1, tzinfo=timezone.utc))
        class_tests.publish_class_test(later.id)

        assert [c.id for c in class_tests.get_course_class_tests(enrolled_course.id)] == [ct.id, later.id]
        assert [c.id for c in class_tests.get_course_class_tests(enrolled_course.id, published_only=True)] == [later.id]

    def test_unpublish_hides_from_students(self, enrolled_course, class_tests, ct):
        class_tests.publish_class_test(ct.id)
        assert class_tests.unpublish_class_test(ct.id).is_published is False
        assert class_tests.get_course_class_tests(enrolled_course.id, published_only=True) == []

    def test_upcoming_tests(self, enrolled_course, class_tests):
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        future = class_tests.create_class_test(enrolled_course.id, "Future", 10, OWNER, date=now + timedelta(days=3))
        past = class_tests.create_class_test(enrolled_course.id, "Past", 10, OWNER, date=now - timedelta(days=3))
        class_tests.publish_class_test(future.id)
        class_tests.publish_class_test(past.id)

        assert [c.id for c in class_tests.get_upcoming_class_tests(enrolled_course.id, now=now)] == [future.id]

    def test_update_partial_fields(self, class_tests, ct):
        updated = class_tests.update_class_test(ct.id, name="CT 1 (retake)", description="Loops")
        assert updated.name == "CT 1 (retake)"
        assert updated.description == "Loops"
        assert updated.total_marks == 20

    def test_none_leaves_fields_unchanged(self, class_tests, ct):
        class_tests.publish_class_test(ct.id)

        updated = class_tests.update_class_test(ct.id, is_published=None, name=None, total_marks=None)

        assert updated.is_published is True
        assert updated.name == "CT 1"
        assert updated.total_marks == 20

    def test_update_rejects_unknown_fields(self, class_tests, ct):
        with pytest.raises(ValidationError):
            class_tests.update_class_test(ct.id, course_id="elsewhere")

    def test_delete_cascades_marks(self, enrolled_course, class_tests, ct):
        class_tests.batch_update_marks(ct.id, enrolled_course.id, [
            {"student_id": 2101001, "status": "present", "marks_obtained": 10},
        ])
        class_tests.delete_class_test(ct.id)

        with pytest.raises(ClassTestNotFoundError):
            class_tests.get_class_test(ct.id)
        assert class_tests.get_class_test_marks(ct.id) == []


class TestMarks:

    def test_marks_are_clamped(self, enrolled_course, class_tests, ct):
        marks = class_tests.batch_update_marks(ct.id, enrolled_course.id, [
            {"student_id": 2101001, "status": "present", "marks_obtained": 25},
            {"student_id": 2101002, "status": "present", "marks_obtained": -3},
            {"student_id": 2101003, "status": "present", "marks_obtained": 12.5},
        ])
        assert [m.marks_obtained for m in marks] == [20, 0, 12.5]
        assert class_tests.get_student_mark(ct.id, 2101001).marks_obtained == 20

    def test_absent_never_stores_marks(self, enrolled_course, class_tests, ct):
        class_tests.batch_update_marks(ct.id, enrolled_course.id, [
            {"student_id": 2101001, "status": "absent", "marks_obtained": 15},
        ])
        mark = class_tests.get_student_mark(ct.id, 2101001)
        assert mark.status == "absent"
        assert mark.marks_obtained is None

    def test_full_replace_removes_omitted_students(self, enrolled_course, class_tests, ct):
        class_tests.batch_update_marks(ct.id, enrolled_course.id, [
            {"student_id": 2101001, "status": "present", "marks_obtained": 10},
            {"student_id": 2101002, "status": "present", "marks_obtained": 11},
        ])
        class_tests.batch_update_marks(ct.id, enrolled_course.id, [
            {"student_id": 2101002, "status": "present", "marks_obtained": 12},
        ])

        marks = class_tests.get_class_test_marks(ct.id)
        assert [(m.student_id, m.marks_obtained) for m in marks] == [(2101002, 12)]

    def test_replace_keeps_created_at(self, enrolled_course, class_tests, ct):
        first = class_tests.batch_update_marks(ct.id, enrolled_course.id, [
            {"student_id": 2101001, "status": "present", "marks_obtained": 10},
        ])[0]
        second = class_tests.batch_update_marks(ct.id, enrolled_course.id, [
            {"student_id": 2101001, "status": "present", "marks_obtained": 11},
        ])[0]
        assert second.created_at == first.created_at

    def test_unknown_student_rejects_whole_batch(self, enrolled_course, class_tests, ct):
        with pytest.raises(RosterMismatchError):
            class_tests.batch_update_marks(ct.id, enrolled_course.id, [
                {"student_id": 2101001, "status": "present", "marks_obtained": 10},
                {"student_id": 9999999, "status": "present", "marks_obtained": 10},
            ])
        assert class_tests.get_class_test_marks(ct.id) == []

    def test_duplicate_student_is_rejected(self, enrolled_course, class_tests, ct):
        with pytest.raises(RosterMismatchError):
            class_tests.batch_update_marks(ct.id, enrolled_course.id, [
                {"student_id": 2101001, "status": "present", "marks_obtained": 10},
                {"student_id": 2101001, "status": "absent"},
            ])

    def test_empty_records_are_rejected(self, enrolled_course, class_tests, ct):
        with pytest.raises(ValidationError):
            class_tests.batch_update_marks(ct.id, enrolled_course.id, [])

    def test_wrong_course_is_rejected(self, enrolled_course, courses, enrollments, class_tests, ct):
        other = courses.create_course("CSE-200", OWNER)
        enrollments.add_range(other.id, 1, 1, "A", added_by=OWNER)
        with pytest.raises(ValidationError):
            class_tests.batch_update_marks(ct.id, other.id, [{"student_id": 1, "status": "absent"}])

    def test_present_without_marks_is_ungraded(self, enrolled_course, class_tests, ct):
        class_tests.batch_update_marks(ct.id, enrolled_course.id, [{"student_id": 2101001, "status": "present"}])
        mark = class_tests.get_student_mark(ct.id, 2101001)
        assert mark.status == "present"
        assert not mark.is_graded

    def test_lowering_total_marks_reclamps(self, enrolled_course, class_tests, ct):
        class_tests.batch_update_marks(ct.id, enrolled_course.id, [
            {"student_id": 2101001, "status": "present", "marks_obtained": 18},
            {"student_id": 2101002, "status": "present", "marks_obtained": 9},
        ])

        class_tests.update_class_test(ct.id, total_marks=10)

        marks = {m.student_id: m.marks_obtained for m in class_tests.get_class_test_marks(ct.id)}
        assert marks == {2101001: 10, 2101002: 9}

    @pytest.mark.parametrize("marks", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_marks_are_rejected(self, enrolled_course, class_tests, ct, marks):
        with pytest.raises(ValidationError) as exc_info:
            class_tests.batch_update_marks(ct.id, enrolled_course.id, [
                {"student_id": 2101001, "status": "present", "marks_obtained": marks},
            ])
        assert exc_info.value.details["field"] == "marks_obtained"
        assert class_tests.get_class_test_marks(ct.id) == []

    def test_mark_record_rejects_non_finite_marks(self):
        with pytest.raises(pydantic.ValidationError):
            MarkRecord(student_id=2101001, marks_obtained=float("nan"))

    def test_zero_retries_still_saves_marks(self, enrolled_course, class_tests, ct):
        class_tests.settings.WRITE_RETRIES = 0
        marks = class_tests.batch_update_marks(ct.id, enrolled_course.id, [
            {"student_id": 2101001, "status": "present", "marks_obtained": 12},
        ])
        assert [m.marks_obtained for m in marks] == [12]
        assert class_tests.get_student_mark(ct.id, 2101001).marks_obtained == 12

    def test_concurrent_replace_retries(self, enrolled_course, class_tests, ct, store, monkeypatch):
        real_batch_write = store.batch_write
        calls = {"n": 0}

        def flaky_batch_write(operations):
            calls["n"] += 1
            if calls["n"] == 1:
                raise ConcurrentModificationError("class_tests", ct.id, 1)
            return real_batch_write(operations)

        monkeypatch.setattr(store, "batch_write", flaky_batch_write)

        class_tests.batch_update_marks(ct.id, enrolled_course.id, [
            {"student_id": 2101001, "status": "present", "marks_obtained": 10},
        ])
        assert calls["n"] == 2
        assert class_tests.get_student_mark(ct.id, 2101001).marks_obtained == 10

    def test_stats(self, enrolled_course, class_tests, ct):
        class_tests.batch_update_marks(ct.id, enrolled_course.id, [
            {"student_id": 2101001, "status": "present", "marks_obtained": 10},
            {"student_id": 2101002, "status": "present", "marks_obtained": 20},
            {"student_id": 2101003, "status": "absent"},
        ])
        stats = class_tests.class_test_stats(ct.id)

        assert stats["present"] == 2
        assert stats["absent"] == 1
        assert stats["average"] == 15
        assert stats["highest"] == 20
        assert stats["lowest"] == 10
        assert stats["average_percentage"] == 75

    def test_student_course_marks(self, enrolled_course, class_tests, ct):
        class_tests.batch_update_marks(ct.id, enrolled_course.id, [
            {"student_id": 2101001, "status": "present", "marks_obtained": 10},
        ])
        assert [m.ct_id for m in class_tests.get_student_course_marks(enrolled_course.id, 2101001)] == [ct.id]
