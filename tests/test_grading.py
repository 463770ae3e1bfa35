# tests/test_grading.py
import itertools
from datetime import date

import pytest

from conftest import OWNER
from coursetrack.domain import AttendanceSession, ClassTest, Mark, utcnow
from coursetrack.exceptions import ValidationError
from coursetrack.services.grading import (
    attendance_grade_contribution,
    attendance_percentage,
    best_k_average,
    eligible_percentages,
    mark_percentage,
)


def _session(day, statuses):
    return AttendanceSession(id=f"c_A_{day}", course_id="c", section="A", date=date(2025, 1, day),
                             student_statuses=statuses, recorded_by=OWNER)


def _ct(ct_id, total):
    return ClassTest(id=ct_id, course_id="c", name=ct_id, total_marks=total, date=utcnow(), created_by=OWNER)


def _mark(ct_id, status, marks=None):
    return Mark(ct_id=ct_id, course_id="c", student_id=1, status=status, marks_obtained=marks)


class TestAttendanceGradeContribution:

    def test_credit_three_at_82_percent(self):
        assert attendance_grade_contribution(82, 3.0) == pytest.approx(18.0)

    @pytest.mark.parametrize("percentage, share", [
        (0, 0.0),
        (59.999, 0.0),
        (60, 0.2),
        (69.999, 0.2),
        (70, 0.4),
        (80, 0.6),
        (90, 0.8),
        (94.999, 0.8),
        (95, 1.0),
        (100, 1.0),
    ])
    def test_steps_are_half_open_on_the_lower_bound(self, percentage, share):
        assert attendance_grade_contribution(percentage, 2.0) == pytest.approx(20.0 * share)

    def test_monotonic_in_attendance(self):
        values = [attendance_grade_contribution(p / 4, 1.5) for p in range(0, 401)]
        assert all(a <= b for a, b in zip(values, values[1:]))


class TestBestKAverage:

    def test_best_three_of_four(self):
        assert best_k_average([70, 85, 60, 95], 3) == pytest.approx(83.333, abs=1e-3)

    def test_permutation_invariant(self):
        marks = [70, 85, 60, 95]
        expected = best_k_average(marks, 2)
        for permutation in itertools.permutations(marks):
            assert best_k_average(list(permutation), 2) == pytest.approx(expected)

    def test_k_equal_to_length_is_plain_mean(self):
        marks = [40, 50, 90]
        assert best_k_average(marks, 3) == pytest.approx(60.0)
        assert best_k_average(marks) == pytest.approx(60.0)

    def test_k_larger_than_length_uses_all(self):
        assert best_k_average([80, 60], 5) == pytest.approx(70.0)

    def test_empty_is_zero(self):
        assert best_k_average([], 3) == 0

    def test_k_below_one_is_rejected(self):
        with pytest.raises(ValidationError):
            best_k_average([50], 0)


class TestPercentages:

    def test_attendance_percentage(self):
        sessions = [_session(1, {"1": "present"}), _session(2, {"1": "absent"}),
                    _session(3, {"1": "present"}), _session(4, {"1": "present"})]
        assert attendance_percentage(sessions, 1) == pytest.approx(75.0)
        assert attendance_percentage([], 1) == 0

    def test_mark_percentage(self):
        assert mark_percentage(15, 20) == pytest.approx(75.0)
        with pytest.raises(ValidationError):
            mark_percentage(1, 0)

    def test_absent_and_ungraded_are_not_eligible(self):
        pairs = [
            (_ct("ct1", 20), _mark("ct1", "present", 14)),
            (_ct("ct2", 20), _mark("ct2", "absent")),
            (_ct("ct3", 20), _mark("ct3", "present")),
            (_ct("ct4", 10), None),
        ]
        assert eligible_percentages(pairs) == [pytest.approx(70.0)]


class TestGradingService:

    def test_best_ct_average_scenario(self, enrolled_course, courses, class_tests, grading):
        courses.update_best_ct_count(enrolled_course.id, 3, OWNER)
        student = 2101001
        for index, marks in enumerate([14, 17, 12, 19, None], start=1):
            ct = class_tests.create_class_test(enrolled_course.id, f"CT {index}", 20, OWNER)
            class_tests.publish_class_test(ct.id)
            status = "absent" if marks is None else "present"
            class_tests.batch_update_marks(ct.id, enrolled_course.id, [
                {"student_id": student, "status": status, "marks_obtained": marks},
            ])

        # 70, 85, 60, 95 with the fifth CT absent
        assert grading.student_best_ct_average(enrolled_course.id, student) == pytest.approx(83.333, abs=1e-3)

    def test_unpublished_tests_are_ignored(self, enrolled_course, class_tests, grading):
        ct = class_tests.create_class_test(enrolled_course.id, "CT 1", 10, OWNER)
        class_tests.batch_update_marks(ct.id, enrolled_course.id, [
            {"student_id": 2101001, "status": "present", "marks_obtained": 10},
        ])
        assert grading.student_best_ct_average(enrolled_course.id, 2101001) == 0

    def test_student_summary(self, enrolled_course, attendance, grading):
        statuses = {str(sid): "present" for sid in range(2101001, 2101006)}
        attendance.take_attendance(enrolled_course.id, "A", date(2025, 1, 1), OWNER, statuses)

        summary = grading.student_summary(enrolled_course.id, 2101002)

        assert summary["section"] == "A"
        assert summary["classes_held"] == 1
        assert summary["classes_attended"] == 1
        assert summary["attendance_percentage"] == 100
        assert summary["attendance_marks"] == pytest.approx(30.0)
        assert summary["best_ct_average"] == 0
