# ==============================================================================
# services/grading.py - Attendance and class test grade calculations
# ==============================================================================

"""
Pure grading functions plus a small service that feeds them from the stores.

Class test marks enter the best-K average as percentages of the test's total
marks. Only present and graded marks are eligible; an absent or ungraded
test is left out of both numerator and denominator.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from coursetrack.config.settings import Settings
from coursetrack.domain import PRESENT, AttendanceSession, ClassTest, Mark
from coursetrack.exceptions import ValidationError

logger = logging.getLogger(__name__)

# (lower bound %, share of the maximum attendance marks), highest first
ATTENDANCE_GRADE_STEPS: Tuple[Tuple[float, float], ...] = (
    (95.0, 1.0),
    (90.0, 0.8),
    (80.0, 0.6),
    (70.0, 0.4),
    (60.0, 0.2),
)


def attendance_percentage(sessions: Iterable[AttendanceSession], student_id: int) -> float:
    """Share of ``sessions`` in which the student is present, 0 with no sessions."""
    sessions = list(sessions)
    if not sessions:
        return 0.0
    present = sum(1 for session in sessions if session.status_of(student_id) == PRESENT)
    return present / len(sessions) * 100


def best_k_average(percentages: Sequence[float], k: Optional[int] = None) -> float:
    """Mean of the ``k`` highest percentages (all of them when ``k`` is None)."""
    if k is not None and k < 1:
        raise ValidationError("Best CT count must be at least 1", field="best_ct_count", value=k)
    if not percentages:
        return 0.0
    ranked = sorted(percentages, reverse=True)
    chosen = ranked[:min(k or len(ranked), len(ranked))]
    return sum(chosen) / len(chosen)


def attendance_grade_contribution(attendance_pct: float, course_credit: float,
                                  marks_per_credit: float = 10) -> float:
    """Stepped attendance marks out of ``course_credit * marks_per_credit``."""
    max_points = course_credit * marks_per_credit
    for threshold, share in ATTENDANCE_GRADE_STEPS:
        if attendance_pct >= threshold:
            return max_points * share
    return 0.0


def mark_percentage(marks_obtained: float, total_marks: float) -> float:
    if total_marks <= 0:
        raise ValidationError("Total marks must be greater than 0", field="total_marks", value=total_marks)
    return marks_obtained / total_marks * 100


def eligible_percentages(pairs: Iterable[Tuple[ClassTest, Optional[Mark]]]) -> List[float]:
    """Percentages of the (class test, mark) pairs whose mark is present and graded."""
    return [
        mark_percentage(mark.marks_obtained, class_test.total_marks)
        for class_test, mark in pairs
        if mark is not None and mark.is_graded
    ]


class GradingService:
    """Combines attendance and class test records into per-student grades"""

    def __init__(self, attendance, class_tests, settings: Settings = None):
        self.attendance = attendance
        self.class_tests = class_tests
        self.settings = settings or Settings()

    def get_course(self, course_id: str):
        return self.attendance.memberships.get_course(course_id)

    def student_ct_pairs(self, course_id: str, student_id: int,
                         published_only: bool = True) -> List[Tuple[ClassTest, Optional[Mark]]]:
        marks = {mark.ct_id: mark for mark in self.class_tests.get_student_course_marks(course_id, student_id)}
        return [
            (class_test, marks.get(class_test.id))
            for class_test in self.class_tests.get_course_class_tests(course_id, published_only=published_only)
        ]

    def student_best_ct_average(self, course_id: str, student_id: int, published_only: bool = True) -> float:
        course = self.get_course(course_id)
        percentages = eligible_percentages(self.student_ct_pairs(course_id, student_id, published_only))
        return best_k_average(percentages, course.best_ct_count)

    def student_summary(self, course_id: str, student_id: int) -> Dict[str, Any]:
        course = self.get_course(course_id)
        section = self.attendance.enrollments.section_of(course_id, student_id)
        sessions = self.attendance.get_course_attendance(course_id, section) if section else []
        attendance_pct = attendance_percentage(sessions, student_id)
        pairs = self.student_ct_pairs(course_id, student_id)

        class_tests = []
        for class_test, mark in pairs:
            class_tests.append({
                "ct_id": class_test.id,
                "name": class_test.name,
                "total_marks": class_test.total_marks,
                "status": mark.status if mark else None,
                "marks_obtained": mark.marks_obtained if mark else None,
            })

        return {
            "course_id": course_id,
            "student_id": int(student_id),
            "section": section,
            "classes_held": len(sessions),
            "classes_attended": sum(1 for s in sessions if s.status_of(student_id) == PRESENT),
            "attendance_percentage": round(attendance_pct, 2),
            "attendance_marks": attendance_grade_contribution(
                attendance_pct, course.credit, self.settings.ATTENDANCE_MARKS_PER_CREDIT),
            "best_ct_count": course.best_ct_count,
            "best_ct_average": round(best_k_average(eligible_percentages(pairs), course.best_ct_count), 2),
            "class_tests": class_tests,
        }
