# ==============================================================================
# services/report_service.py - Course and class test report export
# ==============================================================================

"""
Row-per-student reports joining enrollment, attendance and class test marks.

Reports are built as plain dataclasses first and only turned into pandas
DataFrames, spreadsheets or CSV at the edge. A course without students
yields an empty report carrying a user-facing ``message`` instead of an
error.
"""

import io
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

import pandas as pd
from openpyxl.utils import get_column_letter

from coursetrack.config.settings import Settings
from coursetrack.domain import ClassTest, Course, Mark, utcnow
from coursetrack.services.attendance_service import AttendanceService
from coursetrack.services.class_test_service import ClassTestService
from coursetrack.services.grading import (
    attendance_grade_contribution,
    best_k_average,
    eligible_percentages,
    mark_percentage,
)
from coursetrack.utils.logging import LoggingContext

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
NO_STUDENTS_MESSAGE = "No students enrolled in this course."
NO_CLASS_TESTS_MESSAGE = "No published class tests yet."


@dataclass
class ReportRow:
    student_id: int
    section: str
    name: Optional[str] = None
    email: Optional[str] = None
    attendance_percentage: float = 0.0
    attendance_marks: float = 0.0
    # One entry per published class test; None means absent or not graded
    ct_marks: List[Optional[float]] = field(default_factory=list)
    best_ct_average: Optional[float] = None


@dataclass
class CourseReport:
    course: Course
    class_tests: List[ClassTest]
    rows: List[ReportRow]
    max_attendance_marks: float
    generated_at: datetime
    message: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.rows

    @property
    def best_ct_label(self) -> int:
        return self.course.best_ct_count or len(self.class_tests)

    def info_rows(self) -> List[Tuple[str, Any]]:
        return [
            ("Course Code", self.course.code),
            ("Course Name", self.course.name),
            ("Credit", self.course.credit),
            ("Best CT Count", self.course.best_ct_count or "All"),
            ("Total Students", len(self.rows)),
            ("Total CTs", len(self.class_tests)),
            ("Report Generated", self.generated_at.strftime("%Y-%m-%d %H:%M:%S")),
        ]


@dataclass
class ClassTestReport:
    class_test: ClassTest
    rows: List[Dict[str, Any]]
    message: Optional[str] = None


@dataclass
class ExportResult:
    filename: str
    content: Optional[bytes]
    media_type: str = XLSX_MEDIA_TYPE
    message: Optional[str] = None


def _safe_filename(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "_", name)


def _format_ct_cell(marks_obtained: Optional[float], total_marks: int) -> str:
    if marks_obtained is None:
        return "Absent"
    return f"{marks_obtained:g}/{total_marks} ({mark_percentage(marks_obtained, total_marks):.1f}%)"


def iter_report_rows(report: CourseReport) -> Iterator[Dict[str, Any]]:
    """Named-column rows of the "Course Report" sheet."""
    best_column = f"Best {report.best_ct_label} CT Average"
    for row in report.rows:
        out = {
            "Student ID": row.student_id,
            "Name": row.name or "",
            "Email": row.email or "",
            "Section": row.section or "N/A",
            "Attendance %": f"{row.attendance_percentage:.2f}%",
            "Attendance Marks": f"{row.attendance_marks:.2f}/{report.max_attendance_marks:g}",
        }
        for index, (class_test, marks_obtained) in enumerate(zip(report.class_tests, row.ct_marks), start=1):
            out[f"CT {index}"] = _format_ct_cell(marks_obtained, class_test.total_marks)
        out[best_column] = f"{row.best_ct_average:.2f}%" if row.best_ct_average is not None else "N/A"
        yield out


def to_dataframe(report: CourseReport) -> pd.DataFrame:
    return pd.DataFrame(list(iter_report_rows(report)))


def _autosize(worksheet, frame: pd.DataFrame, header: bool = True) -> None:
    for position, column in enumerate(frame.columns, start=1):
        values = [str(v) for v in frame[column].tolist()]
        if header:
            values.append(str(column))
        width = max((len(v) for v in values), default=8)
        worksheet.column_dimensions[get_column_letter(position)].width = min(max(width + 2, 10), 40)


class ReportService:
    """Builds and exports course and class test reports"""

    def __init__(self, attendance: AttendanceService, class_tests: ClassTestService, settings: Settings = None):
        self.attendance = attendance
        self.class_tests = class_tests
        self.enrollments = attendance.enrollments
        self.settings = settings or Settings()

    def build_course_report(self, course_id: str, now: datetime = None) -> CourseReport:
        course = self.attendance.memberships.get_course(course_id)
        roster = self.enrollments.get_roster(course_id, with_profiles=True)
        published = self.class_tests.get_course_class_tests(course_id, published_only=True)
        max_marks = course.credit * self.settings.ATTENDANCE_MARKS_PER_CREDIT
        generated_at = now or utcnow()

        if not roster:
            logger.info(f"Course report for {course_id} is empty: no students")
            return CourseReport(course, published, [], max_marks, generated_at, NO_STUDENTS_MESSAGE)

        marks_by_ct: Dict[str, Dict[int, Mark]] = {
            ct.id: {mark.student_id: mark for mark in self.class_tests.get_class_test_marks(ct.id)}
            for ct in published
        }
        percentages = self.attendance.percentages_for_course(course_id)

        rows = []
        for entry in roster:
            attendance_pct = percentages.get(entry.student_id, 0.0)
            pairs = [(ct, marks_by_ct[ct.id].get(entry.student_id)) for ct in published]
            eligible = eligible_percentages(pairs)
            rows.append(ReportRow(
                student_id=entry.student_id,
                section=entry.section,
                name=entry.name,
                email=entry.email,
                attendance_percentage=attendance_pct,
                attendance_marks=attendance_grade_contribution(
                    attendance_pct, course.credit, self.settings.ATTENDANCE_MARKS_PER_CREDIT),
                ct_marks=[mark.marks_obtained if mark is not None and mark.is_graded else None
                          for _, mark in pairs],
                best_ct_average=best_k_average(eligible, course.best_ct_count) if eligible else None,
            ))

        message = None if published else NO_CLASS_TESTS_MESSAGE
        logger.info(f"Built course report for {course.code}: {len(rows)} students, {len(published)} CTs")
        return CourseReport(course, published, rows, max_marks, generated_at, message)

    def build_class_test_report(self, ct_id: str) -> ClassTestReport:
        class_test = self.class_tests.get_class_test(ct_id)
        roster = self.enrollments.get_roster(class_test.course_id, with_profiles=True)
        if not roster:
            return ClassTestReport(class_test, [], NO_STUDENTS_MESSAGE)

        marks = {mark.student_id: mark for mark in self.class_tests.get_class_test_marks(ct_id)}
        rows = []
        for entry in roster:
            mark = marks.get(entry.student_id)
            graded = mark is not None and mark.is_graded
            rows.append({
                "Student ID": entry.student_id,
                "Name": entry.name or "",
                "Email": entry.email or (mark.student_email if mark and mark.student_email else ""),
                "Section": entry.section or "N/A",
                "Status": mark.status if mark else "absent",
                "Marks Obtained": mark.marks_obtained if graded else "-",
                "Total Marks": class_test.total_marks,
                "Percentage": (f"{mark_percentage(mark.marks_obtained, class_test.total_marks):.2f}%"
                               if graded else "-"),
                "Feedback": (mark.feedback if mark and mark.feedback else "-"),
            })
        return ClassTestReport(class_test, rows)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_course_report_xlsx(self, course_id: str, now: datetime = None) -> ExportResult:
        report = self.build_course_report(course_id, now)
        filename = f"{_safe_filename(report.course.code)}_Course_Report.xlsx"
        if report.is_empty:
            return ExportResult(filename, None, message=report.message)

        report_df = to_dataframe(report)
        info_df = pd.DataFrame(report.info_rows())

        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            report_df.to_excel(writer, sheet_name="Course Report", index=False)
            info_df.to_excel(writer, sheet_name="Course Info", index=False, header=False)
            _autosize(writer.sheets["Course Report"], report_df)
            _autosize(writer.sheets["Course Info"], info_df, header=False)
        buffer.seek(0)

        with LoggingContext(logger, course_id=course_id, rows=len(report.rows)) as log:
            log.info(f"Exported course report {filename}")
        return ExportResult(filename, buffer.getvalue(), message=report.message)

    def export_course_report_csv(self, course_id: str, now: datetime = None) -> ExportResult:
        report = self.build_course_report(course_id, now)
        filename = f"{_safe_filename(report.course.code)}_Course_Report.csv"
        if report.is_empty:
            return ExportResult(filename, None, media_type="text/csv", message=report.message)
        content = to_dataframe(report).to_csv(index=False).encode("utf-8")
        return ExportResult(filename, content, media_type="text/csv", message=report.message)

    def export_class_test_xlsx(self, ct_id: str) -> ExportResult:
        report = self.build_class_test_report(ct_id)
        filename = f"{_safe_filename(report.class_test.name)}_marks.xlsx"
        if not report.rows:
            return ExportResult(filename, None, message=report.message)

        marks_df = pd.DataFrame(report.rows)
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            marks_df.to_excel(writer, sheet_name="CT Marks", index=False)
            _autosize(writer.sheets["CT Marks"], marks_df)
        buffer.seek(0)

        logger.info(f"Exported class test marks {filename}")
        return ExportResult(filename, buffer.getvalue())
