# ==============================================================================
# services/attendance_service.py - Attendance sessions and aggregation
# ==============================================================================

"""
Attendance is recorded once per (course, section, day). The session document
id is derived from that key, and the session is written with a create-only
operation, so a second recording for the same day fails in the store itself
rather than in a read-then-write check.

Sessions can be corrected any number of times; a correction replaces the
statuses but never the set of students the session covers.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from coursetrack.domain import (
    ATTENDANCE_SESSIONS,
    PRESENT,
    STATUSES,
    AttendanceSession,
    SessionKey,
    utcnow,
)
from coursetrack.exceptions import (
    DuplicateDocumentError,
    DuplicateSessionError,
    RosterMismatchError,
    SessionNotFoundError,
    ValidationError,
)
from coursetrack.services.enrollment_service import EnrollmentService
from coursetrack.services.grading import attendance_percentage
from coursetrack.services.membership_service import MembershipService
from coursetrack.utils.document_store import Create, DocumentStore

logger = logging.getLogger(__name__)


def _normalise_statuses(statuses: Mapping[Any, str]) -> Dict[str, str]:
    """Student IDs as strings, statuses lower-cased and checked."""
    normalised = {}
    for student_id, status in statuses.items():
        try:
            key = str(int(student_id))
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid student ID: {student_id}", field="student_statuses", value=student_id)
        value = str(status).strip().lower()
        if value not in STATUSES:
            raise ValidationError(f"Invalid attendance status for {student_id}: {status}",
                                  field="student_statuses", value=status)
        if key in normalised:
            raise RosterMismatchError(duplicates=[int(key)])
        normalised[key] = value
    return normalised


def _check_coverage(expected_ids, statuses: Dict[str, str]) -> None:
    expected = {str(sid) for sid in expected_ids}
    submitted = set(statuses)
    missing = expected - submitted
    unknown = submitted - expected
    if missing or unknown:
        raise RosterMismatchError(missing=[int(s) for s in missing], unknown=[int(s) for s in unknown])


class AttendanceService:
    """Service for recording, correcting and aggregating attendance"""

    def __init__(self, store: DocumentStore, enrollments: EnrollmentService = None,
                 memberships: MembershipService = None):
        self.store = store
        self.memberships = memberships or MembershipService(store)
        self.enrollments = enrollments or EnrollmentService(store, self.memberships)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def take_attendance(self, course_id: str, section: str, when: Any, recorded_by: str,
                        statuses: Mapping[Any, str], notes: str = None) -> AttendanceSession:
        """
        Record a new session for a section on a day.

        Args:
            course_id: Course the session belongs to
            section: Section name; matched case-insensitively
            when: Date, datetime or ISO string; only the calendar day is kept
            recorded_by: Email of the teacher taking attendance
            statuses: Mapping of every student in the section to present/absent

        Raises:
            ValidationError: statuses do not cover the section's roster exactly
            DuplicateSessionError: a session already exists for that day
            PermissionDeniedError: the teacher does not belong to the course
        """
        if not section or not str(section).strip():
            raise ValidationError("Section is required", field="section", value=section)
        self.memberships.require_teacher(course_id, recorded_by, "take attendance")

        key = SessionKey.of(course_id, section, when)
        roster = self.enrollments.get_roster(course_id, section=key.section)
        if not roster:
            raise ValidationError(f"No students enrolled in section {key.section}",
                                  field="section", value=key.section)

        normalised = _normalise_statuses(statuses)
        _check_coverage((entry.student_id for entry in roster), normalised)

        now = utcnow()
        session = AttendanceSession(
            id=key.document_id,
            course_id=course_id,
            section=key.section,
            date=key.day,
            student_statuses=normalised,
            recorded_by=recorded_by,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        try:
            self.store.batch_write([Create(ATTENDANCE_SESSIONS, session.id, session.to_record())])
        except DuplicateDocumentError:
            logger.warning(f"Attendance already taken for {course_id} section {key.section} on {key.day}")
            raise DuplicateSessionError(session.id, course_id, key.section, key.day)

        present = sum(1 for status in normalised.values() if status == PRESENT)
        logger.info(f"Attendance recorded for {course_id} section {key.section} on {key.day}: "
                    f"{present}/{len(normalised)} present")
        return session

    def update_attendance(self, session_id: str, statuses: Mapping[Any, str],
                          updated_by: str = None, notes: str = None) -> AttendanceSession:
        """Replace the statuses of an existing session. The covered students cannot change."""
        current = self.get_session(session_id)
        if updated_by is not None:
            self.memberships.require_teacher(current.course_id, updated_by, "update attendance")

        normalised = _normalise_statuses(statuses)
        _check_coverage((int(sid) for sid in current.student_statuses), normalised)

        fields = {"student_statuses": normalised, "updated_at": utcnow().isoformat()}
        if notes is not None:
            fields["notes"] = notes
        self.store.update(ATTENDANCE_SESSIONS, session_id, fields)
        logger.info(f"Attendance session {session_id} updated")
        return self.get_session(session_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> AttendanceSession:
        record = self.store.get(ATTENDANCE_SESSIONS, session_id)
        if not record:
            raise SessionNotFoundError(session_id)
        return AttendanceSession.from_record(record)

    def get_attendance_by_date(self, course_id: str, section: str, when: Any) -> Optional[AttendanceSession]:
        key = SessionKey.of(course_id, section, when)
        record = self.store.get(ATTENDANCE_SESSIONS, key.document_id)
        return AttendanceSession.from_record(record) if record else None

    def get_course_attendance(self, course_id: str, section: str = None) -> List[AttendanceSession]:
        """Sessions of a course, newest first."""
        filters = {"course_id": course_id}
        if section is not None:
            filters["section"] = section.strip().upper()
        sessions = [AttendanceSession.from_record(r) for r in self.store.query(ATTENDANCE_SESSIONS, **filters)]
        return sorted(sessions, key=lambda s: (s.date, s.section), reverse=True)

    def classes_held(self, course_id: str, section: str = None) -> int:
        """Sessions of one section, or the largest per-section count for the course."""
        sessions = self.get_course_attendance(course_id, section)
        if section is not None:
            return len(sessions)
        per_section: Dict[str, int] = {}
        for session in sessions:
            per_section[session.section] = per_section.get(session.section, 0) + 1
        return max(per_section.values(), default=0)

    def get_student_attendance(self, course_id: str, student_id: int) -> List[Dict[str, Any]]:
        """Per-session status history of one student, newest first."""
        history = []
        for session in self.get_course_attendance(course_id):
            status = session.status_of(student_id)
            if status is not None:
                history.append({
                    "session_id": session.id,
                    "date": session.date.isoformat(),
                    "section": session.section,
                    "status": status,
                })
        return history

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def percentage_for_student(self, course_id: str, student_id: int, section: str = None) -> float:
        """Attendance % over the sessions of the student's section; 0 with no sessions."""
        section = section or self.enrollments.section_of(course_id, student_id)
        if section is None:
            return 0.0
        return attendance_percentage(self.get_course_attendance(course_id, section), student_id)

    def percentages_for_course(self, course_id: str) -> Dict[int, float]:
        sessions_by_section: Dict[str, List[AttendanceSession]] = {}
        for session in self.get_course_attendance(course_id):
            sessions_by_section.setdefault(session.section, []).append(session)
        return {
            entry.student_id: attendance_percentage(sessions_by_section.get(entry.section, []), entry.student_id)
            for entry in self.enrollments.get_roster(course_id)
        }

    def percentage_across_course(self, course_id: str) -> float:
        """Unweighted mean of per-student percentages; 0 for an empty roster."""
        percentages = self.percentages_for_course(course_id)
        if not percentages:
            return 0.0
        return sum(percentages.values()) / len(percentages)

    def course_attendance_stats(self, course_id: str) -> Dict[str, Any]:
        sessions = self.get_course_attendance(course_id)
        last: Optional[date] = sessions[0].date if sessions else None
        return {
            "course_id": course_id,
            "total_sessions": len(sessions),
            "classes_held": self.classes_held(course_id),
            "average_attendance": round(self.percentage_across_course(course_id), 2),
            "last_session_date": last.isoformat() if last else None,
        }
