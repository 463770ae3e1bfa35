# ==============================================================================
# services/enrollment_service.py - Section-based student ID range enrollment
# ==============================================================================

"""
Students are not stored per course. A course declares contiguous, inclusive
student ID ranges, each tagged with a section, and the roster is the
expansion of those ranges. Ranges of one course never overlap, even across
sections, so every enrolled ID belongs to exactly one section.

Every range mutation bumps the course's enrollment version document in the
same batch write, with an optimistic version check. Two teachers racing to
add overlapping ranges therefore cannot both succeed: the loser re-reads the
ranges and fails the overlap check.
"""

import logging
from collections import OrderedDict
from threading import Lock
from typing import Dict, Iterable, List, Optional, Tuple

from coursetrack.config.settings import Settings
from coursetrack.domain import (
    ENROLLMENTS,
    ENROLLMENT_VERSIONS,
    EnrollmentRange,
    RosterEntry,
    new_id,
    utcnow,
)
from coursetrack.exceptions import (
    EnrollmentNotFoundError,
    OverlapError,
    ValidationError,
)
from coursetrack.services.membership_service import MembershipService
from coursetrack.services.user_service import UserService
from coursetrack.utils.document_store import Delete, DocumentStore, Put
from coursetrack.utils.retry import optimistic_write

logger = logging.getLogger(__name__)


def expand_to_student_ids(ranges: Iterable[EnrollmentRange]) -> List[List[Tuple[int, str]]]:
    """For each range, the inclusive ID sequence tagged with the range's section."""
    return [
        [(student_id, r.section) for student_id in range(r.start_id, r.end_id + 1)]
        for r in ranges
    ]


def expand_enrollments(ranges: Iterable[EnrollmentRange]) -> List[RosterEntry]:
    """Whole-course roster, ascending by student ID across all ranges."""
    entries = {
        student_id: section
        for expanded in expand_to_student_ids(ranges)
        for student_id, section in expanded
    }
    return [RosterEntry(student_id, section) for student_id, section in sorted(entries.items())]


def find_overlap(ranges: Iterable[EnrollmentRange], start_id: int, end_id: int,
                 exclude_id: str = None) -> Optional[EnrollmentRange]:
    for existing in ranges:
        if existing.id == exclude_id:
            continue
        if existing.overlaps(start_id, end_id):
            return existing
    return None


def _normalise_section(section: str) -> str:
    if section is None or not str(section).strip():
        raise ValidationError("Section is required", field="section", value=section)
    return str(section).strip().upper()


def _validate_bounds(start_id, end_id) -> Tuple[int, int]:
    try:
        start_id, end_id = int(start_id), int(end_id)
    except (TypeError, ValueError):
        raise ValidationError("Student IDs must be integers", field="start_id/end_id",
                              value=f"{start_id}-{end_id}")
    if start_id < 0 or end_id < 0:
        raise ValidationError("Student IDs must be non-negative", field="start_id/end_id",
                              value=f"{start_id}-{end_id}")
    if start_id > end_id:
        raise ValidationError("Start ID cannot be greater than end ID", field="start_id",
                              value=f"{start_id}-{end_id}")
    return start_id, end_id


class _RosterCache:
    """Expanded rosters keyed by (course_id, enrollment version)."""

    def __init__(self, max_entries: int = 256):
        self.max_entries = max_entries
        self._entries: "OrderedDict[Tuple[str, int], Tuple[RosterEntry, ...]]" = OrderedDict()
        self._lock = Lock()

    def get(self, course_id: str, version: int) -> Optional[Tuple[RosterEntry, ...]]:
        with self._lock:
            key = (course_id, version)
            if key in self._entries:
                self._entries.move_to_end(key)
                return self._entries[key]
            return None

    def put(self, course_id: str, version: int, roster: Tuple[RosterEntry, ...]) -> None:
        with self._lock:
            self._entries[(course_id, version)] = roster
            self._entries.move_to_end((course_id, version))
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


roster_cache = _RosterCache()


class EnrollmentService:
    """Service for enrollment ranges and the rosters derived from them"""

    def __init__(self, store: DocumentStore, memberships: MembershipService = None,
                 users: UserService = None, settings: Settings = None):
        self.store = store
        self.settings = settings or Settings()
        self.memberships = memberships or MembershipService(store)
        self.users = users or UserService(store, self.settings)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_ranges(self, course_id: str) -> List[EnrollmentRange]:
        ranges = [EnrollmentRange.from_record(r) for r in self.store.query(ENROLLMENTS, course_id=course_id)]
        return sorted(ranges, key=lambda r: r.start_id)

    def enrollment_version(self, course_id: str) -> int:
        return self.store.get_version(ENROLLMENT_VERSIONS, course_id)

    def get_roster(self, course_id: str, section: str = None, with_profiles: bool = False) -> List[RosterEntry]:
        """Enrolled students ascending by ID, optionally for one section only."""
        version = self.enrollment_version(course_id)
        roster = roster_cache.get(course_id, version)
        if roster is None:
            roster = tuple(expand_enrollments(self.get_ranges(course_id)))
            roster_cache.put(course_id, version, roster)

        if section is not None:
            wanted = _normalise_section(section)
            roster = tuple(entry for entry in roster if entry.section == wanted)

        if not with_profiles:
            return list(roster)

        profiles = self.users.students_by_id(entry.student_id for entry in roster)
        return [
            RosterEntry(
                entry.student_id,
                entry.section,
                name=profiles[entry.student_id].name if entry.student_id in profiles else None,
                email=profiles[entry.student_id].email if entry.student_id in profiles else None,
            )
            for entry in roster
        ]

    def sections(self, course_id: str) -> List[str]:
        return sorted({r.section for r in self.get_ranges(course_id)})

    def section_of(self, course_id: str, student_id: int) -> Optional[str]:
        for r in self.get_ranges(course_id):
            if r.contains(int(student_id)):
                return r.section
        return None

    def is_student_enrolled(self, course_id: str, student_id: int) -> bool:
        return self.section_of(course_id, student_id) is not None

    def enrolled_course_ids(self, student_id: int) -> List[str]:
        """IDs of every course with a range containing ``student_id``."""
        course_ids = {
            record["course_id"]
            for record in self.store.query(ENROLLMENTS)
            if int(record["start_id"]) <= int(student_id) <= int(record["end_id"])
        }
        return sorted(course_ids)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_range(self, course_id: str, start_id: int, end_id: int, section: str,
                  added_by: str = None) -> EnrollmentRange:
        """Declare a new range. Raises ValidationError or OverlapError."""
        start_id, end_id = _validate_bounds(start_id, end_id)
        section = _normalise_section(section)
        self._check_access(course_id, added_by, "add student ID ranges")

        enrollment = EnrollmentRange(
            id=new_id(),
            course_id=course_id,
            section=section,
            start_id=start_id,
            end_id=end_id,
            added_by=added_by,
            created_at=utcnow(),
        )
        self._write_with_overlap_check(course_id, enrollment, exclude_id=None)
        logger.info(f"Student ID range added to {course_id}: {start_id}-{end_id} (Section {section})")
        return enrollment

    def update_range(self, course_id: str, range_id: str, start_id: int, end_id: int, section: str,
                     updated_by: str = None) -> EnrollmentRange:
        """Change bounds and section of a range; the range itself is excluded from the overlap check."""
        start_id, end_id = _validate_bounds(start_id, end_id)
        section = _normalise_section(section)
        self._check_access(course_id, updated_by, "update student ID ranges")

        current = self._get_range(course_id, range_id)
        updated = EnrollmentRange(
            id=current.id,
            course_id=course_id,
            section=section,
            start_id=start_id,
            end_id=end_id,
            added_by=current.added_by,
            created_at=current.created_at,
        )
        self._write_with_overlap_check(course_id, updated, exclude_id=range_id)
        logger.info(f"Student ID range updated in {course_id}: {start_id}-{end_id} (Section {section})")
        return updated

    def remove_range(self, course_id: str, range_id: str, removed_by: str = None) -> None:
        """Delete a range. Recorded sessions and marks keep their historical entries."""
        self._check_access(course_id, removed_by, "remove student ID ranges")
        self._get_range(course_id, range_id)

        for attempt in optimistic_write(self.settings.WRITE_RETRIES, logger):
            with attempt:
                version = self.enrollment_version(course_id)
                self.store.batch_write([
                    Put(ENROLLMENT_VERSIONS, course_id, {"course_id": course_id}, expected_version=version),
                    Delete(ENROLLMENTS, range_id),
                ])
        logger.info(f"Student ID range {range_id} removed from {course_id}")

    def _check_access(self, course_id: str, email: Optional[str], action: str) -> None:
        if email is not None:
            self.memberships.require_teacher(course_id, email, action)
        else:
            self.memberships.get_course(course_id)

    def _get_range(self, course_id: str, range_id: str) -> EnrollmentRange:
        record = self.store.get(ENROLLMENTS, range_id)
        if not record or record.get("course_id") != course_id:
            raise EnrollmentNotFoundError(range_id)
        return EnrollmentRange.from_record(record)

    def _write_with_overlap_check(self, course_id: str, enrollment: EnrollmentRange, exclude_id: Optional[str]):
        # A version conflict means another writer changed the ranges: re-read and re-validate
        for attempt in optimistic_write(self.settings.WRITE_RETRIES, logger):
            with attempt:
                version = self.enrollment_version(course_id)
                ranges = self.get_ranges(course_id)

                if exclude_id is not None and not any(r.id == exclude_id for r in ranges):
                    raise EnrollmentNotFoundError(exclude_id)

                conflict = find_overlap(ranges, enrollment.start_id, enrollment.end_id, exclude_id=exclude_id)
                if conflict is not None:
                    logger.warning(
                        f"Range {enrollment.start_id}-{enrollment.end_id} overlaps "
                        f"{conflict.start_id}-{conflict.end_id} in course {course_id}"
                    )
                    raise OverlapError(course_id, enrollment.start_id, enrollment.end_id, conflict.to_record())

                self.store.batch_write([
                    Put(ENROLLMENT_VERSIONS, course_id, {"course_id": course_id}, expected_version=version),
                    Put(ENROLLMENTS, enrollment.id, enrollment.to_record()),
                ])

    def ranges_as_dicts(self, course_id: str) -> List[Dict]:
        return [r.to_record() for r in self.get_ranges(course_id)]
