# tests/test_enrollment_service.py
import pytest

from conftest import CO_TEACHER, OUTSIDER, OWNER, student_email
from coursetrack.config.settings import Settings
from coursetrack.domain import EnrollmentRange, RosterEntry
from coursetrack.exceptions import (
    ConcurrentModificationError,
    ConfigurationError,
    EnrollmentNotFoundError,
    OverlapError,
    PermissionDeniedError,
    ValidationError,
)
from coursetrack.services.enrollment_service import expand_enrollments, expand_to_student_ids
from coursetrack.utils.document_store import Put


def _range(start, end, section, range_id=None):
    return EnrollmentRange(id=range_id or f"{start}-{end}", course_id="c1", section=section,
                           start_id=start, end_id=end)


class TestExpansion:

    def test_expand_to_student_ids_is_inclusive(self):
        expanded = expand_to_student_ids([_range(5, 7, "A")])
        assert expanded == [[(5, "A"), (6, "A"), (7, "A")]]

    def test_expand_enrollments_sorts_across_ranges(self):
        roster = expand_enrollments([_range(10, 11, "B"), _range(1, 2, "A")])
        assert roster == [RosterEntry(1, "A"), RosterEntry(2, "A"), RosterEntry(10, "B"), RosterEntry(11, "B")]

    def test_single_id_range(self):
        assert expand_enrollments([_range(3, 3, "C")]) == [RosterEntry(3, "C")]


class TestAddRange:

    def test_adjacent_sections_then_overlap(self, course, enrollments):
        enrollments.add_range(course.id, 2101001, 2101030, "A", added_by=OWNER)
        enrollments.add_range(course.id, 2101031, 2101060, "B", added_by=OWNER)

        with pytest.raises(OverlapError) as exc_info:
            enrollments.add_range(course.id, 2101025, 2101035, "C", added_by=OWNER)

        assert exc_info.value.conflicting["start_id"] == 2101001
        assert exc_info.value.conflicting["section"] == "A"
        assert len(enrollments.get_ranges(course.id)) == 2

    def test_overlap_is_checked_across_sections(self, course, enrollments):
        enrollments.add_range(course.id, 100, 200, "A")
        with pytest.raises(OverlapError):
            enrollments.add_range(course.id, 200, 300, "B")

    def test_start_greater_than_end_is_rejected(self, course, enrollments):
        with pytest.raises(ValidationError):
            enrollments.add_range(course.id, 20, 10, "A")

    def test_blank_section_is_rejected(self, course, enrollments):
        with pytest.raises(ValidationError):
            enrollments.add_range(course.id, 1, 10, "  ")

    def test_section_is_normalised(self, course, enrollments):
        created = enrollments.add_range(course.id, 1, 3, " b ")
        assert created.section == "B"
        assert enrollments.sections(course.id) == ["B"]

    def test_outsider_cannot_add_ranges(self, course, enrollments):
        with pytest.raises(PermissionDeniedError):
            enrollments.add_range(course.id, 1, 3, "A", added_by=OUTSIDER)

    def test_ranges_of_other_courses_do_not_conflict(self, course, courses, enrollments):
        other = courses.create_course("CSE-102", CO_TEACHER)
        enrollments.add_range(course.id, 1, 10, "A")
        enrollments.add_range(other.id, 1, 10, "A")
        assert len(enrollments.get_ranges(other.id)) == 1

    def test_concurrent_range_is_revalidated(self, course, enrollments, store, monkeypatch):
        """A writer whose read went stale retries and then sees the other range."""
        enrollments.add_range(course.id, 1, 10, "A")
        real_get_ranges = enrollments.get_ranges
        calls = {"n": 0}

        def racing_get_ranges(course_id):
            calls["n"] += 1
            snapshot = real_get_ranges(course_id)
            if calls["n"] == 1:
                # Another teacher commits a range between our read and our write
                sneaky = EnrollmentRange(id="sneaky", course_id=course_id, section="B", start_id=11, end_id=20)
                store.batch_write([
                    Put("enrollment_versions", course_id, {"course_id": course_id}),
                    Put("enrollments", sneaky.id, sneaky.to_record()),
                ])
            return snapshot

        monkeypatch.setattr(enrollments, "get_ranges", racing_get_ranges)

        with pytest.raises(OverlapError):
            enrollments.add_range(course.id, 15, 25, "C")
        assert calls["n"] == 2

    def test_persistent_conflict_gives_up(self, course, enrollments, monkeypatch):
        monkeypatch.setattr(enrollments, "enrollment_version", lambda course_id: 999)
        with pytest.raises(ConcurrentModificationError):
            enrollments.add_range(course.id, 1, 10, "A")

    def test_write_retries_below_one_is_a_configuration_error(self, monkeypatch):
        monkeypatch.setattr(Settings, "WRITE_RETRIES", 0)
        with pytest.raises(ConfigurationError) as exc_info:
            Settings()
        assert exc_info.value.details["setting"] == "WRITE_RETRIES"

    def test_zero_retries_still_writes_once(self, course, enrollments):
        enrollments.settings.WRITE_RETRIES = 0
        created = enrollments.add_range(course.id, 1, 10, "A")
        assert [r.id for r in enrollments.get_ranges(course.id)] == [created.id]


class TestUpdateAndRemove:

    def test_update_excludes_itself_from_overlap(self, course, enrollments):
        created = enrollments.add_range(course.id, 1, 10, "A")
        updated = enrollments.update_range(course.id, created.id, 1, 12, "A")
        assert (updated.start_id, updated.end_id) == (1, 12)

    def test_update_into_another_range_fails(self, course, enrollments):
        first = enrollments.add_range(course.id, 1, 10, "A")
        enrollments.add_range(course.id, 11, 20, "B")
        with pytest.raises(OverlapError):
            enrollments.update_range(course.id, first.id, 1, 11, "A")

    def test_update_unknown_range(self, course, enrollments):
        with pytest.raises(EnrollmentNotFoundError):
            enrollments.update_range(course.id, "nope", 1, 2, "A")

    def test_remove_range_shrinks_roster(self, course, enrollments):
        first = enrollments.add_range(course.id, 1, 3, "A")
        enrollments.add_range(course.id, 4, 5, "B")
        assert len(enrollments.get_roster(course.id)) == 5

        enrollments.remove_range(course.id, first.id)

        assert [e.student_id for e in enrollments.get_roster(course.id)] == [4, 5]
        assert enrollments.section_of(course.id, 2) is None


class TestRoster:

    def test_roster_for_one_section(self, enrolled_course, enrollments):
        section_b = enrollments.get_roster(enrolled_course.id, section="b")
        assert [e.student_id for e in section_b] == [2101006, 2101007, 2101008]

    def test_section_of_and_enrollment(self, enrolled_course, enrollments):
        assert enrollments.section_of(enrolled_course.id, 2101003) == "A"
        assert enrollments.is_student_enrolled(enrolled_course.id, 2101008)
        assert not enrollments.is_student_enrolled(enrolled_course.id, 2101009)

    def test_roster_joins_profiles(self, enrolled_course, enrollments, users):
        users.save_user(student_email(2101002), name="Rahim")

        roster = enrollments.get_roster(enrolled_course.id, section="A", with_profiles=True)

        by_id = {e.student_id: e for e in roster}
        assert by_id[2101002].name == "Rahim"
        assert by_id[2101002].email == student_email(2101002)
        assert by_id[2101001].name is None

    def test_roster_cache_follows_enrollment_version(self, course, enrollments):
        enrollments.add_range(course.id, 1, 2, "A")
        assert len(enrollments.get_roster(course.id)) == 2

        enrollments.add_range(course.id, 3, 4, "A")
        assert len(enrollments.get_roster(course.id)) == 4

    def test_enrolled_course_ids(self, enrolled_course, enrollments):
        assert enrollments.enrolled_course_ids(2101004) == [enrolled_course.id]
        assert enrollments.enrolled_course_ids(1) == []
