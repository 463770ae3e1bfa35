# tests/test_membership_service.py
import pytest

from conftest import CO_TEACHER, OUTSIDER, OWNER
from coursetrack.exceptions import CourseNotFoundError, InvitationNotFoundError, PermissionDeniedError, ValidationError
from coursetrack.services.user_service import (
    ROLE_STUDENT,
    ROLE_TEACHER,
    extract_student_id_from_email,
    get_role,
)


class TestCourseLookup:

    def test_get_course(self, memberships, course):
        assert memberships.get_course(course.id).code == "CSE-101"

    def test_get_unknown_course(self, memberships):
        with pytest.raises(CourseNotFoundError):
            memberships.get_course("missing")


class TestInvitations:

    def test_accept_grants_access(self, memberships, course):
        invitation = memberships.invite_teacher(course.id, CO_TEACHER.upper(), OWNER, sender_name="Owner")
        assert invitation.recipient_email == CO_TEACHER
        assert [i.id for i in memberships.get_pending_invitations(CO_TEACHER)] == [invitation.id]

        membership = memberships.accept_invitation(invitation.id, CO_TEACHER)

        assert membership.role == "teacher"
        assert memberships.require_teacher(course.id, CO_TEACHER, "view").id == course.id
        assert memberships.get_pending_invitations(CO_TEACHER) == []

    def test_reject_leaves_no_access(self, memberships, course):
        invitation = memberships.invite_teacher(course.id, CO_TEACHER, OWNER)
        memberships.reject_invitation(invitation.id, CO_TEACHER)

        with pytest.raises(PermissionDeniedError):
            memberships.require_teacher(course.id, CO_TEACHER, "view")
        with pytest.raises(ValidationError):
            memberships.accept_invitation(invitation.id, CO_TEACHER)

    def test_reinviting_returns_pending_invitation(self, memberships, course):
        first = memberships.invite_teacher(course.id, CO_TEACHER, OWNER)
        assert memberships.invite_teacher(course.id, CO_TEACHER, OWNER).id == first.id

    def test_inviting_existing_teacher_is_a_no_op(self, memberships, course):
        assert memberships.invite_teacher(course.id, OWNER, OWNER) is None

    def test_only_recipient_can_respond(self, memberships, course):
        invitation = memberships.invite_teacher(course.id, CO_TEACHER, OWNER)
        with pytest.raises(PermissionDeniedError):
            memberships.accept_invitation(invitation.id, OUTSIDER)

    def test_outsider_cannot_invite(self, memberships, course):
        with pytest.raises(PermissionDeniedError):
            memberships.invite_teacher(course.id, CO_TEACHER, OUTSIDER)

    def test_unknown_invitation(self, memberships):
        with pytest.raises(InvitationNotFoundError):
            memberships.reject_invitation("missing", CO_TEACHER)


class TestRoles:

    @pytest.mark.parametrize("email, role", [
        ("u2104095@students.cuet.ac.bd", ROLE_STUDENT),
        ("teacher@cuet.ac.bd", ROLE_TEACHER),
        ("Guest.Lecturer@gmail.com", ROLE_TEACHER),
        ("someone@gmail.com", None),
        ("", None),
    ])
    def test_get_role(self, email, role):
        assert get_role(email) == role

    def test_student_id_from_email(self):
        assert extract_student_id_from_email("U2104095@students.cuet.ac.bd") == 2104095
        assert extract_student_id_from_email("teacher@cuet.ac.bd") is None

    def test_save_user_is_idempotent(self, users):
        first = users.save_user("u2101001@students.cuet.ac.bd", name="Rahim", batch="21")
        again = users.save_user("u2101001@students.cuet.ac.bd", name="Someone else")

        assert first.student_id == 2101001
        assert again.name == "Rahim"
        assert set(users.students_by_id([2101001, 2101002])) == {2101001}

    def test_unrecognised_email_is_rejected(self, users):
        with pytest.raises(ValidationError):
            users.save_user("someone@gmail.com")
