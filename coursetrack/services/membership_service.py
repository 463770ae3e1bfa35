# ==============================================================================
# services/membership_service.py - Teacher memberships and invitations
# ==============================================================================

import logging
from typing import List, Optional

from coursetrack.domain import (
    COURSES,
    INVITATIONS,
    MEMBERSHIPS,
    INVITATION_ACCEPTED,
    INVITATION_PENDING,
    INVITATION_REJECTED,
    ROLE_OWNER,
    ROLE_TEACHER,
    Course,
    TeacherInvitation,
    TeacherMembership,
    membership_document_id,
    new_id,
    utcnow,
)
from coursetrack.exceptions import (
    CourseNotFoundError,
    InvitationNotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from coursetrack.utils.document_store import DocumentStore, Put, Update

logger = logging.getLogger(__name__)


class MembershipService:
    """Service for course teacher memberships, invitations and access checks"""

    def __init__(self, store: DocumentStore):
        self.store = store

    def get_course(self, course_id: str) -> Course:
        record = self.store.get(COURSES, course_id)
        if not record:
            raise CourseNotFoundError(course_id)
        return Course.from_record(record)

    def owner_membership(self, course_id: str, teacher_email: str) -> TeacherMembership:
        return TeacherMembership(
            course_id=course_id,
            teacher_email=teacher_email.lower(),
            role=ROLE_OWNER,
            is_active=True,
            joined_at=utcnow(),
        )

    def get_membership(self, course_id: str, teacher_email: str) -> Optional[TeacherMembership]:
        if not teacher_email:
            return None
        record = self.store.get(MEMBERSHIPS, membership_document_id(course_id, teacher_email))
        return TeacherMembership.from_record(record) if record else None

    def get_course_memberships(self, course_id: str) -> List[TeacherMembership]:
        return [TeacherMembership.from_record(r) for r in self.store.query(MEMBERSHIPS, course_id=course_id)]

    def get_teacher_memberships(self, teacher_email: str) -> List[TeacherMembership]:
        return [
            TeacherMembership.from_record(r)
            for r in self.store.query(MEMBERSHIPS, teacher_email=teacher_email.lower())
        ]

    def require_teacher(self, course_id: str, teacher_email: str, action: str) -> Course:
        """Return the course if ``teacher_email`` owns it or is a member; raise otherwise."""
        course = self.get_course(course_id)
        email = (teacher_email or "").lower()
        if email and (email == course.owner_email.lower() or self.get_membership(course_id, email)):
            return course
        logger.warning(f"Rejected {action} on course {course_id} by {teacher_email}")
        raise PermissionDeniedError(teacher_email, action, course_id)

    def require_owner(self, course_id: str, teacher_email: str, action: str) -> Course:
        course = self.get_course(course_id)
        if (teacher_email or "").lower() != course.owner_email.lower():
            logger.warning(f"Rejected {action} on course {course_id} by non-owner {teacher_email}")
            raise PermissionDeniedError(teacher_email, action, course_id)
        return course

    def set_teacher_course_active(self, course_id: str, teacher_email: str, is_active: bool) -> TeacherMembership:
        membership = self.get_membership(course_id, teacher_email)
        if not membership:
            raise PermissionDeniedError(teacher_email, "change course status", course_id)
        self.store.update(MEMBERSHIPS, membership.id, {"is_active": bool(is_active), "updated_at": utcnow().isoformat()})
        logger.info(f"Course {course_id} marked {'active' if is_active else 'inactive'} for {teacher_email}")
        return self.get_membership(course_id, teacher_email)

    # ------------------------------------------------------------------
    # Invitations
    # ------------------------------------------------------------------

    def invite_teacher(self, course_id: str, recipient_email: str, sender_email: str,
                       sender_name: str = None) -> Optional[TeacherInvitation]:
        """Create a pending invitation. Returns None if the recipient is already a member."""
        if not recipient_email or not recipient_email.strip():
            raise ValidationError("Recipient email is required", field="recipient_email")
        recipient_email = recipient_email.lower().strip()
        course = self.require_teacher(course_id, sender_email, "invite teachers")

        if recipient_email == course.owner_email.lower() or self.get_membership(course_id, recipient_email):
            logger.info(f"{recipient_email} is already a teacher in course {course_id}")
            return None

        for record in self.store.query(INVITATIONS, course_id=course_id, recipient_email=recipient_email,
                                       status=INVITATION_PENDING):
            return TeacherInvitation.from_record(record)

        invitation = TeacherInvitation(
            id=new_id(),
            course_id=course_id,
            course_name=course.name,
            sender_email=sender_email.lower(),
            sender_name=sender_name,
            recipient_email=recipient_email,
            status=INVITATION_PENDING,
            created_at=utcnow(),
        )
        self.store.create(INVITATIONS, invitation.id, invitation.to_record())
        logger.info(f"Invitation sent to {recipient_email} for course {course_id}")
        return invitation

    def get_pending_invitations(self, teacher_email: str) -> List[TeacherInvitation]:
        return [
            TeacherInvitation.from_record(r)
            for r in self.store.query(INVITATIONS, recipient_email=teacher_email.lower(), status=INVITATION_PENDING)
        ]

    def _pending_invitation_for(self, invitation_id: str, teacher_email: str):
        record = self.store.get(INVITATIONS, invitation_id)
        if not record:
            raise InvitationNotFoundError(invitation_id)
        invitation = TeacherInvitation.from_record(record)
        if invitation.recipient_email != (teacher_email or "").lower():
            raise PermissionDeniedError(teacher_email, "respond to this invitation")
        if invitation.status != INVITATION_PENDING:
            raise ValidationError("Invitation already responded", field="status", value=invitation.status)
        return invitation, record["_version"]

    def accept_invitation(self, invitation_id: str, teacher_email: str) -> TeacherMembership:
        invitation, version = self._pending_invitation_for(invitation_id, teacher_email)
        self.get_course(invitation.course_id)

        now = utcnow()
        membership = TeacherMembership(
            course_id=invitation.course_id,
            teacher_email=invitation.recipient_email,
            role=ROLE_TEACHER,
            is_active=True,
            joined_at=now,
        )
        self.store.batch_write([
            Put(MEMBERSHIPS, membership.id, membership.to_record()),
            Update(INVITATIONS, invitation.id,
                   {"status": INVITATION_ACCEPTED, "responded_at": now.isoformat()},
                   expected_version=version),
        ])
        logger.info(f"{teacher_email} joined course {invitation.course_id}")
        return membership

    def reject_invitation(self, invitation_id: str, teacher_email: str) -> None:
        invitation, version = self._pending_invitation_for(invitation_id, teacher_email)
        self.store.update(INVITATIONS, invitation.id,
                          {"status": INVITATION_REJECTED, "responded_at": utcnow().isoformat()},
                          expected_version=version)
        logger.info(f"{teacher_email} rejected invitation {invitation_id}")
