# ==============================================================================
# routes/invitations.py - Teacher invitations and user profile endpoints
# ==============================================================================

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from coursetrack.exceptions import CourseTrackBaseException, UserNotFoundError
from coursetrack.routes.dependencies import current_teacher_email, current_user_email
from coursetrack.schemas import InvitationCreate
from coursetrack.services import get_membership_service, get_user_service
from coursetrack.utils.database import get_store
from coursetrack.utils.document_store import DocumentStore
from coursetrack.utils.exceptions import create_http_exception, http_exception_for

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/courses/{course_id}/invitations", status_code=201)
def invite_teacher(course_id: str, payload: InvitationCreate, email: str = Depends(current_teacher_email),
                   store: DocumentStore = Depends(get_store)):
    """Invite another teacher to the course"""
    try:
        invitation = get_membership_service(store).invite_teacher(
            course_id, payload.recipient_email, email, sender_name=payload.sender_name)
        if invitation is None:
            return {"message": f"{payload.recipient_email} is already a teacher in this course"}
        return invitation.to_record()
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in invite_teacher: {e}")
        raise create_http_exception(500, f"Error sending invitation: {str(e)}")


@router.get("/invitations")
def get_pending_invitations(email: str = Depends(current_teacher_email), store: DocumentStore = Depends(get_store)):
    try:
        invitations = get_membership_service(store).get_pending_invitations(email)
        return {"invitations": [invitation.to_record() for invitation in invitations]}
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in get_pending_invitations: {e}")
        raise create_http_exception(500, f"Error retrieving invitations: {str(e)}")


@router.post("/invitations/{invitation_id}/accept")
def accept_invitation(invitation_id: str, email: str = Depends(current_teacher_email),
                      store: DocumentStore = Depends(get_store)):
    try:
        membership = get_membership_service(store).accept_invitation(invitation_id, email)
        return membership.to_record()
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in accept_invitation: {e}")
        raise create_http_exception(500, f"Error accepting invitation: {str(e)}")


@router.post("/invitations/{invitation_id}/reject")
def reject_invitation(invitation_id: str, email: str = Depends(current_teacher_email),
                      store: DocumentStore = Depends(get_store)):
    try:
        get_membership_service(store).reject_invitation(invitation_id, email)
        return {"message": "Invitation rejected", "invitation_id": invitation_id}
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in reject_invitation: {e}")
        raise create_http_exception(500, f"Error rejecting invitation: {str(e)}")


@router.post("/users/me")
def save_current_user(name: str = "", department: str = "CSE", batch: Optional[str] = None,
                      email: str = Depends(current_user_email), store: DocumentStore = Depends(get_store)):
    """Create the caller's profile on first sign-in"""
    try:
        return get_user_service(store).save_user(email, name=name, department=department, batch=batch).to_record()
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in save_current_user: {e}")
        raise create_http_exception(500, f"Error saving user: {str(e)}")


@router.get("/users/me")
def get_current_user(email: str = Depends(current_user_email), store: DocumentStore = Depends(get_store)):
    try:
        profile = get_user_service(store).get_user(email)
        if profile is None:
            raise UserNotFoundError(email)
        return profile.to_record()
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in get_current_user: {e}")
        raise create_http_exception(500, f"Error retrieving user: {str(e)}")
