# ==============================================================================
# routes/attendance.py - Attendance endpoints
# ==============================================================================

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from coursetrack.exceptions import CourseTrackBaseException
from coursetrack.routes.dependencies import current_teacher_email
from coursetrack.schemas import AttendanceCreate, AttendanceUpdate
from coursetrack.services import get_attendance_service
from coursetrack.utils.database import get_store
from coursetrack.utils.document_store import DocumentStore
from coursetrack.utils.exceptions import create_http_exception, http_exception_for

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/courses/{course_id}/attendance", status_code=201)
def take_attendance(course_id: str, payload: AttendanceCreate, email: str = Depends(current_teacher_email),
                    store: DocumentStore = Depends(get_store)):
    """Record attendance for a whole section on one day"""
    try:
        session = get_attendance_service(store).take_attendance(
            course_id, payload.section, payload.date, email, payload.student_statuses, notes=payload.notes)
        return session.to_record()
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in take_attendance: {e}")
        raise create_http_exception(500, f"Error recording attendance: {str(e)}")


@router.get("/courses/{course_id}/attendance")
def get_course_attendance(course_id: str, section: Optional[str] = None,
                          email: str = Depends(current_teacher_email), store: DocumentStore = Depends(get_store)):
    """Sessions newest first plus the number of classes held"""
    try:
        service = get_attendance_service(store)
        service.memberships.require_teacher(course_id, email, "view attendance")
        sessions = service.get_course_attendance(course_id, section)
        return {
            "sessions": [session.to_record() for session in sessions],
            "classes_held": service.classes_held(course_id, section),
        }
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in get_course_attendance: {e}")
        raise create_http_exception(500, f"Error retrieving attendance: {str(e)}")


@router.get("/courses/{course_id}/attendance/stats")
def get_attendance_stats(course_id: str, email: str = Depends(current_teacher_email),
                         store: DocumentStore = Depends(get_store)):
    try:
        service = get_attendance_service(store)
        service.memberships.require_teacher(course_id, email, "view attendance")
        return service.course_attendance_stats(course_id)
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in get_attendance_stats: {e}")
        raise create_http_exception(500, f"Error retrieving attendance stats: {str(e)}")


@router.put("/attendance/{session_id}")
def update_attendance(session_id: str, payload: AttendanceUpdate, email: str = Depends(current_teacher_email),
                      store: DocumentStore = Depends(get_store)):
    """Correct the statuses of a recorded session"""
    try:
        session = get_attendance_service(store).update_attendance(
            session_id, payload.student_statuses, updated_by=email, notes=payload.notes)
        return session.to_record()
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in update_attendance: {e}")
        raise create_http_exception(500, f"Error updating attendance: {str(e)}")
