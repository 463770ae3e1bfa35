# ==============================================================================
# routes/enrollments.py - Enrollment range and roster endpoints
# ==============================================================================

import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends

from coursetrack.exceptions import CourseTrackBaseException, PermissionDeniedError
from coursetrack.routes.dependencies import current_teacher_email, current_user_email
from coursetrack.schemas import EnrollmentRangeIn
from coursetrack.services import get_enrollment_service, get_grading_service, get_membership_service
from coursetrack.services.user_service import ROLE_TEACHER, extract_student_id_from_email, get_role
from coursetrack.utils.database import get_store
from coursetrack.utils.document_store import DocumentStore
from coursetrack.utils.exceptions import create_http_exception, http_exception_for

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/courses/{course_id}/enrollments")
def get_enrollments(course_id: str, email: str = Depends(current_teacher_email),
                    store: DocumentStore = Depends(get_store)):
    """Enrollment ranges of a course, ascending by start ID"""
    try:
        get_membership_service(store).require_teacher(course_id, email, "view enrollments")
        return {"enrollments": get_enrollment_service(store).ranges_as_dicts(course_id)}
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in get_enrollments: {e}")
        raise create_http_exception(500, f"Error retrieving enrollments: {str(e)}")


@router.post("/courses/{course_id}/enrollments", status_code=201)
def add_enrollment(course_id: str, payload: EnrollmentRangeIn, email: str = Depends(current_teacher_email),
                   store: DocumentStore = Depends(get_store)):
    """Declare a student ID range for a section"""
    try:
        enrollment = get_enrollment_service(store).add_range(
            course_id, payload.start_id, payload.end_id, payload.section, added_by=email)
        return enrollment.to_record()
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in add_enrollment: {e}")
        raise create_http_exception(500, f"Error adding student ID range: {str(e)}")


@router.put("/courses/{course_id}/enrollments/{range_id}")
def update_enrollment(course_id: str, range_id: str, payload: EnrollmentRangeIn,
                      email: str = Depends(current_teacher_email), store: DocumentStore = Depends(get_store)):
    try:
        enrollment = get_enrollment_service(store).update_range(
            course_id, range_id, payload.start_id, payload.end_id, payload.section, updated_by=email)
        return enrollment.to_record()
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in update_enrollment: {e}")
        raise create_http_exception(500, f"Error updating student ID range: {str(e)}")


@router.delete("/courses/{course_id}/enrollments/{range_id}")
def remove_enrollment(course_id: str, range_id: str, email: str = Depends(current_teacher_email),
                      store: DocumentStore = Depends(get_store)):
    try:
        get_enrollment_service(store).remove_range(course_id, range_id, removed_by=email)
        return {"message": "Student ID range removed", "range_id": range_id}
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in remove_enrollment: {e}")
        raise create_http_exception(500, f"Error removing student ID range: {str(e)}")


@router.get("/courses/{course_id}/students")
def get_students(course_id: str, section: Optional[str] = None, email: str = Depends(current_teacher_email),
                 store: DocumentStore = Depends(get_store)):
    """Enrolled students, optionally for one section"""
    try:
        get_membership_service(store).require_teacher(course_id, email, "view students")
        roster = get_enrollment_service(store).get_roster(course_id, section=section, with_profiles=True)
        return {"students": [asdict(entry) for entry in roster], "total": len(roster)}
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in get_students: {e}")
        raise create_http_exception(500, f"Error retrieving students: {str(e)}")


@router.get("/courses/{course_id}/students/{student_id}/summary")
def get_student_summary(course_id: str, student_id: int, email: str = Depends(current_user_email),
                        store: DocumentStore = Depends(get_store)):
    """Attendance, attendance marks and best CT average of one student"""
    try:
        if get_role(email) == ROLE_TEACHER:
            get_membership_service(store).require_teacher(course_id, email, "view student summaries")
        elif extract_student_id_from_email(email) != student_id:
            raise PermissionDeniedError(email, "view another student's summary", course_id)
        return get_grading_service(store).student_summary(course_id, student_id)
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in get_student_summary: {e}")
        raise create_http_exception(500, f"Error retrieving student summary: {str(e)}")
