# ==============================================================================
# routes/courses.py - Course endpoints
# ==============================================================================

import logging

from fastapi import APIRouter, Depends

from coursetrack.exceptions import CourseTrackBaseException, PermissionDeniedError
from coursetrack.routes.dependencies import current_student_id, current_teacher_email, current_user_email
from coursetrack.schemas import CourseActiveUpdate, CourseCreate, CourseUpdate
from coursetrack.services import get_course_service
from coursetrack.services.user_service import ROLE_TEACHER, extract_student_id_from_email, get_role
from coursetrack.utils.database import get_store
from coursetrack.utils.document_store import DocumentStore
from coursetrack.utils.exceptions import create_http_exception, http_exception_for

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/courses", status_code=201)
def create_course(payload: CourseCreate, email: str = Depends(current_teacher_email),
                  store: DocumentStore = Depends(get_store)):
    """Create a course owned by the caller"""
    try:
        course = get_course_service(store).create_course(owner_email=email, **payload.model_dump())
        return course.to_record()
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in create_course: {e}")
        raise create_http_exception(500, f"Error creating course: {str(e)}")


@router.get("/courses")
def get_teacher_courses(active_only: bool = False, email: str = Depends(current_teacher_email),
                        store: DocumentStore = Depends(get_store)):
    """Courses the caller owns or teaches"""
    try:
        courses = get_course_service(store).get_teacher_courses(email, active_only=active_only)
        return {"courses": [course.to_record() for course in courses]}
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in get_teacher_courses: {e}")
        raise create_http_exception(500, f"Error retrieving courses: {str(e)}")


@router.get("/courses/{course_id}")
def get_course(course_id: str, email: str = Depends(current_user_email),
               store: DocumentStore = Depends(get_store)):
    """Course details for its teachers and enrolled students"""
    try:
        service = get_course_service(store)
        if get_role(email) == ROLE_TEACHER:
            service.memberships.require_teacher(course_id, email, "view course")
            return service.get_course(course_id).to_record()
        course = service.get_course(course_id)
        student_id = extract_student_id_from_email(email)
        if student_id is None or not service.enrollments.is_student_enrolled(course_id, student_id):
            raise PermissionDeniedError(email, "view course", course_id)
        return course.to_record()
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in get_course: {e}")
        raise create_http_exception(500, f"Error retrieving course: {str(e)}")


@router.patch("/courses/{course_id}")
def update_course(course_id: str, payload: CourseUpdate, email: str = Depends(current_teacher_email),
                  store: DocumentStore = Depends(get_store)):
    """Partial course update; fields left out of the body are unchanged"""
    try:
        fields = payload.model_dump(exclude_unset=True)
        return get_course_service(store).update_course(course_id, email, **fields).to_record()
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in update_course: {e}")
        raise create_http_exception(500, f"Error updating course: {str(e)}")


@router.delete("/courses/{course_id}")
def delete_course(course_id: str, email: str = Depends(current_teacher_email),
                  store: DocumentStore = Depends(get_store)):
    try:
        get_course_service(store).delete_course(course_id, email)
        return {"message": "Course deleted", "course_id": course_id}
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in delete_course: {e}")
        raise create_http_exception(500, f"Error deleting course: {str(e)}")


@router.get("/courses/{course_id}/stats")
def get_course_stats(course_id: str, email: str = Depends(current_teacher_email),
                     store: DocumentStore = Depends(get_store)):
    try:
        service = get_course_service(store)
        service.memberships.require_teacher(course_id, email, "view course stats")
        return service.get_course_stats(course_id)
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in get_course_stats: {e}")
        raise create_http_exception(500, f"Error retrieving course stats: {str(e)}")


@router.put("/courses/{course_id}/active")
def set_teacher_course_active(course_id: str, payload: CourseActiveUpdate,
                              email: str = Depends(current_teacher_email),
                              store: DocumentStore = Depends(get_store)):
    """Move a course between the caller's active and inactive lists"""
    try:
        membership = get_course_service(store).set_teacher_course_active(course_id, email, payload.is_active)
        return membership.to_record()
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in set_teacher_course_active: {e}")
        raise create_http_exception(500, f"Error updating course status: {str(e)}")


@router.get("/student/courses")
def get_student_courses(active_only: bool = False, email: str = Depends(current_user_email),
                        student_id: int = Depends(current_student_id),
                        store: DocumentStore = Depends(get_store)):
    """Courses whose enrollment ranges contain the calling student"""
    try:
        courses = get_course_service(store).get_student_courses(email, student_id, active_only=active_only)
        return {"courses": [course.to_record() for course in courses]}
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in get_student_courses: {e}")
        raise create_http_exception(500, f"Error retrieving student courses: {str(e)}")


@router.put("/student/courses/{course_id}/active")
def set_student_course_active(course_id: str, payload: CourseActiveUpdate,
                              email: str = Depends(current_user_email),
                              student_id: int = Depends(current_student_id),
                              store: DocumentStore = Depends(get_store)):
    try:
        get_course_service(store).set_student_course_active(email, course_id, payload.is_active)
        return {"course_id": course_id, "is_active": payload.is_active}
    except CourseTrackBaseException as e:
        raise http_exception_for(e)
    except Exception as e:
        logger.error(f"Error in set_student_course_active: {e}")
        raise create_http_exception(500, f"Error updating course status: {str(e)}")
