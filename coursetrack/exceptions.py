# ==============================================================================
# exceptions.py - Custom exception classes for CourseTrack
# ==============================================================================

"""
Custom exception classes for the CourseTrack application.
These exceptions provide specific error handling for document store
operations, input validation, and course/attendance/grading business rules.
"""

from typing import Optional, Any, Dict
import logging

logger = logging.getLogger(__name__)


class CourseTrackBaseException(Exception):
    """Base exception class for all CourseTrack-specific exceptions"""

    retryable = False

    def __init__(self, message: str, error_code: str = None, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

        logger.debug(f"Exception raised: {self.__class__.__name__} - {message}",
                     extra={"error_code": error_code, "details": details})


# ==============================================================================
# Validation exceptions
# ==============================================================================

class ValidationError(CourseTrackBaseException):
    """Raised when input is malformed. Never retried automatically."""

    def __init__(self, message: str, field: str = None, value: Any = None,
                 error_code: str = "VALIDATION_ERROR", details: Dict[str, Any] = None):
        payload = {"field": field, "value": value}
        payload.update(details or {})
        super().__init__(message, error_code, payload)


class RequiredFieldError(ValidationError):
    """Raised when a required field is missing or empty"""

    def __init__(self, field_name: str, entity_type: str = None):
        message = f"Required field missing: {field_name}"
        if entity_type:
            message += f" in {entity_type}"
        super().__init__(message, field=field_name, error_code="REQUIRED_FIELD_MISSING",
                         details={"entity_type": entity_type})


class RosterMismatchError(ValidationError):
    """Raised when submitted statuses or marks do not match the enrolled roster"""

    def __init__(self, missing=None, unknown=None, duplicates=None):
        missing = sorted(missing or [])
        unknown = sorted(unknown or [])
        duplicates = sorted(duplicates or [])
        parts = []
        if missing:
            parts.append(f"missing students: {missing}")
        if unknown:
            parts.append(f"students not enrolled: {unknown}")
        if duplicates:
            parts.append(f"duplicate students: {duplicates}")
        message = "Roster mismatch - " + "; ".join(parts) if parts else "Roster mismatch"
        super().__init__(message, field="roster", error_code="ROSTER_MISMATCH",
                         details={"missing": missing, "unknown": unknown, "duplicates": duplicates})


# ==============================================================================
# Business rule exceptions
# ==============================================================================

class OverlapError(CourseTrackBaseException):
    """Raised when an enrollment range intersects another range of the same course"""

    def __init__(self, course_id: str, start_id: int, end_id: int, conflicting: Dict[str, Any]):
        message = (
            f"Range {start_id}-{end_id} overlaps existing range "
            f"{conflicting.get('start_id')}-{conflicting.get('end_id')} "
            f"(section {conflicting.get('section')})"
        )
        super().__init__(message, "RANGE_OVERLAP", {
            "course_id": course_id,
            "start_id": start_id,
            "end_id": end_id,
            "conflicting_range": conflicting,
        })
        self.conflicting = conflicting


class DuplicateSessionError(CourseTrackBaseException):
    """Raised when attendance was already recorded for a course, section and day"""

    def __init__(self, session_id: str, course_id: str = None, section: str = None, day: Any = None):
        message = (
            f"Attendance already recorded for section {section} on {day}; "
            f"edit session {session_id} instead"
        )
        super().__init__(message, "DUPLICATE_SESSION", {
            "session_id": session_id,
            "course_id": course_id,
            "section": section,
            "date": str(day) if day is not None else None,
        })
        self.session_id = session_id


class PermissionDeniedError(CourseTrackBaseException):
    """Raised when a user acts on a course they do not belong to"""

    def __init__(self, email: str, action: str, course_id: str = None):
        message = f"{email or 'anonymous'} is not allowed to {action}"
        if course_id:
            message += f" on course {course_id}"
        super().__init__(message, "PERMISSION_DENIED",
                         {"email": email, "action": action, "course_id": course_id})


# ==============================================================================
# Not-found exceptions
# ==============================================================================

class NotFoundError(CourseTrackBaseException):
    """Raised when a referenced record does not exist"""

    entity = "Record"

    def __init__(self, identifier: Any = None, message: str = None):
        message = message or f"{self.entity} not found: {identifier}"
        super().__init__(message, "NOT_FOUND", {"entity": self.entity, "identifier": identifier})


class CourseNotFoundError(NotFoundError):
    entity = "Course"


class EnrollmentNotFoundError(NotFoundError):
    entity = "Enrollment range"


class SessionNotFoundError(NotFoundError):
    entity = "Attendance session"


class ClassTestNotFoundError(NotFoundError):
    entity = "Class test"


class InvitationNotFoundError(NotFoundError):
    entity = "Invitation"


class UserNotFoundError(NotFoundError):
    entity = "User"


# ==============================================================================
# Store exceptions
# ==============================================================================

class StoreError(CourseTrackBaseException):
    """Raised when the document store call fails. Retryable by resubmission."""

    retryable = True

    def __init__(self, message: str, error_code: str = "STORE_ERROR", details: Dict[str, Any] = None):
        super().__init__(message, error_code, details)


class ConcurrentModificationError(StoreError):
    """Raised when an optimistic version check fails inside a batch write"""

    def __init__(self, collection: str, doc_id: str, expected_version: Optional[int]):
        message = f"{collection}/{doc_id} changed concurrently (expected version {expected_version})"
        super().__init__(message, "CONCURRENT_MODIFICATION", {
            "collection": collection,
            "doc_id": doc_id,
            "expected_version": expected_version,
        })


class DuplicateDocumentError(StoreError):
    """Raised when a create-only write hits an existing document"""

    retryable = False

    def __init__(self, collection: str, doc_id: str):
        message = f"Document already exists: {collection}/{doc_id}"
        super().__init__(message, "DUPLICATE_DOCUMENT", {"collection": collection, "doc_id": doc_id})
        self.collection = collection
        self.doc_id = doc_id


# ==============================================================================
# Configuration exceptions
# ==============================================================================

class ConfigurationError(CourseTrackBaseException):
    """Raised when configuration is invalid or missing"""
    pass


# ==============================================================================
# Utility functions for exception handling
# ==============================================================================

def log_exception(exc: Exception, context: str = None, extra_data: Dict[str, Any] = None) -> None:
    """
    Log an exception with additional context and data.

    Args:
        exc: The exception to log
        context: Additional context about where the exception occurred
        extra_data: Additional data to include in the log
    """
    extra_info = {
        "exception_type": exc.__class__.__name__,
        "exception_message": str(exc)
    }

    if extra_data:
        extra_info.update(extra_data)

    if hasattr(exc, 'error_code'):
        extra_info["error_code"] = exc.error_code

    if hasattr(exc, 'details'):
        extra_info["exception_details"] = exc.details

    log_message = f"Exception occurred: {exc.__class__.__name__}"
    if context:
        log_message += f" in {context}"
    log_message += f" - {str(exc)}"

    logger.error(log_message, extra=extra_info)


def handle_store_error(exc: Exception, operation: str = None) -> CourseTrackBaseException:
    """
    Convert SQLAlchemy exceptions to StoreError.

    Args:
        exc: The original database exception
        operation: The store operation that failed

    Returns:
        Appropriate CourseTrack exception
    """
    from sqlalchemy.exc import IntegrityError, OperationalError, DataError

    if isinstance(exc, CourseTrackBaseException):
        return exc

    context = f"during {operation}" if operation else ""

    if isinstance(exc, IntegrityError):
        return StoreError(f"Store integrity constraint violated {context}: {str(exc)}", "STORE_INTEGRITY")
    elif isinstance(exc, OperationalError):
        return StoreError(f"Store connection failed {context}: {str(exc)}", "STORE_UNAVAILABLE")
    elif isinstance(exc, DataError):
        return StoreError(f"Store data error {context}: {str(exc)}", "STORE_DATA_ERROR")
    else:
        return StoreError(f"Store operation failed {context}: {str(exc)}")
