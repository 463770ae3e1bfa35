# ==============================================================================
# utils/exceptions.py - HTTP error helpers
# ==============================================================================

from typing import Any, Dict

from fastapi import HTTPException

from coursetrack.exceptions import (
    ConcurrentModificationError,
    CourseTrackBaseException,
    DuplicateDocumentError,
    DuplicateSessionError,
    NotFoundError,
    OverlapError,
    PermissionDeniedError,
    StoreError,
    ValidationError,
)

# Checked in order; subclasses before their bases
STATUS_CODES = (
    (ValidationError, 400),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (OverlapError, 409),
    (DuplicateSessionError, 409),
    (DuplicateDocumentError, 409),
    (ConcurrentModificationError, 409),
    (StoreError, 503),
)


def create_http_exception(status_code: int, detail: Any) -> HTTPException:
    """Create standardized HTTP exception"""
    return HTTPException(status_code=status_code, detail=detail)


def status_code_for(exc: CourseTrackBaseException) -> int:
    for exc_type, status_code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


def error_detail(exc: CourseTrackBaseException) -> Dict[str, Any]:
    return {
        "message": exc.message,
        "error_code": exc.error_code,
        "details": exc.details,
        "retryable": exc.retryable,
    }


def http_exception_for(exc: CourseTrackBaseException) -> HTTPException:
    """Translate a CourseTrack exception into its HTTP response"""
    return create_http_exception(status_code_for(exc), error_detail(exc))
