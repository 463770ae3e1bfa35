# ==============================================================================
# routes/__init__.py - Route module initialization
# ==============================================================================

from fastapi import APIRouter
from . import attendance, class_tests, courses, enrollments, invitations, reports


def create_router():
    """Create and configure the main router with all sub-routers"""
    main_router = APIRouter()

    main_router.include_router(courses.router, prefix="/api", tags=["courses"])
    main_router.include_router(enrollments.router, prefix="/api", tags=["enrollments"])
    main_router.include_router(attendance.router, prefix="/api", tags=["attendance"])
    main_router.include_router(class_tests.router, prefix="/api", tags=["class-tests"])
    main_router.include_router(reports.router, prefix="/api", tags=["reports"])
    main_router.include_router(invitations.router, prefix="/api", tags=["invitations"])

    return main_router
