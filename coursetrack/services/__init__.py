# services/__init__.py

"""
Services package for CourseTrack.

This package contains all business logic services for managing:
- Courses, teacher memberships and invitations
- Section-based enrollment ranges and rosters
- Attendance sessions and attendance percentages
- Class tests, marks and grading
- Course report export

Usage:
    from coursetrack.services import CourseService, AttendanceService

    # Or import specific services
    from coursetrack.services.enrollment_service import EnrollmentService
    from coursetrack.services.grading import best_k_average
"""

from .attendance_service import AttendanceService
from .class_test_service import ClassTestService
from .course_service import CourseService
from .enrollment_service import EnrollmentService
from .grading import GradingService
from .membership_service import MembershipService
from .report_service import ReportService
from .user_service import UserService

# Make services available at package level
__all__ = [
    "AttendanceService",
    "ClassTestService",
    "CourseService",
    "EnrollmentService",
    "GradingService",
    "MembershipService",
    "ReportService",
    "UserService",
]

# Version info
__version__ = "1.0.0"


# Service factory functions for dependency injection
def get_membership_service(store):
    """Factory function to create MembershipService instance"""
    return MembershipService(store)


def get_enrollment_service(store):
    """Factory function to create EnrollmentService instance"""
    return EnrollmentService(store)


def get_course_service(store):
    """Factory function to create CourseService instance"""
    return CourseService(store)


def get_attendance_service(store):
    """Factory function to create AttendanceService instance"""
    return AttendanceService(store)


def get_class_test_service(store):
    """Factory function to create ClassTestService instance"""
    return ClassTestService(store)


def get_grading_service(store):
    """Factory function to create GradingService instance"""
    return GradingService(AttendanceService(store), ClassTestService(store))


def get_report_service(store):
    """Factory function to create ReportService instance"""
    return ReportService(AttendanceService(store), ClassTestService(store))


def get_user_service(store):
    """Factory function to create UserService instance"""
    return UserService(store)
