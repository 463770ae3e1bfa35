# ==============================================================================
# routes/dependencies.py - Shared FastAPI dependencies
# ==============================================================================

import logging
from typing import Optional

from fastapi import Depends, Header

from coursetrack.services.user_service import ROLE_STUDENT, ROLE_TEACHER, extract_student_id_from_email, get_role
from coursetrack.utils.exceptions import create_http_exception

logger = logging.getLogger(__name__)


def current_user_email(x_user_email: Optional[str] = Header(None, alias="X-User-Email")) -> str:
    """Verified email forwarded by the identity provider"""
    if not x_user_email or not x_user_email.strip():
        raise create_http_exception(401, "Missing X-User-Email header")
    return x_user_email.strip().lower()


def current_teacher_email(email: str = Depends(current_user_email)) -> str:
    if get_role(email) != ROLE_TEACHER:
        logger.warning(f"Teacher-only endpoint called by {email}")
        raise create_http_exception(403, f"{email} is not a teacher account")
    return email


def current_student_id(email: str = Depends(current_user_email)) -> int:
    student_id = extract_student_id_from_email(email) if get_role(email) == ROLE_STUDENT else None
    if student_id is None:
        raise create_http_exception(403, f"{email} is not a student account")
    return student_id
