# ==============================================================================
# services/user_service.py - User identity and profile service
# ==============================================================================

import logging
import re
from typing import Dict, Iterable, Optional

from coursetrack.config.settings import Settings
from coursetrack.domain import USERS, UserProfile, utcnow
from coursetrack.exceptions import ValidationError
from coursetrack.utils.document_store import DocumentStore

logger = logging.getLogger(__name__)

ROLE_STUDENT = "student"
ROLE_TEACHER = "teacher"


def get_role(email: str, settings: Settings = None) -> Optional[str]:
    """Role implied by an email address, or None when the address is not recognised."""
    if not email:
        return None
    settings = settings or Settings()
    e = email.lower().strip()
    if e.endswith(f"@{settings.STUDENT_EMAIL_DOMAIN}"):
        return ROLE_STUDENT
    if e in settings.TEACHER_EMAIL_ALLOWLIST or e.endswith(f"@{settings.TEACHER_EMAIL_DOMAIN}"):
        return ROLE_TEACHER
    return None


def extract_student_id_from_email(email: str, settings: Settings = None) -> Optional[int]:
    """u2104095@students.cuet.ac.bd -> 2104095; None for anything else."""
    if not email:
        return None
    settings = settings or Settings()
    pattern = rf"^u(\d{{7}})@{re.escape(settings.STUDENT_EMAIL_DOMAIN)}$"
    match = re.match(pattern, email.lower().strip())
    return int(match.group(1)) if match else None


class UserService:
    """Service for persisting and looking up user profiles"""

    def __init__(self, store: DocumentStore, settings: Settings = None):
        self.store = store
        self.settings = settings or Settings()

    def save_user(self, email: str, name: str = "", department: str = "CSE",
                  batch: Optional[str] = None) -> UserProfile:
        """Create the profile on first sign-in; return the stored one afterwards."""
        email = (email or "").lower().strip()
        role = get_role(email, self.settings)
        if not role:
            raise ValidationError(f"Unrecognised user email: {email}", field="email", value=email)

        existing = self.store.get(USERS, email)
        if existing:
            logger.debug(f"{role} already exists: {email}")
            return UserProfile.from_record(existing)

        student_id = None
        if role == ROLE_STUDENT:
            student_id = extract_student_id_from_email(email, self.settings)
            if student_id is None:
                logger.warning(f"Could not extract student ID from email: {email}")

        profile = UserProfile(
            email=email,
            role=role,
            name=name or "",
            department=department,
            batch=batch if role == ROLE_STUDENT else None,
            student_id=student_id,
            created_at=utcnow(),
        )
        self.store.put(USERS, email, profile.to_record())
        logger.info(f"New {role} created: {email}")
        return profile

    def get_user(self, email: str) -> Optional[UserProfile]:
        record = self.store.get(USERS, (email or "").lower().strip())
        return UserProfile.from_record(record) if record else None

    def students_by_id(self, student_ids: Iterable[int] = None) -> Dict[int, UserProfile]:
        """Student profiles keyed by numeric student ID."""
        wanted = set(student_ids) if student_ids is not None else None
        result = {}
        for record in self.store.query(USERS, role=ROLE_STUDENT):
            profile = UserProfile.from_record(record)
            if profile.student_id is None:
                continue
            if wanted is None or profile.student_id in wanted:
                result[profile.student_id] = profile
        return result
