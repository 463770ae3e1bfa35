# ==============================================================================
# config/settings.py - Configuration management
# ==============================================================================

import os
from typing import List, Optional

from coursetrack.exceptions import ConfigurationError


def _split_env(name: str, default: str = "") -> List[str]:
    return [item.strip().lower() for item in os.getenv(name, default).split(",") if item.strip()]


class Settings:
    """Application settings and configuration"""

    # App settings
    APP_NAME: str = "CourseTrack"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development").lower()

    # Server settings
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"
    CORS_ORIGINS: List[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    # Database settings
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./coursetrack.db")
    WRITE_RETRIES: int = int(os.getenv("WRITE_RETRIES", "3"))

    # Identity settings
    STUDENT_EMAIL_DOMAIN: str = os.getenv("STUDENT_EMAIL_DOMAIN", "students.cuet.ac.bd").lower()
    TEACHER_EMAIL_DOMAIN: str = os.getenv("TEACHER_EMAIL_DOMAIN", "cuet.ac.bd").lower()
    TEACHER_EMAIL_ALLOWLIST: List[str] = _split_env("TEACHER_EMAIL_ALLOWLIST")

    # Course rules
    COURSE_CODE_PATTERN: str = os.getenv("COURSE_CODE_PATTERN", r"^[A-Z]{3}-\d{3}$")
    MAX_COURSE_CREDIT: float = float(os.getenv("MAX_COURSE_CREDIT", "10"))
    ATTENDANCE_MARKS_PER_CREDIT: float = float(os.getenv("ATTENDANCE_MARKS_PER_CREDIT", "10"))

    # Logging settings
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR: str = os.getenv("LOG_DIR", "logs")
    LOG_FILE: Optional[str] = os.getenv("LOG_FILE")

    def __init__(self):
        if self.WRITE_RETRIES < 1:
            raise ConfigurationError(
                f"WRITE_RETRIES must be at least 1, got {self.WRITE_RETRIES}",
                "CONFIGURATION_ERROR",
                {"setting": "WRITE_RETRIES", "value": self.WRITE_RETRIES},
            )
