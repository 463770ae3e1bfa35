# ==============================================================================
# domain.py - Typed records stored in the document store
# ==============================================================================

"""
Frozen dataclasses for everything CourseTrack persists, plus the collection
names they live in. Each type converts to and from the JSON record shape the
document store holds; dates travel as ISO strings.
"""

import uuid
from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

# Collections
COURSES = "courses"
ENROLLMENTS = "enrollments"
ENROLLMENT_VERSIONS = "enrollment_versions"
ATTENDANCE_SESSIONS = "attendance_sessions"
CLASS_TESTS = "class_tests"
MARKS = "marks"
MEMBERSHIPS = "teacher_memberships"
INVITATIONS = "teacher_invitations"
INACTIVE_COURSES = "student_inactive_courses"
USERS = "users"
COURSE_CODES = "course_codes"

PRESENT = "present"
ABSENT = "absent"
STATUSES = (PRESENT, ABSENT)

ROLE_OWNER = "owner"
ROLE_TEACHER = "teacher"

INVITATION_PENDING = "pending"
INVITATION_ACCEPTED = "accepted"
INVITATION_REJECTED = "rejected"


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_day(value: Any) -> date:
    """Normalise a date, datetime or ISO string to a calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value).date() if "T" in value else date.fromisoformat(value)
    raise TypeError(f"Cannot convert {value!r} to a date")


def to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str):
        return to_datetime(datetime.fromisoformat(value))
    raise TypeError(f"Cannot convert {value!r} to a datetime")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _opt_datetime(value: Any) -> Optional[datetime]:
    return to_datetime(value) if value else None


@dataclass(frozen=True)
class Course:
    id: str
    code: str
    name: str
    credit: float
    owner_email: str
    batch: Optional[int] = None
    is_sessional: bool = False
    best_ct_count: Optional[int] = None
    created_at: Optional[datetime] = None

    def to_record(self) -> Dict[str, Any]:
        record = asdict(self)
        record["created_at"] = _iso(self.created_at)
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Course":
        return cls(
            id=record["id"],
            code=record["code"],
            name=record.get("name") or record["code"],
            credit=float(record["credit"]),
            owner_email=record["owner_email"],
            batch=record.get("batch"),
            is_sessional=bool(record.get("is_sessional", False)),
            best_ct_count=record.get("best_ct_count"),
            created_at=_opt_datetime(record.get("created_at")),
        )


@dataclass(frozen=True)
class EnrollmentRange:
    id: str
    course_id: str
    section: str
    start_id: int
    end_id: int
    added_by: Optional[str] = None
    created_at: Optional[datetime] = None

    def overlaps(self, start_id: int, end_id: int) -> bool:
        return self.start_id <= end_id and start_id <= self.end_id

    def contains(self, student_id: int) -> bool:
        return self.start_id <= student_id <= self.end_id

    def to_record(self) -> Dict[str, Any]:
        record = asdict(self)
        record["created_at"] = _iso(self.created_at)
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "EnrollmentRange":
        return cls(
            id=record["id"],
            course_id=record["course_id"],
            section=record["section"],
            start_id=int(record["start_id"]),
            end_id=int(record["end_id"]),
            added_by=record.get("added_by"),
            created_at=_opt_datetime(record.get("created_at")),
        )


@dataclass(frozen=True, order=True)
class RosterEntry:
    """An enrolled student, derived from the enrollment range that contains the ID."""
    student_id: int
    section: str
    name: Optional[str] = field(default=None, compare=False)
    email: Optional[str] = field(default=None, compare=False)


@dataclass(frozen=True)
class SessionKey:
    """Natural key of an attendance session: one per course, section and day."""
    course_id: str
    section: str
    day: date

    @classmethod
    def of(cls, course_id: str, section: str, when: Any) -> "SessionKey":
        return cls(course_id, section.strip().upper(), to_day(when))

    @property
    def document_id(self) -> str:
        return f"{self.course_id}_{self.section}_{self.day.isoformat()}"


@dataclass(frozen=True)
class AttendanceSession:
    id: str
    course_id: str
    section: str
    date: date
    student_statuses: Dict[str, str]
    recorded_by: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def key(self) -> SessionKey:
        return SessionKey(self.course_id, self.section, self.date)

    def status_of(self, student_id: int) -> Optional[str]:
        return self.student_statuses.get(str(student_id))

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "course_id": self.course_id,
            "section": self.section,
            "date": self.date.isoformat(),
            "student_statuses": dict(self.student_statuses),
            "recorded_by": self.recorded_by,
            "notes": self.notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "AttendanceSession":
        return cls(
            id=record["id"],
            course_id=record["course_id"],
            section=record["section"],
            date=to_day(record["date"]),
            student_statuses=dict(record.get("student_statuses") or {}),
            recorded_by=record.get("recorded_by", ""),
            notes=record.get("notes"),
            created_at=_opt_datetime(record.get("created_at")),
            updated_at=_opt_datetime(record.get("updated_at")),
        )


@dataclass(frozen=True)
class ClassTest:
    id: str
    course_id: str
    name: str
    total_marks: int
    date: datetime
    created_by: str
    is_published: bool = False
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_record(self) -> Dict[str, Any]:
        record = asdict(self)
        record["date"] = _iso(self.date)
        record["created_at"] = _iso(self.created_at)
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "ClassTest":
        return cls(
            id=record["id"],
            course_id=record["course_id"],
            name=record["name"],
            total_marks=int(record["total_marks"]),
            date=to_datetime(record["date"]),
            created_by=record.get("created_by", ""),
            is_published=bool(record.get("is_published", False)),
            description=record.get("description"),
            created_at=_opt_datetime(record.get("created_at")),
        )


@dataclass(frozen=True)
class Mark:
    ct_id: str
    course_id: str
    student_id: int
    status: str
    marks_obtained: Optional[float] = None
    student_email: Optional[str] = None
    feedback: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def id(self) -> str:
        return mark_document_id(self.ct_id, self.student_id)

    @property
    def is_graded(self) -> bool:
        return self.status == PRESENT and self.marks_obtained is not None

    def to_record(self) -> Dict[str, Any]:
        record = asdict(self)
        record["created_at"] = _iso(self.created_at)
        record["updated_at"] = _iso(self.updated_at)
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Mark":
        return cls(
            ct_id=record["ct_id"],
            course_id=record["course_id"],
            student_id=int(record["student_id"]),
            status=record["status"],
            marks_obtained=record.get("marks_obtained"),
            student_email=record.get("student_email"),
            feedback=record.get("feedback"),
            created_at=_opt_datetime(record.get("created_at")),
            updated_at=_opt_datetime(record.get("updated_at")),
        )


def mark_document_id(ct_id: str, student_id: int) -> str:
    return f"{ct_id}_{student_id}"


@dataclass(frozen=True)
class MarkInput:
    """One row of a full-roster mark submission."""
    student_id: int
    status: str
    marks_obtained: Optional[float] = None
    student_email: Optional[str] = None
    feedback: Optional[str] = None


@dataclass(frozen=True)
class TeacherMembership:
    course_id: str
    teacher_email: str
    role: str
    is_active: bool = True
    joined_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def id(self) -> str:
        return membership_document_id(self.course_id, self.teacher_email)

    def to_record(self) -> Dict[str, Any]:
        record = asdict(self)
        record["joined_at"] = _iso(self.joined_at)
        record["updated_at"] = _iso(self.updated_at)
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "TeacherMembership":
        return cls(
            course_id=record["course_id"],
            teacher_email=record["teacher_email"],
            role=record.get("role", ROLE_TEACHER),
            is_active=bool(record.get("is_active", True)),
            joined_at=_opt_datetime(record.get("joined_at")),
            updated_at=_opt_datetime(record.get("updated_at")),
        )


def membership_document_id(course_id: str, teacher_email: str) -> str:
    return f"{course_id}_{teacher_email.lower()}"


@dataclass(frozen=True)
class TeacherInvitation:
    id: str
    course_id: str
    course_name: str
    sender_email: str
    recipient_email: str
    status: str = INVITATION_PENDING
    sender_name: Optional[str] = None
    created_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None

    def to_record(self) -> Dict[str, Any]:
        record = asdict(self)
        record["created_at"] = _iso(self.created_at)
        record["responded_at"] = _iso(self.responded_at)
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "TeacherInvitation":
        return cls(
            id=record["id"],
            course_id=record["course_id"],
            course_name=record.get("course_name", ""),
            sender_email=record["sender_email"],
            recipient_email=record["recipient_email"],
            status=record.get("status", INVITATION_PENDING),
            sender_name=record.get("sender_name"),
            created_at=_opt_datetime(record.get("created_at")),
            responded_at=_opt_datetime(record.get("responded_at")),
        )


@dataclass(frozen=True)
class UserProfile:
    email: str
    role: str
    name: str = ""
    department: Optional[str] = None
    batch: Optional[str] = None
    student_id: Optional[int] = None
    created_at: Optional[datetime] = None

    def to_record(self) -> Dict[str, Any]:
        record = asdict(self)
        record["created_at"] = _iso(self.created_at)
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "UserProfile":
        return cls(
            email=record["email"],
            role=record["role"],
            name=record.get("name") or "",
            department=record.get("department"),
            batch=record.get("batch"),
            student_id=record.get("student_id"),
            created_at=_opt_datetime(record.get("created_at")),
        )
