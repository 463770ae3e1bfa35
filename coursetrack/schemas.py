"""
Request bodies for the CourseTrack HTTP API.

Business rules (ranges, credit bounds, roster coverage) are enforced by the
services so that they raise the same typed errors for every caller; these
models only describe the shape of the JSON.
"""

import datetime as dt
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class CourseCreate(BaseModel):
    code: str = Field(..., description="Course code (e.g., CSE-101)")
    name: Optional[str] = Field(None, description="Course title; defaults to the code")
    batch: Optional[int] = Field(None, description="Student batch year")
    credit: float = Field(3.0, description="Course credit, 0 < credit <= 10")
    is_sessional: bool = Field(False, description="Sessional (lab) course flag")
    best_ct_count: Optional[int] = Field(None, description="Best N class tests counted; empty counts all")


class CourseUpdate(BaseModel):
    name: Optional[str] = None
    batch: Optional[int] = None
    credit: Optional[float] = None
    is_sessional: Optional[bool] = None
    best_ct_count: Optional[int] = Field(None, description="Send null to count every class test")


class CourseActiveUpdate(BaseModel):
    is_active: bool = Field(..., description="Show the course in the active list")


class EnrollmentRangeIn(BaseModel):
    start_id: int = Field(..., description="First student ID, inclusive")
    end_id: int = Field(..., description="Last student ID, inclusive")
    section: str = Field(..., description="Section name (e.g., A)")


class AttendanceCreate(BaseModel):
    section: str = Field(..., description="Section the session belongs to")
    date: dt.date = Field(..., description="Day of the class")
    student_statuses: Dict[str, str] = Field(..., description="Student ID -> present | absent for the whole section")
    notes: Optional[str] = Field(None, description="Optional session notes")


class AttendanceUpdate(BaseModel):
    student_statuses: Dict[str, str] = Field(..., description="Corrected statuses for the same students")
    notes: Optional[str] = None


class ClassTestCreate(BaseModel):
    name: str = Field(..., description="Class test name (e.g., CT 1)")
    total_marks: int = Field(..., description="Maximum marks, greater than 0")
    date: Optional[dt.datetime] = Field(None, description="Date and time of the test")
    description: Optional[str] = Field(None, description="Syllabus or notes")


class ClassTestUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    total_marks: Optional[int] = None
    is_published: Optional[bool] = None
    date: Optional[dt.datetime] = None


class MarkRecord(BaseModel):
    student_id: int = Field(..., description="Enrolled student ID")
    status: str = Field("present", description="present | absent")
    marks_obtained: Optional[float] = Field(None, allow_inf_nan=False, description="Ignored when absent; clamped to [0, total_marks]")
    student_email: Optional[str] = None
    feedback: Optional[str] = None


class MarksReplace(BaseModel):
    course_id: str = Field(..., description="Course the class test belongs to")
    records: List[MarkRecord] = Field(..., description="Complete roster of marks; omitted students lose their mark")


class InvitationCreate(BaseModel):
    recipient_email: str = Field(..., description="Teacher to invite")
    sender_name: Optional[str] = None
