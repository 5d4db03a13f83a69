from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from datetime import datetime
from typing import List, Optional

from .user import MemberSummary


class AttendanceResponse(BaseModel):
    """Response model for one day's check-in."""
    id: UUID
    user_id: UUID
    school_id: str
    date: datetime = Field(description="Local midnight of the attendance day.")
    time_in: str = Field(description="Wall-clock HH:MM:SS.")

    model_config = ConfigDict(from_attributes=True)


class MarkAttendanceResponse(BaseModel):
    name: str
    school_id: str
    date: datetime
    time_in: str


class UserAttendanceResponse(BaseModel):
    user_id: UUID
    name: Optional[str] = None
    school_id: str
    records: List[AttendanceResponse] = Field(default_factory=list)


class AttendanceWithUserResponse(AttendanceResponse):
    """The record enriched with its owner; user is None when the account was deleted."""
    user: Optional[MemberSummary] = None


class SectionAttendanceResponse(BaseModel):
    section: str
    records: List[AttendanceWithUserResponse] = Field(default_factory=list)
