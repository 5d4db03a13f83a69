# mcare/backend/models/db_models.py

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional
from uuid import UUID

ROLES = ("user", "admin", "professor")


class User(BaseModel):
    """
    Represents an account, mapping to the 'Users' table.
    The group reference is not stored on the row; it is joined in from GroupMembers.
    """
    id: UUID
    school_id: str = Field(..., description="Enrollment/employee number, the scan-friendly public key")
    username: str
    email: str
    password_hash: str = Field("", exclude=True, repr=False)
    name: Optional[str] = None
    section: Optional[str] = None
    course: Optional[str] = None
    year: Optional[int] = None
    department: Optional[str] = None
    role: str = Field("user", description="Can be user, admin, professor")
    profile_image: str = ""
    qr_code: str = Field("", description="PNG data URL of the attendance-marking link")
    group_id: Optional[UUID] = None
    created_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.name or self.username


class Group(BaseModel):
    """
    Represents a duty group, mapping to the 'DutyGroups' table.
    member_ids is aggregated from the 'GroupMembers' table.
    """
    id: UUID
    name: str
    member_ids: List[UUID] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class Duty(BaseModel):
    """
    Represents a scheduled duty of one group on one calendar day, mapping to the 'Duties' table.
    """
    id: UUID
    group_id: UUID
    duty_date: datetime = Field(..., description="Local midnight of the duty day")
    place: str
    time_range: str = Field(..., description="Free text time range, e.g. '08:00 AM - 10:00 AM'")
    clinical_instructor: str
    area: str
    group_name: Optional[str] = Field(None, description="Joined in on reads; None when the group was deleted")
    created_at: Optional[datetime] = None


class Attendance(BaseModel):
    """
    Represents a single day's check-in of a user, mapping to the 'Attendances' table.
    """
    id: UUID
    user_id: UUID
    school_id: str = Field(..., description="Denormalized copy, unique together with date")
    date: datetime = Field(..., description="Local midnight of the attendance day")
    time_in: str = Field(..., description="Wall-clock HH:MM:SS")
    created_at: Optional[datetime] = None
