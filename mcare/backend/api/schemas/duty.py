from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from datetime import datetime
from typing import List, Optional

from .user import MemberSummary


class DutyCreateRequest(BaseModel):
    """Request model for scheduling a duty. `date` may be a plain YYYY-MM-DD."""
    group_id: UUID
    date: datetime = Field(..., description="Any time on the duty day; only the day is kept.")
    place: str
    time_range: str = Field(..., description="Free text, e.g. '08:00 AM - 10:00 AM'.")
    clinical_instructor: str
    area: str


class DutyUpdateRequest(BaseModel):
    """Only the fields that are present and non-blank are changed."""
    date: Optional[datetime] = None
    place: Optional[str] = None
    time_range: Optional[str] = None
    clinical_instructor: Optional[str] = None
    area: Optional[str] = None


class DutyResponse(BaseModel):
    id: UUID
    group_id: UUID
    group_name: Optional[str] = None
    duty_date: datetime
    place: str
    time_range: str
    clinical_instructor: str
    area: str
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class DutyAssignmentResponse(BaseModel):
    duty: DutyResponse
    assigned_members: List[MemberSummary] = Field(default_factory=list)


class UserDutiesResponse(BaseModel):
    user_id: UUID
    name: Optional[str] = None
    email: str
    group: Optional[str] = None
    duties: List[DutyResponse] = Field(default_factory=list)


class GroupScheduleResponse(BaseModel):
    group_id: UUID
    group_name: str
    members: List[MemberSummary] = Field(default_factory=list)
    duties: List[DutyResponse] = Field(default_factory=list)
