from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import List, Optional

from .user import MemberSummary


class GroupCreateRequest(BaseModel):
    name: str = Field(..., description="Unique group name, e.g. 'BSN-3A'.")
    members: List[str] = Field(..., description="School ids of the initial members.")


class GroupRenameRequest(BaseModel):
    name: str


class AddMembersRequest(BaseModel):
    school_ids: List[str] = Field(..., description="School ids to add; each one is processed on its own.")


class GroupResponse(BaseModel):
    id: UUID
    name: str
    members: List[MemberSummary] = Field(default_factory=list)
    created_at: Optional[datetime] = None
