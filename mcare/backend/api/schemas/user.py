# mcare/backend/api/schemas/user.py
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from uuid import UUID
from datetime import datetime
from typing import Optional, List


class RegisterRequest(BaseModel):
    school_id: str = Field(..., min_length=1)
    username: str
    email: EmailStr
    password: str
    name: Optional[str] = None
    section: Optional[str] = None
    course: Optional[str] = None
    year: Optional[int] = None
    department: Optional[str] = None

    @field_validator('year', mode='before')
    def year_must_be_numeric(cls, v):
        """Accepts numeric strings such as "3"; blank means not given."""
        if v is None or v == "":
            return None
        if isinstance(v, str):
            if not v.strip().isdigit():
                raise ValueError("Year should be a number.")
            return int(v.strip())
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    id: UUID
    school_id: str
    username: str
    email: str
    name: Optional[str] = None
    section: Optional[str] = None
    course: Optional[str] = None
    year: Optional[int] = None
    department: Optional[str] = None
    role: str
    profile_image: str = ""
    qr_code: str = ""
    group_id: Optional[UUID] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MemberSummary(BaseModel):
    """The short form of a user shown inside groups and duties."""
    id: UUID
    school_id: str
    username: str
    name: Optional[str] = None
    email: str
    section: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class UserGroupSummary(BaseModel):
    id: UUID
    name: str
    members: List[MemberSummary] = Field(default_factory=list)


class RegisterResponse(BaseModel):
    token: Token
    user: UserResponse


class LoginResponse(BaseModel):
    """ Login response; group is None for users outside any group. """
    token: Token
    user: UserResponse
    group: Optional[UserGroupSummary] = None


class QRCodeResponse(BaseModel):
    qr_code: str


class PasswordChangeRequest(BaseModel):
    current_password: Optional[str] = Field(None, description="Required unless the caller is an admin.")
    new_password: str


class UsernameUpdateRequest(BaseModel):
    username: str


class InformationUpdateRequest(BaseModel):
    """Blank fields are left unchanged."""
    name: Optional[str] = None
    section: Optional[str] = None
    course: Optional[str] = None
    department: Optional[str] = None


class AdminUserUpdateRequest(InformationUpdateRequest):
    school_id: Optional[str] = None
    username: Optional[str] = None
    role: Optional[str] = Field(None, description="Only 'user' or 'admin' are applied.")


# Internal representation of JWT data
class TokenData(BaseModel):
    sub: Optional[str] = None
    role: Optional[str] = None
