"""
Profile Schemas
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from models import UserRole
from schemas import Timestamp


class ProfileResponse(BaseModel):
    id: str
    email: str
    role: UserRole
    full_name: Optional[str] = None
    created_at: Optional[Timestamp] = None
    updated_at: Optional[Timestamp] = None

    model_config = ConfigDict(from_attributes=True)


class RoleSwitch(BaseModel):
    """Target role; omitted means flip between patient and caretaker"""
    role: Optional[UserRole] = None


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, max_length=255)
