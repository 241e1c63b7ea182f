"""
TrailMemo Backend — User Schemas
==================================

Request/response contracts for /auth. email and color never appear in a
request model; both are assigned by the server at registration.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class RegisterRequest(BaseModel):
    display_name: str = Field(min_length=1, max_length=255)
    department: Optional[str] = Field(default=None, max_length=100)

    @field_validator("display_name")
    @classmethod
    def strip_display_name(cls, v: str) -> str:
        value = v.strip()
        if not value:
            raise ValueError("display_name must not be blank")
        return value


class UpdateProfileRequest(BaseModel):
    """Omitted fields are left unchanged."""

    display_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    department: Optional[str] = Field(default=None, max_length=100)

    @field_validator("display_name")
    @classmethod
    def strip_display_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        value = v.strip()
        if not value:
            raise ValueError("display_name must not be blank")
        return value


class UserResponse(BaseModel):
    user_id: str
    email: str
    display_name: str
    department: Optional[str] = None
    color: str = Field(description="'#rrggbb' map pin color")
    created_at: datetime

    model_config = {"from_attributes": True}
