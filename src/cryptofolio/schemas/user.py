"""User schemas."""

from datetime import datetime

from pydantic import BaseModel


class UserResponse(BaseModel):
    """Schema for user response."""
    id: int
    email: str | None
    username: str
    is_active: bool
    is_anonymous: bool
    created_at: datetime

    model_config = {"from_attributes": True}
