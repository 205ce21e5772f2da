from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from dmchat.model.base import CamelModel

UserStatus = Literal["online", "offline", "away"]


class UserProfile(CamelModel):
    """Profile fields denormalized onto every message."""

    id: str
    clerk_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None


class UserResponse(UserProfile):
    email: str
    username: Optional[str] = None
    status: UserStatus = "offline"
    last_seen: Optional[datetime] = None


class StatusRequest(CamelModel):
    status: UserStatus = Field(..., description="New presence status")
