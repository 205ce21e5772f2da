from datetime import datetime
from typing import Optional

from dmchat.model.base import CamelModel
from dmchat.model.user.user_response import UserProfile


class MessageResponse(CamelModel):
    id: str
    sender_id: str
    receiver_id: str
    content: Optional[str] = None
    image_url: Optional[str] = None
    read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime
    sender: Optional[UserProfile] = None
    receiver: Optional[UserProfile] = None


class MarkReadResponse(CamelModel):
    marked_as_read: int


class UnreadCountResponse(CamelModel):
    unread_count: int
