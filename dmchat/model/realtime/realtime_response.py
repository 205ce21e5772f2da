from datetime import datetime
from typing import List, Optional

from dmchat.model.base import CamelModel
from dmchat.model.user.user_response import UserStatus


class TypingResponse(CamelModel):
    success: bool = True


class ChannelAuthResponse(CamelModel):
    auth: str


class TypingEvent(CamelModel):
    user_id: str
    user_name: str = "User"
    is_typing: bool


class ReadReceiptEvent(CamelModel):
    reader: str
    message_ids: List[str]


class PresenceEvent(CamelModel):
    user_id: str
    status: UserStatus
    last_seen: Optional[datetime] = None
