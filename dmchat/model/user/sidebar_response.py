from typing import Optional

from dmchat.model.message.message_response import MessageResponse
from dmchat.model.user.user_response import UserResponse


class SidebarUserResponse(UserResponse):
    last_message: Optional[MessageResponse] = None
    unread_count: int = 0
