"""Seams between the services and their collaborators.

The message, presence and user services depend only on these protocols; the
SQLAlchemy repository and the Redis broker are the production implementations.
"""
from typing import Any, Optional, Protocol

from dmchat.model.message.message_response import MessageResponse
from dmchat.model.user.sidebar_response import SidebarUserResponse
from dmchat.model.user.user_response import UserResponse


class ChatRepository(Protocol):
    def get_user(self, user_id: str) -> Optional[UserResponse]: ...

    def get_user_by_clerk_id(self, clerk_id: str) -> Optional[UserResponse]: ...

    def list_sidebar(self, user_id: str) -> list[SidebarUserResponse]: ...

    def find_conversation(self, user_a: str, user_b: str) -> list[MessageResponse]: ...

    def create_message(
        self, sender_id: str, receiver_id: str, content: Optional[str], image_url: Optional[str]
    ) -> MessageResponse: ...

    def mark_read(self, reader_id: str, sender_id: str) -> list[str]: ...

    def count_unread(self, reader_id: str, sender_id: str) -> int: ...

    def upsert_user(
        self,
        clerk_id: str,
        email: str,
        profile: dict[str, Optional[str]],
        overwrite: bool = True,
    ) -> UserResponse: ...

    def delete_user(self, clerk_id: str) -> bool: ...

    def set_status(self, user_id: str, status: str) -> Optional[UserResponse]: ...


class RealtimeBroker(Protocol):
    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> bool: ...

    def authorize_subscription(self, socket_id: str, channel: str) -> dict[str, str]: ...


class MediaStore(Protocol):
    async def upload(self, data_uri: str) -> str: ...
