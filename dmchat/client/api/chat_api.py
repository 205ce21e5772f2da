import logging
from typing import Any, Optional

import httpx

from dmchat.model.message.message_response import MessageResponse
from dmchat.model.user.sidebar_response import SidebarUserResponse
from dmchat.model.user.user_response import UserResponse

logger = logging.getLogger(__name__)


class ChatApiError(Exception):
    """Non-2xx response, or status_code 0 when the request never got a response."""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class ChatApiClient:
    """Thin async wrapper over the v1 REST API for one signed-in user."""

    def __init__(
        self,
        base_url: str,
        token: str,
        client: Optional[httpx.AsyncClient] = None,
        prefix: str = "/api/v1",
    ):
        self._prefix = prefix
        self._headers = {"Authorization": f"Bearer {token}"}
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=5.0)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(
                method, f"{self._prefix}{path}", headers=self._headers, **kwargs
            )
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise ChatApiError(0, str(exc) or exc.__class__.__name__) from exc
        if response.status_code >= 400:
            try:
                message = response.json().get("error") or response.text
            except ValueError:
                message = response.text
            logger.warning("%s %s -> %s %s", method, path, response.status_code, message)
            raise ChatApiError(response.status_code, message)
        if not response.content:
            return None
        return response.json()

    async def list_messages(self, peer_id: str) -> list[MessageResponse]:
        data = await self._request("GET", f"/messages/{peer_id}")
        return [MessageResponse.model_validate(item) for item in data]

    async def send_message(
        self, peer_id: str, content: Optional[str] = None, image: Optional[str] = None
    ) -> MessageResponse:
        body = {"content": content, "image": image}
        data = await self._request("POST", f"/messages/send/{peer_id}", json=body)
        return MessageResponse.model_validate(data)

    async def mark_read(self, peer_id: str) -> int:
        data = await self._request("PUT", f"/messages/mark-read/{peer_id}")
        return data["markedAsRead"]

    async def unread_count(self, peer_id: str) -> int:
        data = await self._request("GET", f"/messages/unread/{peer_id}")
        return data["unreadCount"]

    async def list_users(self) -> list[SidebarUserResponse]:
        data = await self._request("GET", "/users")
        return [SidebarUserResponse.model_validate(item) for item in data]

    async def me(self) -> UserResponse:
        return UserResponse.model_validate(await self._request("GET", "/users/me"))

    async def sync(self) -> UserResponse:
        return UserResponse.model_validate(await self._request("POST", "/users/sync"))

    async def set_status(self, status: str) -> UserResponse:
        data = await self._request("POST", "/users/status", json={"status": status})
        return UserResponse.model_validate(data)

    async def send_typing(self, peer_id: str, is_typing: bool) -> None:
        await self._request("POST", "/typing", json={"receiverId": peer_id, "isTyping": is_typing})

    async def authorize_channel(self, socket_id: str, channel: str) -> dict[str, str]:
        return await self._request(
            "POST",
            "/realtime/auth",
            data={"socket_id": socket_id, "channel_name": channel},
        )

    async def aclose(self) -> None:
        await self._client.aclose()
