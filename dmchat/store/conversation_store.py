import asyncio
import bisect
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol

from dmchat.client.api.chat_api import ChatApiClient, ChatApiError
from dmchat.config.config import TYPING_TIMEOUT_SEC
from dmchat.model.message.message_response import MessageResponse
from dmchat.model.realtime.realtime_response import PresenceEvent, ReadReceiptEvent, TypingEvent
from dmchat.model.user.user_response import UserResponse
from dmchat.service.realtime.channels import (
    NEW_MESSAGE_EVENT,
    PRESENCE_CHANNEL,
    READ_RECEIPT_EVENT,
    STATUS_EVENT,
    TYPING_EVENT,
    conversation_channel,
    conversation_id,
    user_channel,
)

logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    async def subscribe(
        self, channel: str, handler: Callable[[str, dict[str, Any]], Awaitable[None]]
    ) -> bool: ...

    async def unsubscribe(self, channel: str) -> bool: ...


class ConversationState(str, Enum):
    EMPTY = "empty"
    LOADING = "loading"
    LOADED = "loaded"


def _created_key(message: MessageResponse) -> datetime:
    created = message.created_at
    return created if created.tzinfo else created.replace(tzinfo=timezone.utc)


class ConversationStore:
    """
    Per-session cache of conversations for one signed-in user.

    REST results and realtime events both land here. Messages are kept per
    conversation in creation order and deduplicated by id, so the echo of a
    message this client just sent, or the same event delivered on two
    channels, is stored once. Unread counters are per peer and only move on
    the first delivery of a message.
    """

    def __init__(
        self,
        api: ChatApiClient,
        subscriber: Subscriber,
        current_user_id: str,
        typing_timeout: float = TYPING_TIMEOUT_SEC,
    ):
        self.api = api
        self.subscriber = subscriber
        self.current_user_id = current_user_id
        self.typing_timeout = typing_timeout

        self.users: dict[str, UserResponse] = {}
        self.open_peer: Optional[str] = None

        self._messages: dict[str, list[MessageResponse]] = {}
        self._ids: dict[str, set[str]] = {}
        self._states: dict[str, ConversationState] = {}
        self._unread: dict[str, int] = {}
        self._typing: dict[str, bool] = {}
        self._typing_timers: dict[str, asyncio.TimerHandle] = {}

    # lifecycle

    async def start(self) -> None:
        await self.subscriber.subscribe(user_channel(self.current_user_id), self.on_event)
        await self.subscriber.subscribe(PRESENCE_CHANNEL, self.on_event)

    async def close(self) -> None:
        for handle in self._typing_timers.values():
            handle.cancel()
        self._typing_timers.clear()
        await self.close_conversation()
        await self.subscriber.unsubscribe(user_channel(self.current_user_id))
        await self.subscriber.unsubscribe(PRESENCE_CHANNEL)

    async def load_users(self) -> list[UserResponse]:
        users = await self.api.list_users()
        self.users = {user.id: user for user in users}
        for user in users:
            self._unread[user.id] = 0 if user.id == self.open_peer else user.unread_count
        return list(self.users.values())

    async def open_conversation(self, peer_id: str) -> list[MessageResponse]:
        if self.open_peer is not None and self.open_peer != peer_id:
            await self.close_conversation()

        key = self._key(peer_id)
        self.open_peer = peer_id
        self._states[key] = ConversationState.LOADING
        self._messages[key] = []
        self._ids[key] = set()

        try:
            fetched = await self.api.list_messages(peer_id)
        except Exception:
            self._states[key] = ConversationState.EMPTY
            self.open_peer = None
            raise

        # keep anything pushed while the fetch was in flight
        fetched_ids = {m.id for m in fetched}
        arrived = [m for m in self._messages[key] if m.id not in fetched_ids]
        self._messages[key] = []
        self._ids[key] = set()
        for message in [*fetched, *arrived]:
            self._insert(key, message)

        self._states[key] = ConversationState.LOADED
        self._unread[peer_id] = 0
        await self.subscriber.subscribe(conversation_channel(self.current_user_id, peer_id), self.on_event)
        return self.messages(peer_id)

    async def close_conversation(self) -> None:
        if self.open_peer is None:
            return
        peer_id = self.open_peer
        self.open_peer = None
        await self.subscriber.unsubscribe(conversation_channel(self.current_user_id, peer_id))

    # realtime events

    async def on_event(self, event: str, data: dict[str, Any]) -> None:
        if event == NEW_MESSAGE_EVENT:
            await self.handle_new_message(data)
        elif event == TYPING_EVENT:
            self.handle_typing(data)
        elif event == READ_RECEIPT_EVENT:
            self.handle_read_receipt(data)
        elif event == STATUS_EVENT:
            self.handle_presence(data)
        else:
            logger.debug("ignoring event=%s", event)

    async def handle_new_message(self, payload: dict[str, Any]) -> bool:
        message = MessageResponse.model_validate(payload)
        me = self.current_user_id
        if me not in (message.sender_id, message.receiver_id):
            return False

        own = message.sender_id == me
        peer_id = message.receiver_id if own else message.sender_id
        key = self._key(peer_id)
        if not self._insert(key, message):
            return False
        if own:
            return True

        if peer_id == self.open_peer:
            message.read = True
            try:
                await self.api.mark_read(peer_id)
            except ChatApiError as exc:
                # next open re-fetches and marks read on the server anyway
                logger.warning("mark read failed peer=%s: %s", peer_id, exc)
        else:
            self._unread[peer_id] = self._unread.get(peer_id, 0) + 1
        return True

    def handle_typing(self, payload: dict[str, Any]) -> None:
        event = TypingEvent.model_validate(payload)
        if event.user_id == self.current_user_id:
            return

        self._cancel_typing_timer(event.user_id)
        self._typing[event.user_id] = event.is_typing
        if event.is_typing:
            loop = asyncio.get_running_loop()
            self._typing_timers[event.user_id] = loop.call_later(
                self.typing_timeout, self._expire_typing, event.user_id
            )

    def handle_read_receipt(self, payload: dict[str, Any]) -> int:
        receipt = ReadReceiptEvent.model_validate(payload)
        ids = set(receipt.message_ids)
        flipped = 0
        for message in self._messages.get(self._key(receipt.reader), []):
            if message.id in ids and not message.read:
                message.read = True
                flipped += 1
        return flipped

    def handle_presence(self, payload: dict[str, Any]) -> None:
        event = PresenceEvent.model_validate(payload)
        user = self.users.get(event.user_id)
        if user is None:
            return
        self.users[event.user_id] = user.model_copy(update={"status": event.status, "last_seen": event.last_seen})

    # outgoing

    async def send_message(self, content: Optional[str] = None, image: Optional[str] = None) -> MessageResponse:
        if self.open_peer is None:
            raise ValueError("no conversation is open")
        message = await self.api.send_message(self.open_peer, content=content, image=image)
        self._insert(self._key(self.open_peer), message)
        return message

    async def set_typing(self, is_typing: bool) -> None:
        if self.open_peer is None:
            return
        await self.api.send_typing(self.open_peer, is_typing)

    # queries

    def messages(self, peer_id: str) -> list[MessageResponse]:
        return list(self._messages.get(self._key(peer_id), []))

    def state(self, peer_id: str) -> ConversationState:
        return self._states.get(self._key(peer_id), ConversationState.EMPTY)

    def unread_count(self, peer_id: str) -> int:
        return self._unread.get(peer_id, 0)

    def total_unread(self) -> int:
        return sum(self._unread.values())

    def last_message(self, peer_id: str) -> Optional[MessageResponse]:
        cached = self._messages.get(self._key(peer_id))
        if cached:
            return cached[-1]
        user = self.users.get(peer_id)
        return getattr(user, "last_message", None)

    def is_peer_typing(self, peer_id: str) -> bool:
        return self._typing.get(peer_id, False)

    # internals

    def _key(self, peer_id: str) -> str:
        return conversation_id(self.current_user_id, peer_id)

    def _insert(self, key: str, message: MessageResponse) -> bool:
        ids = self._ids.setdefault(key, set())
        if message.id in ids:
            return False
        cache = self._messages.setdefault(key, [])
        if not cache or _created_key(cache[-1]) <= _created_key(message):
            cache.append(message)
        else:
            bisect.insort_right(cache, message, key=_created_key)
        ids.add(message.id)
        return True

    def _cancel_typing_timer(self, user_id: str) -> None:
        handle = self._typing_timers.pop(user_id, None)
        if handle is not None:
            handle.cancel()

    def _expire_typing(self, user_id: str) -> None:
        self._typing_timers.pop(user_id, None)
        self._typing[user_id] = False
