import asyncio
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import Any, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from dmchat.config.config import REDIS_HOST, REDIS_PORT

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, dict[str, Any]], Awaitable[None]]
Authorizer = Callable[[str, str], Awaitable[dict[str, str]]]


class RedisChannelSubscriber:
    """
    Client side of the realtime layer: one pub/sub connection, one handler per
    channel. Every subscription is authorized through ``authorize`` first, so a
    rejected channel raises before anything is registered.
    """

    def __init__(self, authorize: Authorizer, client: Optional[Redis] = None):
        self.socket_id = uuid.uuid4().hex
        self._authorize = authorize
        self._client = client or Redis(host=REDIS_HOST, port=REDIS_PORT, decode_responses=True)
        self._pubsub = self._client.pubsub()
        self._handlers: dict[str, EventHandler] = {}
        self._reader: Optional[asyncio.Task] = None

    @property
    def channels(self) -> list[str]:
        return list(self._handlers)

    def is_subscribed(self, channel: str) -> bool:
        return channel in self._handlers

    async def subscribe(self, channel: str, handler: EventHandler) -> bool:
        if channel in self._handlers:
            return False
        await self._authorize(self.socket_id, channel)
        await self._pubsub.subscribe(channel)
        self._handlers[channel] = handler
        self._ensure_reader()
        logger.info("subscribed socket=%s channel=%s", self.socket_id, channel)
        return True

    async def unsubscribe(self, channel: str) -> bool:
        if self._handlers.pop(channel, None) is None:
            return False
        await self._pubsub.unsubscribe(channel)
        logger.info("unsubscribed socket=%s channel=%s", self.socket_id, channel)
        return True

    async def dispatch(self, channel: str, raw: str) -> None:
        handler = self._handlers.get(channel)
        if handler is None:
            return
        try:
            envelope = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("dropping malformed event on channel=%s", channel)
            return
        if not isinstance(envelope, dict) or "event" not in envelope:
            logger.warning("dropping event without name on channel=%s", channel)
            return
        try:
            await handler(envelope["event"], envelope.get("data") or {})
        except Exception:
            logger.exception("handler failed channel=%s event=%s", channel, envelope["event"])

    async def close(self) -> None:
        for channel in list(self._handlers):
            await self.unsubscribe(channel)
        if self._reader is not None:
            self._reader.cancel()
            self._reader = None
        await self._pubsub.aclose()

    def _ensure_reader(self) -> None:
        if self._reader is None or self._reader.done():
            self._reader = asyncio.create_task(self._read_loop())

    async def _read_loop(self) -> None:
        try:
            async for message in self._pubsub.listen():
                if message.get("type") != "message":
                    continue
                await self.dispatch(message["channel"], message["data"])
        except RedisError:
            logger.exception("realtime connection lost socket=%s", self.socket_id)
