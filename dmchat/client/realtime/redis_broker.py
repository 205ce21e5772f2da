import json
import logging
from typing import Any, Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from dmchat.client.db.redis import redis_client
from dmchat.client.realtime.signature import sign_channel

logger = logging.getLogger(__name__)


def encode_event(event: str, payload: dict[str, Any]) -> str:
    return json.dumps({"event": event, "data": payload}, default=str)


class RedisBroker:
    """Publishes realtime events on Redis pub/sub channels."""

    def __init__(self, client: Optional[Redis] = None):
        self._client = client or redis_client

    async def publish(self, channel: str, event: str, payload: dict[str, Any]) -> bool:
        # Realtime is best effort; callers never see a publish failure.
        try:
            receivers = await self._client.publish(channel, encode_event(event, payload))
        except RedisError:
            logger.exception("realtime publish failed channel=%s event=%s", channel, event)
            return False
        logger.info("published event=%s channel=%s receivers=%s", event, channel, receivers)
        return True

    def authorize_subscription(self, socket_id: str, channel: str) -> dict[str, str]:
        return {"auth": sign_channel(socket_id, channel)}
