import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from dmchat.client.realtime.redis_broker import RedisBroker, encode_event
from dmchat.client.realtime.subscriber import RedisChannelSubscriber
from dmchat.client.realtime.signature import verify_channel_signature


class _StubRedis:
    def __init__(self, fail=False):
        self.fail = fail
        self.published = []
        self.pubsub_obj = _StubPubSub()

    async def publish(self, channel, message):
        if self.fail:
            raise RedisConnectionError("redis down")
        self.published.append((channel, message))
        return 1

    def pubsub(self):
        return self.pubsub_obj


class _StubPubSub:
    def __init__(self):
        self.subscribed = []
        self.fail_next = 0
        self.unsubscribed = []
        self.closed = False

    async def subscribe(self, channel):
        if self.fail_next:
            self.fail_next -= 1
            raise RedisConnectionError("redis down")
        self.subscribed.append(channel)

    async def unsubscribe(self, channel):
        self.unsubscribed.append(channel)

    async def listen(self):
        return
        yield

    async def aclose(self):
        self.closed = True


@pytest.mark.asyncio
async def test_broker_publishes_envelope():
    stub = _StubRedis()
    broker = RedisBroker(client=stub)

    ok = await broker.publish("presence", "status-changed", {"userId": "u1"})

    assert ok is True
    channel, raw = stub.published[0]
    assert channel == "presence"
    assert json.loads(raw) == {"event": "status-changed", "data": {"userId": "u1"}}


@pytest.mark.asyncio
async def test_broker_swallows_publish_failure(caplog):
    broker = RedisBroker(client=_StubRedis(fail=True))

    ok = await broker.publish("presence", "status-changed", {"userId": "u1"})

    assert ok is False
    assert "realtime publish failed" in caplog.text


def test_broker_signs_subscriptions():
    broker = RedisBroker(client=_StubRedis())

    auth = broker.authorize_subscription("sock", "presence")["auth"]

    assert verify_channel_signature("sock", "presence", auth)


@pytest.mark.asyncio
async def test_subscriber_is_idempotent_and_dispatches():
    stub = _StubRedis()
    authorized = []
    received = []

    async def authorize(socket_id, channel):
        authorized.append(channel)
        return {"auth": "ok"}

    async def handler(event, data):
        received.append((event, data))

    subscriber = RedisChannelSubscriber(authorize, client=stub)

    assert await subscriber.subscribe("presence", handler) is True
    assert await subscriber.subscribe("presence", handler) is False
    assert stub.pubsub_obj.subscribed == ["presence"]
    assert authorized == ["presence"]

    await subscriber.dispatch("presence", encode_event("status-changed", {"userId": "u1"}))
    await subscriber.dispatch("presence", "not json")
    await subscriber.dispatch("other", encode_event("status-changed", {}))

    assert received == [("status-changed", {"userId": "u1"})]

    await subscriber.close()
    assert stub.pubsub_obj.unsubscribed == ["presence"]
    assert stub.pubsub_obj.closed is True
    assert subscriber.channels == []


@pytest.mark.asyncio
async def test_subscriber_rejected_channel_is_not_registered():
    stub = _StubRedis()

    async def authorize(socket_id, channel):
        raise PermissionError(channel)

    async def handler(event, data):
        pass

    subscriber = RedisChannelSubscriber(authorize, client=stub)

    with pytest.raises(PermissionError):
        await subscriber.subscribe("user-someone", handler)

    assert not subscriber.is_subscribed("user-someone")
    assert stub.pubsub_obj.subscribed == []


@pytest.mark.asyncio
async def test_subscriber_retries_after_redis_failure():
    stub = _StubRedis()
    stub.pubsub_obj.fail_next = 1

    async def authorize(socket_id, channel):
        return {"auth": "ok"}

    async def handler(event, data):
        pass

    subscriber = RedisChannelSubscriber(authorize, client=stub)

    with pytest.raises(RedisConnectionError):
        await subscriber.subscribe("presence", handler)

    assert not subscriber.is_subscribed("presence")

    assert await subscriber.subscribe("presence", handler) is True
    assert subscriber.is_subscribed("presence")
    assert stub.pubsub_obj.subscribed == ["presence"]
    await subscriber.close()
