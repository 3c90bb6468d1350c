"""
Realtime broadcaster tests: circle channel publishing and relay.
"""

import asyncio
import json

import pytest
from saferoute.app.services.realtime import RealtimeBroadcaster, circle_channel
from saferoute.tests.factories import MockRedis


class FakePubSub:
    def __init__(self, messages):
        self.messages = messages
        self.subscribed = []
        self.unsubscribed = []
        self.closed = False

    async def subscribe(self, channel):
        self.subscribed.append(channel)

    async def unsubscribe(self, channel):
        self.unsubscribed.append(channel)

    async def aclose(self):
        self.closed = True

    async def listen(self):
        yield {"type": "subscribe", "data": 1}
        for message in self.messages:
            yield {"type": "message", "data": message}
        # Stay subscribed until cancelled
        await asyncio.Event().wait()


class PubSubRedis(MockRedis):
    def __init__(self, messages):
        super().__init__()
        self.pubsub_instance = FakePubSub(messages)

    def pubsub(self):
        return self.pubsub_instance


class SlowRedis(MockRedis):
    async def publish(self, channel, message):
        await asyncio.sleep(5)


@pytest.mark.asyncio
async def test_publish_to_circle_channel():
    redis = MockRedis()
    broadcaster = RealtimeBroadcaster(redis=redis)

    assert await broadcaster.publish("FAM001", "location_update", {"trip_id": "t1"}) is True
    assert redis.published == [("circle:FAM001", {"event": "location_update", "data": {"trip_id": "t1"}})]


@pytest.mark.asyncio
async def test_publish_without_circle_is_skipped():
    redis = MockRedis()
    assert await RealtimeBroadcaster(redis=redis).publish(None, "alert", {}) is False
    assert redis.published == []


@pytest.mark.asyncio
async def test_publish_timeout_is_reported_not_raised():
    broadcaster = RealtimeBroadcaster(redis=SlowRedis(), timeout=0.05)
    assert await broadcaster.publish("FAM001", "alert", {}) is False


@pytest.mark.asyncio
async def test_relay_forwards_messages_until_cancelled():
    first = json.dumps({"event": "alert", "data": {"id": "s1:SOS"}})
    second = json.dumps({"event": "alert_cancelled", "data": {"id": "s1:SOS"}}).encode("utf-8")
    redis = PubSubRedis([first, second])
    received = []

    async def send(text):
        received.append(text)

    relay = asyncio.create_task(RealtimeBroadcaster(redis=redis).relay("FAM001", send))
    for _ in range(50):
        if len(received) == 2:
            break
        await asyncio.sleep(0.01)
    relay.cancel()
    await asyncio.gather(relay, return_exceptions=True)

    assert [json.loads(r)["event"] for r in received] == ["alert", "alert_cancelled"]
    pubsub = redis.pubsub_instance
    assert pubsub.subscribed == [circle_channel("FAM001")]
    assert pubsub.unsubscribed == [circle_channel("FAM001")]
    assert pubsub.closed is True
