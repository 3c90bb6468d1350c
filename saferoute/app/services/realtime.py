"""
Realtime circle broadcasts over Redis pub/sub.

Every Safe Circle has a channel ``circle:<group_code>``. Publishing is
best-effort: a slow or unreachable Redis never delays or fails alert
delivery, it only costs live map updates.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import saferoute.app.core.redis_client as redis_client_module
from saferoute.app.core.config import settings

logger = logging.getLogger("saferoute.realtime")


def circle_channel(group_code: str) -> str:
    return f"circle:{group_code}"


class RealtimeBroadcaster:
    """Publishes circle events and relays them to WebSocket listeners."""

    def __init__(self, redis=None, timeout: float = None):
        self._redis = redis
        self.timeout = timeout if timeout is not None else settings.realtime_publish_timeout_seconds

    @property
    def redis(self):
        return self._redis if self._redis is not None else redis_client_module.redis_client

    async def publish(self, group_code: Optional[str], event: str, data: Dict[str, Any]) -> bool:
        """
        Publish an event to a circle's channel.

        Returns:
            True if Redis accepted the message
        """
        if not group_code:
            return False

        message = json.dumps({"event": event, "data": data}, default=str)
        try:
            await asyncio.wait_for(self.redis.publish(circle_channel(group_code), message), self.timeout)
        except asyncio.TimeoutError:
            logger.warning("Realtime publish of %s to %s timed out", event, group_code)
            return False
        except Exception as exc:
            logger.warning("Realtime publish of %s to %s failed: %s", event, group_code, exc)
            return False
        return True

    async def relay(self, group_code: str, send) -> None:
        """
        Forward every message on a circle channel to ``send`` until cancelled.

        Args:
            group_code: Circle to listen to
            send: Coroutine function taking the raw JSON text
        """
        pubsub = self.redis.pubsub()
        await pubsub.subscribe(circle_channel(group_code))
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                data = message["data"]
                if isinstance(data, bytes):
                    data = data.decode("utf-8")
                await send(data)
        finally:
            await pubsub.unsubscribe(circle_channel(group_code))
            await pubsub.aclose()
