"""
Cross-node relay over Redis pub/sub

With several API processes behind a load balancer, each process publishes its
events to one Redis channel and every process (itself included) re-emits what it
receives to its own WebSocketHub. Delivery stays at-most-once: nothing is stored.
"""

import asyncio
import json
import logging
from typing import Any, Optional

import redis
import redis.asyncio as aioredis

from .hub import WebSocketHub

logger = logging.getLogger(__name__)


class RedisRelay:
    """Transport that publishes events instead of delivering them locally"""

    def __init__(self, client: redis.Redis, channel: str):
        self.client = client
        self.channel = channel

    @classmethod
    def from_url(cls, redis_url: str, channel: str) -> "RedisRelay":
        client = redis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        return cls(client, channel)

    def emit(self, event: str, data: Any, room: Optional[str] = None) -> int:
        payload = json.dumps({"event": event, "room": room, "data": data}, default=str)
        return self.client.publish(self.channel, payload)


def dispatch_relayed(hub: WebSocketHub, raw: str) -> bool:
    """Re-emit one relayed payload to the local hub"""
    try:
        payload = json.loads(raw)
        event = payload["event"]
    except (ValueError, KeyError, TypeError) as e:
        logger.warning(f"⚠️ Ignoring malformed relay message: {e}")
        return False
    hub.emit(event, payload.get("data"), payload.get("room"))
    return True


async def relay_to_hub(hub: WebSocketHub, redis_url: str, channel: str, retry_delay: float = 5.0) -> None:
    """Long-running subscriber started from the app lifespan"""
    while True:
        client = aioredis.from_url(redis_url, decode_responses=True)
        pubsub = client.pubsub()
        try:
            await pubsub.subscribe(channel)
            logger.info(f"📡 Realtime relay subscribed to {channel}")
            async for message in pubsub.listen():
                if message.get("type") == "message":
                    dispatch_relayed(hub, message["data"])
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"❌ Realtime relay lost its Redis subscription: {e}")
            await asyncio.sleep(retry_delay)
        finally:
            await pubsub.aclose()
            await client.aclose()
