"""
Pub/Sub for GraphQL subscription resolvers.

InMemoryPubSub fans out inside one process. RedisPubSub fans out across
gateway replicas through Redis channels.

Usage:
    pubsub = create_pubsub(os.getenv("REDIS_URL"))

    # In a mutation resolver
    await pubsub.publish("taskAdded", {"taskAdded": task})

    # In a subscription resolver
    def subscribe_task_added(root, info):
        return pubsub.subscribe("taskAdded")
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Optional

import redis.asyncio as aioredis

logger = logging.getLogger(__name__)


class PubSub:
    """Publish/subscribe interface used by subscription resolvers."""

    async def publish(self, channel: str, payload: dict[str, Any]) -> int:
        """Publish payload, return the number of receivers."""
        raise NotImplementedError

    def subscribe(self, channel: str) -> AsyncIterator[dict[str, Any]]:
        """Return an async iterator of payloads published to channel."""
        raise NotImplementedError

    async def aclose(self) -> None:
        pass


class _QueueSubscription:
    """Registered on creation, so nothing published afterwards is missed."""

    def __init__(self, pubsub: InMemoryPubSub, channel: str, max_queue_size: int):
        self._pubsub = pubsub
        self._channel = channel
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._closed = False
        pubsub._register(channel, self)

    def __aiter__(self) -> _QueueSubscription:
        return self

    async def __anext__(self) -> dict[str, Any]:
        if self._closed:
            raise StopAsyncIteration
        return await self.queue.get()

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            self._pubsub._unregister(self._channel, self)


class InMemoryPubSub(PubSub):
    """Process-local pub/sub on asyncio queues."""

    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self._subscriptions: dict[str, set[_QueueSubscription]] = {}

    def _register(self, channel: str, subscription: _QueueSubscription) -> None:
        self._subscriptions.setdefault(channel, set()).add(subscription)
        logger.debug(f"Subscribed to {channel} ({len(self._subscriptions[channel])} subscriber(s))")

    def _unregister(self, channel: str, subscription: _QueueSubscription) -> None:
        subscribers = self._subscriptions.get(channel)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscriptions[channel]

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscriptions.get(channel, ()))

    async def publish(self, channel: str, payload: dict[str, Any]) -> int:
        delivered = 0
        for subscription in list(self._subscriptions.get(channel, ())):
            try:
                subscription.queue.put_nowait(payload)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning(f"Subscriber queue full on {channel}, dropping message")
        return delivered

    def subscribe(self, channel: str) -> AsyncIterator[dict[str, Any]]:
        return _QueueSubscription(self, channel, self.max_queue_size)


class _RedisSubscription:
    def __init__(self, redis: aioredis.Redis, channel: str):
        self._pubsub = redis.pubsub()
        self._channel = channel
        self._subscribed = False

    def __aiter__(self) -> _RedisSubscription:
        return self

    async def __anext__(self) -> dict[str, Any]:
        if not self._subscribed:
            await self._pubsub.subscribe(self._channel)
            self._subscribed = True

        while True:
            message = await self._pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0)
            if message is None or message["type"] != "message":
                continue
            try:
                return json.loads(message["data"])
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON on {self._channel}: {message['data']!r}")

    async def aclose(self) -> None:
        if self._subscribed:
            await self._pubsub.unsubscribe(self._channel)
        await self._pubsub.aclose()


class RedisPubSub(PubSub):
    """Pub/sub over Redis channels. Connects lazily on first use."""

    def __init__(self, redis_url: str):
        self.redis_url = redis_url
        self._redis: Optional[aioredis.Redis] = None

    @property
    def redis(self) -> aioredis.Redis:
        if self._redis is None:
            logger.info(f"Connecting pub/sub to Redis: {self.redis_url}")
            self._redis = aioredis.from_url(self.redis_url, encoding="utf-8", decode_responses=True)
        return self._redis

    async def publish(self, channel: str, payload: dict[str, Any]) -> int:
        message = json.dumps(payload, ensure_ascii=False, default=str)
        count = await self.redis.publish(channel, message)
        logger.debug(f"Published to {channel}: {count} subscribers received")
        return count

    def subscribe(self, channel: str) -> AsyncIterator[dict[str, Any]]:
        return _RedisSubscription(self.redis, channel)

    async def aclose(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis pub/sub disconnected")


def create_pubsub(redis_url: Optional[str] = None) -> PubSub:
    """Redis pub/sub when a URL is given, in-memory otherwise."""
    if redis_url:
        return RedisPubSub(redis_url)
    return InMemoryPubSub()
