"""
Messaging module - pub/sub backends for subscription resolvers.
"""

from __future__ import annotations

from .pubsub import InMemoryPubSub, PubSub, RedisPubSub, create_pubsub

__all__ = [
    "PubSub",
    "InMemoryPubSub",
    "RedisPubSub",
    "create_pubsub",
]
