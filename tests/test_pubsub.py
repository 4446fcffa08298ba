"""
Tests for pub/sub backends and the task schema's change subscriptions.
"""
import asyncio
from inspect import isawaitable

import pytest
from graphql import parse, subscribe

from graphgate.messaging import InMemoryPubSub, RedisPubSub, create_pubsub

from conftest import asgi_client


async def open_subscription(schema, query: str):
    result = subscribe(schema, parse(query))
    if isawaitable(result):
        result = await result
    return result


class TestInMemoryPubSub:
    """Tests for InMemoryPubSub."""

    @pytest.mark.asyncio
    async def test_fan_out_to_every_subscriber(self):
        pubsub = InMemoryPubSub()
        first = pubsub.subscribe("news")
        second = pubsub.subscribe("news")

        delivered = await pubsub.publish("news", {"n": 1})

        assert delivered == 2
        assert await first.__anext__() == {"n": 1}
        assert await second.__anext__() == {"n": 1}

    @pytest.mark.asyncio
    async def test_channels_are_isolated(self):
        pubsub = InMemoryPubSub()
        pubsub.subscribe("a")

        assert await pubsub.publish("b", {"n": 1}) == 0

    @pytest.mark.asyncio
    async def test_aclose_unregisters(self):
        pubsub = InMemoryPubSub()
        subscription = pubsub.subscribe("news")
        assert pubsub.subscriber_count("news") == 1

        await subscription.aclose()

        assert pubsub.subscriber_count("news") == 0
        with pytest.raises(StopAsyncIteration):
            await subscription.__anext__()

    @pytest.mark.asyncio
    async def test_full_queue_drops_message(self):
        pubsub = InMemoryPubSub(max_queue_size=1)
        subscription = pubsub.subscribe("news")

        assert await pubsub.publish("news", {"n": 1}) == 1
        assert await pubsub.publish("news", {"n": 2}) == 0
        assert await subscription.__anext__() == {"n": 1}


def test_create_pubsub():
    assert isinstance(create_pubsub(None), InMemoryPubSub)
    redis_pubsub = create_pubsub("redis://localhost:6379/0")
    assert isinstance(redis_pubsub, RedisPubSub)
    assert redis_pubsub.redis_url == "redis://localhost:6379/0"


class TestTaskSubscriptions:
    """Mutations on the task schema publish to subscribers."""

    @pytest.fixture
    async def task_server(self, make_server, make_config):
        return await make_server(make_config(), schema=None, pubsub=InMemoryPubSub())

    @pytest.mark.asyncio
    async def test_created_task_is_published(self, task_server):
        stream = await open_subscription(task_server.schema, "subscription { taskAdded { id title status } }")
        assert task_server.pubsub.subscriber_count("taskAdded") == 1

        async with asgi_client(task_server.app) as client:
            await client.post("/graphql", json={"query": 'mutation { createTask(title: "ship it") { id } }'})

        event = await asyncio.wait_for(stream.__anext__(), timeout=5)
        await stream.aclose()

        assert event.data == {"taskAdded": {"id": "1", "title": "ship it", "status": "OPEN"}}

    @pytest.mark.asyncio
    async def test_update_and_delete_are_published(self, task_server):
        modified = await open_subscription(task_server.schema, "subscription { taskModified { title version } }")
        deleted = await open_subscription(task_server.schema, "subscription { taskDeleted }")

        async with asgi_client(task_server.app) as client:
            await client.post("/graphql", json={"query": 'mutation { createTask(title: "draft") { id } }'})
            await client.post("/graphql", json={"query": 'mutation { updateTask(id: 1, title: "final") { id } }'})
            await client.post("/graphql", json={"query": "mutation { deleteTask(id: 1) }"})

        modified_event = await asyncio.wait_for(modified.__anext__(), timeout=5)
        deleted_event = await asyncio.wait_for(deleted.__anext__(), timeout=5)
        await modified.aclose()
        await deleted.aclose()

        assert modified_event.data == {"taskModified": {"title": "final", "version": 2}}
        assert deleted_event.data == {"taskDeleted": "1"}

    @pytest.mark.asyncio
    async def test_unknown_task_id(self, task_server):
        async with asgi_client(task_server.app) as client:
            response = await client.post("/graphql", json={"query": '{ getTask(id: "abc") { id } }'})

        error = response.json()["errors"][0]
        assert error["extensions"]["code"] == "BAD_USER_INPUT"
