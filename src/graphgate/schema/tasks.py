"""
Example task-list schema.

Served when the gateway is started without a schema of its own. Tasks are
stored through the shared storage engine, changes are published for
subscriptions, and new tasks trigger a push notification when the
notification client is ready.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from graphql import GraphQLSchema
from sqlalchemy import Column, Integer, MetaData, String, Table, Text, delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncEngine

from ..core.errors import OperationError
from ..messaging import PubSub
from .executable import make_executable_schema

logger = logging.getLogger(__name__)

TYPE_DEFS = """
scalar Upload

enum TaskStatus {
  OPEN
  ASSIGNED
  COMPLETE
}

type Task {
  id: ID!
  version: Int!
  title: String!
  description: String
  status: TaskStatus!
}

type File {
  filename: String!
  mimetype: String
  size: Int!
}

type Query {
  allTasks(first: Int, after: Int): [Task!]!
  getTask(id: ID!): Task
  notificationsStatus: String!
}

type Mutation {
  createTask(title: String!, description: String): Task!
  updateTask(id: ID!, title: String, description: String, status: TaskStatus): Task
  deleteTask(id: ID!): ID
  singleUpload(file: Upload!): File!
}

type Subscription {
  taskAdded: Task!
  taskModified: Task!
  taskDeleted: ID!
}
"""

TASK_ADDED = "taskAdded"
TASK_MODIFIED = "taskModified"
TASK_DELETED = "taskDeleted"

metadata = MetaData()

tasks = Table(
    "tasks",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("version", Integer, nullable=False, default=1),
    Column("title", String(255), nullable=False),
    Column("description", Text, nullable=True),
    Column("status", String(16), nullable=False, default="OPEN"),
)


async def create_tables(engine: AsyncEngine) -> None:
    """Create the example tables."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


def _task_id(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise OperationError(f"Invalid task id: {value!r}", code="BAD_USER_INPUT")


async def _notify(context: Any, alert: str, data: dict[str, Any]) -> None:
    # Best effort: the operation succeeds whether or not the push goes out
    state = context.push_client
    if not state.is_ready:
        return
    try:
        await state.client.send(alert, data=data)
    except httpx.HTTPError as e:
        logger.warning(f"Push notification failed: {e}")


def create_schema(pubsub: PubSub) -> GraphQLSchema:
    """Build the example schema, publishing changes through ``pubsub``."""

    async def all_tasks(root, info, first: Optional[int] = None, after: Optional[int] = None):
        stmt = select(tasks).order_by(tasks.c.id)
        if after is not None:
            stmt = stmt.where(tasks.c.id > after)
        if first is not None:
            stmt = stmt.limit(first)
        async with info.context.db.connect() as conn:
            rows = (await conn.execute(stmt)).mappings().all()
        return [dict(row) for row in rows]

    async def get_task(root, info, id):
        async with info.context.db.connect() as conn:
            row = (await conn.execute(select(tasks).where(tasks.c.id == _task_id(id)))).mappings().first()
        return dict(row) if row else None

    def notifications_status(root, info):
        return info.context.push_client.status.value

    async def create_task(root, info, title: str, description: Optional[str] = None):
        async with info.context.db.begin() as conn:
            result = await conn.execute(
                insert(tasks)
                .values(title=title, description=description, status="OPEN", version=1)
                .returning(*tasks.c)
            )
            task = dict(result.mappings().one())

        await pubsub.publish(TASK_ADDED, {TASK_ADDED: task})
        await _notify(info.context, f"New task: {title}", {"task_id": task["id"]})
        return task

    async def update_task(root, info, id, **changes):
        values = {key: value for key, value in changes.items() if value is not None}
        async with info.context.db.begin() as conn:
            result = await conn.execute(
                update(tasks)
                .where(tasks.c.id == _task_id(id))
                .values(**values, version=tasks.c.version + 1)
                .returning(*tasks.c)
            )
            row = result.mappings().first()

        if row is None:
            return None
        task = dict(row)
        await pubsub.publish(TASK_MODIFIED, {TASK_MODIFIED: task})
        return task

    async def delete_task(root, info, id):
        async with info.context.db.begin() as conn:
            result = await conn.execute(
                delete(tasks).where(tasks.c.id == _task_id(id)).returning(tasks.c.id)
            )
            deleted = result.scalar_one_or_none()

        if deleted is not None:
            await pubsub.publish(TASK_DELETED, {TASK_DELETED: deleted})
        return deleted

    async def single_upload(root, info, file):
        content = await file.read()
        return {"filename": file.filename, "mimetype": file.content_type, "size": len(content)}

    return make_executable_schema(
        TYPE_DEFS,
        {
            "Query": {
                "allTasks": all_tasks,
                "getTask": get_task,
                "notificationsStatus": notifications_status,
            },
            "Mutation": {
                "createTask": create_task,
                "updateTask": update_task,
                "deleteTask": delete_task,
                "singleUpload": single_upload,
            },
            "Subscription": {
                TASK_ADDED: lambda root, info: pubsub.subscribe(TASK_ADDED),
                TASK_MODIFIED: lambda root, info: pubsub.subscribe(TASK_MODIFIED),
                TASK_DELETED: lambda root, info: pubsub.subscribe(TASK_DELETED),
            },
        },
    )
