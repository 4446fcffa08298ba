"""
Notification resolution state.

The push client is created concurrently with startup. Its outcome is a
tagged NotificationState that settles exactly once:

    UNCONFIGURED                      (no notification config)
    PENDING -> READY(client)          (construction succeeded)
    PENDING -> FAILED(error)          (construction raised)

Every request observes the same settled object.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from ..core.errors import NotificationClientError
from .client import PushNotificationClient

logger = logging.getLogger(__name__)


class NotificationStatus(str, Enum):
    UNCONFIGURED = "unconfigured"
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class NotificationState:
    status: NotificationStatus
    client: Optional[PushNotificationClient] = None
    error: Optional[BaseException] = None

    @classmethod
    def ready(cls, client: PushNotificationClient) -> NotificationState:
        return cls(NotificationStatus.READY, client=client)

    @classmethod
    def failed(cls, error: BaseException) -> NotificationState:
        return cls(NotificationStatus.FAILED, error=error)

    @property
    def is_ready(self) -> bool:
        return self.status is NotificationStatus.READY

    @property
    def is_failed(self) -> bool:
        return self.status is NotificationStatus.FAILED

    def unwrap(self) -> PushNotificationClient:
        """Return the client, or raise why there is none."""
        if self.client is not None:
            return self.client
        if self.error is not None:
            raise self.error
        raise NotificationClientError(f"notification client is {self.status.value}")


UNCONFIGURED = NotificationState(NotificationStatus.UNCONFIGURED)
PENDING = NotificationState(NotificationStatus.PENDING)
CANCELLED = NotificationState.failed(NotificationClientError("resolution was cancelled"))


async def _settle(factory: Callable[[], Awaitable[PushNotificationClient]]) -> NotificationState:
    try:
        client = await factory()
    except Exception as e:
        logger.warning(f"Notification client unavailable, requests will see it as failed: {e}")
        return NotificationState.failed(e)

    logger.info("Notification client ready")
    return NotificationState.ready(client)


class NotificationResolver:
    """
    Injectable handle on the one shared notification-client resolution.

    Usage:
        resolver = NotificationResolver.start(lambda: create_notification_client(config))
        state = await resolver.resolve()
    """

    def __init__(self, task: Optional[asyncio.Task] = None):
        self._task = task

    @classmethod
    def unconfigured(cls) -> NotificationResolver:
        return cls()

    @classmethod
    def start(cls, factory: Callable[[], Awaitable[PushNotificationClient]]) -> NotificationResolver:
        """Begin construction now. Must be called from a running event loop."""
        task = asyncio.get_running_loop().create_task(
            _settle(factory), name="graphgate-notification-client"
        )
        return cls(task)

    @property
    def state(self) -> NotificationState:
        """Current state without waiting."""
        if self._task is None:
            return UNCONFIGURED
        if not self._task.done():
            return PENDING
        if self._task.cancelled():
            return CANCELLED
        return self._task.result()

    async def resolve(self) -> NotificationState:
        """
        Wait for the shared resolution to settle and return its state.

        Already-settled resolutions return without suspending. Cancelling a
        waiting caller does not cancel the shared construction.
        """
        if self._task is not None and not self._task.done():
            await asyncio.shield(self._task)
        return self.state

    async def aclose(self) -> None:
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            return

        state = self.state
        if state.client is not None:
            await state.client.aclose()
