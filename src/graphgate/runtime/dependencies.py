"""
Dependency bootstrap.

Resolves the services the gateway needs before it can serve:
- storage: mandatory, awaited, failure aborts startup
- security: optional, constructed synchronously
- notifications: optional, started concurrently and never awaited here
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from ..config import NotificationConfig, SecurityConfig, ServerConfig
from ..notifications import NotificationResolver, PushNotificationClient, create_notification_client
from ..security import SecurityService
from ..storage import close_storage, connect_storage

logger = logging.getLogger(__name__)

StorageConnector = Callable[..., Awaitable[AsyncEngine]]
NotificationFactory = Callable[[NotificationConfig], Awaitable[PushNotificationClient]]
SecurityFactory = Callable[[SecurityConfig], SecurityService]


@dataclass(frozen=True)
class ResolvedDependencies:
    """
    Process-wide services, resolved once and lent to every request.

    Contains:
    - storage: Shared database engine
    - notifications: Handle on the push-client resolution
    - security: Token verifier, None when no security config is present
    """
    storage: AsyncEngine
    notifications: NotificationResolver
    security: Optional[SecurityService] = None

    async def aclose(self) -> None:
        await self.notifications.aclose()
        if self.security is not None:
            await self.security.aclose()
        await close_storage(self.storage)


class DependencyBootstrapper:
    """
    Resolves ResolvedDependencies from a ServerConfig.

    Factories are injectable so tests can replace the external services.
    """

    def __init__(
        self,
        config: ServerConfig,
        *,
        storage_connector: StorageConnector = connect_storage,
        notification_factory: NotificationFactory = create_notification_client,
        security_factory: SecurityFactory = SecurityService,
    ):
        self.config = config
        self._storage_connector = storage_connector
        self._notification_factory = notification_factory
        self._security_factory = security_factory

    async def bootstrap(self) -> ResolvedDependencies:
        """
        Resolve every dependency.

        Raises:
            StorageBootstrapError: If the storage is unreachable
        """
        config = self.config

        security = None
        if config.security is not None:
            security = self._security_factory(config.security)

        # Starts running now, alongside the storage connection
        if config.notifications is not None:
            notification_config = config.notifications
            notifications = NotificationResolver.start(
                lambda: self._notification_factory(notification_config)
            )
        else:
            notifications = NotificationResolver.unconfigured()

        try:
            storage = await self._storage_connector(config.database_url, echo=config.sql_echo)
        except BaseException:
            await notifications.aclose()
            if security is not None:
                await security.aclose()
            raise

        logger.info(
            f"Dependencies resolved (security: {'on' if security else 'off'}, "
            f"notifications: {notifications.state.status.value})"
        )
        return ResolvedDependencies(
            storage=storage,
            notifications=notifications,
            security=security,
        )
