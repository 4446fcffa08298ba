"""
Per-operation execution context.

Resolvers receive a RequestContext as ``info.context``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from ..notifications import NotificationResolver, NotificationState
from ..security import Principal
from .dependencies import ResolvedDependencies


@dataclass(frozen=True)
class RequestContext:
    """
    Context passed to every resolver of one operation.

    Contains:
    - request: The incoming Request (or WebSocket for subscriptions)
    - db: The process-wide storage engine, same instance for every request.
      No transaction scoping: resolvers own their consistency.
    - push_client: Settled NotificationState
    """
    request: Any
    db: AsyncEngine
    push_client: NotificationState

    @property
    def principal(self) -> Optional[Principal]:
        """Principal set by the authentication stage, if any."""
        state = getattr(self.request, "scope", {}).get("state") or {}
        return state.get("principal")


class ContextFactory:
    """
    Builds a fresh RequestContext per operation.

    Usage:
        factory = ContextFactory.from_dependencies(dependencies)
        context = await factory.build(request)
    """

    def __init__(self, storage: AsyncEngine, notifications: NotificationResolver):
        self._storage = storage
        self._notifications = notifications

    @classmethod
    def from_dependencies(cls, dependencies: ResolvedDependencies) -> ContextFactory:
        return cls(dependencies.storage, dependencies.notifications)

    async def build(self, request: Any) -> RequestContext:
        """Build the context, waiting for the notification client if still pending."""
        return RequestContext(
            request=request,
            db=self._storage,
            push_client=await self._notifications.resolve(),
        )
