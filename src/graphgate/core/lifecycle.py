"""
Server lifecycle state machine.

    UNINITIALIZED -> DEPENDENCIES_RESOLVING -> PIPELINE_COMPOSED
        -> LISTENING -> TRANSPORT_ATTACHED -> SERVING

SHUTTING_DOWN is terminal and reachable from every state.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

from .errors import LifecycleError

logger = logging.getLogger(__name__)


class ServerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    DEPENDENCIES_RESOLVING = "dependencies_resolving"
    PIPELINE_COMPOSED = "pipeline_composed"
    LISTENING = "listening"
    TRANSPORT_ATTACHED = "transport_attached"
    SERVING = "serving"
    SHUTTING_DOWN = "shutting_down"


_TRANSITIONS: dict[ServerState, frozenset[ServerState]] = {
    ServerState.UNINITIALIZED: frozenset({ServerState.DEPENDENCIES_RESOLVING}),
    ServerState.DEPENDENCIES_RESOLVING: frozenset({ServerState.PIPELINE_COMPOSED}),
    ServerState.PIPELINE_COMPOSED: frozenset({ServerState.LISTENING}),
    ServerState.LISTENING: frozenset({ServerState.TRANSPORT_ATTACHED}),
    ServerState.TRANSPORT_ATTACHED: frozenset({ServerState.SERVING}),
    ServerState.SERVING: frozenset(),
    ServerState.SHUTTING_DOWN: frozenset(),
}


class ServerLifecycle:
    """
    Tracks the process-wide server state.

    Usage:
        lifecycle = ServerLifecycle()
        lifecycle.on_enter(ServerState.SERVING, lambda state: print("up"))
        lifecycle.transition(ServerState.DEPENDENCIES_RESOLVING)
    """

    def __init__(self):
        self._state = ServerState.UNINITIALIZED
        self._history: list[ServerState] = [ServerState.UNINITIALIZED]
        self._observers: dict[ServerState, list[Callable[[ServerState], None]]] = {}

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def history(self) -> list[ServerState]:
        return list(self._history)

    @property
    def is_terminal(self) -> bool:
        return self._state is ServerState.SHUTTING_DOWN

    def reached(self, state: ServerState) -> bool:
        """Whether the lifecycle has ever entered ``state``."""
        return state in self._history

    def require(self, state: ServerState) -> None:
        """Raise LifecycleError unless the current state is ``state``."""
        if self._state is not state:
            raise LifecycleError(
                f"Expected server state '{state.value}', current state is '{self._state.value}'"
            )

    def on_enter(self, state: ServerState, callback: Callable[[ServerState], None]) -> None:
        """Register a callback invoked every time ``state`` is entered."""
        self._observers.setdefault(state, []).append(callback)

    def transition(self, target: ServerState) -> None:
        """
        Move to ``target``.

        Raises:
            LifecycleError: If the edge is not part of the state machine
        """
        if target is ServerState.SHUTTING_DOWN:
            if self._state is ServerState.SHUTTING_DOWN:
                return
        elif target not in _TRANSITIONS[self._state]:
            raise LifecycleError(
                f"Illegal transition '{self._state.value}' -> '{target.value}'"
            )

        previous = self._state
        self._state = target
        self._history.append(target)
        logger.info(f"Server state: {previous.value} -> {target.value}")

        for callback in self._observers.get(target, []):
            callback(target)
