"""
Network listener.

Binds the TCP socket before the application server starts, so the
transport can be attached to a listener that is known to be live.
"""

from __future__ import annotations

import logging
import socket
from typing import Callable, Optional

from ..core.errors import ListenerBindError
from ..core.lifecycle import ServerLifecycle, ServerState

logger = logging.getLogger(__name__)

DEFAULT_BACKLOG = 2048


class Listener:
    """A bound, listening TCP socket."""

    def __init__(self, sock: socket.socket):
        self._socket = sock
        self._closed = False
        address = sock.getsockname()
        self.host: str = address[0]
        self.port: int = address[1]

    @property
    def socket(self) -> socket.socket:
        return self._socket

    @property
    def is_bound(self) -> bool:
        return not self._closed

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._socket.close()

    def __repr__(self) -> str:
        return f"Listener({self.host}:{self.port}, bound={self.is_bound})"


class ListenerLauncher:
    """
    Opens the listener and hands it to the next startup step.

    Usage:
        launcher = ListenerLauncher(lifecycle)
        listener = launcher.launch("0.0.0.0", 4000, on_listening=attach_transport)
    """

    def __init__(self, lifecycle: ServerLifecycle, *, backlog: int = DEFAULT_BACKLOG):
        self.lifecycle = lifecycle
        self.backlog = backlog

    def launch(
        self,
        host: str,
        port: int,
        on_listening: Optional[Callable[[Listener], None]] = None,
    ) -> Listener:
        """
        Bind and listen on ``host:port``.

        Args:
            host: Interface to bind
            port: Port to bind, 0 for an ephemeral port
            on_listening: Continuation run once the state is LISTENING

        Returns:
            The bound Listener

        Raises:
            ListenerBindError: If the address cannot be bound
            LifecycleError: If the pipeline is not composed yet
        """
        self.lifecycle.require(ServerState.PIPELINE_COMPOSED)

        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(self.backlog)
            sock.setblocking(False)
        except OSError as e:
            sock.close()
            raise ListenerBindError(host, port, str(e)) from e

        listener = Listener(sock)
        self.lifecycle.transition(ServerState.LISTENING)
        logger.info(f"Listening on {listener.host}:{listener.port}")

        if on_listening is not None:
            on_listening(listener)
        return listener
