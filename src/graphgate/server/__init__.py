"""
Server module - listener, startup orchestration and process logging.
"""

from __future__ import annotations

from .gateway import GatewayServer, GatewayUvicornServer, install_fatal_handler, run
from .listener import Listener, ListenerLauncher
from .logs import HealthcheckLogFilter, configure_logging

__all__ = [
    "GatewayServer",
    "GatewayUvicornServer",
    "install_fatal_handler",
    "run",
    "Listener",
    "ListenerLauncher",
    "HealthcheckLogFilter",
    "configure_logging",
]
