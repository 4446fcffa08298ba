"""
Graphgate CLI - run and inspect the gateway server.
"""

from __future__ import annotations

from .main import main, app

__all__ = ["main", "app"]
