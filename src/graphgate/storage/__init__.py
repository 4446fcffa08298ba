"""
Storage module - the process-wide database handle.
"""

from __future__ import annotations

from .database import close_storage, connect_storage

__all__ = [
    "connect_storage",
    "close_storage",
]
