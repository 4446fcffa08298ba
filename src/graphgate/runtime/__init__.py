"""
Runtime module - dependency bootstrap and per-request context.
"""

from __future__ import annotations

from .context import ContextFactory, RequestContext
from .dependencies import DependencyBootstrapper, ResolvedDependencies

__all__ = [
    "DependencyBootstrapper",
    "ResolvedDependencies",
    "ContextFactory",
    "RequestContext",
]
