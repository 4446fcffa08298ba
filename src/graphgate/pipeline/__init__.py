"""
Pipeline module - the ordered request-handling stages.
"""

from __future__ import annotations

from .auth import AuthenticationStage
from .cors import CORSStage
from .composer import PipelineDescriptor, PipelineStage, compose_pipeline
from .graphql import GraphQLHTTPHandler
from .health import HealthCheckStage
from .metrics import GatewayMetrics, MetricsStage
from .static import StaticFallbackStage
from .uploads import UploadStage, decode_operations

__all__ = [
    "compose_pipeline",
    "PipelineDescriptor",
    "PipelineStage",
    "AuthenticationStage",
    "CORSStage",
    "GatewayMetrics",
    "MetricsStage",
    "UploadStage",
    "decode_operations",
    "HealthCheckStage",
    "GraphQLHTTPHandler",
    "StaticFallbackStage",
]
