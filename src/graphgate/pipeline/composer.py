"""
Pipeline composition.

Decides once, at startup, which stages handle requests and in which order,
then builds the FastAPI application from that decision.

Stage order:
    cors -> metrics -> [auth] -> uploads -> health -> graphql -> static

Middleware stages wrap the router; terminal stages are routes, with the
static fallback mounted last at "/".

Usage:
    descriptor = compose_pipeline(config, dependencies, schema=schema,
                                  context_factory=factory, gate=gate)
    app = descriptor.build_app(title="graphgate")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Callable, Optional, Sequence

from fastapi import FastAPI
from graphql import GraphQLSchema
from starlette.middleware import Middleware

from ..core.errors import PipelineCompositionError
from .auth import AuthenticationStage
from .cors import CORSStage
from .graphql import GraphQLHTTPHandler
from .health import HealthCheckStage
from .metrics import GatewayMetrics, MetricsStage
from .static import StaticFallbackStage
from .uploads import UploadStage

if TYPE_CHECKING:
    from ..config import ServerConfig
    from ..runtime import ContextFactory, ResolvedDependencies
    from ..websocket import TransportGate

logger = logging.getLogger(__name__)

FIRST_STAGE = "cors"
LAST_STAGE = "static"


@dataclass(frozen=True)
class PipelineStage:
    """
    One named stage of the request pipeline.

    Middleware stages carry a factory returning a starlette Middleware.
    Terminal stages carry a factory that installs routes on the app.
    """
    name: str
    factory: Callable[..., Any]
    terminal: bool = False
    position: int = -1


@dataclass(frozen=True)
class PipelineDescriptor:
    """Ordered, validated set of stages. Never re-ordered after construction."""
    stages: tuple[PipelineStage, ...]
    names: tuple[str, ...] = field(init=False)

    def __post_init__(self) -> None:
        stages = tuple(replace(stage, position=index) for index, stage in enumerate(self.stages))
        object.__setattr__(self, "stages", stages)
        object.__setattr__(self, "names", tuple(stage.name for stage in stages))
        self._validate()

    def _validate(self) -> None:
        names = self.names
        if len(set(names)) != len(names):
            raise PipelineCompositionError(f"Duplicate pipeline stages: {names}")
        if not names or names[0] != FIRST_STAGE:
            raise PipelineCompositionError(f"'{FIRST_STAGE}' must be the first stage, got {names}")
        if names[-1] != LAST_STAGE:
            raise PipelineCompositionError(f"'{LAST_STAGE}' must be the last stage, got {names}")
        if "auth" in names and ("graphql" not in names or names.index("auth") > names.index("graphql")):
            raise PipelineCompositionError("'auth' must precede 'graphql'")

        seen_terminal = False
        for stage in self.stages:
            if stage.terminal:
                seen_terminal = True
            elif seen_terminal:
                raise PipelineCompositionError(
                    f"Middleware stage '{stage.name}' cannot follow a terminal stage"
                )

    def position(self, name: str) -> int:
        return self.names.index(name)

    def __contains__(self, name: str) -> bool:
        return name in self.names

    def build_app(self, title: str = "graphgate") -> FastAPI:
        """
        Build the application.

        Middleware is passed in order, so the first stage is the outermost
        and sees every response, including other stages' error responses.
        """
        middleware = [stage.factory() for stage in self.stages if not stage.terminal]
        app = FastAPI(
            title=title,
            middleware=middleware,
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )
        for stage in self.stages:
            if stage.terminal:
                stage.factory(app)

        logger.debug(f"Pipeline composed: {' -> '.join(self.names)}")
        return app


def _cors_stage(origins: Sequence[str]) -> PipelineStage:
    origins = list(origins)
    return PipelineStage(
        "cors",
        lambda: Middleware(CORSStage, origins=origins),
    )


def compose_pipeline(
    config: ServerConfig,
    dependencies: ResolvedDependencies,
    *,
    schema: GraphQLSchema,
    context_factory: ContextFactory,
    gate: TransportGate,
    metrics: Optional[GatewayMetrics] = None,
) -> PipelineDescriptor:
    """
    Decide the stage list from the resolved dependencies.

    The auth stage is present only when a security service resolved. The
    GraphQL stage also registers the transport gate's WebSocket route, so
    upgrades reach it before the static mount.

    Raises:
        PipelineCompositionError: If the resulting order is invalid
    """
    if metrics is None:
        metrics = GatewayMetrics(known_paths=(config.graphql_path, config.health_path, config.metrics_path))

    stages = [
        _cors_stage(config.cors_origins),
        PipelineStage(
            "metrics",
            lambda: Middleware(MetricsStage, metrics=metrics, path=config.metrics_path),
        ),
    ]

    security = dependencies.security
    if security is not None:
        stages.append(
            PipelineStage(
                "auth",
                lambda: Middleware(AuthenticationStage, security=security, path=config.graphql_path),
            )
        )

    handler = GraphQLHTTPHandler(
        schema,
        context_factory,
        path=config.graphql_path,
        playground=config.playground,
        debug=config.playground,
    )

    def install_graphql(app: FastAPI) -> None:
        handler.install(app)
        app.add_api_websocket_route(config.graphql_path, gate.endpoint)

    def install_static(app: FastAPI) -> None:
        app.mount("/", StaticFallbackStage(config.static_dir), name="static")

    stages.extend([
        PipelineStage(
            "uploads",
            lambda: Middleware(
                UploadStage,
                path=config.graphql_path,
                max_file_size=config.max_file_size,
                max_files=config.max_files,
            ),
        ),
        PipelineStage(
            "health",
            lambda: Middleware(HealthCheckStage, path=config.health_path),
        ),
        PipelineStage("graphql", install_graphql, terminal=True),
        PipelineStage("static", install_static, terminal=True),
    ])

    return PipelineDescriptor(tuple(stages))
