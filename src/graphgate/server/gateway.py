"""
Graphgate server - the startup orchestrator.

Startup sequence, one lifecycle state per step:
    1. DEPENDENCIES_RESOLVING: storage connected, security built,
       notification client started in the background
    2. PIPELINE_COMPOSED: FastAPI app built from the stage descriptor
    3. LISTENING: TCP socket bound
    4. TRANSPORT_ATTACHED: subscription transport opened on that socket
    5. SERVING: uvicorn accepting connections

Usage:
    from graphgate import GatewayServer, load_config

    server = GatewayServer(load_config())
    exit_code = asyncio.run(server.serve())
"""

from __future__ import annotations

import asyncio
import logging
import socket
from typing import Any, Awaitable, Callable, Optional

import uvicorn
from fastapi import FastAPI
from graphql import GraphQLSchema
from sqlalchemy.ext.asyncio import AsyncEngine

from ..config import ServerConfig
from ..core.errors import StartupAborted, StartupFailure
from ..core.lifecycle import ServerLifecycle, ServerState
from ..messaging import PubSub, create_pubsub
from ..pipeline import PipelineDescriptor, compose_pipeline
from ..runtime import ContextFactory, DependencyBootstrapper, ResolvedDependencies
from ..schema import tasks
from ..websocket import SubscriptionServer, TransportAttacher, TransportBinding, TransportGate
from .listener import Listener, ListenerLauncher

logger = logging.getLogger(__name__)

StartupHook = Callable[[AsyncEngine], Awaitable[None]]
FatalCallback = Callable[[dict[str, Any]], None]

# Peer disconnects surfacing on the loop are not fatal
_IGNORED_LOOP_ERRORS = (ConnectionResetError, BrokenPipeError)


def install_fatal_handler(loop: asyncio.AbstractEventLoop, on_fatal: FatalCallback) -> Optional[Callable]:
    """
    Route unhandled asynchronous failures on ``loop`` to ``on_fatal``.

    Returns:
        The previously installed handler, for restoring
    """
    previous = loop.get_exception_handler()

    def handler(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        if isinstance(exc, _IGNORED_LOOP_ERRORS):
            logger.warning(f"Connection error on event loop: {exc}")
            return
        logger.critical(f"Unhandled asynchronous failure: {context.get('message')}", exc_info=exc)
        on_fatal(context)

    loop.set_exception_handler(handler)
    return previous


class GatewayUvicornServer(uvicorn.Server):
    """uvicorn server reporting when it has started accepting connections."""

    def __init__(self, config: uvicorn.Config, on_started: Optional[Callable[[], None]] = None):
        super().__init__(config)
        self.on_started = on_started

    async def startup(self, sockets: Optional[list[socket.socket]] = None) -> None:
        await super().startup(sockets=sockets)
        if self.started and self.on_started is not None:
            self.on_started()


class GatewayServer:
    """
    Sequences gateway startup and owns the process-wide resources.

    Features:
    - Storage failure aborts startup with exit code 1
    - Notification client resolves in the background, never blocks startup
    - WebSocket upgrades are refused until the listener is bound
    - Fatal loop errors shut the server down with exit code 1
    """

    def __init__(
        self,
        config: ServerConfig,
        *,
        schema: Optional[GraphQLSchema] = None,
        pubsub: Optional[PubSub] = None,
        on_startup: Optional[StartupHook] = None,
        bootstrapper: Optional[DependencyBootstrapper] = None,
        title: str = "graphgate",
    ):
        """
        Initialize server.

        Args:
            config: Loaded server configuration
            schema: Executable schema (default: the example task schema)
            pubsub: Pub/sub for the example schema (default: from config.pubsub_url)
            on_startup: Awaited with the storage engine before the pipeline is composed
            bootstrapper: Dependency bootstrapper (default: built from config)
            title: Application title
        """
        self.config = config
        self.title = title
        self.lifecycle = ServerLifecycle()

        if schema is None:
            pubsub = pubsub or create_pubsub(config.pubsub_url)
            schema = tasks.create_schema(pubsub)
            on_startup = on_startup or tasks.create_tables

        self.schema = schema
        self.pubsub = pubsub
        self.on_startup = on_startup
        self.bootstrapper = bootstrapper or DependencyBootstrapper(config)
        self.gate = TransportGate(config.graphql_path)

        self.dependencies: Optional[ResolvedDependencies] = None
        self.context_factory: Optional[ContextFactory] = None
        self.descriptor: Optional[PipelineDescriptor] = None
        self.app: Optional[FastAPI] = None
        self.listener: Optional[Listener] = None
        self.binding: Optional[TransportBinding] = None
        self.exit_code = 0
        self._server: Optional[GatewayUvicornServer] = None

    # =========================================================================
    # Startup
    # =========================================================================

    async def prepare(self) -> FastAPI:
        """
        Resolve dependencies and compose the pipeline.

        Raises:
            StartupFailure: If storage or the startup hook fails
            StartupAborted: If a fatal error was reported meanwhile
        """
        self.lifecycle.transition(ServerState.DEPENDENCIES_RESOLVING)
        dependencies = await self.bootstrapper.bootstrap()
        await self._abort_if_failed(dependencies)

        if self.on_startup is not None:
            try:
                await self.on_startup(dependencies.storage)
            except Exception as e:
                await dependencies.aclose()
                raise StartupFailure(f"Startup hook failed: {e}") from e
            await self._abort_if_failed(dependencies)

        self.dependencies = dependencies
        self.context_factory = ContextFactory.from_dependencies(dependencies)
        self.descriptor = compose_pipeline(
            self.config,
            dependencies,
            schema=self.schema,
            context_factory=self.context_factory,
            gate=self.gate,
        )
        self.app = self.descriptor.build_app(title=self.title)
        self.lifecycle.transition(ServerState.PIPELINE_COMPOSED)
        return self.app

    async def _abort_if_failed(self, dependencies: ResolvedDependencies) -> None:
        if self.lifecycle.is_terminal:
            await dependencies.aclose()
            raise StartupAborted("Fatal error reported during startup")

    def listen(self) -> Listener:
        """
        Bind the listener, then attach the subscription transport to it.

        Raises:
            ListenerBindError: If the address cannot be bound
        """
        launcher = ListenerLauncher(self.lifecycle)
        self.listener = launcher.launch(self.config.host, self.config.port, on_listening=self._attach_transport)
        return self.listener

    async def start(self) -> FastAPI:
        app = await self.prepare()
        self.listen()
        return app

    def _attach_transport(self, listener: Listener) -> None:
        attacher = TransportAttacher(self.gate, self.lifecycle, self._create_subscription_server)
        self.binding = attacher.attach(
            schema=self.schema,
            security=self.dependencies.security,
            listener=listener,
        )

    def _create_subscription_server(self, binding: TransportBinding) -> SubscriptionServer:
        return SubscriptionServer(
            binding.schema,
            self.context_factory,
            security=binding.security,
            debug=self.config.playground,
        )

    def mark_serving(self) -> None:
        if self.lifecycle.is_terminal:
            return
        self.lifecycle.transition(ServerState.SERVING)

        host = "localhost" if self.listener.host in ("0.0.0.0", "::") else self.listener.host
        base = f"http://{host}:{self.listener.port}"
        logger.info(f"Server ready at {base}{self.config.graphql_path}")
        if self.config.playground:
            logger.info(f"Playground available at {base}{self.config.graphql_path}")
        logger.info(f"Subscriptions ready at ws://{host}:{self.listener.port}{self.config.graphql_path}")

    # =========================================================================
    # Run
    # =========================================================================

    async def serve(self) -> int:
        """
        Start and serve until stopped.

        Returns:
            Process exit code: 0 on a clean stop, 1 on startup or fatal failure
        """
        loop = asyncio.get_running_loop()
        previous_handler = install_fatal_handler(loop, self.fail)

        try:
            try:
                await self.start()
            except StartupFailure as e:
                logger.critical(f"Startup failed: {e}")
                self.exit_code = 1
                return self.exit_code

            if self.lifecycle.is_terminal:
                return self.exit_code

            uvicorn_config = uvicorn.Config(
                self.app,
                lifespan="off",
                log_level=self.config.log_level.lower(),
            )
            self._server = GatewayUvicornServer(uvicorn_config, on_started=self.mark_serving)
            await self._server.serve(sockets=[self.listener.socket])
            return self.exit_code
        finally:
            loop.set_exception_handler(previous_handler)
            self.lifecycle.transition(ServerState.SHUTTING_DOWN)
            await self.aclose()

    def stop(self) -> None:
        """Ask the running server to exit."""
        if self._server is not None:
            self._server.should_exit = True

    def fail(self, context: dict[str, Any]) -> None:
        """Fatal failure: shut down with exit code 1."""
        self.exit_code = 1
        self.lifecycle.transition(ServerState.SHUTTING_DOWN)
        self.stop()

    async def aclose(self) -> None:
        """Release the listener and every resolved dependency."""
        if self.listener is not None:
            self.listener.close()
        if self.dependencies is not None:
            dependencies, self.dependencies = self.dependencies, None
            await dependencies.aclose()
        if self.pubsub is not None:
            await self.pubsub.aclose()
        logger.info("Server shut down")


def run(config: ServerConfig, **kwargs: Any) -> int:
    """Run a GatewayServer to completion on a new event loop."""
    return asyncio.run(GatewayServer(config, **kwargs).serve())
