"""Process runner: one shared store, both adapters under uvicorn."""

import asyncio
import contextlib
import signal
import sys
from collections.abc import Iterator

import uvicorn

from tokenkv.config import Config
from tokenkv.exceptions import BackendUnavailableError, ConfigError
from tokenkv.observability import configure_logging, get_logger
from tokenkv.server.app import create_http_app, create_rpc_app
from tokenkv.store import KVStore

logger = get_logger(__name__)


class _Server(uvicorn.Server):
    """uvicorn server that leaves signal handling to ``serve``.

    Several servers share one event loop, so a single handler has to stop
    all of them.
    """

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        pass


def build_servers(config: Config, store: KVStore) -> list[uvicorn.Server]:
    """Create the enabled adapter servers.

    Raises:
        ConfigError: If no adapter is enabled
    """
    server_config = config.server
    log_level = config.logging.level.lower()
    servers: list[uvicorn.Server] = []

    if server_config.enable_http:
        app = create_http_app(store, cors_origins=server_config.cors_origins)
        servers.append(_Server(uvicorn.Config(
            app,
            host=server_config.host,
            port=server_config.http_port,
            log_level=log_level,
        )))
    if server_config.enable_rpc:
        servers.append(_Server(uvicorn.Config(
            create_rpc_app(store),
            host=server_config.host,
            port=server_config.rpc_port,
            log_level=log_level,
        )))

    if not servers:
        raise ConfigError("No servers enabled. Enable the HTTP or RPC adapter.")
    return servers


async def serve(config: Config, store: KVStore | None = None) -> None:
    """Connect the backend, verify it, and run the enabled adapters until stopped.

    Raises:
        ConfigError: If no adapter is enabled or the backend is unknown
        BackendUnavailableError: If the backend is unreachable at start-up
    """
    store = store or KVStore.from_config(config)
    servers = build_servers(config, store)

    await store.connect()
    try:
        if not await store.health_check():
            raise BackendUnavailableError("Backend health check failed at start-up")

        loop = asyncio.get_running_loop()

        def request_shutdown(sig: signal.Signals) -> None:
            logger.info(f"Received signal {sig.name}, shutting down")
            for server in servers:
                server.should_exit = True

        if sys.platform != "win32":
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, request_shutdown, sig)

        logger.info(
            "Starting tokenkv",
            context={
                "http": config.server.http_port if config.server.enable_http else None,
                "rpc": config.server.rpc_port if config.server.enable_rpc else None,
                "backend": config.backend.backend,
            },
        )
        await asyncio.gather(*(server.serve() for server in servers))
    finally:
        await store.close()
        logger.info("Shutdown complete")


def run(config: Config) -> None:
    """Blocking entry point used by the CLI."""
    configure_logging(config.logging.level, config.logging.format)
    asyncio.run(serve(config))


async def check(config: Config) -> bool:
    """Ping the configured backend once."""
    store = KVStore.from_config(config)
    try:
        return await store.health_check()
    finally:
        await store.close()
