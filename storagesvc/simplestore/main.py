"""
simplestore - Main entry point.

This module starts the file storage server:
- Builds the in-memory store from the schema
- Wires the account, session and file services to it
- Serves the HTTP API until SIGINT/SIGTERM

Usage:
    python -m storagesvc.simplestore.main

Every setting comes from environment variables; config.py lists them.

Invariants:
    - A store that cannot be created aborts startup
    - All services share the one store instance created here
    - Shutdown closes the HTTP runner before the loop exits; stored data
      is discarded with the process

How to change safely:
    - Add new services to build_services() so tests get them too
    - Test shutdown sequence when adding background tasks
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter
from aiohttp import web

from .api import Services, create_http_app
from .auth import AccountRegistry, SessionAuthority
from .config import ObservabilityConfig, ServerConfig
from .files import FileVault
from .memdb import Store
from .models import build_schema

logger = logging.getLogger(__name__)

TEXT_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(observability: ObservabilityConfig) -> None:
    """Install a single root handler in the configured format.

    Args:
        observability: Log level and format settings
    """
    if observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.VerboseJSONFormatter()
    else:
        formatter = logging.Formatter(TEXT_LOG_FORMAT)

    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [stream]
    root.setLevel(getattr(logging, observability.log_level.upper(), logging.INFO))

    # one line per request is too chatty at INFO
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def build_services(config: ServerConfig) -> Services:
    """Create the store and every service on top of it.

    Args:
        config: Server configuration

    Returns:
        Services sharing one fresh store

    Raises:
        SchemaError: If the store schema is invalid
    """
    store = Store(build_schema(config.vault.single_file_per_owner))
    return Services(
        store=store,
        accounts=AccountRegistry(store, config.accounts),
        sessions=SessionAuthority(store),
        vault=FileVault(store, config.vault),
    )


class StorageServer:
    """Owns the services and the aiohttp runner serving them.

    Attributes:
        config: Server configuration
        services: Store and services (created by serve())

    Example:
        >>> server = StorageServer(ServerConfig.from_env())
        >>> task = asyncio.create_task(server.serve())
        >>> server.request_shutdown()
        >>> await task
    """

    def __init__(self, config: ServerConfig) -> None:
        self.config = config
        self.services: Services | None = None
        self._runner: web.AppRunner | None = None
        self._stopping = asyncio.Event()

    async def serve(self) -> None:
        """Bind the HTTP listener and block until shutdown is requested."""
        if self._runner is not None:
            logger.warning("Storage server is already serving")
            return

        http = self.config.http
        self.config.log_config()

        self.services = build_services(self.config)
        self._runner = web.AppRunner(create_http_app(self.services, http))
        try:
            await self._runner.setup()
            await web.TCPSite(self._runner, http.host, http.port).start()
            logger.info("Serving HTTP", extra={"host": http.host, "port": http.port})

            await self._stopping.wait()
        finally:
            await self.close()

    async def close(self) -> None:
        """Release the listener; safe to call more than once."""
        runner, self._runner = self._runner, None
        if runner is None:
            return
        await runner.cleanup()
        logger.info("Storage server stopped", extra=self.services.store.stats())

    def request_shutdown(self) -> None:
        """Ask serve() to return."""
        self._stopping.set()


def main() -> None:
    """Console entry point."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.observability)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    server = StorageServer(config)

    def on_signal(signum: int) -> None:
        logger.info("Shutdown signal received", extra={"signal": signal.Signals(signum).name})
        server.request_shutdown()

    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, on_signal, signum)

    try:
        loop.run_until_complete(server.serve())
    except Exception:
        logger.exception("simplestore server failed")
        sys.exit(1)
    finally:
        loop.close()


if __name__ == "__main__":
    main()
