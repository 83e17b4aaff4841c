"""
EntStore Server - Main entry point.

This module starts the EntStore server:
- Builds the schema registry (JSON schema file and/or the shop model)
- Freezes it and creates the EntityStore
- Serves the HTTP JSON API until SIGTERM/SIGINT

Usage:
    python -m dbaas.entstore_server.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The registry is frozen before the first request is served
    - Graceful shutdown stops accepting requests before exiting

How to change safely:
    - Register entity types in build_registry(), never after startup
    - Test shutdown sequence thoroughly
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

import json_log_formatter
from aiohttp import web

from .api import run_http_server
from .config import ServerConfig
from .schema import EntityTypeDef, SchemaRegistry
from .store import EntityStore

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def load_schema_file(registry: SchemaRegistry, path: str, config: ServerConfig) -> int:
    """Register the entity types of a JSON registry dump.

    Types without an "id_strategy" use the configured default strategy.

    Returns:
        Number of registered types
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    count = 0
    for type_data in data.get("entity_types", []):
        type_data = dict(type_data)
        type_data.setdefault("id_strategy", config.store.default_id_strategy.value)
        registry.register_entity_type(EntityTypeDef.from_dict(type_data))
        count += 1
    logger.info("Loaded schema file", extra={"path": path, "entity_types": count})
    return count


def build_registry(config: ServerConfig) -> SchemaRegistry:
    """Build and freeze the registry described by the configuration."""
    registry = SchemaRegistry()
    if config.schema.load_shop_schema:
        # Demo model, only imported when asked for
        from shop.entities import register_shop_types

        register_shop_types(registry)
    if config.schema.schema_file:
        load_schema_file(registry, config.schema.schema_file, config)
    registry.freeze()
    return registry


class Server:
    """EntStore Server orchestrator.

    Attributes:
        config: Server configuration
        registry: Frozen schema registry
        store: The entity store served over HTTP

    Example:
        >>> server = Server()
        >>> await server.start()
        >>> # Server is running
        >>> await server.stop()
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        """Initialize the server.

        Args:
            config: Optional server configuration (loaded from env if not provided)
        """
        self.config = config or ServerConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self.registry: SchemaRegistry | None = None
        self.store: EntityStore | None = None
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start the server and wait for a shutdown request."""
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting EntStore server")
        self.config.log_config()

        try:
            self.registry = build_registry(self.config)
            self.store = EntityStore(self.registry, self.config.store)
            self._runner = await run_http_server(self.store, self.config.http)

            self._running = True
            logger.info(
                "EntStore server started successfully",
                extra={"entity_types": [t.name for t in self.registry.entity_types()]},
            )

            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None

        if not self._running:
            return
        self._running = False
        logger.info("EntStore server stopped")

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    server = Server(config)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
