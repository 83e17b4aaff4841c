"""
Configuration management for EntStore Server.

All configuration is done via environment variables - no config files inside containers.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Configuration objects are immutable once loaded
    - Invalid values fail at startup, never at request time

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep env var names prefixed per section
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from .schema.types import IdStrategy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreConfig:
    """Store core configuration.

    Attributes:
        default_id_strategy: ID strategy for types loaded without one
        fuzzy_threshold: Default minimum similarity for fuzzy filters (0.0-1.0)
        fuzzy_max_distance: Default maximum edit distance for fuzzy filters
        max_query_limit: Largest accepted query limit
    """

    default_id_strategy: IdStrategy = IdStrategy.AUTO_INCREMENT
    fuzzy_threshold: float = 0.7
    fuzzy_max_distance: int = 3
    max_query_limit: int = 10000

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load configuration from environment variables."""
        strategy = os.getenv("ENTSTORE_DEFAULT_ID_STRATEGY", IdStrategy.AUTO_INCREMENT.value)
        try:
            default_id_strategy = IdStrategy(strategy.lower())
        except ValueError:
            raise ValueError(
                f"Invalid ENTSTORE_DEFAULT_ID_STRATEGY '{strategy}'. "
                "Must be one of: auto_increment, uuid"
            )
        return cls(
            default_id_strategy=default_id_strategy,
            fuzzy_threshold=float(os.getenv("ENTSTORE_FUZZY_THRESHOLD", "0.7")),
            fuzzy_max_distance=int(os.getenv("ENTSTORE_FUZZY_MAX_DISTANCE", "3")),
            max_query_limit=int(os.getenv("ENTSTORE_MAX_QUERY_LIMIT", "10000")),
        )

    def validate(self) -> None:
        """Validate store settings.

        Raises:
            ValueError: If a setting is out of range.
        """
        if not 0.0 <= self.fuzzy_threshold <= 1.0:
            raise ValueError(
                f"ENTSTORE_FUZZY_THRESHOLD must be within [0, 1], got {self.fuzzy_threshold}"
            )
        if self.fuzzy_max_distance < 0:
            raise ValueError(
                f"ENTSTORE_FUZZY_MAX_DISTANCE must be >= 0, got {self.fuzzy_max_distance}"
            )
        if self.max_query_limit <= 0:
            raise ValueError(f"ENTSTORE_MAX_QUERY_LIMIT must be > 0, got {self.max_query_limit}")


@dataclass(frozen=True)
class HttpConfig:
    """HTTP API configuration.

    Attributes:
        host: Address to bind
        port: Port to listen on
        cors_origins: Allowed CORS origins ("*" allows any)
    """

    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: tuple[str, ...] = ("*",)

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        origins = os.getenv("HTTP_CORS_ORIGINS", "*")
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "8080")),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )


@dataclass(frozen=True)
class SchemaConfig:
    """Schema bootstrap configuration.

    Attributes:
        schema_file: Path to a JSON registry dump to load at startup
        load_shop_schema: Whether to register the demo shop entity types
    """

    schema_file: str | None = None
    load_shop_schema: bool = False

    @classmethod
    def from_env(cls) -> SchemaConfig:
        """Load configuration from environment variables."""
        return cls(
            schema_file=os.getenv("ENTSTORE_SCHEMA_FILE"),
            load_shop_schema=os.getenv("ENTSTORE_LOAD_SHOP_SCHEMA", "false").lower() == "true",
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        store: Store core configuration
        http: HTTP API configuration
        schema: Schema bootstrap configuration
        observability: Logging configuration
    """

    store: StoreConfig = field(default_factory=StoreConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    schema: SchemaConfig = field(default_factory=SchemaConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            store=StoreConfig.from_env(),
            http=HttpConfig.from_env(),
            schema=SchemaConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        self.store.validate()

        if not 0 < self.http.port < 65536:
            raise ValueError(f"HTTP_PORT must be within 1-65535, got {self.http.port}")

        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"LOG_FORMAT must be 'json' or 'text', got '{self.observability.log_format}'"
            )

        if self.schema.schema_file and not os.path.exists(self.schema.schema_file):
            raise ValueError(f"ENTSTORE_SCHEMA_FILE does not exist: {self.schema.schema_file}")

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Server configuration loaded",
            extra={
                "http_bind": f"{self.http.host}:{self.http.port}",
                "schema_file": self.schema.schema_file,
                "load_shop_schema": self.schema.load_shop_schema,
                "default_id_strategy": self.store.default_id_strategy.value,
                "fuzzy_threshold": self.store.fuzzy_threshold,
                "fuzzy_max_distance": self.store.fuzzy_max_distance,
                "log_level": self.observability.log_level,
            },
        )
