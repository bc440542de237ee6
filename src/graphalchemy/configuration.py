# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Entity manager configuration and graph client acquisition.

When read-only replicas (``slaves``) are configured, candidate servers are
probed in random order with a liveness request until one answers or
the first probe and ``max_reconnect`` retries have failed.
"""

from __future__ import annotations

import logging
import random
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .constants import DatabaseConstants, ErrorMessages
from .exceptions import ConfigurationError, ConnectivityError
from .graph_client import GraphClient
from .graph_metadata import MetadataRepository
from .rest_client import RestGraphClient

logger = logging.getLogger(__name__)


class ServerAddress(BaseModel):
    """Host and port of one graph server."""
    model_config = ConfigDict(frozen=True)

    host: str
    port: int = Field(default=DatabaseConstants.DEFAULT_PORT, gt=0, lt=65536)

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


class Configuration(BaseModel):
    """
    Settings used by ``EntityManager``.

    :class: Configuration
    :synopsis: Server location, credentials, replicas and client override
    """
    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    host: str = DatabaseConstants.DEFAULT_HOST
    port: int = Field(default=DatabaseConstants.DEFAULT_PORT, gt=0, lt=65536)
    scheme: Literal["http", "https"] = DatabaseConstants.DEFAULT_SCHEME
    username: Optional[str] = None
    password: Optional[str] = None
    slaves: List[ServerAddress] = Field(default_factory=list)
    timeout: float = Field(default=DatabaseConstants.DEFAULT_TIMEOUT, gt=0)
    debug: bool = False
    max_reconnect: int = Field(default=DatabaseConstants.MAX_RECONNECT, ge=0)
    # Prebuilt client; skips transport creation and probing
    client: Optional[Any] = None

    @model_validator(mode="after")
    def _check_credentials(self) -> "Configuration":
        if (self.username is None) != (self.password is None):
            raise ValueError(ErrorMessages.CREDENTIALS_INCOMPLETE)
        return self

    @classmethod
    def coerce(cls, value: Union[None, Dict[str, Any], "Configuration"]) -> "Configuration":
        """
        Build a configuration from the argument accepted by ``EntityManager``.

        Raises:
            ConfigurationError: If ``value`` is not None, a dict or a Configuration,
                or if the dict does not validate
        """
        if isinstance(value, Configuration):
            return value
        if value is not None and not isinstance(value, dict):
            raise ConfigurationError(
                ErrorMessages.INVALID_CONFIGURATION_ARGUMENT.format(actual=type(value).__name__)
            )
        try:
            return cls.model_validate(value or {})
        except ValidationError as e:
            raise ConfigurationError(ErrorMessages.INVALID_CONFIGURATION.format(errors=e)) from e

    def get_primary(self) -> ServerAddress:
        return ServerAddress(host=self.host, port=self.port)

    def get_client(self) -> GraphClient:
        """
        Return the configured client, or connect to a server.

        Raises:
            ConnectivityError: If no candidate answered within ``max_reconnect + 1`` attempts
        """
        if self.client is not None:
            return self.client
        if not self.slaves:
            return self._build_client(self.get_primary())

        candidates = [self.get_primary(), *self.slaves]
        attempts = self.max_reconnect + 1
        for attempt in range(1, attempts + 1):
            server = random.choice(candidates)
            client = self._build_client(server)
            if client.ping():
                logger.debug("Connected to %s on attempt %d", server, attempt)
                return client
            logger.debug("Server %s did not answer (attempt %d)", server, attempt)
            client.close()

        raise ConnectivityError(
            ErrorMessages.CONNECTION_FAILED.format(
                attempts=attempts, servers=", ".join(str(server) for server in candidates)
            )
        )

    def get_metadata_repository(self) -> MetadataRepository:
        return MetadataRepository()

    def _build_client(self, server: ServerAddress) -> RestGraphClient:
        return RestGraphClient(
            host=server.host,
            port=server.port,
            scheme=self.scheme,
            username=self.username,
            password=self.password,
            timeout=self.timeout,
        )
