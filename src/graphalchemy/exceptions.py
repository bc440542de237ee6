# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Exception hierarchy for GraphAlchemy.

Errors raised by the graph client are reported as GraphClientError and are
rewrapped into QueryError at the query execution boundary only. Flush failures
propagate unchanged to the caller.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class GraphAlchemyError(Exception):
    """Base class for all GraphAlchemy errors."""


class ConfigurationError(GraphAlchemyError, ValueError):
    """Invalid construction arguments."""


class MappingError(GraphAlchemyError, TypeError):
    """A type lacks required metadata, or its repository class is invalid."""


class ConnectivityError(GraphAlchemyError, ConnectionError):
    """No reachable graph server during client acquisition."""


class QueryError(GraphAlchemyError, RuntimeError):
    """
    Query execution failed.

    Carries the offending query text and its bound parameters so callers can
    report or replay the failure.
    """

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        parameters: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.query = query
        self.parameters = dict(parameters or {})

    def __str__(self) -> str:
        message = super().__str__()
        if self.query is None:
            return message
        return f"{message} [query={self.query!r}, parameters={self.parameters!r}]"


class GraphClientError(GraphAlchemyError):
    """Protocol-level failure reported by a graph client."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
