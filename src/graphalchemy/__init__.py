# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
GraphAlchemy: object/graph mapper with a unit-of-work flush engine.
"""

from .configuration import Configuration, ServerAddress
from .constants import EventNames, FlushPhase, IndexKind, QueryDialect, RelationCardinality
from .entity_manager import EntityManager
from .exceptions import (
    ConfigurationError,
    ConnectivityError,
    GraphAlchemyError,
    GraphClientError,
    MappingError,
    QueryError,
)
from .graph_client import GraphClient, Node, NodeIndex, Relationship, RelationshipRef, ResultSet
from .graph_events import EventManager, NullNotifier
from .graph_orm import (
    GraphBaseModel,
    IndexDefinition,
    clear_registry,
    get_registered_entities,
    graph_entity,
    graph_field,
    many,
    one,
    relation_field,
)
from .graph_relation import BareEdge, Relation, TrackedList, TypedEdge
from .graph_repository import Repository
from .memory_client import InMemoryGraphClient
from .rest_client import RestGraphClient

__version__ = "0.1.0"

__all__ = [
    "BareEdge",
    "Configuration",
    "ConfigurationError",
    "ConnectivityError",
    "EntityManager",
    "EventManager",
    "EventNames",
    "FlushPhase",
    "GraphAlchemyError",
    "GraphBaseModel",
    "GraphClient",
    "GraphClientError",
    "InMemoryGraphClient",
    "IndexDefinition",
    "IndexKind",
    "MappingError",
    "Node",
    "NodeIndex",
    "NullNotifier",
    "QueryDialect",
    "QueryError",
    "Relation",
    "RelationCardinality",
    "Relationship",
    "RelationshipRef",
    "Repository",
    "RestGraphClient",
    "ResultSet",
    "ServerAddress",
    "TrackedList",
    "TypedEdge",
    "clear_registry",
    "get_registered_entities",
    "graph_entity",
    "graph_field",
    "many",
    "one",
    "relation_field",
]
