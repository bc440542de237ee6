# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Constants module for GraphAlchemy.

This module centralizes the constants, configuration defaults and literal strings
used throughout the GraphAlchemy codebase. No magic values are allowed elsewhere.

:module: constants
:synopsis: Centralized constants and configuration for GraphAlchemy
:author: GraphAlchemy Contributors
"""

from __future__ import annotations

from enum import Enum, StrEnum
from typing import Final


# ============================================================================
# RELATION CARDINALITY
# ============================================================================

class RelationCardinality(Enum):
    """
    Cardinality of a relation-valued entity property.

    :class: RelationCardinality
    :synopsis: Single target (ONE) or collection of targets (MANY)
    """

    ONE = "one"
    MANY = "many"


class IndexKind(StrEnum):
    """Kinds of node index supported by the graph server."""

    EXACT = "node"
    FULLTEXT = "fulltext"


class QueryDialect(StrEnum):
    """Query languages accepted by the graph client."""

    TRAVERSAL = "gremlin"
    PATTERN = "cypher"


class FlushPhase(StrEnum):
    """Ordered states of the flush pipeline."""

    DISCOVER = "discover"
    WRITE_ENTITIES = "write_entities"
    WRITE_RELATIONS = "write_relations"
    WRITE_INDEXES = "write_indexes"
    REMOVE_ENTITIES = "remove_entities"
    DONE = "done"


# ============================================================================
# PERSISTED LAYOUT CONSTANTS
# ============================================================================

class NodePropertyConstants:
    """Reserved property names written on nodes and relationships."""

    # @@ STEP 1: Define reserved node properties
    CLASS: Final[str] = "class"
    CREATION_DATE: Final[str] = "creationDate"
    UPDATE_DATE: Final[str] = "updateDate"

    # @@ STEP 2: Define date formatting
    DATE_FORMAT: Final[str] = "%Y-%m-%d %H:%M:%S"

    # @@ STEP 3: Define default index layout
    DEFAULT_INDEX_FIELD: Final[str] = "id"


class ModelMetadataConstants:
    """Model metadata attribute constants."""

    # @@ STEP 1: Define entity metadata attributes
    GRAPH_ENTITY_NAME: Final[str] = "__graph_entity_name__"
    IS_GRAPH_ENTITY: Final[str] = "__is_graph_entity__"
    GRAPH_LABELS: Final[str] = "__graph_labels__"
    GRAPH_REPOSITORY: Final[str] = "__graph_repository__"

    # @@ STEP 2: Define field metadata attributes
    GRAPH_FIELD_METADATA: Final[str] = "graph_metadata"
    GRAPH_RELATION_METADATA: Final[str] = "graph_relation"


class EventNames:
    """Names of the events dispatched by the entity manager."""

    # @@ STEP 1: Entity lifecycle events
    PRE_PERSIST: Final[str] = "prePersist"
    POST_PERSIST: Final[str] = "postPersist"
    PRE_REMOVE: Final[str] = "preRemove"
    POST_REMOVE: Final[str] = "postRemove"

    # @@ STEP 2: Relation events
    PRE_RELATION_CREATE: Final[str] = "preRelationCreate"
    POST_RELATION_CREATE: Final[str] = "postRelationCreate"
    PRE_RELATION_UPDATE: Final[str] = "preRelationUpdate"
    PRE_RELATION_REMOVE: Final[str] = "preRelationRemove"
    POST_RELATION_REMOVE: Final[str] = "postRelationRemove"

    # @@ STEP 3: Statement events
    PRE_STMT_EXECUTE: Final[str] = "preStmtExecute"
    POST_STMT_EXECUTE: Final[str] = "postStmtExecute"


# ============================================================================
# CONNECTION AND CONFIGURATION CONSTANTS
# ============================================================================

class DatabaseConstants:
    """Defaults for reaching the graph server."""

    DEFAULT_HOST: Final[str] = "localhost"
    DEFAULT_PORT: Final[int] = 7474
    DEFAULT_SCHEME: Final[str] = "http"
    DEFAULT_TIMEOUT: Final[float] = 30.0
    MAX_RECONNECT: Final[int] = 2
    DATA_PATH: Final[str] = "/db/data/"
    JSON_CONTENT_TYPE: Final[str] = "application/json; charset=UTF-8"


class RestEndpointConstants:
    """Relative REST endpoints under the data path."""

    NODE: Final[str] = "node"
    NODE_ITEM: Final[str] = "node/{node_id}"
    NODE_PROPERTIES: Final[str] = "node/{node_id}/properties"
    NODE_LABELS: Final[str] = "{node_path}/labels"
    NODE_RELATIONSHIPS: Final[str] = "node/{node_id}/relationships/{direction}"
    RELATIONSHIP_ITEM: Final[str] = "relationship/{rel_id}"
    RELATIONSHIP_PROPERTIES: Final[str] = "relationship/{rel_id}/properties"
    BATCH: Final[str] = "batch"
    CYPHER: Final[str] = "cypher"
    GREMLIN: Final[str] = "ext/GremlinPlugin/graphdb/execute_script"
    NODE_INDEX_ROOT: Final[str] = "index/node"
    NODE_INDEX: Final[str] = "index/node/{index}"
    NODE_INDEX_ENTRY: Final[str] = "index/node/{index}/{field}/{value}"
    NODE_INDEX_NODE: Final[str] = "index/node/{index}/{node_id}"

    # @@ STEP 1: Direction path segments
    DIRECTION_OUT: Final[str] = "out"
    DIRECTION_ALL: Final[str] = "all"

    # @@ STEP 2: Lucene index provider
    INDEX_PROVIDER: Final[str] = "lucene"
    INDEX_TYPE_EXACT: Final[str] = "exact"
    INDEX_TYPE_FULLTEXT: Final[str] = "fulltext"

    # @@ STEP 3: Batch job placeholder for ids not yet assigned
    JOB_REFERENCE: Final[str] = "{{{job_id}}}"


class QueryConstants:
    """Constants for query execution."""

    # Substrings that indicate an error returned as data by the traversal dialect
    TRAVERSAL_ERROR_MARKERS: Final[tuple[str, ...]] = ("Exception",)


# ============================================================================
# ERROR MESSAGE CONSTANTS
# ============================================================================

class ErrorMessages:
    """Error message constants."""

    # @@ STEP 1: Define configuration errors
    INVALID_CONFIGURATION_ARGUMENT: Final[str] = "Provided argument must be a Configuration object or a dict, got: {actual}"
    INVALID_CONFIGURATION: Final[str] = "Invalid configuration: {errors}"
    CREDENTIALS_INCOMPLETE: Final[str] = "Both username and password must be provided together"

    # @@ STEP 2: Define connectivity errors
    CONNECTION_FAILED: Final[str] = "Could not connect to any graph server after {attempts} attempts: {servers}"

    # @@ STEP 3: Define mapping errors
    ENTITY_NOT_MAPPED: Final[str] = "Class {model_name} is not a graph entity; decorate it with @graph_entity"
    MISSING_PRIMARY_KEY: Final[str] = "Entity {model_name} must declare exactly one primary key field, found {count}"
    PRIMARY_KEY_IMMUTABLE: Final[str] = "Primary key of {model_name} is already {current} and cannot change to {value}"
    INVALID_REPOSITORY: Final[str] = "Requested repository class {repository} does not extend the base repository class"
    UNKNOWN_ENTITY_CLASS: Final[str] = "Node {node_id} references unknown entity class {class_name}"
    NODE_NOT_FOUND: Final[str] = "Node {node_id} backing entity {model_name} does not exist"
    NODE_NOT_WRITTEN: Final[str] = "Entity {model_name} has no node in the current unit of work"
    NOT_INDEXED: Final[str] = "Property {field_name} of {model_name} is not indexed"

    # @@ STEP 4: Define query errors
    ERROR_DETECTED: Final[str] = "An error was detected: {error}"
    QUERY_EXECUTION_FAILED: Final[str] = "Query execution failed: {error}"

    # @@ STEP 5: Define batch errors
    BATCH_ALREADY_OPEN: Final[str] = "A batch is already open; batches are not reentrant"
    NO_OPEN_BATCH: Final[str] = "No batch is open"

    # @@ STEP 6: Define client errors
    HTTP_ERROR: Final[str] = "HTTP {status_code} on {method} {url}: {detail}"
    TRANSPORT_ERROR: Final[str] = "Transport failure on {method} {url}: {error}"


class PerformanceConstants:
    """Performance tuning constants."""

    # @@ STEP 1: Define cache settings
    METADATA_CACHE_SIZE: Final[int] = 500
