# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Declarative mapping for graph entities.

Entities are pydantic models decorated with ``@graph_entity``. Scalar fields may
carry graph metadata through ``graph_field`` (primary key, indexes) and relation
fields are declared with ``relation_field``. The metadata is attached to the
pydantic FieldInfo and read back by the metadata repository.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Optional,
    Type,
    TypeVar,
    Union,
)

from pydantic import BaseModel, ConfigDict, Field
from pydantic.fields import FieldInfo

from .constants import IndexKind, ModelMetadataConstants, RelationCardinality, ErrorMessages
from .exceptions import MappingError
from .graph_relation import TrackedList

logger = logging.getLogger(__name__)

T = TypeVar("T")


# -----------------------------------------------------------------------------
# Field metadata
# -----------------------------------------------------------------------------

@dataclass
class IndexDefinition:
    """
    Declares that a property is written to a named node index.

    :class: IndexDefinition
    :synopsis: Index name, kind (exact or fulltext) and document field
    """
    name: str
    kind: IndexKind = IndexKind.EXACT
    field: Optional[str] = None


@dataclass
class GraphFieldMetadata:
    """
    Metadata for scalar graph fields.

    :class: GraphFieldMetadata
    :synopsis: Primary key flag and index definitions of a field
    """
    primary_key: bool = False
    indexes: List[IndexDefinition] = field(default_factory=list)


@dataclass
class RelationFieldMetadata:
    """
    Metadata for relation-valued fields.

    Relations that are not traversed are mapping metadata only: they are
    neither followed during discovery nor written during flush.
    """
    cardinality: RelationCardinality = RelationCardinality.MANY
    traversed: bool = True


def graph_field(
    default: Any = ...,
    *,
    primary_key: bool = False,
    index: Union[bool, str, None] = None,
    indexes: Optional[List[IndexDefinition]] = None,
    fulltext: bool = False,
    default_factory: Optional[Callable[[], Any]] = None,
    alias: Optional[str] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
    json_schema_extra: Optional[Dict[str, Any]] = None,
) -> Any:
    """
    Create a Pydantic Field with attached graph metadata.

    Args:
        default: Default value for the field
        primary_key: Marks the field holding the node id (None until persisted)
        index: Shortcut for a single index; True uses the field name as index name,
            a string gives the index name
        indexes: Explicit index definitions
        fulltext: Kind of the shortcut index
        default_factory: Python-side default factory function
    """
    index_definitions = list(indexes or [])
    if index:
        index_definitions.append(
            IndexDefinition(
                name=index if isinstance(index, str) else "",
                kind=IndexKind.FULLTEXT if fulltext else IndexKind.EXACT,
            )
        )

    if primary_key and index_definitions:
        raise MappingError("Primary key fields are indexed by the default index and cannot declare indexes")

    graph_metadata = GraphFieldMetadata(primary_key=primary_key, indexes=index_definitions)

    if type(json_schema_extra) is not dict:
        json_schema_extra = {}
    json_schema_extra[ModelMetadataConstants.GRAPH_FIELD_METADATA] = graph_metadata

    field_kwargs = {
        "json_schema_extra": json_schema_extra,
        "alias": alias,
        "title": title,
        "description": description,
    }

    if primary_key:
        # Primary keys are assigned by the server; None marks an unsaved entity
        return Field(default=None, **field_kwargs)
    if default_factory is not None:
        return Field(default_factory=default_factory, **field_kwargs)
    return Field(default=default, **field_kwargs)


def relation_field(
    cardinality: RelationCardinality = RelationCardinality.MANY,
    *,
    traversed: bool = True,
    description: Optional[str] = None,
) -> Any:
    """
    Create a Pydantic Field for a relation property.

    MANY relations default to an empty TrackedList, ONE relations to None.
    """
    relation_metadata = RelationFieldMetadata(cardinality=cardinality, traversed=traversed)
    json_schema_extra = {ModelMetadataConstants.GRAPH_RELATION_METADATA: relation_metadata}
    if cardinality is RelationCardinality.MANY:
        return Field(default_factory=TrackedList, json_schema_extra=json_schema_extra, description=description)
    return Field(default=None, json_schema_extra=json_schema_extra, description=description)


def one(*, traversed: bool = True) -> Any:
    """Single-valued relation field."""
    return relation_field(RelationCardinality.ONE, traversed=traversed)


def many(*, traversed: bool = True) -> Any:
    """Multi-valued relation field."""
    return relation_field(RelationCardinality.MANY, traversed=traversed)


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------

class GraphRegistry:
    """
    Global registry of entity classes.

    Entity classes are looked up by name when nodes are loaded back into
    objects, using the ``class`` marker written on every node.
    """

    _instance: Optional["GraphRegistry"] = None

    def __new__(cls) -> "GraphRegistry":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self.__dict__.get("_initialized", False):
            return
        self._initialized = True

        # @@ STEP 1: Core model storage
        self.entities: Dict[str, Type[Any]] = {}

        # @@ STEP 2: Field metadata cache (hot path)
        # Keyed by id(field_info) because FieldInfo may not be hashable
        self._field_metadata_cache: Dict[int, Optional[GraphFieldMetadata]] = {}
        self._relation_metadata_cache: Dict[int, Optional[RelationFieldMetadata]] = {}

    def register_entity(self, name: str, cls: Type[Any]) -> None:
        """
        Register an entity class.

        Args:
            name: The entity name written as the node class marker
            cls: The entity class
        """
        if name in self.entities and self.entities[name] is not cls:
            logger.debug("Entity %s redefined by %s", name, cls.__qualname__)
        self.entities[name] = cls

    def get_entity_by_name(self, name: str) -> Optional[Type[Any]]:
        return self.entities.get(name)

    def get_field_metadata(self, field_info: FieldInfo) -> Optional[GraphFieldMetadata]:
        """
        Get graph metadata from field info with caching.

        :param field_info: Pydantic field info
        :returns: Graph field metadata or None
        """
        cache_key = id(field_info)
        if cache_key in self._field_metadata_cache:
            return self._field_metadata_cache[cache_key]

        result = self._extract(field_info, ModelMetadataConstants.GRAPH_FIELD_METADATA, GraphFieldMetadata)
        self._field_metadata_cache[cache_key] = result
        return result

    def get_relation_metadata(self, field_info: FieldInfo) -> Optional[RelationFieldMetadata]:
        cache_key = id(field_info)
        if cache_key in self._relation_metadata_cache:
            return self._relation_metadata_cache[cache_key]

        result = self._extract(field_info, ModelMetadataConstants.GRAPH_RELATION_METADATA, RelationFieldMetadata)
        self._relation_metadata_cache[cache_key] = result
        return result

    @staticmethod
    def _extract(field_info: FieldInfo, key: str, expected: Type[T]) -> Optional[T]:
        extra = field_info.json_schema_extra
        if not extra or not isinstance(extra, dict):
            return None
        value = extra.get(key)
        if isinstance(value, expected):
            return value
        return None

    def clear(self) -> None:
        self.entities.clear()
        self._field_metadata_cache.clear()
        self._relation_metadata_cache.clear()


# Singleton
_graph_registry = GraphRegistry()


def get_registry() -> GraphRegistry:
    return _graph_registry


def get_registered_entities() -> Dict[str, Type[Any]]:
    return _graph_registry.entities.copy()


def clear_registry() -> None:
    """Clear all registered entities and cached field metadata."""
    _graph_registry.clear()


# -----------------------------------------------------------------------------
# Decorator
# -----------------------------------------------------------------------------

def graph_entity(
    name: Optional[str] = None,
    labels: Optional[List[str]] = None,
    repository_class: Optional[Type[Any]] = None,
) -> Callable[[Type[T]], Type[T]]:
    """
    Decorator to mark a class as a graph entity.

    :param name: Name written in the ``class`` property of nodes and used for the
        default index. Defaults to the class name.
    :param labels: Labels attached to newly created nodes.
    :param repository_class: Repository subclass returned by
        ``EntityManager.get_repository``.
    """

    def decorator(cls: Type[T]) -> Type[T]:
        entity_name = name if name is not None else cls.__name__

        setattr(cls, ModelMetadataConstants.GRAPH_ENTITY_NAME, entity_name)
        setattr(cls, ModelMetadataConstants.GRAPH_LABELS, list(labels or []))
        setattr(cls, ModelMetadataConstants.GRAPH_REPOSITORY, repository_class)
        setattr(cls, ModelMetadataConstants.IS_GRAPH_ENTITY, True)

        _graph_registry.register_entity(entity_name, cls)
        return cls

    return decorator


# -----------------------------------------------------------------------------
# Base model
# -----------------------------------------------------------------------------

class GraphBaseModel(BaseModel):
    """
    Base model for graph entities.

    Instances compare and hash by identity: the unit of work tracks objects,
    not values, and relation graphs may contain cycles.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True, validate_assignment=True, use_enum_values=False
    )

    def __eq__(self, other: object) -> bool:
        return self is other

    def __hash__(self) -> int:
        return id(self)

    def __setattr__(self, name: str, value: Any) -> None:
        if name == self.get_primary_key_field():
            current = self.__dict__.get(name)
            if current is not None and value != current:
                raise MappingError(
                    ErrorMessages.PRIMARY_KEY_IMMUTABLE.format(
                        model_name=type(self).__name__, current=current, value=value
                    )
                )
        previous = self.__dict__.get(name)
        super().__setattr__(name, value)

        # || S.1: A replaced member list hands its dropped members to the new list as removals
        assigned = self.__dict__.get(name)
        if isinstance(previous, TrackedList) and isinstance(assigned, TrackedList) and assigned is not previous:
            assigned.adopt_removals(previous)

    def __repr__(self) -> str:
        # Relation fields are left out: entity graphs may be cyclic
        scalars = ", ".join(
            f"{field_name}={self.__dict__.get(field_name)!r}"
            for field_name, field_info in type(self).model_fields.items()
            if _graph_registry.get_relation_metadata(field_info) is None
        )
        return f"{type(self).__name__}({scalars})"

    __str__ = __repr__

    @classmethod
    def get_primary_key_field(cls) -> Optional[str]:
        cached = cls.__dict__.get("__graph_cached_pk_field__")
        if cached is not None:
            return cached
        pk_field = None
        for field_name, field_info in cls.model_fields.items():
            meta = _graph_registry.get_field_metadata(field_info)
            if meta is not None and meta.primary_key:
                pk_field = field_name
                break
        if pk_field is not None:
            setattr(cls, "__graph_cached_pk_field__", pk_field)
        return pk_field

    def get_id(self) -> Optional[int]:
        pk_field = self.get_primary_key_field()
        if pk_field is None:
            return None
        return self.__dict__.get(pk_field)
