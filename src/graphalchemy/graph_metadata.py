# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Metadata descriptors consumed by the entity manager.

``MetadataRepository.describe(cls)`` turns the declarative mapping of an entity
class into an ``EntityMetadata`` descriptor: primary key accessor, scalar
property accessors, relation descriptors, indexed properties, labels and
repository class. Descriptors are cached per class with LRU eviction.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List, Optional, Type

from pydantic import ValidationError

from .constants import (
    ErrorMessages,
    IndexKind,
    ModelMetadataConstants,
    PerformanceConstants,
    RelationCardinality,
)
from .exceptions import MappingError
from .graph_orm import IndexDefinition, get_registry

logger = logging.getLogger(__name__)


@dataclass
class PropertyMetadata:
    """Accessor for a scalar entity property."""
    name: str

    def get_value(self, entity: Any) -> Any:
        return getattr(entity, self.name)

    def get_graph_value(self, entity: Any) -> Any:
        """Value of the property in its JSON-compatible form."""
        dump = getattr(entity, "model_dump", None)
        if dump is None:
            return self.get_value(entity)
        return dump(mode="json", include={self.name})[self.name]

    def set_value(self, entity: Any, value: Any) -> None:
        setattr(entity, self.name, value)


@dataclass
class PrimaryKeyMetadata(PropertyMetadata):
    """Accessor for the primary key holding the node id."""

    def set_value(self, entity: Any, value: Any) -> None:
        current = self.get_value(entity)
        if current is not None and current != value:
            raise MappingError(
                ErrorMessages.PRIMARY_KEY_IMMUTABLE.format(
                    model_name=type(entity).__name__, current=current, value=value
                )
            )
        setattr(entity, self.name, value)


@dataclass
class RelationMetadata(PropertyMetadata):
    """Descriptor of a relation-valued property."""
    cardinality: RelationCardinality = RelationCardinality.MANY
    traversed: bool = True

    def is_traversed(self) -> bool:
        return self.traversed

    def is_collection(self) -> bool:
        return self.cardinality is RelationCardinality.MANY


@dataclass
class IndexedPropertyMetadata(PropertyMetadata):
    """Scalar property written to one or more named indexes."""
    indexes: List[IndexDefinition] = field(default_factory=list)

    def get_indexes(self) -> List[IndexDefinition]:
        return self.indexes


@dataclass
class EntityMetadata:
    """
    Mapping descriptor of one entity class.

    :class: EntityMetadata
    :synopsis: Everything the flush pipeline needs to know about a type
    """
    name: str
    entity_class: Type[Any]
    primary_key: PrimaryKeyMetadata
    properties: List[PropertyMetadata] = field(default_factory=list)
    relations: List[RelationMetadata] = field(default_factory=list)
    indexed_properties: List[IndexedPropertyMetadata] = field(default_factory=list)
    labels: List[str] = field(default_factory=list)
    repository_class: Optional[Type[Any]] = None

    def get_name(self) -> str:
        return self.name

    def get_primary_key(self) -> PrimaryKeyMetadata:
        return self.primary_key

    def get_properties(self) -> List[PropertyMetadata]:
        return self.properties

    def get_many_to_many_relations(self) -> List[RelationMetadata]:
        return [relation for relation in self.relations if relation.is_collection()]

    def get_many_to_one_relations(self) -> List[RelationMetadata]:
        return [relation for relation in self.relations if not relation.is_collection()]

    def get_indexed_properties(self) -> List[IndexedPropertyMetadata]:
        return self.indexed_properties

    def get_labels(self) -> List[str]:
        return self.labels

    def get_repository_class(self) -> Type[Any]:
        if self.repository_class is not None:
            return self.repository_class
        from .graph_repository import Repository
        return Repository

    def get_index_name(self) -> str:
        """Name of the default per-type index."""
        return self.name.replace("\\", ".")

    def hydrate(self, node_id: int, properties: Dict[str, Any]) -> Any:
        """Build an entity instance from stored node properties."""
        data = {prop.name: properties[prop.name] for prop in self.properties if prop.name in properties}
        data[self.primary_key.name] = node_id
        try:
            return self.entity_class.model_validate(data)
        except ValidationError as e:
            raise MappingError(f"Node {node_id} cannot be loaded as {self.name}: {e}") from e


class MetadataRepository:
    """Builds and caches EntityMetadata descriptors."""

    def __init__(self, cache_size: int = PerformanceConstants.METADATA_CACHE_SIZE):
        self._cache: OrderedDict[Type[Any], EntityMetadata] = OrderedDict()
        self._cache_size = cache_size

    def describe(self, cls: Type[Any]) -> EntityMetadata:
        """
        Return the mapping descriptor of an entity class.

        Raises:
            MappingError: If the class is not a mapped entity or its primary key is invalid
        """
        if cls in self._cache:
            meta = self._cache.pop(cls)
            self._cache[cls] = meta
            return meta

        meta = self._build(cls)

        while len(self._cache) >= self._cache_size:
            self._cache.popitem(last=False)
        self._cache[cls] = meta
        return meta

    from_class = describe

    def for_entity(self, entity: Any) -> EntityMetadata:
        return self.describe(type(entity))

    def from_name(self, name: str) -> EntityMetadata:
        cls = get_registry().get_entity_by_name(name)
        if cls is None:
            raise MappingError(ErrorMessages.ENTITY_NOT_MAPPED.format(model_name=name))
        return self.describe(cls)

    def clear(self) -> None:
        self._cache.clear()

    def _build(self, cls: Type[Any]) -> EntityMetadata:
        if not getattr(cls, ModelMetadataConstants.IS_GRAPH_ENTITY, False):
            raise MappingError(ErrorMessages.ENTITY_NOT_MAPPED.format(model_name=cls.__name__))
        model_fields = getattr(cls, "model_fields", None)
        if model_fields is None:
            raise MappingError(ErrorMessages.ENTITY_NOT_MAPPED.format(model_name=cls.__name__))

        registry = get_registry()
        primary_keys: List[str] = []
        properties: List[PropertyMetadata] = []
        relations: List[RelationMetadata] = []
        indexed: List[IndexedPropertyMetadata] = []

        # @@ STEP 1: Classify fields
        for field_name, field_info in model_fields.items():
            relation_meta = registry.get_relation_metadata(field_info)
            if relation_meta is not None:
                relations.append(
                    RelationMetadata(
                        name=field_name,
                        cardinality=relation_meta.cardinality,
                        traversed=relation_meta.traversed,
                    )
                )
                continue

            field_meta = registry.get_field_metadata(field_info)
            if field_meta is not None and field_meta.primary_key:
                primary_keys.append(field_name)
                continue

            properties.append(PropertyMetadata(name=field_name))

            # || S.1: Index definitions default their name and document field to the property name
            if field_meta is not None and field_meta.indexes:
                definitions = [
                    IndexDefinition(
                        name=definition.name or field_name,
                        kind=IndexKind(definition.kind),
                        field=definition.field or field_name,
                    )
                    for definition in field_meta.indexes
                ]
                indexed.append(IndexedPropertyMetadata(name=field_name, indexes=definitions))

        # @@ STEP 2: Validate the primary key
        if len(primary_keys) != 1:
            raise MappingError(
                ErrorMessages.MISSING_PRIMARY_KEY.format(model_name=cls.__name__, count=len(primary_keys))
            )

        logger.debug(
            "Described %s: %d properties, %d relations, %d indexed",
            cls.__name__, len(properties), len(relations), len(indexed),
        )
        return EntityMetadata(
            name=getattr(cls, ModelMetadataConstants.GRAPH_ENTITY_NAME),
            entity_class=cls,
            primary_key=PrimaryKeyMetadata(name=primary_keys[0]),
            properties=properties,
            relations=relations,
            indexed_properties=indexed,
            labels=list(getattr(cls, ModelMetadataConstants.GRAPH_LABELS, [])),
            repository_class=getattr(cls, ModelMetadataConstants.GRAPH_REPOSITORY, None),
        )
