# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Per-type repositories.

``EntityManager.get_repository(cls)`` returns an instance of the repository
class declared on the entity (``@graph_entity(repository_class=...)``), which
must extend ``Repository``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Optional

from .constants import ErrorMessages, NodePropertyConstants
from .exceptions import MappingError
from .graph_client import NodeIndex
from .graph_metadata import EntityMetadata

if TYPE_CHECKING:
    from .entity_manager import EntityManager


class Repository:
    """Lookups for one entity type."""

    def __init__(self, entity_manager: "EntityManager", meta: EntityMetadata):
        self.entity_manager = entity_manager
        self.meta = meta

    def get_class_name(self) -> str:
        return self.meta.get_name()

    def get_index(self) -> NodeIndex:
        """Default index of the type, keyed by primary key."""
        return self.entity_manager.create_index(self.meta.get_index_name())

    def find(self, node_id: int) -> Optional[Any]:
        """Entity stored under ``node_id`` if that node belongs to this type."""
        node = self.entity_manager.get_client().get_node(node_id)
        if node is None:
            return None
        if node.get_property(NodePropertyConstants.CLASS) != self.meta.get_name():
            return None
        return self.entity_manager.load(node)

    def find_by(self, field: str, value: Any) -> List[Any]:
        """Entities whose indexed ``field`` matches ``value``."""
        index = self._index_for(field)
        nodes = self.entity_manager.get_client().index_query(index, field, value)
        return [self.entity_manager.load(node) for node in nodes]

    def find_one_by(self, field: str, value: Any) -> Optional[Any]:
        found = self.find_by(field, value)
        return found[0] if found else None

    def _index_for(self, field: str) -> NodeIndex:
        if field == NodePropertyConstants.DEFAULT_INDEX_FIELD:
            return self.get_index()
        for prop in self.meta.get_indexed_properties():
            for definition in prop.get_indexes():
                if definition.field == field:
                    return self.entity_manager.create_index(definition.name, definition.kind)
        raise MappingError(ErrorMessages.NOT_INDEXED.format(field_name=field, model_name=self.meta.get_name()))
