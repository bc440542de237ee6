# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""Builds entity instances from stored nodes."""

from __future__ import annotations

from typing import Any, Optional, Type

from .constants import ErrorMessages, NodePropertyConstants
from .exceptions import MappingError
from .graph_client import Node
from .graph_metadata import EntityMetadata, MetadataRepository


class EntityFactory:
    """
    Turns nodes into entities using the ``class`` marker written on the node.

    Only scalar properties and the primary key are restored; relation
    properties start empty and are populated by the caller when needed.
    """

    def __init__(self, metadata: MetadataRepository):
        self._metadata = metadata

    def metadata_for(self, node: Node, expected: Optional[Type[Any]] = None) -> EntityMetadata:
        class_name = node.get_property(NodePropertyConstants.CLASS)
        if class_name is None:
            if expected is None:
                raise MappingError(
                    ErrorMessages.UNKNOWN_ENTITY_CLASS.format(node_id=node.id, class_name=None)
                )
            return self._metadata.describe(expected)
        try:
            return self._metadata.from_name(class_name)
        except MappingError as e:
            raise MappingError(
                ErrorMessages.UNKNOWN_ENTITY_CLASS.format(node_id=node.id, class_name=class_name)
            ) from e

    def from_node(self, node: Node, expected: Optional[Type[Any]] = None) -> Any:
        meta = self.metadata_for(node, expected)
        return meta.hydrate(node.id, node.properties)
